"""
In-memory stores for BookAPI.

This package provides:
- user_db: User Directory (users + username/email indexes)
- book_db: Book Catalog
- mfa_db: MFA Device Registry (devices + backup codes)
- session_db: server-side login sessions
- token_db: single-use email verification and password reset tokens
"""
