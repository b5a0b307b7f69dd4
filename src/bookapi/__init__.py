"""
BookAPI - Books, Users and MFA Enrollment

This package provides a REST API for a small book catalog and its user
accounts, including TOTP-based multi-factor authentication with single-use
backup codes. All data lives in in-process stores.
"""

__version__ = "0.1.0"
__author__ = "BookAPI Team"
