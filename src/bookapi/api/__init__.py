"""
BookAPI REST API.

FastAPI-based REST API for books, users and MFA enrollment.
"""
from .main import app, create_app

__all__ = ["app", "create_app"]
