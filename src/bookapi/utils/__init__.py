"""
Shared utilities for BookAPI.

This package provides:
- Secrets management
"""
from .secrets import get_secret, mask_secret

__all__ = ["get_secret", "mask_secret"]
