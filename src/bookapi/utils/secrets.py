"""
Secret lookup for BookAPI.

Credentials (ADMIN_PASSWORD, REDIS_PASSWORD) may come from a mounted file
or the environment:

    from bookapi.utils.secrets import get_secret

    # ADMIN_PASSWORD_FILE, then ADMIN_PASSWORD, then /run/secrets/admin_password
    admin_password = get_secret("ADMIN_PASSWORD", "password123")
"""
import os
import logging
from typing import Optional
from functools import lru_cache

logger = logging.getLogger(__name__)


def _read_secret_file(path: str) -> Optional[str]:
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r") as f:
            return f.read().strip()
    except OSError as e:
        logger.warning(f"Could not read secret file {path}: {e}")
        return None


@lru_cache(maxsize=32)
def get_secret(name: str, default: Optional[str] = None) -> Optional[str]:
    """
    Resolve a secret by name.

    Sources, first hit wins:
    1. File named by {NAME}_FILE
    2. {NAME} environment variable
    3. Docker secret at /run/secrets/{name}
    4. `default`

    Results are cached for the life of the process.
    """
    pointer = os.environ.get(f"{name}_FILE")
    value = _read_secret_file(pointer) if pointer else None
    if value is not None:
        logger.debug(f"Secret {name} loaded from {pointer}")
        return value

    if os.environ.get(name):
        return os.environ[name]

    value = _read_secret_file(f"/run/secrets/{name.lower()}")
    if value is not None:
        logger.debug(f"Secret {name} loaded from Docker secrets")
        return value

    return default


def mask_secret(secret: str, visible_chars: int = 4) -> str:
    """Shorten a secret for log output, e.g. "abcd...wxyz"."""
    if not secret or len(secret) <= visible_chars * 2:
        return "***"
    return f"{secret[:visible_chars]}...{secret[-visible_chars:]}"
