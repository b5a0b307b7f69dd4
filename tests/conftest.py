"""
Pytest configuration and shared fixtures for BookAPI tests.

This module provides common test fixtures for:
- A controllable clock for TOTP checks
- Fresh store containers (empty or seeded)
- A TestClient bound to an isolated application
"""
import os
import sys
from pathlib import Path

import pytest

# Add src to Python path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Cheap hashing and no rate limiting unless a test asks for it.
# Must be set before bookapi is imported.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("BACKUP_CODE_BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SEED_SAMPLE_DATA", "false")

from fastapi.testclient import TestClient

from bookapi.api.main import create_app
from bookapi.auth.mfa import get_current_totp
from bookapi.database.user_db import hash_password
from bookapi.services import ServiceContainer

# Middle of a 30-second TOTP step, so +-1 step windows are unambiguous
START_TIME = 1_700_000_025.0
PASSWORD = "correct-horse-battery"


# ============================================
# Clock
# ============================================

class FakeClock:
    """Callable Unix clock that only moves when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ============================================
# Store Fixtures
# ============================================

@pytest.fixture
def services(clock):
    """Empty store container driven by the fake clock."""
    return ServiceContainer.build(seed=False, clock=clock)


@pytest.fixture
def seeded_services(clock):
    """Container with the demo admin account and three books."""
    return ServiceContainer.build(seed=True, clock=clock)


@pytest.fixture
def alice(services):
    """A registered user without MFA."""
    return services.users.create_user(
        "alice",
        "alice@example.com",
        hash_password(PASSWORD),
        first_name="Alice",
    )


@pytest.fixture
def bob(services):
    return services.users.create_user("bob", "bob@example.com", hash_password(PASSWORD))


@pytest.fixture
def mfa_alice(services, alice, clock):
    """
    Alice with one verified TOTP device.

    Returns (user, enrollment). The clock is moved one step past the
    verification code so the next TOTP code is not a replay.
    """
    enrollment = services.devices.enroll(alice.user_id, "Phone")
    services.devices.verify(enrollment.device.device_id, get_current_totp(enrollment.secret, clock()))
    clock.advance(30)
    return services.users.get_user_by_id(alice.user_id), enrollment


# ============================================
# API Fixtures
# ============================================

@pytest.fixture
def app(services):
    return create_app(services)


@pytest.fixture
def client(app):
    """TestClient on an isolated app instance."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seeded_client(seeded_services):
    with TestClient(create_app(seeded_services)) as test_client:
        yield test_client
