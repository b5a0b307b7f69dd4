"""
Service container for BookAPI.

One instance of every store, constructed explicitly at application startup
(see api/main.py:create_app) and reached through FastAPI dependencies.
"""
import os
import time
import logging
from dataclasses import dataclass
from typing import Optional, Callable

from .auth.authenticator import Authenticator
from .database.book_db import BookDB
from .database.mfa_db import MfaDeviceDB
from .database.session_db import SessionDB
from .database.token_db import TokenDB
from .database.user_db import UserDB, hash_password
from .utils.secrets import get_secret

logger = logging.getLogger(__name__)

SAMPLE_BOOKS = [
    {
        "title": "The Great Gatsby",
        "author": "F. Scott Fitzgerald",
        "isbn": "978-0-7432-7356-5",
        "publication_year": 1925,
        "genre": "Fiction",
        "description": "A classic American novel",
    },
    {
        "title": "To Kill a Mockingbird",
        "author": "Harper Lee",
        "isbn": "978-0-06-112008-4",
        "publication_year": 1960,
        "genre": "Fiction",
        "description": "A gripping tale of racial injustice",
    },
    {
        "title": "1984",
        "author": "George Orwell",
        "isbn": "978-0-452-28423-4",
        "publication_year": 1949,
        "genre": "Dystopian Fiction",
        "description": "A dystopian social science fiction novel",
    },
]


@dataclass
class ServiceContainer:
    users: UserDB
    books: BookDB
    devices: MfaDeviceDB
    sessions: SessionDB
    tokens: TokenDB
    authenticator: Authenticator

    @classmethod
    def build(
        cls,
        seed: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ) -> "ServiceContainer":
        """
        Construct every store and wire them together.

        Args:
            seed: Load the demo records. Defaults to SEED_SAMPLE_DATA (true).
            clock: Unix time source for TOTP checks.
        """
        users = UserDB()
        books = BookDB()
        devices = MfaDeviceDB(users, clock=clock)
        sessions = SessionDB()
        tokens = TokenDB()
        authenticator = Authenticator(
            users,
            devices,
            sessions,
            tokens,
            session_ttl_hours=int(os.getenv("SESSION_TTL_HOURS", "24")),
            verify_email_ttl_minutes=int(os.getenv("EMAIL_VERIFICATION_TTL_MINUTES", "2880")),
            password_reset_ttl_minutes=int(os.getenv("PASSWORD_RESET_TTL_MINUTES", "30")),
        )
        container = cls(
            users=users,
            books=books,
            devices=devices,
            sessions=sessions,
            tokens=tokens,
            authenticator=authenticator,
        )

        if seed is None:
            seed = os.getenv("SEED_SAMPLE_DATA", "true").lower() == "true"
        if seed:
            container.seed_sample_data()
        return container

    def seed_sample_data(self) -> None:
        """Load the demo admin account and three books."""
        self.users.create_user(
            "admin",
            "admin@example.com",
            hash_password(get_secret("ADMIN_PASSWORD", "password123")),
            first_name="Admin",
            last_name="User",
            email_verified=True,
        )
        for book in SAMPLE_BOOKS:
            self.books.create_book(**book)

        logger.info(f"Seeded sample data: 1 user, {len(SAMPLE_BOOKS)} books")
