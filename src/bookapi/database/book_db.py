"""
In-memory Book Catalog.

Books are keyed by ID and unique by ISBN. Author and genre filters are
linear scans; the catalog is small enough that no index is needed.
"""
import logging
import threading
from dataclasses import dataclass, replace
from typing import Optional, Dict, List, Callable
from datetime import datetime, timezone

from ..errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class Book:
    book_id: int
    title: str
    author: str
    isbn: str
    publication_year: int
    genre: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookDB:
    """Thread-safe in-memory store for catalog entries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._books: Dict[int, Book] = {}
        self._next_id = 1

    def list_books(self) -> List[Book]:
        """All books in ascending ID order."""
        return self._filter(lambda book: True)

    def list_books_by_author(self, author: str) -> List[Book]:
        """Books whose author contains `author`, ignoring case."""
        needle = author.lower()
        return self._filter(lambda book: needle in book.author.lower())

    def list_books_by_genre(self, genre: str) -> List[Book]:
        """Books whose genre contains `genre`, ignoring case. Books without a genre never match."""
        needle = genre.lower()
        return self._filter(lambda book: book.genre is not None and needle in book.genre.lower())

    def get_book(self, book_id: int) -> Optional[Book]:
        with self._lock:
            book = self._books.get(book_id)
            return replace(book) if book else None

    def exists_by_isbn(self, isbn: str) -> bool:
        with self._lock:
            return self._isbn_owner(isbn) is not None

    def count_books(self) -> int:
        with self._lock:
            return len(self._books)

    def create_book(
        self,
        title: str,
        author: str,
        isbn: str,
        publication_year: int,
        genre: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Book:
        """
        Add a book to the catalog.

        Raises:
            ConflictError: If a book with the same ISBN exists.
        """
        now = datetime.now(timezone.utc)

        with self._lock:
            if self._isbn_owner(isbn) is not None:
                raise ConflictError(f"Book with ISBN '{isbn}' already exists", "Book with this ISBN already exists")

            book = Book(
                book_id=self._next_id,
                title=title,
                author=author,
                isbn=isbn,
                publication_year=publication_year,
                genre=genre,
                description=description,
                created_at=now,
                updated_at=now,
            )
            self._next_id += 1
            self._books[book.book_id] = book

        logger.info(f"Created book: {title!r} (id={book.book_id}, isbn={isbn})")
        return replace(book)

    def update_book(
        self,
        book_id: int,
        title: str,
        author: str,
        isbn: str,
        publication_year: int,
        genre: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Book:
        """
        Replace every mutable field of a book, keeping its ID and creation time.

        Raises:
            NotFoundError: If the book does not exist.
            ConflictError: If the new ISBN belongs to another book.
        """
        with self._lock:
            existing = self._books.get(book_id)
            if existing is None:
                raise NotFoundError(f"Book not found with id: {book_id}")

            owner = self._isbn_owner(isbn)
            if owner is not None and owner != book_id:
                raise ConflictError(f"Book with ISBN '{isbn}' already exists", "Book with this ISBN already exists")

            updated = replace(
                existing,
                title=title,
                author=author,
                isbn=isbn,
                publication_year=publication_year,
                genre=genre,
                description=description,
                updated_at=datetime.now(timezone.utc),
            )
            self._books[book_id] = updated

        logger.info(f"Updated book {book_id}")
        return replace(updated)

    def delete_book(self, book_id: int) -> bool:
        with self._lock:
            removed = self._books.pop(book_id, None)

        if removed is not None:
            logger.info(f"Deleted book {book_id}")
        return removed is not None

    def _isbn_owner(self, isbn: str) -> Optional[int]:
        for book in self._books.values():
            if book.isbn == isbn:
                return book.book_id
        return None

    def _filter(self, predicate: Callable[[Book], bool]) -> List[Book]:
        with self._lock:
            return [
                replace(self._books[book_id])
                for book_id in sorted(self._books)
                if predicate(self._books[book_id])
            ]
