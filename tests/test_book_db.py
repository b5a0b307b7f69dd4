"""
Tests for the in-memory book catalog.
"""
import pytest

from bookapi.database.book_db import BookDB
from bookapi.errors import ConflictError, NotFoundError
from bookapi.services import SAMPLE_BOOKS


@pytest.fixture
def book_db():
    db = BookDB()
    for book in SAMPLE_BOOKS:
        db.create_book(**book)
    return db


# ============================================
# Create / Read Tests
# ============================================

class TestCatalog:
    """Test catalog creation and lookups."""

    def test_sample_books_loaded_in_order(self, book_db):
        books = book_db.list_books()

        assert [b.book_id for b in books] == [1, 2, 3]
        assert books[2].title == "1984"
        assert book_db.count_books() == 3

    def test_duplicate_isbn_conflicts(self, book_db):
        with pytest.raises(ConflictError) as exc_info:
            book_db.create_book("Copy", "Someone", "978-0-452-28423-4", 2000)

        assert exc_info.value.public_message == "Book with this ISBN already exists"
        assert book_db.count_books() == 3

    def test_exists_by_isbn(self, book_db):
        assert book_db.exists_by_isbn("978-0-06-112008-4")
        assert not book_db.exists_by_isbn("000")

    def test_get_missing_book(self, book_db):
        assert book_db.get_book(99) is None


# ============================================
# Search Tests
# ============================================

class TestSearch:
    """Author and genre filters are case-insensitive substring matches."""

    def test_author_substring(self, book_db):
        books = book_db.list_books_by_author("orwell")

        assert [b.title for b in books] == ["1984"]

    def test_genre_substring(self, book_db):
        books = book_db.list_books_by_genre("FICTION")

        assert [b.book_id for b in books] == [1, 2, 3]

    def test_genre_skips_books_without_genre(self, book_db):
        book_db.create_book("Untitled", "Anon", "111", 2001)

        assert len(book_db.list_books_by_genre("")) == 3

    def test_no_match(self, book_db):
        assert book_db.list_books_by_author("tolkien") == []


# ============================================
# Update / Delete Tests
# ============================================

class TestUpdateDelete:

    def test_update_replaces_fields(self, book_db):
        original = book_db.get_book(1)

        updated = book_db.update_book(1, "Gatsby", "Fitzgerald", original.isbn, 1926)

        assert updated.title == "Gatsby"
        assert updated.genre is None
        assert updated.created_at == original.created_at
        assert updated.updated_at >= original.updated_at

    def test_update_to_other_books_isbn_conflicts(self, book_db):
        with pytest.raises(ConflictError):
            book_db.update_book(1, "Gatsby", "Fitzgerald", "978-0-452-28423-4", 1925)

    def test_update_missing_book(self, book_db):
        with pytest.raises(NotFoundError):
            book_db.update_book(99, "T", "A", "I", 1)

    def test_delete(self, book_db):
        assert book_db.delete_book(2) is True
        assert book_db.delete_book(2) is False
        assert [b.book_id for b in book_db.list_books()] == [1, 3]

    def test_ids_not_reused_after_delete(self, book_db):
        book_db.delete_book(3)

        book = book_db.create_book("New", "Author", "222", 2020)

        assert book.book_id == 4
