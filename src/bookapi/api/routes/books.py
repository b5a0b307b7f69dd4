"""
Book Catalog Endpoints.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..models import ApiResponse, BookRequest, BookResponse
from ..deps import get_book_db
from ...database.book_db import BookDB
from ...errors import NotFoundError

router = APIRouter(prefix="/api/books", tags=["Books"])


@router.get("", response_model=ApiResponse[List[BookResponse]])
async def list_books(
    author: Optional[str] = Query(None, description="Case-insensitive author substring"),
    genre: Optional[str] = Query(None, description="Case-insensitive genre substring"),
    book_db: BookDB = Depends(get_book_db),
):
    """
    List books, optionally filtered.

    When both filters are given, only `author` is applied.
    """
    if author and author.strip():
        books = book_db.list_books_by_author(author)
    elif genre and genre.strip():
        books = book_db.list_books_by_genre(genre)
    else:
        books = book_db.list_books()

    return ApiResponse(
        success=True,
        message="Books retrieved successfully",
        data=[BookResponse.from_book(book) for book in books],
    )


@router.get("/stats", response_model=ApiResponse[int])
async def book_stats(book_db: BookDB = Depends(get_book_db)):
    return ApiResponse(success=True, message="Total books count", data=book_db.count_books())


@router.get("/{book_id}", response_model=ApiResponse[BookResponse])
async def get_book(book_id: int, book_db: BookDB = Depends(get_book_db)):
    book = book_db.get_book(book_id)
    if book is None:
        raise NotFoundError(f"Book not found with id: {book_id}")

    return ApiResponse(success=True, message="Book found", data=BookResponse.from_book(book))


@router.post(
    "",
    response_model=ApiResponse[BookResponse],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ApiResponse, "description": "ISBN already exists"}},
)
async def create_book(request: BookRequest, book_db: BookDB = Depends(get_book_db)):
    book = book_db.create_book(**request.model_dump())
    return ApiResponse(success=True, message="Book created successfully", data=BookResponse.from_book(book))


@router.put(
    "/{book_id}",
    response_model=ApiResponse[BookResponse],
    responses={
        404: {"model": ApiResponse, "description": "Book not found"},
        409: {"model": ApiResponse, "description": "ISBN belongs to another book"},
    },
)
async def update_book(book_id: int, request: BookRequest, book_db: BookDB = Depends(get_book_db)):
    """Replace every field of a book. ID and creation time are kept."""
    book = book_db.update_book(book_id, **request.model_dump())
    return ApiResponse(success=True, message="Book updated successfully", data=BookResponse.from_book(book))


@router.delete("/{book_id}", response_model=ApiResponse[None])
async def delete_book(book_id: int, book_db: BookDB = Depends(get_book_db)):
    if not book_db.delete_book(book_id):
        raise NotFoundError(f"Book not found with id: {book_id}")

    return ApiResponse(success=True, message="Book deleted successfully")
