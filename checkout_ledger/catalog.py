"""
Book catalog helpers. Unrelated to the chain: a book's id is just an md5
fingerprint of its isbn and publish date, so the same book always gets the
same id.
"""

import hashlib

from .models import Book


def mint_book_id(isbn: str, publish_date: str) -> str:
    return hashlib.md5((isbn + publish_date).encode("utf-8")).hexdigest()


def register_book(book: Book) -> Book:
    """Return a copy of `book` with its id filled in."""
    return book.model_copy(update={"id": mint_book_id(book.isbn, book.publish_date)})
