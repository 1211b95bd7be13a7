import hashlib

from checkout_ledger.catalog import mint_book_id, register_book
from checkout_ledger.models import Book


def test_book_id_is_md5_of_isbn_and_publish_date():
    expected = hashlib.md5(b"978-0132350884" + b"2008-08-01").hexdigest()
    assert mint_book_id("978-0132350884", "2008-08-01") == expected


def test_book_id_is_deterministic_and_input_sensitive():
    assert mint_book_id("isbn-1", "2020") == mint_book_id("isbn-1", "2020")
    assert mint_book_id("isbn-1", "2020") != mint_book_id("isbn-1", "2021")


def test_register_book_fills_id_without_touching_input():
    book = Book(title="Clean Code", author="Robert Martin", publish_date="2008-08-01", isbn="978-0132350884")

    registered = register_book(book)

    assert book.id == ""
    assert registered.id == mint_book_id(book.isbn, book.publish_date)
    assert registered.title == "Clean Code"


def test_register_book_overwrites_client_supplied_id():
    book = Book(id="chosen-by-client", isbn="x", publish_date="y")
    assert register_book(book).id == mint_book_id("x", "y")
