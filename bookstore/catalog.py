"""Catalog Store: book and publisher records.

Reads never fabricate values: an unknown ISBN is a NotFoundError and a
store failure is a StorageError. The owner-side operations (creating
books and publishers, discontinuing titles) live here as well.
"""

import logging
from typing import Iterable, List

import textdistance
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from . import models, schemas
from .database import storage_errors, transaction
from .errors import NotFoundError, ValidationError
from .identity import insert_address

logger = logging.getLogger(__name__)

ANY_GENRE = "N/A"

_title_similarity = textdistance.Sorensen(qval=2)


def _title_score(title: str, query: str) -> float:
    # Titles and queries under two characters have no bigrams to compare.
    if len(title) < 2 and len(query) < 2:
        return float(title == query)
    return _title_similarity.normalized_similarity(title, query)


def list_books(db: Session, include_discontinued: bool = False) -> List[models.Book]:
    """Returns catalog books ordered by ISBN. Discontinued titles are hidden by default."""
    stmt = select(models.Book).order_by(models.Book.isbn)
    if not include_discontinued:
        stmt = stmt.where(models.Book.discontinued.is_(False))
    with storage_errors():
        return list(db.execute(stmt).scalars())


def get_book(db: Session, isbn: int) -> models.Book:
    with storage_errors():
        book = db.get(models.Book, isbn)
    if book is None:
        raise NotFoundError(f"No book with ISBN: {isbn}")
    return book


def get_stock(db: Session, isbn: int) -> int:
    """Returns the current stock of a book, read fresh from the store."""
    stmt = select(models.Book.stock).where(models.Book.isbn == isbn)
    with storage_errors():
        stock = db.execute(stmt).scalar_one_or_none()
    if stock is None:
        raise NotFoundError(f"No book with ISBN: {isbn}")
    return stock


def filter_books(db: Session, search: schemas.BookSearch) -> List[schemas.BookWithPublisherName]:
    """
    Books with their publisher's name, narrowed by `search`.
    - Discontinued and out-of-stock books are left out unless asked for.
    - A genre of "N/A" means any genre.
    - With a `title`, results are ranked by Sorensen-Dice similarity of
      the title (best first); otherwise they are ordered by ISBN.
    """
    stmt = (
        select(models.Book, models.Publisher.company_name)
        .join(models.Publisher, models.Book.publisher_id == models.Publisher.publisher_id)
        .order_by(models.Book.isbn)
    )
    if not search.show_discontinued:
        stmt = stmt.where(models.Book.discontinued.is_(False))
    if not search.show_no_stock:
        stmt = stmt.where(models.Book.stock != 0)
    if search.isbn is not None:
        stmt = stmt.where(models.Book.isbn == search.isbn)
    if search.genre and search.genre != ANY_GENRE:
        stmt = stmt.where(models.Book.genre == search.genre)
    if search.author:
        stmt = stmt.where(models.Book.author_name == search.author)
    if search.publisher:
        stmt = stmt.where(models.Publisher.company_name == search.publisher)
    if search.min_pages is not None:
        stmt = stmt.where(models.Book.num_pages >= search.min_pages)
    if search.max_pages is not None:
        stmt = stmt.where(models.Book.num_pages <= search.max_pages)
    if search.min_price is not None:
        stmt = stmt.where(models.Book.price >= search.min_price)
    if search.max_price is not None:
        stmt = stmt.where(models.Book.price <= search.max_price)

    with storage_errors():
        rows = db.execute(stmt).all()
    books = [
        schemas.BookWithPublisherName(
            **schemas.BookOut.model_validate(book).model_dump(),
            publisher_name=company_name,
        )
        for book, company_name in rows
    ]

    if search.title:
        query = search.title.lower()
        # Stable sort keeps ISBN order among equal scores.
        books.sort(key=lambda book: _title_score(book.title.lower(), query), reverse=True)
    return books


def list_publishers(db: Session) -> List[models.Publisher]:
    stmt = select(models.Publisher).order_by(models.Publisher.publisher_id)
    with storage_errors():
        return list(db.execute(stmt).scalars())


def create_publisher(db: Session, publisher: schemas.PublisherCreate) -> int:
    with transaction(db):
        address_id = insert_address(db, publisher.address)
        row = models.Publisher(
            company_name=publisher.company_name,
            email=publisher.email,
            address_id=address_id,
            phone_number=publisher.phone_number,
            bank_number=publisher.bank_number,
        )
        db.add(row)
        db.flush()
        publisher_id = row.publisher_id

    logger.info("Created publisher %s (%s)", publisher_id, publisher.company_name)
    return publisher_id


def create_book(db: Session, book: schemas.BookCreate) -> int:
    """
    Adds a book to the catalog.
    - The ISBN must be new.
    - The publisher must exist.
    """
    with transaction(db):
        if db.get(models.Book, book.isbn) is not None:
            raise ValidationError(f"A book with ISBN {book.isbn} already exists")
        if db.get(models.Publisher, book.publisher_id) is None:
            raise ValidationError(f"No publisher with the ID ({book.publisher_id})")

        db.add(models.Book(**book.model_dump()))

    logger.info("Created book %s (%s)", book.isbn, book.title)
    return book.isbn


def _set_discontinued(db: Session, isbns: Iterable[int], discontinued: bool) -> int:
    isbns = list(isbns)
    if not isbns:
        return 0

    stmt = (
        update(models.Book)
        .where(models.Book.isbn.in_(isbns))
        .values(discontinued=discontinued)
    )
    with transaction(db):
        changed = db.execute(stmt).rowcount
    return changed


def discontinue_books(db: Session, isbns: Iterable[int]) -> int:
    """Hides books from the catalog. Existing cart lines are untouched."""
    changed = _set_discontinued(db, isbns, True)
    logger.info("Discontinued %d book(s)", changed)
    return changed


def undiscontinue_books(db: Session, isbns: Iterable[int]) -> int:
    changed = _set_discontinued(db, isbns, False)
    logger.info("Restored %d book(s) to the catalog", changed)
    return changed
