"""Cart Manager: per-customer mapping of ISBN to a positive quantity.

Raises InsufficientStockError, ValidationError or StorageError.
Concurrent requests from the same customer are not serialized; the last
write wins.
"""

import logging
from typing import List, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from . import models, schemas
from .catalog import get_stock
from .database import storage_errors, transaction
from .errors import InsufficientStockError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def add_one(db: Session, customer_id: int, isbn: int) -> None:
    """
    Adds one copy of a book to the cart.
    - Increments an existing line, or creates one with quantity 1.
    - Stock is not checked here; it is checked on quantity-set and at checkout.
    - Discontinued books cannot be newly added.
    """
    with transaction(db):
        book = db.get(models.Book, isbn)
        if book is None:
            raise ValidationError(f"{isbn} is not a valid ISBN")

        line = db.get(models.CartLine, (customer_id, isbn))
        if line is not None:
            db.execute(
                update(models.CartLine)
                .where(models.CartLine.customer_id == customer_id, models.CartLine.isbn == isbn)
                .values(quantity=models.CartLine.quantity + 1)
            )
        else:
            if book.discontinued:
                raise ValidationError(f"Book {isbn} has been discontinued")
            db.add(models.CartLine(customer_id=customer_id, isbn=isbn, quantity=1))

    logger.debug("Customer %s added ISBN %s to cart", customer_id, isbn)


def set_quantity(db: Session, customer_id: int, isbn: int, quantity: int) -> None:
    """
    Sets the quantity of a cart line.
    - 0 deletes the line; a zero quantity is never stored.
    - Otherwise `quantity` must be strictly less than the current stock, or
      InsufficientStockError is raised and the cart is left as it was.
    - Like add_one, it cannot create a line for a discontinued book.
    """
    if quantity < 0:
        raise ValidationError("Quantity cannot be negative")

    with transaction(db):
        if quantity == 0:
            db.execute(
                delete(models.CartLine)
                .where(models.CartLine.customer_id == customer_id, models.CartLine.isbn == isbn)
            )
            return

        try:
            stock = get_stock(db, isbn)
        except NotFoundError as exc:
            raise ValidationError(f"{isbn} is not a valid ISBN") from exc

        if not quantity < stock:
            logger.info(
                "Customer %s asked for %s of ISBN %s with stock %s", customer_id, quantity, isbn, stock
            )
            raise InsufficientStockError(isbn=isbn, requested=quantity, available=stock)

        line = db.get(models.CartLine, (customer_id, isbn))
        if line is None:
            if db.get(models.Book, isbn).discontinued:
                raise ValidationError(f"Book {isbn} has been discontinued")
            db.add(models.CartLine(customer_id=customer_id, isbn=isbn, quantity=quantity))
        else:
            line.quantity = quantity


def get_cart(db: Session, customer_id: int) -> List[Tuple[int, int]]:
    """Returns (isbn, quantity) pairs ordered by ISBN, quantities clamped to >= 0."""
    stmt = (
        select(models.CartLine.isbn, models.CartLine.quantity)
        .where(models.CartLine.customer_id == customer_id)
        .order_by(models.CartLine.isbn)
    )
    with storage_errors():
        rows = db.execute(stmt).all()
    return [(isbn, max(quantity, 0)) for isbn, quantity in rows]


def get_cart_books(db: Session, customer_id: int) -> List[schemas.CartBook]:
    """Cart lines joined with their books, for display."""
    stmt = (
        select(models.Book, models.CartLine.quantity)
        .join(models.CartLine, models.CartLine.isbn == models.Book.isbn)
        .where(models.CartLine.customer_id == customer_id)
        .order_by(models.Book.isbn)
    )
    with storage_errors():
        rows = db.execute(stmt).all()
    return [
        schemas.CartBook(book=schemas.BookOut.model_validate(book), quantity=max(quantity, 0))
        for book, quantity in rows
    ]


def clear(db: Session, customer_id: int) -> None:
    """Deletes every cart line of a customer. Runs inside the caller's transaction."""
    db.execute(delete(models.CartLine).where(models.CartLine.customer_id == customer_id))
