"""Error taxonomy for the bookstore core.

- BookstoreError (base)
- ValidationError: malformed user input (bad expiry, unknown ISBN, ...)
- InsufficientStockError: a cart or order asked for more than is in stock
- StateError: persisted data violates an internal invariant
- StorageError: the backing store failed
- CredentialError: login failed
- NotFoundError: a requested record does not exist

Cart operations raise InsufficientStockError, ValidationError or
StorageError. Order placement may additionally raise StateError.
"""

from typing import Optional


class BookstoreError(Exception):
    """Base class for all errors raised by the bookstore core."""


class ValidationError(BookstoreError):
    """User input is malformed. Reported to the caller, never retried."""


class InsufficientStockError(BookstoreError):
    """Requested quantity is not strictly below the book's stock."""

    def __init__(
        self,
        isbn: Optional[int] = None,
        requested: Optional[int] = None,
        available: Optional[int] = None,
    ) -> None:
        self.isbn = isbn
        self.requested = requested
        self.available = available
        if isbn is None:
            message = "Not enough stock for that operation"
        else:
            message = f"Not enough stock for ISBN {isbn}"
        super().__init__(message)


class StateError(BookstoreError):
    """An internal invariant was violated (missing referenced row, corrupt data)."""

    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"Invalid application state: {what}")


class StorageError(BookstoreError):
    """The backing store failed. Propagated without retry."""


class CredentialError(BookstoreError):
    """Authentication failed. Same message whether or not the account exists."""

    def __init__(self) -> None:
        super().__init__("Invalid email/password")


class NotFoundError(BookstoreError):
    """A requested record does not exist."""
