"""Shared fixtures for bookstore tests.

Every test gets a fresh in-memory SQLite database with the full schema.
"""

import os

# Cheap hashing and no on-disk database for the module-level engine.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bookstore import accounts, models, schemas
from bookstore.database import Base, build_engine


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def publisher_id(db):
    address = models.Address(street_address="1 Press Rd", postal_code="K1A 0A1", province="ON")
    db.add(address)
    db.flush()
    publisher = models.Publisher(
        company_name="Maple Press",
        email="orders@maplepress.example",
        address_id=address.address_id,
        phone_number="613-555-0100",
        bank_number="000111222",
    )
    db.add(publisher)
    db.commit()
    return publisher.publisher_id


@pytest.fixture
def make_book(db, publisher_id):
    """Returns a helper that inserts a book with the given ISBN and stock."""
    def _make_book(isbn, stock=5, title=None, discontinued=False, **overrides):
        fields = dict(
            isbn=isbn,
            title=title or f"Book {isbn}",
            author_name="A. Writer",
            genre="Fiction",
            publisher_id=publisher_id,
            num_pages=320,
            price=Decimal("19.99"),
            author_royalties=Decimal("0.1000"),
            reorder_threshold=2,
            stock=stock,
            discontinued=discontinued,
        )
        fields.update(overrides)
        book = models.Book(**fields)
        db.add(book)
        db.commit()
        return book.isbn

    return _make_book


def payment_form(name="Ada Reader", expiry="4/27", card_number="4111111111111111", cvv="123",
                 billing=None):
    return schemas.PaymentInfoForm(
        name_on_card=name,
        expiry=expiry,
        card_number=card_number,
        cvv=cvv,
        billing_address=billing or schemas.Address(
            street_address="10 Billing St", postal_code="M5V 2T6", province="ON"
        ),
    )


def register_request(email="ada@example.com", password="hunter22", **overrides):
    fields = dict(
        email=email,
        name="Ada Reader",
        password=password,
        address=schemas.Address(street_address="1 Main St", postal_code="M4C 1B5", province="ON"),
        payment_info=payment_form(),
    )
    fields.update(overrides)
    return schemas.RegisterRequest(**fields)


@pytest.fixture
def customer_id(db):
    return accounts.register_customer(db, register_request())


@pytest.fixture
def other_customer_id(db):
    return accounts.register_customer(db, register_request(email="grace@example.com"))


class RecordingPublisher:
    """Stands in for the RabbitMQ producer and keeps what was published."""

    def __init__(self, fail=False):
        self.fail = fail
        self.events = []

    def publish(self, routing_key, message):
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.events.append((routing_key, message))

    def close(self):
        pass


@pytest.fixture
def recording_publisher():
    return RecordingPublisher()
