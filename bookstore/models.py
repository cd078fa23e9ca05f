from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
)

from .database import Base # Import the Base class from our database setup


# A street address. Rows are immutable value snapshots shared by id.
class Address(Base):
    __tablename__ = "address"

    address_id = Column(Integer, primary_key=True, index=True)
    street_address = Column(String, nullable=False)
    postal_code = Column(String, nullable=False)
    province = Column(String, nullable=False)


# Card details plus a reference to the billing address.
class PaymentInfo(Base):
    __tablename__ = "payment_info"

    payment_info_id = Column(Integer, primary_key=True, index=True)
    name_on_card = Column(String, nullable=False)
    expiry = Column(String, nullable=False) # Stored as "month/year", e.g. "4/27".
    card_number = Column(String, nullable=False)
    cvv = Column(String, nullable=False)
    billing_address_id = Column(Integer, ForeignKey("address.address_id"), nullable=False)


class Publisher(Base):
    __tablename__ = "publisher"

    publisher_id = Column(Integer, primary_key=True, index=True)
    company_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    address_id = Column(Integer, ForeignKey("address.address_id"), nullable=False)
    phone_number = Column(String, nullable=False)
    bank_number = Column(String, nullable=False)


# A catalog entry. The ISBN is the natural key.
class Book(Base):
    __tablename__ = "book"
    __table_args__ = (CheckConstraint("stock >= 0", name="book_stock_non_negative"),)

    isbn = Column(Integer, primary_key=True, autoincrement=False)
    title = Column(String, nullable=False)
    author_name = Column(String, nullable=False)
    genre = Column(String, nullable=False)
    publisher_id = Column(Integer, ForeignKey("publisher.publisher_id"), nullable=False)
    num_pages = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    author_royalties = Column(Numeric(5, 4), nullable=False) # Fraction of the price.
    reorder_threshold = Column(Integer, nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)
    discontinued = Column(Boolean, nullable=False, default=False) # Hidden from the catalog.


class Customer(Base):
    __tablename__ = "customer"

    customer_id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    default_shipping_address_id = Column(Integer, ForeignKey("address.address_id"), nullable=False)
    default_payment_info_id = Column(Integer, ForeignKey("payment_info.payment_info_id"), nullable=False)


class Owner(Base):
    __tablename__ = "owner"

    owner_id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)


# One cart line per (customer, book). A zero quantity is never stored.
class CartLine(Base):
    __tablename__ = "in_cart"

    customer_id = Column(Integer, ForeignKey("customer.customer_id"), primary_key=True)
    isbn = Column(Integer, ForeignKey("book.isbn"), primary_key=True)
    quantity = Column(Integer, nullable=False)


class Order(Base):
    __tablename__ = "orders"

    order_id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, ForeignKey("customer.customer_id"), nullable=True, index=True) # NULL once the customer is deleted.
    shipping_address_id = Column(Integer, ForeignKey("address.address_id"), nullable=False) # Order-time snapshot.
    tracking_number = Column(String, nullable=False)
    order_status = Column(String, nullable=False) # "PR" while pending/processing.
    order_date = Column(Date, nullable=False)
    payment_info_id = Column(Integer, ForeignKey("payment_info.payment_info_id"), nullable=False) # Order-time snapshot.


# Line items of an order.
class OrderLine(Base):
    __tablename__ = "in_order"
    __table_args__ = (CheckConstraint("quantity > 0", name="in_order_quantity_positive"),)

    order_id = Column(Integer, ForeignKey("orders.order_id"), primary_key=True)
    isbn = Column(Integer, ForeignKey("book.isbn"), primary_key=True)
    quantity = Column(Integer, nullable=False)
