import re
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

_DIGITS = re.compile(r"[0-9]+")


class Expiry(BaseModel):
    """Card expiry as month (1-12) and two-digit year (>= 21)."""
    month: int
    year: int

    @classmethod
    def parse(cls, text: str) -> Optional["Expiry"]:
        """
        Parses "MM/YY". Returns None instead of raising when the text is
        malformed, so callers can report it as a validation problem.
        """
        parts = text.split("/")
        if len(parts) != 2:
            return None
        if not all(_DIGITS.fullmatch(part) for part in parts):
            return None

        month, year = int(parts[0]), int(parts[1])
        if month < 1 or month > 12:
            return None
        if year < 21:
            return None
        return cls(month=month, year=year)

    def __str__(self) -> str:
        return f"{self.month}/{self.year}"


class Address(BaseModel):
    """An address value. Equal field values mean the same address."""
    street_address: str
    postal_code: str
    province: str


class PaymentInfo(BaseModel):
    """Payment details as stored on an order or a customer."""
    name_on_card: str
    expiry: Expiry
    card_number: str
    cvv: str
    billing_address: Address


class PaymentInfoForm(BaseModel):
    """Payment details as submitted by a client; expiry is still raw text."""
    name_on_card: str
    expiry: str
    card_number: str
    cvv: str
    billing_address: Address


# --- Catalog ---
class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    isbn: int
    title: str
    author_name: str
    genre: str
    publisher_id: int
    num_pages: int
    price: Decimal
    author_royalties: Decimal
    reorder_threshold: int
    stock: int
    discontinued: bool


class BookWithPublisherName(BookOut):
    publisher_name: str


MAX_ISBN = 2**31 - 1 # Stored in a 32-bit integer column.


class BookCreate(BaseModel):
    isbn: int = Field(..., gt=0, le=MAX_ISBN)
    title: str
    author_name: str
    genre: str
    publisher_id: int
    num_pages: int = Field(..., ge=0)
    price: Decimal = Field(..., ge=0)
    author_royalties: Decimal = Field(..., ge=0, le=1)
    reorder_threshold: int = Field(0, ge=0)
    stock: int = Field(0, ge=0)
    discontinued: bool = False


class BookSearch(BaseModel):
    """
    Catalog filters. Every field is optional; unset fields do not filter.
    A `title` does not filter either, it ranks the results by similarity.
    """
    title: Optional[str] = None
    isbn: Optional[int] = None
    genre: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    min_pages: Optional[int] = None
    max_pages: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    show_discontinued: bool = False
    show_no_stock: bool = False


class PublisherCreate(BaseModel):
    company_name: str
    email: str
    address: Address
    phone_number: str
    bank_number: str


class PublisherOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    publisher_id: int
    company_name: str
    email: str
    phone_number: str


# --- Cart ---
class CartLineOut(BaseModel):
    isbn: int
    quantity: int


class CartBook(BaseModel):
    book: BookOut
    quantity: int


# --- Orders ---
class OrderNoBooks(BaseModel):
    order_id: int
    shipping_address: Address
    tracking_number: str
    order_status: str
    order_date: date
    payment_info: PaymentInfo


class OrderBook(BaseModel):
    book: BookOut
    quantity: int


class Order(OrderNoBooks):
    books: List[OrderBook]


class CreateOrderRequest(BaseModel):
    """Omitted shipping/payment fall back to the customer's stored defaults."""
    shipping_address: Optional[Address] = None
    payment_info: Optional[PaymentInfoForm] = None


class CensoredPaymentInfo(BaseModel):
    name_on_card: str
    expiry: str
    censored_card_number: str
    billing_address: Address


class CensoredOrder(BaseModel):
    order_id: int
    shipping_address: Address
    tracking_number: str
    order_status: str
    order_date: date
    payment_info: CensoredPaymentInfo
    books: List[OrderBook]


# --- Accounts ---
class RegisterRequest(BaseModel):
    email: str
    name: str
    password: str
    address: Address
    payment_info: PaymentInfoForm


class LoginRequest(BaseModel):
    email: str
    password: str


class OwnerCreate(BaseModel):
    email: str
    name: str
    password: str


class CustomerProfile(BaseModel):
    name: str
    email: str
    street_address: str
    postal_code: str
    province: str
    name_on_card: str
    expiry: str
    billing_street_address: str
    billing_postal_code: str
    billing_province: str


class AccountOut(BaseModel):
    account_id: int
    kind: str
    name: str
    email: str


# --- Reports ---
class SalesPoint(BaseModel):
    day: date
    quantity: int
