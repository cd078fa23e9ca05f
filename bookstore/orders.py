"""Order Placement Engine and order queries.

An order attempt moves through these stages:

    VALIDATING -> RESOLVING_ADDRESS -> RESOLVING_PAYMENT -> PERSISTING
    -> DECREMENTING_STOCK -> CLEARING_CART -> COMMITTED

All stages run in a single database transaction. A failure at any stage,
logged with the stage it reached, rolls everything back: no order row, no
line items, no stock change, and the cart stays as it was. Stock is
decremented with a guarded update (`stock > quantity`), so two checkouts
racing for the last copies cannot drive stock negative even though both
passed the up-front check.
"""

import enum
import logging
import random
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from . import cart, models, schemas
from .catalog import get_stock
from .database import storage_errors, transaction
from .errors import (
    BookstoreError,
    InsufficientStockError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .identity import load_address, load_payment_info, resolve_address, resolve_payment_info

logger = logging.getLogger(__name__)

INITIAL_ORDER_STATUS = "PR"


class OrderStage(enum.Enum):
    VALIDATING = "validating"
    RESOLVING_ADDRESS = "resolving_address"
    RESOLVING_PAYMENT = "resolving_payment"
    PERSISTING = "persisting"
    DECREMENTING_STOCK = "decrementing_stock"
    CLEARING_CART = "clearing_cart"
    COMMITTED = "committed"


def generate_tracking_number() -> str:
    """Random unsigned 32-bit integer in decimal. Not checked for collisions."""
    return str(random.getrandbits(32))


def _merge_lines(cart_lines: Iterable[Tuple[int, int]]) -> Dict[int, int]:
    # Repeated ISBNs are summed; zero-quantity lines carry nothing to order.
    merged: Dict[int, int] = {}
    for isbn, quantity in cart_lines:
        if quantity < 0:
            raise ValidationError(f"Negative quantity for ISBN {isbn}")
        if quantity == 0:
            continue
        merged[isbn] = merged.get(isbn, 0) + quantity
    return merged


def _load_customer(db: Session, customer_id: int) -> models.Customer:
    customer = db.get(models.Customer, customer_id)
    if customer is None:
        raise StateError(f"No customer with the ID ({customer_id})")
    return customer


def create_order(
    db: Session,
    customer_id: int,
    cart_lines: Iterable[Tuple[int, int]],
    address: Optional[schemas.Address] = None,
    payment_info: Optional[schemas.PaymentInfo] = None,
    publisher=None,
    today: Optional[date] = None,
) -> int:
    """
    Places an order for `cart_lines` and returns the new order id.
    - `address` / `payment_info` override the customer's stored defaults and
      are resolved with dedup semantics.
    - Every line must satisfy `quantity < stock`, else InsufficientStockError.
    - Missing customer rows raise StateError.
    - On success the customer's cart is empty.
    - `publisher`, if given, receives an `order.created` event after commit.
    """
    lines = _merge_lines(cart_lines)
    if not lines:
        raise ValidationError("Cannot place an order with an empty cart")

    stage = OrderStage.VALIDATING
    tracking_number = generate_tracking_number()
    try:
        with transaction(db):
            # 1. Validate stock for the whole cart before touching anything.
            for isbn, quantity in lines.items():
                try:
                    stock = get_stock(db, isbn)
                except NotFoundError as exc:
                    raise StateError(f"Cart references missing book ({isbn})") from exc
                if not quantity < stock:
                    raise InsufficientStockError(isbn=isbn, requested=quantity, available=stock)

            customer = None

            # 2. Shipping address: override (deduplicated) or the stored default.
            stage = OrderStage.RESOLVING_ADDRESS
            if address is not None:
                address_id = resolve_address(db, address)
            else:
                customer = _load_customer(db, customer_id)
                address_id = customer.default_shipping_address_id

            # 3. Payment info: same rules as the address.
            stage = OrderStage.RESOLVING_PAYMENT
            if payment_info is not None:
                payment_info_id = resolve_payment_info(db, payment_info)
            else:
                customer = customer or _load_customer(db, customer_id)
                payment_info_id = customer.default_payment_info_id

            # 4. Persist the order row.
            stage = OrderStage.PERSISTING
            order = models.Order(
                customer_id=customer_id,
                shipping_address_id=address_id,
                tracking_number=tracking_number,
                order_status=INITIAL_ORDER_STATUS,
                order_date=today or date.today(),
                payment_info_id=payment_info_id,
            )
            db.add(order)
            db.flush()
            order_id = order.order_id

            # 5. Line items, each with a guarded stock decrement.
            stage = OrderStage.DECREMENTING_STOCK
            for isbn, quantity in lines.items():
                db.add(models.OrderLine(order_id=order_id, isbn=isbn, quantity=quantity))
                result = db.execute(
                    update(models.Book)
                    .where(models.Book.isbn == isbn, models.Book.stock > quantity)
                    .values(stock=models.Book.stock - quantity)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InsufficientStockError(
                        isbn=isbn, requested=quantity, available=get_stock(db, isbn)
                    )
            db.flush()

            # 6. Empty the cart.
            stage = OrderStage.CLEARING_CART
            cart.clear(db, customer_id)

        stage = OrderStage.COMMITTED
    except StateError:
        logger.critical(
            "Order for customer %s failed at %s with invalid state", customer_id, stage.value, exc_info=True
        )
        raise
    except (InsufficientStockError, ValidationError) as exc:
        logger.info("Order for customer %s rejected at %s: %s", customer_id, stage.value, exc)
        raise
    except BookstoreError:
        logger.error("Order for customer %s failed at %s", customer_id, stage.value, exc_info=True)
        raise

    logger.info("Order %s committed for customer %s (%d line(s))", order_id, customer_id, len(lines))

    if publisher is not None:
        _publish_order_created(publisher, order_id, customer_id, tracking_number, lines)

    return order_id


def place_cart_order(
    db: Session,
    customer_id: int,
    address: Optional[schemas.Address] = None,
    payment_info: Optional[schemas.PaymentInfo] = None,
    publisher=None,
) -> int:
    """Checks out the customer's current cart."""
    return create_order(
        db,
        customer_id,
        cart.get_cart(db, customer_id),
        address=address,
        payment_info=payment_info,
        publisher=publisher,
    )


def _publish_order_created(publisher, order_id, customer_id, tracking_number, lines) -> None:
    # The order is already committed; a broker failure must not undo it.
    event = {
        "order_id": order_id,
        "customer_id": customer_id,
        "tracking_number": tracking_number,
        "status": INITIAL_ORDER_STATUS,
        "books": [{"isbn": isbn, "quantity": quantity} for isbn, quantity in lines.items()],
    }
    try:
        publisher.publish(routing_key="order.created", message=event)
    except Exception:
        logger.exception("Failed to publish order.created for order %s", order_id)


# --- Queries ---
def get_order_info(db: Session, order_id: int) -> schemas.OrderNoBooks:
    """Assembles an order's snapshot fields. A missing order is a StateError."""
    with storage_errors():
        order = db.get(models.Order, order_id)
        if order is None:
            raise StateError(f"No order with the ID ({order_id})")

        return schemas.OrderNoBooks(
            order_id=order.order_id,
            shipping_address=load_address(db, order.shipping_address_id),
            tracking_number=order.tracking_number,
            order_status=order.order_status,
            order_date=order.order_date,
            payment_info=load_payment_info(db, order.payment_info_id),
        )


def get_books_for_order(db: Session, order: schemas.OrderNoBooks) -> schemas.Order:
    stmt = (
        select(models.Book, models.OrderLine.quantity)
        .join(models.OrderLine, models.OrderLine.isbn == models.Book.isbn)
        .where(models.OrderLine.order_id == order.order_id)
        .order_by(models.Book.isbn)
    )
    with storage_errors():
        rows = db.execute(stmt).all()

    books = [
        schemas.OrderBook(book=schemas.BookOut.model_validate(book), quantity=quantity)
        for book, quantity in rows
    ]
    return schemas.Order(**order.model_dump(), books=books)


def get_customer_orders_info(db: Session, customer_id: int) -> List[schemas.Order]:
    """Every order of a customer, oldest first, with line items."""
    stmt = (
        select(models.Order.order_id)
        .where(models.Order.customer_id == customer_id)
        .order_by(models.Order.order_id)
    )
    with storage_errors():
        order_ids = list(db.execute(stmt).scalars())
    return [get_books_for_order(db, get_order_info(db, order_id)) for order_id in order_ids]


def get_customer_order(db: Session, customer_id: int, order_id: int) -> schemas.Order:
    """Loads one order, but only if it belongs to `customer_id`."""
    stmt = select(models.Order.customer_id).where(models.Order.order_id == order_id)
    with storage_errors():
        owner_id = db.execute(stmt).scalar_one_or_none()
    if owner_id is None or owner_id != customer_id:
        raise NotFoundError(f"No order with the ID ({order_id})")
    return get_books_for_order(db, get_order_info(db, order_id))


def censor_card_number(card_number: str) -> str:
    return "*" * 12 + card_number[-4:]


def censor_order(order: schemas.Order) -> schemas.CensoredOrder:
    """Replaces the card number with its last four digits and drops the CVV."""
    payment = order.payment_info
    return schemas.CensoredOrder(
        order_id=order.order_id,
        shipping_address=order.shipping_address,
        tracking_number=order.tracking_number,
        order_status=order.order_status,
        order_date=order.order_date,
        payment_info=schemas.CensoredPaymentInfo(
            name_on_card=payment.name_on_card,
            expiry=str(payment.expiry),
            censored_card_number=censor_card_number(payment.card_number),
            billing_address=payment.billing_address,
        ),
        books=order.books,
    )
