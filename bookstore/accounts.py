"""Customer and owner accounts: registration, login, listing and deletion."""

import logging
from typing import List, Optional

import bcrypt
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from . import models, schemas
from .config import get_settings
from .database import storage_errors, transaction
from .errors import CredentialError, NotFoundError, StateError, ValidationError
from .identity import insert_address, insert_payment_info, parse_payment_form
from .sessions import DEFAULT_OWNER, OWNER, SessionIdentity

logger = logging.getLogger(__name__)


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    rounds = rounds or get_settings().bcrypt_rounds
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def email_in_use(db: Session, email: str) -> bool:
    stmt = select(models.Customer.customer_id).where(models.Customer.email == email)
    with storage_errors():
        return db.execute(stmt).first() is not None


def register_customer(db: Session, request: schemas.RegisterRequest) -> int:
    """
    Creates a customer together with fresh default address and payment rows.
    The defaults are always new rows, even if identical values exist.
    """
    payment_info = parse_payment_form(request.payment_info)
    if not request.email or not request.password:
        raise ValidationError("Email and password are required")

    with transaction(db):
        if email_in_use(db, request.email):
            raise ValidationError("An account with that email already exists")

        address_id = insert_address(db, request.address)
        payment_info_id = insert_payment_info(db, payment_info)
        customer = models.Customer(
            name=request.name,
            email=request.email,
            password_hash=hash_password(request.password),
            default_shipping_address_id=address_id,
            default_payment_info_id=payment_info_id,
        )
        db.add(customer)
        db.flush()
        customer_id = customer.customer_id

    logger.info("Registered customer %s", customer_id)
    return customer_id


def validate_customer_login(db: Session, email: str, password: str) -> int:
    """Returns the customer id. Unknown email and wrong password fail identically."""
    stmt = select(models.Customer).where(models.Customer.email == email)
    with storage_errors():
        customer = db.execute(stmt).scalar_one_or_none()

    if customer is None or not verify_password(password, customer.password_hash):
        raise CredentialError()
    return customer.customer_id


def get_customer_info(db: Session, customer_id: int) -> schemas.CustomerProfile:
    """The customer's profile with default shipping and payment expanded."""
    with storage_errors():
        customer = db.get(models.Customer, customer_id)
        if customer is None:
            raise StateError(f"No customer with the ID ({customer_id})")

        shipping = db.get(models.Address, customer.default_shipping_address_id)
        payment = db.get(models.PaymentInfo, customer.default_payment_info_id)
        billing = db.get(models.Address, payment.billing_address_id) if payment else None
    if shipping is None or payment is None or billing is None:
        raise StateError(f"Customer ({customer_id}) references missing default records")

    return schemas.CustomerProfile(
        name=customer.name,
        email=customer.email,
        street_address=shipping.street_address,
        postal_code=shipping.postal_code,
        province=shipping.province,
        name_on_card=payment.name_on_card,
        expiry=payment.expiry,
        billing_street_address=billing.street_address,
        billing_postal_code=billing.postal_code,
        billing_province=billing.province,
    )


def create_owner(db: Session, request: schemas.OwnerCreate) -> int:
    with transaction(db):
        if db.execute(
            select(models.Owner.owner_id).where(models.Owner.email == request.email)
        ).first() is not None:
            raise ValidationError("An owner with that email already exists")

        owner = models.Owner(
            name=request.name,
            email=request.email,
            password_hash=hash_password(request.password),
        )
        db.add(owner)
        db.flush()
        owner_id = owner.owner_id

    logger.info("Created owner account %s", owner_id)
    return owner_id


def owner_exists(db: Session) -> bool:
    with storage_errors():
        return db.execute(select(models.Owner.owner_id).limit(1)).first() is not None


def validate_owner_login(db: Session, email: str, password: str) -> SessionIdentity:
    """
    Authenticates an owner.
    - While no owner account exists, the configured default credentials log
      in as the default owner.
    - Once an owner exists, only owner accounts authenticate.
    """
    if not owner_exists(db):
        settings = get_settings()
        if email == settings.default_owner_email and password == settings.default_owner_password:
            return SessionIdentity(kind=DEFAULT_OWNER)
        raise CredentialError()

    stmt = select(models.Owner).where(models.Owner.email == email)
    with storage_errors():
        owner = db.execute(stmt).scalar_one_or_none()
    if owner is None or not verify_password(password, owner.password_hash):
        raise CredentialError()
    return SessionIdentity(kind=OWNER, id=owner.owner_id)


def list_accounts(db: Session) -> List[schemas.AccountOut]:
    with storage_errors():
        customers = db.execute(select(models.Customer).order_by(models.Customer.customer_id)).scalars()
        owners = db.execute(select(models.Owner).order_by(models.Owner.owner_id)).scalars()
        accounts = [
            schemas.AccountOut(account_id=c.customer_id, kind="customer", name=c.name, email=c.email)
            for c in customers
        ]
        accounts += [
            schemas.AccountOut(account_id=o.owner_id, kind="owner", name=o.name, email=o.email)
            for o in owners
        ]
    return accounts


def delete_customer(db: Session, customer_id: int) -> None:
    """
    Deletes a customer account.
    - The cart goes with it.
    - Orders stay for sales history but no longer point at a customer.
    - Default address and payment rows are kept; orders may share them.
    """
    with transaction(db):
        if db.get(models.Customer, customer_id) is None:
            raise NotFoundError(f"No customer with the ID ({customer_id})")

        db.execute(delete(models.CartLine).where(models.CartLine.customer_id == customer_id))
        db.execute(
            update(models.Order)
            .where(models.Order.customer_id == customer_id)
            .values(customer_id=None)
        )
        db.execute(delete(models.Customer).where(models.Customer.customer_id == customer_id))

    logger.info("Deleted customer account %s", customer_id)


def delete_owner(db: Session, owner_id: int) -> None:
    """Deletes an owner account. With no owners left, the default owner can log in again."""
    with transaction(db):
        if db.get(models.Owner, owner_id) is None:
            raise NotFoundError(f"No owner with the ID ({owner_id})")
        db.execute(delete(models.Owner).where(models.Owner.owner_id == owner_id))

    logger.info("Deleted owner account %s", owner_id)
