"""Get-or-insert resolution of address and payment-info records.

Addresses and payment details are value snapshots: identical field values
resolve to the same row id. Lookups happen before inserts, so sequential
resolution of the same value is idempotent. Two sessions resolving the
same new value at the same time may both insert; the duplicate rows are
harmless since nothing relies on their uniqueness.

None of these functions commit. They flush so new ids are available and
leave the unit of work to the caller (see `database.transaction`).
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import StateError, ValidationError

logger = logging.getLogger(__name__)


def parse_payment_form(form: schemas.PaymentInfoForm) -> schemas.PaymentInfo:
    """Validates the raw expiry text of a submitted payment form."""
    expiry = schemas.Expiry.parse(form.expiry)
    if expiry is None:
        raise ValidationError("Invalid credit card expiry")
    return schemas.PaymentInfo(
        name_on_card=form.name_on_card,
        expiry=expiry,
        card_number=form.card_number,
        cvv=form.cvv,
        billing_address=form.billing_address,
    )


def find_address(db: Session, address: schemas.Address) -> Optional[int]:
    stmt = (
        select(models.Address.address_id)
        .where(
            models.Address.street_address == address.street_address,
            models.Address.postal_code == address.postal_code,
            models.Address.province == address.province,
        )
        .order_by(models.Address.address_id)
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def insert_address(db: Session, address: schemas.Address) -> int:
    """Inserts a new address row without looking for an existing one."""
    row = models.Address(
        street_address=address.street_address,
        postal_code=address.postal_code,
        province=address.province,
    )
    db.add(row)
    db.flush()
    return row.address_id


def resolve_address(db: Session, address: schemas.Address) -> int:
    """Returns the id of an address equal to `address`, inserting one if none exists."""
    address_id = find_address(db, address)
    if address_id is not None:
        return address_id

    address_id = insert_address(db, address)
    logger.debug("Inserted address %s", address_id)
    return address_id


def find_payment_info(
    db: Session, payment_info: schemas.PaymentInfo, billing_address_id: int
) -> Optional[int]:
    stmt = (
        select(models.PaymentInfo.payment_info_id)
        .where(
            models.PaymentInfo.name_on_card == payment_info.name_on_card,
            models.PaymentInfo.expiry == str(payment_info.expiry),
            models.PaymentInfo.card_number == payment_info.card_number,
            models.PaymentInfo.cvv == payment_info.cvv,
            models.PaymentInfo.billing_address_id == billing_address_id,
        )
        .order_by(models.PaymentInfo.payment_info_id)
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def _insert_payment_row(
    db: Session, payment_info: schemas.PaymentInfo, billing_address_id: int
) -> int:
    row = models.PaymentInfo(
        name_on_card=payment_info.name_on_card,
        expiry=str(payment_info.expiry),
        card_number=payment_info.card_number,
        cvv=payment_info.cvv,
        billing_address_id=billing_address_id,
    )
    db.add(row)
    db.flush()
    return row.payment_info_id


def insert_payment_info(db: Session, payment_info: schemas.PaymentInfo) -> int:
    """Inserts new payment-info and billing address rows, with no dedup search."""
    billing_address_id = insert_address(db, payment_info.billing_address)
    return _insert_payment_row(db, payment_info, billing_address_id)


def resolve_payment_info(db: Session, payment_info: schemas.PaymentInfo) -> int:
    """
    Returns the id of payment info equal to `payment_info`.
    - The billing address is resolved first (and may be created).
    - The match covers every field plus the resolved billing address id.
    """
    billing_address_id = resolve_address(db, payment_info.billing_address)

    payment_info_id = find_payment_info(db, payment_info, billing_address_id)
    if payment_info_id is not None:
        return payment_info_id

    payment_info_id = _insert_payment_row(db, payment_info, billing_address_id)
    logger.debug("Inserted payment info %s", payment_info_id)
    return payment_info_id


def load_address(db: Session, address_id: int) -> schemas.Address:
    row = db.get(models.Address, address_id)
    if row is None:
        raise StateError(f"No address with the ID ({address_id})")
    return schemas.Address(
        street_address=row.street_address,
        postal_code=row.postal_code,
        province=row.province,
    )


def load_payment_info(db: Session, payment_info_id: int) -> schemas.PaymentInfo:
    """Loads stored payment info. Unparsable stored expiry is corrupt data."""
    row = db.get(models.PaymentInfo, payment_info_id)
    if row is None:
        raise StateError(f"No payment info with the ID ({payment_info_id})")

    expiry = schemas.Expiry.parse(row.expiry)
    if expiry is None:
        raise StateError(f"Stored expiry for payment info ({payment_info_id}) is unparsable")

    return schemas.PaymentInfo(
        name_on_card=row.name_on_card,
        expiry=expiry,
        card_number=row.card_number,
        cvv=row.cvv,
        billing_address=load_address(db, row.billing_address_id),
    )
