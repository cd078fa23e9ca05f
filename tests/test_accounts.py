from datetime import date

import pytest
from sqlalchemy import func, select

from bookstore import accounts, cart, models, orders, reports, schemas
from bookstore.errors import CredentialError, NotFoundError, ValidationError
from bookstore.sessions import DEFAULT_OWNER, OWNER

from conftest import payment_form, register_request


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_register_creates_customer_with_defaults(db):
    customer_id = accounts.register_customer(db, register_request())

    profile = accounts.get_customer_info(db, customer_id)
    assert profile.email == "ada@example.com"
    assert profile.street_address == "1 Main St"
    assert profile.expiry == "4/27"
    assert profile.billing_street_address == "10 Billing St"


def test_register_always_inserts_fresh_default_rows(db):
    accounts.register_customer(db, register_request(email="one@example.com"))
    accounts.register_customer(db, register_request(email="two@example.com"))

    # Each registration: shipping address, billing address, payment info.
    assert _count(db, models.Address) == 4
    assert _count(db, models.PaymentInfo) == 2


def test_register_stores_password_hash_not_password(db):
    customer_id = accounts.register_customer(db, register_request(password="s3cret!"))

    stored = db.get(models.Customer, customer_id).password_hash
    assert stored != "s3cret!"
    assert accounts.verify_password("s3cret!", stored)


def test_register_rejects_duplicate_email(db, customer_id):
    with pytest.raises(ValidationError):
        accounts.register_customer(db, register_request())
    assert _count(db, models.Customer) == 1


def test_register_rejects_bad_expiry_without_writing(db):
    with pytest.raises(ValidationError):
        accounts.register_customer(db, register_request(payment_info=payment_form(expiry="00/30")))
    assert _count(db, models.Address) == 0


def test_customer_login(db, customer_id):
    assert accounts.validate_customer_login(db, "ada@example.com", "hunter22") == customer_id


def test_login_failures_are_indistinguishable(db, customer_id):
    with pytest.raises(CredentialError) as wrong_password:
        accounts.validate_customer_login(db, "ada@example.com", "nope")
    with pytest.raises(CredentialError) as unknown_email:
        accounts.validate_customer_login(db, "nobody@example.com", "hunter22")

    assert str(wrong_password.value) == str(unknown_email.value) == "Invalid email/password"


def test_default_owner_login_only_until_an_owner_exists(db):
    identity = accounts.validate_owner_login(db, "admin@local", "default")
    assert identity.kind == DEFAULT_OWNER

    owner_id = accounts.create_owner(
        db, schemas.OwnerCreate(email="boss@example.com", name="Boss", password="pw12345")
    )

    with pytest.raises(CredentialError):
        accounts.validate_owner_login(db, "admin@local", "default")
    identity = accounts.validate_owner_login(db, "boss@example.com", "pw12345")
    assert identity.kind == OWNER
    assert identity.id == owner_id


def test_default_owner_wrong_password(db):
    with pytest.raises(CredentialError):
        accounts.validate_owner_login(db, "admin@local", "guess")


def test_list_accounts(db, customer_id):
    accounts.create_owner(db, schemas.OwnerCreate(email="boss@example.com", name="Boss", password="pw"))

    listed = [(a.kind, a.email) for a in accounts.list_accounts(db)]

    assert listed == [("customer", "ada@example.com"), ("owner", "boss@example.com")]


def test_delete_customer_drops_cart_and_keeps_orders(db, customer_id, make_book):
    isbn = make_book(1001, stock=10)
    order_id = orders.create_order(db, customer_id, [(isbn, 2)], today=date(2024, 5, 1))
    cart.add_one(db, customer_id, isbn)

    accounts.delete_customer(db, customer_id)

    assert db.get(models.Customer, customer_id) is None
    assert _count(db, models.CartLine) == 0
    assert db.get(models.Order, order_id).customer_id is None
    assert [(p.day, p.quantity) for p in reports.sales_by_date(db)] == [(date(2024, 5, 1), 2)]
    with pytest.raises(CredentialError):
        accounts.validate_customer_login(db, "ada@example.com", "hunter22")


def test_deleted_customers_email_can_register_again(db, customer_id):
    accounts.delete_customer(db, customer_id)

    assert accounts.register_customer(db, register_request()) != customer_id


def test_delete_unknown_customer(db):
    with pytest.raises(NotFoundError):
        accounts.delete_customer(db, 404)


def test_deleting_last_owner_restores_default_owner(db):
    owner_id = accounts.create_owner(
        db, schemas.OwnerCreate(email="boss@example.com", name="Boss", password="pw12345")
    )

    accounts.delete_owner(db, owner_id)

    assert accounts.validate_owner_login(db, "admin@local", "default").kind == DEFAULT_OWNER
    with pytest.raises(NotFoundError):
        accounts.delete_owner(db, owner_id)
