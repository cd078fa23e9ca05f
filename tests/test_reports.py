from datetime import date

from bookstore import catalog, orders, reports, schemas


def test_sales_by_date_sums_units_per_day(db, customer_id, make_book):
    first = make_book(1001, stock=20)
    second = make_book(1002, stock=20)
    orders.create_order(db, customer_id, [(first, 2), (second, 1)], today=date(2024, 5, 1))
    orders.create_order(db, customer_id, [(first, 4)], today=date(2024, 5, 3))
    orders.create_order(db, customer_id, [(second, 1)], today=date(2024, 5, 1))

    assert [(p.day, p.quantity) for p in reports.sales_by_date(db)] == [
        (date(2024, 5, 1), 4),
        (date(2024, 5, 3), 4),
    ]


def test_sales_by_publisher_filters_books(db, customer_id, make_book, publisher_id):
    other_publisher = catalog.create_publisher(db, schemas.PublisherCreate(
        company_name="Loon Books",
        email="hello@loon.example",
        address=schemas.Address(street_address="5 Lake Dr", postal_code="P3E 2C6", province="ON"),
        phone_number="705-555-0199",
        bank_number="123456789",
    ))
    mine = make_book(1001, stock=20)
    theirs = make_book(1002, stock=20, publisher_id=other_publisher)
    orders.create_order(db, customer_id, [(mine, 2), (theirs, 5)], today=date(2024, 5, 1))

    assert [(p.day, p.quantity) for p in reports.sales_by_publisher(db, publisher_id)] == [
        (date(2024, 5, 1), 2),
    ]
    assert [(p.day, p.quantity) for p in reports.sales_by_publisher(db, other_publisher)] == [
        (date(2024, 5, 1), 5),
    ]


def test_no_sales(db):
    assert reports.sales_by_date(db) == []
