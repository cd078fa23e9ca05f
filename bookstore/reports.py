from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import models, schemas
from .database import storage_errors


def _sales(db: Session, stmt) -> List[schemas.SalesPoint]:
    with storage_errors():
        rows = db.execute(stmt).all()
    return [schemas.SalesPoint(day=day, quantity=int(quantity)) for day, quantity in rows]


def sales_by_date(db: Session) -> List[schemas.SalesPoint]:
    """Units sold per order date, oldest first."""
    stmt = (
        select(models.Order.order_date, func.sum(models.OrderLine.quantity))
        .join(models.OrderLine, models.OrderLine.order_id == models.Order.order_id)
        .group_by(models.Order.order_date)
        .order_by(models.Order.order_date)
    )
    return _sales(db, stmt)


def sales_by_publisher(db: Session, publisher_id: int) -> List[schemas.SalesPoint]:
    """Units of one publisher's books sold per order date, oldest first."""
    stmt = (
        select(models.Order.order_date, func.sum(models.OrderLine.quantity))
        .join(models.OrderLine, models.OrderLine.order_id == models.Order.order_id)
        .join(models.Book, models.Book.isbn == models.OrderLine.isbn)
        .where(models.Book.publisher_id == publisher_id)
        .group_by(models.Order.order_date)
        .order_by(models.Order.order_date)
    )
    return _sales(db, stmt)
