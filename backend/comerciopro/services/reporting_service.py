# Overview: Service-layer operations for reporting; dashboard aggregates over the movement ledger.

from __future__ import annotations

from decimal import Decimal

from flask import current_app, has_app_context
from sqlalchemy import func

from ..extensions import db
from ..models import Movement, Product, Store, User
from ..models.inventory import MOVEMENT_OUT, PAYMENT_PAID, PAYMENT_PENDING
from ..quantities import quantity_to_json
from ..time_utils import today
from .tenant_service import scoped_store_id

DEFAULT_LOW_STOCK_THRESHOLD = 10
RECENT_MOVEMENTS_LIMIT = 5
SALES_BY_DAY_LIMIT = 7
PAID_LIMIT = 10


def _low_stock_threshold() -> int:
    if has_app_context():
        return int(current_app.config.get("LOW_STOCK_THRESHOLD", DEFAULT_LOW_STOCK_THRESHOLD))
    return DEFAULT_LOW_STOCK_THRESHOLD


def _movements_query(store_id: int | None):
    query = db.session.query(Movement).join(Product, Product.id == Movement.product_id)
    if store_id is not None:
        query = query.filter(Product.store_id == store_id)
    return query


def sales_by_day(store_id: int | None) -> list[dict]:
    """Outbound quantity per calendar day, for the latest days with movements."""
    day = func.strftime("%Y-%m-%d", Movement.timestamp)

    query = db.session.query(
        day.label("date"),
        func.sum(Movement.quantity).label("total"),
    ).join(Product, Product.id == Movement.product_id).filter(Movement.type == MOVEMENT_OUT)

    if store_id is not None:
        query = query.filter(Product.store_id == store_id)

    rows = query.group_by(day).order_by(day.desc()).limit(SALES_BY_DAY_LIMIT).all()

    return [
        {"date": row.date, "total": quantity_to_json(Decimal(str(row.total or 0)))}
        for row in reversed(rows)
    ]


def financial_report(store_id: int | None) -> dict:
    """
    Payment status of outbound movements:
    - paid: latest paid sales
    - pending: unpaid, due today or later (or without due date)
    - overdue: unpaid and past due
    """
    current_day = today()
    sales = _movements_query(store_id).filter(Movement.type == MOVEMENT_OUT)

    paid = (
        sales.filter(Movement.payment_status == PAYMENT_PAID)
        .order_by(Movement.timestamp.desc(), Movement.id.desc())
        .limit(PAID_LIMIT)
        .all()
    )
    pending = (
        sales.filter(
            Movement.payment_status == PAYMENT_PENDING,
            db.or_(Movement.payment_due_date.is_(None), Movement.payment_due_date >= current_day),
        )
        .order_by(Movement.payment_due_date.asc(), Movement.id.asc())
        .all()
    )
    overdue = (
        sales.filter(
            Movement.payment_status == PAYMENT_PENDING,
            Movement.payment_due_date < current_day,
        )
        .order_by(Movement.payment_due_date.asc(), Movement.id.asc())
        .all()
    )

    return {
        "paid": [_with_store(m) for m in paid],
        "pending": [_with_store(m) for m in pending],
        "overdue": [_with_store(m) for m in overdue],
    }


def _with_store(movement: Movement) -> dict:
    data = movement.to_dict()
    data["store_name"] = movement.product.store.name if movement.product and movement.product.store else None
    return data


def dashboard(user: User) -> dict:
    store_id = scoped_store_id(user)

    products = db.session.query(Product)
    if store_id is not None:
        products = products.filter(Product.store_id == store_id)

    recent = (
        _movements_query(store_id)
        .order_by(Movement.timestamp.desc(), Movement.id.desc())
        .limit(RECENT_MOVEMENTS_LIMIT)
        .all()
    )

    low_stock = (
        products.filter(Product.stock_quantity < _low_stock_threshold())
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )

    stats = {
        "total_products": products.count(),
        "total_movements": _movements_query(store_id).count(),
        "recent_movements": [m.to_dict() for m in recent],
        "sales_by_day": sales_by_day(store_id),
        "low_stock": [p.to_dict() for p in low_stock],
        "low_stock_threshold": _low_stock_threshold(),
        "financial": financial_report(store_id),
    }

    if user.is_superadmin:
        stats["total_stores"] = db.session.query(Store).count()

    return stats
