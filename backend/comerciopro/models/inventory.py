from __future__ import annotations

from sqlalchemy.types import TypeDecorator

from ..extensions import db
from ..quantities import from_units, quantity_to_json, to_units
from ..time_utils import to_utc_z, to_iso_date, utcnow

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT)

PAYMENT_PAID = "paid"
PAYMENT_PENDING = "pending"
PAYMENT_STATUSES = (PAYMENT_PAID, PAYMENT_PENDING)

PRODUCT_UNITS = ("un", "kg", "g", "l")


class ScaledQuantity(TypeDecorator):
    """
    Decimal quantity stored as an integer count of ten-thousandths.

    Same idea as a *_cents column: SQL only sees integers, Python code
    reads and writes Decimals with 4 places.
    """

    impl = db.BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_units(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return from_units(value)


# Stock and movement quantities carry 4 decimal places for fractional sales
Quantity = ScaledQuantity


class Product(db.Model):
    """
    Product stocked by one store.

    STOCK INVARIANT:
    stock_quantity >= 0 after every committed movement. The column is only
    written by the stock ledger (services/stock_ledger.py), which appends a
    Movement row in the same transaction for every change.

    version_id gives optimistic locking for concurrent edits of the
    descriptive fields.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_name", "store_id", "name"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)

    # Reference weight of one stocked unit, expressed in `unit`
    weight = db.Column(Quantity, nullable=True)
    unit = db.Column(db.String(8), nullable=True, default="un")

    stock_quantity = db.Column(Quantity, nullable=False, default=0)

    # Opaque image reference (URL or data URI), stored as given
    image = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "weight": quantity_to_json(self.weight),
            "unit": self.unit,
            "stock_quantity": quantity_to_json(self.stock_quantity),
            "image": self.image,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Movement(db.Model):
    """
    Append-only stock ledger entry.

    One row per stock change: direction, positive quantity, actor, and
    optional sale/payment metadata. Rows are never updated or deleted by the
    application; SUM(in) - SUM(out) per product reconciles with
    Product.stock_quantity.
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.CheckConstraint("type IN ('in', 'out')", name="ck_movements_type"),
        db.CheckConstraint("quantity > 0", name="ck_movements_quantity_positive"),
        db.CheckConstraint(
            "payment_status IS NULL OR payment_status IN ('paid', 'pending')",
            name="ck_movements_payment_status",
        ),
        db.Index("ix_movements_product_timestamp", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    type = db.Column(db.String(8), nullable=False, index=True)
    quantity = db.Column(Quantity, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Server-assigned business time
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    observation = db.Column(db.String(255), nullable=True)

    client_name = db.Column(db.String(120), nullable=True)
    client_contact = db.Column(db.String(120), nullable=True)
    payment_status = db.Column(db.String(16), nullable=True)
    payment_due_date = db.Column(db.Date, nullable=True)

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))
    user = db.relationship("User", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "store_id": self.product.store_id if self.product else None,
            "type": self.type,
            "quantity": quantity_to_json(self.quantity),
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "timestamp": to_utc_z(self.timestamp),
            "observation": self.observation,
            "client_name": self.client_name,
            "client_contact": self.client_contact,
            "payment_status": self.payment_status,
            "payment_due_date": to_iso_date(self.payment_due_date),
        }
