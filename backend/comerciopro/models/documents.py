from __future__ import annotations

from ..extensions import db
from ..quantities import quantity_to_json
from ..time_utils import to_utc_z, to_iso_date
from .inventory import Quantity

REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_COMPLETED = "completed"

SHIPMENT_STATUS_PENDING = "pending"
SHIPMENT_STATUS_SENT = "sent"
SHIPMENT_STATUS_RECEIVED = "received"


class ProductRequest(db.Model):
    """
    Client request for a product at a store.

    LIFECYCLE: pending -> completed. Completion hands the goods to the
    client and is recorded as an `out` movement (see request_service).
    """
    __tablename__ = "requests"
    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'completed')", name="ck_requests_status"),
        db.CheckConstraint("quantity > 0", name="ck_requests_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(Quantity, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=REQUEST_STATUS_PENDING, index=True)

    client_name = db.Column(db.String(120), nullable=True)
    client_phone = db.Column(db.String(32), nullable=True)
    payment_status = db.Column(db.String(16), nullable=True)
    payment_due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    movement_id = db.Column(db.Integer, db.ForeignKey("movements.id"), nullable=True)

    store = db.relationship("Store", backref=db.backref("requests", lazy=True))
    product = db.relationship("Product", backref=db.backref("requests", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "store_name": self.store.name if self.store else None,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": quantity_to_json(self.quantity),
            "status": self.status,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "payment_status": self.payment_status,
            "payment_due_date": to_iso_date(self.payment_due_date),
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "completed_by_user_id": self.completed_by_user_id,
            "movement_id": self.movement_id,
        }


class Shipment(db.Model):
    """
    Inter-store shipment of a product identified by name.

    LIFECYCLE: pending -> sent -> received. Receipt credits the destination
    store's product with the same name (created if absent).
    """
    __tablename__ = "shipments"
    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'sent', 'received')", name="ck_shipments_status"),
        db.CheckConstraint("quantity > 0", name="ck_shipments_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(Quantity, nullable=False)
    destination_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SHIPMENT_STATUS_PENDING, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    destination_store = db.relationship("Store", backref=db.backref("incoming_shipments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "quantity": quantity_to_json(self.quantity),
            "destination_store_id": self.destination_store_id,
            "store_name": self.destination_store.name if self.destination_store else None,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "received_at": to_utc_z(self.received_at) if self.received_at else None,
        }
