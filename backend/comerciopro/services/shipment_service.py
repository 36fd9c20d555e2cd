# backend/comerciopro/services/shipment_service.py
"""
Inter-store shipment service.

LIFECYCLE (forward only, one step at a time):
1. pending: created with a free-text product name and a destination store
2. sent: goods left the warehouse (no stock effect)
3. received: goods arrived; the destination store's product with the same
   name is credited through the stock ledger, created first if absent

A shipment references its product by name only (soft link); the lookup on
receipt is an exact name match inside the destination store.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Product, Shipment, User
from ..models.documents import (
    SHIPMENT_STATUS_PENDING,
    SHIPMENT_STATUS_RECEIVED,
    SHIPMENT_STATUS_SENT,
)
from ..models.inventory import MOVEMENT_IN
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, transaction
from .stock_ledger import MovementMetadata, get_ledger
from .tenant_service import require_store, scoped_store_id

logger = logging.getLogger(__name__)

SHIPMENT_STATUSES = (SHIPMENT_STATUS_PENDING, SHIPMENT_STATUS_SENT, SHIPMENT_STATUS_RECEIVED)

NEXT_STATUS = {
    SHIPMENT_STATUS_PENDING: SHIPMENT_STATUS_SENT,
    SHIPMENT_STATUS_SENT: SHIPMENT_STATUS_RECEIVED,
}

PLACEHOLDER_CATEGORY = "Uncategorized"
PLACEHOLDER_UNIT = "un"


def create_shipment(*, patch: dict, user: User) -> Shipment:
    store = require_store(patch["destination_store_id"])

    shipment = Shipment(
        product_name=patch["product_name"],
        quantity=patch["quantity"],
        destination_store_id=store.id,
        status=SHIPMENT_STATUS_PENDING,
        created_by_user_id=user.id,
    )

    with transaction(db.session):
        db.session.add(shipment)

    logger.info("Shipment %s created to store %s by user %s", shipment.id, store.id, user.id)
    return shipment


def list_shipments(user: User, *, status: str | None = None) -> list[Shipment]:
    """Superadmins see every shipment, store admins their incoming ones."""
    query = db.session.query(Shipment)

    store_id = scoped_store_id(user)
    if store_id is not None:
        query = query.filter(Shipment.destination_store_id == store_id)
    if status:
        query = query.filter(Shipment.status == status)

    return query.order_by(Shipment.created_at.desc(), Shipment.id.desc()).all()


def find_or_create_destination_product(shipment: Shipment) -> tuple[Product, bool]:
    """
    Soft link: product with exactly the shipment's name in the destination
    store. Returns (product, created).
    """
    product = (
        db.session.query(Product)
        .filter(
            Product.store_id == shipment.destination_store_id,
            Product.name == shipment.product_name,
        )
        .order_by(Product.id.asc())
        .first()
    )
    if product is not None:
        return product, False

    product = Product(
        store_id=shipment.destination_store_id,
        name=shipment.product_name,
        category=PLACEHOLDER_CATEGORY,
        unit=PLACEHOLDER_UNIT,
        weight=0,
        stock_quantity=0,
    )
    db.session.add(product)
    db.session.flush()
    return product, True


def update_shipment_status(shipment_id: int, new_status: str, user: User) -> Shipment:
    """
    Advance a shipment one step.

    Raises:
        ValidationError: unknown status
        NotFoundError: shipment missing
        ConflictError: transition is not the next forward step
    """
    if new_status not in SHIPMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SHIPMENT_STATUSES)}")

    ledger = get_ledger()

    with transaction(db.session):
        shipment = lock_for_update(db.session.query(Shipment).filter_by(id=shipment_id)).first()
        if not shipment:
            raise NotFoundError("Shipment not found")

        expected = NEXT_STATUS.get(shipment.status)
        if new_status != expected:
            raise ConflictError(
                f"Cannot change shipment status from {shipment.status} to {new_status}"
            )

        now = utcnow()
        shipment.status = new_status

        if new_status == SHIPMENT_STATUS_SENT:
            shipment.sent_at = now
        else:
            shipment.received_at = now
            product, created = find_or_create_destination_product(shipment)
            ledger.post_movement(
                product_id=product.id,
                type=MOVEMENT_IN,
                quantity=shipment.quantity,
                actor_id=user.id,
                metadata=MovementMetadata(observation=f"Shipment #{shipment.id} received"),
            )
            if created:
                logger.info(
                    "Shipment %s created product %s in store %s",
                    shipment.id, product.id, shipment.destination_store_id,
                )

    logger.info("Shipment %s moved to %s by user %s", shipment_id, new_status, user.id)
    return shipment
