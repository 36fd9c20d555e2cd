# backend/comerciopro/services/request_service.py
"""
Client request service.

WHY: A client asks a store for a product; the request stays pending until
the goods are handed over.

LIFECYCLE:
1. pending: created (by a superadmin) for a product of the store
2. completed: goods handed over. Completion posts an `out` movement for the
   requested quantity through the stock ledger, carrying the request's
   client and payment data, in the same transaction as the status change.
   Insufficient stock blocks completion.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Product, ProductRequest, User
from ..models.documents import REQUEST_STATUS_COMPLETED, REQUEST_STATUS_PENDING
from ..models.inventory import MOVEMENT_OUT
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, transaction
from .stock_ledger import MovementMetadata, get_ledger
from .tenant_service import TenantAccessError, require_store, scoped_store_id

logger = logging.getLogger(__name__)


def create_request(*, patch: dict, store_id: int, user: User) -> ProductRequest:
    """
    Create a pending request.

    Raises:
        NotFoundError: store or product does not exist
        ValidationError: product belongs to another store
    """
    store = require_store(store_id)

    product = db.session.get(Product, patch["product_id"])
    if not product:
        raise NotFoundError(f"Product {patch['product_id']} not found")
    if product.store_id != store.id:
        raise ValidationError("Product does not belong to the selected store")

    req = ProductRequest(
        store_id=store.id,
        product_id=product.id,
        quantity=patch["quantity"],
        status=REQUEST_STATUS_PENDING,
        client_name=patch.get("client_name") or None,
        client_phone=patch.get("client_phone") or None,
        payment_status=patch.get("payment_status"),
        payment_due_date=patch.get("payment_due_date"),
    )

    with transaction(db.session):
        db.session.add(req)

    logger.info("Request %s created for store %s by user %s", req.id, store.id, user.id)
    return req


def list_requests(user: User, *, status: str | None = None) -> list[ProductRequest]:
    query = db.session.query(ProductRequest)

    store_id = scoped_store_id(user)
    if store_id is not None:
        query = query.filter(ProductRequest.store_id == store_id)
    if status:
        query = query.filter(ProductRequest.status == status)

    return query.order_by(ProductRequest.created_at.desc(), ProductRequest.id.desc()).all()


def complete_request(request_id: int, user: User) -> ProductRequest:
    """
    Complete a pending request and debit the stock.

    Raises:
        NotFoundError / TenantAccessError: request missing or outside scope
        ConflictError: request already completed
        InsufficientStockError: not enough stock to hand over
    """
    ledger = get_ledger()

    with transaction(db.session):
        req = lock_for_update(db.session.query(ProductRequest).filter_by(id=request_id)).first()
        if not req:
            raise NotFoundError("Request not found")
        if not user.is_superadmin and req.store_id != user.store_id:
            raise TenantAccessError("Request not found")
        if req.status == REQUEST_STATUS_COMPLETED:
            raise ConflictError("Request is already completed")

        entry = ledger.post_movement(
            product_id=req.product_id,
            type=MOVEMENT_OUT,
            quantity=req.quantity,
            actor_id=user.id,
            metadata=MovementMetadata(
                observation=f"Request #{req.id} completed",
                client_name=req.client_name,
                client_contact=req.client_phone,
                payment_status=req.payment_status,
                payment_due_date=req.payment_due_date,
            ),
        )

        req.status = REQUEST_STATUS_COMPLETED
        req.completed_at = utcnow()
        req.completed_by_user_id = user.id
        req.movement_id = entry.movement.id

    logger.info("Request %s completed by user %s (movement %s)", request_id, user.id, req.movement_id)
    return req
