# backend/comerciopro/services/products_service.py
"""
Products Service with store scoping

- list_products: admins see their store, superadmins see every store
- create_product: opening stock is posted through the ledger as an `in`
  movement, never written to the counter directly
- update_product: delegates to StockLedger.apply_product_edit
- delete_product: refused once the product has movements or requests
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import Movement, Product, ProductRequest, User
from ..models.inventory import MOVEMENT_IN
from ..quantities import to_quantity
from ..validation import ConflictError
from .concurrency import transaction
from .stock_ledger import MovementMetadata, get_ledger
from .tenant_service import require_product_access, resolve_store_for_write, scoped_store_id

logger = logging.getLogger(__name__)


def list_products(user: User, *, category: str | None = None) -> dict:
    query = db.session.query(Product)

    store_id = scoped_store_id(user)
    if store_id is not None:
        query = query.filter(Product.store_id == store_id)
    if category:
        query = query.filter(Product.category == category)

    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
    }


def create_product(*, patch: dict, user: User, store_id: int | None = None) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        TenantAccessError: store_id outside the caller's scope
        NotFoundError: no store to create the product in
    """
    store = resolve_store_for_write(user, store_id)

    patch = dict(patch)
    initial_stock = to_quantity(patch.pop("stock_quantity", None) or 0)

    ledger = get_ledger()
    with transaction(db.session):
        product = Product(store_id=store.id, stock_quantity=0, **patch)
        if product.unit is None:
            product.unit = "un"
        db.session.add(product)
        db.session.flush()

        if initial_stock > 0:
            ledger.post_movement(
                product_id=product.id,
                type=MOVEMENT_IN,
                quantity=initial_stock,
                actor_id=user.id,
                metadata=MovementMetadata(observation=ledger.settings.initial_stock_label),
            )

    logger.info("Product %s created in store %s by user %s", product.id, store.id, user.id)
    return product


def get_product(product_id: int, user: User) -> Product:
    return require_product_access(user, product_id)


def update_product(*, product_id: int, patch: dict, user: User) -> Product:
    require_product_access(user, product_id)
    product, _movement = get_ledger().apply_product_edit(
        product_id=product_id,
        changes=patch,
        actor_id=user.id,
    )
    return product


def delete_product(*, product_id: int, user: User) -> None:
    product = require_product_access(user, product_id)

    has_movements = db.session.query(Movement.id).filter(Movement.product_id == product.id).first()
    if has_movements is not None:
        raise ConflictError("Product has stock movements and cannot be deleted")

    has_requests = db.session.query(ProductRequest.id).filter(ProductRequest.product_id == product.id).first()
    if has_requests is not None:
        raise ConflictError("Product has client requests and cannot be deleted")

    with transaction(db.session):
        db.session.delete(product)

    logger.info("Product %s deleted by user %s", product_id, user.id)
