# Overview: Caller-side movement operations: store scoping, weighed sales and listing.

from __future__ import annotations

from ..extensions import db
from ..models import Movement, Product, User
from ..models.inventory import MOVEMENT_OUT, MOVEMENT_TYPES
from ..validation import ValidationError, enforce_rules_movement
from .stock_ledger import LedgerEntry, MovementMetadata, ProductionResult, get_ledger
from .tenant_service import require_product_access, scoped_store_id
from .weight_service import derive_fractional_quantity

DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


def record_stock_movement(
    *,
    user: User,
    patch: dict,
    sale_weight=None,
    sale_unit: str | None = None,
) -> LedgerEntry:
    """
    Record an in/out movement for a product in the caller's scope.

    When sale_weight is given the movement must be `out` and its quantity is
    derived from the product's reference weight (fractional sale).
    """
    product_id = patch.get("product_id")
    if product_id is None:
        raise ValidationError("product_id is required")

    weighed = sale_weight not in (None, "")
    if weighed and patch.get("quantity") is not None:
        raise ValidationError("Send either quantity or sale_weight, not both")

    enforce_rules_movement(patch, require_quantity=not weighed)
    if weighed and patch["type"] != MOVEMENT_OUT:
        raise ValidationError("sale_weight is only allowed on out movements")

    product = require_product_access(user, product_id)

    if weighed:
        patch["quantity"] = derive_fractional_quantity(
            sale_weight, sale_unit or "g", product.weight, product.unit
        )

    metadata = MovementMetadata(
        observation=patch.get("observation") or None,
        client_name=patch.get("client_name") or None,
        client_contact=patch.get("client_contact") or None,
        payment_status=patch.get("payment_status"),
        payment_due_date=patch.get("payment_due_date"),
    )

    return get_ledger().record_movement(
        product_id=product.id,
        type=patch["type"],
        quantity=patch["quantity"],
        actor_id=user.id,
        metadata=metadata,
    )


def record_production(*, user: User, cleaned: dict) -> ProductionResult:
    """cleaned comes from validation.enforce_rules_production."""
    source = require_product_access(user, cleaned["source_product_id"])
    target = require_product_access(user, cleaned["target_product_id"])

    return get_ledger().record_production(
        source_product_id=source.id,
        target_product_id=target.id,
        quantity_produced=cleaned["quantity_produced"],
        quantity_consumed=cleaned["quantity_consumed"],
        actor_id=user.id,
    )


def list_movements(
    user: User,
    *,
    product_id: int | None = None,
    movement_type: str | None = None,
    limit: int | None = None,
) -> list[Movement]:
    """Movements in the caller's scope, newest first."""
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")

    limit = min(limit or DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)
    if limit < 1:
        raise ValidationError("limit must be >= 1")

    query = db.session.query(Movement).join(Product, Product.id == Movement.product_id)

    store_id = scoped_store_id(user)
    if store_id is not None:
        query = query.filter(Product.store_id == store_id)
    if product_id is not None:
        require_product_access(user, product_id)
        query = query.filter(Movement.product_id == product_id)
    if movement_type is not None:
        query = query.filter(Movement.type == movement_type)

    return query.order_by(Movement.timestamp.desc(), Movement.id.desc()).limit(limit).all()
