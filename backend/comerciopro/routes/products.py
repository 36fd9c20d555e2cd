# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/comerciopro/routes/products.py
"""
Product management routes with store scoping.

Admins act on their own store; superadmins on any store (creation takes an
optional store_id, defaulting to the first store).

Stock is never written directly: a stock_quantity on create becomes an
"Initial stock" movement, and on update a manual adjustment movement.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth
from ..models import Product
from ..quantities import quantity_to_json
from ..services import products_service
from ..services.concurrency import PersistenceError
from ..services.stock_ledger import InsufficientStockError
from ..services.tenant_service import TenantAccessError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
    NotFoundError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "weight", "unit", "stock_quantity", "image"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _parse_store_id(payload: dict):
    store_id = payload.pop("store_id", None)
    if store_id in (None, ""):
        return None
    if isinstance(store_id, bool):
        raise ValidationError("store_id must be an integer")
    try:
        return int(store_id)
    except (TypeError, ValueError):
        raise ValidationError("store_id must be an integer")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products.

    Query params:
    - category: str (optional) - exact category filter
    """
    category = request.args.get("category")
    return products_service.list_products(g.current_user, category=category)


@products_bp.post("")
@require_auth
def create_product_route():
    payload = dict(request.get_json(silent=True) or {})

    try:
        store_id = _parse_store_id(payload)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = products_service.create_product(patch=patch, user=g.current_user, store_id=store_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except TenantAccessError:
        return {"error": "Store not found"}, 404
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except PersistenceError:
        return {"error": "Database error"}, 500
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id, g.current_user)
    except NotFoundError:
        return {"error": "Product not found"}, 404
    return product.to_dict(), 200


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    """
    Update a product.

    A changed stock_quantity is recorded as an in/out movement labelled as a
    manual adjustment.
    """
    payload = dict(request.get_json(silent=True) or {})
    payload.pop("store_id", None)

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = products_service.update_product(product_id=product_id, patch=patch, user=g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except InsufficientStockError as e:
        return {"error": str(e), "available": quantity_to_json(e.available)}, 409
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        return {"error": "Database error"}, 500
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return product.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id=product_id, user=g.current_user)
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        return {"error": "Database error"}, 500

    return {"ok": True}, 200
