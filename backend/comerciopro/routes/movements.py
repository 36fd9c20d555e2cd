# Overview: Flask API routes for stock movements; parses input and returns JSON responses.

# backend/comerciopro/routes/movements.py
"""
Stock movement routes.

- POST /api/movements: single in/out movement. An `out` movement may give
  sale_weight + sale_unit instead of quantity; the quantity is then the
  weight as a fraction of the product's reference weight.
- POST /api/movements/production: consume one product to produce another.
- GET  /api/movements: newest first, scoped to the caller's store.
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth
from ..models import Movement
from ..quantities import quantity_to_json
from ..services import movement_service
from ..services.concurrency import PersistenceError
from ..services.stock_ledger import InsufficientStockError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_production,
    ValidationError,
    ConflictError,
    NotFoundError,
)

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "type",
        "quantity",
        "observation",
        "client_name",
        "client_contact",
        "payment_status",
        "payment_due_date",
    },
    required_on_create={"product_id", "type"},
)

movements_bp = Blueprint("movements", __name__, url_prefix="/api/movements")


def _insufficient_stock(e: InsufficientStockError):
    return {
        "error": str(e),
        "product_id": e.product_id,
        "available": quantity_to_json(e.available),
        "requested": quantity_to_json(e.requested),
    }, 409


@movements_bp.get("")
@require_auth
def list_movements_route():
    """
    Query params:
    - product_id: int (optional)
    - type: "in" | "out" (optional)
    - limit: int (optional, default 100, max 500)
    """
    product_id = request.args.get("product_id", type=int)
    movement_type = request.args.get("type") or None
    limit = request.args.get("limit", type=int)

    try:
        movements = movement_service.list_movements(
            g.current_user,
            product_id=product_id,
            movement_type=movement_type,
            limit=limit,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError:
        return {"error": "Product not found"}, 404

    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@movements_bp.post("")
@require_auth
def record_movement_route():
    payload = dict(request.get_json(silent=True) or {})
    sale_weight = payload.pop("sale_weight", None)
    sale_unit = payload.pop("sale_unit", None)

    try:
        patch = validate_payload(model=Movement, payload=payload, policy=MOVEMENT_POLICY, partial=False)
        entry = movement_service.record_stock_movement(
            user=g.current_user,
            patch=patch,
            sale_weight=sale_weight,
            sale_unit=sale_unit,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except InsufficientStockError as e:
        return _insufficient_stock(e)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        return {"error": "Database error"}, 500
    except Exception:
        current_app.logger.exception("Failed to record movement")
        return {"error": "Internal server error"}, 500

    return {
        "movement": entry.movement.to_dict(),
        "new_quantity": quantity_to_json(entry.new_quantity),
    }, 201


@movements_bp.post("/production")
@require_auth
def record_production_route():
    """
    Body: source_product_id, target_product_id, quantity_produced,
    quantity_consumed (all required).
    """
    payload = request.get_json(silent=True) or {}

    try:
        cleaned = enforce_rules_production(payload)
        result = movement_service.record_production(user=g.current_user, cleaned=cleaned)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except InsufficientStockError as e:
        return _insufficient_stock(e)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        return {"error": "Database error"}, 500
    except Exception:
        current_app.logger.exception("Failed to record production")
        return {"error": "Internal server error"}, 500

    return {
        "source_movement": result.source_movement.to_dict(),
        "target_movement": result.target_movement.to_dict(),
        "source_quantity": quantity_to_json(result.source_quantity),
        "target_quantity": quantity_to_json(result.target_quantity),
    }, 201
