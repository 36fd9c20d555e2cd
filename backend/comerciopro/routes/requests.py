# Overview: Flask API routes for client requests; parses input and returns JSON responses.

"""
Client request routes.

- GET  /api/requests: admins see their store, superadmins every store
- POST /api/requests: superadmin creates a pending request for a store
- POST /api/requests/<id>/complete: hands the goods over (out movement)
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_role
from ..models import ProductRequest
from ..models.auth import ROLE_SUPERADMIN
from ..quantities import quantity_to_json
from ..services import request_service
from ..services.concurrency import PersistenceError
from ..services.stock_ledger import InsufficientStockError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_request,
    ValidationError,
    ConflictError,
    NotFoundError,
)

REQUEST_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "quantity",
        "client_name",
        "client_phone",
        "payment_status",
        "payment_due_date",
    },
    required_on_create={"product_id", "quantity"},
)

requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


@requests_bp.get("")
@require_auth
def list_requests_route():
    status = request.args.get("status") or None
    items = request_service.list_requests(g.current_user, status=status)
    return {"items": [r.to_dict() for r in items], "count": len(items)}


@requests_bp.post("")
@require_auth
@require_role(ROLE_SUPERADMIN)
def create_request_route():
    payload = dict(request.get_json(silent=True) or {})
    store_id = payload.pop("store_id", None)

    try:
        if store_id in (None, "") or isinstance(store_id, bool):
            raise ValidationError("store_id is required")
        try:
            store_id = int(store_id)
        except (TypeError, ValueError):
            raise ValidationError("store_id must be an integer")
        patch = validate_payload(model=ProductRequest, payload=payload, policy=REQUEST_POLICY, partial=False)
        enforce_rules_request(patch)
        req = request_service.create_request(patch=patch, store_id=store_id, user=g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except PersistenceError:
        return {"error": "Database error"}, 500

    return req.to_dict(), 201


@requests_bp.post("/<int:request_id>/complete")
@require_auth
def complete_request_route(request_id: int):
    try:
        req = request_service.complete_request(request_id, g.current_user)
    except NotFoundError:
        return {"error": "Request not found"}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InsufficientStockError as e:
        return {"error": str(e), "available": quantity_to_json(e.available)}, 409
    except PersistenceError:
        return {"error": "Database error"}, 500
    except Exception:
        current_app.logger.exception("Failed to complete request")
        return {"error": "Internal server error"}, 500

    return req.to_dict(), 200
