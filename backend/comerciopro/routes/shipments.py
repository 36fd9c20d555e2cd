# Overview: Flask API routes for inter-store shipments; parses input and returns JSON responses.

from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_role
from ..models import Shipment
from ..models.auth import ROLE_SUPERADMIN
from ..services import shipment_service
from ..services.concurrency import PersistenceError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_shipment,
    ValidationError,
    ConflictError,
    NotFoundError,
)

SHIPMENT_POLICY = ModelValidationPolicy(
    writable_fields={"product_name", "quantity", "destination_store_id"},
    required_on_create={"product_name", "quantity", "destination_store_id"},
)

shipments_bp = Blueprint("shipments", __name__, url_prefix="/api/shipments")


@shipments_bp.get("")
@require_auth
def list_shipments_route():
    status = request.args.get("status") or None
    items = shipment_service.list_shipments(g.current_user, status=status)
    return {"items": [s.to_dict() for s in items], "count": len(items)}


@shipments_bp.post("")
@require_auth
@require_role(ROLE_SUPERADMIN)
def create_shipment_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Shipment, payload=payload, policy=SHIPMENT_POLICY, partial=False)
        enforce_rules_shipment(patch)
        shipment = shipment_service.create_shipment(patch=patch, user=g.current_user)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except PersistenceError:
        return {"error": "Database error"}, 500

    return shipment.to_dict(), 201


@shipments_bp.route("/<int:shipment_id>/status", methods=["PUT", "PATCH"])
@require_auth
@require_role(ROLE_SUPERADMIN)
def update_shipment_status_route(shipment_id: int):
    """
    Body: {"status": "sent" | "received"}

    Receiving credits the destination store's product of the same name,
    creating it when missing.
    """
    data = request.get_json(silent=True) or {}

    try:
        shipment = shipment_service.update_shipment_status(
            shipment_id, (data.get("status") or "").strip(), g.current_user
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except PersistenceError:
        return {"error": "Database error"}, 500
    except Exception:
        current_app.logger.exception("Failed to update shipment status")
        return {"error": "Internal server error"}, 500

    return shipment.to_dict(), 200
