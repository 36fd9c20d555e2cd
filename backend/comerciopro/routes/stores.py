# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_SUPERADMIN
from ..services import store_service
from ..validation import ValidationError

stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
@require_auth
def list_stores_route():
    stores = store_service.list_stores()
    return {"items": [s.to_dict() for s in stores], "count": len(stores)}


@stores_bp.post("")
@require_auth
@require_role(ROLE_SUPERADMIN)
def create_store_route():
    data = request.get_json(silent=True) or {}
    try:
        store = store_service.create_store(data.get("name"), data.get("location"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return store.to_dict(), 201
