# Overview: Flask API routes for users and the caller's own profile.

"""
User management routes.

- Superadmin only: list, create, reset password, delete (never yourself)
- Any authenticated user: PUT /api/users/me to update their own profile
"""
from flask import Blueprint, request, g, current_app

from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN, ROLE_SUPERADMIN
from ..services import auth_service
from ..validation import ValidationError, ConflictError, NotFoundError

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _optional_int(value, field: str):
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


@users_bp.get("")
@require_auth
@require_role(ROLE_SUPERADMIN)
def list_users_route():
    users = auth_service.list_users()
    return {"items": [u.to_dict() for u in users], "count": len(users)}


@users_bp.post("")
@require_auth
@require_role(ROLE_SUPERADMIN)
def create_user_route():
    data = request.get_json(silent=True) or {}

    try:
        role = data.get("role") or ROLE_ADMIN
        store_id = _optional_int(data.get("store_id"), "store_id")
        if role == ROLE_SUPERADMIN:
            store_id = None
        user = auth_service.create_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            role=role,
            store_id=store_id,
            phone=data.get("phone"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return {"error": "Internal server error"}, 500

    return user.to_dict(), 201


@users_bp.post("/<int:user_id>/reset-password")
@require_auth
@require_role(ROLE_SUPERADMIN)
def reset_password_route(user_id: int):
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.reset_password(user_id, data.get("password"))
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404

    return {"message": "Password updated", "user": user.to_dict()}, 200


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_SUPERADMIN)
def delete_user_route(user_id: int):
    try:
        auth_service.delete_user(user_id, acting_user_id=g.current_user.id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409

    return {"ok": True}, 200


@users_bp.put("/me")
@require_auth
def update_profile_route():
    """
    Update name, email or phone. Changing the password requires
    current_password.
    """
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.update_profile(
            g.current_user.id,
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            password=data.get("password"),
            current_password=data.get("current_password"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return {"error": "Internal server error"}, 500

    return {"user": user.to_dict()}, 200
