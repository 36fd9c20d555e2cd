# Overview: Service-layer operations for users and passwords; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every movement must be attributable to a user. Passwords are hashed
with bcrypt; users are created by a superadmin (or the CLI), never by
self-registration.

ROLES:
- admin: bound to one store (store_id required)
- superadmin: chain-wide (store_id must be empty)
"""

import bcrypt
from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Movement, ProductRequest, Shipment, Store, User
from ..models.auth import ROLE_ADMIN, ROLE_SUPERADMIN, USER_ROLES
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import session_service

DEFAULT_PASSWORD_MIN_LENGTH = 6
DEFAULT_BCRYPT_ROUNDS = 12


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def _password_min_length() -> int:
    if has_app_context():
        return int(current_app.config.get("PASSWORD_MIN_LENGTH", DEFAULT_PASSWORD_MIN_LENGTH))
    return DEFAULT_PASSWORD_MIN_LENGTH


def validate_password_strength(password: str | None) -> None:
    min_length = _password_min_length()
    if not password or len(password) < min_length:
        raise PasswordValidationError(f"Password must be at least {min_length} characters long")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for length before hashing.
    """
    validate_password_strength(password)
    rounds = DEFAULT_BCRYPT_ROUNDS
    if has_app_context():
        rounds = int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _normalize_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")
    return email


def _check_role_and_store(role: str, store_id: int | None) -> None:
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    if role == ROLE_ADMIN:
        if store_id is None:
            raise ValidationError("Store admins must be assigned to a store")
        if db.session.get(Store, store_id) is None:
            raise NotFoundError("Store not found")
    if role == ROLE_SUPERADMIN and store_id is not None:
        raise ValidationError("Superadmins cannot be assigned to a store")


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = ROLE_ADMIN,
    store_id: int | None = None,
    phone: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError / PasswordValidationError: bad input
        NotFoundError: store_id does not exist
        ConflictError: email already registered
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    email = _normalize_email(email)
    _check_role_and_store(role, store_id)

    existing = db.session.query(User).filter(User.email == email).first()
    if existing:
        raise ConflictError("Email already registered")

    password_hash = hash_password(password)

    user = User(
        name=name,
        email=email,
        password_hash=password_hash,
        role=role,
        store_id=store_id,
        phone=(phone or "").strip() or None,
    )

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already registered")
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate user with email and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    if not email or not password:
        return None

    user = db.session.query(User).filter(User.email == email.strip().lower()).first()
    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc(), User.id.asc()).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def reset_password(user_id: int, new_password: str) -> User:
    """
    Set a new password (superadmin action) and revoke the user's sessions.
    """
    user = get_user(user_id)
    user.password_hash = hash_password(new_password)
    session_service.revoke_all_user_sessions(user.id, reason="Password reset", commit=False)
    db.session.commit()
    return user


def delete_user(user_id: int, acting_user_id: int) -> None:
    """
    Delete a user account.

    A user cannot delete themselves. Users who recorded movements are kept
    because movements reference their author and are never deleted.
    """
    if user_id == acting_user_id:
        raise ConflictError("You cannot delete your own account")

    user = get_user(user_id)

    if db.session.query(Movement.id).filter(Movement.user_id == user.id).first() is not None:
        raise ConflictError("User has recorded stock movements and cannot be deleted")

    referenced = (
        db.session.query(Shipment.id).filter(Shipment.created_by_user_id == user.id).first()
        or db.session.query(ProductRequest.id).filter(ProductRequest.completed_by_user_id == user.id).first()
    )
    if referenced is not None:
        raise ConflictError("User is referenced by shipments or requests and cannot be deleted")

    db.session.delete(user)
    db.session.commit()


def update_profile(
    user_id: int,
    *,
    name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    password: str | None = None,
    current_password: str | None = None,
) -> User:
    """
    Self-service profile update.

    Changing the password requires the current password.
    """
    user = get_user(user_id)

    if password:
        if not current_password or not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")
        user.password_hash = hash_password(password)

    if name is not None and name.strip():
        user.name = name.strip()

    if email is not None and email.strip():
        email = _normalize_email(email)
        if email != user.email:
            taken = db.session.query(User).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise ConflictError("Email already registered")
            user.email = email

    if phone is not None:
        user.phone = phone.strip() or None

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already registered")
    return user
