from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .quantities import to_quantity
from .time_utils import parse_iso_date, parse_iso_datetime


# Upper bound for any stock quantity or reference weight
MAX_QUANTITY = Decimal("9999999999")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""


class NotFoundError(LookupError):
    """404-level: a referenced row does not exist (or is outside the caller's store)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Quantities and weights may be fractional
    from .models.inventory import ScaledQuantity

    if isinstance(coltype, ScaledQuantity):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, str) and not value.strip():
            raise ValidationError(f"{col.key} must be a number")
        try:
            return to_quantity(value.strip() if isinstance(value, str) else value)
        except ValueError:
            raise ValidationError(f"{col.key} must be a number")

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except Exception:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Dates ("YYYY-MM-DD"); an empty string means "no date"
    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            if not value.strip():
                return None
            try:
                return parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date (YYYY-MM-DD)")
        raise ValidationError(f"{col.key} must be a date")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    Payload keys outside writable_fields are rejected, so callers pop
    non-column keys (e.g. store_id chosen by the route) before validating.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if val is None and not col.nullable:
            raise ValidationError(f"{k} cannot be null")

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _require_positive(patch: dict, field: str) -> None:
    value = patch.get(field)
    if value is None:
        raise ValidationError(f"{field} is required")
    if value <= 0:
        raise ValidationError(f"{field} must be > 0")
    if value > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")


def _require_choice(patch: dict, field: str, choices, *, optional: bool = True) -> None:
    value = patch.get(field)
    if value in (None, "") and optional:
        patch[field] = None
        return
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    from .models.inventory import PRODUCT_UNITS

    if "stock_quantity" in patch and patch["stock_quantity"] is not None:
        stock = patch["stock_quantity"]
        if stock < 0:
            raise ValidationError("stock_quantity must be >= 0")
        if stock > MAX_QUANTITY:
            raise ValidationError(f"stock_quantity cannot exceed {MAX_QUANTITY}")

    if "weight" in patch and patch["weight"] is not None:
        if patch["weight"] < 0:
            raise ValidationError("weight must be >= 0")

    if "unit" in patch:
        _require_choice(patch, "unit", PRODUCT_UNITS)


def enforce_rules_movement(patch: dict, *, require_quantity: bool = True) -> None:
    """
    require_quantity=False is for weighed sales, whose quantity is derived
    later from the product.
    """
    from .models.inventory import MOVEMENT_TYPES, PAYMENT_STATUSES

    _require_choice(patch, "type", MOVEMENT_TYPES, optional=False)
    if require_quantity:
        _require_positive(patch, "quantity")
    _require_choice(patch, "payment_status", PAYMENT_STATUSES)


def enforce_rules_request(patch: dict) -> None:
    from .models.inventory import PAYMENT_STATUSES

    _require_positive(patch, "quantity")
    _require_choice(patch, "payment_status", PAYMENT_STATUSES)


def enforce_rules_shipment(patch: dict) -> None:
    _require_positive(patch, "quantity")


def enforce_rules_production(payload: dict) -> dict:
    """
    Production takes four required inputs: source and target product ids,
    quantity produced and quantity consumed.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = ("source_product_id", "target_product_id", "quantity_produced", "quantity_consumed")
    missing = [f for f in required if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned: dict = {}
    for field in ("source_product_id", "target_product_id"):
        value = payload[field]
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValidationError(f"{field} must be an integer")
        try:
            cleaned[field] = int(value)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")

    for field in ("quantity_produced", "quantity_consumed"):
        try:
            cleaned[field] = to_quantity(payload[field])
        except ValueError:
            raise ValidationError(f"{field} must be a number")
        _require_positive(cleaned, field)

    if cleaned["source_product_id"] == cleaned["target_product_id"]:
        raise ValidationError("source and target products must differ")

    return cleaned
