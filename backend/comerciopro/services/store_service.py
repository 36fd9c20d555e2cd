from __future__ import annotations

from ..extensions import db
from ..models import Store
from ..validation import ValidationError


def create_store(name: str, location: str | None = None) -> Store:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Store name is required")

    store = Store(name=name, location=(location or "").strip() or None)
    db.session.add(store)
    db.session.commit()
    return store


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.name.asc(), Store.id.asc()).all()
