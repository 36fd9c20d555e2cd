"""
Store Scoping Helpers

WHY: Store admins may only see and change their own store's data; superadmins
see every store. Routes resolve the effective store from the authenticated
context (g.current_user) through these helpers instead of trusting a
store_id sent by the client.

SECURITY INVARIANTS:
1. An admin's store scope is always g.current_user.store_id
2. A store_id from client input is only honoured for superadmins
3. Rows outside the caller's scope are reported as "not found"
"""

from ..extensions import db
from ..models import Product, Store, User
from ..validation import NotFoundError


class TenantAccessError(NotFoundError):
    """Raised when a user reaches for another store's data."""
    pass


def scoped_store_id(user: User) -> int | None:
    """None means "all stores" (superadmin)."""
    if user.is_superadmin:
        return None
    return user.store_id


def require_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFoundError("Store not found")
    return store


def require_store_access(user: User, store_id: int) -> Store:
    """Store must exist and be within the user's scope."""
    store = db.session.get(Store, store_id)
    if not store:
        raise TenantAccessError("Store not found")
    if not user.is_superadmin and user.store_id != store.id:
        raise TenantAccessError("Store not found")  # Don't reveal other stores
    return store


def resolve_store_for_write(user: User, requested_store_id: int | None) -> Store:
    """
    Store a new row should belong to.

    - admin: always their own store (a different requested store is rejected)
    - superadmin: the requested store, or the first store when none is given
    """
    if not user.is_superadmin:
        if requested_store_id is not None and requested_store_id != user.store_id:
            raise TenantAccessError("Store not found")
        return require_store_access(user, user.store_id)

    if requested_store_id is not None:
        return require_store(requested_store_id)

    store = db.session.query(Store).order_by(Store.id.asc()).first()
    if store is None:
        raise NotFoundError("No store available. Create a store first.")
    return store


def require_product_access(user: User, product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    if not user.is_superadmin and product.store_id != user.store_id:
        raise TenantAccessError(f"Product {product_id} not found")
    return product
