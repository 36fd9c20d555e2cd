# Overview: Stock ledger; every stock change goes through here together with its Movement row.

"""
ComercioPro Stock Ledger Invariants (authoritative)

Stock model:
- Product.stock_quantity is a stored counter, never written outside this module.
- Every change to the counter appends exactly one Movement row in the same
  DB transaction (production appends two: one per product).
- Movements are append-only; SUM(in) - SUM(out) per product equals the
  counter (see movement_balance / flask ledger verify).

Business invariants:
- stock_quantity >= 0 after every committed operation.
- Outbound quantities are checked against committed stock while the product
  row is locked, and the debit itself is a conditional UPDATE
  (... WHERE stock_quantity >= :qty). Zero affected rows means another
  transaction got there first and the operation fails with
  InsufficientStockError instead of going negative.
- Quantities are Decimals with 4 places (fractional sales).

Transactions:
- record_movement / record_production / apply_product_edit own their
  transaction (commit on success, rollback on any error).
- post_movement / post_product_edit are the inner steps without commit, used
  by other services that need the ledger write inside their own transaction
  (shipment receipt, request completion, product creation).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import case, func, update

from ..models import Movement, Product
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_TYPES, PAYMENT_STATUSES
from ..quantities import to_quantity
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update, transaction

logger = logging.getLogger(__name__)

EDITABLE_PRODUCT_FIELDS = {"name", "description", "category", "weight", "unit", "image"}


class InsufficientStockError(Exception):
    """Raised when an outbound quantity exceeds the product's current stock."""

    def __init__(self, product_id: int, available: Decimal, requested: Decimal):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id}. "
            f"Available: {available}, requested: {requested}"
        )


@dataclass(frozen=True)
class LedgerSettings:
    manual_adjustment_label: str = "Manual adjustment on product edit"
    initial_stock_label: str = "Initial stock"

    @classmethod
    def from_config(cls, config) -> "LedgerSettings":
        return cls(
            manual_adjustment_label=config.get("MANUAL_ADJUSTMENT_LABEL", cls.manual_adjustment_label),
        )


@dataclass(frozen=True)
class MovementMetadata:
    """Optional free text and sale/payment details carried by a Movement."""
    observation: str | None = None
    client_name: str | None = None
    client_contact: str | None = None
    payment_status: str | None = None
    payment_due_date: date | None = None


@dataclass(frozen=True)
class LedgerEntry:
    movement: Movement
    new_quantity: Decimal


@dataclass(frozen=True)
class ProductionResult:
    source_movement: Movement
    target_movement: Movement
    source_quantity: Decimal
    target_quantity: Decimal


def _check_quantity(quantity, field: str = "quantity") -> Decimal:
    try:
        qty = to_quantity(quantity)
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if qty <= 0:
        raise ValidationError(f"{field} must be > 0")
    return qty


def _check_type(movement_type: str) -> str:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")
    return movement_type


class StockLedger:
    """
    Applies stock deltas and appends the matching Movement rows.

    The session is injected (the Flask app passes db.session) so the ledger
    has no ambient state of its own.
    """

    def __init__(self, session, settings: LedgerSettings | None = None):
        self.session = session
        self.settings = settings or LedgerSettings()

    # ------------------------------------------------------------------
    # Public operations (own their transaction)
    # ------------------------------------------------------------------

    def record_movement(
        self,
        *,
        product_id: int,
        type: str,
        quantity,
        actor_id: int,
        metadata: MovementMetadata | None = None,
    ) -> LedgerEntry:
        """
        Record a single in/out movement and return the product's new stock.

        Raises:
            ValidationError: bad type/quantity/payment status (before any DB access)
            NotFoundError: product does not exist
            InsufficientStockError: outbound quantity exceeds stock
            PersistenceError: the transaction failed and was rolled back
        """
        _check_type(type)
        qty = _check_quantity(quantity)
        self._check_metadata(metadata)

        with transaction(self.session):
            entry = self.post_movement(
                product_id=product_id,
                type=type,
                quantity=qty,
                actor_id=actor_id,
                metadata=metadata,
            )

        logger.info(
            "Movement %s recorded: product=%s type=%s quantity=%s stock=%s actor=%s",
            entry.movement.id, product_id, type, qty, entry.new_quantity, actor_id,
        )
        return entry

    def record_production(
        self,
        *,
        source_product_id: int,
        target_product_id: int,
        quantity_produced,
        quantity_consumed,
        actor_id: int,
    ) -> ProductionResult:
        """
        Convert stock of one product into another (bulk -> retail portions).

        Debits `quantity_consumed` from the source and credits
        `quantity_produced` to the target. The ratio between the two is the
        caller's business; only non-negative source stock is enforced.
        """
        if source_product_id is None or target_product_id is None:
            raise ValidationError("source_product_id and target_product_id are required")
        if source_product_id == target_product_id:
            raise ValidationError("source and target products must differ")
        produced = _check_quantity(quantity_produced, "quantity_produced")
        consumed = _check_quantity(quantity_consumed, "quantity_consumed")

        with transaction(self.session):
            # Lock in id order so two opposite productions cannot deadlock
            for pid in sorted((source_product_id, target_product_id)):
                self._get_product(pid, lock=True)

            out_entry = self.post_movement(
                product_id=source_product_id,
                type=MOVEMENT_OUT,
                quantity=consumed,
                actor_id=actor_id,
                metadata=MovementMetadata(
                    observation=f"Production: consumed to produce product #{target_product_id}",
                ),
            )
            in_entry = self.post_movement(
                product_id=target_product_id,
                type=MOVEMENT_IN,
                quantity=produced,
                actor_id=actor_id,
                metadata=MovementMetadata(
                    observation=f"Production: produced from product #{source_product_id}",
                ),
            )

        logger.info(
            "Production recorded: source=%s consumed=%s target=%s produced=%s actor=%s",
            source_product_id, consumed, target_product_id, produced, actor_id,
        )
        return ProductionResult(
            source_movement=out_entry.movement,
            target_movement=in_entry.movement,
            source_quantity=out_entry.new_quantity,
            target_quantity=in_entry.new_quantity,
        )

    def apply_product_edit(self, *, product_id: int, changes: dict, actor_id: int) -> tuple[Product, Movement | None]:
        """
        Update a product's editable fields; a changed stock_quantity becomes
        an implicit movement labelled as a manual adjustment.

        Returns (product, movement) where movement is None when the stock
        did not change.
        """
        with transaction(self.session):
            product, movement = self.post_product_edit(
                product_id=product_id,
                changes=changes,
                actor_id=actor_id,
            )

        if movement is not None:
            logger.info(
                "Manual stock adjustment on product %s: %s %s by user %s",
                product_id, movement.type, movement.quantity, actor_id,
            )
        return product, movement

    # ------------------------------------------------------------------
    # Inner steps (no commit)
    # ------------------------------------------------------------------

    def post_movement(
        self,
        *,
        product_id: int,
        type: str,
        quantity,
        actor_id: int,
        metadata: MovementMetadata | None = None,
    ) -> LedgerEntry:
        """Apply the delta and append the Movement inside the caller's transaction."""
        _check_type(type)
        qty = _check_quantity(quantity)
        metadata = metadata or MovementMetadata()

        new_quantity = self._apply_delta(product_id, type, qty)

        movement = Movement(
            product_id=product_id,
            type=type,
            quantity=qty,
            user_id=actor_id,
            observation=metadata.observation,
            client_name=metadata.client_name,
            client_contact=metadata.client_contact,
            payment_status=metadata.payment_status,
            payment_due_date=metadata.payment_due_date,
        )
        self.session.add(movement)
        self.session.flush()

        return LedgerEntry(movement=movement, new_quantity=new_quantity)

    def post_product_edit(self, *, product_id: int, changes: dict, actor_id: int) -> tuple[Product, Movement | None]:
        changes = dict(changes or {})
        new_stock = changes.pop("stock_quantity", None)

        unknown = set(changes) - EDITABLE_PRODUCT_FIELDS
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        if new_stock is not None:
            try:
                new_stock = to_quantity(new_stock)
            except ValueError:
                raise ValidationError("stock_quantity must be a number")
            if new_stock < 0:
                raise ValidationError("stock_quantity must be >= 0")

        product = self._get_product(product_id, lock=True)

        for key, value in changes.items():
            setattr(product, key, value)
        self.session.flush()

        movement = None
        if new_stock is not None:
            diff = new_stock - to_quantity(product.stock_quantity)
            if diff != 0:
                entry = self.post_movement(
                    product_id=product_id,
                    type=MOVEMENT_IN if diff > 0 else MOVEMENT_OUT,
                    quantity=abs(diff),
                    actor_id=actor_id,
                    metadata=MovementMetadata(observation=self.settings.manual_adjustment_label),
                )
                movement = entry.movement

        return product, movement

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def movement_balance(self, product_id: int) -> Decimal:
        """SUM(in) - SUM(out) over the product's movements."""
        signed = func.sum(
            case(
                (Movement.type == MOVEMENT_IN, Movement.quantity),
                else_=-Movement.quantity,
            )
        )
        total = self.session.query(func.coalesce(signed, 0)).filter(
            Movement.product_id == product_id
        ).scalar()
        return to_quantity(total or 0)

    def find_unreconciled_products(self) -> list[tuple[Product, Decimal]]:
        """Products whose stored stock differs from their movement balance."""
        mismatches = []
        for product in self.session.query(Product).order_by(Product.id.asc()).all():
            balance = self.movement_balance(product.id)
            if balance != to_quantity(product.stock_quantity):
                mismatches.append((product, balance))
        return mismatches

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_product(self, product_id: int, *, lock: bool = False) -> Product:
        query = self.session.query(Product).filter_by(id=product_id)
        if lock:
            query = lock_for_update(query)
        product = query.first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def _apply_delta(self, product_id: int, movement_type: str, quantity: Decimal) -> Decimal:
        product = self._get_product(product_id, lock=True)
        current = to_quantity(product.stock_quantity)

        if movement_type == MOVEMENT_OUT and quantity > current:
            raise InsufficientStockError(product_id, available=current, requested=quantity)

        stmt = update(Product).where(Product.id == product_id)
        if movement_type == MOVEMENT_OUT:
            stmt = stmt.where(Product.stock_quantity >= quantity).values(
                stock_quantity=Product.stock_quantity - quantity,
                version_id=Product.version_id + 1,
            )
        else:
            stmt = stmt.values(
                stock_quantity=Product.stock_quantity + quantity,
                version_id=Product.version_id + 1,
            )

        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        self.session.refresh(product)

        if result.rowcount == 0:
            raise InsufficientStockError(
                product_id,
                available=to_quantity(product.stock_quantity),
                requested=quantity,
            )

        return to_quantity(product.stock_quantity)

    @staticmethod
    def _check_metadata(metadata: MovementMetadata | None) -> None:
        if metadata is None or metadata.payment_status is None:
            return
        if metadata.payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")


def get_ledger() -> StockLedger:
    """Ledger bound to the Flask-SQLAlchemy session and the app's ledger settings."""
    from flask import current_app

    from ..extensions import db

    settings = current_app.extensions.get("stock_ledger_settings")
    if settings is None:
        settings = LedgerSettings.from_config(current_app.config)
    return StockLedger(db.session, settings)
