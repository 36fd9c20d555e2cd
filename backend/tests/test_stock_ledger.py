# Overview: Pytest coverage for the stock ledger invariants.

"""
Stock Ledger Tests

Every stock change appends exactly one movement in the same transaction,
stock never goes negative, and failures leave both the counter and the
movement table untouched.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text, update
from sqlalchemy.exc import OperationalError

from comerciopro.extensions import db
from comerciopro.models import Movement, Product
from comerciopro.services.concurrency import PersistenceError
from comerciopro.services.stock_ledger import (
    InsufficientStockError,
    LedgerSettings,
    MovementMetadata,
    StockLedger,
    get_ledger,
)
from comerciopro.services.weight_service import derive_fractional_quantity
from comerciopro.validation import NotFoundError, ValidationError

from conftest import fetch_product, movement_count


@pytest.fixture
def ledger(app):
    return StockLedger(db.session, LedgerSettings())


class FailingFlushSession:
    """Session proxy whose flush fails like a lost database connection."""

    def __init__(self, session):
        self._session = session

    def __getattr__(self, name):
        return getattr(self._session, name)

    def flush(self, *args, **kwargs):
        raise OperationalError("INSERT INTO movements", {}, Exception("disk I/O error"))


class TestRecordMovement:
    """record_movement: one counter change, one movement row."""

    def test_inbound_increments_stock_and_appends_one_row(self, ledger, product_a, admin_a):
        before = movement_count(product_a.id)

        entry = ledger.record_movement(
            product_id=product_a.id, type="in", quantity=5, actor_id=admin_a.id
        )

        assert entry.new_quantity == Decimal("15")
        assert fetch_product(product_a.id).stock_quantity == Decimal("15")
        assert movement_count(product_a.id) == before + 1

        movement = db.session.get(Movement, entry.movement.id)
        assert movement.type == "in"
        assert movement.quantity == Decimal("5")
        assert movement.user_id == admin_a.id
        assert movement.timestamp is not None

    def test_outbound_decrements_stock(self, ledger, product_a, admin_a):
        entry = ledger.record_movement(
            product_id=product_a.id, type="out", quantity=4, actor_id=admin_a.id
        )
        assert entry.new_quantity == Decimal("6")
        assert fetch_product(product_a.id).stock_quantity == Decimal("6")

    def test_outbound_of_entire_stock_reaches_zero(self, ledger, product_a, admin_a):
        entry = ledger.record_movement(
            product_id=product_a.id, type="out", quantity=10, actor_id=admin_a.id
        )
        assert entry.new_quantity == 0

    def test_outbound_over_stock_is_rejected_without_mutation(self, ledger, product_a, admin_a):
        before = movement_count()

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_movement(
                product_id=product_a.id, type="out", quantity=11, actor_id=admin_a.id
            )

        assert exc_info.value.available == Decimal("10")
        assert exc_info.value.requested == Decimal("11")
        assert fetch_product(product_a.id).stock_quantity == Decimal("10")
        assert movement_count() == before

    def test_metadata_is_stored_on_the_movement(self, ledger, product_a, admin_a):
        entry = ledger.record_movement(
            product_id=product_a.id,
            type="out",
            quantity=1,
            actor_id=admin_a.id,
            metadata=MovementMetadata(
                observation="Venda balcao",
                client_name="Maria",
                client_contact="11 99999-0000",
                payment_status="pending",
            ),
        )
        movement = db.session.get(Movement, entry.movement.id)
        assert movement.observation == "Venda balcao"
        assert movement.client_name == "Maria"
        assert movement.payment_status == "pending"

    def test_unknown_product_raises_not_found(self, ledger, admin_a):
        with pytest.raises(NotFoundError):
            ledger.record_movement(product_id=99999, type="in", quantity=1, actor_id=admin_a.id)

    @pytest.mark.parametrize("quantity", [0, -1, "abc", None])
    def test_invalid_quantity_is_rejected(self, ledger, product_a, admin_a, quantity):
        with pytest.raises(ValidationError):
            ledger.record_movement(
                product_id=product_a.id, type="in", quantity=quantity, actor_id=admin_a.id
            )

    def test_invalid_type_is_rejected(self, ledger, product_a, admin_a):
        with pytest.raises(ValidationError):
            ledger.record_movement(
                product_id=product_a.id, type="transfer", quantity=1, actor_id=admin_a.id
            )

    def test_invalid_payment_status_is_rejected(self, ledger, product_a, admin_a):
        with pytest.raises(ValidationError):
            ledger.record_movement(
                product_id=product_a.id,
                type="out",
                quantity=1,
                actor_id=admin_a.id,
                metadata=MovementMetadata(payment_status="later"),
            )

    def test_fractional_quantities_keep_four_places(self, ledger, product_a, admin_a):
        ledger.record_movement(product_id=product_a.id, type="out", quantity="0.0100", actor_id=admin_a.id)
        ledger.record_movement(product_id=product_a.id, type="out", quantity="0.25", actor_id=admin_a.id)

        assert fetch_product(product_a.id).stock_quantity == Decimal("9.7400")

    def test_fractional_in_and_out_chain_reaches_exactly_zero(self, ledger, make_product, admin_a, store_a):
        product = make_product(admin_a, store_a, name="Canela")

        ledger.record_movement(product_id=product.id, type="in", quantity="0.3", actor_id=admin_a.id)
        ledger.record_movement(product_id=product.id, type="out", quantity="0.1", actor_id=admin_a.id)
        entry = ledger.record_movement(product_id=product.id, type="out", quantity="0.2", actor_id=admin_a.id)

        assert entry.new_quantity == Decimal("0")
        assert fetch_product(product.id).stock_quantity == Decimal("0")

    def test_quantities_are_stored_as_whole_ten_thousandths(self, ledger, product_a, admin_a):
        ledger.record_movement(product_id=product_a.id, type="out", quantity="0.0001", actor_id=admin_a.id)

        raw = db.session.execute(
            text("SELECT stock_quantity FROM products WHERE id = :id"), {"id": product_a.id}
        ).scalar()
        assert raw == 99999


class TestAtomicity:
    """Failures roll back the counter and the movement together."""

    def test_failed_insert_rolls_back_stock_update(self, app, product_a, admin_a):
        before = movement_count()
        ledger = StockLedger(FailingFlushSession(db.session))

        with pytest.raises(PersistenceError):
            ledger.record_movement(product_id=product_a.id, type="in", quantity=5, actor_id=admin_a.id)

        assert fetch_product(product_a.id).stock_quantity == Decimal("10")
        assert movement_count() == before

    def test_concurrent_debit_is_caught_by_conditional_update(self, ledger, product_a, admin_a):
        """
        The product row in this session still says 10 while another
        connection already took the stock down to 2.
        """
        product = fetch_product(product_a.id)
        assert product.stock_quantity == Decimal("10")

        with db.engine.begin() as conn:
            conn.execute(
                update(Product.__table__)
                .where(Product.__table__.c.id == product_a.id)
                .values(stock_quantity=2)
            )

        before = movement_count()
        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.record_movement(product_id=product_a.id, type="out", quantity=5, actor_id=admin_a.id)

        assert exc_info.value.available == Decimal("2")
        assert fetch_product(product_a.id).stock_quantity == Decimal("2")
        assert movement_count() == before


class TestProductEdit:
    """apply_product_edit turns stock changes into manual adjustments."""

    def test_decrease_records_single_out_movement(self, ledger, product_a, admin_a):
        product, movement = ledger.apply_product_edit(
            product_id=product_a.id, changes={"stock_quantity": 4}, actor_id=admin_a.id
        )

        assert product.stock_quantity == Decimal("4")
        assert movement.type == "out"
        assert movement.quantity == Decimal("6")
        assert movement.observation == "Manual adjustment on product edit"

    def test_increase_records_in_movement(self, ledger, product_a, admin_a):
        _product, movement = ledger.apply_product_edit(
            product_id=product_a.id, changes={"stock_quantity": "12.5"}, actor_id=admin_a.id
        )
        assert movement.type == "in"
        assert movement.quantity == Decimal("2.5")

    def test_unchanged_stock_records_nothing(self, ledger, product_a, admin_a):
        before = movement_count()

        product, movement = ledger.apply_product_edit(
            product_id=product_a.id,
            changes={"stock_quantity": 10, "name": "Arroz Tipo 1"},
            actor_id=admin_a.id,
        )

        assert movement is None
        assert product.name == "Arroz Tipo 1"
        assert movement_count() == before

    def test_field_only_edit(self, ledger, product_a, admin_a):
        product, movement = ledger.apply_product_edit(
            product_id=product_a.id, changes={"category": "Graos"}, actor_id=admin_a.id
        )
        assert movement is None
        assert product.category == "Graos"

    def test_negative_stock_is_rejected(self, ledger, product_a, admin_a):
        with pytest.raises(ValidationError):
            ledger.apply_product_edit(
                product_id=product_a.id, changes={"stock_quantity": -1}, actor_id=admin_a.id
            )
        assert fetch_product(product_a.id).stock_quantity == Decimal("10")

    def test_unknown_field_is_rejected(self, ledger, product_a, admin_a):
        with pytest.raises(ValidationError):
            ledger.apply_product_edit(
                product_id=product_a.id, changes={"store_id": 2}, actor_id=admin_a.id
            )

    def test_configured_label_is_used(self, app, product_a, admin_a):
        ledger = StockLedger(db.session, LedgerSettings(manual_adjustment_label="Ajuste manual"))
        _product, movement = ledger.apply_product_edit(
            product_id=product_a.id, changes={"stock_quantity": 3}, actor_id=admin_a.id
        )
        assert movement.observation == "Ajuste manual"


class TestProduction:
    """record_production: paired debit and credit."""

    def test_production_moves_stock_between_products(self, ledger, make_product, admin_a, store_a):
        source = make_product(admin_a, store_a, name="Queijo pe 20kg", stock=20)
        target = make_product(admin_a, store_a, name="Queijo fatiado 200g", stock=0)
        before = movement_count()

        result = ledger.record_production(
            source_product_id=source.id,
            target_product_id=target.id,
            quantity_produced=1,
            quantity_consumed=5,
            actor_id=admin_a.id,
        )

        assert result.source_quantity == Decimal("15")
        assert result.target_quantity == Decimal("1")
        assert fetch_product(source.id).stock_quantity == Decimal("15")
        assert fetch_product(target.id).stock_quantity == Decimal("1")
        assert movement_count() == before + 2

        out_movement = db.session.get(Movement, result.source_movement.id)
        in_movement = db.session.get(Movement, result.target_movement.id)
        assert out_movement.type == "out" and out_movement.product_id == source.id
        assert in_movement.type == "in" and in_movement.product_id == target.id
        assert f"#{target.id}" in out_movement.observation
        assert f"#{source.id}" in in_movement.observation

    def test_insufficient_source_stock_changes_nothing(self, ledger, make_product, admin_a, store_a):
        source = make_product(admin_a, store_a, name="Farinha 25kg", stock=2)
        target = make_product(admin_a, store_a, name="Farinha 1kg", stock=0)
        before = movement_count()

        with pytest.raises(InsufficientStockError):
            ledger.record_production(
                source_product_id=source.id,
                target_product_id=target.id,
                quantity_produced=25,
                quantity_consumed=3,
                actor_id=admin_a.id,
            )

        assert fetch_product(source.id).stock_quantity == Decimal("2")
        assert fetch_product(target.id).stock_quantity == 0
        assert movement_count() == before

    def test_missing_target_raises_not_found(self, ledger, product_a, admin_a):
        with pytest.raises(NotFoundError):
            ledger.record_production(
                source_product_id=product_a.id,
                target_product_id=99999,
                quantity_produced=1,
                quantity_consumed=1,
                actor_id=admin_a.id,
            )
        assert fetch_product(product_a.id).stock_quantity == Decimal("10")

    def test_same_product_is_rejected(self, ledger, product_a, admin_a):
        with pytest.raises(ValidationError):
            ledger.record_production(
                source_product_id=product_a.id,
                target_product_id=product_a.id,
                quantity_produced=1,
                quantity_consumed=1,
                actor_id=admin_a.id,
            )


class TestReconciliation:
    """Counters always equal SUM(in) - SUM(out)."""

    def test_balance_matches_counter_after_mixed_operations(self, ledger, product_a, admin_a):
        ledger.record_movement(product_id=product_a.id, type="in", quantity=7, actor_id=admin_a.id)
        ledger.record_movement(product_id=product_a.id, type="out", quantity="2.5", actor_id=admin_a.id)
        with pytest.raises(InsufficientStockError):
            ledger.record_movement(product_id=product_a.id, type="out", quantity=100, actor_id=admin_a.id)
        ledger.apply_product_edit(product_id=product_a.id, changes={"stock_quantity": 3}, actor_id=admin_a.id)

        product = fetch_product(product_a.id)
        assert product.stock_quantity == Decimal("3")
        assert ledger.movement_balance(product_a.id) == Decimal("3")
        assert ledger.find_unreconciled_products() == []

    def test_weighed_sales_drain_one_unit_and_stay_reconciled(self, ledger, make_product, admin_a, store_a):
        product = make_product(admin_a, store_a, name="Cominho 500g", stock=1, weight=500, unit="g")
        portion = derive_fractional_quantity(50, "g", product.weight, product.unit)
        assert portion == Decimal("0.1000")

        for _ in range(10):
            ledger.record_movement(product_id=product.id, type="out", quantity=portion, actor_id=admin_a.id)

        assert fetch_product(product.id).stock_quantity == Decimal("0")
        assert ledger.movement_balance(product.id) == Decimal("0")
        assert ledger.find_unreconciled_products() == []

        with pytest.raises(InsufficientStockError):
            ledger.record_movement(product_id=product.id, type="out", quantity=portion, actor_id=admin_a.id)

    def test_awkward_fractions_stay_non_negative(self, ledger, make_product, admin_a, store_a):
        product = make_product(admin_a, store_a, name="Acafrao 300g", stock=2, weight=300, unit="g")
        portion = derive_fractional_quantity(7, "g", product.weight, product.unit)
        assert portion == Decimal("0.0233")

        sold = 0
        while True:
            try:
                ledger.record_movement(product_id=product.id, type="out", quantity=portion, actor_id=admin_a.id)
            except InsufficientStockError:
                break
            sold += 1

        stock = fetch_product(product.id).stock_quantity
        assert sold == 85
        assert stock == Decimal("2") - portion * 85
        assert Decimal("0") <= stock < portion
        assert ledger.find_unreconciled_products() == []

    def test_direct_counter_write_is_detected(self, ledger, product_a):
        db.session.execute(
            update(Product).where(Product.id == product_a.id).values(stock_quantity=99)
        )
        db.session.commit()

        mismatches = ledger.find_unreconciled_products()
        assert [(p.id, balance) for p, balance in mismatches] == [(product_a.id, Decimal("10"))]


def test_app_ledger_uses_configured_settings(app):
    assert get_ledger().settings.manual_adjustment_label == app.config["MANUAL_ADJUSTMENT_LABEL"]
