# Overview: Pytest coverage for stock ledger arithmetic and per-line application.

"""
Stock Ledger Tests

Verifies:
- reserve / deduct / restore arithmetic and their zero floors
- exact reversal of recorded debits
- per-line reserve -> deduct -> restore against a StockItem row
- restoring a line twice is a no-op the second time
- the raw restore primitive over-credits when used as a reversal
"""

import pytest

from orderflow.models import Order, OrderItem, StockMovement
from orderflow.services import stock_service
from orderflow.services.stock_service import (
    StockDelta,
    StockLedgerError,
    StockLevels,
    StockNotFoundError,
    apply_deduct,
    apply_reserve,
    apply_restore,
    apply_reversal,
    check_stock_invariants,
)


def _levels(current, reserved, available):
    return StockLevels(current=current, reserved=reserved, available=available)


def _make_order(db_session, org, customer, user, product, store, quantity, number="ORD-900001"):
    """Bare pending order row, without going through order_service."""
    order = Order(
        org_id=org.id,
        order_number=number,
        customer_id=customer.id,
        customer_name=customer.full_name,
        status="pending",
        payment_type="cash",
        payment_status="pending",
        total_amount_cents=product.unit_price_cents * quantity,
        items_count=1,
        created_by_user_id=user.id,
    )
    order.items.append(OrderItem(
        line_number=1,
        product_id=product.id,
        product_name=product.name,
        sku=product.sku,
        store_id=store.id,
        store_name=store.name,
        quantity=quantity,
        unit_price_cents=product.unit_price_cents,
        total_price_cents=product.unit_price_cents * quantity,
    ))
    db_session.add(order)
    db_session.flush()
    return order


# =============================================================================
# ARITHMETIC
# =============================================================================


class TestReserveArithmetic:
    """reserve lowers available only."""

    def test_reserve_within_available(self):
        levels, delta = apply_reserve(_levels(10, 0, 10), 4)
        assert levels == _levels(10, 4, 6)
        assert delta == StockDelta(current=0, reserved=4, available=-4)

    def test_reserve_floors_available_at_zero(self):
        levels, delta = apply_reserve(_levels(10, 7, 3), 5)
        assert levels.available == 0
        assert levels.current == 10
        assert delta.available == -3

    def test_reserve_zero_is_noop(self):
        levels, delta = apply_reserve(_levels(5, 0, 5), 0)
        assert levels == _levels(5, 0, 5)
        assert delta.is_zero

    def test_negative_quantity_rejected(self):
        with pytest.raises(StockLedgerError):
            apply_reserve(_levels(5, 0, 5), -1)


class TestDeductArithmetic:
    """deduct lowers both current and available, each floored at zero."""

    def test_deduct_lowers_both(self):
        levels, _ = apply_deduct(_levels(10, 0, 10), 4)
        assert levels == _levels(6, 0, 6)

    def test_deduct_floors_each_independently(self):
        levels, delta = apply_deduct(_levels(5, 0, 2), 4)
        assert levels.current == 1
        assert levels.available == 0
        assert delta == StockDelta(current=-4, reserved=0, available=-2)

    def test_deduct_more_than_current(self):
        levels, _ = apply_deduct(_levels(3, 0, 3), 10)
        assert levels == _levels(0, 0, 0)


class TestRestoreArithmetic:
    """Raw restore credits both current and available."""

    def test_restore_adds_both(self):
        levels, delta = apply_restore(_levels(6, 0, 6), 4)
        assert levels == _levels(10, 0, 10)
        assert delta == StockDelta(current=4, reserved=0, available=4)

    def test_raw_restore_after_reserve_overcredits_current(self):
        """Using the raw credit to undo a reservation inflates current."""
        reserved, _ = apply_reserve(_levels(10, 0, 10), 4)
        levels, _ = apply_restore(reserved, 4)
        assert levels.current == 14
        assert levels.available == 10

    def test_raw_restore_twice_overcredits(self):
        deducted, _ = apply_deduct(_levels(10, 0, 10), 4)
        once, _ = apply_restore(deducted, 4)
        twice, _ = apply_restore(once, 4)
        assert once == _levels(10, 0, 10)
        assert twice == _levels(14, 0, 14)


class TestReversal:
    """apply_reversal undoes the delta a debit actually applied."""

    def test_reverse_reserve_restores_exact_levels(self):
        start = _levels(10, 0, 10)
        reserved, delta = apply_reserve(start, 4)
        restored, _ = apply_reversal(reserved, delta)
        assert restored == start

    def test_reverse_floored_deduct_gives_back_only_what_was_taken(self):
        start = _levels(3, 0, 3)
        deducted, delta = apply_deduct(start, 10)
        restored, _ = apply_reversal(deducted, delta)
        assert restored == start

    def test_reversal_keeps_available_under_current(self):
        """A count that shrank current after the debit clamps available back."""
        _, delta = apply_reserve(_levels(10, 0, 10), 4)
        recounted = _levels(2, 4, 0)
        restored, _ = apply_reversal(recounted, delta)
        assert restored.available <= restored.current
        assert check_stock_invariants(restored) == []


class TestInvariants:
    def test_consistent_levels(self):
        assert check_stock_invariants(_levels(10, 4, 6)) == []

    def test_available_above_current(self):
        problems = check_stock_invariants(_levels(5, 0, 7))
        assert any("exceeds current_stock" in p for p in problems)

    def test_negative_values(self):
        problems = check_stock_invariants(_levels(-1, 0, -2))
        assert len(problems) == 2


# =============================================================================
# ROW-LEVEL OPERATIONS
# =============================================================================


class TestStockCounts:
    """set_stock_count and restock against StockItem rows."""

    def test_set_count_creates_row(self, db_session, org_a, store_a, product_a):
        item = stock_service.set_stock_count(
            org_id=org_a.id, product_id=product_a.id, store_id=store_a.id, current_stock=10
        )
        db_session.commit()

        assert item.current_stock == 10
        assert item.available_stock == 10
        assert item.reserved_stock == 0

    def test_set_count_keeps_reservations(self, db_session, org_a, store_a, stock_a):
        stock_a.reserved_stock = 4
        stock_a.available_stock = 6
        db_session.commit()

        item = stock_service.set_stock_count(
            org_id=org_a.id, product_id=stock_a.product_id, store_id=store_a.id, current_stock=20
        )
        assert item.current_stock == 20
        assert item.reserved_stock == 4
        assert item.available_stock == 16

    def test_set_count_negative_rejected(self, db_session, org_a, store_a, product_a):
        with pytest.raises(StockLedgerError):
            stock_service.set_stock_count(
                org_id=org_a.id, product_id=product_a.id, store_id=store_a.id, current_stock=-1
            )

    def test_restock_adds_to_both(self, db_session, org_a, store_a, stock_a):
        item = stock_service.restock(
            org_id=org_a.id, product_id=stock_a.product_id, store_id=store_a.id, quantity=5
        )
        assert item.current_stock == 15
        assert item.available_stock == 15
        assert item.last_restocked is not None

    def test_restock_unknown_row(self, db_session, org_a, store_a2, product_a):
        with pytest.raises(StockNotFoundError):
            stock_service.restock(
                org_id=org_a.id, product_id=product_a.id, store_id=store_a2.id, quantity=5
            )

    def test_low_stock_items(self, db_session, org_a, store_a, stock_a, product_a):
        assert stock_service.get_low_stock_items(org_a.id) == []

        stock_service.set_stock_count(
            org_id=org_a.id, product_id=product_a.id, store_id=store_a.id, current_stock=2
        )
        db_session.commit()

        low = stock_service.get_low_stock_items(org_a.id)
        assert [item.product_id for item in low] == [product_a.id]


class TestLineLedger:
    """reserve_line / deduct_line / restore_line on one order line."""

    def test_reserve_then_deduct_then_restore(
        self, db_session, org_a, store_a, stock_a, product_a, customer_a, admin_a
    ):
        order = _make_order(db_session, org_a, customer_a, admin_a, product_a, store_a, 4)
        line = order.items[0]

        stock_service.reserve_line(org_a.id, line)
        assert (stock_a.current_stock, stock_a.available_stock, stock_a.reserved_stock) == (10, 6, 4)

        stock_service.deduct_line(org_a.id, line)
        assert (stock_a.current_stock, stock_a.available_stock, stock_a.reserved_stock) == (6, 6, 0)

        restored = stock_service.restore_line(order.id, line.id)
        assert len(restored) == 1
        assert (stock_a.current_stock, stock_a.available_stock, stock_a.reserved_stock) == (10, 10, 0)
        assert check_stock_invariants(stock_a) == []

    def test_restore_twice_is_noop(
        self, db_session, org_a, store_a, stock_a, product_a, customer_a, admin_a
    ):
        order = _make_order(db_session, org_a, customer_a, admin_a, product_a, store_a, 4)
        line = order.items[0]
        stock_service.reserve_line(org_a.id, line)

        first = stock_service.restore_line(order.id, line.id)
        second = stock_service.restore_line(order.id, line.id)

        assert len(first) == 1
        assert second == []
        assert (stock_a.current_stock, stock_a.available_stock) == (10, 10)

    def test_reserve_beyond_available_records_floored_delta(
        self, db_session, org_a, store_a, stock_a, product_a, customer_a, admin_a
    ):
        order = _make_order(db_session, org_a, customer_a, admin_a, product_a, store_a, 15)
        line = order.items[0]

        movement = stock_service.reserve_line(org_a.id, line)

        assert movement.quantity == 15
        assert movement.available_delta == -10
        assert stock_a.available_stock == 0

        stock_service.restore_line(order.id, line.id)
        assert stock_a.available_stock == 10

    def test_missing_stock_row(
        self, db_session, org_a, store_a2, product_a, customer_a, admin_a
    ):
        order = _make_order(db_session, org_a, customer_a, admin_a, product_a, store_a2, 1)
        with pytest.raises(StockNotFoundError):
            stock_service.reserve_line(org_a.id, order.items[0])

    def test_movements_are_recorded(
        self, db_session, org_a, store_a, stock_a, product_a, customer_a, admin_a
    ):
        order = _make_order(db_session, org_a, customer_a, admin_a, product_a, store_a, 2)
        line = order.items[0]
        stock_service.reserve_line(org_a.id, line, reference=order.order_number)
        stock_service.deduct_line(org_a.id, line, reference=order.order_number)

        movements = stock_service.list_movements(org_a.id, order_id=order.id)
        types = [m.movement_type for m in movements]
        assert types == ["RESERVE", "RESTORE", "DEDUCT"]

        reserve = movements[0]
        assert reserve.reversed_at is not None
        assert db_session.query(StockMovement).filter_by(reverses_movement_id=reserve.id).count() == 1
