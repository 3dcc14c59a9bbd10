# Overview: Stock ledger: reserve / deduct / restore arithmetic and per-line application.

"""
Stock Ledger

Three debits/credits are applied per order line against the StockItem keyed
by (product, store):

- reserve: available -= q (floored at 0), reserved grows by what was taken.
  current is untouched. Applied at order creation.
- deduct: available -= q and current -= q, each floored at 0. Applied at
  approval, after the line's own reservation has been released.
- restore: gives stock back.

The floors mean the amount actually taken can be smaller than q. Every debit
is therefore recorded as a StockMovement holding the applied deltas, and
restoring a line reverses exactly its outstanding movements. Restoring a line
twice finds nothing outstanding the second time and changes nothing.

apply_restore() is the raw credit used for restocking. It is not paired with
any debit: calling it in place of a reversal over-credits stock.

Each *_line function touches a single StockItem row under lock, which is the
whole critical section; per-line failure isolation lives in intent_service.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import StockItem, StockMovement, Product, OrderItem
from .catalog_service import get_product_by_id, get_store_by_id
from .concurrency import lock_for_update
from orderflow.time_utils import utcnow


MOVEMENT_RESERVE = "RESERVE"
MOVEMENT_DEDUCT = "DEDUCT"
MOVEMENT_RESTORE = "RESTORE"
MOVEMENT_COUNT = "COUNT"
MOVEMENT_RESTOCK = "RESTOCK"

DEBIT_MOVEMENTS = (MOVEMENT_RESERVE, MOVEMENT_DEDUCT)


class StockLedgerError(Exception):
    """Raised when a stock ledger operation cannot be applied."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class StockNotFoundError(StockLedgerError):
    pass


@dataclass(frozen=True)
class StockLevels:
    current: int
    reserved: int
    available: int


@dataclass(frozen=True)
class StockDelta:
    current: int = 0
    reserved: int = 0
    available: int = 0

    def negate(self) -> "StockDelta":
        return StockDelta(-self.current, -self.reserved, -self.available)

    @property
    def is_zero(self) -> bool:
        return self.current == 0 and self.reserved == 0 and self.available == 0


def _check_quantity(quantity: int) -> None:
    if quantity < 0:
        raise StockLedgerError("Quantity must be non-negative", {"quantity": quantity})


def apply_delta(levels: StockLevels, delta: StockDelta) -> StockLevels:
    return StockLevels(
        current=levels.current + delta.current,
        reserved=levels.reserved + delta.reserved,
        available=levels.available + delta.available,
    )


def apply_reserve(levels: StockLevels, quantity: int) -> tuple[StockLevels, StockDelta]:
    _check_quantity(quantity)
    taken = min(quantity, max(levels.available, 0))
    delta = StockDelta(current=0, reserved=taken, available=-taken)
    return apply_delta(levels, delta), delta


def apply_deduct(levels: StockLevels, quantity: int) -> tuple[StockLevels, StockDelta]:
    _check_quantity(quantity)
    delta = StockDelta(
        current=-min(quantity, max(levels.current, 0)),
        reserved=0,
        available=-min(quantity, max(levels.available, 0)),
    )
    return apply_delta(levels, delta), delta


def apply_restore(levels: StockLevels, quantity: int) -> tuple[StockLevels, StockDelta]:
    _check_quantity(quantity)
    delta = StockDelta(current=quantity, reserved=0, available=quantity)
    return apply_delta(levels, delta), delta


def apply_reversal(levels: StockLevels, applied: StockDelta) -> tuple[StockLevels, StockDelta]:
    """
    Undo a previously applied debit.

    With no interleaved writes this returns the exact pre-debit levels. If
    other writes shrank current in between, available is clamped back under
    current so the row invariant still holds.
    """
    target = apply_delta(levels, applied.negate())
    reserved = max(target.reserved, 0)
    current = max(target.current, 0)
    available = min(max(target.available, 0), current)
    result = StockLevels(current=current, reserved=reserved, available=available)
    delta = StockDelta(
        current=result.current - levels.current,
        reserved=result.reserved - levels.reserved,
        available=result.available - levels.available,
    )
    return result, delta


def check_stock_invariants(levels) -> list[str]:
    """Return invariant violations for a StockItem or StockLevels (empty when consistent)."""
    if isinstance(levels, StockItem):
        levels = levels_of(levels)

    problems = []
    if levels.current < 0:
        problems.append(f"current_stock is negative ({levels.current})")
    if levels.available < 0:
        problems.append(f"available_stock is negative ({levels.available})")
    if levels.reserved < 0:
        problems.append(f"reserved_stock is negative ({levels.reserved})")
    if levels.available > levels.current:
        problems.append(
            f"available_stock ({levels.available}) exceeds current_stock ({levels.current})"
        )
    return problems


def levels_of(item: StockItem) -> StockLevels:
    return StockLevels(
        current=item.current_stock,
        reserved=item.reserved_stock,
        available=item.available_stock,
    )


def _write_levels(item: StockItem, levels: StockLevels) -> None:
    item.current_stock = levels.current
    item.reserved_stock = levels.reserved
    item.available_stock = levels.available
    item.last_updated = utcnow()


def get_stock_item(org_id: int, product_id: int, store_id: int, *, lock: bool = False) -> StockItem | None:
    query = db.session.query(StockItem).filter_by(
        org_id=org_id, product_id=product_id, store_id=store_id
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_stock(org_id: int, product_id: int, store_id: int) -> StockItem:
    item = get_stock_item(org_id, product_id, store_id)
    if item is None:
        raise StockNotFoundError(
            f"No stock record for product {product_id} at store {store_id}",
            {"product_id": product_id, "store_id": store_id},
        )
    return item


def list_stock(org_id: int, store_id: int | None = None) -> list[StockItem]:
    query = db.session.query(StockItem).filter_by(org_id=org_id)
    if store_id is not None:
        query = query.filter_by(store_id=store_id)
    return query.order_by(StockItem.store_id, StockItem.product_id).all()


def get_low_stock_items(org_id: int, store_id: int | None = None) -> list[StockItem]:
    """Stock items at or below their product's min_stock_level."""
    query = (
        db.session.query(StockItem)
        .join(Product, Product.id == StockItem.product_id)
        .filter(
            StockItem.org_id == org_id,
            StockItem.current_stock <= Product.min_stock_level,
        )
    )
    if store_id is not None:
        query = query.filter(StockItem.store_id == store_id)
    return query.order_by(StockItem.current_stock, StockItem.id).all()


def _record_movement(
    item: StockItem,
    *,
    movement_type: str,
    quantity: int,
    delta: StockDelta,
    order_item: OrderItem | None = None,
    order_id: int | None = None,
    user_id: int | None = None,
    reference: str | None = None,
    reverses: StockMovement | None = None,
) -> StockMovement:
    movement = StockMovement(
        org_id=item.org_id,
        stock_item_id=item.id,
        order_id=order_id if order_id is not None else (order_item.order_id if order_item else None),
        order_item_id=order_item.id if order_item else None,
        movement_type=movement_type,
        quantity=quantity,
        current_delta=delta.current,
        reserved_delta=delta.reserved,
        available_delta=delta.available,
        reverses_movement_id=reverses.id if reverses else None,
        reference=reference,
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    return movement


def set_stock_count(
    *,
    org_id: int,
    product_id: int,
    store_id: int,
    current_stock: int,
    user_id: int | None = None,
) -> StockItem:
    """
    Set the physical count for a (product, store), creating the row if needed.

    Outstanding reservations are kept; available becomes current minus
    reserved, floored at zero. Caller commits.
    """
    if current_stock < 0:
        raise StockLedgerError("current_stock must be non-negative", {"current_stock": current_stock})

    get_product_by_id(org_id, product_id)
    get_store_by_id(org_id, store_id)

    item = get_stock_item(org_id, product_id, store_id, lock=True)
    if item is None:
        item = StockItem(
            org_id=org_id,
            product_id=product_id,
            store_id=store_id,
            current_stock=0,
            reserved_stock=0,
            available_stock=0,
        )
        db.session.add(item)
        db.session.flush()

    before = levels_of(item)
    after = StockLevels(
        current=current_stock,
        reserved=before.reserved,
        available=min(max(current_stock - before.reserved, 0), current_stock),
    )
    _write_levels(item, after)
    _record_movement(
        item,
        movement_type=MOVEMENT_COUNT,
        quantity=current_stock,
        delta=StockDelta(
            current=after.current - before.current,
            reserved=0,
            available=after.available - before.available,
        ),
        user_id=user_id,
    )
    db.session.flush()
    return item


def restock(*, org_id: int, product_id: int, store_id: int, quantity: int, user_id: int | None = None) -> StockItem:
    """Receive new stock (raw restore). Caller commits."""
    if quantity <= 0:
        raise StockLedgerError("Quantity must be positive", {"quantity": quantity})

    item = get_stock_item(org_id, product_id, store_id, lock=True)
    if item is None:
        raise StockNotFoundError(
            f"No stock record for product {product_id} at store {store_id}",
            {"product_id": product_id, "store_id": store_id},
        )

    levels, delta = apply_restore(levels_of(item), quantity)
    _write_levels(item, levels)
    item.last_restocked = item.last_updated
    _record_movement(item, movement_type=MOVEMENT_RESTOCK, quantity=quantity, delta=delta, user_id=user_id)
    db.session.flush()
    return item


def _line_stock_item(org_id: int, order_item: OrderItem) -> StockItem:
    item = get_stock_item(org_id, order_item.product_id, order_item.store_id, lock=True)
    if item is None:
        raise StockNotFoundError(
            f"No stock record for product {order_item.product_id} at store {order_item.store_id}",
            {"product_id": order_item.product_id, "store_id": order_item.store_id},
        )
    return item


def outstanding_movements(order_id: int, order_item_id: int, movement_type: str | None = None) -> list[StockMovement]:
    """Un-reversed debits for one order line, newest first."""
    types = (movement_type,) if movement_type else DEBIT_MOVEMENTS
    return (
        db.session.query(StockMovement)
        .filter(
            StockMovement.order_id == order_id,
            StockMovement.order_item_id == order_item_id,
            StockMovement.movement_type.in_(types),
            StockMovement.reversed_at.is_(None),
        )
        .order_by(StockMovement.id.desc())
        .all()
    )


def _reverse_movement(movement: StockMovement, *, user_id: int | None, reference: str | None) -> StockMovement:
    item = lock_for_update(db.session.query(StockItem).filter_by(id=movement.stock_item_id)).first()
    applied = StockDelta(movement.current_delta, movement.reserved_delta, movement.available_delta)
    levels, delta = apply_reversal(levels_of(item), applied)
    _write_levels(item, levels)

    movement.reversed_at = item.last_updated
    restore = _record_movement(
        item,
        movement_type=MOVEMENT_RESTORE,
        quantity=movement.quantity,
        delta=delta,
        order_id=movement.order_id,
        user_id=user_id,
        reference=reference,
        reverses=movement,
    )
    restore.order_item_id = movement.order_item_id
    return restore


def reserve_line(org_id: int, order_item: OrderItem, *, user_id: int | None = None,
                 reference: str | None = None) -> StockMovement:
    """Soft-hold stock for one order line."""
    item = _line_stock_item(org_id, order_item)
    levels, delta = apply_reserve(levels_of(item), order_item.quantity)
    _write_levels(item, levels)
    movement = _record_movement(
        item,
        movement_type=MOVEMENT_RESERVE,
        quantity=order_item.quantity,
        delta=delta,
        order_item=order_item,
        user_id=user_id,
        reference=reference,
    )
    db.session.flush()
    return movement


def deduct_line(org_id: int, order_item: OrderItem, *, user_id: int | None = None,
                reference: str | None = None) -> StockMovement:
    """
    Consume stock for one order line.

    The line's outstanding reservation is released first, so a reserved and
    then approved line ends with available unchanged from the reserved state
    and current reduced by the quantity.
    """
    item = _line_stock_item(org_id, order_item)

    for movement in outstanding_movements(order_item.order_id, order_item.id, MOVEMENT_RESERVE):
        _reverse_movement(movement, user_id=user_id, reference=reference)

    levels, delta = apply_deduct(levels_of(item), order_item.quantity)
    _write_levels(item, levels)
    movement = _record_movement(
        item,
        movement_type=MOVEMENT_DEDUCT,
        quantity=order_item.quantity,
        delta=delta,
        order_item=order_item,
        user_id=user_id,
        reference=reference,
    )
    db.session.flush()
    return movement


def restore_line(order_id: int, order_item_id: int, *, user_id: int | None = None,
                 reference: str | None = None) -> list[StockMovement]:
    """
    Give back everything still outstanding for one order line.

    Returns the RESTORE movements written; an empty list means the line had
    nothing left to restore.
    """
    restored = [
        _reverse_movement(movement, user_id=user_id, reference=reference)
        for movement in outstanding_movements(order_id, order_item_id)
    ]
    db.session.flush()
    return restored


def list_movements(org_id: int, *, order_id: int | None = None, stock_item_id: int | None = None) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter_by(org_id=org_id)
    if order_id is not None:
        query = query.filter_by(order_id=order_id)
    if stock_item_id is not None:
        query = query.filter_by(stock_item_id=stock_item_id)
    return query.order_by(StockMovement.id).all()
