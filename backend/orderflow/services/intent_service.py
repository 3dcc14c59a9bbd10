# Overview: Best-effort ledger side effects recorded as replayable intents.

"""
Ledger Side-Effect Intents

Order operations touch three independent records: the order itself, stock
items and the customer's credit account. Stock and credit updates are
best-effort: a failure is logged and the order operation still completes.

To keep those partial failures visible, every side effect goes through the
same protocol:

1. write a LedgerIntent (PENDING) and flush it
2. apply the effect inside a savepoint
3. mark the intent APPLIED, or roll back the savepoint and mark it FAILED

Stock effects run one intent per order line, in line order, so a failure on
line 2 leaves line 1 applied and line 3 still runs. Credit effects run after
all stock effects of the same operation.

FAILED intents are picked up by replay_failed_intents() (CLI: flask ledger
replay). Replay checks current state first, so an intent whose effect is no
longer wanted (order cancelled, already applied by someone else) is marked
SUPERSEDED instead of being applied twice.

With ORDERFLOW_STRICT_LEDGER enabled, a failed effect raises
LedgerSideEffectError and the caller's whole operation is rolled back.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import LedgerIntent, Order, OrderItem
from . import credit_service, stock_service
from orderflow.time_utils import utcnow


INTENT_STOCK_RESERVE = "STOCK_RESERVE"
INTENT_STOCK_DEDUCT = "STOCK_DEDUCT"
INTENT_STOCK_RESTORE = "STOCK_RESTORE"
INTENT_CREDIT_INVOICE = "CREDIT_INVOICE"
INTENT_CREDIT_REFUND = "CREDIT_REFUND"

INTENT_STATUS_PENDING = "PENDING"
INTENT_STATUS_APPLIED = "APPLIED"
INTENT_STATUS_FAILED = "FAILED"
INTENT_STATUS_SUPERSEDED = "SUPERSEDED"


class LedgerSideEffectError(Exception):
    """Raised in strict mode when a stock or credit side effect fails."""
    def __init__(self, message: str, intent: LedgerIntent | None = None):
        super().__init__(message)
        self.intent = intent


def _new_intent(
    intent_type: str,
    order: Order,
    *,
    item: OrderItem | None = None,
    user_id: int | None = None,
    amount_cents: int | None = None,
) -> LedgerIntent:
    intent = LedgerIntent(
        org_id=order.org_id,
        intent_type=intent_type,
        status=INTENT_STATUS_PENDING,
        order_id=order.id,
        order_item_id=item.id if item else None,
        reference=order.order_number,
        product_id=item.product_id if item else None,
        store_id=item.store_id if item else None,
        quantity=item.quantity if item else None,
        customer_id=order.customer_id,
        amount_cents=amount_cents,
        attempts=0,
        created_by_user_id=user_id,
    )
    db.session.add(intent)
    return intent


def _run_intent(intent: LedgerIntent, effect, *, strict: bool | None = None) -> bool:
    """Apply effect for intent inside a savepoint. Returns True when applied."""
    if strict is None:
        strict = bool(current_app.config.get("ORDERFLOW_STRICT_LEDGER"))

    intent.attempts = (intent.attempts or 0) + 1
    db.session.flush()

    nested = db.session.begin_nested()
    try:
        effect()
        db.session.flush()
        nested.commit()
    except Exception as exc:  # noqa: BLE001
        nested.rollback()
        intent.status = INTENT_STATUS_FAILED
        intent.error_message = str(exc)
        db.session.flush()
        current_app.logger.warning(
            "Ledger side effect %s failed for order %s (item %s): %s",
            intent.intent_type,
            intent.reference,
            intent.order_item_id,
            exc,
        )
        if strict:
            raise LedgerSideEffectError(
                f"{intent.intent_type} failed for order {intent.reference}: {exc}", intent
            ) from exc
        return False

    intent.status = INTENT_STATUS_APPLIED
    intent.error_message = None
    intent.applied_at = utcnow()
    db.session.flush()
    return True


def _mark_superseded(intent: LedgerIntent, reason: str) -> None:
    intent.status = INTENT_STATUS_SUPERSEDED
    intent.error_message = reason
    db.session.flush()


# -- stock ----------------------------------------------------------------

def reserve_order_stock(order: Order, *, user_id: int | None = None) -> list[LedgerIntent]:
    intents = []
    for item in order.items:
        intent = _new_intent(INTENT_STOCK_RESERVE, order, item=item, user_id=user_id)
        _run_intent(intent, lambda item=item: stock_service.reserve_line(
            order.org_id, item, user_id=user_id, reference=order.order_number
        ))
        intents.append(intent)
    return intents


def deduct_order_stock(order: Order, *, user_id: int | None = None) -> list[LedgerIntent]:
    intents = []
    for item in order.items:
        intent = _new_intent(INTENT_STOCK_DEDUCT, order, item=item, user_id=user_id)
        _run_intent(intent, lambda item=item: stock_service.deduct_line(
            order.org_id, item, user_id=user_id, reference=order.order_number
        ))
        intents.append(intent)
    return intents


def restore_order_stock(order: Order, *, user_id: int | None = None) -> list[LedgerIntent]:
    """Restore every line that still has outstanding debits. Lines with none are skipped."""
    intents = []
    for item in order.items:
        if not stock_service.outstanding_movements(order.id, item.id):
            continue
        intent = _new_intent(INTENT_STOCK_RESTORE, order, item=item, user_id=user_id)
        _run_intent(intent, lambda item=item: stock_service.restore_line(
            order.id, item.id, user_id=user_id, reference=order.order_number
        ))
        intents.append(intent)
    return intents


# -- credit ---------------------------------------------------------------

def _post_invoice(org_id: int, customer_id: int, order_id: int, order_number: str,
                  amount_cents: int, user_id: int | None) -> None:
    if credit_service.find_order_transaction(order_id, credit_service.TRANSACTION_INVOICE):
        return
    credit_service.add_customer_transaction(
        org_id,
        customer_id,
        transaction_type=credit_service.TRANSACTION_INVOICE,
        amount_cents=amount_cents,
        reference=f"Order {order_number}",
        note=f"Credit order for {amount_cents}",
        order_id=order_id,
        user_id=user_id,
    )


def _post_refund(org_id: int, customer_id: int, order_id: int, order_number: str,
                 amount_cents: int, user_id: int | None) -> None:
    if credit_service.find_order_transaction(order_id, credit_service.TRANSACTION_REFUND):
        return
    credit_service.add_customer_transaction(
        org_id,
        customer_id,
        transaction_type=credit_service.TRANSACTION_REFUND,
        amount_cents=amount_cents,
        reference=f"Order {order_number} (Cancelled)",
        note="Refund for cancelled credit order",
        order_id=order_id,
        user_id=user_id,
    )


def post_order_invoice(order: Order, *, user_id: int | None = None) -> LedgerIntent | None:
    if order.payment_type != "credit":
        return None

    intent = _new_intent(INTENT_CREDIT_INVOICE, order, user_id=user_id, amount_cents=order.total_amount_cents)
    _run_intent(intent, lambda: _post_invoice(
        order.org_id, order.customer_id, order.id, order.order_number, order.total_amount_cents, user_id
    ))
    return intent


def post_order_refund(order: Order, *, user_id: int | None = None) -> LedgerIntent | None:
    """
    Reverse a credit order's invoice.

    Nothing is posted when the order has no invoice or was already refunded,
    so cancel followed by delete refunds once.
    """
    if order.payment_type != "credit":
        return None

    invoice = credit_service.find_order_transaction(order.id, credit_service.TRANSACTION_INVOICE)
    if invoice is None:
        return None
    if credit_service.find_order_transaction(order.id, credit_service.TRANSACTION_REFUND):
        return None

    intent = _new_intent(INTENT_CREDIT_REFUND, order, user_id=user_id, amount_cents=invoice.amount_cents)
    _run_intent(intent, lambda: _post_refund(
        order.org_id, order.customer_id, order.id, order.order_number, invoice.amount_cents, user_id
    ))
    return intent


# -- inspection and replay --------------------------------------------------

def list_order_intents(org_id: int, order_id: int) -> list[LedgerIntent]:
    return (
        db.session.query(LedgerIntent)
        .filter_by(org_id=org_id, order_id=order_id)
        .order_by(LedgerIntent.id)
        .all()
    )


def list_failed_intents(org_id: int | None = None) -> list[LedgerIntent]:
    query = db.session.query(LedgerIntent).filter_by(status=INTENT_STATUS_FAILED)
    if org_id is not None:
        query = query.filter_by(org_id=org_id)
    return query.order_by(LedgerIntent.id).all()


def _replay_one(intent: LedgerIntent, user_id: int | None) -> None:
    order = db.session.get(Order, intent.order_id) if intent.order_id else None
    item = db.session.get(OrderItem, intent.order_item_id) if intent.order_item_id else None

    if intent.intent_type == INTENT_STOCK_RESERVE:
        if order is None or item is None or order.status != "pending":
            _mark_superseded(intent, "Order is no longer pending")
            return
        if stock_service.outstanding_movements(order.id, item.id):
            _mark_superseded(intent, "Line already holds stock")
            return
        _run_intent(intent, lambda: stock_service.reserve_line(
            order.org_id, item, user_id=user_id, reference=order.order_number
        ), strict=False)

    elif intent.intent_type == INTENT_STOCK_DEDUCT:
        if order is None or item is None or order.status in ("pending", "cancelled"):
            _mark_superseded(intent, "Order is not in an approved state")
            return
        if stock_service.outstanding_movements(order.id, item.id, stock_service.MOVEMENT_DEDUCT):
            _mark_superseded(intent, "Line already deducted")
            return
        _run_intent(intent, lambda: stock_service.deduct_line(
            order.org_id, item, user_id=user_id, reference=order.order_number
        ), strict=False)

    elif intent.intent_type == INTENT_STOCK_RESTORE:
        _run_intent(intent, lambda: stock_service.restore_line(
            intent.order_id, intent.order_item_id, user_id=user_id, reference=intent.reference
        ), strict=False)

    elif intent.intent_type == INTENT_CREDIT_INVOICE:
        if order is None or order.status == "cancelled":
            _mark_superseded(intent, "Order was cancelled or deleted before the invoice posted")
            return
        _run_intent(intent, lambda: _post_invoice(
            intent.org_id, intent.customer_id, intent.order_id, intent.reference, intent.amount_cents, user_id
        ), strict=False)

    elif intent.intent_type == INTENT_CREDIT_REFUND:
        invoice = credit_service.find_order_transaction(intent.order_id, credit_service.TRANSACTION_INVOICE)
        if invoice is None:
            _mark_superseded(intent, "No invoice to refund")
            return
        _run_intent(intent, lambda: _post_refund(
            intent.org_id, intent.customer_id, intent.order_id, intent.reference, invoice.amount_cents, user_id
        ), strict=False)

    else:
        _mark_superseded(intent, f"Unknown intent type {intent.intent_type}")


def replay_failed_intents(org_id: int | None = None, *, user_id: int | None = None) -> dict:
    """
    Re-apply FAILED intents in creation order. Caller commits.

    Returns counts by resulting status.
    """
    counts = {
        "replayed": 0,
        INTENT_STATUS_APPLIED: 0,
        INTENT_STATUS_FAILED: 0,
        INTENT_STATUS_SUPERSEDED: 0,
    }
    for intent in list_failed_intents(org_id):
        _replay_one(intent, user_id)
        counts["replayed"] += 1
        counts[intent.status] += 1

    current_app.logger.info(
        "Replayed %s ledger intents: %s applied, %s failed, %s superseded",
        counts["replayed"],
        counts[INTENT_STATUS_APPLIED],
        counts[INTENT_STATUS_FAILED],
        counts[INTENT_STATUS_SUPERSEDED],
    )
    return counts
