# backend/orderflow/services/order_service.py
"""
Order state machine.

LIFECYCLE:
1. pending: created; stock reserved per line, credit invoice posted
2. approved: packer and delivery method confirmed; stock deducted per line
3. processing -> shipped -> delivered: direct "prepared" path
   accepted -> ... -> transported: packer path (fulfillment_service)
4. cancelled: from any non-terminal state; stock restored, credit refunded

Validation and not-found failures raise before anything is written. Stock
and credit side effects are best-effort (see intent_service): their failures
are logged and recorded, and the order operation still succeeds.

Every public operation takes the tenant (org_id) and the acting user
explicitly and consults permission_service.require_capability() once.
"""
from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderItem, OrderSequence, User
from . import credit_service, intent_service, permission_service, stock_service
from .catalog_service import CatalogNotFoundError, get_product_by_id, get_store_by_id
from .concurrency import lock_for_update, run_with_retry
from orderflow.time_utils import utcnow


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_APPROVED = "approved"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_ACCEPTED = "accepted"
ORDER_STATUS_PACKING = "packing"
ORDER_STATUS_DONE_PACKING = "done_packing"
ORDER_STATUS_HANDED_TO_DELIVERY = "handed_to_delivery"
ORDER_STATUS_TRANSPORTED = "transported"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_APPROVED,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_ACCEPTED,
    ORDER_STATUS_PACKING,
    ORDER_STATUS_DONE_PACKING,
    ORDER_STATUS_HANDED_TO_DELIVERY,
    ORDER_STATUS_TRANSPORTED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

TERMINAL_STATUSES = frozenset({
    ORDER_STATUS_TRANSPORTED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
})

# Transitions reachable through update_order_status(). approved is only
# entered through approve_order(); packer steps only through fulfillment_service.
ORDER_STATUS_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_CANCELLED},
    ORDER_STATUS_APPROVED: {ORDER_STATUS_PROCESSING, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PROCESSING: {ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_DELIVERED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_ACCEPTED: {ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PACKING: {ORDER_STATUS_CANCELLED},
    ORDER_STATUS_DONE_PACKING: {ORDER_STATUS_CANCELLED},
    ORDER_STATUS_HANDED_TO_DELIVERY: {ORDER_STATUS_CANCELLED},
    ORDER_STATUS_TRANSPORTED: set(),
    ORDER_STATUS_DELIVERED: set(),
    ORDER_STATUS_CANCELLED: set(),
}

PAYMENT_TYPE_CASH = "cash"
PAYMENT_TYPE_CREDIT = "credit"
PAYMENT_TYPES = (PAYMENT_TYPE_CASH, PAYMENT_TYPE_CREDIT, "bank_transfer", "mobile_money")
PAYMENT_STATUSES = ("pending", "paid", "partial", "overdue")

DELIVERY_CUSTOMER_PICKUP = "customer_pickup"
DELIVERY_LOCAL = "local_delivery"
DELIVERY_CARGO = "cargo_delivery"
DELIVERY_METHODS = (DELIVERY_CUSTOMER_PICKUP, DELIVERY_LOCAL, DELIVERY_CARGO)

ADDRESS_FIELDS = ("street", "city", "state", "zip_code", "country")

ORDER_NUMBER_PREFIX = "ORD-"
ORDER_NUMBER_PAD = 6

_UNSET = object()


class OrderError(Exception):
    """Raised for order operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class OrderValidationError(OrderError):
    """Request rejected before any mutation."""
    pass


class OrderNotFoundError(OrderError):
    """Unknown order, customer, product or store id in the caller's organization."""
    pass


# -- helpers ----------------------------------------------------------------

def _authorize(user_id: int, operation: str, org_id: int) -> None:
    permission_service.require_capability(user_id=user_id, operation=operation, org_id=org_id)


def next_order_number(org_id: int) -> str:
    """
    Atomically allocate the next order number for an organization.

    A single UPDATE ... SET next_number = next_number + 1 serializes
    concurrent creators on the sequence row.
    """
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.org_id == org_id)
        .values(next_number=OrderSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        # First order for this org: create the row, or lose the race and retry the UPDATE
        try:
            with db.session.begin_nested():
                db.session.add(OrderSequence(org_id=org_id, next_number=2))
            return _format_order_number(1)
        except IntegrityError:
            db.session.execute(stmt)

    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(org_id=org_id)
        .scalar()
    )
    return _format_order_number(current - 1)


def _format_order_number(number: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{number:0{ORDER_NUMBER_PAD}d}"


def _missing_address_fields(address: dict | None) -> list[str]:
    address = address or {}
    return [field for field in ADDRESS_FIELDS if not str(address.get(field) or "").strip()]


def _validate_packer(org_id: int, packer_id) -> User:
    if not packer_id:
        raise OrderValidationError("Packer assignment is required", {"field": "assigned_packer_id"})
    packer = db.session.get(User, packer_id)
    if packer is None or packer.org_id != org_id or not packer.is_active:
        raise OrderValidationError(
            f"Packer {packer_id} is not an active user of this organization",
            {"assigned_packer_id": packer_id},
        )
    return packer


def _validate_delivery(delivery_method, delivery_address) -> None:
    if not delivery_method:
        raise OrderValidationError("Delivery method is required", {"field": "delivery_method"})
    if delivery_method not in DELIVERY_METHODS:
        raise OrderValidationError(
            f"Invalid delivery method: {delivery_method}",
            {"allowed": list(DELIVERY_METHODS)},
        )
    if delivery_method != DELIVERY_CUSTOMER_PICKUP:
        missing = _missing_address_fields(delivery_address)
        if missing:
            raise OrderValidationError(
                "Complete delivery address is required for non-pickup orders",
                {"missing": missing},
            )


def _apply_address(order: Order, address: dict | None) -> None:
    address = address or {}
    order.delivery_street = address.get("street")
    order.delivery_city = address.get("city")
    order.delivery_state = address.get("state")
    order.delivery_zip_code = address.get("zip_code")
    order.delivery_country = address.get("country")


def _build_lines(org_id: int, items) -> list[OrderItem]:
    """Validate requested lines against the catalog and current availability."""
    lines: list[OrderItem] = []
    requested: dict[tuple[int, int], int] = {}

    for index, raw in enumerate(items, start=1):
        try:
            product_id = int(raw["product_id"])
            store_id = int(raw["store_id"])
            quantity = raw["quantity"]
        except (KeyError, TypeError, ValueError):
            raise OrderValidationError(
                f"Line {index} requires product_id, store_id and quantity", {"line": index}
            )

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise OrderValidationError(
                f"Line {index} quantity must be a positive integer",
                {"line": index, "quantity": quantity},
            )

        try:
            product = get_product_by_id(org_id, product_id)
            store = get_store_by_id(org_id, store_id)
        except CatalogNotFoundError as e:
            raise OrderNotFoundError(str(e), {"line": index, **e.details})

        if not product.is_active:
            raise OrderValidationError(f"Product {product.sku} is not active", {"line": index})

        key = (product.id, store.id)
        requested[key] = requested.get(key, 0) + quantity

        stock = stock_service.get_stock_item(org_id, product.id, store.id)
        available = stock.available_stock if stock else 0
        if requested[key] > available:
            raise OrderValidationError(
                f"Cannot order {requested[key]} units of {product.name}. "
                f"Only {available} units available.",
                {
                    "line": index,
                    "product_id": product.id,
                    "store_id": store.id,
                    "requested": requested[key],
                    "available": available,
                },
            )

        lines.append(OrderItem(
            line_number=index,
            product_id=product.id,
            product_name=product.name,
            sku=product.sku,
            unit=product.unit,
            store_id=store.id,
            store_name=store.name,
            quantity=quantity,
            unit_price_cents=product.unit_price_cents,
            total_price_cents=product.unit_price_cents * quantity,
        ))

    return lines


def _load_order(org_id: int, order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order


def check_fulfillment_ready(order: Order) -> None:
    """Approval preconditions: packer, delivery method, and an address unless pickup."""
    if not order.assigned_packer_id:
        raise OrderValidationError("Cannot approve order: No packer assigned", {"order_id": order.id})
    if not order.delivery_method:
        raise OrderValidationError("Cannot approve order: No delivery method selected", {"order_id": order.id})
    if order.delivery_method != DELIVERY_CUSTOMER_PICKUP and _missing_address_fields(order.delivery_address):
        raise OrderValidationError(
            "Cannot approve order: Delivery address required for non-pickup orders",
            {"order_id": order.id, "missing": _missing_address_fields(order.delivery_address)},
        )


def _cancel(order: Order, user_id: int) -> None:
    intent_service.restore_order_stock(order, user_id=user_id)
    intent_service.post_order_refund(order, user_id=user_id)
    order.status = ORDER_STATUS_CANCELLED
    order.cancelled_by_user_id = user_id
    order.cancelled_at = utcnow()


# -- queries ----------------------------------------------------------------

def get_order(org_id: int, order_id: int) -> Order:
    return _load_order(org_id, order_id)


def list_orders(
    org_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    packer_id: int | None = None,
    created_from=None,
    created_to=None,
    limit: int = 100,
    offset: int = 0,
) -> list[Order]:
    query = db.session.query(Order).filter_by(org_id=org_id)
    if status:
        query = query.filter(Order.status == status)
    if customer_id:
        query = query.filter(Order.customer_id == customer_id)
    if packer_id:
        query = query.filter(Order.assigned_packer_id == packer_id)
    if created_from:
        query = query.filter(Order.created_at >= created_from)
    if created_to:
        query = query.filter(Order.created_at <= created_to)
    return query.order_by(Order.id.desc()).offset(offset).limit(limit).all()


# -- operations -------------------------------------------------------------

def create_order(
    *,
    org_id: int,
    user_id: int,
    customer_id: int | None,
    items,
    payment_type: str,
    assigned_packer_id: int | None,
    delivery_method: str | None,
    delivery_address: dict | None = None,
    notes: str | None = None,
    payment_status: str = "pending",
) -> Order:
    """
    Create a pending order.

    Validates everything up front (items, customer, packer, delivery method
    and address, availability, credit eligibility for credit orders), then
    allocates an order number, reserves stock per line and, for credit
    orders, posts an invoice. Reservation and invoice failures do not abort
    creation.

    Raises:
        OrderValidationError, OrderNotFoundError, PermissionDeniedError
    """
    _authorize(user_id, "create_order", org_id)

    def _op():
        if not items:
            raise OrderValidationError("Order must contain at least one item")
        if not customer_id:
            raise OrderValidationError("Customer is required", {"field": "customer_id"})

        try:
            customer = credit_service.get_customer(org_id, customer_id)
        except credit_service.CustomerNotFoundError as e:
            raise OrderNotFoundError(str(e), e.details)
        if not customer.is_active:
            raise OrderValidationError("Customer is inactive", {"customer_id": customer.id})

        if payment_type not in PAYMENT_TYPES:
            raise OrderValidationError(
                f"Invalid payment type: {payment_type}", {"allowed": list(PAYMENT_TYPES)}
            )
        if payment_status not in PAYMENT_STATUSES:
            raise OrderValidationError(
                f"Invalid payment status: {payment_status}", {"allowed": list(PAYMENT_STATUSES)}
            )

        _validate_packer(org_id, assigned_packer_id)
        _validate_delivery(delivery_method, delivery_address)

        lines = _build_lines(org_id, items)
        total = sum(line.total_price_cents for line in lines)

        if payment_type == PAYMENT_TYPE_CREDIT:
            eligibility = credit_service.check_credit_eligibility(customer, total)
            if not eligibility.is_eligible:
                raise OrderValidationError(
                    "Order amount exceeds available credit limit",
                    {
                        "reason": eligibility.message,
                        "available_credit_cents": eligibility.available_credit_cents,
                        "required_cents": eligibility.required_cents,
                    },
                )

        order = Order(
            org_id=org_id,
            order_number=next_order_number(org_id),
            customer_id=customer.id,
            customer_name=customer.full_name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            status=ORDER_STATUS_PENDING,
            payment_type=payment_type,
            payment_status=payment_status,
            total_amount_cents=total,
            items_count=len(lines),
            notes=notes,
            assigned_packer_id=assigned_packer_id,
            delivery_method=delivery_method,
            created_by_user_id=user_id,
        )
        if delivery_method != DELIVERY_CUSTOMER_PICKUP:
            _apply_address(order, delivery_address)
        order.items.extend(lines)

        db.session.add(order)
        credit_service.record_order_placed(customer)
        db.session.flush()

        intent_service.reserve_order_stock(order, user_id=user_id)
        intent_service.post_order_invoice(order, user_id=user_id)
        return order

    return run_with_retry(_op)


def update_order(
    *,
    org_id: int,
    order_id: int,
    user_id: int,
    assigned_packer_id=_UNSET,
    delivery_method=_UNSET,
    delivery_address=_UNSET,
    notes=_UNSET,
) -> Order:
    """Edit assignment, delivery and notes of a pending order. Lines are immutable."""
    _authorize(user_id, "update_order", org_id)

    def _op():
        order = _load_order(org_id, order_id, lock=True)
        if order.status != ORDER_STATUS_PENDING:
            raise OrderValidationError(
                f"Only pending orders can be edited (order is {order.status})",
                {"status": order.status},
            )

        if assigned_packer_id is not _UNSET:
            _validate_packer(org_id, assigned_packer_id)
            order.assigned_packer_id = assigned_packer_id

        method = order.delivery_method if delivery_method is _UNSET else delivery_method
        address = order.delivery_address if delivery_address is _UNSET else delivery_address
        if delivery_method is not _UNSET or delivery_address is not _UNSET:
            _validate_delivery(method, address)
            order.delivery_method = method
            _apply_address(order, None if method == DELIVERY_CUSTOMER_PICKUP else address)

        if notes is not _UNSET:
            order.notes = notes

        db.session.flush()
        return order

    return run_with_retry(_op)


def approve_order(*, org_id: int, order_id: int, user_id: int) -> Order:
    """
    Approve a pending order and deduct its stock.

    Raises OrderValidationError without touching status or stock when the
    order lacks a packer, a delivery method, or (non-pickup) an address.
    """
    _authorize(user_id, "approve_order", org_id)

    def _op():
        order = _load_order(org_id, order_id, lock=True)
        if order.status != ORDER_STATUS_PENDING:
            raise OrderValidationError(
                f"Cannot approve order in {order.status} status",
                {"from": order.status, "to": ORDER_STATUS_APPROVED},
            )
        check_fulfillment_ready(order)

        intent_service.deduct_order_stock(order, user_id=user_id)

        order.status = ORDER_STATUS_APPROVED
        order.approved_by_user_id = user_id
        order.approved_at = utcnow()
        db.session.flush()
        return order

    return run_with_retry(_op)


def update_order_status(*, org_id: int, order_id: int, new_status: str, user_id: int) -> Order:
    """
    Generic status transition limited to ORDER_STATUS_TRANSITIONS.

    Cancelling restores every line's outstanding stock and refunds a credit
    order's invoice before the status changes.
    """
    _authorize(user_id, "update_order_status", org_id)

    def _op():
        if new_status not in ORDER_STATUSES:
            raise OrderValidationError(f"Invalid status: {new_status}", {"allowed": list(ORDER_STATUSES)})

        order = _load_order(org_id, order_id, lock=True)
        allowed = ORDER_STATUS_TRANSITIONS.get(order.status, set())
        if new_status not in allowed:
            raise OrderValidationError(
                f"Illegal status transition: {order.status} -> {new_status}",
                {"from": order.status, "to": new_status, "allowed": sorted(allowed)},
            )

        if new_status == ORDER_STATUS_CANCELLED:
            _cancel(order, user_id)
        else:
            order.status = new_status

        db.session.flush()
        return order

    return run_with_retry(_op)


def mark_order_prepared(*, org_id: int, order_id: int, user_id: int) -> Order:
    """Direct path: approved -> processing."""
    _authorize(user_id, "mark_order_prepared", org_id)

    def _op():
        order = _load_order(org_id, order_id, lock=True)
        if order.status != ORDER_STATUS_APPROVED:
            raise OrderValidationError(
                "Only approved orders can be prepared",
                {"from": order.status, "to": ORDER_STATUS_PROCESSING},
            )
        order.status = ORDER_STATUS_PROCESSING
        order.prepared_by_user_id = user_id
        order.prepared_at = utcnow()
        db.session.flush()
        return order

    return run_with_retry(_op)


def update_payment_status(*, org_id: int, order_id: int, payment_status: str, user_id: int) -> Order:
    """Field update only; no ledger side effects."""
    _authorize(user_id, "update_payment_status", org_id)

    def _op():
        if payment_status not in PAYMENT_STATUSES:
            raise OrderValidationError(
                f"Invalid payment status: {payment_status}", {"allowed": list(PAYMENT_STATUSES)}
            )
        order = _load_order(org_id, order_id, lock=True)
        order.payment_status = payment_status
        db.session.flush()
        return order

    return run_with_retry(_op)


def delete_order(*, org_id: int, order_id: int, user_id: int) -> dict:
    """
    Delete an order: restore stock -> refund credit -> remove the record.

    Stock and credit steps are best-effort. Stock movements, credit
    transactions and intents keep the order id and number for audit.

    Returns a snapshot of the order as it was just before removal.
    """
    _authorize(user_id, "delete_order", org_id)

    def _op():
        order = _load_order(org_id, order_id, lock=True)

        intent_service.restore_order_stock(order, user_id=user_id)
        intent_service.post_order_refund(order, user_id=user_id)

        snapshot = order.to_dict()
        db.session.delete(order)
        db.session.flush()
        return snapshot

    return run_with_retry(_op)
