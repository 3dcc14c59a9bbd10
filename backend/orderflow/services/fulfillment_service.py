# Overview: Packer workflow for approved orders, per delivery method.

"""
Fulfillment Controller

After approval an order either takes the direct path (mark_order_prepared ->
processing) or enters the packer workflow driven from the preparation queue:

    local_delivery:  approved -> accepted -> packing -> done_packing
                     -> handed_to_delivery -> transported
    customer_pickup: approved -> accepted -> packing -> [done_packing]
                     -> handed_to_delivery
    cargo_delivery:  approved -> accepted -> packing -> done_packing
                     -> transported

Rules enforced by can_transition():
- forward moves advance one step (done_packing may be skipped for pickup)
- accepted / packing / done_packing may step back among themselves
- handed_to_delivery can only move to transported
- nothing leaves transported

Entering handed_to_delivery on a local delivery needs transporter details;
entering transported on a cargo delivery needs a cargo receipt. Every accepted
move stamps prepared_by / prepared_at with the acting user.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order
from . import permission_service
from .concurrency import lock_for_update, run_with_retry
from .order_service import (
    DELIVERY_CARGO,
    DELIVERY_CUSTOMER_PICKUP,
    DELIVERY_LOCAL,
    ORDER_STATUS_ACCEPTED,
    ORDER_STATUS_APPROVED,
    ORDER_STATUS_DONE_PACKING,
    ORDER_STATUS_HANDED_TO_DELIVERY,
    ORDER_STATUS_PACKING,
    ORDER_STATUS_TRANSPORTED,
    OrderNotFoundError,
    OrderValidationError,
)
from orderflow.time_utils import utcnow


FLOWS = {
    DELIVERY_LOCAL: (
        ORDER_STATUS_APPROVED,
        ORDER_STATUS_ACCEPTED,
        ORDER_STATUS_PACKING,
        ORDER_STATUS_DONE_PACKING,
        ORDER_STATUS_HANDED_TO_DELIVERY,
        ORDER_STATUS_TRANSPORTED,
    ),
    DELIVERY_CUSTOMER_PICKUP: (
        ORDER_STATUS_APPROVED,
        ORDER_STATUS_ACCEPTED,
        ORDER_STATUS_PACKING,
        ORDER_STATUS_DONE_PACKING,
        ORDER_STATUS_HANDED_TO_DELIVERY,
    ),
    DELIVERY_CARGO: (
        ORDER_STATUS_APPROVED,
        ORDER_STATUS_ACCEPTED,
        ORDER_STATUS_PACKING,
        ORDER_STATUS_DONE_PACKING,
        ORDER_STATUS_TRANSPORTED,
    ),
}

SKIPPABLE_STEPS = {
    DELIVERY_CUSTOMER_PICKUP: frozenset({ORDER_STATUS_DONE_PACKING}),
}

REVERSIBLE_STEPS = frozenset({
    ORDER_STATUS_ACCEPTED,
    ORDER_STATUS_PACKING,
    ORDER_STATUS_DONE_PACKING,
})

QUEUE_STATUSES = (
    ORDER_STATUS_APPROVED,
    ORDER_STATUS_ACCEPTED,
    ORDER_STATUS_PACKING,
    ORDER_STATUS_DONE_PACKING,
    ORDER_STATUS_HANDED_TO_DELIVERY,
)

TRANSPORTER_FIELDS = ("name", "phone", "vehicle_number")
CARGO_RECEIPT_FIELDS = ("receipt_number", "transporter_name", "transporter_phone", "image_url")

STATUS_LABELS = {
    ORDER_STATUS_HANDED_TO_DELIVERY: "Handed to Delivery",
}


def _label(status: str) -> str:
    return STATUS_LABELS.get(status, status.replace("_", " ").title())


def can_transition(order: Order, target: str) -> tuple[bool, str | None]:
    """Return (allowed, reason) for moving order to target within its packer flow."""
    if not isinstance(target, str):
        return False, "Status must be a string"
    flow = FLOWS.get(order.delivery_method)
    if flow is None or not order.assigned_packer_id:
        return False, "Order has no packer workflow (missing packer or delivery method)"

    current = order.status
    if current == ORDER_STATUS_TRANSPORTED:
        return False, "Order is already completed and cannot be changed"
    if current not in flow:
        return False, f"Order in {current} status is not in the packer workflow"
    if target not in flow or target == ORDER_STATUS_APPROVED:
        return False, f"{_label(target)} is not a step for {order.delivery_method}"
    if current == ORDER_STATUS_HANDED_TO_DELIVERY and target != ORDER_STATUS_TRANSPORTED:
        return False, f'Cannot go backward from "{_label(current)}"'

    current_idx = flow.index(current)
    target_idx = flow.index(target)

    if target_idx == current_idx:
        return False, f"Order is already {_label(current)}"

    if target_idx < current_idx:
        if current in REVERSIBLE_STEPS and target in REVERSIBLE_STEPS:
            return True, None
        return False, f"Cannot move from {_label(current)} back to {_label(target)}"

    furthest = current_idx + 1
    skippable = SKIPPABLE_STEPS.get(order.delivery_method, frozenset())
    while furthest < len(flow) - 1 and flow[furthest] in skippable:
        furthest += 1
    if target_idx > furthest:
        return False, f"Cannot skip from {_label(current)} to {_label(target)}"

    return True, None


def next_steps(order: Order) -> list[str]:
    flow = FLOWS.get(order.delivery_method, ())
    return [status for status in flow if can_transition(order, status)[0]]


def _missing(payload: dict | None, fields) -> list[str]:
    payload = payload or {}
    return [field for field in fields if not str(payload.get(field) or "").strip()]


def _apply_transporter(order: Order, details: dict) -> None:
    order.transporter_name = details.get("name")
    order.transporter_phone = details.get("phone")
    order.transporter_vehicle_number = details.get("vehicle_number")
    order.transporter_company = details.get("company")


def _apply_cargo_receipt(order: Order, receipt: dict) -> None:
    order.cargo_receipt_number = receipt.get("receipt_number")
    order.cargo_transporter_name = receipt.get("transporter_name")
    order.cargo_transporter_phone = receipt.get("transporter_phone")
    order.cargo_image_url = receipt.get("image_url")
    order.cargo_uploaded_at = utcnow()


def _require_transporter(order: Order, details: dict | None) -> None:
    payload = details if details is not None else (order.transporter_details or {})
    missing = _missing(payload, TRANSPORTER_FIELDS)
    if missing:
        raise OrderValidationError(
            f"Transporter details required: missing {', '.join(missing)}",
            {"missing": missing, "order_id": order.id},
        )


def _require_cargo_receipt(order: Order, receipt: dict | None) -> None:
    payload = receipt if receipt is not None else (order.cargo_receipt or {})
    missing = _missing(payload, CARGO_RECEIPT_FIELDS)
    if missing:
        raise OrderValidationError(
            f"Cargo receipt required: missing {', '.join(missing)}",
            {"missing": missing, "order_id": order.id},
        )


def _load_order(org_id: int, order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id, org_id=org_id)).first()
    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order


def _stamp(order: Order, user_id: int) -> None:
    order.prepared_by_user_id = user_id
    order.prepared_at = utcnow()


def update_packer_status(
    *,
    org_id: int,
    order_id: int,
    status: str,
    user_id: int,
    transporter_details: dict | None = None,
    cargo_receipt: dict | None = None,
) -> Order:
    """
    Move an order along its packer flow.

    transporter_details / cargo_receipt are stored when given and are
    required (given now or already on the order) for the steps that need them.

    Raises:
        OrderValidationError: illegal move or missing required payload
        OrderNotFoundError, PermissionDeniedError
    """
    permission_service.require_capability(user_id=user_id, operation="update_packer_status", org_id=org_id)

    def _op():
        order = _load_order(org_id, order_id)
        allowed, reason = can_transition(order, status)
        if not allowed:
            raise OrderValidationError(reason, {"from": order.status, "to": status})

        if status == ORDER_STATUS_HANDED_TO_DELIVERY and order.delivery_method == DELIVERY_LOCAL:
            _require_transporter(order, transporter_details)
        if status == ORDER_STATUS_TRANSPORTED and order.delivery_method == DELIVERY_CARGO:
            _require_cargo_receipt(order, cargo_receipt)

        if transporter_details is not None:
            _apply_transporter(order, transporter_details)
        if cargo_receipt is not None:
            _apply_cargo_receipt(order, cargo_receipt)

        order.status = status
        _stamp(order, user_id)
        db.session.flush()
        return order

    return run_with_retry(_op)


def update_transporter_details(
    *,
    org_id: int,
    order_id: int,
    user_id: int,
    name: str,
    phone: str,
    vehicle_number: str | None = None,
    company: str | None = None,
) -> Order:
    """Record who carries the order. Status is unchanged."""
    permission_service.require_capability(
        user_id=user_id, operation="update_transporter_details", org_id=org_id
    )

    def _op():
        order = _load_order(org_id, order_id)
        if order.delivery_method not in (DELIVERY_LOCAL, DELIVERY_CUSTOMER_PICKUP):
            raise OrderValidationError(
                "Transporter details apply to local delivery and pickup orders",
                {"delivery_method": order.delivery_method},
            )
        flow = FLOWS[order.delivery_method]
        if order.status not in flow or order.status == ORDER_STATUS_TRANSPORTED:
            raise OrderValidationError(
                f"Cannot update transporter details in {order.status} status",
                {"status": order.status},
            )

        details = {"name": name, "phone": phone, "vehicle_number": vehicle_number, "company": company}
        required = TRANSPORTER_FIELDS if order.delivery_method == DELIVERY_LOCAL else ("name", "phone")
        missing = _missing(details, required)
        if missing:
            raise OrderValidationError(
                f"Transporter details required: missing {', '.join(missing)}", {"missing": missing}
            )

        _apply_transporter(order, details)
        _stamp(order, user_id)
        db.session.flush()
        return order

    return run_with_retry(_op)


def update_cargo_receipt(
    *,
    org_id: int,
    order_id: int,
    user_id: int,
    receipt_number: str,
    transporter_name: str,
    transporter_phone: str,
    image_url: str,
) -> Order:
    """Attach the cargo receipt and complete the order (-> transported)."""
    permission_service.require_capability(user_id=user_id, operation="update_cargo_receipt", org_id=org_id)

    def _op():
        order = _load_order(org_id, order_id)
        if order.delivery_method != DELIVERY_CARGO:
            raise OrderValidationError(
                "Cargo receipts apply to cargo delivery orders only",
                {"delivery_method": order.delivery_method},
            )
        allowed, reason = can_transition(order, ORDER_STATUS_TRANSPORTED)
        if not allowed:
            raise OrderValidationError(reason, {"from": order.status, "to": ORDER_STATUS_TRANSPORTED})

        receipt = {
            "receipt_number": receipt_number,
            "transporter_name": transporter_name,
            "transporter_phone": transporter_phone,
            "image_url": image_url,
        }
        _require_cargo_receipt(order, receipt)

        _apply_cargo_receipt(order, receipt)
        order.status = ORDER_STATUS_TRANSPORTED
        _stamp(order, user_id)
        db.session.flush()
        return order

    return run_with_retry(_op)


def list_preparation_queue(org_id: int, packer_id: int | None = None) -> list[Order]:
    """Approved orders still in the packer workflow, oldest approval first."""
    query = (
        db.session.query(Order)
        .filter(
            Order.org_id == org_id,
            Order.status.in_(QUEUE_STATUSES),
            Order.assigned_packer_id.isnot(None),
            Order.delivery_method.isnot(None),
        )
    )
    if packer_id is not None:
        query = query.filter(Order.assigned_packer_id == packer_id)
    return query.order_by(Order.approved_at, Order.id).all()
