# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/orderflow/routes/orders.py
"""
Order API routes.

Mutating routes pass the tenant and acting user to order_service, which
performs the capability check itself. Read routes are gated with
@require_operation.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import order_service, intent_service
from ..services.order_service import OrderError, OrderNotFoundError
from ..services.intent_service import LedgerSideEffectError
from ..services.permission_service import PermissionDeniedError
from ..services.concurrency import run_and_commit
from ..decorators import require_auth, require_operation, permission_denied_response
from orderflow.time_utils import parse_iso_datetime


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

EDITABLE_FIELDS = ("assigned_packer_id", "delivery_method", "delivery_address", "notes")


def _error_response(e: Exception, action: str):
    """Map service errors to HTTP responses. The session is rolled back first."""
    db.session.rollback()
    if isinstance(e, KeyError):
        return jsonify({"error": f"Missing required field: {e}"}), 400
    if isinstance(e, PermissionDeniedError):
        return permission_denied_response(e)
    if isinstance(e, OrderNotFoundError):
        return jsonify({"error": str(e), "details": e.details}), 404
    if isinstance(e, OrderError):
        return jsonify({"error": str(e), "details": e.details}), 400
    if isinstance(e, LedgerSideEffectError):
        return jsonify({"error": str(e)}), 409

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create a pending order.

    Request body:
    {
        "customer_id": int,
        "items": [{"product_id": int, "store_id": int, "quantity": int}, ...],
        "payment_type": "cash" | "credit" | "bank_transfer" | "mobile_money",
        "assigned_packer_id": int,
        "delivery_method": "customer_pickup" | "local_delivery" | "cargo_delivery",
        "delivery_address": {"street", "city", "state", "zip_code", "country"} (optional for pickup),
        "payment_status": str (optional),
        "notes": str (optional)
    }

    Returns:
        201: Order created
        400: Validation failed
        403: Forbidden
        404: Unknown customer, product or store
    """
    data = request.get_json() or {}

    try:
        order = run_and_commit(
            order_service.create_order,
            org_id=g.org_id,
            user_id=g.current_user.id,
            customer_id=data["customer_id"],
            items=data["items"],
            payment_type=data["payment_type"],
            assigned_packer_id=data.get("assigned_packer_id"),
            delivery_method=data.get("delivery_method"),
            delivery_address=data.get("delivery_address"),
            notes=data.get("notes"),
            payment_status=data.get("payment_status", "pending"),
        )

        return jsonify({"order": order.to_dict()}), 201

    except Exception as e:
        return _error_response(e, "create order")


@orders_bp.get("")
@require_auth
@require_operation("view_orders")
def list_orders_route():
    """
    List orders for the caller's organization.

    Query params: status, customer_id, packer_id, created_from, created_to
    (ISO-8601), limit (default 100), offset.
    """
    try:
        created_from = parse_iso_datetime(request.args.get("created_from"))
        created_to = parse_iso_datetime(request.args.get("created_to"))
    except ValueError:
        return jsonify({"error": "created_from / created_to must be ISO-8601 datetimes"}), 400

    try:
        orders = order_service.list_orders(
            g.org_id,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            packer_id=request.args.get("packer_id", type=int),
            created_from=created_from,
            created_to=created_to,
            limit=min(request.args.get("limit", 100, type=int), 500),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"orders": [o.to_dict(include_items=False) for o in orders]}), 200

    except Exception as e:
        return _error_response(e, "list orders")


@orders_bp.get("/<int:order_id>")
@require_auth
@require_operation("view_orders")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.org_id, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except Exception as e:
        return _error_response(e, "get order")


@orders_bp.patch("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """
    Edit a pending order. Only the fields present in the body change.

    Editable: assigned_packer_id, delivery_method, delivery_address, notes.
    """
    data = request.get_json() or {}
    fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}

    try:
        order = run_and_commit(
            order_service.update_order,
            org_id=g.org_id,
            order_id=order_id,
            user_id=g.current_user.id,
            **fields,
        )

        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        return _error_response(e, "update order")


@orders_bp.delete("/<int:order_id>")
@require_auth
def delete_order_route(order_id: int):
    """
    Delete an order after restoring its stock and refunding credit.

    Returns:
        200: Snapshot of the deleted order
        403: Forbidden
        404: Order not found
    """
    try:
        snapshot = run_and_commit(
            order_service.delete_order,
            org_id=g.org_id,
            order_id=order_id,
            user_id=g.current_user.id,
        )

        return jsonify({"deleted": True, "order": snapshot}), 200

    except Exception as e:
        return _error_response(e, "delete order")


@orders_bp.post("/<int:order_id>/approve")
@require_auth
def approve_order_route(order_id: int):
    """
    Approve a pending order (deducts stock).

    Returns:
        200: Order approved
        400: Not pending, or missing packer / delivery method / address
        403: Forbidden
        404: Order not found
    """
    try:
        order = run_and_commit(
            order_service.approve_order,
            org_id=g.org_id,
            order_id=order_id,
            user_id=g.current_user.id,
        )

        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        return _error_response(e, "approve order")


@orders_bp.post("/<int:order_id>/status")
@require_auth
def update_status_route(order_id: int):
    """
    Generic status transition.

    Request body: {"status": str}
    """
    data = request.get_json() or {}

    try:
        order = run_and_commit(
            order_service.update_order_status,
            org_id=g.org_id,
            order_id=order_id,
            new_status=data["status"],
            user_id=g.current_user.id,
        )

        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        return _error_response(e, "update order status")


@orders_bp.post("/<int:order_id>/payment-status")
@require_auth
def update_payment_status_route(order_id: int):
    """Request body: {"payment_status": "pending" | "paid" | "partial" | "overdue"}"""
    data = request.get_json() or {}

    try:
        order = run_and_commit(
            order_service.update_payment_status,
            org_id=g.org_id,
            order_id=order_id,
            payment_status=data["payment_status"],
            user_id=g.current_user.id,
        )

        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        return _error_response(e, "update payment status")


@orders_bp.post("/<int:order_id>/prepared")
@require_auth
def mark_prepared_route(order_id: int):
    try:
        order = run_and_commit(
            order_service.mark_order_prepared,
            org_id=g.org_id,
            order_id=order_id,
            user_id=g.current_user.id,
        )

        return jsonify({"order": order.to_dict()}), 200

    except Exception as e:
        return _error_response(e, "mark order prepared")


@orders_bp.get("/<int:order_id>/intents")
@require_auth
@require_operation("view_orders")
def list_intents_route(order_id: int):
    """Ledger side effects recorded for an order, oldest first."""
    try:
        order = order_service.get_order(g.org_id, order_id)
        intents = intent_service.list_order_intents(g.org_id, order.id)
        return jsonify({"intents": [i.to_dict() for i in intents]}), 200
    except Exception as e:
        return _error_response(e, "list order intents")
