# Overview: Flask API routes for the packer workflow and preparation queue.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import fulfillment_service
from ..services.order_service import OrderError, OrderNotFoundError
from ..services.permission_service import PermissionDeniedError
from ..services.concurrency import run_and_commit
from ..decorators import require_auth, require_operation, permission_denied_response


fulfillment_bp = Blueprint("fulfillment", __name__, url_prefix="/api/fulfillment")


def _error_response(e: Exception, action: str):
    db.session.rollback()
    if isinstance(e, KeyError):
        return jsonify({"error": f"Missing required field: {e}"}), 400
    if isinstance(e, PermissionDeniedError):
        return permission_denied_response(e)
    if isinstance(e, OrderNotFoundError):
        return jsonify({"error": str(e), "details": e.details}), 404
    if isinstance(e, OrderError):
        return jsonify({"error": str(e), "details": e.details}), 400

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def _queue_entry(order) -> dict:
    data = order.to_dict()
    data["next_steps"] = fulfillment_service.next_steps(order)
    return data


@fulfillment_bp.get("/queue")
@require_auth
@require_operation("view_orders")
def preparation_queue_route():
    """
    Orders waiting on or moving through the packer workflow.

    Query params:
        packer_id: int (optional); "me" selects the caller's own queue
    """
    packer_param = request.args.get("packer_id")
    if packer_param == "me":
        packer_id = g.current_user.id
    elif packer_param:
        try:
            packer_id = int(packer_param)
        except ValueError:
            return jsonify({"error": "packer_id must be an integer or 'me'"}), 400
    else:
        packer_id = None

    try:
        orders = fulfillment_service.list_preparation_queue(g.org_id, packer_id=packer_id)
        return jsonify({"orders": [_queue_entry(o) for o in orders]}), 200
    except Exception as e:
        return _error_response(e, "load preparation queue")


@fulfillment_bp.post("/orders/<int:order_id>/packer-status")
@require_auth
def update_packer_status_route(order_id: int):
    """
    Move an order along its packer flow.

    Request body:
    {
        "status": "accepted" | "packing" | "done_packing" | "handed_to_delivery" | "transported",
        "transporter_details": {"name", "phone", "vehicle_number", "company"} (optional),
        "cargo_receipt": {"receipt_number", "transporter_name", "transporter_phone", "image_url"} (optional)
    }

    Returns:
        200: Status updated
        400: Illegal transition or missing transporter / cargo details
        403: Forbidden
        404: Order not found
    """
    data = request.get_json() or {}

    try:
        order = run_and_commit(
            fulfillment_service.update_packer_status,
            org_id=g.org_id,
            order_id=order_id,
            status=data["status"],
            user_id=g.current_user.id,
            transporter_details=data.get("transporter_details"),
            cargo_receipt=data.get("cargo_receipt"),
        )

        return jsonify({"order": _queue_entry(order)}), 200

    except Exception as e:
        return _error_response(e, "update packer status")


@fulfillment_bp.post("/orders/<int:order_id>/transporter")
@require_auth
def update_transporter_route(order_id: int):
    """Request body: {"name": str, "phone": str, "vehicle_number": str, "company": str (optional)}"""
    data = request.get_json() or {}

    try:
        order = run_and_commit(
            fulfillment_service.update_transporter_details,
            org_id=g.org_id,
            order_id=order_id,
            user_id=g.current_user.id,
            name=data["name"],
            phone=data["phone"],
            vehicle_number=data.get("vehicle_number"),
            company=data.get("company"),
        )

        return jsonify({"order": _queue_entry(order)}), 200

    except Exception as e:
        return _error_response(e, "update transporter details")


@fulfillment_bp.post("/orders/<int:order_id>/cargo-receipt")
@require_auth
def upload_cargo_receipt_route(order_id: int):
    """
    Attach a cargo receipt and mark the order transported.

    Request body:
    {
        "receipt_number": str,
        "transporter_name": str,
        "transporter_phone": str,
        "image_url": str
    }
    """
    data = request.get_json() or {}

    try:
        order = run_and_commit(
            fulfillment_service.update_cargo_receipt,
            org_id=g.org_id,
            order_id=order_id,
            user_id=g.current_user.id,
            receipt_number=data["receipt_number"],
            transporter_name=data["transporter_name"],
            transporter_phone=data["transporter_phone"],
            image_url=data["image_url"],
        )

        return jsonify({"order": _queue_entry(order)}), 200

    except Exception as e:
        return _error_response(e, "upload cargo receipt")
