# Overview: Flask API routes for customers and their credit accounts.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import credit_service
from ..services.credit_service import CreditError, CustomerNotFoundError
from ..services.concurrency import run_and_commit
from ..decorators import require_auth, require_operation


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _customer_payload(customer) -> dict:
    data = customer.to_dict()
    data["credit_status"] = credit_service.get_credit_status(customer)
    return data


@customers_bp.post("")
@require_auth
@require_operation("manage_customers")
def create_customer_route():
    """
    Request body:
    {
        "first_name": str,
        "last_name": str,
        "email": str (optional),
        "phone": str (optional),
        "address": str (optional),
        "city": str (optional),
        "credit_limit_cents": int (optional, default 0 = cash only),
        "notes": str (optional)
    }
    """
    data = request.get_json() or {}

    try:
        customer = run_and_commit(
            credit_service.create_customer,
            org_id=g.org_id,
            first_name=data["first_name"],
            last_name=data["last_name"],
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            city=data.get("city"),
            credit_limit_cents=int(data.get("credit_limit_cents", 0)),
            notes=data.get("notes"),
        )

        return jsonify({"customer": _customer_payload(customer)}), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except CreditError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("")
@require_auth
@require_operation("view_customers")
def list_customers_route():
    """Query params: credit_status (cash-only | good | warning | high-risk), optional."""
    credit_status = request.args.get("credit_status")

    try:
        if credit_status:
            customers = credit_service.list_customers_by_credit_status(g.org_id, credit_status)
        else:
            customers = credit_service.list_customers(g.org_id)
        return jsonify({"customers": [_customer_payload(c) for c in customers]}), 200
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_operation("view_customers")
def get_customer_route(customer_id: int):
    try:
        customer = credit_service.get_customer(g.org_id, customer_id)
        return jsonify({"customer": _customer_payload(customer)}), 200
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.get("/<int:customer_id>/transactions")
@require_auth
@require_operation("view_customer_accounts")
def list_transactions_route(customer_id: int):
    """Credit ledger for a customer, oldest first."""
    try:
        transactions = credit_service.list_customer_transactions(g.org_id, customer_id)
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.post("/<int:customer_id>/payments")
@require_auth
@require_operation("manage_credit")
def record_payment_route(customer_id: int):
    """
    Record a payment against the customer's credit balance.

    Request body: {"amount_cents": int, "reference": str (optional), "note": str (optional)}
    """
    data = request.get_json() or {}

    try:
        txn = run_and_commit(
            credit_service.record_payment,
            org_id=g.org_id,
            customer_id=customer_id,
            amount_cents=int(data["amount_cents"]),
            user_id=g.current_user.id,
            reference=data.get("reference"),
            note=data.get("note"),
        )

        customer = credit_service.get_customer(g.org_id, customer_id)
        return jsonify({"transaction": txn.to_dict(), "customer": _customer_payload(customer)}), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        db.session.rollback()
        return jsonify({"error": "amount_cents must be an integer"}), 400
    except CustomerNotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except CreditError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>/credit-limit")
@require_auth
@require_operation("manage_credit")
def set_credit_limit_route(customer_id: int):
    """Request body: {"credit_limit_cents": int}"""
    data = request.get_json() or {}

    try:
        customer = run_and_commit(
            credit_service.set_credit_limit,
            org_id=g.org_id,
            customer_id=customer_id,
            credit_limit_cents=int(data["credit_limit_cents"]),
        )

        return jsonify({"customer": _customer_payload(customer)}), 200

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        db.session.rollback()
        return jsonify({"error": "credit_limit_cents must be an integer"}), 400
    except CustomerNotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except CreditError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set credit limit")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/credit-eligibility")
@require_auth
@require_operation("view_customer_accounts")
def credit_eligibility_route(customer_id: int):
    """Query params: amount_cents (required)."""
    amount_cents = request.args.get("amount_cents", type=int)
    if amount_cents is None:
        return jsonify({"error": "amount_cents query parameter is required"}), 400

    try:
        customer = credit_service.get_customer(g.org_id, customer_id)
    except CustomerNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    eligibility = credit_service.check_credit_eligibility(customer, amount_cents)
    return jsonify({
        "is_eligible": eligibility.is_eligible,
        "available_credit_cents": eligibility.available_credit_cents,
        "required_cents": eligibility.required_cents,
        "message": eligibility.message,
        "credit_status": credit_service.get_credit_status(customer),
    }), 200
