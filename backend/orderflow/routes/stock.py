# Overview: Flask API routes for stock levels; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import stock_service, tenant_service
from ..services.catalog_service import CatalogNotFoundError
from ..services.stock_service import StockLedgerError, StockNotFoundError
from ..services.tenant_service import TenantAccessError
from ..services.concurrency import run_and_commit
from ..decorators import require_auth, require_operation


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _store_filter():
    store_id = request.args.get("store_id", type=int)
    if store_id is not None:
        tenant_service.require_store_in_org(store_id, g.org_id)
    return store_id


@stock_bp.get("")
@require_auth
@require_operation("view_inventory")
def list_stock_route():
    """Query params: store_id (optional)."""
    try:
        items = stock_service.list_stock(g.org_id, store_id=_store_filter())
        return jsonify({"stock": [item.to_dict() for item in items]}), 200
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/low")
@require_auth
@require_operation("view_inventory")
def low_stock_route():
    """Stock items at or below the product's min_stock_level."""
    try:
        items = stock_service.get_low_stock_items(g.org_id, store_id=_store_filter())
        return jsonify({"stock": [item.to_dict() for item in items]}), 200
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/movements")
@require_auth
@require_operation("view_inventory")
def list_movements_route():
    """Query params: order_id, stock_item_id (both optional)."""
    try:
        movements = stock_service.list_movements(
            g.org_id,
            order_id=request.args.get("order_id", type=int),
            stock_item_id=request.args.get("stock_item_id", type=int),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.put("/<int:product_id>/<int:store_id>")
@require_auth
@require_operation("manage_inventory")
def set_stock_count_route(product_id: int, store_id: int):
    """
    Set the physical count for a product at a store.

    Request body: {"current_stock": int}

    Returns:
        200: Stock updated
        400: Invalid count
        404: Unknown product or store
    """
    data = request.get_json() or {}

    try:
        tenant_service.require_store_in_org(store_id, g.org_id)
        item = run_and_commit(
            stock_service.set_stock_count,
            org_id=g.org_id,
            product_id=product_id,
            store_id=store_id,
            current_stock=int(data["current_stock"]),
            user_id=g.current_user.id,
        )

        return jsonify({"stock": item.to_dict()}), 200

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        db.session.rollback()
        return jsonify({"error": "current_stock must be an integer"}), 400
    except (TenantAccessError, CatalogNotFoundError, StockNotFoundError) as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except StockLedgerError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set stock count")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/<int:product_id>/<int:store_id>/restock")
@require_auth
@require_operation("manage_inventory")
def restock_route(product_id: int, store_id: int):
    """Request body: {"quantity": int}"""
    data = request.get_json() or {}

    try:
        item = run_and_commit(
            stock_service.restock,
            org_id=g.org_id,
            product_id=product_id,
            store_id=store_id,
            quantity=int(data["quantity"]),
            user_id=g.current_user.id,
        )

        return jsonify({"stock": item.to_dict()}), 200

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        db.session.rollback()
        return jsonify({"error": "quantity must be an integer"}), 400
    except StockNotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except StockLedgerError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to restock")
        return jsonify({"error": "Internal server error"}), 500
