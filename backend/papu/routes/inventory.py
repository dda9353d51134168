# Overview: Flask API routes for inventory ledger inspection and admin stock changes.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PapuError
from ..services import inventory_service
from ..services.authorization_service import INVENTORY_MANAGE
from ..decorators import require_auth, require_action, current_caller


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_action(INVENTORY_MANAGE)
def list_inventory_route():
    """Query params: low_stock=true to list only records at or below their alert level."""
    try:
        low_stock_only = request.args.get("low_stock", "false").lower() == "true"
        records = inventory_service.list_inventory(low_stock_only=low_stock_only)
        return jsonify({"inventory": [r.to_dict() for r in records]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>")
@require_auth
@require_action(INVENTORY_MANAGE)
def get_inventory_route(product_id: int):
    try:
        record = inventory_service.get_inventory_record(product_id)
        limit = min(request.args.get("limit", 50, type=int), 500)
        movements = inventory_service.list_movements(product_id, limit=limit)
        return jsonify({
            "inventory": record.to_dict(),
            "movements": [m.to_dict() for m in movements],
        }), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/receive")
@require_auth
@require_action(INVENTORY_MANAGE)
def receive_route(product_id: int):
    """Request body: {"quantity": 10, "note": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        record = inventory_service.receive_stock(
            current_caller(), product_id, data.get("quantity"), note=data.get("note")
        )
        return jsonify({"inventory": record.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/adjust")
@require_auth
@require_action(INVENTORY_MANAGE)
def adjust_route(product_id: int):
    """
    Request body: {"delta": -2, "note": "damaged"}

    Returns 400 if the adjustment would leave less on hand than is reserved.
    """
    try:
        data = request.get_json(silent=True) or {}
        record = inventory_service.adjust_stock(
            current_caller(), product_id, data.get("delta"), note=data.get("note")
        )
        return jsonify({"inventory": record.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.patch("/<int:product_id>")
@require_auth
@require_action(INVENTORY_MANAGE)
def update_threshold_route(product_id: int):
    """Request body: {"min_stock_alert": 5}"""
    try:
        data = request.get_json(silent=True) or {}
        record = inventory_service.set_min_stock_alert(current_caller(), product_id, data.get("min_stock_alert"))
        return jsonify({"inventory": record.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update stock alert")
        return jsonify({"error": "Internal server error"}), 500
