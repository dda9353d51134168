# Overview: Flask API routes for shipping zones and shipping quotes.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PapuError
from ..services import shipping_service
from ..services.authorization_service import SHIPPING_ZONES_MANAGE
from ..decorators import require_auth, require_action, current_caller


shipping_zones_bp = Blueprint("shipping_zones", __name__, url_prefix="/api/shipping-zones")


@shipping_zones_bp.get("")
@require_auth
def list_zones_route():
    """Active zones for everyone; admins may pass ?include_inactive=true."""
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        if include_inactive and not current_caller().is_admin:
            include_inactive = False
        zones = shipping_service.list_zones(include_inactive=include_inactive)
        return jsonify({"shipping_zones": [z.to_dict() for z in zones]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list shipping zones")
        return jsonify({"error": "Internal server error"}), 500


@shipping_zones_bp.get("/quote")
@require_auth
def shipping_quote_route():
    """
    Shipping charge an order to this location would carry.

    Query params: province (required), municipality (optional)

    Returns:
        200: {"shipping": {...}}
        400: Province missing or not served
    """
    try:
        quote = shipping_service.calculate_shipping(
            request.args.get("province"),
            request.args.get("municipality"),
        )
        return jsonify({"shipping": quote.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to quote shipping")
        return jsonify({"error": "Internal server error"}), 500


@shipping_zones_bp.post("")
@require_auth
@require_action(SHIPPING_ZONES_MANAGE)
def create_zone_route():
    """
    Request body:
    {
        "province_name": "La Habana",
        "municipality_name": "Playa",      (optional, null = province default)
        "shipping_cost_cents": 500,
        "free_shipping": false,            (optional)
        "delivery_days": 3,                (optional)
        "delivery_note": "..."             (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        zone = shipping_service.create_zone(current_caller(), data)
        return jsonify({"shipping_zone": zone.to_dict()}), 201

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create shipping zone")
        return jsonify({"error": "Internal server error"}), 500


@shipping_zones_bp.patch("/<int:zone_id>")
@require_auth
@require_action(SHIPPING_ZONES_MANAGE)
def update_zone_route(zone_id: int):
    try:
        data = request.get_json(silent=True) or {}
        zone = shipping_service.update_zone(current_caller(), zone_id, data)
        return jsonify({"shipping_zone": zone.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update shipping zone")
        return jsonify({"error": "Internal server error"}), 500


@shipping_zones_bp.post("/<int:zone_id>/deactivate")
@require_auth
@require_action(SHIPPING_ZONES_MANAGE)
def deactivate_zone_route(zone_id: int):
    try:
        zone = shipping_service.set_zone_active(current_caller(), zone_id, False)
        return jsonify({"shipping_zone": zone.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate shipping zone")
        return jsonify({"error": "Internal server error"}), 500


@shipping_zones_bp.post("/<int:zone_id>/activate")
@require_auth
@require_action(SHIPPING_ZONES_MANAGE)
def activate_zone_route(zone_id: int):
    try:
        zone = shipping_service.set_zone_active(current_caller(), zone_id, True)
        return jsonify({"shipping_zone": zone.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to activate shipping zone")
        return jsonify({"error": "Internal server error"}), 500
