# Overview: Flask API routes for remittance types (commission profiles).

from flask import Blueprint, request, jsonify, current_app

from ..errors import PapuError
from ..services import remittance_service
from ..services.authorization_service import REMITTANCE_TYPES_MANAGE
from ..decorators import require_auth, require_action, current_caller


remittance_types_bp = Blueprint("remittance_types", __name__, url_prefix="/api/remittance-types")


@remittance_types_bp.get("")
@require_auth
def list_types_route():
    """Active types for everyone; admins may pass ?include_inactive=true."""
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        if include_inactive and not current_caller().is_admin:
            include_inactive = False
        types = remittance_service.list_remittance_types(include_inactive=include_inactive)
        return jsonify({"remittance_types": [t.to_dict() for t in types]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list remittance types")
        return jsonify({"error": "Internal server error"}), 500


@remittance_types_bp.post("")
@require_auth
@require_action(REMITTANCE_TYPES_MANAGE)
def create_type_route():
    """
    Request body:
    {
        "name": "USD -> CUP cash",
        "currency_code": "USD",
        "delivery_currency": "CUP",
        "exchange_rate": "120",
        "commission_percentage": "2",
        "commission_fixed_cents": 0,
        "min_amount_cents": 1000,
        "max_amount_cents": 500000,       (optional, null = unbounded)
        "delivery_method": "CASH",
        "max_delivery_days": 3
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        remittance_type = remittance_service.create_remittance_type(current_caller(), data)
        return jsonify({"remittance_type": remittance_type.to_dict()}), 201

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create remittance type")
        return jsonify({"error": "Internal server error"}), 500


@remittance_types_bp.patch("/<int:type_id>")
@require_auth
@require_action(REMITTANCE_TYPES_MANAGE)
def update_type_route(type_id: int):
    """Existing remittances keep the figures they were created with."""
    try:
        data = request.get_json(silent=True) or {}
        remittance_type = remittance_service.update_remittance_type(current_caller(), type_id, data)
        return jsonify({"remittance_type": remittance_type.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update remittance type")
        return jsonify({"error": "Internal server error"}), 500


@remittance_types_bp.post("/<int:type_id>/deactivate")
@require_auth
@require_action(REMITTANCE_TYPES_MANAGE)
def deactivate_type_route(type_id: int):
    try:
        remittance_type = remittance_service.set_remittance_type_active(current_caller(), type_id, False)
        return jsonify({"remittance_type": remittance_type.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate remittance type")
        return jsonify({"error": "Internal server error"}), 500


@remittance_types_bp.post("/<int:type_id>/activate")
@require_auth
@require_action(REMITTANCE_TYPES_MANAGE)
def activate_type_route(type_id: int):
    try:
        remittance_type = remittance_service.set_remittance_type_active(current_caller(), type_id, True)
        return jsonify({"remittance_type": remittance_type.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to activate remittance type")
        return jsonify({"error": "Internal server error"}), 500
