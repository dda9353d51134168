# Overview: Flask API routes for the caller's saved recipients.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PapuError
from ..services import recipient_service
from ..decorators import require_auth, current_caller


recipients_bp = Blueprint("recipients", __name__, url_prefix="/api/recipients")


@recipients_bp.get("")
@require_auth
def list_recipients_route():
    try:
        recipients = recipient_service.list_recipients(current_caller())
        return jsonify({"recipients": [r.to_dict() for r in recipients]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list recipients")
        return jsonify({"error": "Internal server error"}), 500


@recipients_bp.post("")
@require_auth
def create_recipient_route():
    """
    Request body:
    {
        "full_name": "Maria Perez", "phone": "+53 5 1234567",
        "province": "La Habana", "municipality": "Plaza", "address": "...",
        "id_number": "...", "user_id": 12    (optional linked account)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        recipient = recipient_service.create_recipient(current_caller(), data)
        return jsonify({"recipient": recipient.to_dict()}), 201

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create recipient")
        return jsonify({"error": "Internal server error"}), 500


@recipients_bp.patch("/<int:recipient_id>")
@require_auth
def update_recipient_route(recipient_id: int):
    try:
        data = request.get_json(silent=True) or {}
        recipient = recipient_service.update_recipient(current_caller(), recipient_id, data)
        return jsonify({"recipient": recipient.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update recipient")
        return jsonify({"error": "Internal server error"}), 500


@recipients_bp.delete("/<int:recipient_id>")
@require_auth
def delete_recipient_route(recipient_id: int):
    try:
        recipient_service.deactivate_recipient(current_caller(), recipient_id)
        return jsonify({"status": "deleted"}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete recipient")
        return jsonify({"error": "Internal server error"}), 500
