# Overview: Flask API routes for inspecting and draining the notification outbox.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PapuError
from ..services import notification_service
from ..services.authorization_service import NOTIFICATIONS_MANAGE
from ..decorators import require_auth, require_action


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_action(NOTIFICATIONS_MANAGE)
def list_outbox_route():
    """Query params: status (PENDING, SENT, FAILED), limit"""
    try:
        limit = min(request.args.get("limit", 100, type=int), 500)
        rows = notification_service.list_outbox(request.args.get("status"), limit=limit)
        return jsonify({"notifications": [r.to_dict() for r in rows]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/dispatch")
@require_auth
@require_action(NOTIFICATIONS_MANAGE)
def dispatch_route():
    """Attempt delivery of pending notifications now. Sink failures are counted, not raised."""
    try:
        summary = notification_service.dispatch_pending()
        return jsonify({"summary": summary}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to dispatch notifications")
        return jsonify({"error": "Internal server error"}), 500
