# Overview: Flask API routes for remittance operations; parses input and returns JSON responses.

# backend/papu/routes/remittances.py
"""
Remittance API Routes

DESIGN:
- /quote re-runs the financial calculator; creation recomputes the same
  figures server-side and never trusts client totals.
- Delivery confirmation is open to the admin, the sender, or the linked
  recipient account (decided in remittance_service).
"""

from flask import Blueprint, request, jsonify, current_app, send_file

from ..errors import NotFoundError, PapuError, ValidationError
from ..services import remittance_service, proof_service, history_service
from ..services.authorization_service import (
    REMITTANCE_CONFIRM_DELIVERY,
    REMITTANCE_LIST_ALL,
    REMITTANCE_SUBMIT_PROOF,
    REMITTANCE_VIEW_STATS,
    authorize,
)
from ..decorators import require_auth, require_action, current_caller
from papu.time_utils import parse_iso_datetime


remittances_bp = Blueprint("remittances", __name__, url_prefix="/api/remittances")


def _remittance_payload(remittance, include_history: bool = False) -> dict:
    data = remittance.to_dict()
    data["delivery_alert"] = remittance_service.calculate_delivery_alert(remittance)
    if include_history:
        data["history"] = [
            entry.to_dict()
            for entry in history_service.get_history(history_service.KIND_REMITTANCE, remittance.id)
        ]
    return data


def _request_data() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _proof_ref(remittance, action: str, kind: str, data: dict, field: str):
    upload = request.files.get("file")
    if upload is not None:
        authorize(current_caller(), action, remittance)
        return proof_service.store_upload(kind, remittance.id, upload), True
    return data.get(field), False


def _parse_date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"invalid {name}")


# =============================================================================
# QUOTE / CREATE / READ
# =============================================================================

@remittances_bp.post("/quote")
@require_auth
def quote_route():
    """
    Request body: {"remittance_type_id": 1, "amount_cents": 10000}

    Returns the commission, total to pay and amount delivered.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = remittance_service.quote(
            current_caller(), data.get("remittance_type_id"), data.get("amount_cents")
        )
        return jsonify({"quote": result.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to quote remittance")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.post("")
@require_auth
def create_remittance_route():
    """
    Request body:
    {
        "remittance_type_id": 1,
        "amount_cents": 10000,
        "recipient_id": 5,                 (or "recipient_info": {...})
        "delivery_notes": "..."            (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        remittance = remittance_service.create_remittance(
            current_caller(),
            data.get("remittance_type_id"),
            data.get("amount_cents"),
            recipient_id=data.get("recipient_id"),
            recipient_info=data.get("recipient_info"),
            delivery_notes=data.get("delivery_notes"),
        )
        return jsonify({"remittance": _remittance_payload(remittance)}), 201

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create remittance")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.get("")
@require_auth
def list_remittances_route():
    try:
        limit = min(request.args.get("limit", 50, type=int), 200)
        offset = request.args.get("offset", 0, type=int)
        remittances = remittance_service.list_remittances(
            current_caller(),
            status=request.args.get("status"),
            all_users=request.args.get("all", "false").lower() == "true",
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "remittances": [_remittance_payload(r) for r in remittances],
            "limit": limit,
            "offset": offset,
        }), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list remittances")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.get("/<int:remittance_id>")
@require_auth
def get_remittance_route(remittance_id: int):
    try:
        remittance = remittance_service.get_remittance(current_caller(), remittance_id)
        return jsonify({"remittance": _remittance_payload(remittance, include_history=True)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get remittance")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT
# =============================================================================

@remittances_bp.post("/<int:remittance_id>/payment-proof")
@require_auth
def submit_payment_proof_route(remittance_id: int):
    """
    multipart: file, payment_reference, notes
    or JSON: {"payment_proof_ref": "...", "payment_reference": "...", "notes": "..."}
    """
    try:
        caller = current_caller()
        remittance = remittance_service.get_remittance(caller, remittance_id)
        data = _request_data()
        proof_ref, uploaded = _proof_ref(
            remittance, REMITTANCE_SUBMIT_PROOF, "remittance-payment", data, "payment_proof_ref"
        )
        with proof_service.discard_on_error(proof_ref if uploaded else None):
            remittance = remittance_service.submit_payment_proof(
                caller,
                remittance_id,
                proof_ref,
                payment_reference=data.get("payment_reference"),
                notes=data.get("notes"),
            )
        return jsonify({"remittance": _remittance_payload(remittance)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit remittance payment proof")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.get("/<int:remittance_id>/proofs/<string:which>")
@require_auth
def download_proof_route(remittance_id: int, which: str):
    """which: "payment" or "delivery"."""
    try:
        remittance = remittance_service.get_remittance(current_caller(), remittance_id)
        refs = {"payment": remittance.payment_proof_ref, "delivery": remittance.delivery_proof_ref}
        reference = refs.get(which)
        if not reference:
            raise NotFoundError("Proof not found", details={"remittance_id": remittance_id, "proof": which})
        return send_file(proof_service.resolve_proof_path(reference))

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to download remittance proof")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.post("/<int:remittance_id>/validate-payment")
@require_auth
def validate_payment_route(remittance_id: int):
    try:
        data = request.get_json(silent=True) or {}
        remittance = remittance_service.validate_payment(current_caller(), remittance_id, notes=data.get("notes"))
        return jsonify({"remittance": _remittance_payload(remittance)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate remittance payment")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.post("/<int:remittance_id>/reject-payment")
@require_auth
def reject_payment_route(remittance_id: int):
    """Request body: {"reason": "..."} (required)"""
    try:
        data = request.get_json(silent=True) or {}
        remittance = remittance_service.reject_payment(current_caller(), remittance_id, data.get("reason"))
        return jsonify({"remittance": _remittance_payload(remittance)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject remittance payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# FULFILMENT
# =============================================================================

@remittances_bp.post("/<int:remittance_id>/start-processing")
@require_auth
def start_processing_route(remittance_id: int):
    try:
        data = request.get_json(silent=True) or {}
        remittance = remittance_service.start_processing(current_caller(), remittance_id, notes=data.get("notes"))
        return jsonify({"remittance": _remittance_payload(remittance)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to start remittance processing")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.post("/<int:remittance_id>/confirm-delivery")
@require_auth
def confirm_delivery_route(remittance_id: int):
    """Optional delivery proof: multipart file or {"delivery_proof_ref": "..."}; optional notes."""
    try:
        caller = current_caller()
        remittance = remittance_service.get_remittance(caller, remittance_id)
        data = _request_data()
        proof_ref, uploaded = _proof_ref(
            remittance, REMITTANCE_CONFIRM_DELIVERY, "remittance-delivery", data, "delivery_proof_ref"
        )
        with proof_service.discard_on_error(proof_ref if uploaded else None):
            remittance = remittance_service.confirm_delivery(
                caller, remittance_id, delivery_proof_ref=proof_ref, notes=data.get("notes")
            )
        return jsonify({"remittance": _remittance_payload(remittance)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm remittance delivery")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.post("/<int:remittance_id>/complete")
@require_auth
def complete_remittance_route(remittance_id: int):
    try:
        remittance = remittance_service.complete_remittance(current_caller(), remittance_id)
        return jsonify({"remittance": _remittance_payload(remittance)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete remittance")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.post("/<int:remittance_id>/cancel")
@require_auth
def cancel_remittance_route(remittance_id: int):
    """Request body: {"reason": "..."} (required)"""
    try:
        data = request.get_json(silent=True) or {}
        remittance = remittance_service.cancel_remittance(current_caller(), remittance_id, data.get("reason"))
        return jsonify({"remittance": _remittance_payload(remittance)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel remittance")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ADMIN REPORTING
# =============================================================================

@remittances_bp.get("/alerts")
@require_auth
@require_action(REMITTANCE_LIST_ALL)
def delivery_alerts_route():
    """Validated or processing remittances due within 24 hours (or overdue)."""
    try:
        remittances = remittance_service.get_remittances_needing_alert(current_caller())
        return jsonify({"remittances": [_remittance_payload(r) for r in remittances]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery alerts")
        return jsonify({"error": "Internal server error"}), 500


@remittances_bp.get("/stats")
@require_auth
@require_action(REMITTANCE_VIEW_STATS)
def stats_route():
    """Query params: start, end (ISO-8601, inclusive, on created_at)"""
    try:
        stats = remittance_service.get_remittance_stats(
            current_caller(),
            start=_parse_date_arg("start"),
            end=_parse_date_arg("end"),
        )
        return jsonify({"stats": stats}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute remittance stats")
        return jsonify({"error": "Internal server error"}), 500
