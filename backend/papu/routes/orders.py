# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/papu/routes/orders.py
"""
Order API Routes

DESIGN:
- Every route resolves the caller via @require_auth and passes it
  explicitly to order_service; per-order authorization happens there,
  after the row is loaded.
- Payment and delivery proofs may be uploaded as multipart "file" or
  referenced by an existing proof-store reference in JSON.
"""

from flask import Blueprint, request, jsonify, current_app, send_file

from ..errors import NotFoundError, PapuError
from ..services import order_service, proof_service, history_service
from ..services.authorization_service import ORDER_CONFIRM_DELIVERY, ORDER_SUBMIT_PROOF, authorize
from ..decorators import require_auth, current_caller


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_payload(order, include_history: bool = False) -> dict:
    data = order.to_dict()
    data["days_in_processing"] = order_service.get_days_in_processing(order)
    if include_history:
        data["history"] = [
            entry.to_dict()
            for entry in history_service.get_history(history_service.KIND_ORDER, order.id)
        ]
    return data


def _proof_ref(order, action: str, kind: str, data: dict, field: str):
    """(reference, uploaded): uploaded is True when this request stored the file."""
    upload = request.files.get("file")
    if upload is not None:
        # Nothing is written to the proof store for a caller who may not act.
        authorize(current_caller(), action, order)
        return proof_service.store_upload(kind, order.id, upload), True
    return data.get(field), False


def _request_data() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


# =============================================================================
# CREATE / READ
# =============================================================================

@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order for the authenticated user and reserve its stock.
    Shipping is priced from the recipient's shipping zone.

    Request body:
    {
        "lines": [{"item_type": "PRODUCT", "product_id": 1, "quantity": 2},
                  {"item_type": "COMBO", "combo_id": 3, "quantity": 1}],
        "recipient_id": 5,                  (or "recipient_info": {...})
        "delivery_instructions": "...",     (optional)
        "payment_method": "ZELLE",          (optional)
        "payment_reference": "John Doe",    (optional)
        "payment_proof_ref": "..."          (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        409: Insufficient stock
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(
            current_caller(),
            data.get("lines") or [],
            recipient_id=data.get("recipient_id"),
            recipient_info=data.get("recipient_info"),
            delivery_instructions=data.get("delivery_instructions"),
            payment_method=data.get("payment_method", "ZELLE"),
            payment_reference=data.get("payment_reference"),
            payment_proof_ref=data.get("payment_proof_ref"),
        )
        return jsonify({"order": _order_payload(order)}), 201

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List orders. Admins may pass ?all=true to see every user's orders.

    Query params: status, payment_status, all, limit (max 200), offset
    """
    try:
        limit = min(request.args.get("limit", 50, type=int), 200)
        offset = request.args.get("offset", 0, type=int)
        orders = order_service.list_orders(
            current_caller(),
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            all_users=request.args.get("all", "false").lower() == "true",
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "orders": [_order_payload(o) for o in orders],
            "limit": limit,
            "offset": offset,
        }), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(current_caller(), order_id)
        return jsonify({"order": _order_payload(order, include_history=True)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT
# =============================================================================

@orders_bp.post("/<int:order_id>/payment-proof")
@require_auth
def submit_payment_proof_route(order_id: int):
    """
    Owner submits payment proof.

    multipart: file=<image/pdf>, payment_reference=<payer name>
    or JSON: {"payment_proof_ref": "...", "payment_reference": "..."}
    """
    try:
        caller = current_caller()
        order = order_service.get_order(caller, order_id)
        data = _request_data()
        proof_ref, uploaded = _proof_ref(order, ORDER_SUBMIT_PROOF, "order-payment", data, "payment_proof_ref")
        with proof_service.discard_on_error(proof_ref if uploaded else None):
            order = order_service.submit_payment_proof(
                caller,
                order_id,
                proof_ref,
                payment_reference=data.get("payment_reference"),
            )
        return jsonify({"order": _order_payload(order)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit payment proof")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/proofs/<string:which>")
@require_auth
def download_proof_route(order_id: int, which: str):
    """Stream a stored proof. which: "payment" or "delivery"."""
    try:
        order = order_service.get_order(current_caller(), order_id)
        refs = {"payment": order.payment_proof_ref, "delivery": order.delivery_proof_ref}
        reference = refs.get(which)
        if not reference:
            raise NotFoundError("Proof not found", details={"order_id": order_id, "proof": which})
        return send_file(proof_service.resolve_proof_path(reference))

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to download proof")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/validate-payment")
@require_auth
def validate_payment_route(order_id: int):
    """Admin accepts the proof; stock is committed and processing starts."""
    try:
        order = order_service.validate_payment(current_caller(), order_id)
        return jsonify({"order": _order_payload(order)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to validate payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/reject-payment")
@require_auth
def reject_payment_route(order_id: int):
    """Request body: {"reason": "..."} (required)"""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.reject_payment(current_caller(), order_id, data.get("reason"))
        return jsonify({"order": _order_payload(order)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# FULFILMENT
# =============================================================================

@orders_bp.post("/<int:order_id>/ship")
@require_auth
def ship_order_route(order_id: int):
    """Request body: {"tracking_info": "..."} (optional)"""
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.mark_shipped(current_caller(), order_id, tracking_info=data.get("tracking_info"))
        return jsonify({"order": _order_payload(order)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to ship order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/deliver")
@require_auth
def deliver_order_route(order_id: int):
    """Optional delivery proof: multipart file or {"delivery_proof_ref": "..."}."""
    try:
        caller = current_caller()
        order = order_service.get_order(caller, order_id)
        data = _request_data()
        proof_ref, uploaded = _proof_ref(order, ORDER_CONFIRM_DELIVERY, "order-delivery", data, "delivery_proof_ref")
        with proof_service.discard_on_error(proof_ref if uploaded else None):
            order = order_service.confirm_delivery(caller, order_id, delivery_proof_ref=proof_ref)
        return jsonify({"order": _order_payload(order)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm delivery")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/complete")
@require_auth
def complete_order_route(order_id: int):
    try:
        order = order_service.complete_order(current_caller(), order_id)
        return jsonify({"order": _order_payload(order)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    """
    Owner or admin cancels a pending or processing order.

    Request body: {"reason": "..."} (required)
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(current_caller(), order_id, data.get("reason"))
        return jsonify({"order": _order_payload(order)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
