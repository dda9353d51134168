# Overview: Flask API routes for the product and combo catalog.

from flask import Blueprint, request, jsonify, current_app

from ..errors import PapuError
from ..services import catalog_service
from ..services.authorization_service import CATALOG_MANAGE
from ..decorators import require_auth, require_action, current_caller


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _include_inactive() -> bool:
    return (
        request.args.get("include_inactive", "false").lower() == "true"
        and current_caller().is_admin
    )


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
@require_auth
def list_products_route():
    try:
        products = catalog_service.list_products(include_inactive=_include_inactive())
        return jsonify({"products": [p.to_dict() for p in products]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/products")
@require_auth
@require_action(CATALOG_MANAGE)
def create_product_route():
    """Request body: {"sku": "RICE-1KG", "name": "Rice 1kg", "price_cents": 350, "min_stock_alert": 10}"""
    try:
        data = request.get_json(silent=True) or {}
        product = catalog_service.create_product(
            current_caller(),
            sku=data.get("sku"),
            name=data.get("name"),
            price_cents=data.get("price_cents"),
            currency_code=data.get("currency_code", "USD"),
            min_stock_alert=data.get("min_stock_alert", 10),
        )
        return jsonify({"product": product.to_dict()}), 201

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/products/<int:product_id>")
@require_auth
@require_action(CATALOG_MANAGE)
def update_product_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        changes = {k: data[k] for k in ("name", "price_cents", "is_active") if k in data}
        product = catalog_service.update_product(current_caller(), product_id, **changes)
        return jsonify({"product": product.to_dict()}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# COMBOS
# =============================================================================

@catalog_bp.get("/combos")
@require_auth
def list_combos_route():
    """Each combo includes base_cents (sum of items) and final_cents (with margin)."""
    try:
        combos = catalog_service.list_combos(include_inactive=_include_inactive())
        return jsonify({"combos": [catalog_service.combo_to_dict(c) for c in combos]}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list combos")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/combos")
@require_auth
@require_action(CATALOG_MANAGE)
def create_combo_route():
    """
    Request body:
    {
        "name": "Family pack",
        "items": [{"product_id": 1, "quantity": 2}, {"product_id": 2, "quantity": 1}],
        "profit_margin_pct": "35"           (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        combo = catalog_service.create_combo(
            current_caller(),
            name=data.get("name"),
            items=data.get("items") or [],
            description=data.get("description"),
            profit_margin_pct=data.get("profit_margin_pct", catalog_service.DEFAULT_COMBO_MARGIN_PCT),
        )
        return jsonify({"combo": catalog_service.combo_to_dict(combo)}), 201

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create combo")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/combos/<int:combo_id>/deactivate")
@require_auth
@require_action(CATALOG_MANAGE)
def deactivate_combo_route(combo_id: int):
    try:
        combo = catalog_service.set_combo_active(current_caller(), combo_id, False)
        return jsonify({"combo": catalog_service.combo_to_dict(combo)}), 200

    except PapuError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate combo")
        return jsonify({"error": "Internal server error"}), 500
