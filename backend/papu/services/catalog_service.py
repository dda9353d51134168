# Overview: Service-layer operations for products and combos.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Combo, ComboItem, Product
from .authorization_service import CATALOG_MANAGE, authorize
from .concurrency import run_with_retry
from .inventory_service import DEFAULT_MIN_STOCK_ALERT, ensure_inventory_record
from .pricing_service import calculate_combo_price, require_positive_int, to_decimal

DEFAULT_COMBO_MARGIN_PCT = Decimal("35")


def _clean_name(value, field: str = "name") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def _require_price(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("price_cents must be a non-negative integer")
    return value


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(*, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc()).all()


def create_product(
    caller,
    *,
    sku: str,
    name: str,
    price_cents: int,
    currency_code: str = "USD",
    min_stock_alert: int = DEFAULT_MIN_STOCK_ALERT,
) -> Product:
    """Create a product together with its (empty) inventory record."""
    authorize(caller, CATALOG_MANAGE)
    sku = _clean_name(sku, "sku")
    name = _clean_name(name)
    price_cents = _require_price(price_cents)

    def _op():
        product = Product(sku=sku, name=name, price_cents=price_cents, currency_code=currency_code, is_active=True)
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError("SKU already exists", details={"sku": sku})
        ensure_inventory_record(product.id, min_stock_alert=min_stock_alert)
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_product(caller, product_id: int, **changes) -> Product:
    authorize(caller, CATALOG_MANAGE)

    def _op():
        product = get_product(product_id)
        if "name" in changes:
            product.name = _clean_name(changes["name"])
        if "price_cents" in changes:
            product.price_cents = _require_price(changes["price_cents"])
        if "is_active" in changes:
            product.is_active = bool(changes["is_active"])
        db.session.commit()
        return product

    return run_with_retry(_op)


# =============================================================================
# COMBOS
# =============================================================================

def get_combo(combo_id: int) -> Combo:
    combo = db.session.get(Combo, combo_id)
    if combo is None:
        raise NotFoundError("Combo not found", details={"combo_id": combo_id})
    return combo


def list_combos(*, include_inactive: bool = False) -> list[Combo]:
    query = db.session.query(Combo)
    if not include_inactive:
        query = query.filter(Combo.is_active.is_(True))
    return query.order_by(Combo.name.asc()).all()


def get_combo_price(combo: Combo) -> dict:
    """Sum of constituent prices x quantity, plus the combo's own margin."""
    return calculate_combo_price(
        [(item.product.price_cents, item.quantity) for item in combo.items],
        combo.profit_margin_pct,
    )


def create_combo(
    caller,
    *,
    name: str,
    items: list[dict],
    description: str | None = None,
    profit_margin_pct=DEFAULT_COMBO_MARGIN_PCT,
) -> Combo:
    """
    items: [{"product_id": int, "quantity": int}, ...]; products must exist
    and appear at most once.
    """
    authorize(caller, CATALOG_MANAGE)
    name = _clean_name(name)
    if not items:
        raise ValidationError("A combo needs at least one item")
    margin = to_decimal(profit_margin_pct, field="profit_margin_pct")
    if margin < 0:
        raise ValidationError("profit_margin_pct cannot be negative")

    parsed: dict[int, int] = {}
    for raw in items:
        product_id = raw.get("product_id")
        quantity = require_positive_int(raw.get("quantity", 1), field="quantity")
        if product_id in parsed:
            raise ValidationError("Duplicate product in combo", details={"product_id": product_id})
        parsed[product_id] = quantity

    def _op():
        for product_id in parsed:
            get_product(product_id)
        combo = Combo(name=name, description=description, profit_margin_pct=margin, is_active=True)
        db.session.add(combo)
        db.session.flush()
        for product_id, quantity in sorted(parsed.items()):
            db.session.add(ComboItem(combo_id=combo.id, product_id=product_id, quantity=quantity))
        db.session.commit()
        return combo

    return run_with_retry(_op)


def set_combo_active(caller, combo_id: int, is_active: bool) -> Combo:
    authorize(caller, CATALOG_MANAGE)

    def _op():
        combo = get_combo(combo_id)
        combo.is_active = bool(is_active)
        db.session.commit()
        return combo

    return run_with_retry(_op)


def combo_to_dict(combo: Combo) -> dict:
    data = combo.to_dict()
    data.update(get_combo_price(combo))
    return data
