# Overview: Shipping zones and the server-side shipping charge for orders.

"""
Shipping Zones

Each zone prices delivery to one province, or to one municipality inside
it. Lookup for an order's recipient:

    1. active zone for (province, municipality), when a municipality is given
    2. active province default (municipality_name NULL)
    3. otherwise the location is not served -> ValidationError

free_shipping zones charge 0 regardless of shipping_cost_cents.
Names are matched case-insensitively after trimming.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import ShippingZone
from ..time_utils import utcnow
from . import authorization_service as authz
from .concurrency import run_with_retry


@dataclass(frozen=True)
class ShippingQuote:
    zone_id: int
    province_name: str
    municipality_name: str | None
    cost_cents: int
    free_shipping: bool
    delivery_days: int | None = None

    def to_dict(self) -> dict:
        return {
            "zone_id": self.zone_id,
            "province_name": self.province_name,
            "municipality_name": self.municipality_name,
            "cost_cents": self.cost_cents,
            "free_shipping": self.free_shipping,
            "delivery_days": self.delivery_days,
        }


def _clean(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Location names must be strings")
    return value.strip() or None


def _location_filter(query, province: str, municipality: str | None):
    query = query.filter(func.lower(ShippingZone.province_name) == province.lower())
    if municipality is None:
        return query.filter(ShippingZone.municipality_name.is_(None))
    return query.filter(func.lower(ShippingZone.municipality_name) == municipality.lower())


# =============================================================================
# LOOKUP
# =============================================================================

def get_zone(zone_id: int) -> ShippingZone:
    zone = db.session.get(ShippingZone, zone_id)
    if zone is None:
        raise NotFoundError("Shipping zone not found", details={"shipping_zone_id": zone_id})
    return zone


def list_zones(*, include_inactive: bool = False) -> list[ShippingZone]:
    query = db.session.query(ShippingZone)
    if not include_inactive:
        query = query.filter(ShippingZone.is_active.is_(True))
    return query.order_by(
        ShippingZone.province_name.asc(),
        ShippingZone.municipality_name.asc(),
        ShippingZone.id.asc(),
    ).all()


def find_zone(province: str | None, municipality: str | None = None) -> ShippingZone | None:
    province = _clean(province)
    municipality = _clean(municipality)
    if province is None:
        return None

    active = db.session.query(ShippingZone).filter(ShippingZone.is_active.is_(True))
    if municipality is not None:
        zone = _location_filter(active, province, municipality).first()
        if zone is not None:
            return zone
    return _location_filter(active, province, None).first()


def calculate_shipping(province: str | None, municipality: str | None = None) -> ShippingQuote:
    """Shipping charge for a delivery location. Never reads a client-supplied amount."""
    if _clean(province) is None:
        raise ValidationError("recipient province is required to price shipping")

    zone = find_zone(province, municipality)
    if zone is None:
        raise ValidationError(
            "No shipping zone serves this location",
            details={"province": province, "municipality": municipality},
        )
    return ShippingQuote(
        zone_id=zone.id,
        province_name=zone.province_name,
        municipality_name=zone.municipality_name,
        cost_cents=zone.effective_cost_cents,
        free_shipping=bool(zone.free_shipping),
        delivery_days=zone.delivery_days,
    )


# =============================================================================
# ADMIN
# =============================================================================

def _parse_zone_fields(data: dict, *, partial: bool) -> dict:
    fields: dict = {}

    if "province_name" in data or not partial:
        province = _clean(data.get("province_name"))
        if province is None:
            raise ValidationError("province_name is required")
        fields["province_name"] = province

    if "municipality_name" in data:
        fields["municipality_name"] = _clean(data["municipality_name"])

    if "shipping_cost_cents" in data or not partial:
        cost = data.get("shipping_cost_cents", 0)
        if isinstance(cost, bool) or not isinstance(cost, int) or cost < 0:
            raise ValidationError("shipping_cost_cents must be a non-negative integer")
        fields["shipping_cost_cents"] = cost

    if "free_shipping" in data:
        if not isinstance(data["free_shipping"], bool):
            raise ValidationError("free_shipping must be a boolean")
        fields["free_shipping"] = data["free_shipping"]

    if "delivery_days" in data:
        days = data["delivery_days"]
        if days is not None and (isinstance(days, bool) or not isinstance(days, int) or days <= 0):
            raise ValidationError("delivery_days must be a positive integer or null")
        fields["delivery_days"] = days

    if "delivery_note" in data:
        fields["delivery_note"] = data["delivery_note"]

    return fields


def _check_unique(zone: ShippingZone) -> None:
    query = _location_filter(db.session.query(ShippingZone.id), zone.province_name, zone.municipality_name)
    if zone.id is not None:
        query = query.filter(ShippingZone.id != zone.id)
    # the pending edit must not hit the unique constraint before this check
    with db.session.no_autoflush:
        clash = query.first()
    if clash is not None:
        raise ValidationError(
            "A shipping zone already exists for this location",
            details={"province_name": zone.province_name, "municipality_name": zone.municipality_name},
        )


def create_zone(caller, data: dict) -> ShippingZone:
    authz.authorize(caller, authz.SHIPPING_ZONES_MANAGE)
    fields = _parse_zone_fields(data, partial=False)

    def _op():
        zone = ShippingZone(is_active=True, **fields)
        _check_unique(zone)
        db.session.add(zone)
        db.session.commit()
        return zone

    return run_with_retry(_op)


def update_zone(caller, zone_id: int, data: dict) -> ShippingZone:
    """Orders already placed keep the shipping they were charged."""
    authz.authorize(caller, authz.SHIPPING_ZONES_MANAGE)
    fields = _parse_zone_fields(data, partial=True)

    def _op():
        zone = get_zone(zone_id)
        for key, value in fields.items():
            setattr(zone, key, value)
        _check_unique(zone)
        zone.updated_at = utcnow()
        db.session.commit()
        return zone

    return run_with_retry(_op)


def set_zone_active(caller, zone_id: int, is_active: bool) -> ShippingZone:
    authz.authorize(caller, authz.SHIPPING_ZONES_MANAGE)

    def _op():
        zone = get_zone(zone_id)
        zone.is_active = bool(is_active)
        zone.updated_at = utcnow()
        db.session.commit()
        return zone

    return run_with_retry(_op)
