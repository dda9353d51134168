from __future__ import annotations

from ..extensions import db
from papu.time_utils import to_utc_z


class ShippingZone(db.Model):
    """
    Delivery cost for a province, optionally narrowed to one municipality.

    A row with municipality_name NULL is the province default. Order
    creation prefers the municipality row and falls back to the default.
    """
    __tablename__ = "shipping_zones"
    __table_args__ = (
        db.UniqueConstraint("province_name", "municipality_name", name="uq_shipping_zones_location"),
        db.CheckConstraint("shipping_cost_cents >= 0", name="ck_shipping_zones_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    province_name = db.Column(db.String(128), nullable=False, index=True)
    municipality_name = db.Column(db.String(128), nullable=True)

    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    free_shipping = db.Column(db.Boolean, nullable=False, default=False)
    delivery_days = db.Column(db.Integer, nullable=True)
    delivery_note = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def effective_cost_cents(self) -> int:
        return 0 if self.free_shipping else self.shipping_cost_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "province_name": self.province_name,
            "municipality_name": self.municipality_name,
            "shipping_cost_cents": self.shipping_cost_cents,
            "free_shipping": self.free_shipping,
            "delivery_days": self.delivery_days,
            "delivery_note": self.delivery_note,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
