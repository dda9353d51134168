from __future__ import annotations

from ..extensions import db
from papu.time_utils import to_utc_z


class Product(db.Model):
    """Sellable catalog item backed by exactly one InventoryRecord."""
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    currency_code = db.Column(db.String(3), nullable=False, default="USD")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "currency_code": self.currency_code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Combo(db.Model):
    """
    Composite catalog item: N constituent products x quantity.

    A combo has no stock of its own; reservations and commits are applied
    to its constituents.
    """
    __tablename__ = "combos"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Combo's own margin applied over the sum of constituent prices
    profit_margin_pct = db.Column(db.Numeric(7, 4), nullable=False, default=35)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("ComboItem", backref="combo", lazy=True, order_by="ComboItem.product_id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "profit_margin_pct": str(self.profit_margin_pct),
            "is_active": self.is_active,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
        }


class ComboItem(db.Model):
    __tablename__ = "combo_items"
    __table_args__ = (
        db.UniqueConstraint("combo_id", "product_id", name="uq_combo_items_combo_product"),
        db.CheckConstraint("quantity > 0", name="ck_combo_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("combos.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
        }


class InventoryRecord(db.Model):
    """
    On-hand vs. reserved stock for one product.

    INVARIANTS:
    - 0 <= reserved_quantity <= quantity
    - available_quantity = quantity - reserved_quantity (derived, never stored)

    Mutated only by inventory_service through conditional UPDATEs.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_inventory_records_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_nonneg"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_inventory_reserved_nonneg"),
        db.CheckConstraint("reserved_quantity <= quantity", name="ck_inventory_reserved_le_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Low-stock alert threshold on available quantity
    min_stock_alert = db.Column(db.Integer, nullable=False, default=10)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("inventory", uselist=False))

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "min_stock_alert": self.min_stock_alert,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only audit row for every ledger mutation.

    quantity_change is signed from the point of view of available stock.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_record_occurred", "inventory_record_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_record_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # RECEIVED, ADJUSTED, RESERVED, RELEASED, COMMITTED, RESTOCKED
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_record_id": self.inventory_record_id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_change": self.quantity_change,
            "order_id": self.order_id,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
