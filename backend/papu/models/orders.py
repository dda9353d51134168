from __future__ import annotations

from ..extensions import db
from papu.time_utils import to_utc_z


class Order(db.Model):
    """
    Product order (Transaction variant).

    LIFECYCLE (status): PENDING -> PROCESSING -> SHIPPED -> DELIVERED -> COMPLETED,
    CANCELLED from PENDING or PROCESSING.
    PAYMENT (payment_status): PENDING -> PROOF_UPLOADED -> VALIDATED,
    PROOF_UPLOADED -> REJECTED -> PENDING.

    inventory_state tracks what the order currently holds in the ledger so
    that release/commit/restock each happen at most once.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_user_status_created", "user_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "ORD-20251007-00012")
    order_number = db.Column(db.String(32), nullable=False)

    # Owner, immutable after creation
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    # NONE, RESERVED, RELEASED, COMMITTED, RESTOCKED
    inventory_state = db.Column(db.String(16), nullable=False, default="NONE")

    # Money (minor units)
    currency_code = db.Column(db.String(3), nullable=False, default="USD")
    subtotal_cents = db.Column(db.Integer, nullable=False)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    # Zone that priced shipping_cents at creation
    shipping_zone_id = db.Column(db.Integer, db.ForeignKey("shipping_zones.id"), nullable=True)
    total_cents = db.Column(db.Integer, nullable=False)

    recipient_info = db.Column(db.JSON, nullable=True)
    delivery_instructions = db.Column(db.Text, nullable=True)
    tracking_info = db.Column(db.String(255), nullable=True)

    # Payment proof (opaque proof-store reference)
    payment_method = db.Column(db.String(32), nullable=False, default="ZELLE")
    payment_reference = db.Column(db.String(255), nullable=True)
    payment_proof_ref = db.Column(db.String(512), nullable=True)
    delivery_proof_ref = db.Column(db.String(512), nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    payment_proof_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processing_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Acting admins
    validated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    shipped_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    delivered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    rejection_reason = db.Column(db.String(500), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    owner = db.relationship("User", foreign_keys=[user_id])
    lines = db.relationship("OrderLine", backref="order", lazy=True, order_by="OrderLine.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "inventory_state": self.inventory_state,
            "currency_code": self.currency_code,
            "subtotal_cents": self.subtotal_cents,
            "shipping_cents": self.shipping_cents,
            "shipping_zone_id": self.shipping_zone_id,
            "total_cents": self.total_cents,
            "recipient_info": self.recipient_info,
            "delivery_instructions": self.delivery_instructions,
            "tracking_info": self.tracking_info,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "payment_proof_ref": self.payment_proof_ref,
            "delivery_proof_ref": self.delivery_proof_ref,
            "created_at": to_utc_z(self.created_at),
            "payment_proof_uploaded_at": to_utc_z(self.payment_proof_uploaded_at),
            "validated_at": to_utc_z(self.validated_at),
            "processing_started_at": to_utc_z(self.processing_started_at),
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "validated_by_user_id": self.validated_by_user_id,
            "rejected_by_user_id": self.rejected_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "rejection_reason": self.rejection_reason,
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """
    Line item on an order. Captures the unit price at time of purchase.

    Exactly one of product_id / combo_id is set, matching item_type.
    Immutable once the order is created.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    item_type = db.Column(db.String(16), nullable=False)  # PRODUCT, COMBO
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    combo_id = db.Column(db.Integer, db.ForeignKey("combos.id"), nullable=True)
    item_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_type": self.item_type,
            "product_id": self.product_id,
            "combo_id": self.combo_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
