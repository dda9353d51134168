from __future__ import annotations

from ..extensions import db
from papu.time_utils import to_utc_z


class RemittanceType(db.Model):
    """
    Commission profile for remittances (admin-managed).

    amount -> commission -> total -> delivered amount is computed by
    pricing_service.calculate(). Remittances copy these values at creation,
    so editing a type never changes historical figures.
    """
    __tablename__ = "remittance_types"
    __table_args__ = (
        db.CheckConstraint("exchange_rate > 0", name="ck_remittance_types_rate_positive"),
        db.CheckConstraint("min_amount_cents > 0", name="ck_remittance_types_min_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    currency_code = db.Column(db.String(3), nullable=False)       # what the sender pays in
    delivery_currency = db.Column(db.String(3), nullable=False)   # what the recipient receives

    exchange_rate = db.Column(db.Numeric(18, 6), nullable=False)
    commission_percentage = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    commission_fixed_cents = db.Column(db.Integer, nullable=False, default=0)

    min_amount_cents = db.Column(db.Integer, nullable=False)
    max_amount_cents = db.Column(db.Integer, nullable=True)  # None = no upper bound

    delivery_method = db.Column(db.String(16), nullable=False, default="CASH")  # CASH, TRANSFER, CARD, WALLET
    max_delivery_days = db.Column(db.Integer, nullable=False, default=3)
    warning_days = db.Column(db.Integer, nullable=False, default=1)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "currency_code": self.currency_code,
            "delivery_currency": self.delivery_currency,
            "exchange_rate": str(self.exchange_rate),
            "commission_percentage": str(self.commission_percentage),
            "commission_fixed_cents": self.commission_fixed_cents,
            "min_amount_cents": self.min_amount_cents,
            "max_amount_cents": self.max_amount_cents,
            "delivery_method": self.delivery_method,
            "max_delivery_days": self.max_delivery_days,
            "warning_days": self.warning_days,
            "is_active": self.is_active,
            "display_order": self.display_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Remittance(db.Model):
    """
    Money remittance (Transaction variant).

    LIFECYCLE (status): PAYMENT_PENDING -> PAYMENT_PROOF_UPLOADED -> PAYMENT_VALIDATED
    -> PROCESSING -> DELIVERED -> COMPLETED, with PAYMENT_REJECTED and CANCELLED
    as alternate exits.

    Commission profile values are snapshotted at creation.
    """
    __tablename__ = "remittances"
    __table_args__ = (
        db.UniqueConstraint("remittance_number", name="uq_remittances_number"),
        db.Index("ix_remittances_user_status_created", "user_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "REM-2025-0001")
    remittance_number = db.Column(db.String(32), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    remittance_type_id = db.Column(db.Integer, db.ForeignKey("remittance_types.id"), nullable=False, index=True)

    status = db.Column(db.String(32), nullable=False, default="PAYMENT_PENDING", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    # Snapshot of the commission profile and computed figures
    amount_cents = db.Column(db.Integer, nullable=False)
    currency_sent = db.Column(db.String(3), nullable=False)
    currency_delivered = db.Column(db.String(3), nullable=False)
    exchange_rate = db.Column(db.Numeric(18, 6), nullable=False)
    commission_percentage = db.Column(db.Numeric(7, 4), nullable=False)
    commission_fixed_cents = db.Column(db.Integer, nullable=False)
    commission_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    delivered_cents = db.Column(db.Integer, nullable=False)
    delivery_method = db.Column(db.String(16), nullable=False)
    max_delivery_days = db.Column(db.Integer, nullable=False, default=3)

    # Recipient snapshot
    recipient_id = db.Column(db.Integer, db.ForeignKey("recipients.id"), nullable=True)
    recipient_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    recipient_name = db.Column(db.String(255), nullable=False)
    recipient_phone = db.Column(db.String(32), nullable=False)
    recipient_address = db.Column(db.String(512), nullable=True)
    recipient_province = db.Column(db.String(128), nullable=True)
    recipient_id_number = db.Column(db.String(64), nullable=True)
    delivery_notes = db.Column(db.Text, nullable=True)

    payment_reference = db.Column(db.String(255), nullable=True)
    payment_proof_ref = db.Column(db.String(512), nullable=True)
    payment_proof_notes = db.Column(db.Text, nullable=True)
    delivery_proof_ref = db.Column(db.String(512), nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    payment_proof_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    max_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    processing_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Acting users
    validated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    delivered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    payment_rejection_reason = db.Column(db.String(500), nullable=True)
    cancellation_reason = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    owner = db.relationship("User", foreign_keys=[user_id])
    remittance_type = db.relationship("RemittanceType")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "remittance_number": self.remittance_number,
            "user_id": self.user_id,
            "remittance_type_id": self.remittance_type_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "amount_cents": self.amount_cents,
            "currency_sent": self.currency_sent,
            "currency_delivered": self.currency_delivered,
            "exchange_rate": str(self.exchange_rate),
            "commission_percentage": str(self.commission_percentage),
            "commission_fixed_cents": self.commission_fixed_cents,
            "commission_cents": self.commission_cents,
            "total_cents": self.total_cents,
            "delivered_cents": self.delivered_cents,
            "delivery_method": self.delivery_method,
            "max_delivery_days": self.max_delivery_days,
            "recipient_id": self.recipient_id,
            "recipient_user_id": self.recipient_user_id,
            "recipient_name": self.recipient_name,
            "recipient_phone": self.recipient_phone,
            "recipient_address": self.recipient_address,
            "recipient_province": self.recipient_province,
            "recipient_id_number": self.recipient_id_number,
            "delivery_notes": self.delivery_notes,
            "payment_reference": self.payment_reference,
            "payment_proof_ref": self.payment_proof_ref,
            "payment_proof_notes": self.payment_proof_notes,
            "delivery_proof_ref": self.delivery_proof_ref,
            "created_at": to_utc_z(self.created_at),
            "payment_proof_uploaded_at": to_utc_z(self.payment_proof_uploaded_at),
            "payment_validated_at": to_utc_z(self.payment_validated_at),
            "max_delivery_date": to_utc_z(self.max_delivery_date),
            "processing_started_at": to_utc_z(self.processing_started_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "validated_by_user_id": self.validated_by_user_id,
            "rejected_by_user_id": self.rejected_by_user_id,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "payment_rejection_reason": self.payment_rejection_reason,
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }
