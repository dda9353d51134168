from __future__ import annotations

from ..extensions import db
from papu.time_utils import to_utc_z


class StatusHistoryEntry(db.Model):
    """
    Append-only record of one state change on one transaction field.

    The sole source of truth for "how did we get here": rows are written in
    the same DB transaction as the state update and are never updated or
    deleted.
    """
    __tablename__ = "status_history"
    __table_args__ = (
        db.Index("ix_status_history_tx", "transaction_kind", "transaction_id", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    transaction_kind = db.Column(db.String(16), nullable=False)  # ORDER, REMITTANCE
    transaction_id = db.Column(db.Integer, nullable=False)

    field = db.Column(db.String(16), nullable=False)  # status, payment_status
    previous_state = db.Column(db.String(32), nullable=True)  # None for the creation entry
    new_state = db.Column(db.String(32), nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    reason = db.Column(db.String(500), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_kind": self.transaction_kind,
            "transaction_id": self.transaction_id,
            "field": self.field,
            "previous_state": self.previous_state,
            "new_state": self.new_state,
            "actor_user_id": self.actor_user_id,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
