from __future__ import annotations

from ..extensions import db
from papu.time_utils import to_utc_z


class NotificationOutbox(db.Model):
    """
    Pending chat-message notification.

    Rows are appended in the same DB transaction as the state change that
    caused them and drained later by the dispatcher. Delivery is attempted
    at most NOTIFICATION_MAX_ATTEMPTS times; after that the row is FAILED.
    SENDING marks a row claimed by a dispatcher that has not settled it yet.
    """
    __tablename__ = "notification_outbox"
    __table_args__ = (
        db.Index("ix_notification_outbox_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    transaction_kind = db.Column(db.String(16), nullable=True)
    transaction_id = db.Column(db.Integer, nullable=True)
    event = db.Column(db.String(48), nullable=False)

    destination = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING")  # PENDING, SENDING, SENT, FAILED
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_kind": self.transaction_kind,
            "transaction_id": self.transaction_id,
            "event": self.event,
            "destination": self.destination,
            "message": self.message,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "last_attempt_at": to_utc_z(self.last_attempt_at),
            "sent_at": to_utc_z(self.sent_at),
        }
