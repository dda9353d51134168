from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-(document type, period) counter backing human-readable numbers.

    period is the date part embedded in the number ("20251007" for orders,
    "2025" for remittances).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_document_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(16), nullable=False)
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
