from __future__ import annotations

from ..extensions import db
from papu.time_utils import to_utc_z


class Recipient(db.Model):
    """
    Saved delivery recipient owned by a user.

    Orders and remittances copy the recipient fields at creation time; later
    edits here never rewrite an existing transaction.
    """
    __tablename__ = "recipients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    full_name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    province = db.Column(db.String(128), nullable=True)
    municipality = db.Column(db.String(128), nullable=True)
    address = db.Column(db.String(512), nullable=True)
    id_number = db.Column(db.String(64), nullable=True)

    # Registered account of the recipient, if any (may self-confirm delivery)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def snapshot(self) -> dict:
        return {
            "full_name": self.full_name,
            "phone": self.phone,
            "province": self.province,
            "municipality": self.municipality,
            "address": self.address,
            "id_number": self.id_number,
        }

    def to_dict(self) -> dict:
        data = self.snapshot()
        data.update({
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "user_id": self.user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        })
        return data
