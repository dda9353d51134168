# Overview: Service-layer operations for a user's saved delivery recipients.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Recipient, User
from .authorization_service import RECIPIENTS_MANAGE, authorize
from .concurrency import run_with_retry

REQUIRED_FIELDS = ("full_name", "phone")
EDITABLE_FIELDS = ("full_name", "phone", "province", "municipality", "address", "id_number")


def _clean(data: dict, *, partial: bool = False) -> dict:
    cleaned = {}
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{field} must be a string")
        cleaned[field] = value.strip() if isinstance(value, str) else None
    if not partial:
        for field in REQUIRED_FIELDS:
            if not cleaned.get(field):
                raise ValidationError(f"{field} is required")
    else:
        for field in REQUIRED_FIELDS:
            if field in cleaned and not cleaned[field]:
                raise ValidationError(f"{field} cannot be empty")
    return cleaned


def get_recipient(caller, recipient_id: int) -> Recipient:
    recipient = db.session.get(Recipient, recipient_id)
    if recipient is None or not recipient.is_active:
        raise NotFoundError("Recipient not found", details={"recipient_id": recipient_id})
    authorize(caller, RECIPIENTS_MANAGE, recipient)
    return recipient


def list_recipients(caller) -> list[Recipient]:
    authorize(caller, RECIPIENTS_MANAGE)
    return (
        db.session.query(Recipient)
        .filter(Recipient.owner_user_id == caller.user_id, Recipient.is_active.is_(True))
        .order_by(Recipient.full_name.asc())
        .all()
    )


def create_recipient(caller, data: dict) -> Recipient:
    authorize(caller, RECIPIENTS_MANAGE)
    fields = _clean(data)
    linked_user_id = data.get("user_id")

    def _op():
        if linked_user_id is not None and db.session.get(User, linked_user_id) is None:
            raise ValidationError("Linked user not found", details={"user_id": linked_user_id})
        recipient = Recipient(owner_user_id=caller.user_id, user_id=linked_user_id, is_active=True, **fields)
        db.session.add(recipient)
        db.session.commit()
        return recipient

    return run_with_retry(_op)


def update_recipient(caller, recipient_id: int, data: dict) -> Recipient:
    fields = _clean(data, partial=True)

    def _op():
        recipient = get_recipient(caller, recipient_id)
        for key, value in fields.items():
            setattr(recipient, key, value)
        db.session.commit()
        return recipient

    return run_with_retry(_op)


def deactivate_recipient(caller, recipient_id: int) -> Recipient:
    """Soft delete; past transactions keep their own snapshot."""
    def _op():
        recipient = get_recipient(caller, recipient_id)
        recipient.is_active = False
        db.session.commit()
        return recipient

    return run_with_retry(_op)
