# Overview: Remittance orchestrator and commission profile (remittance type) management.

"""
Remittance Lifecycle (authoritative)

    create_remittance      PAYMENT_PENDING / payment PENDING; figures computed
                           server-side and snapshotted from the remittance type
    submit_payment_proof   -> PAYMENT_PROOF_UPLOADED / payment PROOF_UPLOADED
    validate_payment       -> PAYMENT_VALIDATED / payment VALIDATED,
                           max_delivery_date = validated_at + max_delivery_days
    reject_payment         -> PAYMENT_REJECTED -> PAYMENT_PENDING,
                           payment REJECTED -> PENDING
    start_processing       PAYMENT_VALIDATED -> PROCESSING
    confirm_delivery       PROCESSING -> DELIVERED (admin, owner or linked recipient)
    complete_remittance    DELIVERED -> COMPLETED
    cancel_remittance      any pre-processing state -> CANCELLED

Snapshot rule: exchange rate and commission terms are copied onto the
remittance at creation. Editing the type later never changes the amount a
recipient is owed.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Recipient, Remittance, RemittanceType, User
from ..time_utils import hours_between, utcnow
from . import authorization_service as authz
from . import notification_service as notify
from .concurrency import run_with_retry
from .history_service import FIELD_PAYMENT_STATUS, FIELD_STATUS, KIND_REMITTANCE
from .pricing_service import RemittanceQuote, calculate, to_decimal
from .sequence_service import next_remittance_number
from .state_machine import (
    PAYMENT_MACHINE,
    PAYMENT_PENDING,
    PAYMENT_PROOF_UPLOADED,
    PAYMENT_REJECTED,
    PAYMENT_VALIDATED,
    REMITTANCE_CANCELLED,
    REMITTANCE_COMPLETED,
    REMITTANCE_DELIVERED,
    REMITTANCE_MACHINE,
    REMITTANCE_PAYMENT_PENDING,
    REMITTANCE_PAYMENT_PROOF_UPLOADED,
    REMITTANCE_PAYMENT_REJECTED,
    REMITTANCE_PAYMENT_VALIDATED,
    REMITTANCE_PROCESSING,
)
from .transition_service import (
    apply_transition,
    execute,
    load,
    load_for_update,
    record_initial_state,
    require_reason,
    validate_all,
)

DELIVERY_METHODS = {"CASH", "TRANSFER", "CARD", "WALLET"}

ALERT_SUCCESS = "success"
ALERT_INFO = "info"
ALERT_WARNING = "warning"
ALERT_ERROR = "error"

ALERT_WINDOW_HOURS = 24


# =============================================================================
# REMITTANCE TYPES (commission profiles)
# =============================================================================

def _parse_type_fields(data: dict, *, partial: bool) -> dict:
    fields: dict = {}

    def present(key):
        return key in data and data[key] is not None

    for key in ("name", "currency_code", "delivery_currency"):
        if present(key):
            value = data[key]
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{key} is required")
            fields[key] = value.strip().upper() if key != "name" else value.strip()
        elif not partial:
            raise ValidationError(f"{key} is required")

    if "description" in data:
        fields["description"] = data["description"]

    if present("exchange_rate"):
        rate = to_decimal(data["exchange_rate"], field="exchange_rate")
        if rate <= 0:
            raise ValidationError("exchange_rate must be greater than 0")
        fields["exchange_rate"] = rate
    elif not partial:
        raise ValidationError("exchange_rate is required")

    if present("commission_percentage"):
        pct = to_decimal(data["commission_percentage"], field="commission_percentage")
        if pct < 0 or pct > 100:
            raise ValidationError("commission_percentage must be between 0 and 100")
        fields["commission_percentage"] = pct
    elif not partial:
        fields["commission_percentage"] = Decimal("0")

    int_rules = {
        "commission_fixed_cents": (0, 0),
        "min_amount_cents": (1, None),
        "max_delivery_days": (1, 3),
        "warning_days": (0, 1),
        "display_order": (None, 0),
    }
    for key, (minimum, default) in int_rules.items():
        if present(key):
            value = data[key]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{key} must be an integer")
            if minimum is not None and value < minimum:
                raise ValidationError(f"{key} must be at least {minimum}")
            fields[key] = value
        elif not partial:
            if default is None:
                raise ValidationError(f"{key} is required")
            fields[key] = default

    if "max_amount_cents" in data:
        value = data["max_amount_cents"]
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value <= 0):
            raise ValidationError("max_amount_cents must be a positive integer or null")
        fields["max_amount_cents"] = value

    if present("delivery_method"):
        method = str(data["delivery_method"]).upper()
        if method not in DELIVERY_METHODS:
            raise ValidationError("Unknown delivery_method", details={"allowed": sorted(DELIVERY_METHODS)})
        fields["delivery_method"] = method
    elif not partial:
        fields["delivery_method"] = "CASH"

    return fields


def _check_bounds(remittance_type: RemittanceType) -> None:
    if remittance_type.max_amount_cents is not None and remittance_type.max_amount_cents < remittance_type.min_amount_cents:
        raise ValidationError("max_amount_cents must be greater than or equal to min_amount_cents")


def get_remittance_type(type_id: int) -> RemittanceType:
    remittance_type = db.session.get(RemittanceType, type_id)
    if remittance_type is None:
        raise NotFoundError("Remittance type not found", details={"remittance_type_id": type_id})
    return remittance_type


def list_remittance_types(*, include_inactive: bool = False) -> list[RemittanceType]:
    query = db.session.query(RemittanceType)
    if not include_inactive:
        query = query.filter(RemittanceType.is_active.is_(True))
    return query.order_by(RemittanceType.display_order.asc(), RemittanceType.id.asc()).all()


def create_remittance_type(caller, data: dict) -> RemittanceType:
    authz.authorize(caller, authz.REMITTANCE_TYPES_MANAGE)
    fields = _parse_type_fields(data, partial=False)

    def _op():
        remittance_type = RemittanceType(is_active=True, **fields)
        _check_bounds(remittance_type)
        db.session.add(remittance_type)
        db.session.commit()
        return remittance_type

    return run_with_retry(_op)


def update_remittance_type(caller, type_id: int, data: dict) -> RemittanceType:
    """Existing remittances keep their snapshot; only new ones see the change."""
    authz.authorize(caller, authz.REMITTANCE_TYPES_MANAGE)
    fields = _parse_type_fields(data, partial=True)

    def _op():
        remittance_type = get_remittance_type(type_id)
        for key, value in fields.items():
            setattr(remittance_type, key, value)
        _check_bounds(remittance_type)
        remittance_type.updated_at = utcnow()
        db.session.commit()
        return remittance_type

    return run_with_retry(_op)


def set_remittance_type_active(caller, type_id: int, is_active: bool) -> RemittanceType:
    authz.authorize(caller, authz.REMITTANCE_TYPES_MANAGE)

    def _op():
        remittance_type = get_remittance_type(type_id)
        remittance_type.is_active = bool(is_active)
        remittance_type.updated_at = utcnow()
        db.session.commit()
        return remittance_type

    return run_with_retry(_op)


# =============================================================================
# HELPERS
# =============================================================================

def _status(remittance: Remittance, new_state: str, caller, reason: str | None = None) -> None:
    apply_transition(
        remittance, kind=KIND_REMITTANCE, field=FIELD_STATUS, machine=REMITTANCE_MACHINE,
        new_state=new_state, actor_user_id=caller.user_id, reason=reason,
    )


def _payment(remittance: Remittance, new_state: str, caller, reason: str | None = None) -> None:
    apply_transition(
        remittance, kind=KIND_REMITTANCE, field=FIELD_PAYMENT_STATUS, machine=PAYMENT_MACHINE,
        new_state=new_state, actor_user_id=caller.user_id, reason=reason,
    )


def _context(remittance: Remittance) -> dict:
    return {
        "number": remittance.remittance_number,
        "amount": notify.format_money(remittance.amount_cents, remittance.currency_sent),
        "total": notify.format_money(remittance.total_cents, remittance.currency_sent),
        "delivered": notify.format_money(remittance.delivered_cents, remittance.currency_delivered),
        "recipient": remittance.recipient_name,
    }


def _notify_owner(remittance: Remittance, event: str, **context) -> None:
    owner = db.session.get(User, remittance.user_id)
    notify.enqueue(
        event,
        owner.phone if owner else None,
        transaction_kind=KIND_REMITTANCE,
        transaction_id=remittance.id,
        **{**_context(remittance), **context},
    )


def _notify_admin(remittance: Remittance, event: str, **context):
    return notify.enqueue_admin(
        event,
        transaction_kind=KIND_REMITTANCE,
        transaction_id=remittance.id,
        **{**_context(remittance), **context},
    )


def _active_type(type_id: int) -> RemittanceType:
    remittance_type = db.session.get(RemittanceType, type_id)
    if remittance_type is None or not remittance_type.is_active:
        raise ValidationError("Remittance type not available", details={"remittance_type_id": type_id})
    return remittance_type


# =============================================================================
# QUOTE / CREATE
# =============================================================================

def quote(caller, type_id: int, amount_cents: int) -> RemittanceQuote:
    """What the sender pays and the recipient gets. No side effects."""
    authz.authorize(caller, authz.REMITTANCE_QUOTE)
    return calculate(_active_type(type_id), amount_cents)


def create_remittance(
    caller,
    type_id: int,
    amount_cents: int,
    *,
    recipient_id: int | None = None,
    recipient_info: dict | None = None,
    delivery_notes: str | None = None,
) -> Remittance:
    authz.authorize(caller, authz.REMITTANCE_CREATE)

    def _op():
        remittance_type = _active_type(type_id)
        figures = calculate(remittance_type, amount_cents)

        recipient_user_id = None
        if recipient_id is not None:
            recipient = db.session.get(Recipient, recipient_id)
            if recipient is None or not recipient.is_active:
                raise ValidationError("Recipient not found", details={"recipient_id": recipient_id})
            authz.authorize(caller, authz.RECIPIENTS_MANAGE, recipient)
            info = recipient.snapshot()
            recipient_user_id = recipient.user_id
        elif isinstance(recipient_info, dict):
            info = recipient_info
        else:
            raise ValidationError("recipient_id or recipient_info is required")

        if not info.get("full_name") or not info.get("phone"):
            raise ValidationError("recipient full_name and phone are required")

        remittance = Remittance(
            remittance_number=next_remittance_number(),
            user_id=caller.user_id,
            remittance_type_id=remittance_type.id,
            status=REMITTANCE_MACHINE.initial,
            payment_status=PAYMENT_MACHINE.initial,
            amount_cents=figures.amount_cents,
            currency_sent=figures.currency_sent,
            currency_delivered=figures.currency_delivered,
            exchange_rate=figures.exchange_rate,
            commission_percentage=figures.commission_percentage,
            commission_fixed_cents=figures.commission_fixed_cents,
            commission_cents=figures.commission_cents,
            total_cents=figures.total_cents,
            delivered_cents=figures.delivered_cents,
            delivery_method=figures.delivery_method,
            max_delivery_days=remittance_type.max_delivery_days,
            recipient_id=recipient_id,
            recipient_user_id=recipient_user_id,
            recipient_name=info.get("full_name"),
            recipient_phone=info.get("phone"),
            recipient_address=info.get("address"),
            recipient_province=info.get("province"),
            recipient_id_number=info.get("id_number"),
            delivery_notes=delivery_notes,
            created_at=utcnow(),
        )
        db.session.add(remittance)
        db.session.flush()

        record_initial_state(remittance, kind=KIND_REMITTANCE, field=FIELD_STATUS, actor_user_id=caller.user_id)
        record_initial_state(remittance, kind=KIND_REMITTANCE, field=FIELD_PAYMENT_STATUS, actor_user_id=caller.user_id)

        owner = db.session.get(User, caller.user_id)
        _notify_admin(remittance, notify.REMITTANCE_CREATED, customer=owner.full_name if owner else caller.user_id)
        return remittance

    return execute(_op)


# =============================================================================
# PAYMENT
# =============================================================================

def submit_payment_proof(
    caller,
    remittance_id: int,
    proof_ref: str,
    *,
    payment_reference: str | None = None,
    notes: str | None = None,
) -> Remittance:
    if not isinstance(proof_ref, str) or not proof_ref.strip():
        raise ValidationError("payment proof is required")

    def _op():
        remittance = load_for_update(Remittance, remittance_id, "Remittance")
        authz.authorize(caller, authz.REMITTANCE_SUBMIT_PROOF, remittance)
        validate_all(
            (REMITTANCE_MACHINE, remittance.status, REMITTANCE_PAYMENT_PROOF_UPLOADED),
            (PAYMENT_MACHINE, remittance.payment_status, PAYMENT_PROOF_UPLOADED),
        )

        remittance.payment_proof_ref = proof_ref.strip()
        if payment_reference:
            remittance.payment_reference = payment_reference
        remittance.payment_proof_notes = notes
        remittance.payment_proof_uploaded_at = utcnow()
        remittance.payment_rejection_reason = None
        _status(remittance, REMITTANCE_PAYMENT_PROOF_UPLOADED, caller)
        _payment(remittance, PAYMENT_PROOF_UPLOADED, caller)

        _notify_admin(remittance, notify.REMITTANCE_PROOF_SUBMITTED, reference=remittance.payment_reference)
        return remittance

    return execute(_op)


def validate_payment(caller, remittance_id: int, *, notes: str | None = None) -> Remittance:
    """Accept the proof and start the delivery clock."""
    def _op():
        remittance = load_for_update(Remittance, remittance_id, "Remittance")
        authz.authorize(caller, authz.REMITTANCE_VALIDATE_PAYMENT, remittance)
        validate_all(
            (REMITTANCE_MACHINE, remittance.status, REMITTANCE_PAYMENT_VALIDATED),
            (PAYMENT_MACHINE, remittance.payment_status, PAYMENT_VALIDATED),
        )

        now = utcnow()
        remittance.payment_validated_at = now
        remittance.validated_by_user_id = caller.user_id
        remittance.max_delivery_date = now + timedelta(days=remittance.max_delivery_days)
        _status(remittance, REMITTANCE_PAYMENT_VALIDATED, caller, reason=notes)
        _payment(remittance, PAYMENT_VALIDATED, caller)

        _notify_owner(
            remittance,
            notify.REMITTANCE_PAYMENT_VALIDATED,
            deadline=remittance.max_delivery_date.strftime("%Y-%m-%d"),
        )
        return remittance

    return execute(_op)


def reject_payment(caller, remittance_id: int, reason: str) -> Remittance:
    reason = require_reason(reason)

    def _op():
        remittance = load_for_update(Remittance, remittance_id, "Remittance")
        authz.authorize(caller, authz.REMITTANCE_REJECT_PAYMENT, remittance)
        validate_all(
            (REMITTANCE_MACHINE, remittance.status, REMITTANCE_PAYMENT_REJECTED),
            (REMITTANCE_MACHINE, REMITTANCE_PAYMENT_REJECTED, REMITTANCE_PAYMENT_PENDING),
            (PAYMENT_MACHINE, remittance.payment_status, PAYMENT_REJECTED),
            (PAYMENT_MACHINE, PAYMENT_REJECTED, PAYMENT_PENDING),
        )

        remittance.payment_rejection_reason = reason
        remittance.rejected_by_user_id = caller.user_id
        _status(remittance, REMITTANCE_PAYMENT_REJECTED, caller, reason=reason)
        _payment(remittance, PAYMENT_REJECTED, caller, reason=reason)
        _status(remittance, REMITTANCE_PAYMENT_PENDING, caller)
        _payment(remittance, PAYMENT_PENDING, caller)

        _notify_owner(remittance, notify.REMITTANCE_PAYMENT_REJECTED, reason=reason)
        return remittance

    return execute(_op)


# =============================================================================
# FULFILMENT
# =============================================================================

def start_processing(caller, remittance_id: int, *, notes: str | None = None) -> Remittance:
    def _op():
        remittance = load_for_update(Remittance, remittance_id, "Remittance")
        authz.authorize(caller, authz.REMITTANCE_START_PROCESSING, remittance)
        validate_all((REMITTANCE_MACHINE, remittance.status, REMITTANCE_PROCESSING))

        remittance.processing_started_at = utcnow()
        remittance.processed_by_user_id = caller.user_id
        _status(remittance, REMITTANCE_PROCESSING, caller, reason=notes)
        _notify_owner(remittance, notify.REMITTANCE_PROCESSING)
        return remittance

    return execute(_op)


def confirm_delivery(
    caller,
    remittance_id: int,
    *,
    delivery_proof_ref: str | None = None,
    notes: str | None = None,
) -> Remittance:
    """Admin, the sender, or the linked recipient account may confirm."""
    def _op():
        remittance = load_for_update(Remittance, remittance_id, "Remittance")
        authz.authorize(caller, authz.REMITTANCE_CONFIRM_DELIVERY, remittance)
        validate_all((REMITTANCE_MACHINE, remittance.status, REMITTANCE_DELIVERED))

        remittance.delivered_at = utcnow()
        remittance.delivered_by_user_id = caller.user_id
        if delivery_proof_ref:
            remittance.delivery_proof_ref = delivery_proof_ref
        _status(remittance, REMITTANCE_DELIVERED, caller, reason=notes)
        _notify_owner(remittance, notify.REMITTANCE_DELIVERED)
        return remittance

    return execute(_op)


def complete_remittance(caller, remittance_id: int) -> Remittance:
    def _op():
        remittance = load_for_update(Remittance, remittance_id, "Remittance")
        authz.authorize(caller, authz.REMITTANCE_COMPLETE, remittance)
        validate_all((REMITTANCE_MACHINE, remittance.status, REMITTANCE_COMPLETED))

        remittance.completed_at = utcnow()
        remittance.completed_by_user_id = caller.user_id
        _status(remittance, REMITTANCE_COMPLETED, caller)
        _notify_owner(remittance, notify.REMITTANCE_COMPLETED)
        return remittance

    return execute(_op)


def cancel_remittance(caller, remittance_id: int, reason: str) -> Remittance:
    reason = require_reason(reason)

    def _op():
        remittance = load_for_update(Remittance, remittance_id, "Remittance")
        authz.authorize(caller, authz.REMITTANCE_CANCEL, remittance)
        validate_all((REMITTANCE_MACHINE, remittance.status, REMITTANCE_CANCELLED))

        remittance.cancelled_at = utcnow()
        remittance.cancelled_by_user_id = caller.user_id
        remittance.cancellation_reason = reason
        _status(remittance, REMITTANCE_CANCELLED, caller, reason=reason)
        _notify_owner(remittance, notify.REMITTANCE_CANCELLED, reason=reason)
        return remittance

    return execute(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_remittance(caller, remittance_id: int) -> Remittance:
    remittance = load(Remittance, remittance_id, "Remittance")
    authz.authorize(caller, authz.REMITTANCE_VIEW, remittance)
    return remittance


def list_remittances(
    caller,
    *,
    status: str | None = None,
    all_users: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> list[Remittance]:
    query = db.session.query(Remittance)
    if all_users:
        authz.authorize(caller, authz.REMITTANCE_LIST_ALL)
    else:
        query = query.filter(Remittance.user_id == caller.user_id)
    if status:
        query = query.filter(Remittance.status == status)
    return query.order_by(Remittance.created_at.desc(), Remittance.id.desc()).offset(offset).limit(limit).all()


def calculate_delivery_alert(remittance: Remittance, now: datetime | None = None) -> dict:
    """
    Delivery urgency for display.

    error under 24h left (or overdue), warning under 48h, info otherwise.
    Delivered and completed remittances are success.
    """
    if remittance.payment_validated_at is None or remittance.max_delivery_date is None:
        return {"level": ALERT_INFO, "message": "Awaiting payment validation", "hours_remaining": None}

    if remittance.status in (REMITTANCE_DELIVERED, REMITTANCE_COMPLETED):
        return {"level": ALERT_SUCCESS, "message": "Delivered", "hours_remaining": None}

    now = now or utcnow()
    hours_remaining = hours_between(now, remittance.max_delivery_date)

    if hours_remaining < 0:
        return {"level": ALERT_ERROR, "message": "Delivery overdue", "hours_remaining": round(hours_remaining, 1)}
    if hours_remaining < 24:
        return {
            "level": ALERT_ERROR,
            "message": f"{round(hours_remaining)} hours left",
            "hours_remaining": round(hours_remaining, 1),
        }
    level = ALERT_WARNING if hours_remaining < 48 else ALERT_INFO
    return {
        "level": level,
        "message": f"{round(hours_remaining / 24)} days left",
        "hours_remaining": round(hours_remaining, 1),
    }


def get_remittances_needing_alert(caller, now: datetime | None = None, *, within_hours: int = ALERT_WINDOW_HOURS) -> list[Remittance]:
    """Validated or processing remittances whose deadline falls within the window (or has passed)."""
    authz.authorize(caller, authz.REMITTANCE_LIST_ALL)
    now = now or utcnow()
    threshold = now + timedelta(hours=within_hours)
    return (
        db.session.query(Remittance)
        .filter(
            Remittance.status.in_([REMITTANCE_PAYMENT_VALIDATED, REMITTANCE_PROCESSING]),
            Remittance.max_delivery_date.isnot(None),
            Remittance.max_delivery_date <= threshold,
        )
        .order_by(Remittance.max_delivery_date.asc())
        .all()
    )


def send_delivery_alerts(caller, now: datetime | None = None) -> int:
    """Queue an admin alert for every remittance close to its deadline."""
    now = now or utcnow()
    remittances = get_remittances_needing_alert(caller, now)

    def _op():
        queued = 0
        for remittance in remittances:
            alert = calculate_delivery_alert(remittance, now)
            row = _notify_admin(
                remittance,
                notify.REMITTANCE_DELIVERY_ALERT,
                deadline=remittance.max_delivery_date.strftime("%Y-%m-%d %H:%M"),
                hours_left=alert["hours_remaining"],
            )
            if row is not None:
                queued += 1
        return queued

    return execute(_op)


def get_remittance_stats(caller, *, start: datetime | None = None, end: datetime | None = None) -> dict:
    authz.authorize(caller, authz.REMITTANCE_VIEW_STATS)
    query = db.session.query(Remittance)
    if start is not None:
        query = query.filter(Remittance.created_at >= start)
    if end is not None:
        query = query.filter(Remittance.created_at <= end)

    stats = {
        "total": 0,
        "by_status": {},
        "total_amount_cents": 0,
        "completed_amount_cents": 0,
        "avg_processing_hours": 0,
    }
    processing_hours = 0.0
    completed = 0

    for remittance in query.all():
        stats["total"] += 1
        stats["by_status"][remittance.status] = stats["by_status"].get(remittance.status, 0) + 1
        stats["total_amount_cents"] += remittance.amount_cents
        if remittance.status == REMITTANCE_COMPLETED:
            stats["completed_amount_cents"] += remittance.amount_cents
            completed += 1
            if remittance.completed_at and remittance.created_at:
                processing_hours += hours_between(remittance.created_at, remittance.completed_at)

    if completed:
        stats["avg_processing_hours"] = round(processing_hours / completed, 2)
    return stats
