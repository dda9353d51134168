# Overview: Notification outbox, message templates, sinks and the dispatcher.

"""
Notification Outbox

Orchestrators never talk to the chat gateway. They append NotificationOutbox
rows inside the same DB transaction as the state change; a committed
transition therefore always has its notification queued, and a rolled-back
one never does.

The dispatcher drains PENDING rows outside the request (CLI, admin endpoint,
or an optional daemon thread). A sink failure is recorded on the row and
logged; it never reaches the caller and never undoes a transition. Each row
is attempted at most NOTIFICATION_MAX_ATTEMPTS times, then marked FAILED.
A row is claimed (SENDING, committed) before its send, so concurrent
dispatchers never deliver it twice.
"""

from __future__ import annotations

import logging
import re
import threading
from datetime import timedelta

import httpx
from flask import current_app
from sqlalchemy import and_, or_, update

from ..errors import NotificationError
from ..extensions import db
from ..models import NotificationOutbox
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

STATUS_PENDING = "PENDING"
STATUS_SENDING = "SENDING"
STATUS_SENT = "SENT"
STATUS_FAILED = "FAILED"

SINK_EXTENSION_KEY = "papu.notification_sink"

# Events
ORDER_CREATED = "ORDER_CREATED"
ORDER_PROOF_SUBMITTED = "ORDER_PROOF_SUBMITTED"
ORDER_PAYMENT_VALIDATED = "ORDER_PAYMENT_VALIDATED"
ORDER_PAYMENT_REJECTED = "ORDER_PAYMENT_REJECTED"
ORDER_SHIPPED = "ORDER_SHIPPED"
ORDER_DELIVERED = "ORDER_DELIVERED"
ORDER_COMPLETED = "ORDER_COMPLETED"
ORDER_CANCELLED = "ORDER_CANCELLED"
REMITTANCE_CREATED = "REMITTANCE_CREATED"
REMITTANCE_PROOF_SUBMITTED = "REMITTANCE_PROOF_SUBMITTED"
REMITTANCE_PAYMENT_VALIDATED = "REMITTANCE_PAYMENT_VALIDATED"
REMITTANCE_PAYMENT_REJECTED = "REMITTANCE_PAYMENT_REJECTED"
REMITTANCE_PROCESSING = "REMITTANCE_PROCESSING"
REMITTANCE_DELIVERED = "REMITTANCE_DELIVERED"
REMITTANCE_COMPLETED = "REMITTANCE_COMPLETED"
REMITTANCE_CANCELLED = "REMITTANCE_CANCELLED"
REMITTANCE_DELIVERY_ALERT = "REMITTANCE_DELIVERY_ALERT"
LOW_STOCK = "LOW_STOCK"

TEMPLATES = {
    ORDER_CREATED: "New order {number} from {customer}. Total: {total}. Awaiting payment proof.",
    ORDER_PROOF_SUBMITTED: "Payment proof submitted for order {number} ({total}). Reference: {reference}.",
    ORDER_PAYMENT_VALIDATED: (
        "{business}: your payment for order {number} ({total}) was validated. "
        "Your order is being prepared."
    ),
    ORDER_PAYMENT_REJECTED: (
        "{business}: we could not validate your payment for order {number} ({total}). "
        "Reason: {reason}. Please upload a new proof."
    ),
    ORDER_SHIPPED: "{business}: order {number} has shipped. Tracking: {tracking}.",
    ORDER_DELIVERED: "{business}: order {number} was delivered.",
    ORDER_COMPLETED: "{business}: order {number} is complete. Thank you!",
    ORDER_CANCELLED: "{business}: order {number} was cancelled. Reason: {reason}.",
    REMITTANCE_CREATED: "New remittance {number} from {customer}: {amount} -> {delivered}.",
    REMITTANCE_PROOF_SUBMITTED: "Payment proof submitted for remittance {number} ({total}). Reference: {reference}.",
    REMITTANCE_PAYMENT_VALIDATED: (
        "{business}: payment for remittance {number} validated. "
        "{delivered} will be delivered by {deadline}."
    ),
    REMITTANCE_PAYMENT_REJECTED: (
        "{business}: we could not validate your payment for remittance {number}. "
        "Reason: {reason}. Please upload a new proof."
    ),
    REMITTANCE_PROCESSING: "{business}: remittance {number} is being processed.",
    REMITTANCE_DELIVERED: "{business}: remittance {number} was delivered to {recipient}.",
    REMITTANCE_COMPLETED: "{business}: remittance {number} is complete. Thank you!",
    REMITTANCE_CANCELLED: "{business}: remittance {number} was cancelled. Reason: {reason}.",
    REMITTANCE_DELIVERY_ALERT: "Remittance {number} delivery deadline {deadline} ({hours_left}h left). Recipient: {recipient}.",
    LOW_STOCK: "Low stock: {product} has {available} available (alert at {threshold}).",
}


def format_phone(phone) -> str:
    """
    Normalize a phone number to digits with country code.

    Strips every non-digit, then a leading "00" international prefix, or a
    single leading "0" when the number is long enough to carry a country
    code. Returns "" when nothing usable remains.
    """
    if not phone or not isinstance(phone, str):
        return ""
    cleaned = re.sub(r"\D", "", phone)
    if cleaned.startswith("00"):
        cleaned = cleaned[2:]
    elif len(cleaned) > 10 and cleaned.startswith("0"):
        cleaned = cleaned[1:]
    return cleaned


def format_money(cents: int | None, currency: str | None = "USD") -> str:
    if cents is None:
        return "N/A"
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    return f"{sign}{cents // 100}.{cents % 100:02d} {currency or ''}".strip()


def render(event: str, **context) -> str:
    template = TEMPLATES.get(event)
    if template is None:
        raise ValueError(f"Unknown notification event: {event}")
    context.setdefault("business", current_app.config.get("BUSINESS_NAME", ""))
    safe = {key: ("N/A" if value is None or value == "" else value) for key, value in context.items()}
    return template.format(**safe)


# =============================================================================
# OUTBOX
# =============================================================================

def enqueue(
    event: str,
    destination: str | None,
    *,
    transaction_kind: str | None = None,
    transaction_id: int | None = None,
    **context,
) -> NotificationOutbox | None:
    """
    Append an outbox row in the caller's DB transaction. Does not commit.

    A missing or unusable destination is logged and skipped; it never fails
    the operation that triggered it.
    """
    phone = format_phone(destination)
    if not phone:
        logger.warning(
            "Skipping %s notification for %s:%s: no usable destination",
            event, transaction_kind, transaction_id,
        )
        return None

    row = NotificationOutbox(
        transaction_kind=transaction_kind,
        transaction_id=transaction_id,
        event=event,
        destination=phone,
        message=render(event, **context),
        status=STATUS_PENDING,
        attempts=0,
        created_at=utcnow(),
    )
    db.session.add(row)
    return row


def enqueue_admin(event: str, **kwargs) -> NotificationOutbox | None:
    return enqueue(event, current_app.config.get("ADMIN_NOTIFICATION_PHONE"), **kwargs)


def list_outbox(status: str | None = None, *, limit: int = 100) -> list[NotificationOutbox]:
    query = db.session.query(NotificationOutbox)
    if status:
        query = query.filter(NotificationOutbox.status == status)
    return query.order_by(NotificationOutbox.id.desc()).limit(limit).all()


# =============================================================================
# SINKS
# =============================================================================

class NotificationSink:
    """send(destination, message) delivers one message or raises NotificationError."""

    def send(self, destination: str, message: str) -> None:
        raise NotImplementedError


class LogSink(NotificationSink):
    """Used when no gateway is configured: messages are only logged."""

    def send(self, destination: str, message: str) -> None:
        logger.info("Notification to %s: %s", destination, message)


class HttpGatewaySink(NotificationSink):
    """Posts {"to", "message"} JSON to a chat gateway."""

    def __init__(self, url: str, token: str | None = None, timeout: float = 5.0, client: httpx.Client | None = None):
        self.url = url
        self.token = token
        self.timeout = timeout
        self.client = client

    def send(self, destination: str, message: str) -> None:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {"to": destination, "message": message}
        try:
            if self.client is not None:
                response = self.client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            else:
                response = httpx.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Gateway delivery failed: {exc}") from exc


def get_sink(app=None) -> NotificationSink:
    app = app or current_app
    sink = app.extensions.get(SINK_EXTENSION_KEY)
    if sink is not None:
        return sink
    url = app.config.get("NOTIFICATION_GATEWAY_URL")
    if url:
        sink = HttpGatewaySink(
            url,
            token=app.config.get("NOTIFICATION_GATEWAY_TOKEN"),
            timeout=app.config.get("NOTIFICATION_TIMEOUT_SECONDS", 5),
        )
    else:
        sink = LogSink()
    app.extensions[SINK_EXTENSION_KEY] = sink
    return sink


def set_sink(app, sink: NotificationSink | None) -> None:
    if sink is None:
        app.extensions.pop(SINK_EXTENSION_KEY, None)
    else:
        app.extensions[SINK_EXTENSION_KEY] = sink


# =============================================================================
# DISPATCHER
# =============================================================================

def _claimable():
    """PENDING rows, plus SENDING rows whose dispatcher stopped before finishing."""
    lease = int(current_app.config.get("NOTIFICATION_CLAIM_TIMEOUT_SECONDS", 300))
    stale_before = utcnow() - timedelta(seconds=lease)
    return or_(
        NotificationOutbox.status == STATUS_PENDING,
        and_(
            NotificationOutbox.status == STATUS_SENDING,
            NotificationOutbox.last_attempt_at < stale_before,
        ),
    )


def _claim(row_id: int) -> bool:
    """
    Mark one row SENDING and count the attempt, committed before the send.

    Conditional UPDATE: of two dispatchers racing for the same row exactly
    one sees rowcount 1.
    """
    stmt = (
        update(NotificationOutbox)
        .where(NotificationOutbox.id == row_id)
        .where(_claimable())
        .values(
            status=STATUS_SENDING,
            attempts=NotificationOutbox.attempts + 1,
            last_attempt_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    claimed = bool(db.session.execute(stmt).rowcount)
    db.session.commit()
    return claimed


def dispatch_pending(*, limit: int = 100, sink: NotificationSink | None = None) -> dict:
    """
    Attempt delivery of PENDING outbox rows, oldest first.

    Each row is claimed and then settled in its own commits, so one failure
    does not hold back the rest and overlapping dispatchers never send the
    same row twice. Returns counts of sent, retrying and failed rows.
    """
    sink = sink or get_sink()
    max_attempts = int(current_app.config.get("NOTIFICATION_MAX_ATTEMPTS", 3))
    summary = {"sent": 0, "retrying": 0, "failed": 0}

    row_ids = [
        row_id for (row_id,) in (
            db.session.query(NotificationOutbox.id)
            .filter(_claimable())
            .order_by(NotificationOutbox.id.asc())
            .limit(limit)
            .all()
        )
    ]

    for row_id in row_ids:
        if not _claim(row_id):
            continue
        row = db.session.get(NotificationOutbox, row_id)
        try:
            sink.send(row.destination, row.message)
        except Exception as exc:
            row.last_error = str(exc)[:500]
            if row.attempts >= max_attempts:
                row.status = STATUS_FAILED
                summary["failed"] += 1
                logger.error(
                    "Notification %s (%s) dropped after %s attempts: %s",
                    row.id, row.event, row.attempts, exc,
                )
            else:
                row.status = STATUS_PENDING
                summary["retrying"] += 1
                logger.warning("Notification %s (%s) attempt %s failed: %s", row.id, row.event, row.attempts, exc)
        else:
            row.status = STATUS_SENT
            row.sent_at = utcnow()
            row.last_error = None
            summary["sent"] += 1
        db.session.commit()

    return summary


def _dispatch_in_background(app) -> None:
    with app.app_context():
        try:
            dispatch_pending()
        except Exception:
            logger.exception("Background notification dispatch failed")
        finally:
            db.session.remove()


def schedule_dispatch() -> threading.Thread | None:
    """
    Start a daemon thread draining the outbox, if enabled.

    Call only after the triggering transaction has committed.
    """
    if not current_app.config.get("NOTIFICATION_DISPATCH_ASYNC"):
        return None
    app = current_app._get_current_object()
    thread = threading.Thread(target=_dispatch_in_background, args=(app,), daemon=True)
    thread.start()
    return thread
