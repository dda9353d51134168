# Overview: Service-layer operations for the append-only status history.

"""
Status History Invariants (authoritative)

- Append-only: entries are never updated or deleted.
- Written inside the same DB transaction as the state change they record.
- Per (transaction, field), the sequence of new_state values, starting from
  the creation entry, is a valid path in that field's transition graph.
"""

from __future__ import annotations

from ..extensions import db
from ..models import StatusHistoryEntry
from ..time_utils import utcnow

KIND_ORDER = "ORDER"
KIND_REMITTANCE = "REMITTANCE"

FIELD_STATUS = "status"
FIELD_PAYMENT_STATUS = "payment_status"


def append_status_history(
    *,
    transaction_kind: str,
    transaction_id: int,
    field: str,
    previous_state: str | None,
    new_state: str,
    actor_user_id: int | None = None,
    reason: str | None = None,
) -> StatusHistoryEntry:
    entry = StatusHistoryEntry(
        transaction_kind=transaction_kind,
        transaction_id=transaction_id,
        field=field,
        previous_state=previous_state,
        new_state=new_state,
        actor_user_id=actor_user_id,
        reason=reason,
        occurred_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def get_history(transaction_kind: str, transaction_id: int, field: str | None = None) -> list[StatusHistoryEntry]:
    query = db.session.query(StatusHistoryEntry).filter(
        StatusHistoryEntry.transaction_kind == transaction_kind,
        StatusHistoryEntry.transaction_id == transaction_id,
    )
    if field is not None:
        query = query.filter(StatusHistoryEntry.field == field)
    return query.order_by(StatusHistoryEntry.id.asc()).all()


def visited_states(transaction_kind: str, transaction_id: int, field: str) -> list[str]:
    return [entry.new_state for entry in get_history(transaction_kind, transaction_id, field)]


def verify_history(transaction_kind: str, transaction_id: int, machines: dict) -> None:
    """
    Replay each field's history through its state machine.

    machines maps field name -> StateMachine. Raises InvalidTransitionError
    on the first illegal step.
    """
    for field, machine in machines.items():
        machine.validate_path(visited_states(transaction_kind, transaction_id, field))
