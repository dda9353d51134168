# Overview: Shared orchestration template for order and remittance operations.

"""
Every transaction operation follows the same steps:

    1. load the transaction with a row lock (fresh state, not the identity map)
    2. authorize(caller, action, transaction)
    3. validate every requested transition BEFORE any side effect
    4. apply transitions + append history rows, then claim_transition()
    5. domain side effect (ledger, calculator)
    6. append outbox rows
    7. commit as one DB transaction (version_id guards lost updates)

Steps 1-7 run inside run_with_retry; an exception anywhere rolls the whole
unit back. The notification dispatcher is scheduled only after commit.
"""

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from .concurrency import lock_for_update, run_with_retry
from .history_service import append_status_history
from .notification_service import schedule_dispatch

MAX_REASON_LENGTH = 500


def load_for_update(model, transaction_id: int, label: str):
    query = db.session.query(model).filter(model.id == transaction_id)
    transaction = lock_for_update(query).first()
    if transaction is None:
        raise NotFoundError(f"{label} not found", details={"id": transaction_id})
    return transaction


def load(model, transaction_id: int, label: str):
    transaction = db.session.get(model, transaction_id)
    if transaction is None:
        raise NotFoundError(f"{label} not found", details={"id": transaction_id})
    return transaction


def require_reason(reason, label: str = "reason") -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError(f"{label} is required")
    reason = reason.strip()
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"{label} is too long", details={"max_length": MAX_REASON_LENGTH})
    return reason


def validate_all(*steps) -> None:
    """steps: (machine, current_state, requested_state) triples."""
    for machine, current, requested in steps:
        machine.validate_transition(current, requested)


def apply_transition(
    transaction,
    *,
    kind: str,
    field: str,
    machine,
    new_state: str,
    actor_user_id: int | None,
    reason: str | None = None,
) -> None:
    previous = getattr(transaction, field)
    machine.validate_transition(previous, new_state)
    setattr(transaction, field, new_state)
    append_status_history(
        transaction_kind=kind,
        transaction_id=transaction.id,
        field=field,
        previous_state=previous,
        new_state=new_state,
        actor_user_id=actor_user_id,
        reason=reason,
    )


def record_initial_state(transaction, *, kind: str, field: str, actor_user_id: int | None) -> None:
    """History entry for the state a transaction is created in. Needs a flushed id."""
    append_status_history(
        transaction_kind=kind,
        transaction_id=transaction.id,
        field=field,
        previous_state=None,
        new_state=getattr(transaction, field),
        actor_user_id=actor_user_id,
    )


def claim_transition() -> None:
    """
    Flush the applied transitions ahead of any ledger write.

    The versioned UPDATE on the transaction row becomes the first write of
    the unit. A concurrent caller that read the same state then fails its
    own flush with StaleDataError, and the retry re-reads the new state.
    SQLite ignores FOR UPDATE, so this ordering is what serializes it.
    """
    db.session.flush()


def execute(operation):
    """Run operation as one committed unit of work, then kick the dispatcher."""
    def _op():
        result = operation()
        db.session.commit()
        return result

    result = run_with_retry(_op)
    schedule_dispatch()
    return result
