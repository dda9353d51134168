# Overview: Service-layer operations for human-readable transaction numbers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow

DOC_ORDER = "ORDER"
DOC_REMITTANCE = "REMITTANCE"


def _allocate(document_type: str, period: str) -> int:
    """
    Atomically allocate the next number for (document_type, period).

    Runs inside the caller's transaction, so an aborted create does not burn
    a number. A concurrent first insert for the same period loses on the
    unique constraint inside a savepoint and falls back to the UPDATE.
    """
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, period=period, next_number=2))
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period=period)
        .scalar()
    )
    return int(current) - 1


def next_order_number(now: datetime | None = None) -> str:
    """ORD-YYYYMMDD-NNNNN, counter resets daily."""
    now = now or utcnow()
    period = now.strftime("%Y%m%d")
    return f"ORD-{period}-{_allocate(DOC_ORDER, period):05d}"


def next_remittance_number(now: datetime | None = None) -> str:
    """REM-YYYY-NNNN, counter resets yearly. Widens past 9999 rather than wrapping."""
    now = now or utcnow()
    period = now.strftime("%Y")
    return f"REM-{period}-{_allocate(DOC_REMITTANCE, period):04d}"
