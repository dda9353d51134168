# Overview: Service-layer helpers for row locking and retrying concurrent writes.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    populate_existing() makes the re-read overwrite any stale copy already
    held in the session identity map.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work as one DB transaction.

    - OperationalError (locks, deadlocks) and StaleDataError (optimistic
      version conflict) are rolled back and retried. A retried transition
      re-reads current state, so a lost race surfaces as the domain error of
      the second attempt (usually InvalidTransitionError).
    - Any other exception rolls the session back and propagates unchanged,
      so a failed operation leaves no partial writes.
    - Store failures that survive the retries become PersistenceError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(f"Database conflict persisted after {attempts} attempts") from exc
            logger.info("Retrying after concurrency conflict (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("Database error") from exc
        except Exception:
            db.session.rollback()
            raise
    raise PersistenceError("Database operation did not run")
