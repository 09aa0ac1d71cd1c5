# Overview: Retry and row-locking helpers for stock and document mutations.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError)

_SCOPE_KEY = "retry_scope"


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the given query.

    NOTE: SQLite ignores FOR UPDATE; PostgreSQL/MySQL honor it.
    """
    return query.with_for_update()


def get_for_update(model, record_id: int):
    """Load one row by primary key with a row lock, or None."""
    return lock_for_update(db.session.query(model).filter(model.id == record_id)).first()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func(), rolling back and retrying on lock / optimistic-version failures.

    func must be safe to re-run from scratch: it should do its own reads.
    Nested calls run inline; only the outermost scope rolls back and retries.
    """
    if db.session.info.get(_SCOPE_KEY):
        return func()

    db.session.info[_SCOPE_KEY] = True
    try:
        return _run(func, attempts=attempts, backoff_base=backoff_base)
    finally:
        db.session.info.pop(_SCOPE_KEY, None)


def _run(func, *, attempts: int, backoff_base: float):
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying %s after %s (attempt %d/%d)",
                getattr(func, "__name__", "operation"),
                type(exc).__name__,
                attempt + 1,
                attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            # Business-rule failures abort the whole unit of work.
            db.session.rollback()
            raise
    return None
