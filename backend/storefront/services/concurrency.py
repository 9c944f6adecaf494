# Overview: Service-layer helpers for concurrency; guarded updates and retry on lost races.

"""
No in-process locks exist in this service. Every read-modify-write that can
race (payment completion, stock movements, token claims) is expressed as a
single UPDATE whose WHERE clause carries the guard condition. The number of
matched rows tells the caller whether it won.

- guarded_update: run one conditional UPDATE, return rowcount
- run_with_retry: re-run an operation after a lost compare-and-swap or a
  database lock error, rolling back the session between attempts
"""

from __future__ import annotations

import logging
import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


class LostUpdateError(Exception):
    """A compare-and-swap UPDATE matched no rows because the row changed underneath us."""


def guarded_update(model, *conditions, values: dict) -> int:
    """
    Execute UPDATE model SET values WHERE conditions in the current transaction.

    Returns the number of rows matched. Zero means the guard did not hold
    (already transitioned, version moved, insufficient stock...).

    synchronize_session=False: callers re-read rows after the update, the
    identity map is not trusted across a guarded write.
    """
    stmt = (
        update(model)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount or 0


def run_with_retry(func, *, attempts: int = 5, backoff_base: float = 0.02):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on LostUpdateError (optimistic compare-and-swap lost),
    OperationalError (database locked, deadlocks) and StaleDataError.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (LostUpdateError, OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.debug("retrying after concurrent update (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
