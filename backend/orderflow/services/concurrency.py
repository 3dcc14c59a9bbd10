# Overview: Locking and retry helpers shared by the stock, credit and order services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking to a ledger read.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; version_id_col still catches
    lost updates there (StaleDataError on flush).
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Run a unit of DB work, retrying on lock conflicts and stale versions.

    The session is rolled back before each retry, so func must rebuild its
    state from the database rather than reuse objects loaded earlier.
    """
    if attempts is None:
        attempts = current_app.config.get("ORDERFLOW_RETRY_ATTEMPTS", 3)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent update conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))


def run_and_commit(func, *args, **kwargs):
    """
    Run a service call and commit its writes as one retried unit.

    Services only flush. A failed commit rolls the flushed work back, so a
    retry has to re-run the service call, never just the commit.
    """
    def _op():
        result = func(*args, **kwargs)
        db.session.commit()
        return result
    return run_with_retry(_op)
