# Overview: Locking and retry helpers shared by the posting services.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id columns
    (StaleDataError on a lost race) are what serializes writers.
    """
    return query.with_for_update()


def _retry_settings() -> tuple[int, float]:
    if has_app_context():
        return (
            int(current_app.config.get("RETRY_ATTEMPTS", 3)),
            float(current_app.config.get("RETRY_BACKOFF_SECONDS", 0.1)),
        )
    return 3, 0.1


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work, retrying on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic locking conflicts). Any failure rolls the session back, so a
    caller never sees a half-applied unit. When retries run out the conflict
    surfaces as ConcurrencyConflict, which the client may resubmit.

    func must re-read everything it depends on: each attempt starts from a
    clean session.
    """
    default_attempts, default_backoff = _retry_settings()
    attempts = attempts or default_attempts
    backoff_base = default_backoff if backoff_base is None else backoff_base

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Giving up after %s attempts: %s", attempts, exc)
                raise ConcurrencyConflict(
                    "The record was changed by another request; please retry",
                    attempts=attempts,
                ) from exc
            logger.info("Concurrency conflict on attempt %s, retrying: %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
