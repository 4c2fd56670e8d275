# Overview: Retry helper for database operations that can hit transient lock errors.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError

from ..extensions import db

logger = logging.getLogger(__name__)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on transient lock failures.

    Retries on OperationalError (deadlocks, "database is locked"). Business
    errors raised by func propagate immediately after a rollback.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning("transient database error, retrying (attempt %d/%d)", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
