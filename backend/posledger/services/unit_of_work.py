# Overview: Transaction scope, row locking and retry helpers shared by every stock-affecting service.

"""
Unit of work

Every operation that touches stock runs inside exactly one UnitOfWork. The
object is passed explicitly (``uow=...``) through the orchestrators into the
stock mutator and the ledger; nothing relies on ambient transaction state.

Nesting is by participation:
- transaction(None) opens a new scope; it commits on success and rolls back on
  any exception, then re-raises.
- transaction(existing_uow) yields the same scope and never commits or rolls
  back; the outermost owner decides.

Post-commit hooks (for example the low-stock signal) are queued on the scope
and dispatched only after a successful commit, so a rolled-back operation
never announces anything.

Retries are NOT part of the core. run_with_retry is for the transport layer,
which may re-run a whole operation after a transient storage failure.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class UnitOfWork:
    """Explicit handle on one atomic, all-or-nothing database scope."""

    def __init__(self, session):
        self.session = session
        self._after_commit: list[Callable[[], None]] = []

    def add(self, obj) -> None:
        self.session.add(obj)

    def flush(self) -> None:
        self.session.flush()

    def get(self, model, ident, *, lock: bool = False):
        """
        Load one row by primary key inside this scope.

        Pending writes of this scope are flushed first (autoflush), so the
        read always sees them. With lock=True the row is read FOR UPDATE and
        the in-memory instance is refreshed from the locked row.
        """
        query = self.session.query(model).filter_by(id=ident)
        if lock:
            query = lock_for_update(query).populate_existing()
        return query.first()

    def after_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)

    def _discard_hooks(self) -> None:
        self._after_commit.clear()

    def _run_hooks(self) -> None:
        hooks, self._after_commit = self._after_commit, []
        for hook in hooks:
            try:
                hook()
            except Exception:
                # The data is already committed; a failing listener must not turn
                # a successful operation into an error response.
                logger.exception("Post-commit hook %r failed", hook)


@contextmanager
def transaction(uow: UnitOfWork | None = None) -> Iterator[UnitOfWork]:
    """Participate in ``uow`` if given, otherwise own a new unit of work."""
    if uow is not None:
        yield uow
        return

    owned = UnitOfWork(db.session)
    try:
        yield owned
        owned.session.commit()
    except Exception:
        owned.session.rollback()
        owned._discard_hooks()
        raise
    owned._run_hooks()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors propagate immediately.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Transient storage error (attempt %s/%s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_with_configured_retry(func):
    """run_with_retry using the application's DB_RETRY_ATTEMPTS setting."""
    return run_with_retry(func, attempts=current_app.config.get("DB_RETRY_ATTEMPTS", 3))
