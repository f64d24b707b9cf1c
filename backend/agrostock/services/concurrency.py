# Overview: Transaction boundary and row-locking helpers shared by every ledger service.

"""
Locking and atomicity rules (authoritative)

- Every public mutating operation runs through run_atomic(): the outermost
  call commits, any exception rolls back everything written in the call,
  nested calls join the outer transaction.
- Read-modify-write on a ledger row happens under lock_for_update().
- Multi-row operations lock in one fixed order:
  primary document/record -> stock entries (material_type, owner_key)
  -> balances (ascending user id) -> cash register head.
- Ledger events go through log_event(): inside run_atomic() they are held
  until the outermost commit and discarded on rollback.
- No automatic retry here; lock waits and deadlock retries belong to the
  database/infrastructure layer.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from flask import current_app

from ..extensions import db

T = TypeVar("T")

_DEPTH_KEY = "agrostock_atomic_depth"
_EVENTS_KEY = "agrostock_pending_events"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def in_atomic_block() -> bool:
    return db.session.info.get(_DEPTH_KEY, 0) > 0


def log_event(message: str, *args) -> None:
    """
    Info-level ledger event, emitted once the enclosing unit of work commits.

    Arguments are captured now; ORM attributes expire on commit.
    """
    if not in_atomic_block():
        current_app.logger.info(message, *args)
        return
    db.session.info.setdefault(_EVENTS_KEY, []).append((message, args))


def run_atomic(func: Callable[[], T]) -> T:
    """
    Execute func as one all-or-nothing unit of work.

    Outermost call: commit on success, rollback on any exception.
    Nested call: run inside the caller's transaction and let the
    outermost call decide.
    """
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        result = func()
        if depth == 0:
            session.commit()
            _flush_events(session)
        return result
    except Exception:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info[_DEPTH_KEY] = depth
        if depth == 0:
            session.info.pop(_EVENTS_KEY, None)


def _flush_events(session) -> None:
    for message, args in session.info.pop(_EVENTS_KEY, []):
        current_app.logger.info(message, *args)


def lock_order_user_ids(*user_ids: int | None) -> list[int]:
    """Distinct user ids in the global balance lock order (ascending)."""
    return sorted({uid for uid in user_ids if uid is not None})
