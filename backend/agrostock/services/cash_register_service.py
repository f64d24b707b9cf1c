# Overview: Aggregate cash-register log with an O(1) running balance and an explicit rebuild pass.

"""
Cash register invariants (authoritative)

- The log is append-only for ordinary operations; each row stores the
  balance AFTER it was applied.
- Chronological order is (occurred_at, id).
- CashRegisterHead (id=1) mirrors the last row's balance_after. Every
  append locks the head first, so appends are strictly ordered.
- An expense may never take the running balance below zero.
- Editing or deleting a historical row goes through update_entry /
  delete_entry, which call rebuild() in the same transaction. A rebuild
  that would go negative anywhere raises and nothing is written.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import CashRegisterEntry, CashRegisterHead
from ..models.ledger import ENTRY_EXPENSE, ENTRY_INCOME
from ..time_utils import utcnow
from ..validation import ValidationError, to_money
from .concurrency import lock_for_update, log_event, run_atomic
from .errors import InsufficientFunds, NotFound


HEAD_ID = 1
ZERO = Decimal("0.00")

VALID_ENTRY_TYPES = (ENTRY_INCOME, ENTRY_EXPENSE)

# Fields a correction may touch; occurred_at stays fixed so the tail never moves
EDITABLE_FIELDS = {"entry_type", "amount", "method", "reason", "reference"}


def current_balance() -> Decimal:
    head = db.session.get(CashRegisterHead, HEAD_ID)
    return head.current_balance if head else ZERO


def list_entries(limit: int | None = None, offset: int = 0) -> list[CashRegisterEntry]:
    """Newest first."""
    query = db.session.query(CashRegisterEntry).order_by(
        CashRegisterEntry.occurred_at.desc(),
        CashRegisterEntry.id.desc(),
    )
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def get_entry(entry_id: int) -> CashRegisterEntry:
    entry = db.session.get(CashRegisterEntry, entry_id)
    if not entry:
        raise NotFound.entity("CashRegisterEntry", entry_id)
    return entry


def append_entry(
    entry_type: str,
    amount,
    method: str | None = None,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> CashRegisterEntry:
    """
    Append one row at the tail of the log.

    Raises:
        InsufficientFunds: expense larger than the current register balance
    """
    _validate_entry_type(entry_type)
    amount = to_money(amount)

    def _op():
        head = lock_head()
        return append_locked(head, entry_type, amount, method=method, reason=reason, reference=reference, user_id=user_id)

    return run_atomic(_op)


def record_income(amount, method=None, reason=None, reference=None, user_id=None) -> CashRegisterEntry:
    return append_entry(ENTRY_INCOME, amount, method, reason, reference, user_id)


def record_expense(amount, method=None, reason=None, reference=None, user_id=None) -> CashRegisterEntry:
    return append_entry(ENTRY_EXPENSE, amount, method, reason, reference, user_id)


def adjust_balance(target, reason: str, user_id: int | None = None) -> CashRegisterEntry | None:
    """
    Bring the register to an exact counted amount.

    Appends an income or expense row for the difference; returns None
    when the register already holds target.
    """
    target = to_money(target, "target", allow_zero=True)
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required")

    def _op():
        head = lock_head()
        diff = target - head.current_balance
        if diff == 0:
            return None

        entry_type = ENTRY_INCOME if diff > 0 else ENTRY_EXPENSE
        return append_locked(
            head,
            entry_type,
            abs(diff),
            method="adjustment",
            reason=reason,
            reference=f"ADJUST-{utcnow():%Y%m%d%H%M%S}",
            user_id=user_id,
        )

    return run_atomic(_op)


def withdraw(amount, method: str = "cash", reason: str | None = None, user_id: int | None = None) -> CashRegisterEntry:
    """Take cash out of the register (retrait)."""
    amount = to_money(amount)

    def _op():
        head = lock_head()
        return append_locked(
            head,
            ENTRY_EXPENSE,
            amount,
            method=method,
            reason=reason or "Withdrawal",
            reference=f"WITHDRAW-{utcnow():%Y%m%d%H%M%S}",
            user_id=user_id,
        )

    return run_atomic(_op)


def update_entry(entry_id: int, /, **changes) -> CashRegisterEntry:
    """Correct a historical row, then rebuild every balance_after."""
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if "entry_type" in changes:
        _validate_entry_type(changes["entry_type"])
    if "amount" in changes:
        changes["amount"] = to_money(changes["amount"])

    def _op():
        entry = lock_for_update(db.session.query(CashRegisterEntry).filter_by(id=entry_id)).first()
        if not entry:
            raise NotFound.entity("CashRegisterEntry", entry_id)
        head = lock_head()

        for key, value in changes.items():
            setattr(entry, key, value)
        db.session.flush()

        _rebuild_locked(head)
        return entry

    return run_atomic(_op)


def delete_entry(entry_id: int) -> None:
    """Remove a historical row, then rebuild every balance_after."""
    def _op():
        entry = lock_for_update(db.session.query(CashRegisterEntry).filter_by(id=entry_id)).first()
        if not entry:
            raise NotFound.entity("CashRegisterEntry", entry_id)
        head = lock_head()

        db.session.delete(entry)
        db.session.flush()

        _rebuild_locked(head)

    run_atomic(_op)


def rebuild() -> CashRegisterHead:
    """
    Recompute balance_after for every row in chronological order.

    O(n). Runs under the head lock so no append can interleave.
    """
    def _op():
        head = lock_head()
        return _rebuild_locked(head)

    return run_atomic(_op)


def lock_head() -> CashRegisterHead:
    """Lock (creating if needed) the tail pointer. Always the last lock taken."""
    head = lock_for_update(db.session.query(CashRegisterHead).filter_by(id=HEAD_ID)).first()
    if head is None:
        head = CashRegisterHead(id=HEAD_ID, current_balance=ZERO, last_entry_id=None, entry_count=0)
        db.session.add(head)
        db.session.flush()
    return head


def append_locked(
    head: CashRegisterHead,
    entry_type: str,
    amount: Decimal,
    *,
    method: str | None = None,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> CashRegisterEntry:
    """Append under an already-held head lock (for callers inside a larger unit of work)."""
    current = head.current_balance
    if entry_type == ENTRY_EXPENSE and amount > current:
        raise InsufficientFunds(
            f"Insufficient cash register balance: available {current}, requested {amount}",
            ledger="cash_register",
            available=current,
            requested=amount,
        )

    balance_after = current + amount if entry_type == ENTRY_INCOME else current - amount

    entry = CashRegisterEntry(
        user_id=user_id,
        entry_type=entry_type,
        amount=amount,
        balance_after=balance_after,
        method=method,
        reason=reason,
        reference=reference,
        occurred_at=_next_occurred_at(head),
    )
    db.session.add(entry)
    db.session.flush()

    head.current_balance = balance_after
    head.last_entry_id = entry.id
    head.entry_count = (head.entry_count or 0) + 1
    db.session.flush()
    return entry


def _rebuild_locked(head: CashRegisterHead) -> CashRegisterHead:
    entries = db.session.query(CashRegisterEntry).order_by(
        CashRegisterEntry.occurred_at.asc(),
        CashRegisterEntry.id.asc(),
    ).all()

    running = ZERO
    for entry in entries:
        running += entry.signed_amount
        if running < 0:
            raise InsufficientFunds(
                f"Cash register would go negative at entry {entry.id}",
                ledger="cash_register",
                entry_id=entry.id,
                balance=running,
            )
        entry.balance_after = running

    head.current_balance = running
    head.last_entry_id = entries[-1].id if entries else None
    head.entry_count = len(entries)
    db.session.flush()

    log_event(
        "cash register rebuilt: %s entries, balance %s", head.entry_count, head.current_balance
    )
    return head


def _next_occurred_at(head: CashRegisterHead):
    # Never sort before the current tail, even if the clock steps back
    now = utcnow()
    if head.last_entry_id:
        last = db.session.get(CashRegisterEntry, head.last_entry_id)
        if last and last.occurred_at and last.occurred_at > now:
            return last.occurred_at
    return now


def _validate_entry_type(entry_type: str) -> None:
    if entry_type not in VALID_ENTRY_TYPES:
        raise ValidationError(f"entry_type must be one of {list(VALID_ENTRY_TYPES)}")
