# Overview: Per-user cash balances (BalanceLedger); atomic debit/credit under row locks.

"""
Balance ledger service.

INVARIANTS:
- One Balance row per user, created lazily on first credit, never deleted
- amount never goes negative: a debit larger than the balance raises
  InsufficientFunds and leaves the row untouched
- Each read-modify-write holds the row lock for the whole transaction
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Balance, User
from ..validation import to_money
from .concurrency import lock_for_update, lock_order_user_ids, run_atomic
from .errors import InsufficientFunds, NotFound


def get_balance(user_id: int) -> Decimal:
    """Read-only; users without a Balance row have 0."""
    balance = db.session.query(Balance).filter_by(user_id=user_id).first()
    return balance.amount if balance else Decimal("0.00")


def credit(user_id: int, amount) -> Balance:
    """Add amount to the user's balance, creating the row when absent."""
    amount = to_money(amount)

    def _op():
        return credit_locked(user_id, amount)

    return run_atomic(_op)


def debit(user_id: int, amount) -> Balance:
    """
    Subtract amount from the user's balance.

    Raises:
        InsufficientFunds: balance < amount (missing row counts as 0)
    """
    amount = to_money(amount)

    def _op():
        return debit_locked(user_id, amount)

    return run_atomic(_op)


def lock_balances(*user_ids: int) -> dict[int, Balance | None]:
    """
    Lock several balances in ascending user id order.

    Callers touching two balances (transfers) must go through here so
    every transaction acquires them in the same order.
    """
    locked = {}
    for uid in lock_order_user_ids(*user_ids):
        locked[uid] = _lock_balance(uid)
    return locked


def _ensure_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound.entity("User", user_id)
    return user


def _lock_balance(user_id: int) -> Balance | None:
    return lock_for_update(db.session.query(Balance).filter_by(user_id=user_id)).first()


def credit_locked(user_id: int, amount: Decimal) -> Balance:
    _ensure_user(user_id)
    balance = _lock_balance(user_id)
    if balance is None:
        balance = Balance(user_id=user_id, amount=Decimal("0.00"))
        db.session.add(balance)

    balance.amount = (balance.amount or Decimal("0.00")) + amount
    db.session.flush()
    return balance


def ensure_funds(user_id: int, amount: Decimal, pending_credit: Decimal = Decimal("0.00")) -> None:
    """
    Raise InsufficientFunds unless the user can cover amount.

    pending_credit is money the same transaction will credit first (a
    refund). Under the balance lock this is the definitive check; without
    it, debit_locked() re-checks when the debit is written.
    """
    _ensure_user(user_id)
    balance = db.session.query(Balance).filter_by(user_id=user_id).first()
    current = balance.amount if balance else Decimal("0.00")
    if current + pending_credit < amount:
        raise _insufficient(user_id, current + pending_credit, amount)


def debit_locked(user_id: int, amount: Decimal) -> Balance:
    _ensure_user(user_id)
    balance = _lock_balance(user_id)
    current = balance.amount if balance else Decimal("0.00")

    if current < amount:
        raise _insufficient(user_id, current, amount)

    balance.amount = current - amount
    db.session.flush()
    return balance


def _insufficient(user_id: int, available: Decimal, requested: Decimal) -> InsufficientFunds:
    return InsufficientFunds(
        f"Insufficient balance for user {user_id}: available {available}, requested {requested}",
        user_id=user_id,
        available=available,
        requested=requested,
    )
