from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


ENTRY_INCOME = "income"
ENTRY_EXPENSE = "expense"

REQUEST_PENDING = "pending"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"


class Balance(db.Model):
    """
    Per-user cash balance (SoldeUser).

    Created lazily on first credit, never deleted, never negative.
    Reads and writes go through services.balance_service under a row lock.
    """
    __tablename__ = "balances"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("balance", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "amount": decimal_str(self.amount),
            "updated_at": to_utc_z(self.updated_at),
        }


class CashRegisterHead(db.Model):
    """
    Tail pointer of the cash-register log.

    Single row (id=1). Holds the running balance of the last entry so the
    current balance is an O(1) read, and is the row every append locks.
    """
    __tablename__ = "cash_register_head"

    id = db.Column(db.Integer, primary_key=True)
    current_balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    last_entry_id = db.Column(db.Integer, nullable=True)
    entry_count = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "current_balance": decimal_str(self.current_balance),
            "last_entry_id": self.last_entry_id,
            "entry_count": self.entry_count,
        }


class CashRegisterEntry(db.Model):
    """
    Append-only aggregate cash log (caisse).

    Each row carries the balance AFTER it was applied. Chronological order
    is (occurred_at, id). Historical rows may only change through
    cash_register_service.update_entry/delete_entry, which rebuild every
    balance_after in the same transaction.
    """
    __tablename__ = "cash_register_entries"
    __table_args__ = (
        db.Index("ix_cash_entries_occurred", "occurred_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    entry_type = db.Column(db.String(16), nullable=False)  # income, expense
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    balance_after = db.Column(db.Numeric(18, 2), nullable=False)

    method = db.Column(db.String(32), nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    reference = db.Column(db.String(64), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("cash_entries", lazy=True))

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.entry_type == ENTRY_INCOME else -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "entry_type": self.entry_type,
            "amount": decimal_str(self.amount),
            "balance_after": decimal_str(self.balance_after),
            "method": self.method,
            "reason": self.reason,
            "reference": self.reference,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Transfer(db.Model):
    """
    Immutable record of a balance movement between two users.

    cash_entry_id is set when the cash register took part (admin source
    or vendor deposit).
    """
    __tablename__ = "transfers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    initiator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(18, 2), nullable=False)
    method = db.Column(db.String(32), nullable=False)  # cash, mobile, bank_transfer
    source = db.Column(db.String(16), nullable=False)  # cash_register, balance
    reason = db.Column(db.String(500), nullable=True)
    reference = db.Column(db.String(64), nullable=True)

    cash_entry_id = db.Column(db.Integer, db.ForeignKey("cash_register_entries.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    initiator = db.relationship("User", foreign_keys=[initiator_id])
    recipient = db.relationship("User", foreign_keys=[recipient_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "initiator_id": self.initiator_id,
            "recipient_id": self.recipient_id,
            "amount": decimal_str(self.amount),
            "method": self.method,
            "source": self.source,
            "reason": self.reason,
            "reference": self.reference,
            "cash_entry_id": self.cash_entry_id,
            "created_at": to_utc_z(self.created_at),
        }


class BalanceRequest(db.Model):
    """
    A user's request for funds (demande de solde).

    LIFECYCLE: pending -> approved (admin transfer performed) | rejected.
    Only pending requests can be deleted.
    """
    __tablename__ = "balance_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    reason = db.Column(db.String(500), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=REQUEST_PENDING, index=True)

    admin_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    admin_comment = db.Column(db.String(500), nullable=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("transfers.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    admin = db.relationship("User", foreign_keys=[admin_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": decimal_str(self.amount),
            "reason": self.reason,
            "status": self.status,
            "admin_id": self.admin_id,
            "admin_comment": self.admin_comment,
            "transfer_id": self.transfer_id,
            "created_at": to_utc_z(self.created_at),
            "processed_at": to_utc_z(self.processed_at),
        }
