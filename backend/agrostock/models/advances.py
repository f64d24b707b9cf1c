from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import add_hours, to_utc_z
from ..validation import decimal_str


ADVANCE_PENDING = "pending"
ADVANCE_ARRIVED = "arrived"
ADVANCE_USED = "used"
ADVANCE_CANCELLED = "cancelled"
ADVANCE_EXPIRED = "expired"

# At most one live advance per supplier
LIVE_ADVANCE_STATUSES = (ADVANCE_PENDING, ADVANCE_ARRIVED)


class AdvancePayment(db.Model):
    """
    Supplier prepayment held in escrow (paiement en avance).

    LIFECYCLE:
    - pending: payer's balance already debited, funds held
    - arrived: supplier confirmed receipt; may be consumed
    - used: remaining_amount reached zero
    - cancelled: refunded remaining_amount to the payer
    - expired: deadline passed while pending; refunded like cancelled

    INVARIANT: used_amount + remaining_amount == amount
    """
    __tablename__ = "advance_payments"
    __table_args__ = (
        db.CheckConstraint("remaining_amount >= 0", name="remaining_non_negative"),
        db.Index("ix_advance_payments_supplier_status", "supplier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(64), nullable=False, unique=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    payer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(18, 2), nullable=False)
    used_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0"))
    remaining_amount = db.Column(db.Numeric(18, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ADVANCE_PENDING, index=True)
    method = db.Column(db.String(32), nullable=False)
    advance_type = db.Column(db.String(32), nullable=False, default="advance")
    description = db.Column(db.String(500), nullable=True)
    reason = db.Column(db.String(500), nullable=True)
    deadline_hours = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("advance_payments", lazy=True))
    payer = db.relationship("User", foreign_keys=[payer_id])
    allocations = db.relationship("AdvanceAllocation", backref="advance", lazy=True, order_by="AdvanceAllocation.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def deadline(self):
        return add_hours(self.created_at, self.deadline_hours)

    def is_overdue(self, now) -> bool:
        """Pending past its deadline. Advances without a deadline never expire."""
        deadline = self.deadline
        return self.status == ADVANCE_PENDING and deadline is not None and now > deadline

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "supplier_id": self.supplier_id,
            "payer_id": self.payer_id,
            "amount": decimal_str(self.amount),
            "used_amount": decimal_str(self.used_amount),
            "remaining_amount": decimal_str(self.remaining_amount),
            "status": self.status,
            "method": self.method,
            "advance_type": self.advance_type,
            "description": self.description,
            "reason": self.reason,
            "deadline_hours": self.deadline_hours,
            "deadline": to_utc_z(self.deadline),
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "closed_at": to_utc_z(self.closed_at),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class AdvanceAllocation(db.Model):
    """Portion of an advance drawn down against exactly one reception document."""
    __tablename__ = "advance_allocations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    advance_id = db.Column(db.Integer, db.ForeignKey("advance_payments.id"), nullable=False, index=True)
    document_id = db.Column(db.Integer, db.ForeignKey("reception_documents.id"), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    document = db.relationship("ReceptionDocument")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "advance_id": self.advance_id,
            "document_id": self.document_id,
            "amount": decimal_str(self.amount),
            "created_at": to_utc_z(self.created_at),
        }
