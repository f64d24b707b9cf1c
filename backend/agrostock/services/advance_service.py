# Overview: Supplier advance payments held in escrow and drawn down against reception documents.

"""
Advance payment escrow.

LIFECYCLE:
    pending --confirm_arrival--> arrived --consume--> arrived | used
    pending | arrived --cancel--> cancelled   (remaining refunded to payer)
    pending (past deadline) --expire_overdue--> expired (remaining refunded)

INVARIANTS:
- The payer's Balance is debited by the full amount at creation.
- used_amount + remaining_amount == amount after every operation.
- At most one live (pending or arrived) advance per supplier.
- Each consume call targets exactly one reception document and pays down
  that document's debt, with the same status recomputation and stock-in
  trigger as a settlement payment.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import AdvanceAllocation, AdvancePayment, Supplier
from ..models.advances import (
    ADVANCE_ARRIVED,
    ADVANCE_CANCELLED,
    ADVANCE_EXPIRED,
    ADVANCE_PENDING,
    ADVANCE_USED,
    LIVE_ADVANCE_STATUSES,
)
from ..models.documents import PAYABLE_STATUSES
from ..time_utils import utcnow
from ..validation import to_money, to_non_negative_int
from . import balance_service, settlement_service
from .concurrency import lock_for_update, log_event, run_atomic
from .errors import (
    InsufficientEscrowFunds,
    InvalidState,
    NotFound,
    QuantityExceedsRemaining,
    SupplierHasUnsettledAdvance,
)


ZERO = Decimal("0.00")


def create_advance(
    supplier_id: int,
    payer_id: int,
    amount,
    method: str = "cash",
    *,
    deadline_hours: int | None = None,
    advance_type: str = "advance",
    description: str | None = None,
    reference: str | None = None,
    now: datetime | None = None,
) -> AdvancePayment:
    """
    Prepay a supplier; the payer's Balance is debited immediately.

    deadline_hours falls back to ADVANCE_DEFAULT_DEADLINE_HOURS (0 = none).

    Raises:
        SupplierHasUnsettledAdvance: supplier already has a live advance
        InsufficientFunds: payer's Balance < amount
    """
    amount = to_money(amount)
    if deadline_hours is None:
        deadline_hours = current_app.config.get("ADVANCE_DEFAULT_DEADLINE_HOURS") or None
    if deadline_hours is not None:
        deadline_hours = to_non_negative_int(deadline_hours, "deadline_hours") or None
    now = now or utcnow()

    def _op():
        # Supplier row serializes concurrent creations for the same supplier
        supplier = lock_for_update(db.session.query(Supplier).filter_by(id=supplier_id)).first()
        if not supplier:
            raise NotFound.entity("Supplier", supplier_id)

        live = lock_for_update(
            db.session.query(AdvancePayment).filter(
                AdvancePayment.supplier_id == supplier_id,
                AdvancePayment.status.in_(LIVE_ADVANCE_STATUSES),
            )
        ).all()

        # A forgotten overdue advance does not block the supplier
        overdue = [a for a in live if a.is_overdue(now)]
        blocking = [a for a in live if not a.is_overdue(now)]
        if blocking:
            raise SupplierHasUnsettledAdvance(
                f"Supplier {supplier_id} already has a {blocking[0].status} advance",
                supplier_id=supplier_id,
                advance_id=blocking[0].id,
                status=blocking[0].status,
            )

        balance_service.lock_balances(payer_id, *[a.payer_id for a in overdue])
        refund_to_payer = sum((a.remaining_amount for a in overdue if a.payer_id == payer_id), ZERO)
        balance_service.ensure_funds(payer_id, amount, pending_credit=refund_to_payer)

        for advance in overdue:
            _expire_locked(advance, now)
        balance_service.debit_locked(payer_id, amount)

        advance = AdvancePayment(
            reference=reference or f"AV-{uuid.uuid4().hex[:10].upper()}",
            supplier_id=supplier_id,
            payer_id=payer_id,
            amount=amount,
            used_amount=ZERO,
            remaining_amount=amount,
            status=ADVANCE_PENDING,
            method=method,
            advance_type=advance_type,
            description=description,
            deadline_hours=deadline_hours,
            created_at=now,
        )
        db.session.add(advance)
        db.session.flush()
        return advance

    return run_atomic(_op)


def confirm_arrival(advance_id: int, actor_id: int | None = None, now: datetime | None = None) -> AdvancePayment:
    """
    pending -> arrived. actor_id None means an automatic confirmation.

    Raises:
        InvalidState: not pending, or pending past its deadline
    """
    now = now or utcnow()

    def _op():
        advance = _lock_advance(advance_id)
        if advance.status != ADVANCE_PENDING:
            raise InvalidState(
                f"Advance {advance.id} is {advance.status}, only pending advances can be confirmed",
                advance_id=advance.id,
                status=advance.status,
            )
        if advance.is_overdue(now):
            raise InvalidState(
                f"Advance {advance.id} passed its deadline",
                advance_id=advance.id,
                status=advance.status,
                deadline=advance.deadline,
            )

        advance.status = ADVANCE_ARRIVED
        advance.confirmed_at = now
        advance.confirmed_by_user_id = actor_id
        db.session.flush()
        return advance

    return run_atomic(_op)


def cancel_advance(advance_id: int, reason: str | None = None, now: datetime | None = None) -> AdvancePayment:
    """
    pending | arrived -> cancelled; remaining_amount goes back to the payer.

    Raises:
        InvalidState: advance is used, cancelled or expired
    """
    now = now or utcnow()

    def _op():
        advance = _lock_advance(advance_id)
        if advance.status not in LIVE_ADVANCE_STATUSES:
            raise InvalidState(
                f"Advance {advance.id} is {advance.status} and cannot be cancelled",
                advance_id=advance.id,
                status=advance.status,
            )

        _refund_locked(advance)
        advance.status = ADVANCE_CANCELLED
        advance.reason = reason
        advance.closed_at = now
        db.session.flush()
        return advance

    return run_atomic(_op)


def consume_advance(advance_id: int, amount, document_id: int) -> AdvancePayment:
    """
    Draw amount out of an arrived advance to pay one reception document.

    Raises:
        InvalidState: advance not arrived, document of another supplier,
            or document no longer payable
        InsufficientEscrowFunds: amount > remaining_amount
        QuantityExceedsRemaining: amount > document's outstanding debt
    """
    amount = to_money(amount)

    def _op():
        advance = _lock_advance(advance_id)
        if advance.status != ADVANCE_ARRIVED:
            raise InvalidState(
                f"Advance {advance.id} is {advance.status}, only arrived advances can be used",
                advance_id=advance.id,
                status=advance.status,
            )
        if amount > advance.remaining_amount:
            raise InsufficientEscrowFunds(
                f"Advance {advance.id} has {advance.remaining_amount} left, requested {amount}",
                advance_id=advance.id,
                remaining=advance.remaining_amount,
                requested=amount,
            )

        document = settlement_service.lock_document(document_id)
        if document.supplier_id != advance.supplier_id:
            raise InvalidState(
                f"Document {document.id} belongs to another supplier",
                advance_id=advance.id,
                document_id=document.id,
            )
        if document.status not in PAYABLE_STATUSES:
            raise InvalidState(
                f"Document {document.id} is {document.status} and takes no more payments",
                document_id=document.id,
                status=document.status,
            )
        if amount > document.debt_to_supplier:
            raise QuantityExceedsRemaining(
                f"Document {document.id} owes {document.debt_to_supplier}, requested {amount}",
                document_id=document.id,
                remaining=document.debt_to_supplier,
                requested=amount,
            )

        advance.used_amount = advance.used_amount + amount
        advance.remaining_amount = advance.remaining_amount - amount
        if advance.remaining_amount == 0:
            advance.status = ADVANCE_USED
            advance.closed_at = utcnow()

        allocation = AdvanceAllocation(document_id=document.id, amount=amount)
        advance.allocations.append(allocation)

        settlement_service.apply_payment_to_document(document, amount)
        db.session.flush()
        return advance

    return run_atomic(_op)


def expire_overdue(now: datetime | None = None) -> list[AdvancePayment]:
    """Expire every pending advance past its deadline and refund the payers."""
    now = now or utcnow()

    def _op():
        candidates = lock_for_update(
            db.session.query(AdvancePayment).filter(
                AdvancePayment.status == ADVANCE_PENDING,
                AdvancePayment.deadline_hours.isnot(None),
            ).order_by(AdvancePayment.id)
        ).all()

        expired = [a for a in candidates if a.is_overdue(now)]
        balance_service.lock_balances(*[a.payer_id for a in expired])
        for advance in expired:
            _expire_locked(advance, now)

        if expired:
            log_event("expired %s overdue advance(s)", len(expired))
        return expired

    return run_atomic(_op)


def list_overdue(now: datetime | None = None) -> list[AdvancePayment]:
    now = now or utcnow()
    pending = db.session.query(AdvancePayment).filter(
        AdvancePayment.status == ADVANCE_PENDING,
        AdvancePayment.deadline_hours.isnot(None),
    ).order_by(AdvancePayment.id).all()
    return [a for a in pending if a.is_overdue(now)]


def list_advances(supplier_id: int | None = None, status: str | None = None) -> list[AdvancePayment]:
    query = db.session.query(AdvancePayment)
    if supplier_id is not None:
        query = query.filter_by(supplier_id=supplier_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(AdvancePayment.id.desc()).all()


def get_advance(advance_id: int) -> AdvancePayment:
    advance = db.session.get(AdvancePayment, advance_id)
    if not advance:
        raise NotFound.entity("AdvancePayment", advance_id)
    return advance


def _lock_advance(advance_id: int) -> AdvancePayment:
    advance = lock_for_update(db.session.query(AdvancePayment).filter_by(id=advance_id)).first()
    if not advance:
        raise NotFound.entity("AdvancePayment", advance_id)
    return advance


def _refund_locked(advance: AdvancePayment) -> None:
    if advance.remaining_amount > 0:
        balance_service.credit_locked(advance.payer_id, advance.remaining_amount)


def _expire_locked(advance: AdvancePayment, now: datetime) -> None:
    _refund_locked(advance)
    advance.status = ADVANCE_EXPIRED
    advance.closed_at = now
    db.session.flush()
    log_event(
        "advance %s expired, refunded %s to user %s", advance.id, advance.remaining_amount, advance.payer_id
    )
