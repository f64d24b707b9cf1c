# Overview: Reception documents, invoice settlement and the paid -> stock-in trigger.

"""
Invoice settlement invariants (authoritative)

- At most one Settlement per reception document (DuplicateSettlement).
- Every payment debits the payer's Balance by exactly the amount paid.
- debt_to_supplier only decreases and is floored at 0.
- While a document is still payable its status is derived from the debt:
  0 -> paid, otherwise partially_paid.
- The first transition to paid stocks net_weight into BOTH the global
  pool and the collector's own pool. The stocked_in flag makes this fire
  exactly once per document, whatever pays it down (settlement payments
  or advance consumption).
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Owner, ReceptionDocument, Settlement, SettlementPayment, Supplier, User
from ..models.documents import (
    FAMILY_ESSENTIAL_OIL,
    FAMILY_RAW_MATERIAL,
    PAYABLE_STATUSES,
    STATUS_PAID,
    STATUS_PARTIALLY_PAID,
    STATUS_UNPAID,
    STATUSES_BY_FAMILY,
)
from ..models.stock import MATERIAL_HE, RAW_MATERIAL_TYPES
from ..validation import MONEY_QUANT, ValidationError, to_money, to_quantity
from . import balance_service, stock_service
from .concurrency import lock_for_update, log_event, run_atomic
from .errors import DuplicateSettlement, NotFound


ZERO = Decimal("0.00")


# =============================================================================
# RECEPTION DOCUMENTS
# =============================================================================

def create_reception_document(
    family: str,
    material_type: str,
    supplier_id: int,
    collector_id: int,
    net_weight,
    unit_price,
    document_number: str | None = None,
) -> ReceptionDocument:
    """Record goods received; the full total_price is owed to the supplier."""
    if family not in STATUSES_BY_FAMILY:
        raise ValidationError(f"family must be one of {list(STATUSES_BY_FAMILY)}")
    if family == FAMILY_RAW_MATERIAL and material_type not in RAW_MATERIAL_TYPES:
        raise ValidationError(f"raw_material documents take one of {list(RAW_MATERIAL_TYPES)}")
    if family == FAMILY_ESSENTIAL_OIL and material_type != MATERIAL_HE:
        raise ValidationError(f"essential_oil documents take {MATERIAL_HE}")

    net_weight = to_quantity(net_weight, "net_weight")
    unit_price = to_money(unit_price, "unit_price")
    total_price = (net_weight * unit_price).quantize(MONEY_QUANT)

    def _op():
        if not db.session.get(Supplier, supplier_id):
            raise NotFound.entity("Supplier", supplier_id)
        if not db.session.get(User, collector_id):
            raise NotFound.entity("User", collector_id)

        document = ReceptionDocument(
            document_number=document_number,
            family=family,
            material_type=material_type,
            supplier_id=supplier_id,
            collector_id=collector_id,
            net_weight=net_weight,
            unit_price=unit_price,
            total_price=total_price,
            debt_to_supplier=total_price,
            remaining_quantity=net_weight,
            status=STATUS_UNPAID,
            stocked_in=False,
        )
        db.session.add(document)
        db.session.flush()

        if not document.document_number:
            document.document_number = f"PV-{document.id:06d}"
            db.session.flush()
        return document

    return run_atomic(_op)


def get_document(document_id: int) -> ReceptionDocument:
    document = db.session.get(ReceptionDocument, document_id)
    if not document:
        raise NotFound.entity("ReceptionDocument", document_id)
    return document


def list_documents(family: str | None = None, status: str | None = None, collector_id: int | None = None):
    query = db.session.query(ReceptionDocument)
    if family:
        query = query.filter_by(family=family)
    if status:
        query = query.filter_by(status=status)
    if collector_id is not None:
        query = query.filter_by(collector_id=collector_id)
    return query.order_by(ReceptionDocument.id.desc()).all()


def lock_document(document_id: int) -> ReceptionDocument:
    document = lock_for_update(db.session.query(ReceptionDocument).filter_by(id=document_id)).first()
    if not document:
        raise NotFound.entity("ReceptionDocument", document_id)
    return document


# =============================================================================
# SETTLEMENT
# =============================================================================

def settle(
    document_id: int,
    amount,
    payer_id: int,
    method: str = "cash",
    reference: str | None = None,
) -> Settlement:
    """
    Open the settlement of a document with its first payment.

    Raises:
        DuplicateSettlement: the document already has a settlement
        InsufficientFunds: payer's Balance < amount
        NotFound: unknown document or payer
    """
    amount = to_money(amount)

    def _op():
        document = lock_document(document_id)

        existing = db.session.query(Settlement).filter_by(document_id=document.id).first()
        if existing:
            raise DuplicateSettlement(
                f"Document {document.id} is already settled by invoice {existing.invoice_number}",
                document_id=document.id,
                settlement_id=existing.id,
            )

        # Stock entries lock before balances: check the payer up front, debit
        # after the stock-in
        balance_service.ensure_funds(payer_id, amount)

        settlement = Settlement(
            invoice_number=f"FAC-{document.id:06d}",
            document_id=document.id,
            total_amount=document.total_price,
            paid_amount=ZERO,
        )
        db.session.add(settlement)
        db.session.flush()

        _pay_locked(settlement, document, amount, payer_id, method, reference)
        return settlement

    return run_atomic(_op)


def add_payment(
    settlement_id: int,
    amount,
    payer_id: int | None = None,
    method: str = "cash",
    reference: str | None = None,
) -> Settlement:
    """
    Further payment against an existing settlement.

    payer defaults to whoever made the first payment. Payments after the
    document is paid are accepted (debt stays at 0) but never stock in again.
    """
    amount = to_money(amount)

    def _op():
        settlement = db.session.get(Settlement, settlement_id)
        if not settlement:
            raise NotFound.entity("Settlement", settlement_id)

        document = lock_document(settlement.document_id)

        payer = payer_id
        if payer is None:
            first = settlement.payments[0] if settlement.payments else None
            if first is None:
                raise ValidationError("payer_id is required")
            payer = first.payer_id

        balance_service.ensure_funds(payer, amount)
        _pay_locked(settlement, document, amount, payer, method, reference)
        return settlement

    return run_atomic(_op)


def get_settlement(settlement_id: int) -> Settlement:
    settlement = db.session.get(Settlement, settlement_id)
    if not settlement:
        raise NotFound.entity("Settlement", settlement_id)
    return settlement


def apply_payment_to_document(document: ReceptionDocument, amount: Decimal) -> bool:
    """
    Reduce the document's debt and recompute its payment status.

    Caller holds the document lock. Returns True when this call stocked
    the goods in.
    """
    document.debt_to_supplier = max(ZERO, document.debt_to_supplier - amount)

    if document.status in PAYABLE_STATUSES:
        document.status = STATUS_PAID if document.debt_to_supplier == 0 else STATUS_PARTIALLY_PAID

    stocked = False
    if document.status == STATUS_PAID and not document.stocked_in:
        # global sorts before user:<id>, matching the stock lock order
        stock_service.stock_in_locked(document.material_type, Owner.global_pool(), document.net_weight)
        stock_service.stock_in_locked(document.material_type, Owner.user(document.collector_id), document.net_weight)
        document.stocked_in = True
        stocked = True
        log_event(
            "document %s paid: stocked in %s %s", document.id, document.net_weight, document.material_type
        )

    db.session.flush()
    return stocked


def _pay_locked(
    settlement: Settlement,
    document: ReceptionDocument,
    amount: Decimal,
    payer_id: int,
    method: str,
    reference: str | None,
) -> SettlementPayment:
    apply_payment_to_document(document, amount)
    balance_service.debit_locked(payer_id, amount)

    settlement.paid_amount = (settlement.paid_amount or ZERO) + amount
    payment = SettlementPayment(
        payer_id=payer_id,
        amount=amount,
        method=method,
        reference=reference,
        resulting_status=document.status,
    )
    settlement.payments.append(payment)
    db.session.flush()
    return payment
