# Overview: Delivery lifecycle: reserved vendor deliveries, partial delivery notes, oil dispatch.

"""
Delivery lifecycle.

Simple flow (essential-oil vendor delivery):
    create_delivery reserves the whole requested quantity from one stock
    entry; cancel_delivery releases all of it. cancelled is terminal.

Partial flow (delivery note against a raw-material reception document):
    paid | partially_delivered --create_delivery_note--> awaiting_delivery
    awaiting_delivery --complete_delivery_note--> partially_delivered | delivered
    At most one pending note per document. Completing a note takes the
    delivered quantity out of the collector's own stock entry.

Essential-oil documents:
    paid | awaiting_delivery --start_oil_delivery--> in_delivery
    in_delivery --finish_oil_delivery--> delivered
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Delivery, DeliveryNote, Owner, StockEntry
from ..models.deliveries import DELIVERY_CANCELLED, DELIVERY_DELIVERED
from ..models.documents import (
    FAMILY_ESSENTIAL_OIL,
    FAMILY_RAW_MATERIAL,
    STATUS_AWAITING_DELIVERY,
    STATUS_DELIVERED,
    STATUS_IN_DELIVERY,
    STATUS_PAID,
    STATUS_PARTIALLY_DELIVERED,
)
from ..time_utils import utcnow
from ..validation import to_quantity
from . import settlement_service, stock_service
from .concurrency import lock_for_update, run_atomic
from .errors import InvalidState, NotFound, QuantityExceedsRemaining


NOTE_OPENABLE_STATUSES = (STATUS_PAID, STATUS_PARTIALLY_DELIVERED)
OIL_DISPATCHABLE_STATUSES = (STATUS_PAID, STATUS_AWAITING_DELIVERY)


# =============================================================================
# SIMPLE FLOW
# =============================================================================

def create_delivery(
    material_type: str,
    owner: Owner,
    quantity,
    actor_id: int,
    recipient_id: int | None = None,
    destination: str | None = None,
) -> Delivery:
    """
    Reserve the full quantity from (material_type, owner) and record it delivered.

    Raises:
        InsufficientStock: quantity > available in that pool
    """
    stock_service.validate_material_type(material_type)
    quantity = to_quantity(quantity)

    def _op():
        entry = stock_service.reserve_locked(material_type, owner, quantity)
        delivery = Delivery(
            stock_entry_id=entry.id,
            created_by_user_id=actor_id,
            recipient_id=recipient_id,
            requested_quantity=quantity,
            delivered_quantity=quantity,
            status=DELIVERY_DELIVERED,
            destination=destination,
        )
        db.session.add(delivery)
        db.session.flush()
        return delivery

    return run_atomic(_op)


def cancel_delivery(delivery_id: int, reason: str | None = None) -> Delivery:
    """
    Cancel and put the whole reserved quantity back.

    Raises:
        InvalidState: already cancelled
    """
    def _op():
        delivery = lock_for_update(db.session.query(Delivery).filter_by(id=delivery_id)).first()
        if not delivery:
            raise NotFound.entity("Delivery", delivery_id)
        if delivery.status == DELIVERY_CANCELLED:
            raise InvalidState(
                f"Delivery {delivery.id} is already cancelled",
                delivery_id=delivery.id,
                status=delivery.status,
            )

        entry = db.session.get(StockEntry, delivery.stock_entry_id)
        stock_service.release_locked(entry.material_type, entry.owner, delivery.requested_quantity)

        delivery.status = DELIVERY_CANCELLED
        delivery.cancellation_reason = reason
        delivery.cancelled_at = utcnow()
        db.session.flush()
        return delivery

    return run_atomic(_op)


def get_delivery(delivery_id: int) -> Delivery:
    delivery = db.session.get(Delivery, delivery_id)
    if not delivery:
        raise NotFound.entity("Delivery", delivery_id)
    return delivery


def list_deliveries(status: str | None = None, actor_id: int | None = None) -> list[Delivery]:
    query = db.session.query(Delivery)
    if status:
        query = query.filter_by(status=status)
    if actor_id is not None:
        query = query.filter_by(created_by_user_id=actor_id)
    return query.order_by(Delivery.id.desc()).all()


# =============================================================================
# PARTIAL FLOW (delivery notes)
# =============================================================================

def create_delivery_note(
    document_id: int,
    quantity,
    actor_id: int,
    departure: str | None = None,
    destination: str | None = None,
) -> DeliveryNote:
    """
    Open a delivery note for part (or all) of what remains on a document.

    Raises:
        InvalidState: wrong family or status, nothing left, or a note is pending
        QuantityExceedsRemaining: quantity > document remaining_quantity
    """
    quantity = to_quantity(quantity)

    def _op():
        document = settlement_service.lock_document(document_id)

        if document.family != FAMILY_RAW_MATERIAL:
            raise InvalidState(
                f"Document {document.id} is {document.family}; delivery notes are for raw material",
                document_id=document.id,
                family=document.family,
            )
        if document.status not in NOTE_OPENABLE_STATUSES:
            raise InvalidState(
                f"Document {document.id} is {document.status} and cannot be delivered",
                document_id=document.id,
                status=document.status,
            )
        if document.remaining_quantity <= 0:
            raise InvalidState(
                f"Document {document.id} has nothing left to deliver",
                document_id=document.id,
                remaining=document.remaining_quantity,
            )

        pending = db.session.query(DeliveryNote).filter(
            DeliveryNote.document_id == document.id,
            DeliveryNote.completed_at.is_(None),
        ).first()
        if pending:
            raise InvalidState(
                f"Document {document.id} already has pending delivery note {pending.id}",
                document_id=document.id,
                delivery_note_id=pending.id,
            )

        if quantity > document.remaining_quantity:
            raise QuantityExceedsRemaining(
                f"Document {document.id} has {document.remaining_quantity} left, requested {quantity}",
                document_id=document.id,
                remaining=document.remaining_quantity,
                requested=quantity,
            )

        note = DeliveryNote(
            document_id=document.id,
            created_by_user_id=actor_id,
            quantity_to_deliver=quantity,
            remaining_quantity=document.remaining_quantity,
            delivered_quantity=Decimal("0"),
            is_partial=quantity < document.remaining_quantity,
            departure=departure,
            destination=destination,
        )
        db.session.add(note)
        document.status = STATUS_AWAITING_DELIVERY
        db.session.flush()
        return note

    return run_atomic(_op)


def complete_delivery_note(note_id: int, quantity=None) -> DeliveryNote:
    """
    "Finish delivery": deliver up to the note's quantity (all of it by default).

    Raises:
        InvalidState: note already completed
        QuantityExceedsRemaining: more than the note or the document holds
        InsufficientStock: collector's stock entry is short
    """
    if quantity is not None:
        quantity = to_quantity(quantity)

    def _op():
        note = db.session.get(DeliveryNote, note_id)
        if not note:
            raise NotFound.entity("DeliveryNote", note_id)

        document = settlement_service.lock_document(note.document_id)
        note = lock_for_update(db.session.query(DeliveryNote).filter_by(id=note_id)).first()

        if not note.is_pending:
            raise InvalidState(
                f"Delivery note {note.id} is already completed",
                delivery_note_id=note.id,
            )

        delivered = quantity if quantity is not None else note.quantity_to_deliver
        limit = min(note.quantity_to_deliver, document.remaining_quantity)
        if delivered > limit:
            raise QuantityExceedsRemaining(
                f"Delivery note {note.id} allows {limit}, requested {delivered}",
                delivery_note_id=note.id,
                document_id=document.id,
                remaining=limit,
                requested=delivered,
            )

        stock_service.reserve_locked(document.material_type, Owner.user(document.collector_id), delivered)

        document.remaining_quantity = document.remaining_quantity - delivered
        document.status = STATUS_DELIVERED if document.remaining_quantity == 0 else STATUS_PARTIALLY_DELIVERED

        note.delivered_quantity = delivered
        note.remaining_quantity = document.remaining_quantity
        note.completed_at = utcnow()
        db.session.flush()
        return note

    return run_atomic(_op)


def list_delivery_notes(document_id: int) -> list[DeliveryNote]:
    return db.session.query(DeliveryNote).filter_by(document_id=document_id).order_by(DeliveryNote.id).all()


# =============================================================================
# ESSENTIAL-OIL DOCUMENTS
# =============================================================================

def start_oil_delivery(document_id: int):
    """paid | awaiting_delivery -> in_delivery."""
    def _op():
        document = _lock_oil_document(document_id)
        if document.status not in OIL_DISPATCHABLE_STATUSES:
            raise InvalidState(
                f"Document {document.id} is {document.status} and cannot be dispatched",
                document_id=document.id,
                status=document.status,
            )
        document.status = STATUS_IN_DELIVERY
        db.session.flush()
        return document

    return run_atomic(_op)


def finish_oil_delivery(document_id: int):
    """in_delivery -> delivered; nothing remains on the document."""
    def _op():
        document = _lock_oil_document(document_id)
        if document.status != STATUS_IN_DELIVERY:
            raise InvalidState(
                f"Document {document.id} is {document.status}, not in delivery",
                document_id=document.id,
                status=document.status,
            )
        document.status = STATUS_DELIVERED
        document.remaining_quantity = Decimal("0")
        db.session.flush()
        return document

    return run_atomic(_op)


def _lock_oil_document(document_id: int):
    document = settlement_service.lock_document(document_id)
    if document.family != FAMILY_ESSENTIAL_OIL:
        raise InvalidState(
            f"Document {document.id} is not an essential-oil document",
            document_id=document.id,
            family=document.family,
        )
    return document
