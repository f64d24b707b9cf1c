"""Deliveries: reserve/cancel round trip, delivery notes, oil dispatch."""

import pytest
from decimal import Decimal

from agrostock.models import Delivery, DeliveryNote, Owner
from agrostock.services import delivery_service, settlement_service, stock_service
from agrostock.services.errors import InsufficientStock, InvalidState, QuantityExceedsRemaining

from conftest import fund


def _paid_document(supplier, collector, net_weight=100, family="raw_material", material_type="FG"):
    document = settlement_service.create_reception_document(
        family=family,
        material_type=material_type,
        supplier_id=supplier.id,
        collector_id=collector.id,
        net_weight=net_weight,
        unit_price=10,
    )
    fund(collector, document.total_price)
    settlement_service.settle(document.id, document.total_price, collector.id)
    return settlement_service.get_document(document.id)


def _available(material_type, owner):
    return stock_service.get_entry(material_type, owner).available


# =============================================================================
# SIMPLE FLOW
# =============================================================================

def test_delivery_reserve_and_cancel_round_trip(db_session, vendor):
    owner = Owner.user(vendor.id)
    stock_service.stock_in("HE", owner, 40)

    delivery = delivery_service.create_delivery("HE", owner, 40, actor_id=vendor.id, destination="Port")
    assert delivery.status == "delivered"
    assert delivery.delivered_quantity == Decimal("40")
    assert _available("HE", owner) == Decimal("0")

    delivery = delivery_service.cancel_delivery(delivery.id, reason="Buyer cancelled")
    assert delivery.status == "cancelled"
    assert delivery.cancelled_at is not None
    assert _available("HE", owner) == Decimal("40")

    with pytest.raises(InvalidState):
        delivery_service.cancel_delivery(delivery.id)
    assert _available("HE", owner) == Decimal("40")


def test_delivery_beyond_available_records_nothing(db_session, vendor):
    owner = Owner.global_pool()
    stock_service.stock_in("HE", owner, 10)

    with pytest.raises(InsufficientStock):
        delivery_service.create_delivery("HE", owner, 11, actor_id=vendor.id)

    assert db_session.query(Delivery).count() == 0
    assert _available("HE", owner) == Decimal("10")


# =============================================================================
# PARTIAL FLOW
# =============================================================================

def test_delivery_notes_until_fully_delivered(db_session, supplier, collector):
    document = _paid_document(supplier, collector)
    collector_pool = Owner.user(collector.id)

    note = delivery_service.create_delivery_note(document.id, 60, actor_id=collector.id, destination="Distillery")
    assert note.is_partial is True
    assert settlement_service.get_document(document.id).status == "awaiting_delivery"

    with pytest.raises(InvalidState):
        delivery_service.create_delivery_note(document.id, 10, actor_id=collector.id)

    note = delivery_service.complete_delivery_note(note.id)
    assert note.delivered_quantity == Decimal("60")
    assert note.completed_at is not None
    document = settlement_service.get_document(document.id)
    assert document.remaining_quantity == Decimal("40")
    assert document.status == "partially_delivered"
    assert _available("FG", collector_pool) == Decimal("40")
    assert _available("FG", Owner.global_pool()) == Decimal("100")

    with pytest.raises(QuantityExceedsRemaining):
        delivery_service.create_delivery_note(document.id, 50, actor_id=collector.id)

    last = delivery_service.create_delivery_note(document.id, 40, actor_id=collector.id)
    assert last.is_partial is False
    delivery_service.complete_delivery_note(last.id, quantity=40)

    document = settlement_service.get_document(document.id)
    assert document.remaining_quantity == Decimal("0")
    assert document.status == "delivered"

    with pytest.raises(InvalidState):
        delivery_service.create_delivery_note(document.id, 1, actor_id=collector.id)


def test_complete_less_than_note(db_session, supplier, collector):
    document = _paid_document(supplier, collector)
    note = delivery_service.create_delivery_note(document.id, 60, actor_id=collector.id)

    with pytest.raises(QuantityExceedsRemaining):
        delivery_service.complete_delivery_note(note.id, quantity=70)

    delivery_service.complete_delivery_note(note.id, quantity=25)

    document = settlement_service.get_document(document.id)
    assert document.remaining_quantity == Decimal("75")
    assert document.status == "partially_delivered"

    with pytest.raises(InvalidState):
        delivery_service.complete_delivery_note(note.id)


def test_note_requires_paid_document(db_session, supplier, collector):
    document = settlement_service.create_reception_document(
        family="raw_material",
        material_type="CG",
        supplier_id=supplier.id,
        collector_id=collector.id,
        net_weight=10,
        unit_price=10,
    )

    with pytest.raises(InvalidState):
        delivery_service.create_delivery_note(document.id, 5, actor_id=collector.id)
    assert db_session.query(DeliveryNote).count() == 0


def test_note_rejected_for_oil_documents(db_session, supplier, collector):
    document = _paid_document(supplier, collector, net_weight=5, family="essential_oil", material_type="HE")

    with pytest.raises(InvalidState):
        delivery_service.create_delivery_note(document.id, 5, actor_id=collector.id)


# =============================================================================
# ESSENTIAL-OIL DOCUMENTS
# =============================================================================

def test_oil_document_dispatch_lifecycle(db_session, supplier, collector):
    document = _paid_document(supplier, collector, net_weight=5, family="essential_oil", material_type="HE")
    assert stock_service.get_entry("HE", Owner.global_pool()).total_in == Decimal("5")

    with pytest.raises(InvalidState):
        delivery_service.finish_oil_delivery(document.id)

    document = delivery_service.start_oil_delivery(document.id)
    assert document.status == "in_delivery"

    with pytest.raises(InvalidState):
        delivery_service.start_oil_delivery(document.id)

    document = delivery_service.finish_oil_delivery(document.id)
    assert document.status == "delivered"
    assert document.remaining_quantity == Decimal("0")


def test_unpaid_oil_document_cannot_be_dispatched(db_session, supplier, collector):
    document = settlement_service.create_reception_document(
        family="essential_oil",
        material_type="HE",
        supplier_id=supplier.id,
        collector_id=collector.id,
        net_weight=2,
        unit_price=100,
    )

    with pytest.raises(InvalidState):
        delivery_service.start_oil_delivery(document.id)


def test_raw_document_is_not_oil(db_session, supplier, collector):
    document = _paid_document(supplier, collector)
    with pytest.raises(InvalidState):
        delivery_service.start_oil_delivery(document.id)
