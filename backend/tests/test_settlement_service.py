"""Invoice settlement: debt/status derivation and the one-time stock-in."""

import logging
import pytest
from decimal import Decimal

from agrostock.models import Owner, Settlement, StockEntry
from agrostock.services import settlement_service, stock_service
from agrostock.services.errors import DuplicateSettlement, InsufficientFunds, NotFound

from conftest import balance_of, fund


def _document(supplier, collector, net_weight=100, unit_price=10, family="raw_material", material_type="FG"):
    return settlement_service.create_reception_document(
        family=family,
        material_type=material_type,
        supplier_id=supplier.id,
        collector_id=collector.id,
        net_weight=net_weight,
        unit_price=unit_price,
    )


def _total_in(material_type, owner):
    entry = stock_service.get_entry(material_type, owner)
    return entry.total_in if entry else Decimal("0")


def test_document_starts_unpaid_with_full_debt(db_session, supplier, collector):
    document = _document(supplier, collector, net_weight="12.5", unit_price="8.40")

    assert document.total_price == Decimal("105.00")
    assert document.debt_to_supplier == Decimal("105.00")
    assert document.remaining_quantity == Decimal("12.5")
    assert document.status == "unpaid"
    assert document.document_number == f"PV-{document.id:06d}"


def test_document_family_must_match_material(db_session, supplier, collector):
    with pytest.raises(ValueError):
        _document(supplier, collector, family="raw_material", material_type="HE")
    with pytest.raises(ValueError):
        _document(supplier, collector, family="essential_oil", material_type="FG")


def test_full_settlement_stocks_in_both_levels(db_session, supplier, collector):
    document = _document(supplier, collector)
    fund(collector, 1000)

    settlement = settlement_service.settle(document.id, 1000, collector.id)

    assert balance_of(collector) == Decimal("0")
    document = settlement_service.get_document(document.id)
    assert document.debt_to_supplier == Decimal("0")
    assert document.status == "paid"
    assert document.stocked_in is True
    assert settlement.invoice_number == f"FAC-{document.id:06d}"
    assert _total_in("FG", Owner.global_pool()) == Decimal("100")
    assert _total_in("FG", Owner.user(collector.id)) == Decimal("100")


def test_second_settlement_is_duplicate(db_session, supplier, collector):
    document = _document(supplier, collector)
    fund(collector, 1500)
    settlement_service.settle(document.id, 400, collector.id)

    with pytest.raises(DuplicateSettlement):
        settlement_service.settle(document.id, 600, collector.id)

    assert balance_of(collector) == Decimal("1100")
    assert db_session.query(Settlement).count() == 1


def test_partial_payments_stock_in_exactly_once(db_session, supplier, collector):
    document = _document(supplier, collector)
    fund(collector, 2000)

    settlement = settlement_service.settle(document.id, 400, collector.id)
    assert settlement_service.get_document(document.id).status == "partially_paid"
    assert stock_service.get_entry("FG", Owner.global_pool()) is None

    settlement_service.add_payment(settlement.id, 600)
    assert settlement_service.get_document(document.id).status == "paid"
    assert _total_in("FG", Owner.global_pool()) == Decimal("100")

    settlement_service.add_payment(settlement.id, 50)
    settlement_service.add_payment(settlement.id, 50)

    document = settlement_service.get_document(document.id)
    assert document.debt_to_supplier == Decimal("0")
    assert document.status == "paid"
    assert _total_in("FG", Owner.global_pool()) == Decimal("100")
    assert _total_in("FG", Owner.user(collector.id)) == Decimal("100")
    assert balance_of(collector) == Decimal("900")

    settlement = settlement_service.get_settlement(settlement.id)
    assert settlement.paid_amount == Decimal("1100")
    assert [p.resulting_status for p in settlement.payments] == ["partially_paid", "paid", "paid", "paid"]


def test_overpayment_floors_debt_at_zero(db_session, supplier, collector):
    document = _document(supplier, collector, net_weight=10, unit_price=10)
    fund(collector, 500)

    settlement_service.settle(document.id, 150, collector.id)

    document = settlement_service.get_document(document.id)
    assert document.debt_to_supplier == Decimal("0")
    assert balance_of(collector) == Decimal("350")


def test_settlement_without_funds_changes_nothing(db_session, supplier, collector):
    document = _document(supplier, collector)
    fund(collector, 999)

    with pytest.raises(InsufficientFunds):
        settlement_service.settle(document.id, 1000, collector.id)

    document = settlement_service.get_document(document.id)
    assert document.debt_to_supplier == Decimal("1000")
    assert document.status == "unpaid"
    assert document.stocked_in is False
    assert db_session.query(Settlement).count() == 0
    assert db_session.query(StockEntry).count() == 0
    assert balance_of(collector) == Decimal("999")


def test_rejected_settlement_logs_no_stock_in(db_session, caplog, supplier, collector):
    document = _document(supplier, collector)
    fund(collector, 10)

    with caplog.at_level(logging.INFO, logger="agrostock"):
        with pytest.raises(InsufficientFunds):
            settlement_service.settle(document.id, 1000, collector.id)

    assert not [r for r in caplog.records if "stock in" in r.getMessage() or "stocked in" in r.getMessage()]


def test_paid_settlement_logs_stock_in_after_commit(db_session, caplog, supplier, collector):
    document = _document(supplier, collector)
    fund(collector, 1000)

    with caplog.at_level(logging.INFO, logger="agrostock"):
        settlement_service.settle(document.id, 1000, collector.id)

    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("stock in: FG global") for m in messages)
    assert any(m.startswith(f"stock in: FG user:{collector.id}") for m in messages)
    assert any(m.startswith(f"document {document.id} paid: stocked in") for m in messages)


def test_payer_other_than_collector(db_session, supplier, collector, distiller):
    document = _document(supplier, collector)
    fund(distiller, 1000)

    settlement_service.settle(document.id, 1000, distiller.id)

    assert balance_of(distiller) == Decimal("0")
    assert _total_in("FG", Owner.user(collector.id)) == Decimal("100")
    assert stock_service.get_entry("FG", Owner.user(distiller.id)) is None


def test_unknown_document_is_not_found(db_session, collector):
    fund(collector, 10)
    with pytest.raises(NotFound):
        settlement_service.settle(777, 10, collector.id)
