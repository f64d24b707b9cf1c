"""Cash register log: ordered appends, corrections and full rebuild."""

import pytest
from decimal import Decimal

from agrostock.models import CashRegisterEntry, CashRegisterHead
from agrostock.services import cash_register_service
from agrostock.services.errors import InsufficientFunds, NotFound
from agrostock.validation import ValidationError


def _balances(db_session):
    entries = db_session.query(CashRegisterEntry).order_by(
        CashRegisterEntry.occurred_at, CashRegisterEntry.id
    ).all()
    return [e.balance_after for e in entries]


@pytest.fixture
def three_entries(db_session, admin):
    first = cash_register_service.record_income(100, "cash", "Opening float", user_id=admin.id)
    second = cash_register_service.record_expense(30, "cash", "Fuel", user_id=admin.id)
    third = cash_register_service.record_income(50, "mobile", "Deposit", user_id=admin.id)
    return first.id, second.id, third.id


def test_empty_register_has_zero_balance(db_session):
    assert cash_register_service.current_balance() == Decimal("0")


def test_appends_carry_running_balance(db_session, three_entries):
    assert _balances(db_session) == [Decimal("100"), Decimal("70"), Decimal("120")]
    assert cash_register_service.current_balance() == Decimal("120")

    head = db_session.get(CashRegisterHead, cash_register_service.HEAD_ID)
    assert head.last_entry_id == three_entries[2]
    assert head.entry_count == 3


def test_expense_beyond_balance_is_rejected(db_session, three_entries):
    with pytest.raises(InsufficientFunds):
        cash_register_service.record_expense(500, "cash", "Too much")

    assert db_session.query(CashRegisterEntry).count() == 3
    assert cash_register_service.current_balance() == Decimal("120")


def test_update_entry_rebuilds_every_balance(db_session, three_entries):
    first_id, _, _ = three_entries

    cash_register_service.update_entry(first_id, amount="200")

    assert _balances(db_session) == [Decimal("200"), Decimal("170"), Decimal("220")]
    assert cash_register_service.current_balance() == Decimal("220")


def test_delete_entry_rebuilds_every_balance(db_session, three_entries):
    _, second_id, _ = three_entries

    cash_register_service.delete_entry(second_id)

    assert _balances(db_session) == [Decimal("100"), Decimal("150")]
    head = db_session.get(CashRegisterHead, cash_register_service.HEAD_ID)
    assert head.current_balance == Decimal("150")
    assert head.entry_count == 2


def test_correction_that_goes_negative_writes_nothing(db_session, three_entries):
    first_id, _, _ = three_entries

    with pytest.raises(InsufficientFunds) as exc:
        cash_register_service.update_entry(first_id, amount="10")

    assert exc.value.context["entry_id"] == three_entries[1]
    assert db_session.get(CashRegisterEntry, first_id).amount == Decimal("100")
    assert _balances(db_session) == [Decimal("100"), Decimal("70"), Decimal("120")]
    assert cash_register_service.current_balance() == Decimal("120")


def test_update_rejects_unknown_fields(db_session, three_entries):
    with pytest.raises(ValidationError):
        cash_register_service.update_entry(three_entries[0], occurred_at="2020-01-01")


def test_missing_entry_is_not_found(db_session):
    with pytest.raises(NotFound):
        cash_register_service.delete_entry(12345)


def test_adjust_balance_appends_difference(db_session, three_entries):
    entry = cash_register_service.adjust_balance(500, "Counted drawer")
    assert entry.entry_type == "income"
    assert entry.amount == Decimal("380")
    assert entry.reference.startswith("ADJUST-")

    assert cash_register_service.adjust_balance(500, "Counted again") is None

    entry = cash_register_service.adjust_balance(0, "Emptied")
    assert entry.entry_type == "expense"
    assert cash_register_service.current_balance() == Decimal("0")


def test_withdraw(db_session, three_entries):
    entry = cash_register_service.withdraw(20, reason="Bank deposit")
    assert entry.entry_type == "expense"
    assert entry.balance_after == Decimal("100")

    with pytest.raises(InsufficientFunds):
        cash_register_service.withdraw(1000)


def test_rebuild_repairs_drifted_head(db_session, three_entries):
    head = db_session.get(CashRegisterHead, cash_register_service.HEAD_ID)
    head.current_balance = Decimal("9999")
    db_session.commit()

    cash_register_service.rebuild()

    assert cash_register_service.current_balance() == Decimal("120")
