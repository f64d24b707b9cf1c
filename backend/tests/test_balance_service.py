"""Balance ledger: lazy rows, debit rejection, input validation."""

import pytest
from decimal import Decimal

from agrostock.models import Balance
from agrostock.services import balance_service
from agrostock.services.errors import InsufficientFunds, NotFound
from agrostock.validation import ValidationError


def test_balance_without_row_is_zero(db_session, collector):
    assert balance_service.get_balance(collector.id) == Decimal("0")
    assert db_session.query(Balance).count() == 0


def test_credit_creates_row_lazily(db_session, collector):
    balance_service.credit(collector.id, "250.50")

    row = db_session.query(Balance).filter_by(user_id=collector.id).one()
    assert row.amount == Decimal("250.50")

    balance_service.credit(collector.id, 49.5)
    assert balance_service.get_balance(collector.id) == Decimal("300.00")
    assert db_session.query(Balance).count() == 1


def test_debit_more_than_balance_fails_and_leaves_balance(db_session, collector):
    balance_service.credit(collector.id, 1000)

    with pytest.raises(InsufficientFunds) as exc:
        balance_service.debit(collector.id, 1500)

    assert exc.value.context["available"] == Decimal("1000.00")
    assert exc.value.context["requested"] == Decimal("1500.00")
    assert balance_service.get_balance(collector.id) == Decimal("1000")


def test_debit_without_row_is_insufficient(db_session, collector):
    with pytest.raises(InsufficientFunds):
        balance_service.debit(collector.id, 1)
    assert db_session.query(Balance).count() == 0


def test_debit_to_exactly_zero(db_session, collector):
    balance_service.credit(collector.id, 75)
    balance_service.debit(collector.id, 75)
    assert balance_service.get_balance(collector.id) == Decimal("0")


def test_unknown_user_is_not_found(db_session):
    with pytest.raises(NotFound):
        balance_service.credit(9999, 10)


@pytest.mark.parametrize("amount", [0, -5, "0.00", True, None, "1e3", "abc", float("nan")])
def test_invalid_amounts_rejected(db_session, collector, amount):
    with pytest.raises(ValidationError):
        balance_service.credit(collector.id, amount)
    assert balance_service.get_balance(collector.id) == Decimal("0")


def test_lock_balances_returns_rows_in_ascending_order(db_session, collector, vendor):
    balance_service.credit(vendor.id, 10)

    locked = balance_service.lock_balances(vendor.id, collector.id, vendor.id)

    assert list(locked) == sorted({collector.id, vendor.id})
    assert locked[collector.id] is None
    assert locked[vendor.id].amount == Decimal("10")
