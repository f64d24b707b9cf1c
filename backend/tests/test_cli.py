"""Flask CLI commands."""

from datetime import timedelta
from decimal import Decimal

from agrostock.models import Supplier, User
from agrostock.services import advance_service, cash_register_service
from agrostock.time_utils import utcnow

from conftest import balance_of, fund


def test_create_user(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create", "--username", "rasoa", "--role", "collector"])

    assert result.exit_code == 0, result.output
    assert "PASS" in result.output
    user = db_session.query(User).filter_by(username="rasoa").one()
    assert user.role == "collector"

    result = runner.invoke(args=["users", "create", "--username", "rasoa", "--role", "collector"])
    assert "already exists" in result.output


def test_create_supplier(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["suppliers", "create", "--name", "Coop Est"])

    assert result.exit_code == 0, result.output
    assert db_session.query(Supplier).filter_by(name="Coop Est").count() == 1


def test_cash_rebuild(app, db_session):
    cash_register_service.record_income(300, "cash", "Float")
    cash_register_service.record_expense(100, "cash", "Fuel")

    result = app.test_cli_runner().invoke(args=["cash", "rebuild"])

    assert result.exit_code == 0, result.output
    assert "2 entries" in result.output
    assert cash_register_service.current_balance() == Decimal("200")


def test_advances_expire(app, db_session, supplier, collector):
    fund(collector, 100)
    advance_service.create_advance(
        supplier.id, collector.id, 100, deadline_hours=1, now=utcnow() - timedelta(hours=2)
    )

    result = app.test_cli_runner().invoke(args=["advances", "expire"])

    assert result.exit_code == 0, result.output
    assert "1 advance(s) expired" in result.output
    assert balance_of(collector) == Decimal("100")
