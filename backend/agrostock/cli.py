# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/agrostock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create every table (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and suppliers:
# - python -m flask users list
# - python -m flask users create --username admin --role admin [--full-name "Main Admin"]
# - python -m flask suppliers create --name "Coop Nord" [--contact "+261..."]
#
# Cash register:
# - python -m flask cash balance
# - python -m flask cash rebuild
#   Recompute every running balance from the first entry.
#
# Advances:
# - python -m flask advances expire
#   Expire pending advances past their deadline and refund the payers.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Supplier, User
from .models.users import VALID_ROLES
from .services import advance_service, cash_register_service
from .services.errors import LedgerError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users.")
        return
    for user in users:
        state = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<10} {state}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, role, full_name):
    """Create a user with the given role."""
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"FAIL User '{username}' already exists")
        return

    user = User(username=username, role=role, full_name=full_name, is_active=True)
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user '{username}' (id={user.id}, role={role})")


@click.group('suppliers')
def suppliers_group():
    """Supplier bootstrap."""


@suppliers_group.command('create')
@click.option('--name', prompt=True, help='Supplier name')
@click.option('--contact', default=None, help='Phone or e-mail')
@with_appcontext
def create_supplier_cli(name, contact):
    supplier = Supplier(name=name, contact=contact)
    db.session.add(supplier)
    db.session.commit()
    click.echo(f"PASS Created supplier '{name}' (id={supplier.id})")


@click.group('cash')
def cash_group():
    """Cash register maintenance."""


@cash_group.command('balance')
@with_appcontext
def cash_balance():
    click.echo(f"Cash register balance: {cash_register_service.current_balance()}")


@cash_group.command('rebuild')
@with_appcontext
def cash_rebuild():
    """Recompute balance_after for every entry in chronological order."""
    try:
        head = cash_register_service.rebuild()
    except LedgerError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Rebuilt {head.entry_count} entries, balance {head.current_balance}")


@click.group('advances')
def advances_group():
    """Advance payment maintenance."""


@advances_group.command('expire')
@with_appcontext
def expire_advances():
    """Expire overdue pending advances and refund their payers."""
    expired = advance_service.expire_overdue()
    for advance in expired:
        click.echo(f"EXPIRED {advance.reference} refunded {advance.remaining_amount} to user {advance.payer_id}")
    click.echo(f"PASS {len(expired)} advance(s) expired")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(suppliers_group)
    app.cli.add_command(cash_group)
    app.cli.add_command(advances_group)
