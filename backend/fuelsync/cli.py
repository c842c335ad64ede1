# Overview: Flask CLI command groups for bootstrap, station setup, and settlement reports.

# backend/fuelsync/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (dev/test; use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Station setup:
# - python -m flask stations list
#   List stations with their manager and owner.
# - python -m flask stations create --name "Highway 44" --code "HW44"
#   Create a station (optionally --manager-id / --owner-id).
# - python -m flask stations assign --station-id 1 --manager-id 2 --owner-id 3
#   Set the manager (receives shift_collection handovers) and owner.
# - python -m flask stations add-nozzle --station-id 1 --label "P1-N1" --fuel-type petrol --initial-reading 0
#   Add a nozzle with its opening meter value.
# - python -m flask stations set-price --station-id 1 --fuel-type petrol --price 95.50 --effective-from 2026-03-01
#   Record a price per litre from a date onward.
#
# Users:
# - python -m flask users list [--station-id 1]
# - python -m flask users create --name "Ravi" --email ravi@example.com --role employee --station-id 1
#
# Creditors:
# - python -m flask creditors list --station-id 1
#   List creditors with outstanding balances.
# - python -m flask creditors create --station-id 1 --name "City Transport" --credit-limit 50000
#
# Reports:
# - python -m flask reports settlement --station-id 1 --start 2026-03-01 --end 2026-03-31 [--as-of 2026-04-15]
#   Print the settlement summary as JSON.
# - python -m flask reports discrepancies --station-id 1 [--threshold 100]
#   Closed shifts whose cash difference exceeds the threshold.

import json

import click
from flask.cli import with_appcontext

from .domain.money import format_money
from .errors import SettlementError
from .extensions import db
from .models import Station, User
from .models.users import ROLES
from .services import credit_service, settlement_service, shift_service, station_service
from .time_utils import today
from .validation import parse_date, parse_money, parse_quantity


def _fail(exc: SettlementError):
    db.session.rollback()
    click.echo(f"FAIL {exc.message}")
    raise SystemExit(1)


# =============================================================================
# SYSTEM COMMANDS
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables from the model metadata."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the append-only ledgers!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


# =============================================================================
# STATION COMMANDS
# =============================================================================

@click.group('stations')
def stations_group():
    """Station, nozzle and fuel price setup."""


@stations_group.command('list')
@with_appcontext
def list_stations():
    stations = db.session.query(Station).order_by(Station.id.asc()).all()
    if not stations:
        click.echo("No stations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Code':<10} {'Name':<30} {'Manager':<10} {'Owner':<10} {'Active'}")
    click.echo("="*80)
    for station in stations:
        active_str = "Yes" if station.is_active else "No"
        click.echo(
            f"{station.id:<5} {station.code:<10} {station.name:<30} "
            f"{station.manager_user_id or '-':<10} {station.owner_user_id or '-':<10} {active_str}"
        )
    click.echo("="*80 + "\n")


@stations_group.command('create')
@click.option('--name', required=True, help='Station name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--manager-id', type=int, help='Manager user ID')
@click.option('--owner-id', type=int, help='Owner user ID')
@with_appcontext
def create_station_cli(name, code, manager_id, owner_id):
    """Create a fuel station."""
    try:
        station = station_service.create_station(
            name, code, manager_user_id=manager_id, owner_user_id=owner_id
        )
    except SettlementError as exc:
        _fail(exc)
    click.echo(f"PASS Created station: {station.name} (ID: {station.id}, Code: {station.code})")


@stations_group.command('assign')
@click.option('--station-id', type=int, required=True)
@click.option('--manager-id', type=int, help='Manager user ID')
@click.option('--owner-id', type=int, help='Owner user ID')
@with_appcontext
def assign_station_cli(station_id, manager_id, owner_id):
    """Set a station's manager and/or owner."""
    try:
        station = station_service.assign_station_roles(
            station_id, manager_user_id=manager_id, owner_user_id=owner_id
        )
    except SettlementError as exc:
        _fail(exc)
    click.echo(
        f"PASS Station {station.code}: manager={station.manager_user_id} owner={station.owner_user_id}"
    )


@stations_group.command('add-nozzle')
@click.option('--station-id', type=int, required=True)
@click.option('--label', required=True, help='Nozzle label, e.g. P1-N1')
@click.option('--fuel-type', required=True, help='petrol, diesel, cng, ...')
@click.option('--initial-reading', default=None, help='Opening meter value (litres, 3 decimals)')
@with_appcontext
def add_nozzle_cli(station_id, label, fuel_type, initial_reading):
    try:
        initial = parse_quantity(initial_reading, "initial-reading") if initial_reading is not None else None
        nozzle = station_service.create_nozzle(station_id, label, fuel_type, initial)
    except SettlementError as exc:
        _fail(exc)
    click.echo(f"PASS Created nozzle {nozzle.label} ({nozzle.fuel_type}) ID: {nozzle.id}")


@stations_group.command('set-price')
@click.option('--station-id', type=int, required=True)
@click.option('--fuel-type', required=True)
@click.option('--price', required=True, help='Price per litre, e.g. 95.50')
@click.option('--effective-from', default=None, help='YYYY-MM-DD (default today)')
@with_appcontext
def set_price_cli(station_id, fuel_type, price, effective_from):
    try:
        price_row = station_service.set_fuel_price(
            station_id,
            fuel_type,
            parse_money(price, "price"),
            parse_date(effective_from, "effective-from", required=False) or today(),
        )
    except SettlementError as exc:
        _fail(exc)
    click.echo(
        f"PASS {price_row.fuel_type} at {format_money(price_row.price_cents)}/L "
        f"from {price_row.effective_from.isoformat()}"
    )


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--station-id', type=int, help='Home station (omit for owners/super admins)')
@with_appcontext
def create_user_cli(name, email, role, station_id):
    try:
        user = station_service.create_user(name, email, role=role, station_id=station_id)
    except SettlementError as exc:
        _fail(exc)
    click.echo(f"PASS Created user: {user.name} <{user.email}> role={user.role} (ID: {user.id})")


@users_group.command('list')
@click.option('--station-id', type=int, help='Filter by station ID')
@with_appcontext
def list_users(station_id):
    query = db.session.query(User)
    if station_id:
        query = query.filter_by(station_id=station_id)
    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Station':<8} {'Name':<20} {'Email':<30} {'Role':<12} {'Active'}")
    click.echo("="*90)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(
            f"{user.id:<5} {user.station_id or '-':<8} {user.name:<20} {user.email:<30} {user.role:<12} {active_str}"
        )
    click.echo("="*90 + "\n")


# =============================================================================
# CREDITOR COMMANDS
# =============================================================================

@click.group('creditors')
def creditors_group():
    """Creditor setup and balances."""


@creditors_group.command('create')
@click.option('--station-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--credit-limit', default="0", show_default=True, help='0 means no limit')
@click.option('--credit-period-days', type=int, default=None)
@with_appcontext
def create_creditor_cli(station_id, name, credit_limit, credit_period_days):
    try:
        creditor = credit_service.create_creditor(
            station_id,
            name,
            credit_limit_cents=parse_money(credit_limit, "credit-limit"),
            credit_period_days=credit_period_days,
        )
    except SettlementError as exc:
        _fail(exc)
    click.echo(f"PASS Created creditor: {creditor.name} (ID: {creditor.id})")


@creditors_group.command('list')
@click.option('--station-id', type=int, required=True)
@with_appcontext
def list_creditors_cli(station_id):
    rows = credit_service.list_creditors(station_id, include_inactive=True)
    if not rows:
        click.echo("No creditors found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Limit':<15} {'Outstanding':<15} {'Active'}")
    click.echo("="*80)
    for creditor, balance in rows:
        limit_str = format_money(creditor.credit_limit_cents) if creditor.credit_limit_cents else "none"
        active_str = "Yes" if creditor.is_active else "No"
        click.echo(f"{creditor.id:<5} {creditor.name:<30} {limit_str:<15} {format_money(balance):<15} {active_str}")
    click.echo("="*80 + "\n")


# =============================================================================
# REPORT COMMANDS
# =============================================================================

@click.group('reports')
def reports_group():
    """Read-only settlement reports."""


@reports_group.command('settlement')
@click.option('--station-id', type=int, required=True)
@click.option('--start', required=True, help='YYYY-MM-DD')
@click.option('--end', required=True, help='YYYY-MM-DD')
@click.option('--as-of', default=None, help='Aging date, YYYY-MM-DD (default --end)')
@with_appcontext
def settlement_report_cli(station_id, start, end, as_of):
    try:
        summary = settlement_service.build_settlement_report(
            station_id,
            parse_date(start, "start"),
            parse_date(end, "end"),
            as_of=parse_date(as_of, "as-of", required=False),
        )
    except SettlementError as exc:
        _fail(exc)
    click.echo(json.dumps(summary.to_dict(), indent=2, sort_keys=True))


@reports_group.command('discrepancies')
@click.option('--station-id', type=int, required=True)
@click.option('--threshold', default="100", show_default=True, help='Absolute cash difference')
@with_appcontext
def discrepancies_cli(station_id, threshold):
    try:
        shifts = shift_service.shift_discrepancies(
            station_id, threshold_cents=parse_money(threshold, "threshold")
        )
    except SettlementError as exc:
        _fail(exc)

    if not shifts:
        click.echo("No discrepancies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<6} {'Date':<12} {'Employee':<10} {'Expected':<14} {'Actual':<14} {'Difference'}")
    click.echo("="*80)
    for shift in shifts:
        click.echo(
            f"{shift.id:<6} {shift.shift_date.isoformat():<12} {shift.employee_id:<10} "
            f"{format_money(shift.expected_cash_cents):<14} {format_money(shift.actual_cash_cents or 0):<14} "
            f"{format_money(shift.cash_difference_cents or 0)}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stations_group)
    app.cli.add_command(users_group)
    app.cli.add_command(creditors_group)
    app.cli.add_command(reports_group)
