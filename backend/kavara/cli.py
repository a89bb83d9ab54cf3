# Overview: Flask CLI command groups for bootstrap, order maintenance and stock operations.

# backend/kavara/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to kavara (PowerShell: $env:FLASK_APP="kavara").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` in production).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Orders:
# - python -m flask orders release-stale [--older-than-hours 24]
#   Cancel unpaid pending orders that still hold reserved stock.
# - python -m flask orders retry-refund KB1234561234
#   Re-run a refund that failed when the order was cancelled.
#
# Inventory:
# - python -m flask inventory set product <id> M=10 L=4
#   Overwrite stock for an entity (manual correction, logged to history).
# - python -m flask inventory history [--entity-id <id>] [--order-id <id>] [--limit 20]
#   Print recent inventory history rows.

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import catalog_service, ledger_service, order_service
from .services.errors import OrderError, SettlementError
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including inventory history!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('orders')
def orders_group():
    """Order maintenance commands."""


@orders_group.command('release-stale')
@click.option('--older-than-hours', type=int, default=None,
              help='Age threshold (defaults to PENDING_ORDER_TTL_HOURS)')
@with_appcontext
def release_stale_cli(older_than_hours):
    """Cancel stale pending orders and return their stock."""
    older_than = timedelta(hours=older_than_hours) if older_than_hours is not None else None
    released = order_service.release_stale_orders(older_than)
    for order_number in released:
        click.echo(f"RELEASED {order_number}")
    click.echo(f"PASS Released {len(released)} order(s).")


@orders_group.command('retry-refund')
@click.argument('order_number')
@with_appcontext
def retry_refund_cli(order_number):
    """Re-run the stock refund for a cancelled order."""
    try:
        written = order_service.retry_refund(order_number)
    except (OrderError, SettlementError) as e:
        raise click.ClickException(str(e))
    if written:
        click.echo(f"PASS Refunded {written} line(s) for {order_number}.")
    else:
        click.echo(f"SKIP Nothing to refund for {order_number}.")


@click.group('inventory')
def inventory_group():
    """Stock inspection and manual correction commands."""


@inventory_group.command('set')
@click.argument('kind', type=click.Choice(['product', 'box']))
@click.argument('entity_id')
@click.argument('quantities', nargs=-1, required=True)
@click.option('--note', default=None, help='History note')
@with_appcontext
def set_inventory_cli(kind, entity_id, quantities, note):
    """Overwrite stock: QUANTITIES are SIZE=QTY pairs (use default=QTY for sizeless)."""
    inventory = {}
    for pair in quantities:
        size, sep, qty = pair.partition('=')
        if not sep or not qty.strip().isdigit():
            raise click.BadParameter(f"expected SIZE=QTY, got {pair!r}")
        inventory[size.strip()] = int(qty)

    try:
        entity = catalog_service.overwrite_inventory(kind, entity_id, inventory, note=note)
    except (ValidationError, SettlementError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {entity.name}: {entity.inventory}")


@inventory_group.command('history')
@click.option('--entity-id', default=None)
@click.option('--order-id', default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def history_cli(entity_id, order_id, limit):
    """Print recent inventory history."""
    entries = ledger_service.list_history(entity_id=entity_id, order_id=order_id, limit=limit)
    if not entries:
        click.echo("No history.")
        return
    for e in entries:
        click.echo(
            f"{e.created_at} {e.entity_kind:<7} {e.entity_name or e.entity_id} "
            f"[{e.size}] {e.operation_type:<10} {e.quantity_delta:+d} -> {e.balance_after}"
            f"  {e.note or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(inventory_group)
