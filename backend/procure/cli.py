# Overview: Flask CLI command groups for schema bootstrap and procurement inspection.

# backend/procure/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask system init-db
#   Create any missing tables (prefer "flask db upgrade" outside development).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Purchase orders:
# - python -m flask orders list --org-id 1 [--status SUBMITTED]
# - python -m flask orders show PO-20261019-000001
#
# Credit:
# - python -m flask credit show 3

import click
from flask.cli import with_appcontext

from .errors import ProcurementError
from .extensions import db
from .services import credit_service, purchase_order_service
from .models.orders import VALID_PO_STATUSES


def _money(cents) -> str:
    if cents is None:
        return "unlimited"
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Schema created.")


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


@click.group('orders')
def orders_group():
    """Purchase order inspection."""


@orders_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--status', type=click.Choice(sorted(VALID_PO_STATUSES)), default=None)
@with_appcontext
def list_orders(org_id, status):
    """List an organization's purchase orders, newest first."""
    orders = purchase_order_service.list_organization_purchase_orders(org_id, status=status)
    if not orders:
        click.echo("No purchase orders found.")
        return

    click.echo(f"\n{'PO NUMBER':<22} {'STATUS':<10} {'BUYER':<7} {'TOTAL':>14} {'CREATED':<21}")
    click.echo("-" * 78)
    for po in orders:
        created = po.created_at.strftime("%Y-%m-%d %H:%M:%S") if po.created_at else ""
        click.echo(f"{po.po_number:<22} {po.status:<10} {po.buyer_id:<7} {_money(po.total_cents):>14} {created:<21}")
    click.echo(f"\n{len(orders)} order(s)\n")


@orders_group.command('show')
@click.argument('po_number')
@with_appcontext
def show_order(po_number):
    """Show one purchase order with its lines."""
    try:
        po = purchase_order_service.get_purchase_order_by_number(po_number)
    except ProcurementError as e:
        raise click.ClickException(e.message)

    click.echo(f"\n{po.po_number}  [{po.status}]")
    click.echo(f"Organization: {po.org_id}   Buyer: {po.buyer_id}   Credit term: {po.credit_term_id or '-'}")
    click.echo("-" * 72)
    for line in po.lines:
        click.echo(
            f"{line.line_number:>3}. product {line.product_id:<8} qty {line.quantity:>6} "
            f"@ {_money(line.unit_price_cents):>12} = {_money(line.line_total_cents):>14}"
        )
    click.echo("-" * 72)
    click.echo(f"{'Subtotal':>50} {_money(po.subtotal_cents):>14}")
    click.echo(f"{'Tax':>50} {_money(po.tax_cents):>14}")
    if po.shipping_cents:
        click.echo(f"{'Shipping':>50} {_money(po.shipping_cents):>14}")
    if po.discount_cents:
        click.echo(f"{'Discount':>50} -{_money(po.discount_cents):>13}")
    click.echo(f"{'Total':>50} {_money(po.total_cents):>14}\n")
    if po.rejection_reason:
        click.echo(f"Rejected: {po.rejection_reason}\n")


@click.group('credit')
def credit_group():
    """Credit term inspection."""


@credit_group.command('show')
@click.argument('term_id', type=int)
@with_appcontext
def show_credit(term_id):
    """Show a credit term's usage and ledger history."""
    try:
        term = credit_service.get_credit_term(term_id)
        entries = credit_service.list_ledger_entries(term_id)
    except ProcurementError as e:
        raise click.ClickException(e.message)

    click.echo(f"\n{term.name} (ID: {term.id}, Org: {term.org_id}, Net {term.payment_days})")
    click.echo(f"Limit: {_money(term.credit_limit_cents)}   Used: {_money(term.used_credit_cents)}   "
               f"Available: {_money(term.available_credit_cents)}")
    if not entries:
        click.echo("No ledger entries.\n")
        return
    click.echo("-" * 72)
    for entry in entries:
        occurred = entry.occurred_at.strftime("%Y-%m-%d %H:%M:%S") if entry.occurred_at else ""
        click.echo(
            f"{occurred:<20} {entry.entry_type:<8} {_money(entry.amount_cents):>14} "
            f"-> {_money(entry.used_after_cents):>14}  {entry.note or ''}"
        )
    click.echo("")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(credit_group)
