# Overview: Flask CLI command groups for bootstrap, maintenance and report inspection.

# backend/stocktrail/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP=stocktrail.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory maintenance:
# - python -m flask inventory sweep-expired
#   Run one expiry sweep now (same as the daily background tick).
#
# Reports (JSON on stdout):
# - python -m flask reports home
# - python -m flask reports statistics
# - python -m flask reports products
# - python -m flask reports chart --type weekly
# - python -m flask reports top --limit 3

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import expiry_service, reporting_service


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('inventory')
def inventory_group():
    """Inventory maintenance commands."""


@inventory_group.command('sweep-expired')
@with_appcontext
def sweep_expired():
    """Expire every product past today's cutoff."""
    result = expiry_service.sweep_expired_products()
    click.echo(f"PASS Expired {result.matched} products (cutoff {result.to_dict()['cutoff']})")


@click.group('reports')
def reports_group():
    """Print dashboard reports as JSON."""


@reports_group.command('home')
@with_appcontext
def report_home():
    _echo_json(reporting_service.home_summary())


@reports_group.command('statistics')
@with_appcontext
def report_statistics():
    _echo_json({
        "invoices": reporting_service.invoice_statistics(),
        "inventory": reporting_service.inventory_statistics(),
    })


@reports_group.command('products')
@with_appcontext
def report_products():
    _echo_json(reporting_service.product_statistics())


@reports_group.command('chart')
@click.option('--type', 'granularity', type=click.Choice(list(reporting_service.GRANULARITIES)),
              default='weekly', show_default=True)
@with_appcontext
def report_chart(granularity):
    _echo_json(reporting_service.chart_series(granularity))


@reports_group.command('top')
@click.option('--limit', type=int, default=3, show_default=True)
@with_appcontext
def report_top(limit):
    _echo_json(reporting_service.top_products(limit))


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reports_group)
