# Overview: Flask CLI command groups for bootstrap, outbox draining, and stock audits.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (dev only; use `flask db upgrade` elsewhere).
# - python -m flask system seed-shipping
#   Insert the default shipping methods that are missing.
#
# Users:
# - python -m flask users create --email admin@lovilike.es --password "Password1" --role ADMIN
#   Create a user (prompts if options are omitted).
#
# Notifications:
# - python -m flask outbox drain [--limit 100]
#   Deliver pending outbox events.
#
# Inventory:
# - python -m flask inventory reconcile [--variant-id 7]
#   Replay the stock ledger and compare with stored stock. Exit code 1 on drift.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import ProductVariant
from .models.auth import ROLES
from .services import notification_service, shipping_service, stock_ledger_service
from .services.auth_service import create_user, PasswordValidationError, UserCreationError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-shipping')
@with_appcontext
def seed_shipping():
    """Insert default shipping methods (idempotent)."""
    created = shipping_service.seed_shipping_methods()
    click.echo(f"PASS Shipping methods created: {created}")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), default='ADMIN', show_default=True, help='Role')
@click.option('--name', default=None, help='Display name')
@with_appcontext
def create_user_cli(email, password, role, name):
    """
    Create a user.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = create_user(email, password, name=name, role=role)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except UserCreationError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.email} with role '{user.role}'")


# =============================================================================
# OUTBOX COMMANDS
# =============================================================================

@click.group('outbox')
def outbox_group():
    """Notification outbox commands."""


@outbox_group.command('drain')
@click.option('--limit', type=int, default=100, show_default=True, help='Max events to process')
@with_appcontext
def drain_outbox(limit):
    """Deliver pending notifications (at-least-once)."""
    counts = notification_service.dispatch_pending(limit=limit)
    click.echo(
        f"PASS sent={counts['sent']} retry={counts['retry']} "
        f"failed={counts['failed']} skipped={counts['skipped']}"
    )


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Stock ledger audit commands."""


@inventory_group.command('reconcile')
@click.option('--variant-id', type=int, default=None, help='Only this variant')
@with_appcontext
def reconcile_inventory(variant_id):
    """Compare stored stock with the replayed movement ledger."""
    if variant_id is not None:
        variant_ids = [variant_id]
    else:
        variant_ids = [vid for (vid,) in db.session.query(ProductVariant.id).order_by(ProductVariant.id)]

    drift = 0
    for vid in variant_ids:
        report = stock_ledger_service.reconcile_variant(vid)
        if report["consistent"]:
            continue
        drift += 1
        click.echo(
            f"FAIL {report['sku']} (variant {vid}): stock={report['stock']} "
            f"ledger={report['ledger_stock']} chain_breaks={report['chain_breaks']}"
        )

    if drift:
        click.echo(f"FAIL {drift} of {len(variant_ids)} variants drifted")
        raise SystemExit(1)
    click.echo(f"PASS {len(variant_ids)} variants consistent")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(outbox_group)
    app.cli.add_command(inventory_group)
