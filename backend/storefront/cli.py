# Overview: Flask CLI command groups for bootstrap, scheduled jobs, and inspection.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default loyalty program.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create-admin --name "Admin" --email admin@storefront.local --password "Password123"
#   Create an ADMIN account (prompts if options are omitted).
#
# Pricing (cron: once a day):
# - python -m flask pricing refresh
#   Fetch the silver rate from the configured source and make it the active rate.
# - python -m flask pricing set 92.50
#   Manually set the active rate (INR per gram).
# - python -m flask pricing show
#   Print the rate checkout would use right now.
#
# Loyalty:
# - python -m flask loyalty init-program
#   Create the default "Silver Rewards" program and tiers if none is active.
#
# Inventory:
# - python -m flask inventory low-stock
#   List rows at or below their reorder point.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import inventory_service, loyalty_service, pricing_service
from .services.auth_service import create_user, PasswordValidationError
from .errors import StorefrontError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create tables and the default loyalty program. Safe to re-run."""
    db.create_all()
    click.echo("PASS Tables present")

    program, created = loyalty_service.ensure_default_program()
    if created:
        click.echo(f"PASS Created loyalty program '{program.name}'")
    else:
        click.echo(f"SKIP Loyalty program '{program.name}' already active")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>5}  {user.email:<40} {user.role:<6} {status}")


@users_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin(name, email, password):
    """
    Create an ADMIN account.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        user = create_user(name, email, password, role="ADMIN")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e.message}")
        return
    except StorefrontError as e:
        db.session.rollback()
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created admin {user.email} (id={user.id})")


# =============================================================================
# PRICING
# =============================================================================

@click.group('pricing')
def pricing_group():
    """Silver rate jobs."""


@pricing_group.command('refresh')
@with_appcontext
def refresh_price():
    """Daily job: fetch and activate the current silver rate."""
    row = pricing_service.refresh_silver_price()
    if row is None:
        click.echo("FAIL Silver price source unavailable; previous rate stays active")
        raise SystemExit(1)
    click.echo(f"PASS Silver price {float(row.price_per_gram):.4f} {row.currency}/g ({row.source})")


@pricing_group.command('set')
@click.argument('price_per_gram')
@click.option('--currency', default='INR', show_default=True)
@with_appcontext
def set_price(price_per_gram, currency):
    try:
        row = pricing_service.set_manual_price(price_per_gram, currency)
    except StorefrontError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Silver price set to {float(row.price_per_gram):.4f} {row.currency}/g")


@pricing_group.command('show')
@with_appcontext
def show_price():
    rate = pricing_service.get_current_rate()
    updated = rate.to_dict()["last_updated"] or "never"
    click.echo(f"{float(rate.price_per_gram):.4f} {rate.currency}/g  source={rate.source}  updated={updated}")


# =============================================================================
# LOYALTY
# =============================================================================

@click.group('loyalty')
def loyalty_group():
    """Loyalty program bootstrap."""


@loyalty_group.command('init-program')
@with_appcontext
def init_program():
    program, created = loyalty_service.ensure_default_program()
    if not created:
        click.echo(f"SKIP Loyalty program '{program.name}' already active")
        return
    tiers = ", ".join(f"{t.name} ({t.min_points})" for t in program.tiers)
    click.echo(f"PASS Created loyalty program '{program.name}': {tiers}")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory inspection."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    items = inventory_service.get_low_stock_items()
    if not items:
        click.echo("No low-stock items")
        return
    for item in items:
        title = item["product"]["title"] if item["product"] else "?"
        click.echo(
            f"{item['id']:>5}  {title:<40} available={item['available_stock']:<6} "
            f"reorder_point={item['reorder_point']}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(pricing_group)
    app.cli.add_command(loyalty_group)
    app.cli.add_command(inventory_group)
