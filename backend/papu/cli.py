# Overview: Flask CLI command groups for bootstrap, catalog and outbox maintenance.

# backend/papu/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "papu:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-email admin@papu.local]
#   Create tables (idempotent) and a first admin with an API token.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users and tokens (tokens are only issued here):
# - python -m flask users create --email ana@example.com --name "Ana" --role USER --phone "+1 555 0100"
# - python -m flask users issue-token --email ana@example.com --label laptop
# - python -m flask users revoke-token 12
# - python -m flask users list
#
# Catalog / stock (acting admin given by --as):
# - python -m flask catalog add-product --as admin@papu.local --sku RICE-1KG --name "Rice 1kg" --price-cents 350
# - python -m flask catalog receive --as admin@papu.local --sku RICE-1KG --quantity 50
# - python -m flask catalog add-zone --as admin@papu.local --province "La Habana" --cost-cents 500
#
# Notifications and alerts:
# - python -m flask notifications dispatch [--limit 100]
#   Drain the notification outbox once.
# - python -m flask remittances alerts --as admin@papu.local
#   Queue admin alerts for remittances due within 24 hours.

import click
from flask.cli import with_appcontext

from .errors import PapuError
from .extensions import db
from .models import User, Product
from .models.auth import ROLE_SUPER_ADMIN, VALID_ROLES
from .services import (
    token_service, catalog_service, inventory_service, notification_service, remittance_service, shipping_service,
)
from .services.authorization_service import Caller


def _operator(email: str) -> Caller:
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if user is None:
        raise click.ClickException(f"User '{email}' not found")
    caller = Caller.from_user(user)
    if not caller.is_admin:
        raise click.ClickException(f"User '{email}' is not an admin")
    return caller


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default='admin@papu.local', help='Email of the first admin')
@click.option('--admin-name', default='Administrator', help='Full name of the first admin')
@with_appcontext
def init_system(admin_email, admin_name):
    """
    Create all tables and a first SUPER_ADMIN user with an API token.

    Safe to re-run: existing tables and users are left alone.
    """
    click.echo("START Initializing PapuEnvios backend...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(email=admin_email.lower()).first()
    if existing:
        click.echo(f"WARN  Admin '{admin_email}' already exists, skipping...")
        return

    try:
        user = token_service.create_user(admin_email, admin_name, role=ROLE_SUPER_ADMIN)
        _, token = token_service.issue_token(user.id, label="bootstrap")
    except PapuError as e:
        raise click.ClickException(e.message)

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    click.echo(f"\nAPI token (shown once, store it now):\n   {token}\n")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('users')
def users_group():
    """User and API token commands."""


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--name', 'full_name', prompt=True)
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), default='USER')
@click.option('--phone', default=None, help='WhatsApp-capable phone for notifications')
@with_appcontext
def create_user_command(email, full_name, role, phone):
    """Create a user."""
    try:
        user = token_service.create_user(email, full_name, role=role, phone=phone)
    except PapuError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@users_group.command('issue-token')
@click.option('--email', required=True)
@click.option('--label', default=None)
@with_appcontext
def issue_token_command(email, label):
    """Issue a bearer token. The plaintext is printed once."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if user is None:
        raise click.ClickException(f"User '{email}' not found")
    try:
        record, token = token_service.issue_token(user.id, label=label)
    except PapuError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Token {record.id} issued for {user.email}")
    click.echo(token)


@users_group.command('revoke-token')
@click.argument('token_id', type=int)
@with_appcontext
def revoke_token_command(token_id):
    try:
        token_service.revoke_token(token_id)
    except PapuError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Token {token_id} revoked")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Role':<12} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {(user.full_name or '')[:24]:<25} {user.role:<12} {active_str}")

    click.echo("="*90 + "\n")


@click.group('catalog')
def catalog_group():
    """Catalog and stock commands."""


@catalog_group.command('add-product')
@click.option('--as', 'as_email', required=True, help='Acting admin email')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True)
@click.option('--min-stock', type=int, default=inventory_service.DEFAULT_MIN_STOCK_ALERT)
@with_appcontext
def add_product(as_email, sku, name, price_cents, min_stock):
    caller = _operator(as_email)
    try:
        product = catalog_service.create_product(
            caller, sku=sku, name=name, price_cents=price_cents, min_stock_alert=min_stock
        )
    except PapuError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created product {product.sku} (ID: {product.id})")


@catalog_group.command('receive')
@click.option('--as', 'as_email', required=True, help='Acting admin email')
@click.option('--sku', required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--note', default=None)
@with_appcontext
def receive(as_email, sku, quantity, note):
    caller = _operator(as_email)
    product = db.session.query(Product).filter_by(sku=sku).first()
    if product is None:
        raise click.ClickException(f"Product '{sku}' not found")
    try:
        record = inventory_service.receive_stock(caller, product.id, quantity, note=note)
    except PapuError as e:
        raise click.ClickException(e.message)
    click.echo(
        f"PASS {sku}: on hand {record.quantity}, reserved {record.reserved_quantity}, "
        f"available {record.available_quantity}"
    )


@catalog_group.command('add-zone')
@click.option('--as', 'as_email', required=True, help='Acting admin email')
@click.option('--province', required=True)
@click.option('--municipality', default=None, help='Omit for the province default')
@click.option('--cost-cents', type=int, default=0)
@click.option('--free', is_flag=True, help='Free shipping for this zone')
@with_appcontext
def add_zone(as_email, province, municipality, cost_cents, free):
    caller = _operator(as_email)
    try:
        zone = shipping_service.create_zone(caller, {
            "province_name": province,
            "municipality_name": municipality,
            "shipping_cost_cents": cost_cents,
            "free_shipping": free,
        })
    except PapuError as e:
        raise click.ClickException(e.message)
    where = f"{zone.province_name} / {zone.municipality_name}" if zone.municipality_name else zone.province_name
    click.echo(f"PASS Shipping zone {where}: {zone.effective_cost_cents} cents (ID: {zone.id})")


@click.group('notifications')
def notifications_group():
    """Notification outbox commands."""


@notifications_group.command('dispatch')
@click.option('--limit', type=int, default=100)
@with_appcontext
def dispatch(limit):
    """Attempt delivery of pending notifications once."""
    summary = notification_service.dispatch_pending(limit=limit)
    click.echo(f"PASS sent={summary['sent']} retrying={summary['retrying']} failed={summary['failed']}")


@click.group('remittances')
def remittances_group():
    """Remittance maintenance commands."""


@remittances_group.command('alerts')
@click.option('--as', 'as_email', required=True, help='Acting admin email')
@with_appcontext
def alerts(as_email):
    """Queue admin alerts for remittances close to their delivery deadline."""
    caller = _operator(as_email)
    queued = remittance_service.send_delivery_alerts(caller)
    click.echo(f"PASS Queued {queued} delivery alerts")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(notifications_group)
    app.cli.add_command(remittances_group)
