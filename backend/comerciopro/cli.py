# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/comerciopro/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, the default store and default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --name "Ana" --email ana@loja.com --password secret1 --role admin --store-id 1
#
# Stores:
# - python -m flask stores list
# - python -m flask stores create --name "Loja Centro" --location "Rua A, 10"
#
# Ledger:
# - python -m flask ledger verify
#   Compare every product's stock counter with the sum of its movements.
# - python -m flask ledger cleanup-sessions --retention-days 30
#   Delete expired or revoked session tokens older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store, User
from .models.auth import ROLE_ADMIN, ROLE_SUPERADMIN, USER_ROLES
from .services import session_service, store_service
from .services.auth_service import create_user
from .services.stock_ledger import get_ledger
from .validation import ConflictError, NotFoundError, ValidationError

DEFAULT_STORE_NAME = "Loja Matriz"

DEFAULT_USERS = (
    # (name, email, password, role, bound to default store)
    ("Administrador", "admin@sistema.com", "admin123", ROLE_SUPERADMIN, False),
    ("Gerente Loja 1", "gerente@loja1.com", "loja123", ROLE_ADMIN, True),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize ComercioPro: tables, default store and default users.

    Creates (when missing):
    - Store "Loja Matriz"
    - superadmin admin@sistema.com / admin123
    - store admin gerente@loja1.com / loja123

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing ComercioPro...")

    db.create_all()

    store = db.session.query(Store).order_by(Store.id.asc()).first()
    if not store:
        store = store_service.create_store(DEFAULT_STORE_NAME, location="Centro")
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    for name, email, password, role, in_store in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"SKIP User already exists: {email}")
            continue
        user = create_user(
            name=name,
            email=email,
            password=password,
            role=role,
            store_id=store.id if in_store else None,
        )
        click.echo(f"PASS Created {user.role}: {user.email}")

    click.echo("\nPASS ComercioPro initialized.")


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


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        store = user.store.name if user.store else "-"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<11} {store}")


@users_group.command('create')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(USER_ROLES), default=ROLE_ADMIN, show_default=True)
@click.option('--store-id', type=int, default=None, help='Required for store admins')
@with_appcontext
def create_user_command(name, email, password, role, store_id):
    try:
        user = create_user(name=name, email=email, password=password, role=role, store_id=store_id)
    except (ValidationError, ConflictError, NotFoundError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, role: {user.role})")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('list')
@with_appcontext
def list_stores():
    stores = store_service.list_stores()
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        click.echo(f"{store.id:>4}  {store.name:<32} {store.location or '-'}")


@stores_group.command('create')
@click.option('--name', prompt=True)
@click.option('--location', default=None)
@with_appcontext
def create_store_command(name, location):
    try:
        store = store_service.create_store(name, location)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created store {store.name} (ID: {store.id})")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection and maintenance."""


@ledger_group.command('verify')
@with_appcontext
def verify_ledger():
    """Exit non-zero if any stock counter disagrees with its movements."""
    mismatches = get_ledger().find_unreconciled_products()
    if not mismatches:
        click.echo("PASS All product stock counters match their movements.")
        return
    for product, balance in mismatches:
        click.echo(
            f"FAIL Product {product.id} ({product.name}): "
            f"stock={product.stock_quantity} movements={balance}"
        )
    raise click.ClickException(f"{len(mismatches)} product(s) out of balance")


@ledger_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(retention_days):
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} session token(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(ledger_group)
