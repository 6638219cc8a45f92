# Overview: Flask CLI command groups for bootstrap, user management and stock audits.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates all tables and a default admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User management:
# - python -m flask users create --username jane --email jane@example.com --password "Password123!" --role CASHIER
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users deactivate jane
#   Deactivate a user and revoke their sessions.
#
# Stock audits:
# - python -m flask stock verify
#   Compare every product's current_stock with its ledger sum. Exit code 1 on mismatch.
# - python -m flask stock low
#   List products at or below their minimum stock.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import User
from .models.auth import ROLE_ADMIN, ROLES
from .services import products_service
from .services.auth_service import create_user
from .services.ledger_service import find_ledger_mismatches
from .services.session_service import revoke_all_user_sessions


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', show_default=True, help='Default admin username')
@click.option('--admin-email', default='admin@posledger.local', show_default=True, help='Default admin email')
@click.option('--admin-password', default='Password123!', help='Default admin password')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Initialize the system: tables and a default admin user.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing posledger...")

    db.create_all()
    click.echo("PASS Database tables ready")

    existing = db.session.query(User).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"PASS Using existing admin user: {existing.username} (ID: {existing.id})")
        return

    try:
        user = create_user(
            username=admin_username,
            email=admin_email,
            password=admin_password,
            role=ROLE_ADMIN,
            full_name="Administrator",
        )
    except ServiceError as e:
        click.echo(f"FAIL Could not create admin user: {e.message}")
        raise click.exceptions.Exit(1)

    click.echo(f"PASS Created admin user: {user.username} ({user.email})")
    click.echo("SECURITY Change the default password before going live")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the inventory ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, email, password, role, full_name):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            full_name=full_name,
        )
    except ServiceError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        raise click.exceptions.Exit(1)

    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.role}")

    click.echo("="*90 + "\n")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Deactivate a user and revoke all of their sessions."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        raise click.exceptions.Exit(1)

    user.is_active = False
    db.session.commit()
    revoked = revoke_all_user_sessions(user.id, reason="Account deactivated")
    click.echo(f"PASS Deactivated {username}; revoked {revoked} session(s)")


@click.group('stock')
def stock_group():
    """Stock ledger audit commands."""


@stock_group.command('verify')
@with_appcontext
def verify_stock_cli():
    """
    Verify current_stock against the inventory movement ledger.

    Exits with code 1 when any product disagrees with its ledger.
    """
    mismatches = find_ledger_mismatches()
    if not mismatches:
        click.echo("PASS Every product's stock matches its ledger")
        return

    click.echo(f"FAIL {len(mismatches)} product(s) disagree with the ledger:")
    for row in mismatches:
        click.echo(
            f"  product {row['product_id']} ({row['sku']}): "
            f"current_stock={row['current_stock']} ledger={row['ledger_stock']}"
        )
    raise click.exceptions.Exit(1)


@stock_group.command('low')
@with_appcontext
def low_stock_cli():
    """List products at or below their minimum stock."""
    products = products_service.list_products(low_stock_only=True, include_inactive=False)
    if not products:
        click.echo("No products at or below minimum stock.")
        return

    click.echo(f"{'ID':<6} {'SKU':<20} {'Name':<30} {'Stock':>7} {'Min':>7}")
    for p in products:
        click.echo(f"{p.id:<6} {p.sku:<20} {p.name:<30} {p.current_stock:>7} {p.minimum_stock:>7}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
