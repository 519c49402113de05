# Overview: `flask` subcommands for setting up the shop database and checking the stock ledger.

# Usage, from backend/ with the virtualenv active and FLASK_APP=wsgi.py:
#
#   flask system init [--name ...] [--email ...] [--password ...]
#       create the tables and the first ADMIN; safe to run twice
#   flask system reset-db [--yes]
#       drop every table and rebuild the schema (development only)
#   flask users list
#   flask users create [--name ...] [--email ...] [--password ...] [--role USER|ADMIN]
#       missing options are prompted for
#   flask stock reconcile [--fix]
#       replay the movement ledger per product; --fix rewrites drifted counters

import click
from flask.cli import with_appcontext

from .errors import PetShopError
from .extensions import db
from .models import User
from .services import auth_service, stock_service

DEFAULT_ADMIN_EMAIL = "admin@petshop.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """Database setup."""


@system_group.command('init')
@click.option('--name', default='Administrator', help='Admin display name')
@click.option('--email', default=DEFAULT_ADMIN_EMAIL, help='Admin email')
@click.option('--password', default=DEFAULT_ADMIN_PASSWORD, help='Admin password')
@with_appcontext
def init_system(name, email, password):
    """
    Initialize the database and the first administrator.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing pet shop backend...")

    db.create_all()
    click.echo("PASS Tables created")

    existing = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
        return

    try:
        user = auth_service.create_user(name=name, email=email, password=password, role="ADMIN")
    except PetShopError as e:
        click.echo(f"FAIL Failed to create admin: {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    if password == DEFAULT_ADMIN_PASSWORD:
        click.echo(f"\nDefault Credentials (CHANGE IN PRODUCTION!): {user.email} / {DEFAULT_ADMIN_PASSWORD}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@with_appcontext
def reset_db(yes):
    """
    Drop and recreate the whole schema.

    Every sale, purchase and movement is lost.
    """
    if not yes:
        click.confirm("WARN Every table will be dropped. Continue?", abort=True)

    click.echo("WARN Dropping tables")
    db.drop_all()
    click.echo("START Recreating schema")
    db.create_all()
    click.echo("PASS Database reset complete. Run 'flask system init' to create the admin user.")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users."""
    users = auth_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<30} {'Role':<8} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "yes" if user.is_active else "no"
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<30} {user.role:<8} {active_str}")
    click.echo("=" * 80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Login email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Initial password')
@click.option('--role', type=click.Choice(['ADMIN', 'USER']), default='USER', show_default=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """Create a new user."""
    try:
        user = auth_service.create_user(name=name, email=email, password=password, role=role)
    except PetShopError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}'")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance."""


@stock_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Reset stock counters to the ledger value')
@with_appcontext
def reconcile_stock_cli(fix):
    """Replay the stock ledger and report products whose counter disagrees."""
    mismatches = stock_service.reconcile_stock(fix=fix)
    if not mismatches:
        click.echo("PASS Stock counters match the ledger")
        return

    click.echo(f"{'FIXED' if fix else 'WARN'} {len(mismatches)} product(s) out of sync:")
    for row in mismatches:
        click.echo(
            f"  #{row['product_id']:<5} {row['product_name']:<30} "
            f"stock={row['stock_quantity']} ledger={row['ledger_quantity']} diff={row['difference']}"
        )
    if not fix:
        raise SystemExit(1)


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
