# Overview: Flask CLI command groups for bootstrap, user inspection and catalog import.

# backend/crm/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create tables and, if no ADMIN exists, the default admin from config.
#
# Users:
# - python -m flask users list
#   List all users with role and store.
# - python -m flask users create --username jane --email jane@crm.local --full-name "Jane Doe" --password "Password123!" --role MANAGER --store-id 1
#   Create a user (prompts if options are omitted).
#
# Catalog:
# - python -m flask products import catalog.xlsx
#   Replace the product catalog from a spreadsheet (acts as the first ADMIN).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Profile
from .permissions import ALL_ROLES, Role
from .services import auth_service, import_service, products_service, session_service
from .validation import ValidationError, ConflictError, NotFoundError, DependencyError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create all tables and bootstrap an ADMIN account if none exists.

    The admin credentials come from DEFAULT_ADMIN_* settings.
    SECURITY: Change the password immediately in production!
    """
    click.echo("START Initializing CRM...")
    db.create_all()
    click.echo("PASS Tables ready")

    admin = db.session.query(Profile).filter(Profile.role == Role.ADMIN).first()
    if admin:
        click.echo(f"PASS Using existing admin: {admin.username}")
        return

    cfg = current_app.config
    try:
        admin = auth_service.sign_up(
            cfg["DEFAULT_ADMIN_EMAIL"],
            cfg["DEFAULT_ADMIN_PASSWORD"],
            {
                "username": cfg["DEFAULT_ADMIN_USERNAME"],
                "full_name": cfg["DEFAULT_ADMIN_FULL_NAME"],
                "role": Role.ADMIN.value,
            },
        )
    except (ValidationError, ConflictError, DependencyError) as e:
        click.echo(f"FAIL Could not create default admin: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created admin: {admin.username} ({admin.email})")
    click.echo("SECURITY Change the default admin password!")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in ALL_ROLES], case_sensitive=False),
              default=Role.SALESPERSON.value, show_default=True, help='Role')
@click.option('--store-id', type=int, default=None, help='Store assignment')
@with_appcontext
def create_user_cli(username, email, full_name, password, role, store_id):
    """
    Create a user directly (no acting-user checks; operator tool).

    Password must be 8+ chars with uppercase, lowercase, digit and special char.
    """
    try:
        profile = auth_service.sign_up(
            email,
            password,
            {"username": username, "full_name": full_name, "role": role.upper()},
            store_id=store_id,
        )
    except auth_service.PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        raise SystemExit(1)
    except (ValidationError, ConflictError, NotFoundError, DependencyError) as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {profile.username} ({profile.email}) with role '{profile.role.value}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and store."""
    users = db.session.query(Profile).order_by(Profile.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<12} {'Store'}")
    click.echo("=" * 90)
    for user in users:
        data = user.to_dict()
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.email:<30} {user.role.value:<12} {data['store_name'] or '-'}"
        )
    click.echo("=" * 90 + "\n")


@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_products(path):
    """Replace the product catalog from an .xlsx/.xlsm file."""
    admin = db.session.query(Profile).filter(Profile.role == Role.ADMIN).order_by(Profile.id).first()
    if not admin:
        click.echo("FAIL No ADMIN account. Run 'python -m flask system init' first.")
        raise SystemExit(1)

    try:
        with open(path, "rb") as stream:
            records = import_service.parse_product_workbook(
                stream, path, max_rows=current_app.config.get("MAX_UPLOAD_ROWS")
            )
        count = products_service.replace_catalog(session_service.context_for(admin), records)
    except (ValidationError, DependencyError) as e:
        click.echo(f"FAIL Import failed: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Imported {count} products")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
