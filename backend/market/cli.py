# Overview: Flask CLI command groups for bootstrap, users and platform settings.

# backend/market/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--create-tables] [--admin-email admin@market.local --admin-password "Password123!"]
#   Check the schema, store default fee settings, optionally create a superadmin.
#
# User management:
# - python -m flask users list
#   List all users with roles and ban status.
# - python -m flask users create --name "Jane" --email jane@market.local --password "Password123!" --role tourism-manager
#   Create a user (prompts if options are omitted).
# - python -m flask users set-role jane@market.local admin
#   Change the role of an existing user.
#
# Platform settings:
# - python -m flask settings list
# - python -m flask settings set buyer_service_fee 2500

import click
from flask.cli import with_appcontext
from sqlalchemy import inspect

from .extensions import db
from .models import User
from .models.auth import VALID_ROLES, ROLE_ADMIN
from .services.auth_service import create_user, set_role, PasswordValidationError
from .services import settings_service
from .errors import MarketError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--create-tables', is_flag=True, help='Create missing tables directly (dev only; prefer flask db upgrade)')
@click.option('--admin-email', help='Create a superadmin with this email')
@click.option('--admin-password', help='Password for the superadmin')
@click.option('--admin-name', default='Administrator', help='Display name for the superadmin')
@with_appcontext
def init_system(create_tables, admin_email, admin_password, admin_name):
    """
    Idempotent bootstrap.

    - Verifies every model table exists (or creates them with --create-tables)
    - Stores the default fee settings (5% seller fee, 2000.00 buyer fee)
    - Optionally creates a superadmin account
    """
    click.echo("START Initializing marketplace...")

    expected = set(db.metadata.tables)
    existing = set(inspect(db.engine).get_table_names())
    missing = sorted(expected - existing)
    if missing and create_tables:
        db.create_all()
        click.echo(f"PASS Created tables: {', '.join(missing)}")
    elif missing:
        click.echo(f"FAIL Missing tables: {', '.join(missing)}")
        click.echo("     Run 'python -m flask db upgrade' or pass --create-tables.")
        return
    else:
        click.echo(f"PASS All {len(expected)} tables present")

    settings = settings_service.list_settings()
    for setting in settings:
        click.echo(f"PASS Setting {setting.key} = {setting.value}")

    if admin_email:
        if not admin_password:
            click.echo("FAIL --admin-password is required with --admin-email")
            return
        existing_admin = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
        if existing_admin:
            click.echo(f"WARN  User '{admin_email}' already exists, skipping...")
        else:
            try:
                admin = create_user(admin_name, admin_email, admin_password, role=ROLE_ADMIN)
                click.echo(f"PASS Created superadmin: {admin.email}")
            except PasswordValidationError as e:
                click.echo(f"FAIL Password validation failed: {str(e)}")
                click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
                return
            except MarketError as e:
                click.echo(f"FAIL Failed to create superadmin: {e.message}")
                return

    click.echo("\n" + "="*60)
    click.echo("DONE Marketplace initialized")
    click.echo("="*60)


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with roles and ban status."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<32} {'Role':<16} {'Banned'}")
    click.echo("="*80)
    for user in users:
        click.echo(f"{user.id:<5} {user.name:<24} {user.email:<32} {user.role:<16} {'Yes' if user.banned else 'No'}")
    click.echo("="*80 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), default='user', show_default=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
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
        user = create_user(name, email, password, role=role)
        click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except MarketError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice(sorted(VALID_ROLES)))
@with_appcontext
def set_role_cli(email, role):
    """Change the role of the user with EMAIL."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    try:
        user = set_role(user.id, role)
    except MarketError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS {user.email} is now '{user.role}'")


# =============================================================================
# SETTINGS COMMANDS
# =============================================================================

@click.group('settings')
def settings_group():
    """Platform settings (fees)."""


@settings_group.command('list')
@with_appcontext
def list_settings_cli():
    for setting in settings_service.list_settings():
        description = f"  # {setting.description}" if setting.description else ""
        click.echo(f"{setting.key} = {setting.value}{description}")


@settings_group.command('set')
@click.argument('key')
@click.argument('value')
@click.option('--description', help='Optional description')
@with_appcontext
def set_setting_cli(key, value, description):
    try:
        setting = settings_service.upsert_setting(key, value, description)
    except MarketError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS {setting.key} = {setting.value}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(settings_group)
