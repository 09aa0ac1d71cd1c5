# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/digitalshop/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: tables, role permissions, settings, expense categories, default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --email a@b.c --full-name "Ann" --password "Password123" --role MANAGER
#
# Permissions:
# - python -m flask perms list [--role CASHIER]
# - python -m flask perms grant CASHIER sales.void
# - python -m flask perms revoke CASHIER sales.void
#
# Maintenance:
# - python -m flask holds cleanup
#   Mark held orders past their expiry as EXPIRED.
# - python -m flask cache stats

import click
from flask.cli import with_appcontext

from .cache import get_cache_stats
from .extensions import db
from .models import User
from .permissions import (
    PERMISSION_DEFINITIONS,
    ROLES,
    get_categories,
    get_permission_definition,
    get_permissions_by_category,
)
from .services import auth_service, expense_service, hold_service, permission_service, system_service
from .validation import ConflictError, ValidationError

DEFAULT_PASSWORD = "Password123"

DEFAULT_USERS = [
    ("admin@digitalshop.local", "System Administrator", "ADMIN"),
    ("manager@digitalshop.local", "Store Manager", "MANAGER"),
    ("cashier@digitalshop.local", "Cashier", "CASHIER"),
    ("staff@digitalshop.local", "Staff", "STAFF"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize a DigitalShop database.

    Creates:
    - All tables (if missing)
    - Default role -> permission grants
    - The system settings row
    - Default expense categories
    - One user per role, all with password "Password123"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing DigitalShop...")

    db.create_all()
    click.echo("PASS Tables ready")

    added = permission_service.seed_role_permissions()
    click.echo(f"PASS Role permissions seeded ({added} new grants)")

    system_service.ensure_settings()
    click.echo("PASS System settings ready")

    categories = expense_service.seed_expense_categories()
    click.echo(f"PASS Expense categories seeded ({categories} new)")

    click.echo("\nUSERS Creating default users...")
    for email, full_name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"WARN  User '{email}' already exists, skipping...")
            continue
        try:
            auth_service.create_user(email=email, password=DEFAULT_PASSWORD, full_name=full_name, role=role)
        except (ValidationError, ConflictError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{email}': {e}")
            continue
        click.echo(f"PASS Created user: {email} with role '{role}'")

    click.echo("\n" + "=" * 60)
    click.echo("DONE DigitalShop initialized")
    click.echo("=" * 60)
    click.echo(f"\nDefault password for all users: {DEFAULT_PASSWORD} (CHANGE IN PRODUCTION!)")


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
    click.echo("BUILD Recreating tables...")
    db.create_all()
    click.echo("PASS Database reset. Run 'python -m flask system init' to seed it.")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<25} {'Role':<9} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.full_name:<25} {user.role:<9} {active_str}")
    click.echo("=" * 80 + "\n")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--full-name', prompt=True, help='Full name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), default='STAFF', show_default=True)
@with_appcontext
def create_user_cli(email, full_name, password, role):
    """
    Create a user.

    Password must be at least 8 characters with an uppercase letter,
    a lowercase letter and a digit.
    """
    try:
        user = auth_service.create_user(email=email, password=password, full_name=full_name, role=role)
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {e}")
        return
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


# =============================================================================
# PERMISSION COMMANDS
# =============================================================================

@click.group('perms')
def perms_group():
    """Role permission inspection and repair."""


@perms_group.command('list')
@click.option('--role', help='Only show keys granted to this role')
@with_appcontext
def list_permissions_cli(role):
    """List permission keys, optionally only those granted to one role."""
    if role:
        role = role.upper()
        if role not in ROLES:
            click.echo(f"FAIL Role '{role}' not found")
            return
        keys = permission_service.get_role_permissions(role)
        click.echo(f"\nPermissions for role: {role}")
        click.echo("-" * 60)
        for key in keys:
            definition = get_permission_definition(key) or {"name": "(unknown key)"}
            click.echo(f"  {key:<25} {definition['name']}")
        click.echo(f"\n Total: {len(keys)} permissions\n")
        return

    for category in get_categories():
        click.echo(f"\n[{category}]")
        for key, name, _description, _category in get_permissions_by_category(category):
            click.echo(f"  {key:<25} {name}")
    click.echo(f"\n Total: {len(PERMISSION_DEFINITIONS)} permissions\n")


@perms_group.command('grant')
@click.argument('role')
@click.argument('permission_key')
@with_appcontext
def grant_permission_cli(role, permission_key):
    """Grant a permission to a role."""
    try:
        granted = permission_service.grant_permission(role, permission_key)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return
    if granted:
        click.echo(f"PASS Granted {permission_key} to {role.upper()}")
    else:
        click.echo(f"WARN  {role.upper()} already has {permission_key}")


@perms_group.command('revoke')
@click.argument('role')
@click.argument('permission_key')
@with_appcontext
def revoke_permission_cli(role, permission_key):
    """Revoke a permission from a role."""
    try:
        revoked = permission_service.revoke_permission(role, permission_key)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return
    if revoked:
        click.echo(f"PASS Revoked {permission_key} from {role.upper()}")
    else:
        click.echo(f"WARN  {role.upper()} did not have {permission_key}")


# =============================================================================
# MAINTENANCE COMMANDS
# =============================================================================

@click.group('holds')
def holds_group():
    """Held order maintenance."""


@holds_group.command('cleanup')
@with_appcontext
def cleanup_holds():
    """Mark ACTIVE held orders past expiry as EXPIRED."""
    count = hold_service.expire_overdue_holds()
    click.echo(f"PASS Expired {count} held orders")


@click.group('cache')
def cache_group():
    """In-process cache inspection."""


@cache_group.command('stats')
@with_appcontext
def cache_stats():
    """Show hits, misses and key counts per cache."""
    for name, stats in get_cache_stats().items():
        click.echo(
            f"{name:<10} keys={stats['keys']:<5} hits={stats['hits']:<6} "
            f"misses={stats['misses']:<6} ttl={stats['ttl_seconds']}s"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(holds_group)
    app.cli.add_command(cache_group)
