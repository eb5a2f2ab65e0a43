# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/posdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: roles, permissions, and default admin/manager/cashier users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username clerk --email clerk@posdesk.local --password "Password123!" --role cashier
#   Create a user (prompts if options are omitted).
#
# Permissions:
# - python -m flask perms check cashier VIEW_CUSTOMER_CONTACT
#   Check whether a user has a permission.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Role
from .services.auth_service import create_user, create_default_roles, assign_role, PasswordValidationError
from .services import permission_service
from .permissions import validate_permission_code


DEFAULT_PASSWORD = "Password123!"

DEFAULT_USERS = [
    ("admin", "admin@posdesk.local", "admin"),
    ("manager", "manager@posdesk.local", "manager"),
    ("cashier", "cashier@posdesk.local", "cashier"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize roles, permissions and default users.

    Creates:
    - Roles: admin, manager, cashier
    - Permissions and default role grants
    - Users: admin, manager, cashier (password "Password123!")

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing POSDesk...")

    click.echo("\nLIST Creating roles...")
    create_default_roles()
    roles = db.session.query(Role).all()
    click.echo(f"PASS Roles: {', '.join(r.name for r in roles)}")

    click.echo("\nSECURITY Initializing permissions...")
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    click.echo("\nUSERS Creating default users...")
    for username, email, role_name in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            user = create_user(username=username, email=email, password=DEFAULT_PASSWORD)
            assign_role(user.id, role_name)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role_name}'")
        except (PasswordValidationError, ValueError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "=" * 60)
    click.echo("DONE POSDesk initialized")
    click.echo("=" * 60)
    click.echo(f"\nDefault password for admin/manager/cashier: {DEFAULT_PASSWORD} (CHANGE IN PRODUCTION!)")


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
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'manager', 'cashier']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new user.

    Password must have 8+ chars, uppercase, lowercase, digit and special char.
    """
    try:
        user = create_user(username=username, email=email, password=password)
        assign_role(user.id, role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")


# =============================================================================
# PERMISSION COMMANDS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('check')
@click.argument('username')
@click.argument('permission_code')
@with_appcontext
def check_permission_cli(username, permission_code):
    """Check if a user has a specific permission."""
    if not validate_permission_code(permission_code):
        click.echo(f"FAIL Unknown permission code '{permission_code}'")
        return

    user = db.session.query(User).filter_by(username=username).first()

    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    if permission_service.user_has_permission(user.id, permission_code):
        click.echo(f"PASS User '{username}' HAS permission '{permission_code}'")
    else:
        click.echo(f"FAIL User '{username}' DOES NOT HAVE permission '{permission_code}'")

    roles = permission_service.get_user_role_names(user.id)
    all_perms = permission_service.get_user_permissions(user.id)

    click.echo(f"\nUser roles: {', '.join(roles)}")
    click.echo(f"Total permissions: {len(all_perms)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
