# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, loyalty settings and default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username kasir1 --full-name "Kasir Satu" --password "Password123" --role cashier
# - python -m flask users deactivate kasir1
#   Deactivate a user and revoke all of their sessions.
#
# Shifts:
# - python -m flask shifts list --status ACTIVE --limit 20
#   ACTIVE and OPEN both mean "currently open".

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .money import format_currency
from .services.auth_service import create_user, PasswordValidationError, UserError
from .services import loyalty_service
from .services import session_service
from .services import shift_service

DEFAULT_PASSWORD = "Password123"
DEFAULT_USERS = (
    ("admin", "Administrator", "admin"),
    ("supervisor", "Supervisor", "supervisor"),
    ("cashier", "Cashier", "cashier"),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Initialize the POS: schema, loyalty settings, and default users.

    Creates users admin, supervisor and cashier if they do not exist.

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing RetailPOS...")

    db.create_all()
    click.echo("PASS Schema ready")

    loyalty_service.get_settings()
    db.session.commit()
    click.echo("PASS Loyalty settings ready")

    for username, full_name, role in DEFAULT_USERS:
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"PASS User exists: {username}")
            continue
        try:
            create_user(username=username, password=password, full_name=full_name, role=role)
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {str(e)}")
            return
        click.echo(f"PASS Created user: {username} ({role})")

    click.echo("DONE RetailPOS initialized")


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
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--full-name', prompt=True, help='Display name printed on receipts')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'supervisor', 'cashier']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, full_name, password, role):
    """
    Create a new user.

    Password must be at least 8 characters and contain a letter and a digit.
    """
    try:
        user = create_user(username=username, password=password, full_name=full_name, role=role)
        click.echo(f"PASS Created user: {user.username} with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, at least one letter and one digit")
    except UserError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Name':<30} {'Role':<12} {'Active'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.full_name:<30} {user.role:<12} {active_str}")

    click.echo("="*80 + "\n")


@users_group.command('deactivate')
@click.argument('username')
@with_appcontext
def deactivate_user_cli(username):
    """Deactivate a user and revoke every session they hold."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    if shift_service.get_active_shift(user.id):
        click.echo(f"WARN {username} still has an open shift; it stays open until a supervisor closes it out")

    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user.id)
    click.echo(f"PASS Deactivated {username}; revoked {revoked} session(s)")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--status', help='OPEN/ACTIVE, CLOSED')
@click.option('--approval-status', help='NONE, PENDING, APPROVED, REJECTED')
@click.option('--limit', default=20, show_default=True, type=int)
@with_appcontext
def list_shifts_cli(status, approval_status, limit):
    """List recent shifts with their cash reconciliation."""
    shifts = shift_service.list_shifts(status=status, approval_status=approval_status, limit=limit)

    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo("\n" + "="*110)
    click.echo(
        f"{'ID':<5} {'Code':<26} {'Cashier':<20} {'Terminal':<12} {'Status':<8} "
        f"{'Expected':>14} {'Actual':>14} {'Approval'}"
    )
    click.echo("="*110)

    for shift in shifts:
        expected = format_currency(shift.expected_cash) if shift.expected_cash is not None else "-"
        actual = format_currency(shift.actual_cash) if shift.actual_cash is not None else "-"
        click.echo(
            f"{shift.id:<5} {(shift.shift_code or '-'):<26} {shift.user_name:<20} {shift.terminal_name:<12} "
            f"{shift.status:<8} {expected:>14} {actual:>14} {shift.approval_status}"
        )

    click.echo("="*110 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(shifts_group)
