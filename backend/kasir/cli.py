# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/kasir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default admin/cashier accounts if no users exist.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username budi --password "Kasir2025" --role cashier --full-name "Budi"
#
# Daily transaction numbers:
# - python -m flask counters show [--date 2025-01-15]
#   Show the last transaction number handed out for a business date (default: today).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30

import click
from datetime import date
from flask.cli import with_appcontext

from .extensions import db
from .models import User, DailyCounter
from .services.auth_service import create_user, seed_default_users, PasswordValidationError
from .services.sequence_service import format_transaction_id, peek_sequence, MAX_DAILY_SEQUENCE
from .services import session_service
from .validation import ConflictError, ValidationError
from .time_utils import to_business_date


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create tables and seed default accounts on first boot.

    Default credentials come from SEED_ADMIN_* / SEED_CASHIER_* config.
    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing kasir database...")
    db.create_all()

    created = seed_default_users()
    if created:
        for user in created:
            click.echo(f"PASS Created {user.role} account: {user.username}")
    else:
        click.echo("PASS Users already exist, nothing seeded")

    click.echo("PASS Initialization complete")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including daily transaction counters!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to seed users.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(['admin', 'cashier']), prompt=True, help='Role')
@click.option('--full-name', default=None, help='Display name')
@with_appcontext
def create_user_cli(username, password, role, full_name):
    """Create a new user (password: 8+ chars with a letter and a digit)."""
    try:
        user = create_user(username=username, password=password, role=role, full_name=full_name)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except (ConflictError, ValidationError) as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.username).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Username':<20} {'Full name':<25} {'Role':<10} {'Active'}")
    click.echo("="*72)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {(user.full_name or ''):<25} {user.role:<10} {active_str}")

    click.echo("="*72 + "\n")


@click.group('counters')
def counters_group():
    """Daily transaction number inspection."""


@counters_group.command('show')
@click.option('--date', 'day', default=None, help='Business date YYYY-MM-DD (default: today)')
@click.option('--recent', type=int, default=0, help='Also list the N most recent days')
@with_appcontext
def show_counter(day, recent):
    """Show the last transaction number issued for a business date."""
    try:
        business_date = date.fromisoformat(day) if day else to_business_date()
    except ValueError:
        raise click.BadParameter("date must be YYYY-MM-DD", param_hint="--date")

    last_seq = peek_sequence(business_date)
    if last_seq:
        click.echo(
            f"{business_date.isoformat()}: last={format_transaction_id(business_date, min(last_seq, MAX_DAILY_SEQUENCE))} "
            f"({last_seq}/{MAX_DAILY_SEQUENCE} used)"
        )
    else:
        click.echo(f"{business_date.isoformat()}: no transactions yet")

    if recent > 0:
        rows = (
            db.session.query(DailyCounter)
            .order_by(DailyCounter.business_date.desc())
            .limit(recent)
            .all()
        )
        for row in rows:
            click.echo(f"  {row.business_date.isoformat()}  {row.last_seq:>3}")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(retention_days):
    """Delete expired/revoked session tokens older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} session tokens")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(counters_group)
    app.cli.add_command(maintenance_group)
