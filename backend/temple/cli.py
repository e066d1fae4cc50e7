# Overview: Flask CLI command groups for bootstrap, inspection, and receipt sequence maintenance.

# backend/temple/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, seeds receipt sequences, creates the default users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --username treasurer --email treasurer@temple.local --password "Password123!" --role Treasurer
#   Create a user (prompts if options are omitted).
#
# Receipt sequences:
# - python -m flask receipts seed
#   Create missing sequence rows, starting after the highest recorded receipt number.
# - python -m flask receipts list
#   Show the next number for every transaction type.
# - python -m flask receipts peek Donation
#   Preview the next receipt number for one type (does not allocate).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User, ROLES, ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER, TRANSACTION_TYPES
from .services.auth_service import create_user, PasswordValidationError, UserValidationError
from .services import receipt_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the system: tables, receipt sequences and default users.

    Creates:
    - All tables (when missing)
    - One receipt sequence per transaction type
    - Users: admin/admin@temple.local, treasurer/treasurer@temple.local, viewer/viewer@temple.local
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing temple accounts...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = receipt_service.seed_sequences()
    if created:
        for transaction_type, next_number in created.items():
            click.echo(f"PASS Seeded {transaction_type} sequence at {next_number}")
    else:
        click.echo("PASS Receipt sequences already present")

    # Default password meets requirements:
    # - Minimum 8 characters
    # - Uppercase, lowercase, digit, special char
    default_password = "Password123!"

    default_users = [
        ("admin", "admin@temple.local", ROLE_ADMIN),
        ("treasurer", "treasurer@temple.local", ROLE_TREASURER),
        ("viewer", "viewer@temple.local", ROLE_VIEWER),
    ]

    click.echo("\nUSERS Creating default users...")
    for username, email, role in default_users:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(
                username,
                email,
                default_password,
                role=role,
                bcrypt_rounds=current_app.config["BCRYPT_ROUNDS"],
            )
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except (PasswordValidationError, UserValidationError) as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE Temple accounts initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin     -> admin@temple.local     / Password123!")
    click.echo("   treasurer -> treasurer@temple.local / Password123!")
    click.echo("   viewer    -> viewer@temple.local    / Password123!")
    click.echo("")


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
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
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
        create_user(
            username,
            email,
            password,
            role=role,
            bcrypt_rounds=current_app.config["BCRYPT_ROUNDS"],
        )
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        raise SystemExit(1)
    except UserValidationError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        raise SystemExit(1)


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Role'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {active_str:<8} {user.role}")

    click.echo("="*80 + "\n")


@click.group('receipts')
def receipts_group():
    """Receipt sequence inspection and repair commands."""


@receipts_group.command('seed')
@with_appcontext
def seed_receipts():
    """Create missing receipt sequences (existing ones are left alone)."""
    created = receipt_service.seed_sequences()
    if not created:
        click.echo("PASS All receipt sequences already exist")
        return
    for transaction_type, next_number in created.items():
        click.echo(f"PASS Seeded {transaction_type} sequence at {next_number}")


@receipts_group.command('list')
@with_appcontext
def list_receipts():
    """Show the next receipt number for every transaction type."""
    sequences = receipt_service.list_sequences()
    if not sequences:
        click.echo("No receipt sequences found. Run 'python -m flask receipts seed'.")
        return

    click.echo(f"{'Type':<12} {'Next':<10} {'Updated'}")
    for sequence in sequences:
        click.echo(
            f"{sequence.transaction_type:<12} "
            f"{receipt_service.format_receipt_number(sequence.next_number):<10} "
            f"{sequence.updated_at}"
        )


@receipts_group.command('peek')
@click.argument('transaction_type', type=click.Choice(list(TRANSACTION_TYPES)))
@with_appcontext
def peek_receipt(transaction_type):
    """Preview the next receipt number for TRANSACTION_TYPE without allocating it."""
    try:
        click.echo(receipt_service.peek_next(transaction_type))
    except receipt_service.UnknownSequenceError as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(receipts_group)
