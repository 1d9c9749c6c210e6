# Overview: Flask CLI command groups for bootstrap, users and report delivery.

# backend/tyrepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
# - The report scheduler is not started for flask commands (including `flask run`);
#   run `python wsgi.py` or a WSGI server on wsgi:app to deliver scheduled reports.
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@tyrepos.local --admin-password admin123 --admin-name Administrator]
#   Idempotent bootstrap: creates tables, the default admin and the "Tyres" category.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
#   List all users with role and active status.
# - python -m flask users create --name "Nimal" --email nimal@example.com --password secret1 --role cashier
#   Create a user (prompts if options are omitted).
#
# Reports:
# - python -m flask reports send-now
#   Send today's sales report to every active subscription.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, User
from .models.auth import ROLE_ADMIN, ROLES
from .services import auth_service, category_service
from .services.auth_service import PasswordValidationError
from .services.subscription_service import SubscriptionError, send_report_now
from .validation import ConflictError, ValidationError

DEFAULT_ADMIN_EMAIL = "admin@tyrepos.local"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_CATEGORY = "Tyres"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-email', default=DEFAULT_ADMIN_EMAIL, help='Email for the default admin')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password for the default admin')
@click.option('--admin-name', default='Administrator', help='Display name for the default admin')
@with_appcontext
def init_system(admin_email, admin_password, admin_name):
    """
    Initialize the shop database.

    Creates:
    - All tables (if missing)
    - Default admin user (if no user has that email)
    - "Tyres" category (if missing)

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing Tyre POS...")

    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists, skipping...")
    else:
        try:
            user = auth_service.create_user(
                name=admin_name,
                email=admin_email,
                password=admin_password,
                role=ROLE_ADMIN,
            )
            click.echo(f"PASS Created admin: {user.email}")
        except (PasswordValidationError, ValidationError, ConflictError) as e:
            click.echo(f"FAIL Failed to create admin '{admin_email}': {str(e)}")

    if category_service.find_by_name(DEFAULT_CATEGORY):
        click.echo(f"WARN  Category '{DEFAULT_CATEGORY}' already exists, skipping...")
    else:
        category_service.create_category({"name": DEFAULT_CATEGORY, "description": "Tyres of all sizes"})
        click.echo(f"PASS Created category: {DEFAULT_CATEGORY}")

    click.echo("\n" + "="*60)
    click.echo("DONE Tyre POS Initialized Successfully!")
    click.echo("="*60)
    click.echo(f"\nCategories: {db.session.query(Category).count()}")
    click.echo(f"Users: {db.session.query(User).count()}")
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


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES) + ['user']), prompt=True, help='Role')
@with_appcontext
def create_user_cli(name, email, password, role):
    """
    Create a new user.

    Password must be at least 6 characters. "user" is accepted as cashier.
    """
    try:
        user = auth_service.create_user(name=name, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{user.role}'")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<35} {'Role':<10} {'Active'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<35} {user.role:<10} {active_str}")

    click.echo("="*90 + "\n")


# =============================================================================
# REPORTS
# =============================================================================

@click.group('reports')
def reports_group():
    """Sales report delivery commands."""


@reports_group.command('send-now')
@with_appcontext
def send_report_now_cli():
    """Send today's sales report to every active subscription."""
    try:
        result = send_report_now()
    except SubscriptionError as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(
        f"PASS Sent {result['successful_emails']} of {result['total_emails']} report email(s) "
        f"for {result['report_date']} ({result['transactions_included']} line(s), total {result['total_sales']:.2f})"
    )
    for email in result["failed_emails"]:
        click.echo(f"FAIL Delivery failed for {email}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(reports_group)
