# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default SUPER admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with label, admin level and active status.
# - python -m flask users create --email staff@example.com --password "Password123!" --label INTERNAL --admin-level ADMIN
#   Create a user (prompts if options are omitted).
# - python -m flask users invalidate-sessions staff@example.com
#   Log a user out everywhere (bumps session_version).
#
# Inventory:
# - python -m flask inventory refresh-allocated
#   Recompute the stock_allocated cache from paid open orders.
# - python -m flask inventory overview --q "widget" --page 1 --page-size 50
#   Print the demand/allocation overview.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import USER_LABELS, ADMIN_LEVELS
from .services.auth_service import create_user, invalidate_sessions, list_users, normalize_email
from .services.session_service import revoke_all_user_sessions
from .services import inventory_service
from .errors import ValidationError, ConflictError


DEFAULT_ADMIN_EMAIL = "admin@wholesale.local"
DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the system: schema and a default SUPER admin.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing system...")

    db.create_all()
    click.echo("PASS Tables ensured")

    existing = db.session.query(User).filter_by(email=DEFAULT_ADMIN_EMAIL).first()
    if existing:
        click.echo(f"WARN  User '{DEFAULT_ADMIN_EMAIL}' already exists, skipping...")
    else:
        try:
            create_user(
                email=DEFAULT_ADMIN_EMAIL,
                password=DEFAULT_PASSWORD,
                name="Administrator",
                label="INTERNAL",
                admin_level="SUPER",
            )
            click.echo(f"PASS Created user: {DEFAULT_ADMIN_EMAIL} (INTERNAL / SUPER)")
        except (ValidationError, ConflictError) as e:
            click.echo(f"FAIL Failed to create default admin: {str(e)}")

    click.echo("\n" + "="*60)
    click.echo("DONE System Initialized Successfully!")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo(f"   {DEFAULT_ADMIN_EMAIL} / {DEFAULT_PASSWORD}")
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
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--label', type=click.Choice(USER_LABELS), default='RETAILER', show_default=True)
@click.option('--admin-level', type=click.Choice(ADMIN_LEVELS), default=None, help='INTERNAL users only')
@with_appcontext
def create_user_cli(email, name, password, label, admin_level):
    """
    Create a new user.

    Password must meet strength requirements:
    8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        user = create_user(
            email=email,
            password=password,
            name=name,
            label=label,
            admin_level=admin_level,
        )
    except ValidationError as e:
        click.echo(f"FAIL {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        raise SystemExit(1)
    except ConflictError as e:
        click.echo(f"FAIL {str(e)}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) label={user.label} admin={user.admin_level or '-'}")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users_cli():
    """List all users."""
    users = list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<32} {'Label':<10} {'Admin':<7} {'Active':<8} {'SessVer'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(
            f"{user.id:<5} {user.email:<32} {user.label:<10} {(user.admin_level or '-'):<7} "
            f"{active_str:<8} {user.session_version}"
        )

    click.echo("="*90 + "\n")


@users_group.command('invalidate-sessions')
@click.argument('email')
@with_appcontext
def invalidate_sessions_cli(email):
    """Log a user out of every device."""
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        raise SystemExit(1)

    version = invalidate_sessions(user.id)
    revoked = revoke_all_user_sessions(user.id, reason="Invalidated from CLI")
    click.echo(f"PASS session_version is now {version}; {revoked} session(s) revoked")


@click.group('inventory')
def inventory_group():
    """Inventory inspection and maintenance commands."""


@inventory_group.command('refresh-allocated')
@with_appcontext
def refresh_allocated_cli():
    """Recompute Product.stock_allocated for every product."""
    changed = inventory_service.refresh_allocated_cache()
    click.echo(f"PASS stock_allocated refreshed ({changed} product(s) changed)")


@inventory_group.command('overview')
@click.option('--q', default=None, help='Title filter')
@click.option('--page', type=int, default=1, show_default=True)
@click.option('--page-size', type=int, default=None, help='10..200, default 100')
@with_appcontext
def overview_cli(q, page, page_size):
    """Print the inventory overview."""
    result = inventory_service.get_inventory_overview(q=q, page=page, page_size=page_size)

    click.echo("\n" + "="*104)
    click.echo(
        f"{'ID':<5} {'Title':<30} {'OnHand':>7} {'Alloc':>7} {'Avail':>7} "
        f"{'All':>6} {'Paid':>6} {'Unpaid':>6} {'Open':>6} {'Buy':>6}"
    )
    click.echo("="*104)

    for row in result["rows"]:
        click.echo(
            f"{row['product_id']:<5} {row['title'][:30]:<30} {row['on_hand']:>7} {row['allocated']:>7} "
            f"{row['available']:>7} {row['demand_all']:>6} {row['demand_paid']:>6} "
            f"{row['demand_unpaid']:>6} {row['demand_open']:>6} {row['need_to_buy_for_open']:>6}"
        )

    click.echo("="*104)
    click.echo(f"page {result['page']} / size {result['page_size']} / total {result['total']}\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
