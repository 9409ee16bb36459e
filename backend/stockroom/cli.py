# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app stockroom <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app stockroom system init
#   Idempotent bootstrap: creates tables and the default admin account.
# - python -m flask --app stockroom system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask --app stockroom system cleanup-sessions
#   Delete expired/revoked session tokens older than 30 days.
#
# Users:
# - python -m flask --app stockroom users list [--role admin]
# - python -m flask --app stockroom users create-admin --email admin@stockroom.local --name Admin
#
# Inventory:
# - python -m flask --app stockroom inventory low-stock [--threshold 5]
#   Print products below the low-stock threshold and those out of stock.
#
# Reconciliation:
# - python -m flask --app stockroom reconcile list [--all]
#   Show partial-commit issues awaiting an administrator.

import click
from flask.cli import with_appcontext

from .errors import StockroomError
from .extensions import db
from .models import ReconciliationIssue, User
from .services import projection_service, session_service
from .services.auth_service import hash_password, normalize_email


DEFAULT_ADMIN_EMAIL = "admin@stockroom.local"
DEFAULT_ADMIN_PASSWORD = "Password123!"


def _ensure_admin(email: str, name: str, password: str) -> tuple[User, bool]:
    email = normalize_email(email)
    user = db.session.query(User).filter_by(email=email).first()
    if user:
        return user, False

    user = User(
        name=name,
        email=email,
        role="admin",
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user, True


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Create any missing tables and the default administrator.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing Stockroom...")
    db.create_all()

    user, created = _ensure_admin(DEFAULT_ADMIN_EMAIL, "Administrator", DEFAULT_ADMIN_PASSWORD)
    if created:
        click.echo(f"PASS Created admin user: {user.email} (ID: {user.id})")
        click.echo(f"WARN Default password is {DEFAULT_ADMIN_PASSWORD!r}; change it now.")
    else:
        click.echo(f"PASS Admin user already exists: {user.email} (ID: {user.id})")

    click.echo("DONE Stockroom initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask --app stockroom system init' to initialize.")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} session(s)")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(['admin', 'customer']), default=None)
@with_appcontext
def list_users(role):
    users = projection_service.search_users(None, role)
    if not users:
        click.echo("No users found.")
        return

    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>5}  {user.email:<40} {user.role:<9} {status}  {user.name}")


@users_group.command('create-admin')
@click.option('--email', prompt=True)
@click.option('--name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(email, name, password):
    try:
        user, created = _ensure_admin(email, name, password)
    except StockroomError as e:
        raise click.ClickException(str(e))

    if created:
        click.echo(f"PASS Created admin user: {user.email} (ID: {user.id})")
    else:
        click.echo(f"FAIL A user with email {user.email} already exists (ID: {user.id})")


@click.group('inventory')
def inventory_group():
    """Stock inspection commands."""


@inventory_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Defaults to LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock(threshold):
    try:
        low = projection_service.low_stock(threshold)
    except StockroomError as e:
        raise click.ClickException(str(e))
    out = projection_service.out_of_stock()

    click.echo(f"Out of stock ({len(out)}):")
    for product in out:
        click.echo(f"  {product.id:>5}  {product.name}")

    click.echo(f"Low stock ({len(low)}):")
    for product in low:
        click.echo(f"  {product.id:>5}  {product.name:<40} stock={product.stock} reserved={product.reserved}")


@click.group('reconcile')
def reconcile_group():
    """Partial-commit reconciliation commands."""


@reconcile_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Include resolved issues')
@with_appcontext
def list_issues(show_all):
    q = db.session.query(ReconciliationIssue)
    if not show_all:
        q = q.filter(ReconciliationIssue.status == "OPEN")
    issues = q.order_by(ReconciliationIssue.created_at.desc(), ReconciliationIssue.id.desc()).all()

    if not issues:
        click.echo("No reconciliation issues.")
        return

    for issue in issues:
        click.echo(
            f"{issue.id:>5}  order={issue.order_id:<6} {issue.status:<8} "
            f"{issue.error_code:<20} movements={issue.movement_ids} {issue.resolution or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(reconcile_group)
