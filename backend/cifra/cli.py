# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/cifra/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to cifra (PowerShell: $env:FLASK_APP="cifra").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Sellers:
# - python -m flask sellers create --email seller@cifra.local --password "Password123!" --display-name "Studio"
#   Create a seller account (prompts if options are omitted).
# - python -m flask sellers list
#   List sellers with product and sale counts.
#
# Notifications:
# - python -m flask notifications dispatch --limit 100
#   Retry pending/failed purchase emails from the outbox.
# - python -m flask notifications list --status failed
#   Show outbox rows by status.
#
# Download tokens:
# - python -m flask tokens info <token>
#   Show order, expiry and usage of a download token.

import click
from flask.cli import with_appcontext
from sqlalchemy import func

from .extensions import db
from .models import DownloadToken, NotificationOutbox, Product, Sale, Seller
from .services import download_service, notification_service
from .services.auth_service import create_seller, PasswordValidationError
from .services.download_service import DownloadError
from .validation import ValidationError, ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask sellers create' to add a seller.")


@click.group('sellers')
def sellers_group():
    """Seller account commands."""


@sellers_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--display-name', default=None, help='Storefront display name')
@with_appcontext
def create_seller_cli(email, password, display_name):
    """
    Create a seller account.

    Password must meet strength requirements:
    8+ chars, uppercase, lowercase, digit, special char.
    """
    try:
        seller = create_seller(email=email, password=password, display_name=display_name)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(f"PASS Created seller: {seller.email} (ID: {seller.id})")


@sellers_group.command('list')
@with_appcontext
def list_sellers():
    """List all sellers with product and sale counts."""
    sellers = db.session.query(Seller).order_by(Seller.id).all()
    if not sellers:
        click.echo("No sellers found.")
        return

    product_counts = dict(
        db.session.query(Product.seller_id, func.count(Product.id)).group_by(Product.seller_id).all()
    )
    sale_counts = dict(
        db.session.query(Sale.seller_id, func.count(Sale.id)).group_by(Sale.seller_id).all()
    )

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Active':<8} {'Products':<10} {'Sales'}")
    click.echo("=" * 80)
    for seller in sellers:
        active_str = "Yes" if seller.is_active else "No"
        click.echo(
            f"{seller.id:<5} {seller.email:<35} {active_str:<8} "
            f"{product_counts.get(seller.id, 0):<10} {sale_counts.get(seller.id, 0)}"
        )
    click.echo("=" * 80 + "\n")


@click.group('notifications')
def notifications_group():
    """Purchase email outbox commands."""


@notifications_group.command('dispatch')
@click.option('--limit', type=int, default=100, show_default=True)
@click.option('--max-attempts', type=int, default=None, help='Skip rows that already failed this many times')
@with_appcontext
def dispatch_notifications(limit, max_attempts):
    """Send pending and previously failed outbox emails."""
    result = notification_service.dispatch_pending(limit=limit, max_attempts=max_attempts)
    click.echo(f"PASS Sent {result['sent']}, failed {result['failed']}")


@notifications_group.command('list')
@click.option('--status', type=click.Choice(['pending', 'sent', 'failed']), default='failed', show_default=True)
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_notifications(status, limit):
    rows = (
        db.session.query(NotificationOutbox)
        .filter_by(status=status)
        .order_by(NotificationOutbox.created_at.desc())
        .limit(limit)
        .all()
    )
    if not rows:
        click.echo(f"No {status} notifications.")
        return
    for row in rows:
        click.echo(
            f"#{row.id} order={row.order_id} {row.kind} -> {row.recipient} "
            f"attempts={row.attempts} {row.last_error or ''}".rstrip()
        )


@click.group('tokens')
def tokens_group():
    """Download token inspection."""


@tokens_group.command('info')
@click.argument('token')
@with_appcontext
def token_info(token):
    """Show order, expiry and usage of a download token."""
    try:
        info = download_service.get_token_info(token)
    except DownloadError as e:
        click.echo(f"FAIL {str(e)}")
        return

    record = db.session.query(DownloadToken).filter_by(token=token.strip()).first()
    click.echo(f"Order:     {record.order_id}")
    click.echo(f"Buyer:     {record.buyer_email}")
    click.echo(f"Product:   {info['product_id']} ({info['product_title']}), {info['file_count']} file(s)")
    click.echo(f"Expires:   {info['expires_at']}{' (EXPIRED)' if info['expired'] else ''}")
    click.echo(f"Downloads: {info['download_count']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sellers_group)
    app.cli.add_command(notifications_group)
    app.cli.add_command(tokens_group)
