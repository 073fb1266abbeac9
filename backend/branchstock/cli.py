# Overview: Flask CLI command groups for bootstrap, tenant setup, and stock maintenance.

# backend/branchstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask db upgrade
#   Build or upgrade the schema from backend/migrations (preferred for real databases).
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent, no Alembic version stamp).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Shop management (MULTI-TENANT):
# - python -m flask shops list
#   List all shops with their branch counts.
# - python -m flask shops create --name "Acme Corp" --code "ACME"
#   Create a new shop (tenant).
# - python -m flask shops add-branch --shop-id 1 --name "Downtown" --code "DT"
#   Create a branch under a shop.
# - python -m flask shops branches --shop-id 1
#   List the branches of a shop.
#
# Stock maintenance:
# - python -m flask stock sync-retry --limit 100 [--shop-id 1]
#   Re-drive failed/pending stock sync jobs left behind by checkout.
# - python -m flask stock stale-transfers --shop-id 1 [--days 7]
#   List in-flight transfers shipped longer ago than the threshold.

import click
from flask.cli import with_appcontext
from sqlalchemy import func

from .errors import NotFoundError
from .extensions import db
from .models import Branch, Shop
from .services import checkout_service, transfer_service
from .services.tenant_service import get_shop_branches, require_active_shop


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables for the current DATABASE_URL (use `flask db upgrade` for migrated databases)."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """
    Drop and recreate all tables.

    DEV/TEST only: every shop, branch, order and ledger row is deleted.
    """
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)

    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('shops')
def shops_group():
    """Shop (tenant) management commands."""


@shops_group.command('list')
@with_appcontext
def list_shops():
    """List all shops."""
    rows = (
        db.session.query(Shop, func.count(Branch.id))
        .outerjoin(Branch, Branch.shop_id == Shop.id)
        .group_by(Shop.id)
        .order_by(Shop.id)
        .all()
    )
    if not rows:
        click.echo("No shops found")
        return

    for shop, branch_count in rows:
        state = "active" if shop.is_active else "inactive"
        click.echo(f"{shop.id:>4}  {shop.code or '-':<10} {shop.name}  ({state}, {branch_count} branches)")


@shops_group.command('create')
@click.option('--name', required=True, help='Shop name')
@click.option('--code', default=None, help='Unique shop code')
@with_appcontext
def create_shop(name, code):
    """Create a new shop (tenant)."""
    if code and db.session.query(Shop).filter_by(code=code).first():
        click.echo(f"FAIL Shop code '{code}' already exists")
        raise SystemExit(1)

    shop = Shop(name=name, code=code, is_active=True)
    db.session.add(shop)
    db.session.commit()
    click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id}, Code: {shop.code})")


@shops_group.command('add-branch')
@click.option('--shop-id', type=int, required=True, help='Owning shop ID')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', required=True, help='Branch code (unique within the shop)')
@click.option('--warehouse', is_flag=True, help='Create a WAREHOUSE branch')
@with_appcontext
def add_branch(shop_id, name, code, warehouse):
    """Create a branch under a shop."""
    try:
        shop = require_active_shop(shop_id)
    except NotFoundError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    if db.session.query(Branch).filter_by(shop_id=shop_id, code=code).first():
        click.echo(f"FAIL Branch code '{code}' already exists in shop {shop_id}")
        raise SystemExit(1)

    branch = Branch(
        shop_id=shop_id,
        name=name,
        code=code,
        branch_type="WAREHOUSE" if warehouse else "STORE",
    )
    db.session.add(branch)
    db.session.commit()
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}, Shop: {shop.name})")


@shops_group.command('branches')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@with_appcontext
def list_branches(shop_id):
    """List the branches of one shop."""
    branches = get_shop_branches(shop_id)
    if not branches:
        click.echo(f"No branches for shop {shop_id}")
        return

    for b in branches:
        flags = [b.branch_type.lower()]
        if not b.can_transfer_stock:
            flags.append("no transfers")
        if not b.is_active:
            flags.append("inactive")
        click.echo(f"{b.id:>4}  {b.code:<10} {b.name}  ({', '.join(flags)})")


@click.group('stock')
def stock_group():
    """Stock ledger maintenance commands."""


@stock_group.command('sync-retry')
@click.option('--limit', type=int, default=100, help='Maximum jobs to process')
@click.option('--shop-id', type=int, default=None, help='Restrict to one shop')
@with_appcontext
def sync_retry(limit, shop_id):
    """Re-drive due stock sync jobs."""
    summary = checkout_service.retry_stock_sync_jobs(limit=limit, shop_id=shop_id)
    click.echo(
        f"PASS Processed {summary['processed']} jobs: "
        f"{summary['succeeded']} succeeded, {summary['failed']} failed, {summary['skipped']} skipped"
    )
    for outcome in summary["outcomes"]:
        if outcome["status"] == "failed":
            click.echo(f"WARN  Job {outcome['job_id']} (product {outcome['product_id']}): {outcome['error']}")


@stock_group.command('stale-transfers')
@click.option('--shop-id', type=int, required=True, help='Shop ID')
@click.option('--days', type=int, default=None, help='Age threshold (defaults to STALE_TRANSFER_DAYS)')
@with_appcontext
def stale_transfers(shop_id, days):
    """List in-flight transfers that have not been fully received."""
    try:
        require_active_shop(shop_id)
    except NotFoundError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    transfers = transfer_service.list_stale_transfers(shop_id, days)
    if not transfers:
        click.echo("No stale transfers")
        return

    for t in transfers:
        click.echo(
            f"{t.transfer_number}  {t.status:<20} {t.from_branch_name} -> {t.to_branch_name}  "
            f"shipped {t.shipped_at:%Y-%m-%d}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shops_group)  # Multi-tenant shop management
    app.cli.add_command(stock_group)
