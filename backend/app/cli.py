# Overview: Flask CLI command groups for bootstrap, tenant setup and ledger inspection.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Acme Corp" --code "ACME"
#
# Users:
# - python -m flask users create --company-id 1 --email ops@acme.local --first-name Ops --last-name Team
#
# Inventory:
# - python -m flask inventory check-ledger --company-id 1
#   Verify every product's movement chain against its current stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, User, Product, Location
from .services.movement_service import verify_product_ledger


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask companies create' next.")


# =============================================================================
# COMPANIES
# =============================================================================

@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    """List all companies."""
    companies = db.session.query(Company).order_by(Company.id.asc()).all()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Locations':<10} {'Users'}")
    click.echo("="*80)

    for company in companies:
        location_count = db.session.query(Location).filter_by(company_id=company.id).count()
        user_count = db.session.query(User).filter_by(company_id=company.id).count()
        active_str = "Yes" if company.is_active else "No"

        click.echo(
            f"{company.id:<5} {company.name:<30} {company.code or '-':<15} "
            f"{active_str:<8} {location_count:<10} {user_count}"
        )

    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_company_cli(name, code):
    """Create a new company (tenant)."""
    code = code.strip().upper()
    existing = db.session.query(Company).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Company with code '{code}' already exists")
        return

    company = Company(name=name, code=code, is_active=True)
    db.session.add(company)
    db.session.commit()

    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--email', required=True, help='Email (unique within company)')
@click.option('--first-name', default=None, help='First name')
@click.option('--last-name', default=None, help='Last name')
@with_appcontext
def create_user_cli(company_id, email, first_name, last_name):
    """Create a user inside a company."""
    company = db.session.get(Company, company_id)
    if company is None:
        click.echo(f"FAIL Company {company_id} not found")
        return

    email = email.strip().lower()
    if db.session.query(User).filter_by(company_id=company_id, email=email).first():
        click.echo(f"FAIL User '{email}' already exists in company {company_id}")
        return

    user = User(company_id=company_id, email=email, first_name=first_name, last_name=last_name, is_active=True)
    db.session.add(user)
    db.session.commit()

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}, Company: {company.code})")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory ledger inspection commands."""


@inventory_group.command('check-ledger')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def check_ledger_cli(company_id):
    """Verify every product's movement chain; exits 1 on any break."""
    products = (
        db.session.query(Product)
        .filter_by(company_id=company_id)
        .order_by(Product.id.asc())
        .all()
    )
    if not products:
        click.echo("No products found.")
        return

    broken = 0
    for product in products:
        report = verify_product_ledger(product.id, company_id)
        if report["ok"]:
            click.echo(f"PASS {product.sku}: stock={report['current_stock']} movements={report['movement_count']}")
            continue
        broken += 1
        click.echo(f"FAIL {product.sku}: stock={report['current_stock']} ledger={report['ledger_stock']}")
        for issue in report["issues"]:
            click.echo(f"     movement {issue['movement_id']}: {issue['issue']}")

    click.echo(f"\n{len(products) - broken}/{len(products)} products consistent.")
    if broken:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(users_group)
    app.cli.add_command(inventory_group)
