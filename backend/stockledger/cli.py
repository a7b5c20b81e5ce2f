# Overview: Flask CLI command groups for catalog bootstrap and ledger audit.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Catalog:
# - python -m flask catalog add-org --name "Acme Corp" --code ACME
# - python -m flask catalog add-product --org-id 1 --sku SKU-1 --name "Widget" --min 10 --max 100
# - python -m flask catalog add-location --org-id 1 --name "Main Warehouse" --type warehouse
#
# Ledger:
# - python -m flask ledger verify [--org-id 1]
#   Recompute every cached inventory row from its transactions; exits 1 on drift.
# - python -m flask ledger seed-demo
#   Create a demo organization with two locations, a product and a few movements.

import sys

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import LOCATION_TYPES
from .services import catalog_service
from .services.audit_service import verify_ledger
from .services.ledger_store import LedgerStore
from .services.stock_service import stock_operations_for


@click.group('catalog')
def catalog_group():
    """Catalog bootstrap commands."""


@catalog_group.command('add-org')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', default=None, help='Short code (unique)')
@with_appcontext
def add_org_cli(name, code):
    org = catalog_service.create_organization(name=name, code=code)
    click.echo(f"Created organization {org.id}: {org.name}")


@catalog_group.command('add-product')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--unit', 'stock_unit', default='unit', show_default=True)
@click.option('--min', 'min_level', default='0', show_default=True, help='min_stock_level')
@click.option('--max', 'max_level', default='0', show_default=True, help='max_stock_level')
@with_appcontext
def add_product_cli(org_id, sku, name, stock_unit, min_level, max_level):
    try:
        product = catalog_service.create_product(
            organization_id=org_id,
            sku=sku,
            name=name,
            stock_unit=stock_unit,
            min_stock_level=min_level,
            max_stock_level=max_level,
        )
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created product {product.id}: {product.sku} {product.name}")


@catalog_group.command('add-location')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True)
@click.option('--type', 'location_type', type=click.Choice(LOCATION_TYPES), default='warehouse', show_default=True)
@click.option('--address', default=None)
@with_appcontext
def add_location_cli(org_id, name, location_type, address):
    try:
        location = catalog_service.create_location(
            organization_id=org_id,
            name=name,
            type=location_type,
            address=address,
        )
    except LedgerError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created location {location.id}: {location.name} ({location.type})")


@click.group('ledger')
def ledger_group():
    """Inventory ledger maintenance commands."""


@ledger_group.command('verify')
@click.option('--org-id', type=int, default=None, help='Limit the audit to one organization')
@with_appcontext
def verify_cli(org_id):
    report = verify_ledger(LedgerStore(db.session), organization_id=org_id)
    click.echo(f"Checked {report.rows_checked} inventory rows")
    for mismatch in report.mismatches:
        click.echo(
            f"  DRIFT inventory={mismatch.inventory_id} product={mismatch.product_id} "
            f"location={mismatch.location_id} cached={mismatch.cached_stock} ledger={mismatch.ledger_sum}"
        )
    if report.committed_above_current:
        click.echo(f"  committed > current on rows: {report.committed_above_current}")
    if not report.ok:
        click.echo("Ledger verification FAILED")
        sys.exit(1)
    click.echo("Ledger verification OK")


@ledger_group.command('seed-demo')
@with_appcontext
def seed_demo_cli():
    org = catalog_service.create_organization(name="Demo Organization", code=None)
    warehouse = catalog_service.create_location(organization_id=org.id, name="Main Warehouse", type="warehouse")
    store = catalog_service.create_location(organization_id=org.id, name="Downtown Store", type="store")
    product = catalog_service.create_product(
        organization_id=org.id,
        sku="DEMO-001",
        name="Demo Widget",
        min_stock_level=10,
        max_stock_level=200,
    )

    ops = stock_operations_for(org.id, actor="seed-demo")
    ops.receive(product_id=product.id, location_id=warehouse.id, quantity=100, unit_cost=5, reference_id="PO-DEMO-1")
    ops.receive(product_id=product.id, location_id=warehouse.id, quantity=50, unit_cost=8, reference_id="PO-DEMO-2")
    ops.transfer(
        product_id=product.id,
        source_location_id=warehouse.id,
        destination_location_id=store.id,
        quantity=30,
        reference_id="TR-DEMO-1",
    )
    ops.reserve(product_id=product.id, location_id=store.id, quantity=5, reference_id="SO-DEMO-1")
    ops.consume(product_id=product.id, location_id=store.id, quantity=3, reference_id="SALE-DEMO-1")

    click.echo(f"Seeded organization {org.id} (product {product.id}, locations {warehouse.id}, {store.id})")


def register_commands(app):
    app.cli.add_command(catalog_group)
    app.cli.add_command(ledger_group)
