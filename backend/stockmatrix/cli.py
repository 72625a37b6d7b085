# Overview: Flask CLI command groups for bootstrap, inspection, and matrix previews.

# backend/stockmatrix/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Acme Corp" --code "ACME"
#
# Products:
# - python -m flask products create --tenant-id 1 --sku TSHIRT --name "T-Shirt" --price 19.99
#
# Variant matrix preview (nothing is saved):
# - python -m flask variants preview --base-sku TSHIRT --base-price 19.99 \
#       --attr Size=S,M,L --attr Color=Red,Blue --modifier Size:L=+2.00 [--sanitize] \
#       [--sku-pattern attributes|sequential|incremental]
#
# Variant templates:
# - python -m flask templates seed
#   Create the built-in system templates that do not exist yet (idempotent).
# - python -m flask templates list --tenant-id 1
#
# Stock inspection:
# - python -m flask stock show --tenant-id 1 --variant-id 3 [--limit 20]

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import InvalidAttributeSet, VariantNotFound
from .extensions import db
from .models import Tenant, Product
from .services.attribute_set import Attribute
from .services.combination_service import SKU_PATTERNS, combination_advisory, generate_matrix
from .services.products_service import create_product
from .services.stock_ledger_service import get_stock_levels, list_variant_transactions
from .services.template_service import list_templates, seed_system_templates
from .services.tenant_service import TenantAccessError
from .services.variant_service import get_variant
from .validation import ConflictError, ValidationError


def parse_attr_option(raw: str) -> Attribute:
    """'Size=S,M,L' -> Attribute('Size', ('S', 'M', 'L'))"""
    name, sep, values = raw.partition("=")
    if not sep or not name.strip():
        raise click.BadParameter(f"expected Name=v1,v2 but got {raw!r}", param_hint="--attr")
    return Attribute.of(name.strip(), (v.strip() for v in values.split(",")))


def parse_modifier_option(raw: str) -> tuple[str, str, str]:
    """'Size:L=+2.00' -> ('Size', 'L', '+2.00')"""
    key, sep, amount = raw.partition("=")
    name, colon, value = key.partition(":")
    if not sep or not colon or not name.strip() or not value.strip():
        raise click.BadParameter(f"expected Name:Value=amount but got {raw!r}", param_hint="--modifier")
    return name.strip(), value.strip(), amount.strip()


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left alone)."""
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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id.asc()).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Products'}")
    click.echo("="*70)

    for tenant in tenants:
        product_count = db.session.query(Product).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {product_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@click.group('products')
def products_group():
    """Product commands."""


@products_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--sku', required=True, help='Product SKU (unique within tenant)')
@click.option('--name', required=True, help='Product name')
@click.option('--price', default='0', show_default=True, help='Default price for variants')
@with_appcontext
def create_product_cli(tenant_id, sku, name, price):
    """Create a parent product for variants."""
    try:
        product = create_product(tenant_id=tenant_id, payload={"sku": sku, "name": name, "price": price})
    except (TenantAccessError, ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created product: {product.sku} (ID: {product.id}, price {product.to_dict()['price']})")


@click.group('variants')
def variants_group():
    """Variant matrix commands."""


@variants_group.command('preview')
@click.option('--base-sku', default='', help='SKU prefix for every variant')
@click.option('--base-price', default='0', show_default=True, help='Price before modifiers')
@click.option('--attr', 'attrs', multiple=True, required=True, help='Attribute as Name=v1,v2 (repeatable)')
@click.option('--modifier', 'modifiers', multiple=True, help='Price modifier as Name:Value=+1.50 (repeatable)')
@click.option('--sanitize', is_flag=True, help='Uppercase SKUs and strip characters outside A-Z0-9_-')
@click.option('--sku-pattern', type=click.Choice(SKU_PATTERNS), default='attributes', show_default=True,
              help='How variant SKUs are suffixed')
@with_appcontext
def preview_matrix(base_sku, base_price, attrs, modifiers, sanitize, sku_pattern):
    """Print the variant matrix for a set of attributes without saving anything."""
    attributes = [parse_attr_option(raw) for raw in attrs]

    price_modifiers: dict[str, dict[str, str]] = {}
    for raw in modifiers:
        name, value, amount = parse_modifier_option(raw)
        price_modifiers.setdefault(name, {})[value] = amount

    try:
        cells = generate_matrix(
            attributes, base_sku, base_price, price_modifiers, sanitize=sanitize, sku_pattern=sku_pattern
        )
    except InvalidAttributeSet as e:
        raise click.ClickException(str(e))

    click.echo("\n" + "="*70)
    click.echo(f"{'SKU':<30} {'Name':<28} {'Price':>10}")
    click.echo("="*70)
    for cell in cells:
        click.echo(f"{cell.sku:<30} {cell.name:<28} {cell.price:>10}")
    click.echo("="*70)
    click.echo(f"{len(cells)} combination(s)")

    advisory = combination_advisory(len(cells), current_app.config.get("VARIANT_COMBINATION_WARN_THRESHOLD", 500))
    if advisory:
        click.echo(f"WARN {advisory}")
    click.echo("")


@click.group('templates')
def templates_group():
    """Variant template commands."""


@templates_group.command('seed')
@with_appcontext
def seed_templates():
    """Create the built-in system templates."""
    created = seed_system_templates()
    click.echo(f"PASS Created {created} system template(s).")


@templates_group.command('list')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def list_templates_cli(tenant_id):
    """List templates visible to a tenant (its own plus system templates)."""
    templates = list_templates(tenant_id=tenant_id)
    if not templates:
        click.echo("No templates found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Slug':<24} {'Scope':<8} {'Variants':>8} {'Used':>6}")
    click.echo("="*70)
    for t in templates:
        scope = "system" if t.is_system else "tenant"
        click.echo(f"{t.id:<5} {t.slug:<24} {scope:<8} {t.estimated_variant_count:>8} {t.usage_count:>6}")
    click.echo("="*70 + "\n")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('show')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--variant-id', type=int, required=True, help='Variant ID')
@click.option('--limit', type=int, default=20, show_default=True, help='Transactions to show (max 100)')
@with_appcontext
def show_stock(tenant_id, variant_id, limit):
    """Show stock counters and recent ledger rows for a variant."""
    try:
        variant = get_variant(tenant_id=tenant_id, variant_id=variant_id)
    except VariantNotFound as e:
        raise click.ClickException(e.message)

    levels = get_stock_levels(variant)
    click.echo(f"\n{variant.sku}  {variant.name}")
    click.echo(
        f"stock={levels['stock']}  reserved={levels['reserved_stock']}  "
        f"available={levels['available_stock']}  status={variant.stock_status}"
    )

    history = list_variant_transactions(tenant_id=tenant_id, variant_id=variant_id, per_page=limit)
    if not history["items"]:
        click.echo("No transactions.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'When':<22} {'Type':<13} {'Counter':<9} {'Change':>7} {'Before':>7} {'After':>7}  Reason")
    click.echo("="*80)
    for tx in history["items"]:
        click.echo(
            f"{tx['occurred_at']:<22} {tx['transaction_type']:<13} {tx['counter']:<9} "
            f"{tx['quantity_change']:>+7} {tx['quantity_before']:>7} {tx['quantity_after']:>7}  {tx['reason'] or '-'}"
        )
    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(products_group)
    app.cli.add_command(variants_group)
    app.cli.add_command(templates_group)
    app.cli.add_command(stock_group)
