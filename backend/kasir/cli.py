# Overview: Flask CLI command groups for bootstrap, cache maintenance and receipt printing.

# backend/kasir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
# - python -m flask system seed --tenant-code DEMO
#   Idempotent demo data: tenant, admin + cashier users, brand, category, products.
#
# Users:
# - python -m flask users create --tenant-code DEMO --username kasir2 --email kasir2@kasir.local --role cashier
#
# Cache (in-process; reports on the cache of the CLI process itself):
# - python -m flask cache stats
# - python -m flask cache flush
#
# Transactions:
# - python -m flask transactions receipt 42 --tenant-id 1
#   Print the plain-text receipt of a completed transaction.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Tenant, User, Brand, Category, Product
from .models.auth import ROLE_ADMIN, ROLE_CASHIER, VALID_ROLES
from .services.auth_service import create_user, PasswordValidationError
from .services.receipt_service import get_receipt_data, PlainTextReceiptRenderer
from .validation import ConflictError, NotFoundError

DEFAULT_PASSWORD = "Password123"

SEED_PRODUCTS = [
    # sku, name, price, stock, min_stock
    ("KOPI-001", "Kopi Susu Gula Aren", 18000, 50, 10),
    ("KOPI-002", "Americano", 15000, 40, 10),
    ("TEH-001", "Teh Tarik", 12000, 3, 5),
    ("ROTI-001", "Roti Bakar Coklat", 20000, 25, 5),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables from the model metadata."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed')
@click.option('--tenant-code', default='DEMO', help='Tenant code used at login')
@click.option('--tenant-name', default='Demo Store', help='Tenant display name')
@with_appcontext
def seed(tenant_code, tenant_name):
    """
    Seed a tenant with an admin, a cashier and a few products.

    Users: admin / cashier, password "Password123".
    SECURITY: Change passwords immediately outside of development!
    """
    click.echo(f"START Seeding tenant {tenant_code}...")

    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        tenant = Tenant(name=tenant_name, code=tenant_code, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    for username, role in (("admin", ROLE_ADMIN), ("cashier", ROLE_CASHIER)):
        try:
            create_user(tenant.id, username, f"{username}@{tenant_code.lower()}.local", DEFAULT_PASSWORD, role=role)
            click.echo(f"PASS Created user: {username} ({role})")
        except ConflictError:
            click.echo(f"SKIP User {username} already exists")

    brand = db.session.query(Brand).filter_by(tenant_id=tenant.id, name="House Blend").first()
    if not brand:
        brand = Brand(tenant_id=tenant.id, name="House Blend")
        db.session.add(brand)
    category = db.session.query(Category).filter_by(tenant_id=tenant.id, name="Beverages").first()
    if not category:
        category = Category(tenant_id=tenant.id, name="Beverages")
        db.session.add(category)
    db.session.flush()

    created = 0
    for sku, name, price, stock, min_stock in SEED_PRODUCTS:
        exists = db.session.query(Product).filter_by(tenant_id=tenant.id, sku=sku).first()
        if exists:
            continue
        db.session.add(Product(
            tenant_id=tenant.id,
            sku=sku,
            name=name,
            price=price,
            stock=stock,
            min_stock=min_stock,
            brand_id=brand.id,
            category_id=category.id,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Products created: {created}")

    click.echo("\nDONE Seed complete. Login with:")
    click.echo(f"   tenant_code={tenant_code}  admin / {DEFAULT_PASSWORD}")
    click.echo(f"   tenant_code={tenant_code}  cashier / {DEFAULT_PASSWORD}")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--tenant-code', required=True, help='Tenant code')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), default=ROLE_CASHIER, help='Role')
@with_appcontext
def create_user_cli(tenant_code, username, email, password, role):
    """Create a user inside a tenant. Password: 8+ chars with a letter and a digit."""
    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        click.echo(f"FAIL Tenant {tenant_code} not found")
        raise SystemExit(1)

    try:
        user = create_user(tenant.id, username, email, password, role=role)
    except (PasswordValidationError, ConflictError, NotFoundError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role}, tenant: {tenant.code})")


@click.group('cache')
def cache_group():
    """Product cache inspection."""


@cache_group.command('stats')
@with_appcontext
def cache_stats():
    cache = current_app.extensions.get("product_cache")
    if cache is None:
        click.echo("Cache not configured")
        return
    for key, value in cache.stats().items():
        click.echo(f"{key}: {value}")


@cache_group.command('flush')
@with_appcontext
def cache_flush():
    cache = current_app.extensions.get("product_cache")
    if cache is None:
        click.echo("Cache not configured")
        return
    removed = len(cache)
    cache.flush()
    click.echo(f"PASS Flushed {removed} cache entries")


@click.group('transactions')
def transactions_group():
    """Transaction inspection commands."""


@transactions_group.command('receipt')
@click.argument('transaction_id', type=int)
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--width', type=int, default=40, show_default=True, help='Receipt width in characters')
@with_appcontext
def print_receipt(transaction_id, tenant_id, width):
    """Print the plain-text receipt of a completed transaction."""
    try:
        receipt = get_receipt_data(transaction_id, tenant_id)
    except (NotFoundError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    document = PlainTextReceiptRenderer(width=width).render(receipt)
    click.echo(document.decode("utf-8"), nl=False)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(cache_group)
    app.cli.add_command(transactions_group)
