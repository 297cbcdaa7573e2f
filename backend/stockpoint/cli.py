# Overview: Flask CLI command groups for bootstrap, catalog seeding, and inspection.

# backend/stockpoint/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Staff:
# - python -m flask users create --username alice --role cashier --full-name "Alice Doe"
#   Create a user that can be sent as X-Cashier-Id.
# - python -m flask users list
#
# Catalog:
# - python -m flask catalog add-product --sku SKU-1 --name "Coffee" --price 450 --stock 20 --min-stock 5
#   Prices are in cents.
# - python -m flask catalog low-stock
#   Active products at or below their reorder threshold.
#
# Customers:
# - python -m flask customers add --name "Jane Roe" --email jane@example.com

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Customer, Product, User, ROLES
from .services.inventory_service import InventoryLedger


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date")


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

    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """Staff inspection and bootstrap."""


@users_group.command('create')
@click.option('--username', required=True)
@click.option('--role', type=click.Choice(ROLES), default='cashier', show_default=True)
@click.option('--full-name', default=None)
@with_appcontext
def create_user(username, role, full_name):
    """Create a staff user."""
    user = User(username=username.strip(), role=role, full_name=full_name, is_active=True)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"User '{username}' already exists")
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}, role: {user.role})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with role and active status."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found")
        return
    for user in users:
        state = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>5}  {user.username:<24} {user.role:<8} {state}")


@click.group('catalog')
def catalog_group():
    """Catalog seeding and stock inspection."""


@catalog_group.command('add-product')
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price', type=click.IntRange(min=0), required=True, help='Price in cents')
@click.option('--stock', type=click.IntRange(min=0), default=0, show_default=True)
@click.option('--min-stock', type=click.IntRange(min=0), default=5, show_default=True)
@with_appcontext
def add_product(sku, name, price, stock, min_stock):
    """Add a product with its opening stock."""
    product = Product(
        sku=sku.strip(),
        name=name.strip(),
        price=price,
        stock_quantity=stock,
        min_stock=min_stock,
        is_active=True,
    )
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"SKU '{sku}' already exists")
    click.echo(f"PASS Created product: {product.sku} (ID: {product.id}, stock: {product.stock_quantity})")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products at or below min_stock."""
    products = InventoryLedger(db.session).low_stock()
    if not products:
        click.echo("PASS No products below reorder threshold")
        return
    for product in products:
        click.echo(
            f"WARN  {product.sku:<16} {product.name:<32} "
            f"stock={product.stock_quantity} min={product.min_stock}"
        )


@click.group('customers')
def customers_group():
    """Customer bootstrap."""


@customers_group.command('add')
@click.option('--name', required=True)
@click.option('--email', default=None)
@click.option('--phone', default=None)
@with_appcontext
def add_customer(name, email, phone):
    """Create a loyalty customer."""
    customer = Customer(name=name.strip(), email=email, phone=phone, loyalty_points=0, is_active=True)
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Customer with email '{email}' already exists")
    click.echo(f"PASS Created customer: {customer.name} (ID: {customer.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(customers_group)
