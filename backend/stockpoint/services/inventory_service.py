# Overview: Inventory ledger; the only code path that changes Product.stock_quantity.

# backend/stockpoint/services/inventory_service.py
"""
Stockpoint Inventory Invariants (authoritative)

Stock model:
- Product.stock_quantity is a live counter, never negative.
- It changes only through InventoryLedger: decrement_stock/reserve on
  checkout, restore_stock on rollback of a void or delete.

Reservation:
- A reservation is ONE conditional statement:
      UPDATE products SET stock_quantity = stock_quantity - :qty
      WHERE id = :id AND is_active AND stock_quantity >= :qty
  The check and the write cannot be separated, so concurrent checkouts
  racing for the last units are serialized by the database. Exactly the
  callers whose UPDATE matched a row get the units.
- Zero matched rows is a shortfall (InsufficientStockError), never a
  silent success.

Transactions:
- The ledger never commits. Callers run it inside run_in_write_transaction
  so reservations and the rows that depend on them commit or roll back
  together.
"""

from __future__ import annotations

from ..errors import InsufficientStockError, NotFoundError
from ..models import Product


class InventoryLedger:
    """Catalog store access bound to one session (one unit of work)."""

    def __init__(self, session):
        self.session = session

    def get_product(self, product_id: int, *, require_active: bool = True) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        if require_active and not product.is_active:
            raise NotFoundError(f"Product {product_id} is inactive", details={"product_id": product_id})
        return product

    def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """Atomically take quantity units. Returns False on shortfall."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        matched = (
            self.session.query(Product)
            .filter(
                Product.id == product_id,
                Product.is_active.is_(True),
                Product.stock_quantity >= quantity,
            )
            .update(
                {Product.stock_quantity: Product.stock_quantity - quantity},
                synchronize_session=False,
            )
        )
        return matched == 1

    def restore_stock(self, product_id: int, quantity: int) -> None:
        """Give quantity units back. Inactive products still get their stock."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")
        matched = (
            self.session.query(Product)
            .filter(Product.id == product_id)
            .update(
                {Product.stock_quantity: Product.stock_quantity + quantity},
                synchronize_session=False,
            )
        )
        if matched != 1:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})

    def available(self, product_id: int) -> int | None:
        return (
            self.session.query(Product.stock_quantity)
            .filter(Product.id == product_id)
            .scalar()
        )

    def reserve(self, product: Product, quantity: int) -> None:
        """Take stock for one line item or raise InsufficientStockError."""
        if not self.decrement_stock(product.id, quantity):
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=self.available(product.id),
            )

    def low_stock(self) -> list[Product]:
        return (
            self.session.query(Product)
            .filter(Product.is_active.is_(True), Product.stock_quantity <= Product.min_stock)
            .order_by(Product.stock_quantity.asc(), Product.name.asc())
            .all()
        )
