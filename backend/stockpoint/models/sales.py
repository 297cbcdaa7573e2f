from __future__ import annotations

from ..extensions import db
from stockpoint.time_utils import to_utc_z

SALE_STATUSES = ("pending", "completed", "cancelled", "refunded")


class Sale(db.Model):
    """
    Sale header. Written once, atomically, together with its lines and the
    stock reservations they hold.

    AMOUNTS (cents):
    - total_amount = sum(line.total_price)
    - final_amount = total_amount - discount_amount + tax_amount

    STOCK: stock_restored flips to True the first time the sale's stock is
    given back (void or delete); it is never given back twice.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "final_amount = total_amount - discount_amount + tax_amount",
            name="final_amount_identity",
        ),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_amount = db.Column(db.Integer, nullable=False)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    tax_amount = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="cash", index=True)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    notes = db.Column(db.Text, nullable=True)

    # Client-supplied key for duplicate checkout submissions
    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    stock_restored = db.Column(db.Boolean, nullable=False, default=False)

    # Void audit trail
    voided_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
        lazy=True,
    )
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier.username if self.cashier else None,
            "total_amount": self.total_amount,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "final_amount": self.final_amount,
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "stock_restored": self.stock_restored,
            "voided_by_id": self.voided_by_id,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.lines]
        else:
            data["items_count"] = len(self.lines)
        return data


class SaleLine(db.Model):
    """
    Line item with an immutable price snapshot.

    unit_price is captured at commit time and never re-derived from the
    catalog. list_price records the catalog price at that moment so
    overridden lines stay auditable.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    total_price = db.Column(db.Integer, nullable=False)

    list_price = db.Column(db.Integer, nullable=False)
    price_overridden = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "list_price": self.list_price,
            "price_overridden": self.price_overridden,
            "created_at": to_utc_z(self.created_at),
        }
