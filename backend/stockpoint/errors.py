# Overview: Error taxonomy shared by the sale services and routes.

from __future__ import annotations


class SaleError(Exception):
    """
    Base class for every way a sale operation can be refused.

    Each subclass carries the HTTP status it maps to. Raising any of them
    from inside a write transaction means the transaction is rolled back and
    the store is left exactly as it was before the call.
    """
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "details": self.details}
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(SaleError):
    """Malformed input or a rule violation. Nothing was persisted."""
    status_code = 400


class NotFoundError(SaleError):
    """Unknown or inactive product, customer, or sale."""
    status_code = 404


class InsufficientStockError(SaleError):
    """A reservation lost the race for stock. Always names the product."""
    status_code = 409

    def __init__(self, product_id: int, product_name: str | None, requested: int, available: int | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id


class PersistenceError(SaleError):
    """Storage or lock-wait failure. Safe to retry the whole request."""
    status_code = 500
    retryable = True
