from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from .errors import ValidationError
from .models import SALE_STATUSES


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999
MAX_LINE_QUANTITY = 100_000

INITIAL_STATUSES = ("pending", "completed")

SALE_FIELDS = {
    "customer_id",
    "items",
    "discount_amount",
    "tax_amount",
    "payment_method",
    "status",
    "notes",
}
ITEM_FIELDS = {"product_id", "quantity", "unit_price"}


@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int
    unit_price: int | None = None


@dataclass(frozen=True)
class SaleRequest:
    """A checkout request that has passed every input check."""
    items: tuple[SaleItemRequest, ...]
    payment_method: str
    customer_id: int | None = None
    discount_amount: int = 0
    # None means "apply the server tax policy"
    tax_amount: int | None = None
    status: str = "completed"
    notes: str | None = None
    idempotency_key: str | None = None


def coerce_int(name: str, value: Any) -> int:
    """
    Strict integer coercion for JSON input.

    Rejects floats, booleans, scientific notation and decimal strings so
    that amounts never pick up fractional cents.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def _positive_int(name: str, value: Any, *, maximum: int) -> int:
    number = coerce_int(name, value)
    if number <= 0:
        raise ValidationError(f"{name} must be greater than 0")
    if number > maximum:
        raise ValidationError(f"{name} must be at most {maximum}")
    return number


def _amount(name: str, value: Any) -> int:
    number = coerce_int(name, value)
    if number < 0:
        raise ValidationError(f"{name} cannot be negative")
    if number > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{name} must be at most {MAX_AMOUNT_CENTS}")
    return number


def _validate_item(index: int, raw: Any) -> SaleItemRequest:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")
    unknown = set(raw) - ITEM_FIELDS
    if unknown:
        raise ValidationError(f"items[{index}]: field not allowed: {sorted(unknown)[0]}")
    if "product_id" not in raw or raw["product_id"] is None:
        raise ValidationError(f"items[{index}].product_id is required")
    if "quantity" not in raw or raw["quantity"] is None:
        raise ValidationError(f"items[{index}].quantity is required")

    product_id = _positive_int(f"items[{index}].product_id", raw["product_id"], maximum=2**31 - 1)
    quantity = _positive_int(f"items[{index}].quantity", raw["quantity"], maximum=MAX_LINE_QUANTITY)

    unit_price = raw.get("unit_price")
    if unit_price is not None:
        unit_price = _amount(f"items[{index}].unit_price", unit_price)

    return SaleItemRequest(product_id=product_id, quantity=quantity, unit_price=unit_price)


def validate_sale_request(
    payload: Any,
    *,
    payment_methods: Iterable[str],
    default_payment_method: str = "cash",
    idempotency_key: str | None = None,
) -> SaleRequest:
    """
    Validate and normalize a checkout payload. Pure: touches no store.

    Raises ValidationError when:
    - the payload is not an object or carries unknown fields
    - items is missing, not a list, or empty
    - any quantity is not a positive integer
    - an amount is negative or not an integer
    - payment_method is not one of the configured methods
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = set(payload) - SALE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("Sale items are required")
    parsed_items = tuple(_validate_item(i, raw) for i, raw in enumerate(items))

    customer_id = payload.get("customer_id")
    if customer_id is not None:
        customer_id = _positive_int("customer_id", customer_id, maximum=2**31 - 1)

    discount_amount = payload.get("discount_amount")
    discount_amount = 0 if discount_amount is None else _amount("discount_amount", discount_amount)

    tax_amount = payload.get("tax_amount")
    if tax_amount is not None:
        tax_amount = _amount("tax_amount", tax_amount)

    allowed_methods = tuple(payment_methods)
    payment_method = payload.get("payment_method") or default_payment_method
    if payment_method not in allowed_methods:
        raise ValidationError(
            "Invalid payment_method",
            details={"allowed": list(allowed_methods)},
        )

    status = payload.get("status") or "completed"
    if status not in INITIAL_STATUSES:
        raise ValidationError(
            f"A new sale must be {' or '.join(INITIAL_STATUSES)}",
            details={"status": status},
        )

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes).strip() or None

    if idempotency_key is not None:
        idempotency_key = idempotency_key.strip() or None
        if idempotency_key and len(idempotency_key) > 128:
            raise ValidationError("Idempotency-Key must be at most 128 characters")

    return SaleRequest(
        items=parsed_items,
        payment_method=payment_method,
        customer_id=customer_id,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
        status=status,
        notes=notes,
        idempotency_key=idempotency_key,
    )


def validate_status(value: Any) -> str:
    if not isinstance(value, str) or value not in SALE_STATUSES:
        raise ValidationError(
            "Invalid status",
            details={"allowed": list(SALE_STATUSES)},
        )
    return value
