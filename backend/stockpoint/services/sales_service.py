"""
Sales Service - sale commit protocol and sale mutations

A sale is committed as one indivisible unit of work:

    Validating -> Reserving -> Persisting -> Committed
         |            |            |
         +------------+------------+--> Aborted

Reservation (conditional stock decrement per line), the sale header and
every line row are written inside a single write transaction. Any failure
before commit rolls the whole transaction back, which also gives back every
reservation already granted for the attempt. Loyalty accrual runs only after
the commit is durable and can never unwind it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, PersistenceError, SaleError, ValidationError
from ..models import Sale, SaleLine, User
from ..validation import SaleRequest, validate_sale_request
from stockpoint.time_utils import utcnow
from .concurrency import lock_for_update, run_in_write_transaction
from .customer_service import CustomerStore, loyalty_points_for
from .inventory_service import InventoryLedger


VALIDATING = "validating"
RESERVING = "reserving"
PERSISTING = "persisting"
COMMITTED = "committed"
ABORTED = "aborted"

ALLOWED_TRANSITIONS = {
    "pending": {"completed", "cancelled"},
    "completed": {"refunded"},
}

# Void outcome keyed by current status
VOID_STATUS = {
    "pending": "cancelled",
    "completed": "refunded",
}


@dataclass
class CommitResult:
    sale: Sale
    replayed: bool = False
    loyalty_points: int = 0
    states: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _PricedLine:
    product_id: int
    quantity: int
    unit_price: int
    list_price: int
    price_overridden: bool

    @property
    def total_price(self) -> int:
        return self.unit_price * self.quantity


def compute_tax(taxable_amount: int, tax_rate_bps: int) -> int:
    """Server-side tax in cents, nearest-cent rounding (half-up)."""
    if taxable_amount <= 0 or tax_rate_bps <= 0:
        return 0
    return (taxable_amount * tax_rate_bps + 5_000) // 10_000


class SaleCommitEngine:
    """
    Orchestrates one checkout against an explicitly provided session.

    The session is the store handle: the engine never reaches for global
    state, so a test or a worker can hand it any session it owns.
    """

    def __init__(
        self,
        session,
        *,
        payment_methods=("cash", "card", "digital"),
        default_payment_method: str = "cash",
        tax_rate_bps: int = 0,
        loyalty_points_per_unit: int = 1,
        price_override_roles=("admin", "manager"),
        lock_timeout: float | None = None,
        retry_attempts: int = 3,
    ):
        self.session = session
        self.ledger = InventoryLedger(session)
        self.customers = CustomerStore(session)
        self.payment_methods = tuple(payment_methods)
        self.default_payment_method = default_payment_method
        self.tax_rate_bps = tax_rate_bps
        self.loyalty_points_per_unit = loyalty_points_per_unit
        self.price_override_roles = tuple(price_override_roles)
        self.lock_timeout = lock_timeout
        self.retry_attempts = retry_attempts

    @classmethod
    def from_config(cls, session, config) -> "SaleCommitEngine":
        return cls(
            session,
            payment_methods=config["PAYMENT_METHODS"],
            default_payment_method=config["DEFAULT_PAYMENT_METHOD"],
            tax_rate_bps=config["TAX_RATE_BPS"],
            loyalty_points_per_unit=config["LOYALTY_POINTS_PER_UNIT"],
            price_override_roles=config["PRICE_OVERRIDE_ROLES"],
            lock_timeout=config["LOCK_TIMEOUT_SECONDS"],
            retry_attempts=config["COMMIT_RETRY_ATTEMPTS"],
        )

    def commit(self, payload: dict, cashier: User, *, idempotency_key: str | None = None) -> CommitResult:
        """
        Commit a sale from a raw request payload.

        Raises ValidationError, NotFoundError, InsufficientStockError or
        PersistenceError; in every case nothing was written.
        """
        states = [VALIDATING]
        try:
            request = validate_sale_request(
                payload,
                payment_methods=self.payment_methods,
                default_payment_method=self.default_payment_method,
                idempotency_key=idempotency_key,
            )

            if request.idempotency_key:
                existing = self._find_by_key(request.idempotency_key)
                if existing is not None:
                    return CommitResult(sale=existing, replayed=True, states=states + [COMMITTED])

            try:
                sale, replayed = run_in_write_transaction(
                    self.session,
                    lambda: self._reserve_and_persist(request, cashier, states),
                    lock_timeout=self.lock_timeout,
                    attempts=self.retry_attempts,
                    action="commit sale",
                )
            except PersistenceError as exc:
                replay = self._replay_after_key_conflict(request, exc)
                if replay is None:
                    raise
                return CommitResult(sale=replay, replayed=True, states=states + [COMMITTED])
            if replayed:
                return CommitResult(sale=sale, replayed=True, states=states + [COMMITTED])
        except SaleError as exc:
            states.append(ABORTED)
            current_app.logger.info("Sale commit aborted (%s): %s", type(exc).__name__, exc)
            raise

        states.append(COMMITTED)
        current_app.logger.info(
            "Committed sale %s: %d line(s), final_amount=%d, cashier=%s",
            sale.id, len(request.items), sale.final_amount, cashier.id,
        )

        points = 0
        if sale.customer_id is not None:
            points = self.customers.accrue_loyalty_best_effort(
                sale.customer_id,
                loyalty_points_for(sale.final_amount, self.loyalty_points_per_unit),
                sale_id=sale.id,
            )
        return CommitResult(sale=sale, loyalty_points=points, states=states)

    def _reserve_and_persist(self, request: SaleRequest, cashier: User, states: list[str]) -> tuple[Sale, bool]:
        """Returns (sale, replayed). Runs with the write lock held."""
        # Retries re-enter here from a rolled-back session
        del states[1:]

        # A duplicate submission may have committed while we waited for the lock
        if request.idempotency_key:
            existing = self._find_by_key(request.idempotency_key)
            if existing is not None:
                return existing, True

        states.append(RESERVING)

        if request.customer_id is not None:
            self.customers.get_customer(request.customer_id)

        priced: list[_PricedLine] = []
        for item in request.items:
            product = self.ledger.get_product(item.product_id)
            unit_price, overridden = self._resolve_unit_price(product, item.unit_price, cashier)
            self.ledger.reserve(product, item.quantity)
            priced.append(_PricedLine(
                product_id=product.id,
                quantity=item.quantity,
                unit_price=unit_price,
                list_price=product.price,
                price_overridden=overridden,
            ))

        states.append(PERSISTING)
        sale = self._build_sale(request, cashier, priced)
        self.session.add(sale)
        self.session.flush()
        return sale, False

    def _resolve_unit_price(self, product, requested_price: int | None, cashier: User) -> tuple[int, bool]:
        """
        The catalog price is authoritative. A differing client price is an
        override and is only honoured for roles allowed to override.
        """
        if requested_price is None or requested_price == product.price:
            return product.price, False
        if cashier.role not in self.price_override_roles:
            raise ValidationError(
                "Price override not permitted",
                details={
                    "product_id": product.id,
                    "catalog_price": product.price,
                    "requested_price": requested_price,
                },
            )
        current_app.logger.warning(
            "Price override by user %s on product %s: %d -> %d",
            cashier.id, product.id, product.price, requested_price,
        )
        return requested_price, True

    def _build_sale(self, request: SaleRequest, cashier: User, priced: list[_PricedLine]) -> Sale:
        total_amount = sum(line.total_price for line in priced)
        if request.discount_amount > total_amount:
            raise ValidationError(
                "discount_amount cannot exceed the sale total",
                details={"total_amount": total_amount, "discount_amount": request.discount_amount},
            )

        tax_amount = request.tax_amount
        if tax_amount is None:
            tax_amount = compute_tax(total_amount - request.discount_amount, self.tax_rate_bps)

        sale = Sale(
            customer_id=request.customer_id,
            cashier_id=cashier.id,
            total_amount=total_amount,
            discount_amount=request.discount_amount,
            tax_amount=tax_amount,
            final_amount=total_amount - request.discount_amount + tax_amount,
            payment_method=request.payment_method,
            status=request.status,
            notes=request.notes,
            idempotency_key=request.idempotency_key,
            stock_restored=False,
        )
        sale.lines = [
            SaleLine(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_price=line.total_price,
                list_price=line.list_price,
                price_overridden=line.price_overridden,
            )
            for line in priced
        ]
        return sale

    def _find_by_key(self, key: str) -> Sale | None:
        return self.session.query(Sale).filter_by(idempotency_key=key).first()

    def _replay_after_key_conflict(self, request: SaleRequest, exc: PersistenceError) -> Sale | None:
        # A concurrent submission with the same key won the unique constraint
        if not request.idempotency_key or not isinstance(exc.__cause__, IntegrityError):
            return None
        return self._find_by_key(request.idempotency_key)


# ---------------------------------------------------------------------------
# Sale mutation
# ---------------------------------------------------------------------------

def _locked_sale(session, sale_id: int) -> Sale:
    sale = lock_for_update(session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def _restore_sale_stock(session, sale: Sale) -> None:
    if sale.stock_restored:
        return
    ledger = InventoryLedger(session)
    for line in sale.lines:
        ledger.restore_stock(line.product_id, line.quantity)
    sale.stock_restored = True


def get_sale(session, sale_id: int) -> Sale:
    sale = session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    session,
    *,
    start=None,
    end=None,
    customer_id: int | None = None,
    status: str | None = None,
    payment_method: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Sale]:
    q = session.query(Sale)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if status:
        q = q.filter(Sale.status == status)
    if payment_method:
        q = q.filter(Sale.payment_method == payment_method)
    return (
        q.order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def transition_status(session, sale_id: int, new_status: str, **tx_options) -> Sale:
    """
    Move a sale along the status table. Stock is never touched here.

    pending   -> completed | cancelled
    completed -> refunded
    """
    def _op():
        sale = _locked_sale(session, sale_id)
        allowed = ALLOWED_TRANSITIONS.get(sale.status, set())
        if new_status not in allowed:
            raise ValidationError(
                f"Cannot change sale status from {sale.status} to {new_status}",
                details={"from": sale.status, "to": new_status, "allowed": sorted(allowed)},
            )
        sale.status = new_status
        return sale

    return run_in_write_transaction(session, _op, action="update sale status", **tx_options)


def void_sale(session, sale_id: int, user: User, reason: str | None = None, **tx_options) -> Sale:
    """
    Void a pending or completed sale: give its stock back and keep the
    record as cancelled (from pending) or refunded (from completed).
    """
    def _op():
        sale = _locked_sale(session, sale_id)
        if sale.status not in VOID_STATUS:
            raise ValidationError(
                f"Cannot void a {sale.status} sale",
                details={"status": sale.status},
            )
        _restore_sale_stock(session, sale)
        sale.status = VOID_STATUS[sale.status]
        sale.voided_by_id = user.id
        sale.voided_at = utcnow()
        sale.void_reason = reason
        return sale

    sale = run_in_write_transaction(session, _op, action="void sale", **tx_options)
    current_app.logger.info("Voided sale %s by user %s", sale.id, user.id)
    return sale


def delete_sale(session, sale_id: int, **tx_options) -> None:
    """
    Permanently remove a sale and its lines. Stock is restored first unless
    a void already gave it back.
    """
    def _op():
        sale = _locked_sale(session, sale_id)
        _restore_sale_stock(session, sale)
        session.delete(sale)

    run_in_write_transaction(session, _op, action="delete sale", **tx_options)
    current_app.logger.info("Deleted sale %s", sale_id)
