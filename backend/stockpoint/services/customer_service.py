# Overview: Customer store collaborator; lookups and best-effort loyalty accrual.

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..models import Customer


def loyalty_points_for(final_amount: int, points_per_unit: int = 1) -> int:
    """
    Points earned for a sale: floor(final_amount / 100 * points_per_unit).

    final_amount is in cents, so the default earns one point per whole
    currency unit spent. Never negative.
    """
    if final_amount <= 0 or points_per_unit <= 0:
        return 0
    return (final_amount * points_per_unit) // 100


class CustomerStore:
    def __init__(self, session):
        self.session = session

    def get_customer(self, customer_id: int) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if customer is None or not customer.is_active:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        return customer

    def accrue_loyalty(self, customer_id: int, points: int) -> None:
        """Atomically add points and commit. Raises on storage failure."""
        if points <= 0:
            return
        self.session.query(Customer).filter(Customer.id == customer_id).update(
            {Customer.loyalty_points: Customer.loyalty_points + points},
            synchronize_session=False,
        )
        self.session.commit()

    def accrue_loyalty_best_effort(self, customer_id: int, points: int, *, sale_id: int | None = None) -> int:
        """
        Fire-and-forget accrual after a sale has committed.

        Failures are logged and swallowed: the sale stays committed and the
        caller never sees the error. Returns the points actually credited.
        """
        try:
            self.accrue_loyalty(customer_id, points)
        except Exception:
            self.session.rollback()
            current_app.logger.exception(
                "Failed to accrue %d loyalty points for customer %s (sale %s)",
                points, customer_id, sale_id,
            )
            return 0
        return points if points > 0 else 0
