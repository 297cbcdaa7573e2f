"""
Concurrent checkout tests against a file-backed SQLite database.

In-memory SQLite shares one connection across threads, so these tests use a
temporary database file to get real lock contention between writers.
"""
import os
import tempfile
import threading
import unittest

import pytest

from stockpoint import create_app
from stockpoint.errors import InsufficientStockError
from stockpoint.extensions import db
from stockpoint.models import Customer, Product, Sale, User
from stockpoint.services.sales_service import SaleCommitEngine


@pytest.mark.concurrency
class ConcurrentCheckoutTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "LOCK_TIMEOUT_SECONDS": 30,
            "COMMIT_RETRY_ATTEMPTS": 3,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            user = User(username="concurrent_user", full_name="Concurrent User", role="cashier")
            customer = Customer(name="Loyal Larry", email="larry@example.com")
            product = Product(sku="CONCUR-1", name="Concurrent Product", price=1000, stock_quantity=5)
            db.session.add_all([user, customer, product])
            db.session.commit()

            self.user_id = user.id
            self.customer_id = customer.id
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_checkouts(self, count, quantity, customer_id=None):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    cashier = db.session.get(User, self.user_id)
                    engine = SaleCommitEngine.from_config(db.session, self.app.config)
                    payload = {"items": [{"product_id": self.product_id, "quantity": quantity}]}
                    if customer_id is not None:
                        payload["customer_id"] = customer_id
                    result = engine.commit(payload, cashier)
                    with lock:
                        results.append(("ok", result.sale.id))
                except InsufficientStockError as exc:
                    with lock:
                        results.append(("short", exc))
                except Exception as exc:
                    with lock:
                        results.append(("error", exc))
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def test_last_units_are_never_oversold(self):
        results = self._run_checkouts(count=20, quantity=1)

        errors = [r for kind, r in results if kind == "error"]
        self.assertFalse(errors, errors)
        self.assertEqual(sum(1 for kind, _ in results if kind == "ok"), 5)
        self.assertEqual(sum(1 for kind, _ in results if kind == "short"), 15)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.stock_quantity, 0)
            self.assertEqual(db.session.query(Sale).count(), 5)

    def test_multi_unit_orders_never_split_stock(self):
        # 5 on hand, each order wants 2: exactly two can succeed
        results = self._run_checkouts(count=6, quantity=2)

        self.assertFalse([r for kind, r in results if kind == "error"])
        self.assertEqual(sum(1 for kind, _ in results if kind == "ok"), 2)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock_quantity, 1)

    def test_loyalty_accrual_is_not_lost_under_contention(self):
        results = self._run_checkouts(count=5, quantity=1, customer_id=self.customer_id)

        self.assertEqual(sum(1 for kind, _ in results if kind == "ok"), 5)
        with self.app.app_context():
            customer = db.session.get(Customer, self.customer_id)
            # 10.00 per sale at one point per unit
            self.assertEqual(customer.loyalty_points, 50)


if __name__ == "__main__":
    unittest.main()
