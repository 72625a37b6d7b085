# Overview: Threaded tests for concurrent ledger mutations on a file-backed SQLite database.

"""
Concurrency tests for the stock ledger.

Each test runs real threads against a temporary SQLite file so that every
worker has its own connection; optimistic locking plus retry must keep the
counters and the ledger consistent.
"""
import os
import tempfile
import threading
import unittest

from stockmatrix import create_app
from stockmatrix.errors import InsufficientStock
from stockmatrix.extensions import db
from stockmatrix.models import InventoryTransaction, Product, ProductVariant, Tenant
from stockmatrix.services import stock_ledger_service


class LedgerConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "LEDGER_RETRY_ATTEMPTS": 25,
            "LEDGER_RETRY_BACKOFF": 0.005,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            tenant = Tenant(name="Concurrency Tenant", code="CONC", is_active=True)
            db.session.add(tenant)
            db.session.commit()
            self.tenant_id = tenant.id

            product = Product(tenant_id=self.tenant_id, sku="CONC", name="Concurrent Product", price_cents=500)
            db.session.add(product)
            db.session.commit()

            self.variant_ids = []
            for sku in ("CONC-A", "CONC-B"):
                variant = ProductVariant(
                    tenant_id=self.tenant_id,
                    product_id=product.id,
                    sku=sku,
                    name=sku,
                    attributes=[],
                    price_cents=500,
                    stock=10,
                    reserved_stock=0,
                )
                db.session.add(variant)
                db.session.commit()
                self.variant_ids.append(variant.id)

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run(self, targets):
        threads = [threading.Thread(target=t) for t in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_concurrent_reservations_never_oversell(self):
        """Six workers reserve 3 each from stock 10: exactly three can win."""
        variant_id = self.variant_ids[0]
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    stock_ledger_service.reserve_stock(
                        tenant_id=self.tenant_id, variant_id=variant_id, quantity=3
                    )
                    with lock:
                        results.append("reserved")
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        self._run([worker] * 6)

        successes = sum(1 for r in results if r == "reserved")
        errors = [r for r in results if r != "reserved"]

        with self.app.app_context():
            variant = db.session.get(ProductVariant, variant_id)
            rows = db.session.query(InventoryTransaction).filter_by(variant_id=variant_id).count()

            self.assertTrue(all(isinstance(e, InsufficientStock) for e in errors), errors)
            self.assertEqual(successes, 3)
            self.assertEqual(variant.reserved_stock, 3 * successes)
            self.assertLessEqual(variant.reserved_stock, variant.stock)
            self.assertEqual(rows, successes)

    def test_concurrent_adjustments_are_not_lost(self):
        variant_id = self.variant_ids[0]
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    stock_ledger_service.adjust_stock(
                        tenant_id=self.tenant_id, variant_id=variant_id, delta=2, reason="purchase"
                    )
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run([worker] * 5)

        self.assertFalse(errors)
        with self.app.app_context():
            variant = db.session.get(ProductVariant, variant_id)
            total = sum(
                tx.quantity_change
                for tx in db.session.query(InventoryTransaction).filter_by(variant_id=variant_id)
            )
            self.assertEqual(variant.stock, 20)
            self.assertEqual(total, 10)

    def test_different_variants_progress_independently(self):
        errors = []
        lock = threading.Lock()

        def reserve(variant_id):
            def worker():
                with self.app.app_context():
                    try:
                        stock_ledger_service.reserve_stock(
                            tenant_id=self.tenant_id, variant_id=variant_id, quantity=4
                        )
                    except Exception as exc:
                        with lock:
                            errors.append(exc)
                    finally:
                        db.session.remove()
            return worker

        self._run([reserve(self.variant_ids[0]), reserve(self.variant_ids[1])])

        self.assertFalse(errors)
        with self.app.app_context():
            for variant_id in self.variant_ids:
                self.assertEqual(db.session.get(ProductVariant, variant_id).reserved_stock, 4)


if __name__ == "__main__":
    unittest.main()
