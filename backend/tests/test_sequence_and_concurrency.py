"""
Document numbering, unit-of-work retry and multi-threaded stock tests.

The threaded tests run against a file-backed SQLite database so every
worker holds its own connection and competes for the real write lock.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from conftest import TEST_PASSWORD
from petshop.errors import InsufficientStockError, ValidationError
from petshop.extensions import db
from petshop.models import Category, DocumentSequence, Product, Sale
from petshop.services import (
    auth_service,
    concurrency,
    products_service,
    sales_service,
    sequence_service,
    stock_service,
)


def _seed_shop(stock):
    """Owner, one PRODUCT category and one product with opening stock. Returns ids."""
    owner = auth_service.create_user("Owner", "owner@petshop.local", TEST_PASSWORD, role="ADMIN")
    category = Category(user_id=owner.id, name="Dog food", kind="PRODUCT")
    db.session.add(category)
    db.session.commit()
    product = products_service.create_product(
        patch={
            "name": "Premium kibble 1kg",
            "category_id": category.id,
            "unit": "UN",
            "price_cents": 2500,
            "cost_cents": 1500,
        },
        initial_stock=stock,
        user_id=owner.id,
    )
    sequence_service.ensure_sequence(sequence_service.SALE_SEQUENCE)
    return owner.id, product.id


class TestSequences:
    def test_numbers_increase_by_one(self, db_session):
        sequence_service.ensure_sequence("TEST")
        numbers = [sequence_service.next_number("TEST") for _ in range(3)]
        db_session.commit()

        assert numbers == [1, 2, 3]
        row = db_session.query(DocumentSequence).filter_by(document_type="TEST").one()
        assert row.next_number == 4

    def test_ensure_is_idempotent(self, db_session):
        sequence_service.ensure_sequence("TEST")
        sequence_service.ensure_sequence("TEST")
        assert db_session.query(DocumentSequence).filter_by(document_type="TEST").count() == 1

    def test_missing_row_is_created_on_first_allocation(self, db_session):
        assert sequence_service.next_number("FRESH") == 1
        db_session.commit()
        assert sequence_service.next_number("FRESH") == 2

    def test_rolled_back_allocation_is_not_consumed(self, db_session):
        sequence_service.ensure_sequence("TEST")
        sequence_service.next_number("TEST")
        db_session.rollback()

        assert sequence_service.next_number("TEST") == 1

    def test_sequences_are_independent(self, db_session):
        assert sequence_service.next_number(sequence_service.SALE_SEQUENCE) == 1
        assert sequence_service.next_number(sequence_service.PURCHASE_SEQUENCE) == 1
        assert sequence_service.next_number(sequence_service.SALE_SEQUENCE) == 2
        db_session.commit()

    def test_sale_number_format(self):
        assert sequence_service.format_sale_number(1) == "000001"
        assert sequence_service.format_sale_number(42) == "000042"


class TestRunWithRetry:
    @pytest.fixture(autouse=True)
    def no_sleep(self, monkeypatch):
        monkeypatch.setattr(concurrency.time, "sleep", lambda seconds: None)

    def test_retries_lost_version_check(self, db_session):
        calls = []

        def op():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert concurrency.run_with_retry(op) == "done"
        assert len(calls) == 3

    def test_gives_up_after_attempts(self, db_session):
        calls = []

        def op():
            calls.append(1)
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))

        with pytest.raises(OperationalError):
            concurrency.run_with_retry(op, attempts=2)
        assert len(calls) == 2

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def op():
            calls.append(1)
            raise ValidationError("bad input")

        with pytest.raises(ValidationError):
            concurrency.run_with_retry(op)
        assert len(calls) == 1


class TestConcurrentSales:
    def test_parallel_sales_never_oversell(self, file_app):
        user_id, product_id = _seed_shop(stock=5)

        sold = []
        refused = []
        errors = []
        lock = threading.Lock()
        start = threading.Barrier(12)

        def worker():
            with file_app.app_context():
                try:
                    start.wait()
                    sale = sales_service.create_sale(
                        lines=[{"product_id": product_id, "quantity": 1}],
                        payment_type="CASH",
                        user_id=user_id,
                    )
                    with lock:
                        sold.append(sale.sale_number)
                except InsufficientStockError:
                    with lock:
                        refused.append(1)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(sold) == 5
        assert len(refused) == 7
        assert sorted(sold) == ["000001", "000002", "000003", "000004", "000005"]

        db.session.expire_all()
        assert db.session.get(Product, product_id).stock_quantity == Decimal("0")
        assert stock_service.ledger_quantity(product_id) == Decimal("0")
        assert db.session.query(Sale).count() == 5


class TestReconcileUnderLoad:
    def test_fix_does_not_undo_a_sale_committed_mid_scan(self, file_app):
        user_id, product_id = _seed_shop(stock=10)

        errors = []
        seller = {}

        def sell_four():
            with file_app.app_context():
                try:
                    sales_service.create_sale(
                        lines=[{"product_id": product_id, "quantity": 4}],
                        payment_type="CASH",
                        user_id=user_id,
                    )
                except Exception as exc:
                    errors.append(exc)
                finally:
                    db.session.remove()

        def sell_before_ledger_sum(conn, cursor, statement, parameters, context, executemany):
            # Fires once, on the ledger SUM; the sale gets a head start before the sum runs
            if "thread" in seller:
                return
            if "sum(" in statement.lower() and "stock_movements" in statement:
                seller["thread"] = threading.Thread(target=sell_four)
                seller["thread"].start()
                seller["thread"].join(timeout=1.0)

        engine = db.engine
        event.listen(engine, "before_cursor_execute", sell_before_ledger_sum)
        try:
            stock_service.reconcile_stock(fix=True)
        finally:
            event.remove(engine, "before_cursor_execute", sell_before_ledger_sum)

        seller["thread"].join(timeout=30)
        assert not seller["thread"].is_alive()
        assert errors == []

        db.session.expire_all()
        assert db.session.get(Product, product_id).stock_quantity == Decimal("6")
        assert stock_service.ledger_quantity(product_id) == Decimal("6")
        assert stock_service.reconcile_stock() == []
