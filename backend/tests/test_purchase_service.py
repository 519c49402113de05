"""
Purchase lifecycle tests.

PENDING -> CONFIRMED moves goods into stock exactly once;
PENDING -> CANCELLED never touches stock.
"""

from decimal import Decimal

import pytest

from petshop.errors import AlreadyCancelledError, InvalidStateError, NotFoundError, ValidationError
from petshop.models import Product, Purchase, StockMovement
from petshop.services import purchase_service, stock_service


@pytest.fixture
def pending_purchase(db_session, supplier, product, admin_user):
    return purchase_service.create_purchase(
        supplier_id=supplier.id,
        lines=[{"product_id": product.id, "quantity": 5, "unit_cost_cents": 1800}],
        invoice_number="NF-1001",
        user_id=admin_user.id,
    )


def _purchase_movements(db_session, purchase_id):
    return db_session.query(StockMovement).filter_by(purchase_id=purchase_id).all()


class TestCreatePurchase:
    def test_created_pending_without_stock_effect(self, db_session, pending_purchase, product):
        assert pending_purchase.status == "PENDING"
        assert pending_purchase.purchase_number == 1
        assert pending_purchase.total_cents == 5 * 1800
        assert db_session.get(Product, product.id).stock_quantity == Decimal("10")
        assert _purchase_movements(db_session, pending_purchase.id) == []

    def test_numbers_are_sequential(self, db_session, supplier, product, pending_purchase):
        second = purchase_service.create_purchase(
            supplier_id=supplier.id,
            lines=[{"product_id": product.id, "quantity": 1, "unit_cost_cents": 100}],
        )
        assert second.purchase_number == pending_purchase.purchase_number + 1

    def test_line_subtotals_round_half_up(self, db_session, supplier, make_product):
        feed = make_product("Bulk feed", unit="KG")
        purchase = purchase_service.create_purchase(
            supplier_id=supplier.id,
            lines=[{"product_id": feed.id, "quantity": "1.5", "unit_cost_cents": 333}],
        )
        assert purchase.lines[0].subtotal_cents == 500
        assert purchase.total_cents == 500

    def test_empty_lines_rejected(self, db_session, supplier):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(supplier_id=supplier.id, lines=[])

    def test_unknown_product_rejected(self, db_session, supplier):
        with pytest.raises(NotFoundError):
            purchase_service.create_purchase(
                supplier_id=supplier.id,
                lines=[{"product_id": 999999, "quantity": 1, "unit_cost_cents": 100}],
            )
        assert db_session.query(Purchase).count() == 0

    def test_inactive_supplier_rejected(self, db_session, supplier, product):
        supplier.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            purchase_service.create_purchase(
                supplier_id=supplier.id,
                lines=[{"product_id": product.id, "quantity": 1, "unit_cost_cents": 100}],
            )


class TestConfirmPurchase:
    def test_confirm_moves_goods_into_stock(self, db_session, pending_purchase, product, admin_user):
        confirmed = purchase_service.confirm_purchase(pending_purchase.id, user_id=admin_user.id)

        assert confirmed.status == "CONFIRMED"
        assert confirmed.confirmed_at is not None

        current = db_session.get(Product, product.id)
        assert current.stock_quantity == Decimal("15")
        assert current.cost_cents == 1800

        movements = _purchase_movements(db_session, pending_purchase.id)
        assert len(movements) == 1
        assert movements[0].direction == "ENTRY"
        assert movements[0].reason == "PURCHASE"
        assert movements[0].quantity == Decimal("5")
        assert movements[0].note == f"Purchase #{pending_purchase.purchase_number}"

    def test_reconfirm_fails_without_side_effects(self, db_session, pending_purchase, product):
        purchase_service.confirm_purchase(pending_purchase.id)

        with pytest.raises(InvalidStateError):
            purchase_service.confirm_purchase(pending_purchase.id)

        assert db_session.get(Product, product.id).stock_quantity == Decimal("15")
        assert len(_purchase_movements(db_session, pending_purchase.id)) == 1

    def test_last_cost_wins(self, db_session, supplier, product):
        for cost in (1700, 1900):
            purchase = purchase_service.create_purchase(
                supplier_id=supplier.id,
                lines=[{"product_id": product.id, "quantity": 1, "unit_cost_cents": cost}],
            )
            purchase_service.confirm_purchase(purchase.id)

        assert db_session.get(Product, product.id).cost_cents == 1900
        assert stock_service.reconcile_stock() == []

    def test_unknown_purchase(self, db_session):
        with pytest.raises(NotFoundError):
            purchase_service.confirm_purchase(999999)


class TestCancelPurchase:
    def test_cancel_pending(self, db_session, pending_purchase, product):
        cancelled = purchase_service.cancel_purchase(pending_purchase.id, reason="supplier out of stock")

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_at is not None
        assert "CANCELLED: supplier out of stock" in cancelled.notes
        assert db_session.get(Product, product.id).stock_quantity == Decimal("10")

    def test_cancel_twice(self, db_session, pending_purchase):
        purchase_service.cancel_purchase(pending_purchase.id)

        with pytest.raises(AlreadyCancelledError):
            purchase_service.cancel_purchase(pending_purchase.id)

    def test_confirmed_cannot_be_cancelled(self, db_session, pending_purchase):
        purchase_service.confirm_purchase(pending_purchase.id)

        with pytest.raises(InvalidStateError) as exc_info:
            purchase_service.cancel_purchase(pending_purchase.id)
        assert not isinstance(exc_info.value, AlreadyCancelledError)

    def test_cancelled_cannot_be_confirmed(self, db_session, pending_purchase, product):
        purchase_service.cancel_purchase(pending_purchase.id)

        with pytest.raises(InvalidStateError):
            purchase_service.confirm_purchase(pending_purchase.id)
        assert db_session.get(Product, product.id).stock_quantity == Decimal("10")


def test_list_purchases_filters(db_session, supplier, product, pending_purchase):
    other = purchase_service.create_purchase(
        supplier_id=supplier.id,
        lines=[{"product_id": product.id, "quantity": 2, "unit_cost_cents": 1000}],
    )
    purchase_service.confirm_purchase(other.id)

    pending = purchase_service.list_purchases(status="PENDING")
    assert [p["id"] for p in pending["items"]] == [pending_purchase.id]
    assert "lines" not in pending["items"][0]

    with pytest.raises(ValidationError):
        purchase_service.list_purchases(status="LOST")
