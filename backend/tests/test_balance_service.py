"""
Owner finance tests.

The balance snapshot is a cache over FinanceTransaction rows: every write
refreshes it and recomputing it any number of times gives the same numbers.
"""

from datetime import date

import pytest

from petshop.errors import NotFoundError, ValidationError
from petshop.models import BalanceSnapshot, Category
from petshop.services import auth_service, balance_service, finance_service
from petshop.time_utils import shift_months, today


@pytest.fixture
def income_category(db_session, admin_user):
    category = Category(user_id=admin_user.id, name="Grooming", kind="INCOME")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def expense_category(db_session, admin_user):
    category = Category(user_id=admin_user.id, name="Rent", kind="EXPENSE")
    db_session.add(category)
    db_session.commit()
    return category


def _record(user_id, category, amount_cents, occurred_on=None, **extra):
    return finance_service.create_transaction(user_id, patch={
        "category_id": category.id,
        "kind": category.kind,
        "description": f"{category.name} {amount_cents}",
        "amount_cents": amount_cents,
        "occurred_on": occurred_on or today(),
        **extra,
    })


def _snapshot(db_session, user_id):
    return db_session.query(BalanceSnapshot).filter_by(user_id=user_id).one()


class TestBalance:
    def test_every_write_refreshes_snapshot(self, db_session, admin_user, income_category, expense_category):
        income = _record(admin_user.id, income_category, 10000)
        _record(admin_user.id, expense_category, 3500)

        snap = _snapshot(db_session, admin_user.id)
        assert snap.total_income_cents == 10000
        assert snap.total_expense_cents == 3500
        assert snap.balance_cents == 6500

        finance_service.update_transaction(admin_user.id, income.id, patch={"amount_cents": 12000})
        assert _snapshot(db_session, admin_user.id).balance_cents == 8500

        finance_service.delete_transaction(admin_user.id, income.id)
        assert _snapshot(db_session, admin_user.id).balance_cents == -3500

    def test_recompute_is_idempotent(self, db_session, admin_user, income_category, expense_category):
        _record(admin_user.id, income_category, 4200)
        _record(admin_user.id, expense_category, 1200)

        first = balance_service.recompute_balance(admin_user.id).to_dict()
        second = balance_service.recompute_balance(admin_user.id).to_dict()

        for key in ("balance_cents", "total_income_cents", "total_expense_cents",
                    "month_income_cents", "month_expense_cents"):
            assert first[key] == second[key]
        assert db_session.query(BalanceSnapshot).filter_by(user_id=admin_user.id).count() == 1

    def test_month_totals_only_count_current_month(self, db_session, admin_user, income_category):
        current = today()
        _record(admin_user.id, income_category, 1000, occurred_on=current)
        _record(admin_user.id, income_category, 7000, occurred_on=shift_months(current, -2))

        snap = balance_service.recompute_balance(admin_user.id, today=current)
        assert snap.month_income_cents == 1000
        assert snap.total_income_cents == 8000

    def test_get_balance_creates_snapshot_on_first_access(self, db_session, admin_user):
        snap = balance_service.get_balance(admin_user.id)
        assert snap.balance_cents == 0

    def test_balances_are_per_user(self, db_session, admin_user, clerk_user, income_category):
        _record(admin_user.id, income_category, 1000)
        assert balance_service.get_balance(clerk_user.id).balance_cents == 0


class TestTransactionRules:
    def test_category_kind_must_match(self, db_session, admin_user, income_category):
        with pytest.raises(ValidationError):
            finance_service.create_transaction(admin_user.id, patch={
                "category_id": income_category.id,
                "kind": "EXPENSE",
                "description": "Mismatch",
                "amount_cents": 100,
                "occurred_on": today(),
            })
        assert db_session.query(BalanceSnapshot).count() == 0

    def test_other_users_category_is_not_found(self, db_session, income_category):
        stranger = auth_service.create_user("Stranger", "stranger@petshop.local", "Password123!")
        with pytest.raises(NotFoundError):
            _record(stranger.id, income_category, 100)

    def test_failed_update_keeps_previous_state(self, db_session, admin_user, income_category, expense_category):
        tx = _record(admin_user.id, income_category, 1000)

        with pytest.raises(ValidationError):
            finance_service.update_transaction(admin_user.id, tx.id, patch={"category_id": expense_category.id})

        assert finance_service.get_transaction(admin_user.id, tx.id).category_id == income_category.id
        assert _snapshot(db_session, admin_user.id).balance_cents == 1000

    def test_payment_method_checked(self, db_session, admin_user, income_category):
        with pytest.raises(ValidationError):
            _record(admin_user.id, income_category, 100, payment_method="BITCOIN")

    def test_list_filters(self, db_session, admin_user, income_category, expense_category):
        _record(admin_user.id, income_category, 100, occurred_on=date(2026, 1, 10))
        _record(admin_user.id, expense_category, 200, occurred_on=date(2026, 2, 10))

        result = finance_service.list_transactions(admin_user.id, kind="EXPENSE")
        assert result["count"] == 1

        result = finance_service.list_transactions(
            admin_user.id, from_date=date(2026, 1, 1), to_date=date(2026, 1, 31)
        )
        assert [t["amount_cents"] for t in result["items"]] == [100]


class TestDashboard:
    def test_dashboard_shape(self, db_session, admin_user, income_category, expense_category):
        for amount in (100, 200, 300, 400, 500, 600):
            _record(admin_user.id, income_category, amount)
        _record(admin_user.id, expense_category, 50)

        data = balance_service.dashboard(admin_user.id)

        assert data["balance"]["balance_cents"] == 2100 - 50
        assert len(data["latest_transactions"]) == 5
        assert len(data["evolution"]) == 6
        assert data["evolution"][-1]["month"] == today().strftime("%Y-%m")
        assert data["evolution"][-1]["balance_cents"] == 2050
        by_name = {row["category_name"]: row["total_cents"] for row in data["month_by_category"]}
        assert by_name == {"Grooming": 2100, "Rent": 50}

    def test_period_summary(self, db_session, admin_user, income_category):
        _record(admin_user.id, income_category, 900, payment_method="PIX")

        summary = balance_service.period_summary(admin_user.id, period="year")
        assert summary["income_cents"] == 900
        assert summary["transaction_count"] == 1
        assert summary["by_payment_method"] == {"PIX": 900}

    def test_unknown_period(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            balance_service.period_summary(admin_user.id, period="decade")
