# Overview: Owner balance snapshot and finance dashboards, derived from FinanceTransaction rows.

from __future__ import annotations

from datetime import date

from sqlalchemy import case, func

from ..errors import ValidationError
from ..extensions import db
from ..models import BalanceSnapshot, Category, FinanceTransaction
from ..time_utils import shift_months, start_of_month, today as utc_today, utcnow

SUMMARY_PERIODS = ("month", "quarter", "year")
EVOLUTION_MONTHS = 6
LATEST_TRANSACTIONS = 5


def _income_expense_totals(user_id: int, since: date | None = None, until: date | None = None) -> tuple[int, int]:
    income = func.coalesce(func.sum(case(
        (FinanceTransaction.kind == "INCOME", FinanceTransaction.amount_cents), else_=0
    )), 0)
    expense = func.coalesce(func.sum(case(
        (FinanceTransaction.kind == "EXPENSE", FinanceTransaction.amount_cents), else_=0
    )), 0)

    query = db.session.query(income, expense).filter(FinanceTransaction.user_id == user_id)
    if since:
        query = query.filter(FinanceTransaction.occurred_on >= since)
    if until:
        query = query.filter(FinanceTransaction.occurred_on < until)
    total_income, total_expense = query.one()
    return int(total_income or 0), int(total_expense or 0)


def recompute_balance(user_id: int, today: date | None = None) -> BalanceSnapshot:
    """
    Rebuild the user's snapshot from the full transaction history.

    Idempotent. Runs inside the caller's transaction and does not commit, so
    a failure here rolls back the write that triggered it.
    """
    today = today or utc_today()
    month_start = start_of_month(today)

    total_income, total_expense = _income_expense_totals(user_id)
    month_income, month_expense = _income_expense_totals(user_id, since=month_start)

    snapshot = db.session.query(BalanceSnapshot).filter_by(user_id=user_id).first()
    if snapshot is None:
        snapshot = BalanceSnapshot(user_id=user_id)
        db.session.add(snapshot)

    snapshot.total_income_cents = total_income
    snapshot.total_expense_cents = total_expense
    snapshot.balance_cents = total_income - total_expense
    snapshot.month_income_cents = month_income
    snapshot.month_expense_cents = month_expense
    snapshot.updated_at = utcnow()
    db.session.flush()
    return snapshot


def get_balance(user_id: int) -> BalanceSnapshot:
    """Current snapshot; computed (and stored) on first access."""
    snapshot = db.session.query(BalanceSnapshot).filter_by(user_id=user_id).first()
    if snapshot is None:
        snapshot = recompute_balance(user_id)
        db.session.commit()
    return snapshot


def _by_category(user_id: int, since: date, until: date | None = None) -> list[dict]:
    query = (
        db.session.query(
            Category.id,
            Category.name,
            Category.color,
            FinanceTransaction.kind,
            func.count(FinanceTransaction.id),
            func.sum(FinanceTransaction.amount_cents),
        )
        .join(Category, Category.id == FinanceTransaction.category_id)
        .filter(FinanceTransaction.user_id == user_id, FinanceTransaction.occurred_on >= since)
    )
    if until:
        query = query.filter(FinanceTransaction.occurred_on < until)
    rows = (
        query.group_by(Category.id, Category.name, Category.color, FinanceTransaction.kind)
        .order_by(func.sum(FinanceTransaction.amount_cents).desc())
        .all()
    )
    return [
        {
            "category_id": cid,
            "category_name": name,
            "color": color,
            "kind": kind,
            "count": count,
            "total_cents": int(total or 0),
        }
        for cid, name, color, kind, count, total in rows
    ]


def dashboard(user_id: int, today: date | None = None) -> dict:
    """Balance, latest transactions, this month by category and a 6-month evolution."""
    today = today or utc_today()
    month_start = start_of_month(today)

    snapshot = get_balance(user_id)

    latest = (
        db.session.query(FinanceTransaction)
        .filter_by(user_id=user_id)
        .order_by(FinanceTransaction.occurred_on.desc(), FinanceTransaction.id.desc())
        .limit(LATEST_TRANSACTIONS)
        .all()
    )

    evolution = []
    for offset in range(EVOLUTION_MONTHS - 1, -1, -1):
        since = shift_months(month_start, -offset)
        until = shift_months(since, 1)
        income, expense = _income_expense_totals(user_id, since=since, until=until)
        evolution.append({
            "month": since.strftime("%Y-%m"),
            "income_cents": income,
            "expense_cents": expense,
            "balance_cents": income - expense,
        })

    return {
        "balance": snapshot.to_dict(),
        "latest_transactions": [t.to_dict() for t in latest],
        "month_by_category": _by_category(user_id, month_start),
        "evolution": evolution,
    }


def _period_start(period: str, today: date) -> date:
    if period == "month":
        return start_of_month(today)
    if period == "quarter":
        return date(today.year, ((today.month - 1) // 3) * 3 + 1, 1)
    return date(today.year, 1, 1)


def period_summary(user_id: int, period: str = "month", today: date | None = None) -> dict:
    if period not in SUMMARY_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(SUMMARY_PERIODS)}")
    today = today or utc_today()
    since = _period_start(period, today)

    income, expense = _income_expense_totals(user_id, since=since)
    count = (
        db.session.query(func.count(FinanceTransaction.id))
        .filter(FinanceTransaction.user_id == user_id, FinanceTransaction.occurred_on >= since)
        .scalar()
    )
    by_method = {
        method: int(total or 0)
        for method, total in db.session.query(
            FinanceTransaction.payment_method, func.sum(FinanceTransaction.amount_cents)
        )
        .filter(FinanceTransaction.user_id == user_id, FinanceTransaction.occurred_on >= since)
        .group_by(FinanceTransaction.payment_method)
    }

    return {
        "period": period,
        "start": since.isoformat(),
        "end": today.isoformat(),
        "income_cents": income,
        "expense_cents": expense,
        "balance_cents": income - expense,
        "transaction_count": count,
        "by_category": _by_category(user_id, since),
        "by_payment_method": by_method,
    }
