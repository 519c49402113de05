# Overview: Owner income/expense transactions; every write refreshes the balance snapshot in the same transaction.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, FinanceTransaction
from ..models.finance import FINANCE_PAYMENT_METHODS, TRANSACTION_KINDS
from ..pagination import paginate
from ..quantities import to_cents
from .balance_service import recompute_balance
from .concurrency import run_with_retry

TRANSACTION_MUTABLE_FIELDS = {
    "category_id", "kind", "description", "amount_cents", "occurred_on",
    "payment_method", "notes", "tags",
}


def _check_rules(user_id: int, values: dict) -> None:
    """Cross-field rules over the final state of a transaction."""
    kind = values.get("kind")
    if kind not in TRANSACTION_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(TRANSACTION_KINDS)}")

    to_cents(values.get("amount_cents"), "amount_cents", allow_zero=False)

    method = values.get("payment_method") or "CASH"
    if method not in FINANCE_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(FINANCE_PAYMENT_METHODS)}")

    tags = values.get("tags")
    if tags is not None:
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise ValidationError("tags must be a list of strings")

    category = db.session.query(Category).filter_by(id=values.get("category_id"), user_id=user_id).first()
    if not category:
        raise NotFoundError("Category not found", details={"category_id": values.get("category_id")})
    if category.kind != kind:
        raise ValidationError(
            f"Category {category.name} is a {category.kind} category; transaction kind is {kind}",
            details={"category_id": category.id, "category_kind": category.kind, "kind": kind},
        )
    if not category.is_active:
        raise ValidationError(f"Category {category.name} is inactive", details={"category_id": category.id})


def _get_owned(user_id: int, transaction_id: int) -> FinanceTransaction:
    tx = db.session.query(FinanceTransaction).filter_by(id=transaction_id, user_id=user_id).first()
    if not tx:
        raise NotFoundError("Transaction not found", details={"transaction_id": transaction_id})
    return tx


def get_transaction(user_id: int, transaction_id: int) -> FinanceTransaction:
    return _get_owned(user_id, transaction_id)


def list_transactions(
    user_id: int,
    *,
    kind: str | None = None,
    category_id: int | None = None,
    from_date=None,
    to_date=None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    if kind and kind not in TRANSACTION_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(TRANSACTION_KINDS)}")

    query = db.session.query(FinanceTransaction).filter(FinanceTransaction.user_id == user_id)
    if kind:
        query = query.filter(FinanceTransaction.kind == kind)
    if category_id:
        query = query.filter(FinanceTransaction.category_id == category_id)
    if from_date:
        query = query.filter(FinanceTransaction.occurred_on >= from_date)
    if to_date:
        query = query.filter(FinanceTransaction.occurred_on <= to_date)
    if search:
        query = query.filter(FinanceTransaction.description.ilike(f"%{search.strip()}%"))

    query = query.order_by(FinanceTransaction.occurred_on.desc(), FinanceTransaction.id.desc())
    return paginate(query, page, per_page)


def create_transaction(user_id: int, *, patch: dict) -> FinanceTransaction:
    def _op() -> FinanceTransaction:
        values = {"payment_method": "CASH", "tags": [], **patch}
        _check_rules(user_id, values)

        tx = FinanceTransaction(user_id=user_id)
        for key, value in values.items():
            if key in TRANSACTION_MUTABLE_FIELDS:
                setattr(tx, key, value)
        db.session.add(tx)
        db.session.flush()

        recompute_balance(user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def update_transaction(user_id: int, transaction_id: int, *, patch: dict) -> FinanceTransaction:
    def _op() -> FinanceTransaction:
        tx = _get_owned(user_id, transaction_id)
        values = {key: getattr(tx, key) for key in TRANSACTION_MUTABLE_FIELDS}
        values.update(patch)
        _check_rules(user_id, values)

        for key, value in patch.items():
            if key in TRANSACTION_MUTABLE_FIELDS:
                setattr(tx, key, value)
        db.session.flush()

        recompute_balance(user_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def delete_transaction(user_id: int, transaction_id: int) -> None:
    def _op() -> None:
        tx = _get_owned(user_id, transaction_id)
        db.session.delete(tx)
        db.session.flush()

        recompute_balance(user_id)
        db.session.commit()

    run_with_retry(_op)
