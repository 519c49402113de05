# Overview: Customers and their store-credit (debt) register.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Sale
from ..pagination import paginate
from ..quantities import to_cents
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry

DEBT_OPERATIONS = ("ADD", "SUBTRACT")

CUSTOMER_MUTABLE_FIELDS = {
    "name", "tax_id", "phone", "email", "address", "pet_names", "notes",
    "credit_limit_cents", "is_active",
}


@dataclass
class DebtAdjustment:
    """
    Outcome of one debt change.

    discarded_cents is the part of a subtraction that would have taken the
    debt below zero; the balance is clamped and that excess is dropped.
    """
    customer: Customer
    operation: str
    amount_cents: int
    previous_cents: int
    new_cents: int
    discarded_cents: int = 0
    note: str | None = None

    def to_dict(self) -> dict:
        return {
            "customer": self.customer.to_dict(),
            "operation": self.operation,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "previous_debt_cents": self.previous_cents,
            "new_debt_cents": self.new_cents,
            "discarded_cents": self.discarded_cents,
        }


def apply_debt_change(
    customer: Customer, amount_cents: int, operation: str, note: str | None = None
) -> DebtAdjustment:
    """Change the debt of an already-locked customer. Caller owns the transaction."""
    if operation not in DEBT_OPERATIONS:
        raise ValidationError(
            f"operation must be one of: {', '.join(DEBT_OPERATIONS)}",
            details={"operation": operation},
        )
    amount = to_cents(amount_cents, "amount_cents", allow_zero=False)

    previous = customer.debt_cents or 0
    discarded = 0
    if operation == "ADD":
        new = previous + amount
    else:
        new = previous - amount
        if new < 0:
            discarded = -new
            new = 0
            current_app.logger.warning(
                "Debt of customer %s clamped at zero; %s cents discarded",
                customer.id, discarded,
            )

    customer.debt_cents = new
    return DebtAdjustment(
        customer=customer,
        operation=operation,
        amount_cents=amount,
        previous_cents=previous,
        new_cents=new,
        discarded_cents=discarded,
        note=note,
    )


def adjust_debt(customer_id: int, amount_cents, operation: str, note: str | None = None) -> DebtAdjustment:
    """
    Increase (ADD) or decrease (SUBTRACT) a customer's outstanding debt.

    The balance never goes below zero. Returns the previous and new balance.
    The optional note is written to the application log with the change.
    """
    if operation not in DEBT_OPERATIONS:
        raise ValidationError(
            f"operation must be one of: {', '.join(DEBT_OPERATIONS)}",
            details={"operation": operation},
        )
    amount = to_cents(amount_cents, "amount_cents", allow_zero=False)

    def _op() -> DebtAdjustment:
        begin_write_transaction()
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})
        adjustment = apply_debt_change(customer, amount, operation, note)
        db.session.commit()
        current_app.logger.info(
            "Debt of customer %s: %s -> %s (%s %s)%s",
            customer.id, adjustment.previous_cents, adjustment.new_cents, operation, amount,
            f" note={note!r}" if note else "",
        )
        return adjustment

    return run_with_retry(_op)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def list_customers(
    *,
    search: str | None = None,
    active: bool | None = None,
    with_debt: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.name.ilike(like),
            Customer.tax_id.ilike(like),
            Customer.phone.ilike(like),
            Customer.pet_names.ilike(like),
        ))
    if active is not None:
        query = query.filter(Customer.is_active.is_(active))
    if with_debt:
        query = query.filter(Customer.debt_cents > 0)

    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(query, page, per_page)


def _apply_customer_patch(customer: Customer, patch: dict) -> None:
    for key, value in patch.items():
        if key not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(customer, key, value)


def _check_credit_limit(patch: dict) -> None:
    if "credit_limit_cents" in patch and patch["credit_limit_cents"] is not None:
        to_cents(patch["credit_limit_cents"], "credit_limit_cents")


def create_customer(*, patch: dict) -> Customer:
    _check_credit_limit(patch)
    tax_id = patch.get("tax_id")
    if tax_id and db.session.query(Customer.id).filter_by(tax_id=tax_id).first():
        raise ConflictError("A customer with this tax_id already exists", details={"tax_id": tax_id})

    customer = Customer(debt_cents=0)
    _apply_customer_patch(customer, patch)
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A customer with this tax_id already exists", details={"tax_id": tax_id})
    return customer


def update_customer(customer_id: int, *, patch: dict) -> Customer:
    """Update profile fields. debt_cents is only changed through adjust_debt and sales."""
    _check_credit_limit(patch)

    def _op() -> Customer:
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})

        tax_id = patch.get("tax_id")
        if tax_id and tax_id != customer.tax_id:
            clash = db.session.query(Customer.id).filter(
                Customer.tax_id == tax_id, Customer.id != customer.id
            ).first()
            if clash:
                raise ConflictError("A customer with this tax_id already exists", details={"tax_id": tax_id})

        _apply_customer_patch(customer, patch)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(customer_id: int) -> bool:
    """
    Remove a customer.

    Customers with sales or outstanding debt are deactivated instead of
    deleted. Returns True when the row was really deleted.
    """
    def _op() -> bool:
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError("Customer not found", details={"customer_id": customer_id})

        has_sales = db.session.query(Sale.id).filter_by(customer_id=customer.id).first() is not None
        if has_sales or customer.debt_cents:
            customer.is_active = False
            db.session.commit()
            return False
        db.session.delete(customer)
        db.session.commit()
        return True

    return run_with_retry(_op)
