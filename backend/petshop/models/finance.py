from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

TRANSACTION_KINDS = ("INCOME", "EXPENSE")
FINANCE_PAYMENT_METHODS = ("CASH", "CARD", "PIX", "TRANSFER", "OTHER")


class FinanceTransaction(db.Model):
    """
    Owner's personal income/expense record.

    Independent of the shop inventory. Every insert/update/delete is followed,
    in the same DB transaction, by balance_service.recompute_balance().
    """
    __tablename__ = "finance_transactions"
    __table_args__ = (
        db.Index("ix_finance_tx_user_occurred", "user_id", "occurred_on"),
        db.Index("ix_finance_tx_user_kind", "user_id", "kind"),
        db.CheckConstraint("amount_cents > 0", name="ck_finance_tx_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    occurred_on = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    notes = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("Category")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "category": self.category.to_dict() if self.category else None,
            "kind": self.kind,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "occurred_on": self.occurred_on.isoformat() if self.occurred_on else None,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "tags": list(self.tags or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BalanceSnapshot(db.Model):
    """Per-user cached totals. Recomputable at any time; never edited by hand."""
    __tablename__ = "balance_snapshots"
    __table_args__ = (
        db.UniqueConstraint("user_id", name="uq_balance_snapshots_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_income_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expense_cents = db.Column(db.Integer, nullable=False, default=0)
    month_income_cents = db.Column(db.Integer, nullable=False, default=0)
    month_expense_cents = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "balance_cents": self.balance_cents,
            "total_income_cents": self.total_income_cents,
            "total_expense_cents": self.total_expense_cents,
            "month_income_cents": self.month_income_cents,
            "month_expense_cents": self.month_expense_cents,
            "updated_at": to_utc_z(self.updated_at),
        }
