from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Shop customer and their store-credit account.

    debt_cents is the outstanding debit balance. It never goes below zero:
    subtractions past zero are clamped (customer_service.adjust_debt).
    credit_limit_cents of 0 means "no limit enforced".
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_active", "is_active"),
        db.CheckConstraint("debt_cents >= 0", name="ck_customers_debt_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(32), nullable=True, unique=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    pet_names = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    debt_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_credit_cents(self) -> int | None:
        if not self.credit_limit_cents:
            return None
        return max(self.credit_limit_cents - (self.debt_cents or 0), 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "pet_names": self.pet_names,
            "notes": self.notes,
            "credit_limit_cents": self.credit_limit_cents,
            "debt_cents": self.debt_cents,
            "available_credit_cents": self.available_credit_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
