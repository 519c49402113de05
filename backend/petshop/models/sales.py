from __future__ import annotations

from ..extensions import db
from ..quantities import quantity_to_json
from ..time_utils import to_utc_z

PAYMENT_TYPES = ("CASH", "CARD", "PIX", "CREDIT_TERM")
SALE_STATUSES = ("PENDING", "COMPLETED", "CANCELLED")


class Sale(db.Model):
    """
    Point-of-sale ticket.

    Created directly as COMPLETED (stock leaves in the same transaction);
    the only transition is COMPLETED -> CANCELLED, which returns the stock.
    PENDING exists in the status domain but no service produces it.

    sale_number is a 6-digit string ("000001") allocated from
    DocumentSequence, never computed from MAX(sale_number).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_number"),
        db.Index("ix_sales_status_sold", "status", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_number = db.Column(db.String(16), nullable=False)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    seller_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    payment_type = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)

    # All amounts in cents
    gross_total_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    net_total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Cancellation audit trail
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy="dynamic"))
    seller = db.relationship("User", foreign_keys=[seller_user_id])
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "seller_user_id": self.seller_user_id,
            "seller_name": self.seller.name if self.seller else None,
            "payment_type": self.payment_type,
            "status": self.status,
            "gross_total_cents": self.gross_total_cents,
            "discount_cents": self.discount_cents,
            "net_total_cents": self.net_total_cents,
            "notes": self.notes,
            "sold_at": to_utc_z(self.sold_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "unit": self.product.unit if self.product else None,
            "quantity": quantity_to_json(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "subtotal_cents": self.subtotal_cents,
        }
