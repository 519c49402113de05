from __future__ import annotations

from ..extensions import db
from ..quantities import quantity_to_json
from ..time_utils import to_utc_z

DIRECTIONS = ("ENTRY", "EXIT")
STOCK_REASONS = ("PURCHASE", "SALE", "RETURN", "INITIAL_STOCK", "MANUAL_ADJUSTMENT")


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    One row per quantity change of one product. Rows are never updated or
    deleted; replaying ENTRY minus EXIT per product reproduces
    Product.stock_quantity (see stock_service.reconcile_stock).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_stock_movements_reason", "reason"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    direction = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    reason = db.Column(db.String(32), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    # Source documents (at most one is set)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "direction": self.direction,
            "quantity": quantity_to_json(self.quantity),
            "reason": self.reason,
            "note": self.note,
            "sale_id": self.sale_id,
            "purchase_id": self.purchase_id,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Monotonic counters for human-readable document numbers.

    Allocation is a single UPDATE ... SET next_number = next_number + 1 inside
    the caller's transaction, so two concurrent sales never share a number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_document_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
