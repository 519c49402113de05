from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..quantities import quantity_to_json
from ..time_utils import to_utc_z

CATEGORY_KINDS = ("PRODUCT", "INCOME", "EXPENSE")
PRODUCT_UNITS = ("UN", "KG", "G", "L", "ML", "PCT", "CX")


class Category(db.Model):
    """
    Owner-scoped category.

    PRODUCT categories group the catalog; INCOME/EXPENSE categories classify
    the owner's finance transactions. Deleting a category only deactivates it.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("user_id", "name", name="uq_categories_user_name"),
        db.Index("ix_categories_user_kind", "user_id", "kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    kind = db.Column(db.String(16), nullable=False, default="PRODUCT")
    color = db.Column(db.String(16), nullable=True)
    icon = db.Column(db.String(64), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind,
            "color": self.color,
            "icon": self.icon,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(32), nullable=True, unique=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data plus the current stock counter.

    STOCK OWNERSHIP:
    stock_quantity is a materialized view over stock_movements. It is written
    only by services/stock_service.py, always together with a StockMovement
    row, inside the caller's unit of work. Catalog updates never touch it.

    version_id is the optimistic-lock column: two concurrent writers of the
    same product cannot both commit; the loser gets StaleDataError and its
    unit of work is retried from the stock check.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    barcode = db.Column(db.String(64), nullable=True, unique=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    unit = db.Column(db.String(8), nullable=False, default="UN")

    # Authoritative storage in cents
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False)

    min_stock = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    stock_quantity = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))

    sold_by_weight = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category")
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    @property
    def margin_pct(self) -> float:
        """Markup over purchase cost, in percent (0 when cost is unknown)."""
        if not self.cost_cents:
            return 0.0
        return round((self.price_cents - self.cost_cents) / self.cost_cents * 100, 2)

    @property
    def is_low_stock(self) -> bool:
        return Decimal(self.stock_quantity or 0) <= Decimal(self.min_stock or 0)

    @property
    def stock_value_cents(self) -> int:
        return int(round(Decimal(self.stock_quantity or 0) * (self.cost_cents or 0)))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "unit": self.unit,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "margin_pct": self.margin_pct,
            "min_stock": quantity_to_json(self.min_stock),
            "stock_quantity": quantity_to_json(self.stock_quantity),
            "stock_status": "LOW" if self.is_low_stock else "OK",
            "sold_by_weight": self.sold_by_weight,
            "notes": self.notes,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
