# backend/petshop/services/products_service.py
"""
Products Service

Catalog data only. stock_quantity is not writable here: initial stock is
recorded through stock_service as an INITIAL_STOCK movement, and later
changes go through purchases, sales and adjustments.
"""
from __future__ import annotations

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product, PurchaseLine, SaleLine, StockMovement, Supplier
from ..models.catalog import PRODUCT_UNITS
from ..pagination import paginate
from ..quantities import ZERO, to_quantity
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .stock_service import apply_entry

PRODUCT_MUTABLE_FIELDS = {
    "name", "description", "barcode", "category_id", "supplier_id", "unit",
    "cost_cents", "price_cents", "min_stock", "sold_by_weight", "notes", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _check_references(patch: dict) -> None:
    if "unit" in patch and patch["unit"] not in PRODUCT_UNITS:
        raise ValidationError(f"unit must be one of: {', '.join(PRODUCT_UNITS)}")

    if patch.get("category_id") is not None:
        category = db.session.query(Category).filter_by(id=patch["category_id"]).first()
        if not category:
            raise NotFoundError("Category not found", details={"category_id": patch["category_id"]})
        if category.kind != "PRODUCT":
            raise ValidationError(
                f"Category {category.name} is not a product category",
                details={"category_id": category.id, "kind": category.kind},
            )

    if patch.get("supplier_id") is not None:
        if not db.session.query(Supplier.id).filter_by(id=patch["supplier_id"]).first():
            raise NotFoundError("Supplier not found", details={"supplier_id": patch["supplier_id"]})

    if patch.get("min_stock") is not None and patch["min_stock"] < ZERO:
        raise ValidationError("min_stock must be >= 0")


def _check_barcode(barcode: str | None, exclude_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("Barcode already exists.", details={"barcode": barcode})


def list_products(
    *,
    search: str | None = None,
    category_id: int | None = None,
    supplier_id: int | None = None,
    active: bool | None = None,
    low_stock: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Product listing with optional filters and pagination.

    search matches name, barcode or description. page=None returns all rows.
    """
    query = db.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Product.name.ilike(like),
            Product.barcode.ilike(like),
            Product.description.ilike(like),
        ))
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if supplier_id:
        query = query.filter(Product.supplier_id == supplier_id)
    if active is not None:
        query = query.filter(Product.is_active.is_(active))
    if low_stock:
        query = query.filter(Product.stock_quantity <= Product.min_stock)

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, per_page)


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def create_product(*, patch: dict, initial_stock=None, user_id: int | None = None) -> Product:
    """
    Create a product; a positive initial_stock enters through the ledger
    in the same transaction.
    """
    opening = to_quantity(initial_stock, "initial_stock") if initial_stock is not None else ZERO
    if opening < ZERO:
        raise ValidationError("initial_stock must be >= 0")
    if patch.get("price_cents") is None:
        raise ValidationError("price_cents is required")

    def _op() -> Product:
        begin_write_transaction()
        _check_references(patch)
        _check_barcode(patch.get("barcode"))

        p = Product(stock_quantity=ZERO)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()

        if opening > ZERO:
            apply_entry(p, opening, reason="INITIAL_STOCK", note="Initial stock", user_id=user_id)

        db.session.commit()
        return p

    return run_with_retry(_op)


def update_product(product_id: int, *, patch: dict) -> Product:
    def _op() -> Product:
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not p:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        _check_references(patch)
        _check_barcode(patch.get("barcode"), exclude_id=p.id)

        apply_product_patch(p, patch)
        db.session.commit()
        return p

    return run_with_retry(_op)


def delete_product(product_id: int) -> None:
    """Hard delete; only for products that never appeared in the ledger or a document."""
    def _op() -> None:
        p = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not p:
            raise NotFoundError("Product not found", details={"product_id": product_id})

        referenced = (
            db.session.query(StockMovement.id).filter_by(product_id=p.id).first()
            or db.session.query(SaleLine.id).filter_by(product_id=p.id).first()
            or db.session.query(PurchaseLine.id).filter_by(product_id=p.id).first()
        )
        if referenced:
            raise ConflictError(
                "Product has stock history or documents; deactivate it instead",
                details={"product_id": p.id},
            )
        db.session.delete(p)
        db.session.commit()

    run_with_retry(_op)
