# Overview: Categories (owner-scoped, soft delete) and suppliers.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product, Purchase, Supplier
from ..models.catalog import CATEGORY_KINDS
from ..pagination import paginate

CATEGORY_MUTABLE_FIELDS = {"name", "description", "kind", "color", "icon", "is_active"}
SUPPLIER_MUTABLE_FIELDS = {"name", "tax_id", "phone", "email", "address", "notes", "is_active"}


def _apply_patch(row, patch: dict, allowed: set[str]) -> None:
    for key, value in patch.items():
        if key not in allowed:
            continue
        setattr(row, key, value)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

def list_categories(user_id: int, *, kind: str | None = None, include_inactive: bool = False) -> list[Category]:
    if kind and kind not in CATEGORY_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(CATEGORY_KINDS)}")
    query = db.session.query(Category).filter(Category.user_id == user_id)
    if kind:
        query = query.filter(Category.kind == kind)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    return query.order_by(Category.name.asc()).all()


def get_category(user_id: int, category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id, user_id=user_id).first()
    if not category:
        raise NotFoundError("Category not found", details={"category_id": category_id})
    return category


def _check_category_name(user_id: int, name: str | None, exclude_id: int | None = None) -> None:
    if not name:
        return
    query = db.session.query(Category.id).filter(Category.user_id == user_id, Category.name == name)
    if exclude_id:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError("A category with this name already exists", details={"name": name})


def create_category(user_id: int, *, patch: dict) -> Category:
    kind = patch.get("kind", "PRODUCT")
    if kind not in CATEGORY_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(CATEGORY_KINDS)}")
    _check_category_name(user_id, patch.get("name"))

    category = Category(user_id=user_id, kind=kind)
    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A category with this name already exists", details={"name": patch.get("name")})
    return category


def update_category(user_id: int, category_id: int, *, patch: dict) -> Category:
    category = get_category(user_id, category_id)
    if "kind" in patch and patch["kind"] not in CATEGORY_KINDS:
        raise ValidationError(f"kind must be one of: {', '.join(CATEGORY_KINDS)}")
    _check_category_name(user_id, patch.get("name"), exclude_id=category.id)

    _apply_patch(category, patch, CATEGORY_MUTABLE_FIELDS)
    db.session.commit()
    return category


def delete_category(user_id: int, category_id: int) -> Category:
    """Categories are never removed; they are deactivated."""
    category = get_category(user_id, category_id)
    category.is_active = False
    db.session.commit()
    return category


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------

def list_suppliers(
    *,
    search: str | None = None,
    active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Supplier)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Supplier.name.ilike(like), Supplier.tax_id.ilike(like)))
    if active is not None:
        query = query.filter(Supplier.is_active.is_(active))
    query = query.order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate(query, page, per_page)


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})
    return supplier


def _check_supplier_tax_id(tax_id: str | None, exclude_id: int | None = None) -> None:
    if not tax_id:
        return
    query = db.session.query(Supplier.id).filter(Supplier.tax_id == tax_id)
    if exclude_id:
        query = query.filter(Supplier.id != exclude_id)
    if query.first():
        raise ConflictError("A supplier with this tax_id already exists", details={"tax_id": tax_id})


def create_supplier(*, patch: dict) -> Supplier:
    _check_supplier_tax_id(patch.get("tax_id"))
    supplier = Supplier()
    _apply_patch(supplier, patch, SUPPLIER_MUTABLE_FIELDS)
    db.session.add(supplier)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A supplier with this tax_id already exists", details={"tax_id": patch.get("tax_id")})
    return supplier


def update_supplier(supplier_id: int, *, patch: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    _check_supplier_tax_id(patch.get("tax_id"), exclude_id=supplier.id)
    _apply_patch(supplier, patch, SUPPLIER_MUTABLE_FIELDS)
    db.session.commit()
    return supplier


def delete_supplier(supplier_id: int) -> None:
    """Hard delete; refused while products or purchases still reference the supplier."""
    supplier = get_supplier(supplier_id)
    product_refs = db.session.query(Product.id).filter_by(supplier_id=supplier.id).count()
    purchase_refs = db.session.query(Purchase.id).filter_by(supplier_id=supplier.id).count()
    if product_refs or purchase_refs:
        raise ConflictError(
            "Supplier is referenced by products or purchases; deactivate it instead",
            details={"products": product_refs, "purchases": purchase_refs},
        )
    db.session.delete(supplier)
    db.session.commit()
