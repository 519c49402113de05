# Overview: Purchase orders from suppliers; confirmation is the only path by which goods enter stock.

"""
Purchase lifecycle

    PENDING --confirm--> CONFIRMED   (every line enters stock, cost updated)
    PENDING --cancel---> CANCELLED   (no stock effect)

Both targets are terminal. Confirm and cancel each run as one unit of work:
a failure leaves the purchase, the products and the ledger untouched.
"""

from __future__ import annotations

from ..errors import (
    AlreadyCancelledError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Product, Purchase, PurchaseLine, Supplier
from ..models.purchases import PURCHASE_STATUSES
from ..pagination import paginate
from ..quantities import line_amount_cents, normalize_quantity, to_cents, to_positive_quantity
from ..time_utils import utcnow
from . import sequence_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .stock_service import apply_entry


def _parse_lines(lines) -> list[dict]:
    if not isinstance(lines, list) or not lines:
        raise ValidationError("lines must be a non-empty list")

    parsed = []
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        product_id = raw.get("product_id")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ValidationError(f"lines[{index}].product_id must be an integer")
        parsed.append({
            "product_id": product_id,
            "quantity": to_positive_quantity(raw.get("quantity"), f"lines[{index}].quantity"),
            "unit_cost_cents": to_cents(raw.get("unit_cost_cents"), f"lines[{index}].unit_cost_cents"),
        })
    return parsed


def _get_purchase_locked(purchase_id: int) -> Purchase:
    purchase = lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id)).first()
    if not purchase:
        raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})
    return purchase


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.query(Purchase).filter_by(id=purchase_id).first()
    if not purchase:
        raise NotFoundError("Purchase not found", details={"purchase_id": purchase_id})
    return purchase


def create_purchase(
    *,
    supplier_id: int,
    lines,
    invoice_number: str | None = None,
    notes: str | None = None,
    purchased_at=None,
    user_id: int | None = None,
) -> Purchase:
    """Record a PENDING purchase order. Stock is not touched until confirmation."""
    parsed = _parse_lines(lines)
    sequence_service.ensure_sequence(sequence_service.PURCHASE_SEQUENCE)

    def _op() -> Purchase:
        begin_write_transaction()
        supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
        if not supplier:
            raise NotFoundError("Supplier not found", details={"supplier_id": supplier_id})
        if not supplier.is_active:
            raise ValidationError("Supplier is inactive", details={"supplier_id": supplier_id})

        purchase = Purchase(
            purchase_number=sequence_service.next_number(sequence_service.PURCHASE_SEQUENCE),
            supplier_id=supplier.id,
            status="PENDING",
            invoice_number=invoice_number,
            notes=notes,
            purchased_at=purchased_at or utcnow(),
            created_by_user_id=user_id,
        )

        total = 0
        for item in parsed:
            product = db.session.query(Product).filter_by(id=item["product_id"]).first()
            if not product:
                raise NotFoundError("Product not found", details={"product_id": item["product_id"]})
            if not product.is_active:
                raise ValidationError(f"Product {product.name} is inactive", details={"product_id": product.id})

            subtotal = line_amount_cents(item["quantity"], item["unit_cost_cents"])
            purchase.lines.append(PurchaseLine(
                product=product,
                quantity=item["quantity"],
                unit_cost_cents=item["unit_cost_cents"],
                subtotal_cents=subtotal,
            ))
            total += subtotal

        purchase.total_cents = total
        db.session.add(purchase)
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def confirm_purchase(purchase_id: int, user_id: int | None = None) -> Purchase:
    """
    Receive the goods of a PENDING purchase.

    Per line: stock += quantity, product cost becomes the line's unit cost
    (last cost wins), one ENTRY/PURCHASE movement. Re-confirming fails with
    InvalidStateError and changes nothing.
    """
    def _op() -> Purchase:
        begin_write_transaction()
        purchase = _get_purchase_locked(purchase_id)
        if purchase.status != "PENDING":
            raise InvalidStateError(
                f"Only PENDING purchases can be confirmed (status is {purchase.status})",
                details={"purchase_id": purchase.id, "status": purchase.status},
            )

        for line in purchase.lines:
            product = lock_for_update(db.session.query(Product).filter_by(id=line.product_id)).first()
            if not product:
                raise NotFoundError("Product not found", details={"product_id": line.product_id})
            apply_entry(
                product,
                normalize_quantity(line.quantity),
                reason="PURCHASE",
                note=f"Purchase #{purchase.purchase_number}",
                user_id=user_id,
                purchase_id=purchase.id,
            )
            product.cost_cents = line.unit_cost_cents

        purchase.status = "CONFIRMED"
        purchase.confirmed_at = utcnow()
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def cancel_purchase(purchase_id: int, reason: str | None = None) -> Purchase:
    """Abandon a PENDING purchase. Confirmed purchases are final."""
    def _op() -> Purchase:
        begin_write_transaction()
        purchase = _get_purchase_locked(purchase_id)
        if purchase.status == "CANCELLED":
            raise AlreadyCancelledError(
                "Purchase is already cancelled",
                details={"purchase_id": purchase.id},
            )
        if purchase.status != "PENDING":
            raise InvalidStateError(
                f"Only PENDING purchases can be cancelled (status is {purchase.status})",
                details={"purchase_id": purchase.id, "status": purchase.status},
            )

        purchase.status = "CANCELLED"
        purchase.cancelled_at = utcnow()
        if reason:
            cancel_note = f"CANCELLED: {reason}"
            purchase.notes = f"{purchase.notes}\n{cancel_note}" if purchase.notes else cancel_note
        db.session.commit()
        return purchase

    return run_with_retry(_op)


def list_purchases(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    from_date=None,
    to_date=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    if status and status not in PURCHASE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(PURCHASE_STATUSES)}")

    query = db.session.query(Purchase)
    if status:
        query = query.filter(Purchase.status == status)
    if supplier_id:
        query = query.filter(Purchase.supplier_id == supplier_id)
    if from_date:
        query = query.filter(Purchase.purchased_at >= from_date)
    if to_date:
        query = query.filter(Purchase.purchased_at <= to_date)

    query = query.order_by(Purchase.purchased_at.desc(), Purchase.id.desc())
    return paginate(query, page, per_page, serialize=lambda p: p.to_dict(include_lines=False))
