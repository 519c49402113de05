# Overview: Stock ledger and product stock register; the only writer of Product.stock_quantity.

"""
Stock invariants (authoritative)

- Product.stock_quantity is a materialized view over StockMovement rows:
  ledger_quantity(p) == SUM(ENTRY) - SUM(EXIT) for every product p.
- The counter and the movement row are written together, in the caller's
  unit of work. Nothing here commits except the public operations
  (adjust_stock, record_movement, reconcile_stock).
- Stock never goes negative; an EXIT larger than the counter raises
  InsufficientStockError before anything is written.
- StockMovement rows are append-only.

Time semantics: all datetimes are UTC-naive; date filters are inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy import case, func

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product, StockMovement
from ..models.inventory import DIRECTIONS, STOCK_REASONS
from ..pagination import paginate
from ..quantities import (
    ZERO,
    normalize_quantity,
    quantity_to_json,
    to_positive_quantity,
    to_quantity,
)
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry

# Reasons a caller may give to a direct adjustment; PURCHASE and SALE
# movements only come from their own flows.
ADJUSTMENT_REASONS = ("MANUAL_ADJUSTMENT", "INITIAL_STOCK", "RETURN")


@dataclass
class StockAdjustment:
    product: Product
    movement: StockMovement | None
    previous_quantity: Decimal
    new_quantity: Decimal

    @property
    def delta(self) -> Decimal:
        return self.new_quantity - self.previous_quantity

    def to_dict(self) -> dict:
        return {
            "product": self.product.to_dict(),
            "movement": self.movement.to_dict() if self.movement else None,
            "previous_quantity": quantity_to_json(self.previous_quantity),
            "new_quantity": quantity_to_json(self.new_quantity),
            "delta": quantity_to_json(self.delta),
        }


def get_product_locked(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if not product:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def _append_movement(
    product: Product,
    *,
    direction: str,
    quantity: Decimal,
    reason: str,
    note: str | None,
    user_id: int | None,
    sale_id: int | None = None,
    purchase_id: int | None = None,
) -> StockMovement:
    movement = StockMovement(
        product_id=product.id,
        direction=direction,
        quantity=quantity,
        reason=reason,
        note=note,
        sale_id=sale_id,
        purchase_id=purchase_id,
        created_by_user_id=user_id,
        occurred_at=utcnow(),
    )
    movement.product = product
    db.session.add(movement)
    return movement


def apply_entry(
    product: Product,
    quantity: Decimal,
    *,
    reason: str,
    note: str | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
    purchase_id: int | None = None,
) -> StockMovement:
    """Increase stock and append the ENTRY movement. Caller owns the transaction."""
    if quantity <= ZERO:
        raise ValidationError("quantity must be greater than zero")
    product.stock_quantity = normalize_quantity(product.stock_quantity) + quantity
    return _append_movement(
        product,
        direction="ENTRY",
        quantity=quantity,
        reason=reason,
        note=note,
        user_id=user_id,
        sale_id=sale_id,
        purchase_id=purchase_id,
    )


def apply_exit(
    product: Product,
    quantity: Decimal,
    *,
    reason: str,
    note: str | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
    purchase_id: int | None = None,
) -> StockMovement:
    """Decrease stock and append the EXIT movement. Caller owns the transaction."""
    if quantity <= ZERO:
        raise ValidationError("quantity must be greater than zero")
    available = normalize_quantity(product.stock_quantity)
    if quantity > available:
        raise InsufficientStockError(
            product_id=product.id,
            product_name=product.name,
            available=available,
            requested=quantity,
        )
    product.stock_quantity = available - quantity
    return _append_movement(
        product,
        direction="EXIT",
        quantity=quantity,
        reason=reason,
        note=note,
        user_id=user_id,
        sale_id=sale_id,
        purchase_id=purchase_id,
    )


def adjust_stock(
    product_id: int,
    new_quantity,
    reason: str | None,
    note: str | None = None,
    user_id: int | None = None,
) -> StockAdjustment:
    """
    Set a product's stock to an absolute quantity (physical recount).

    One movement of |new - old| is appended, ENTRY when stock grows and EXIT
    when it shrinks. When the quantity is unchanged nothing is written to the
    ledger and the adjustment still succeeds.
    """
    target = to_quantity(new_quantity, "new_quantity")
    if target < ZERO:
        raise ValidationError("new_quantity must be >= 0")
    if not reason:
        raise ValidationError("reason is required")
    if reason not in ADJUSTMENT_REASONS:
        raise ValidationError(
            f"reason must be one of: {', '.join(ADJUSTMENT_REASONS)}",
            details={"reason": reason},
        )

    def _op() -> StockAdjustment:
        begin_write_transaction()
        product = get_product_locked(product_id)
        previous = normalize_quantity(product.stock_quantity)
        delta = target - previous

        movement = None
        if delta != ZERO:
            product.stock_quantity = target
            movement = _append_movement(
                product,
                direction="ENTRY" if delta > ZERO else "EXIT",
                quantity=abs(delta),
                reason=reason,
                note=note or f"Stock adjustment: {previous} -> {target}",
                user_id=user_id,
            )

        db.session.commit()
        return StockAdjustment(
            product=product,
            movement=movement,
            previous_quantity=previous,
            new_quantity=target,
        )

    return run_with_retry(_op)


def record_movement(
    product_id: int,
    direction: str,
    quantity,
    note: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """Manual ENTRY/EXIT of a positive quantity, outside any purchase or sale."""
    if direction not in DIRECTIONS:
        raise ValidationError(
            f"direction must be one of: {', '.join(DIRECTIONS)}",
            details={"direction": direction},
        )
    qty = to_positive_quantity(quantity)

    def _op() -> StockMovement:
        begin_write_transaction()
        product = get_product_locked(product_id)
        apply = apply_entry if direction == "ENTRY" else apply_exit
        movement = apply(product, qty, reason="MANUAL_ADJUSTMENT", note=note, user_id=user_id)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def get_movement(movement_id: int) -> StockMovement:
    movement = db.session.query(StockMovement).filter_by(id=movement_id).first()
    if not movement:
        raise NotFoundError("Stock movement not found", details={"movement_id": movement_id})
    return movement


def list_movements(
    *,
    product_id: int | None = None,
    direction: str | None = None,
    reason: str | None = None,
    sale_id: int | None = None,
    purchase_id: int | None = None,
    from_date=None,
    to_date=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    if direction and direction not in DIRECTIONS:
        raise ValidationError(f"direction must be one of: {', '.join(DIRECTIONS)}")
    if reason and reason not in STOCK_REASONS:
        raise ValidationError(f"reason must be one of: {', '.join(STOCK_REASONS)}")

    query = db.session.query(StockMovement)
    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if direction:
        query = query.filter(StockMovement.direction == direction)
    if reason:
        query = query.filter(StockMovement.reason == reason)
    if sale_id:
        query = query.filter(StockMovement.sale_id == sale_id)
    if purchase_id:
        query = query.filter(StockMovement.purchase_id == purchase_id)
    if from_date:
        query = query.filter(StockMovement.occurred_at >= from_date)
    if to_date:
        query = query.filter(StockMovement.occurred_at <= to_date)

    query = query.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
    return paginate(query, page, per_page)


def _signed_quantity_expr():
    return case(
        (StockMovement.direction == "ENTRY", StockMovement.quantity),
        else_=-StockMovement.quantity,
    )


def ledger_quantity(product_id: int) -> Decimal:
    """Replay the ledger for one product: SUM(ENTRY) - SUM(EXIT)."""
    total = (
        db.session.query(func.coalesce(func.sum(_signed_quantity_expr()), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )
    return normalize_quantity(total)


def reconcile_stock(fix: bool = False) -> list[dict]:
    """
    Compare every product's stock counter with its ledger replay.

    Returns one entry per mismatching product. With fix=True the counter is
    reset to the ledger value (the ledger is the source of truth).

    Products are locked before the ledger is summed, so a sale or purchase
    cannot commit between the two reads and make the ledger look stale.
    """
    def _op() -> list[dict]:
        begin_write_transaction()
        products = lock_for_update(db.session.query(Product).order_by(Product.id.asc())).all()
        ledger_totals = dict(
            db.session.query(StockMovement.product_id, func.sum(_signed_quantity_expr()))
            .group_by(StockMovement.product_id)
            .all()
        )

        mismatches = []
        for product in products:
            expected = normalize_quantity(ledger_totals.get(product.id))
            actual = normalize_quantity(product.stock_quantity)
            if expected == actual:
                continue
            mismatches.append({
                "product_id": product.id,
                "product_name": product.name,
                "stock_quantity": quantity_to_json(actual),
                "ledger_quantity": quantity_to_json(expected),
                "difference": quantity_to_json(actual - expected),
            })
            if fix:
                product.stock_quantity = expected

        db.session.commit()
        if fix and mismatches:
            current_app.logger.warning("Reconciled stock for %s product(s)", len(mismatches))
        return mismatches

    return run_with_retry(_op)


def low_stock_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity <= Product.min_stock)
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .all()
    )


def inventory_by_category() -> list[dict]:
    """Active products grouped by category, with quantity and value at cost."""
    products = (
        db.session.query(Product)
        .join(Category, Category.id == Product.category_id)
        .filter(Product.is_active.is_(True))
        .order_by(Category.name.asc(), Product.name.asc())
        .all()
    )

    groups: dict[int, dict] = {}
    for p in products:
        group = groups.setdefault(p.category_id, {
            "category_id": p.category_id,
            "category_name": p.category.name if p.category else None,
            "product_count": 0,
            "low_stock_count": 0,
            "total_quantity": ZERO,
            "stock_value_cents": 0,
            "products": [],
        })
        group["product_count"] += 1
        group["low_stock_count"] += 1 if p.is_low_stock else 0
        group["total_quantity"] += normalize_quantity(p.stock_quantity)
        group["stock_value_cents"] += p.stock_value_cents
        group["products"].append(p.to_dict())

    result = list(groups.values())
    for group in result:
        group["total_quantity"] = quantity_to_json(group["total_quantity"])
    return result
