"""
Sales Service - point-of-sale tickets

A sale is created directly as COMPLETED: the stock check, the sale rows, the
stock decrement and the EXIT movements happen in one unit of work. The only
transition afterwards is COMPLETED -> CANCELLED, which returns every line to
stock exactly once.

CREDIT_TERM sales also move the customer's debt in the same unit of work.
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import (
    AlreadyCancelledError,
    CreditLimitExceededError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Customer, Product, Sale, SaleLine
from ..models.sales import PAYMENT_TYPES, SALE_STATUSES
from ..pagination import paginate
from ..quantities import ZERO, line_amount_cents, normalize_quantity, to_cents, to_positive_quantity
from ..time_utils import utcnow
from . import sequence_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .customer_service import apply_debt_change
from .stock_service import apply_entry, apply_exit

DEFAULT_CANCEL_REASON = "no reason given"


def _parse_lines(lines) -> list[dict]:
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Sale must have at least one line")

    parsed = []
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        product_id = raw.get("product_id")
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise ValidationError(f"lines[{index}].product_id must be an integer")
        unit_price = raw.get("unit_price_cents")
        parsed.append({
            "product_id": product_id,
            "quantity": to_positive_quantity(raw.get("quantity"), f"lines[{index}].quantity"),
            "unit_price_cents": (
                None if unit_price is None
                else to_cents(unit_price, f"lines[{index}].unit_price_cents")
            ),
        })
    return parsed


def _lock_products(product_ids, *, require_active: bool = True) -> dict[int, Product]:
    """Lock every product of the sale, in id order."""
    products = {}
    for product_id in sorted(set(product_ids)):
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        if require_active and not product.is_active:
            raise ValidationError(f"Product {product.name} is inactive", details={"product_id": product_id})
        products[product_id] = product
    return products


def _check_availability(parsed: list[dict], products: dict[int, Product]) -> None:
    requested: dict[int, Decimal] = {}
    for item in parsed:
        requested[item["product_id"]] = requested.get(item["product_id"], ZERO) + item["quantity"]

    for product_id, qty in requested.items():
        product = products[product_id]
        available = normalize_quantity(product.stock_quantity)
        if qty > available:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=available,
                requested=qty,
            )


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def create_sale(
    *,
    lines,
    payment_type: str,
    customer_id: int | None = None,
    discount_cents=0,
    notes: str | None = None,
    user_id: int | None = None,
) -> Sale:
    """
    Register a completed sale.

    Fails with InsufficientStockError, before anything is written, when the
    summed quantity of any product exceeds its stock.
    """
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(
            f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}",
            details={"payment_type": payment_type},
        )
    if payment_type == "CREDIT_TERM" and not customer_id:
        raise ValidationError("CREDIT_TERM sales require a customer")
    parsed = _parse_lines(lines)
    discount = to_cents(discount_cents if discount_cents is not None else 0, "discount_cents")

    sequence_service.ensure_sequence(sequence_service.SALE_SEQUENCE)

    def _op() -> Sale:
        begin_write_transaction()

        customer = None
        if customer_id:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if not customer:
                raise NotFoundError("Customer not found", details={"customer_id": customer_id})
            if not customer.is_active:
                raise ValidationError("Customer is inactive", details={"customer_id": customer_id})

        products = _lock_products(item["product_id"] for item in parsed)
        _check_availability(parsed, products)

        sale_lines = []
        gross = 0
        for item in parsed:
            product = products[item["product_id"]]
            unit_price = item["unit_price_cents"]
            if unit_price is None:
                unit_price = product.price_cents
            subtotal = line_amount_cents(item["quantity"], unit_price)
            sale_lines.append(SaleLine(
                product=product,
                quantity=item["quantity"],
                unit_price_cents=unit_price,
                subtotal_cents=subtotal,
            ))
            gross += subtotal

        if discount > gross:
            raise ValidationError(
                "discount_cents cannot exceed the gross total",
                details={"discount_cents": discount, "gross_total_cents": gross},
            )
        net = gross - discount

        if payment_type == "CREDIT_TERM":
            new_debt = (customer.debt_cents or 0) + net
            if customer.credit_limit_cents and new_debt > customer.credit_limit_cents:
                raise CreditLimitExceededError(
                    f"Credit limit exceeded for {customer.name}",
                    details={
                        "customer_id": customer.id,
                        "credit_limit_cents": customer.credit_limit_cents,
                        "debt_cents": customer.debt_cents,
                        "requested_cents": net,
                    },
                )

        sale = Sale(
            sale_number=sequence_service.format_sale_number(
                sequence_service.next_number(sequence_service.SALE_SEQUENCE)
            ),
            customer=customer,
            seller_user_id=user_id,
            payment_type=payment_type,
            status="COMPLETED",
            gross_total_cents=gross,
            discount_cents=discount,
            net_total_cents=net,
            notes=notes,
            sold_at=utcnow(),
        )
        sale.lines.extend(sale_lines)
        db.session.add(sale)
        db.session.flush()

        for line in sale_lines:
            apply_exit(
                line.product,
                line.quantity,
                reason="SALE",
                note=f"Sale #{sale.sale_number}",
                user_id=user_id,
                sale_id=sale.id,
            )

        if payment_type == "CREDIT_TERM":
            apply_debt_change(customer, net, "ADD")

        db.session.commit()
        return sale

    return run_with_retry(_op)


def cancel_sale(sale_id: int, reason: str | None = None, user_id: int | None = None) -> Sale:
    """
    Cancel a completed sale and return its goods to stock.

    A second cancellation fails with AlreadyCancelledError; stock is
    restored exactly once.
    """
    def _op() -> Sale:
        begin_write_transaction()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found", details={"sale_id": sale_id})
        if sale.status == "CANCELLED":
            raise AlreadyCancelledError(
                f"Sale #{sale.sale_number} is already cancelled",
                details={"sale_id": sale.id},
            )
        if sale.status != "COMPLETED":
            raise InvalidStateError(
                f"Only COMPLETED sales can be cancelled (status is {sale.status})",
                details={"sale_id": sale.id, "status": sale.status},
            )

        # Inactive products still take their goods back
        products = _lock_products((line.product_id for line in sale.lines), require_active=False)
        for line in sale.lines:
            apply_entry(
                products[line.product_id],
                normalize_quantity(line.quantity),
                reason="RETURN",
                note=f"Cancelled sale #{sale.sale_number}",
                user_id=user_id,
                sale_id=sale.id,
            )

        if sale.payment_type == "CREDIT_TERM" and sale.customer_id:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=sale.customer_id)).first()
            if customer:
                apply_debt_change(customer, sale.net_total_cents, "SUBTRACT")

        cancel_note = f"CANCELLED: {reason or DEFAULT_CANCEL_REASON}"
        sale.notes = f"{sale.notes}\n{cancel_note}" if sale.notes else cancel_note
        sale.status = "CANCELLED"
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = user_id

        db.session.commit()
        return sale

    return run_with_retry(_op)


def list_sales(
    *,
    status: str | None = None,
    payment_type: str | None = None,
    customer_id: int | None = None,
    seller_user_id: int | None = None,
    from_date=None,
    to_date=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    if status and status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")
    if payment_type and payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")

    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if payment_type:
        query = query.filter(Sale.payment_type == payment_type)
    if customer_id:
        query = query.filter(Sale.customer_id == customer_id)
    if seller_user_id:
        query = query.filter(Sale.seller_user_id == seller_user_id)
    if from_date:
        query = query.filter(Sale.sold_at >= from_date)
    if to_date:
        query = query.filter(Sale.sold_at <= to_date)

    query = query.order_by(Sale.sold_at.desc(), Sale.id.desc())
    return paginate(query, page, per_page, serialize=lambda s: s.to_dict(include_lines=False))
