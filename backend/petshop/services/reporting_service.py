# Overview: Read-only report aggregations over sales, purchases, stock and customers.

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import case, func, select

from ..extensions import db
from ..models import (
    Category,
    Customer,
    Product,
    Purchase,
    PurchaseLine,
    Sale,
    SaleLine,
    StockMovement,
    Supplier,
    User,
)
from ..quantities import ZERO, normalize_quantity, quantity_to_json
from ..time_utils import start_of_month, to_utc_z, today as utc_today


def _range_payload(from_date, to_date) -> dict:
    return {
        "from": to_utc_z(from_date) if from_date else None,
        "to": to_utc_z(to_date) if to_date else None,
    }


def sales_report(*, from_date=None, to_date=None, top: int = 10) -> dict:
    """Completed-sale totals, average ticket, breakdown by payment type and seller, top products."""
    base = db.session.query(Sale).filter(Sale.status == "COMPLETED")
    if from_date:
        base = base.filter(Sale.sold_at >= from_date)
    if to_date:
        base = base.filter(Sale.sold_at <= to_date)
    completed = base.subquery()

    count, gross, discount, net = db.session.query(
        func.count(completed.c.id),
        func.coalesce(func.sum(completed.c.gross_total_cents), 0),
        func.coalesce(func.sum(completed.c.discount_cents), 0),
        func.coalesce(func.sum(completed.c.net_total_cents), 0),
    ).one()

    cancelled = db.session.query(func.count(Sale.id)).filter(Sale.status == "CANCELLED")
    if from_date:
        cancelled = cancelled.filter(Sale.sold_at >= from_date)
    if to_date:
        cancelled = cancelled.filter(Sale.sold_at <= to_date)

    by_payment = {
        payment_type: {"count": n, "net_total_cents": int(cents or 0)}
        for payment_type, n, cents in db.session.query(
            completed.c.payment_type, func.count(completed.c.id), func.sum(completed.c.net_total_cents)
        ).group_by(completed.c.payment_type)
    }

    by_seller = [
        {"user_id": uid, "name": name, "sale_count": n, "net_total_cents": int(cents or 0)}
        for uid, name, n, cents in db.session.query(
            User.id, User.name, func.count(completed.c.id), func.sum(completed.c.net_total_cents)
        )
        .join(completed, completed.c.seller_user_id == User.id)
        .group_by(User.id, User.name)
        .order_by(func.sum(completed.c.net_total_cents).desc())
    ]

    top_products = [
        {
            "product_id": pid,
            "product_name": name,
            "quantity": quantity_to_json(normalize_quantity(qty)),
            "revenue_cents": int(cents or 0),
        }
        for pid, name, qty, cents in db.session.query(
            Product.id, Product.name, func.sum(SaleLine.quantity), func.sum(SaleLine.subtotal_cents)
        )
        .join(SaleLine, SaleLine.product_id == Product.id)
        .join(completed, completed.c.id == SaleLine.sale_id)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(SaleLine.subtotal_cents).desc())
        .limit(top)
    ]

    return {
        **_range_payload(from_date, to_date),
        "sale_count": count,
        "cancelled_count": cancelled.scalar(),
        "gross_total_cents": int(gross or 0),
        "discount_cents": int(discount or 0),
        "net_total_cents": int(net or 0),
        "average_ticket_cents": int(round(net / count)) if count else 0,
        "by_payment_type": by_payment,
        "by_seller": by_seller,
        "top_products": top_products,
    }


def _sales_since(start: datetime) -> tuple[int, int]:
    count, total = db.session.query(
        func.count(Sale.id), func.coalesce(func.sum(Sale.net_total_cents), 0)
    ).filter(Sale.status == "COMPLETED", Sale.sold_at >= start).one()
    return count, int(total or 0)


def dashboard_stats(today: date | None = None) -> dict:
    """Shop front-page numbers: today's and this month's sales, stock and customers."""
    today = today or utc_today()
    day_start = datetime.combine(today, time.min)
    month_start = datetime.combine(start_of_month(today), time.min)

    today_count, today_total = _sales_since(day_start)
    month_count, month_total = _sales_since(month_start)

    active_products = db.session.query(Product).filter(Product.is_active.is_(True)).all()
    in_stock = [p for p in active_products if normalize_quantity(p.stock_quantity) > ZERO]
    low = [p for p in active_products if p.is_low_stock]

    active_customers = (
        db.session.query(func.count(Customer.id)).filter(Customer.is_active.is_(True)).scalar()
    )
    receivable = (
        db.session.query(func.coalesce(func.sum(Customer.debt_cents), 0)).scalar()
    )

    return {
        "date": today.isoformat(),
        "today": {"sale_count": today_count, "net_total_cents": today_total},
        "month": {"sale_count": month_count, "net_total_cents": month_total},
        "products_in_stock": len(in_stock),
        "low_stock_count": len(low),
        "active_customers": active_customers,
        "receivable_cents": int(receivable or 0),
    }


def purchase_report(*, from_date=None, to_date=None, top: int = 10) -> dict:
    """Confirmed purchase totals for the period, by supplier and by product."""
    base = db.session.query(Purchase).filter(Purchase.status == "CONFIRMED")
    if from_date:
        base = base.filter(Purchase.purchased_at >= from_date)
    if to_date:
        base = base.filter(Purchase.purchased_at <= to_date)
    confirmed = base.subquery()

    count, total = db.session.query(
        func.count(confirmed.c.id), func.coalesce(func.sum(confirmed.c.total_cents), 0)
    ).one()

    by_supplier = [
        {"supplier_id": sid, "supplier_name": name, "purchase_count": n, "total_cents": int(cents or 0)}
        for sid, name, n, cents in db.session.query(
            Supplier.id, Supplier.name, func.count(confirmed.c.id), func.sum(confirmed.c.total_cents)
        )
        .join(confirmed, confirmed.c.supplier_id == Supplier.id)
        .group_by(Supplier.id, Supplier.name)
        .order_by(func.sum(confirmed.c.total_cents).desc())
    ]

    top_products = [
        {
            "product_id": pid,
            "product_name": name,
            "quantity": quantity_to_json(normalize_quantity(qty)),
            "total_cents": int(cents or 0),
        }
        for pid, name, qty, cents in db.session.query(
            Product.id, Product.name, func.sum(PurchaseLine.quantity), func.sum(PurchaseLine.subtotal_cents)
        )
        .join(PurchaseLine, PurchaseLine.product_id == Product.id)
        .join(confirmed, confirmed.c.id == PurchaseLine.purchase_id)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(PurchaseLine.subtotal_cents).desc())
        .limit(top)
    ]

    pending_count = db.session.query(func.count(Purchase.id)).filter(Purchase.status == "PENDING").scalar()

    return {
        **_range_payload(from_date, to_date),
        "confirmed_count": count,
        "total_cents": int(total or 0),
        "average_cents": int(round(total / count)) if count else 0,
        "pending_count": pending_count,
        "by_supplier": by_supplier,
        "top_products": top_products,
    }


def supplier_report(*, from_date=None, to_date=None, top: int = 10) -> dict:
    """
    Active suppliers, how many of them still supply active products, their
    confirmed purchase volume in the period and which suppliers serve each
    product category.
    """
    confirmed = db.session.query(Purchase).filter(Purchase.status == "CONFIRMED")
    if from_date:
        confirmed = confirmed.filter(Purchase.purchased_at >= from_date)
    if to_date:
        confirmed = confirmed.filter(Purchase.purchased_at <= to_date)
    confirmed = confirmed.subquery()

    active_suppliers = (
        db.session.query(func.count(Supplier.id)).filter(Supplier.is_active.is_(True)).scalar()
    )
    with_products = (
        db.session.query(func.count(func.distinct(Product.supplier_id)))
        .join(Supplier, Supplier.id == Product.supplier_id)
        .filter(Supplier.is_active.is_(True), Product.is_active.is_(True))
        .scalar()
    )
    purchase_count, purchase_total = db.session.query(
        func.count(confirmed.c.id), func.coalesce(func.sum(confirmed.c.total_cents), 0)
    ).one()

    top_suppliers = [
        {
            "supplier_id": sid,
            "supplier_name": name,
            "phone": phone,
            "purchase_count": n,
            "total_cents": int(cents or 0),
        }
        for sid, name, phone, n, cents in db.session.query(
            Supplier.id, Supplier.name, Supplier.phone,
            func.count(confirmed.c.id), func.sum(confirmed.c.total_cents),
        )
        .join(confirmed, confirmed.c.supplier_id == Supplier.id)
        .filter(Supplier.is_active.is_(True))
        .group_by(Supplier.id, Supplier.name, Supplier.phone)
        .having(func.sum(confirmed.c.total_cents) > 0)
        .order_by(func.sum(confirmed.c.total_cents).desc())
        .limit(top)
    ]

    by_category: dict[int, dict] = {}
    rows = (
        db.session.query(Category.id, Category.name, Supplier.name)
        .join(Product, Product.category_id == Category.id)
        .join(Supplier, Supplier.id == Product.supplier_id)
        .filter(Category.is_active.is_(True), Product.is_active.is_(True))
        .distinct()
        .order_by(Category.name.asc(), Supplier.name.asc())
    )
    for category_id, category_name, supplier_name in rows:
        entry = by_category.setdefault(
            category_id, {"category_id": category_id, "category_name": category_name, "suppliers": []}
        )
        entry["suppliers"].append(supplier_name)
    for entry in by_category.values():
        entry["supplier_count"] = len(entry["suppliers"])

    return {
        **_range_payload(from_date, to_date),
        "active_suppliers": active_suppliers,
        "suppliers_with_products": with_products,
        "confirmed_purchase_count": purchase_count,
        "confirmed_purchase_total_cents": int(purchase_total or 0),
        "top_suppliers": top_suppliers,
        "by_category": list(by_category.values()),
    }


def stock_report(*, from_date=None, to_date=None, top: int = 10) -> dict:
    """
    Movement totals by direction and by reason within the period, plus the
    current stock position (low / out of stock, value at cost).
    """
    movement_q = db.session.query(StockMovement)
    if from_date:
        movement_q = movement_q.filter(StockMovement.occurred_at >= from_date)
    if to_date:
        movement_q = movement_q.filter(StockMovement.occurred_at <= to_date)
    filtered = movement_q.subquery()

    by_direction = {
        direction: {"count": count, "quantity": quantity_to_json(normalize_quantity(qty))}
        for direction, count, qty in db.session.query(
            filtered.c.direction, func.count(filtered.c.id), func.sum(filtered.c.quantity)
        ).group_by(filtered.c.direction)
    }
    by_reason = {
        reason: {"count": count, "quantity": quantity_to_json(normalize_quantity(qty))}
        for reason, count, qty in db.session.query(
            filtered.c.reason, func.count(filtered.c.id), func.sum(filtered.c.quantity)
        ).group_by(filtered.c.reason)
    }

    most_moved = [
        {
            "product_id": pid,
            "product_name": name,
            "movement_count": count,
            "quantity": quantity_to_json(normalize_quantity(qty)),
        }
        for pid, name, count, qty in db.session.query(
            Product.id, Product.name, func.count(filtered.c.id), func.sum(filtered.c.quantity)
        )
        .join(filtered, filtered.c.product_id == Product.id)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(filtered.c.quantity).desc())
        .limit(top)
    ]

    active = db.session.query(Product).filter(Product.is_active.is_(True)).all()
    low = [p for p in active if p.is_low_stock]
    out = [p for p in active if normalize_quantity(p.stock_quantity) == ZERO]

    return {
        **_range_payload(from_date, to_date),
        "movements": {
            "by_direction": by_direction,
            "by_reason": by_reason,
        },
        "most_moved_products": most_moved,
        "active_products": len(active),
        "low_stock_count": len(low),
        "out_of_stock_count": len(out),
        "stock_value_cents": sum(p.stock_value_cents for p in active),
        "low_stock_products": [p.to_dict() for p in low],
    }


def customer_report(*, top: int = 10, inactive_days: int = 90, today: date | None = None) -> dict:
    """Debt position, best customers by completed sales, and customers gone quiet."""
    today = today or utc_today()
    cutoff = datetime.combine(today - timedelta(days=inactive_days), time.min)

    total, active, with_debt, receivable = db.session.query(
        func.count(Customer.id),
        func.coalesce(func.sum(case((Customer.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Customer.debt_cents > 0, 1), else_=0)), 0),
        func.coalesce(func.sum(Customer.debt_cents), 0),
    ).one()

    last_sale = func.max(Sale.sold_at)
    best = [
        {
            "customer_id": cid,
            "name": name,
            "sale_count": n,
            "net_total_cents": int(cents or 0),
            "last_sale_at": to_utc_z(last) if isinstance(last, datetime) else last,
        }
        for cid, name, n, cents, last in db.session.query(
            Customer.id, Customer.name, func.count(Sale.id), func.sum(Sale.net_total_cents), last_sale
        )
        .join(Sale, Sale.customer_id == Customer.id)
        .filter(Sale.status == "COMPLETED")
        .group_by(Customer.id, Customer.name)
        .order_by(func.sum(Sale.net_total_cents).desc())
        .limit(top)
    ]

    recent_buyers = (
        select(Sale.customer_id)
        .where(Sale.status == "COMPLETED", Sale.sold_at >= cutoff, Sale.customer_id.isnot(None))
    )
    inactive = (
        db.session.query(Customer)
        .filter(Customer.is_active.is_(True), Customer.id.notin_(recent_buyers))
        .order_by(Customer.name.asc())
        .all()
    )

    debtors = (
        db.session.query(Customer)
        .filter(Customer.debt_cents > 0)
        .order_by(Customer.debt_cents.desc())
        .limit(top)
        .all()
    )

    return {
        "total_customers": total,
        "active_customers": int(active or 0),
        "customers_with_debt": int(with_debt or 0),
        "receivable_cents": int(receivable or 0),
        "top_debtors": [c.to_dict() for c in debtors],
        "best_customers": best,
        "inactive_days": inactive_days,
        "inactive_customers": [c.to_dict() for c in inactive],
    }
