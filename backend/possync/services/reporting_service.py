# Overview: Service-layer operations for reporting; read-only aggregates over the scoped local data.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..models import CreditPayment, Customer, Expense, Product, Sale, EXPENSE_CATEGORIES, PAYMENT_METHODS
from ..time_utils import parse_iso_datetime, utcnow, to_utc_z
from ..validation import ValidationError
from .tenant_service import TenantScope, require_scope_arg, scoped_query


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError as exc:
        raise ValidationError(f"Invalid date range: {exc}") from exc
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _day_bounds(day: datetime) -> tuple[datetime, datetime]:
    start = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def _revenue(scope: TenantScope, start_dt: datetime | None = None, end_dt: datetime | None = None) -> int:
    query = scoped_query(Sale, scope).with_entities(func.coalesce(func.sum(Sale.total), 0))
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at < end_dt)
    return int(query.scalar() or 0)


def _sales_count(scope: TenantScope, start_dt: datetime, end_dt: datetime) -> int:
    return (
        scoped_query(Sale, scope)
        .filter(Sale.created_at >= start_dt, Sale.created_at < end_dt)
        .count()
    )


def dashboard_summary(scope: TenantScope, *, low_stock_threshold: int = 10, now: datetime | None = None) -> dict:
    """
    Headline figures for the dashboard.

    Days are UTC calendar days. Credit sales count toward revenue when they
    are recorded, not when they are settled.
    """
    scope = require_scope_arg(scope)
    now = now or utcnow()
    today_start, today_end = _day_bounds(now)
    yesterday_start = today_start - timedelta(days=1)

    products = scoped_query(Product, scope).filter(Product.type == "product")

    expenses_total = int(
        scoped_query(Expense, scope)
        .with_entities(func.coalesce(func.sum(Expense.amount), 0))
        .scalar() or 0
    )
    stock_value = int(
        products.with_entities(func.coalesce(func.sum(Product.price * Product.stock), 0)).scalar() or 0
    )

    return {
        "as_of": to_utc_z(now),
        "revenue_today": _revenue(scope, today_start, today_end),
        "revenue_yesterday": _revenue(scope, yesterday_start, today_start),
        "sales_count_today": _sales_count(scope, today_start, today_end),
        "revenue_all_time": _revenue(scope),
        "expenses_total": expenses_total,
        "product_count": scoped_query(Product, scope).count(),
        "low_stock_count": products.filter(
            Product.stock > 0,
            Product.stock <= low_stock_threshold,
        ).count(),
        "stock_value": stock_value,
    }


def revenue_by_payment_method(scope: TenantScope, *, start: str | None = None, end: str | None = None) -> dict:
    scope = require_scope_arg(scope)
    start_dt, end_dt = _parse_range(start, end)

    query = scoped_query(Sale, scope).with_entities(
        Sale.payment_method,
        func.count(Sale.id).label("sales_count"),
        func.coalesce(func.sum(Sale.total), 0).label("revenue"),
    )
    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)

    found = {row.payment_method: row for row in query.group_by(Sale.payment_method).all()}
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": [
            {
                "payment_method": method,
                "sales_count": int(found[method].sales_count) if method in found else 0,
                "revenue": int(found[method].revenue) if method in found else 0,
            }
            for method in PAYMENT_METHODS
        ],
    }


def expenses_by_category(scope: TenantScope, *, start: str | None = None, end: str | None = None) -> dict:
    scope = require_scope_arg(scope)
    start_dt, end_dt = _parse_range(start, end)

    query = scoped_query(Expense, scope).with_entities(
        Expense.category,
        func.coalesce(func.sum(Expense.amount), 0).label("amount"),
    )
    if start_dt:
        query = query.filter(Expense.created_at >= start_dt)
    if end_dt:
        query = query.filter(Expense.created_at <= end_dt)

    totals = {row.category: int(row.amount) for row in query.group_by(Expense.category).all()}
    rows = [
        {"category": category, "amount": totals[category]}
        for category in EXPENSE_CATEGORIES
        if totals.get(category)
    ]
    rows.sort(key=lambda r: r["amount"], reverse=True)
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "total": sum(totals.values()),
        "rows": rows,
    }


def low_stock_products(scope: TenantScope, *, threshold: int = 10) -> list[dict]:
    """Stocked products with 0 < stock <= threshold, lowest first."""
    scope = require_scope_arg(scope)
    products = (
        scoped_query(Product, scope)
        .filter(Product.type == "product", Product.stock > 0, Product.stock <= threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )
    return [p.to_dict() for p in products]


def customer_credit_summary(scope: TenantScope) -> list[dict]:
    """Per customer: total still due on unpaid credit sales, largest first."""
    scope = require_scope_arg(scope)

    paid_by_sale = dict(
        scoped_query(CreditPayment, scope)
        .with_entities(CreditPayment.sale_id, func.sum(CreditPayment.amount))
        .group_by(CreditPayment.sale_id)
        .all()
    )
    unpaid = (
        scoped_query(Sale, scope)
        .filter(Sale.status == "unpaid", Sale.customer_id.isnot(None))
        .all()
    )

    per_customer: dict[str, dict] = {}
    for sale in unpaid:
        due = sale.total - int(paid_by_sale.get(sale.id) or 0)
        if due <= 0:
            continue
        entry = per_customer.setdefault(sale.customer_id, {"total_due": 0, "unpaid_sales": 0})
        entry["total_due"] += due
        entry["unpaid_sales"] += 1

    if not per_customer:
        return []

    names = dict(
        scoped_query(Customer, scope)
        .filter(Customer.id.in_(list(per_customer)))
        .with_entities(Customer.id, Customer.name)
        .all()
    )
    rows = [
        {
            "customer_id": customer_id,
            "customer_name": names.get(customer_id),
            **entry,
        }
        for customer_id, entry in per_customer.items()
    ]
    rows.sort(key=lambda r: (-r["total_due"], r["customer_name"] or ""))
    return rows
