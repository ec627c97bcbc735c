# Overview: Flask API routes for dashboard and report data; read-only.

from flask import Blueprint, request, g, current_app

from ..decorators import require_scope, handle_domain_errors
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_scope
@handle_domain_errors
def dashboard():
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    return {
        "summary": reporting_service.dashboard_summary(g.scope, low_stock_threshold=threshold),
        "low_stock": reporting_service.low_stock_products(g.scope, threshold=threshold),
    }


@reports_bp.get("/revenue")
@require_scope
@handle_domain_errors
def revenue():
    """Query params: start, end (ISO-8601, optional)"""
    return {
        "by_payment_method": reporting_service.revenue_by_payment_method(
            g.scope,
            start=request.args.get("start"),
            end=request.args.get("end"),
        ),
        "expenses_by_category": reporting_service.expenses_by_category(
            g.scope,
            start=request.args.get("start"),
            end=request.args.get("end"),
        ),
    }


@reports_bp.get("/credits")
@require_scope
@handle_domain_errors
def credits():
    rows = reporting_service.customer_credit_summary(g.scope)
    return {"rows": rows, "total_due": sum(r["total_due"] for r in rows)}
