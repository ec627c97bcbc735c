# Overview: Flask API routes for checkout and credit settlement; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_scope, handle_domain_errors
from ..services.payment_service import (
    add_credit_payment,
    outstanding_balance,
    settle_customer_credit,
    unpaid_sales_for_customer,
)
from ..services.sales_service import SaleDraft, record_sale
from ..validation import ValidationError

sales_bp = Blueprint("sales", __name__, url_prefix="/api")


@sales_bp.post("/sales")
@require_scope
@handle_domain_errors
def create_sale():
    """
    Record a sale and decrement stock for its product lines atomically.

    Body:
    {
        "items": [{"id", "name", "price", "quantity", "type"}],
        "subtotal": int, "discount": int, "vat": int, "total": int,
        "payment_method": "cash" | "mobile_money" | "card" | "credit",
        "payment_details": {...},
        "customer_id": str (required for credit)
    }
    """
    draft = SaleDraft.from_dict(request.get_json(silent=True) or {})
    sale = record_sale(g.scope, draft)
    return sale.to_dict(), 201


@sales_bp.get("/sales/<sale_id>/balance")
@require_scope
@handle_domain_errors
def sale_balance(sale_id: str):
    return {"sale_id": sale_id, "outstanding": outstanding_balance(g.scope, sale_id)}


def _payment_fields(payload: dict) -> tuple:
    if "amount" not in payload or "payment_method" not in payload:
        raise ValidationError("Missing required fields: amount, payment_method")
    return payload["amount"], payload["payment_method"]


@sales_bp.post("/sales/<sale_id>/credit-payments")
@require_scope
@handle_domain_errors
def create_credit_payment(sale_id: str):
    """Body: {"amount": int, "payment_method": "cash" | "mobile_money" | "card"}"""
    amount, method = _payment_fields(request.get_json(silent=True) or {})
    payment = add_credit_payment(g.scope, sale_id, amount, method)
    return {
        "payment": payment.to_dict(),
        "outstanding": outstanding_balance(g.scope, sale_id),
    }, 201


@sales_bp.get("/customers/<customer_id>/credit")
@require_scope
@handle_domain_errors
def customer_credit(customer_id: str):
    open_sales = unpaid_sales_for_customer(g.scope, customer_id)
    return {
        "customer_id": customer_id,
        "total_due": sum(balance for _, balance in open_sales),
        "sales": [{**sale.to_dict(), "outstanding": balance} for sale, balance in open_sales],
    }


@sales_bp.post("/customers/<customer_id>/settle")
@require_scope
@handle_domain_errors
def settle_customer(customer_id: str):
    """Allocate a lump payment across the customer's unpaid sales, oldest first."""
    amount, method = _payment_fields(request.get_json(silent=True) or {})
    payments = settle_customer_credit(g.scope, customer_id, amount, method)
    return {"payments": [p.to_dict() for p in payments]}, 201
