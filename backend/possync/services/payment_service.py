"""
Credit Payment Service

Credit sales are recorded with status='unpaid' and settled later by one or
more CreditPayment rows.

INVARIANTS:
- outstanding(sale) = sale.total - sum(live credit payments for the sale)
- A payment must be > 0 and <= outstanding; overpayment raises InvalidStateError
- Once the payments for a sale reach its total, the sale flips to 'paid' in
  the same transaction as the payment that settled it
- Only credit sales accept credit payments

A lump payment for a customer is allocated across that customer's unpaid
sales oldest-first (settle_customer_credit), one payment per sale.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import InvalidOperationError, InvalidStateError
from ..models import CreditPayment, Customer, Sale, CREDIT_PAYMENT_METHODS
from ..validation import ValidationError, require_amount
from .concurrency import run_with_retry
from .lifecycle_service import new_record, require_live, touch
from .local_store import local_store
from .tenant_service import TenantScope, require_scope_arg, scoped_query


def _validate_method(payment_method: str) -> None:
    if payment_method not in CREDIT_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(CREDIT_PAYMENT_METHODS)}")


def paid_total(scope: TenantScope, sale_id: str) -> int:
    total = (
        scoped_query(CreditPayment, scope)
        .with_entities(func.coalesce(func.sum(CreditPayment.amount), 0))
        .filter(CreditPayment.sale_id == sale_id)
        .scalar()
    )
    return int(total or 0)


def outstanding_balance(scope: TenantScope, sale_id: str) -> int:
    """Amount still due on a sale; never negative."""
    scope = require_scope_arg(scope)
    sale = require_live(Sale, scope, sale_id)
    return max(sale.total - paid_total(scope, sale.id), 0)


def _add_credit_payment_inner(
    scope: TenantScope,
    sale_id: str,
    amount: int,
    payment_method: str,
) -> CreditPayment:
    """Core credit payment without retry or commit."""
    sale = require_live(Sale, scope, sale_id)
    if sale.payment_method != "credit":
        raise InvalidOperationError(
            "Credit payments apply to credit sales only",
            details={"sale_id": sale_id, "payment_method": sale.payment_method},
        )

    outstanding = sale.total - paid_total(scope, sale.id)
    if sale.status == "paid" or outstanding <= 0:
        raise InvalidStateError("Sale is already paid", details={"sale_id": sale_id})
    if amount > outstanding:
        raise InvalidStateError(
            "Payment exceeds outstanding balance",
            details={"sale_id": sale_id, "amount": amount, "outstanding": outstanding},
        )

    payment = new_record(
        CreditPayment,
        scope,
        sale_id=sale.id,
        amount=amount,
        payment_method=payment_method,
    )
    db.session.add(payment)
    db.session.flush()

    if paid_total(scope, sale.id) >= sale.total:
        sale.status = "paid"
        touch(sale)
        db.session.flush()

    return payment


def add_credit_payment(
    scope: TenantScope,
    sale_id: str,
    amount: int,
    payment_method: str,
) -> CreditPayment:
    """
    Record a payment against one credit sale; flips it to 'paid' when settled.

    Raises:
        SessionInvalidError: scope missing
        ValidationError: amount not a positive integer, unknown method
        EntityNotFoundError: sale missing in scope
        InvalidOperationError: sale was not a credit sale
        InvalidStateError: sale already paid, or amount above outstanding
    """
    scope = require_scope_arg(scope)
    require_amount("amount", amount, positive=True)
    _validate_method(payment_method)

    def _op():
        with local_store.transaction():
            return _add_credit_payment_inner(scope, sale_id, amount, payment_method)

    return run_with_retry(_op)


def unpaid_sales_for_customer(scope: TenantScope, customer_id: str) -> list[tuple[Sale, int]]:
    """Unpaid credit sales with their outstanding balance, oldest first."""
    sales = (
        scoped_query(Sale, scope)
        .filter(Sale.customer_id == customer_id, Sale.status == "unpaid")
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )
    result = []
    for sale in sales:
        balance = sale.total - paid_total(scope, sale.id)
        if balance > 0:
            result.append((sale, balance))
    return result


def settle_customer_credit(
    scope: TenantScope,
    customer_id: str,
    amount: int,
    payment_method: str,
) -> list[CreditPayment]:
    """
    Allocate a lump payment across a customer's unpaid sales, oldest first,
    until it is exhausted. All allocations commit together.

    Raises:
        InvalidStateError: amount exceeds the customer's total due
    """
    scope = require_scope_arg(scope)
    require_amount("amount", amount, positive=True)
    _validate_method(payment_method)

    def _op():
        with local_store.transaction():
            require_live(Customer, scope, customer_id)
            open_sales = unpaid_sales_for_customer(scope, customer_id)
            total_due = sum(balance for _, balance in open_sales)
            if amount > total_due:
                raise InvalidStateError(
                    "Payment exceeds customer's total due",
                    details={"customer_id": customer_id, "amount": amount, "total_due": total_due},
                )

            payments = []
            remaining = amount
            for sale, balance in open_sales:
                if remaining <= 0:
                    break
                applied = min(remaining, balance)
                payments.append(_add_credit_payment_inner(scope, sale.id, applied, payment_method))
                remaining -= applied
            return payments

    return run_with_retry(_op)
