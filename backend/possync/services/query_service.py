# Overview: Read side of the local store; scoped collection reads and live queries.

"""
Query API

Callers receive the full current collection for the active scope, with
soft-deleted rows filtered out. No pagination.

Live queries re-emit whenever a committed transaction touches the collection,
including sync reconciliation (sync_status flips and purges).
"""

from __future__ import annotations

from typing import Callable

from ..models import (
    Product,
    Sale,
    StockMovement,
    Expense,
    Supplier,
    Customer,
    CreditPayment,
)
from .lifecycle_service import model_for, require_live
from .local_store import local_store, Subscription
from .tenant_service import TenantScope, require_scope_arg, scoped_query


DEFAULT_ORDERING = {
    Product: (Product.name.asc(), Product.id.asc()),
    Sale: (Sale.created_at.desc(), Sale.id.desc()),
    StockMovement: (StockMovement.created_at.desc(), StockMovement.id.desc()),
    Expense: (Expense.created_at.desc(), Expense.id.desc()),
    Supplier: (Supplier.name.asc(), Supplier.id.asc()),
    Customer: (Customer.name.asc(), Customer.id.asc()),
    CreditPayment: (CreditPayment.created_at.asc(), CreditPayment.id.asc()),
}


def list_records(scope: TenantScope, kind: str) -> list:
    scope = require_scope_arg(scope)
    model = model_for(kind)
    return scoped_query(model, scope).order_by(*DEFAULT_ORDERING[model]).all()


def list_entities(scope: TenantScope, kind: str) -> list[dict]:
    return [obj.to_dict() for obj in list_records(scope, kind)]


def get_entity(scope: TenantScope, kind: str, entity_id: str) -> dict:
    scope = require_scope_arg(scope)
    return require_live(model_for(kind), scope, entity_id).to_dict()


def live_entities(scope: TenantScope, kind: str, callback: Callable[[list[dict]], None]) -> Subscription:
    """
    Subscribe to a scoped collection. `callback` receives the current list now
    and again after every committed change to `kind`. The scope is captured
    at subscription time.
    """
    scope = require_scope_arg(scope)
    model_for(kind)
    return local_store.live([kind], lambda: list_entities(scope, kind), callback)
