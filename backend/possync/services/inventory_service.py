# Overview: Service-layer operations for inventory; encapsulates stock business logic and database work.

# backend/possync/services/inventory_service.py

from ..extensions import db
from ..errors import InvalidOperationError, InvalidStateError
from ..models import Product, StockMovement
from .concurrency import run_with_retry
from .lifecycle_service import new_record, require_live, touch
from .local_store import local_store
from .tenant_service import TenantScope, require_scope_arg, scoped_query
from ..validation import ValidationError
"""
Inventory Invariants (authoritative)

Stock model:
- Product.stock is the stored on-hand quantity (integer, never negative).
- Services carry no stock; stock operations on them are rejected.

Stock paths:
- adjust_stock is the single path for stock changes outside of sale processing
  (receiving, loss, inventory correction). It appends a StockMovement with a
  fresh movement_id in the same transaction as the stock update.
- record_sale decrements stock for 'product' lines through _decrement_stock_inner,
  without movement rows.

Business invariants:
- Stock may never go negative. A change that would do so aborts the whole
  transaction with InvalidStateError; nothing is written.
- A zero quantity change is accepted as a no-op: nothing is written and no
  sync signal fires.
"""


def _require_stocked_product(scope: TenantScope, product_id: str) -> Product:
    product = require_live(Product, scope, product_id)
    if product.type != "product":
        raise InvalidOperationError(
            "Stock cannot be adjusted on a service",
            details={"product_id": product_id, "type": product.type},
        )
    return product


def _apply_stock_delta(product: Product, quantity_change: int) -> int:
    new_stock = product.stock + quantity_change
    if new_stock < 0:
        raise InvalidStateError(
            "Stock cannot go negative",
            details={
                "product_id": product.id,
                "stock": product.stock,
                "quantity_change": quantity_change,
            },
        )
    product.stock = new_stock
    touch(product)
    return new_stock


def _decrement_stock_inner(scope: TenantScope, product_id: str, quantity: int) -> Product:
    """Sale-side decrement; runs inside the caller's transaction."""
    product = require_live(Product, scope, product_id)
    if product.type != "product":
        return product
    _apply_stock_delta(product, -quantity)
    db.session.flush()
    return product


def _adjust_stock_inner(
    scope: TenantScope,
    product_id: str,
    quantity_change: int,
    reason: str,
) -> StockMovement | None:
    """Core adjustment without retry or commit."""
    product = _require_stocked_product(scope, product_id)
    if quantity_change == 0:
        return None

    _apply_stock_delta(product, quantity_change)

    movement = new_record(
        StockMovement,
        scope,
        product_id=product.id,
        quantity_change=quantity_change,
        reason=reason,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def adjust_stock(
    scope: TenantScope,
    product_id: str,
    quantity_change: int,
    reason: str = "",
) -> StockMovement | None:
    """
    Change a product's stock by quantity_change and log the movement.

    Returns the StockMovement, or None for a zero change.

    Raises:
        SessionInvalidError: scope missing
        EntityNotFoundError: product missing in scope
        InvalidOperationError: product is a service
        InvalidStateError: resulting stock would be negative (nothing written)
    """
    scope = require_scope_arg(scope)
    if isinstance(quantity_change, bool) or not isinstance(quantity_change, int):
        raise ValidationError("quantity_change must be an integer")
    reason = (reason or "").strip()
    if len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")

    def _op():
        with local_store.transaction():
            return _adjust_stock_inner(scope, product_id, quantity_change, reason)

    return run_with_retry(_op)


def list_stock_movements(scope: TenantScope, product_id: str | None = None) -> list[StockMovement]:
    """Stock history, newest first, optionally for one product."""
    scope = require_scope_arg(scope)
    q = scoped_query(StockMovement, scope)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).all()
