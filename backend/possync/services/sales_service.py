"""
Sales Service - checkout and the sale/stock transaction

WHY: A sale and the stock decrements it causes must land together or not at
all. record_sale writes the Sale and every 'product' line decrement inside one
local store transaction; if any referenced product is missing or would go
negative, nothing is written and the cart is left intact for retry.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..models import (
    Customer,
    Product,
    Sale,
    PAYMENT_METHODS,
    PRODUCT_TYPES,
    MOBILE_MONEY_PROVIDERS,
)
from ..validation import ValidationError, require_amount
from .concurrency import run_with_retry
from .inventory_service import _decrement_stock_inner
from .lifecycle_service import new_record, require_live
from .local_store import local_store
from .tenant_service import TenantScope, require_scope_arg


@dataclass(frozen=True)
class LineItem:
    """Snapshot of a catalog entry at sale time."""
    id: str
    name: str
    price: int
    quantity: int
    type: str = "product"

    @classmethod
    def from_dict(cls, data: dict) -> "LineItem":
        if not isinstance(data, dict):
            raise ValidationError("each item must be an object")
        missing = [k for k in ("id", "name", "price", "quantity") if k not in data]
        if missing:
            raise ValidationError(f"item missing fields: {', '.join(missing)}")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            price=data["price"],
            quantity=data["quantity"],
            type=data.get("type", "product"),
        )

    def validate(self) -> None:
        if not self.id:
            raise ValidationError("item id is required")
        require_amount("item price", self.price)
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValidationError("item quantity must be a positive integer")
        if self.type not in PRODUCT_TYPES:
            raise ValidationError(f"item type must be one of: {', '.join(PRODUCT_TYPES)}")

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "type": self.type,
        }


@dataclass
class SaleDraft:
    """
    Checkout input. Totals are computed by the caller (see Cart.totals) and
    stored as given.
    """
    items: list
    payment_method: str
    subtotal: int
    total: int
    discount: int = 0
    vat: int = 0
    payment_details: dict = field(default_factory=dict)
    customer_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleDraft":
        if not isinstance(data, dict):
            raise ValidationError("Invalid payload")
        items = data.get("items")
        if not isinstance(items, list):
            raise ValidationError("items must be a list")
        for key in ("payment_method", "subtotal", "total"):
            if key not in data:
                raise ValidationError(f"Missing required fields: {key}")
        details = data.get("payment_details") or {}
        if not isinstance(details, dict):
            raise ValidationError("payment_details must be an object")
        return cls(
            items=[LineItem.from_dict(i) for i in items],
            payment_method=data["payment_method"],
            subtotal=data["subtotal"],
            total=data["total"],
            discount=data.get("discount", 0),
            vat=data.get("vat", 0),
            payment_details=details,
            customer_id=data.get("customer_id") or None,
        )


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class Cart:
    """
    In-memory cart for one checkout. Lines are keyed by product id and keep
    insertion order. record_sale clears it only after a successful commit.
    """

    def __init__(self):
        self._lines: "OrderedDict[str, LineItem]" = OrderedDict()

    def add(self, product, quantity: int = 1) -> LineItem:
        if isinstance(product, Product):
            snapshot = LineItem(product.id, product.name, product.price, quantity, product.type)
        else:
            snapshot = LineItem.from_dict({**product, "quantity": quantity})

        existing = self._lines.get(snapshot.id)
        if existing is not None:
            snapshot = LineItem(existing.id, existing.name, existing.price, existing.quantity + quantity, existing.type)
        snapshot.validate()
        self._lines[snapshot.id] = snapshot
        return snapshot

    def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line."""
        line = self._lines.get(product_id)
        if line is None:
            return
        if quantity <= 0:
            del self._lines[product_id]
            return
        self._lines[product_id] = LineItem(line.id, line.name, line.price, quantity, line.type)

    def remove(self, product_id: str) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    @property
    def items(self) -> list[LineItem]:
        return list(self._lines.values())

    def __len__(self) -> int:
        return len(self._lines)

    def subtotal(self) -> int:
        return sum(line.line_total for line in self._lines.values())

    def totals(self, *, discount: int = 0, apply_vat: bool = False, vat_rate: float | None = None) -> dict:
        """
        subtotal - discount, plus VAT on the discounted amount when applied
        (half-up rounding to the smallest currency unit). vat_rate defaults to
        the application's VAT_RATE.
        """
        if apply_vat and vat_rate is None:
            vat_rate = current_app.config["VAT_RATE"]
        subtotal = self.subtotal()
        require_amount("discount", discount)
        if discount > subtotal:
            raise ValidationError("discount cannot exceed subtotal")
        base = subtotal - discount
        vat = _round_half_up(Decimal(base) * Decimal(str(vat_rate))) if apply_vat else 0
        return {
            "subtotal": subtotal,
            "discount": discount,
            "vat": vat,
            "total": base + vat,
        }

    def to_draft(
        self,
        payment_method: str,
        payment_details: dict | None = None,
        *,
        discount: int = 0,
        apply_vat: bool = False,
        vat_rate: float | None = None,
        customer_id: str | None = None,
    ) -> SaleDraft:
        totals = self.totals(discount=discount, apply_vat=apply_vat, vat_rate=vat_rate)
        return SaleDraft(
            items=self.items,
            payment_method=payment_method,
            payment_details=dict(payment_details or {}),
            customer_id=customer_id,
            **totals,
        )


def _normalize_payment_details(draft: SaleDraft) -> dict:
    method = draft.payment_method
    details = draft.payment_details or {}

    if method == "cash":
        amount_given = details.get("amount_given", draft.total)
        require_amount("amount_given", amount_given)
        if amount_given < draft.total:
            raise ValidationError(
                "amount given is less than the sale total",
            )
        return {"amount_given": amount_given, "change": amount_given - draft.total}

    if method == "mobile_money":
        provider = details.get("provider")
        reference = str(details.get("reference") or "").strip()
        if provider not in MOBILE_MONEY_PROVIDERS:
            raise ValidationError(f"provider must be one of: {', '.join(MOBILE_MONEY_PROVIDERS)}")
        if not reference:
            raise ValidationError("mobile money reference is required")
        return {"provider": provider, "reference": reference}

    if method == "card":
        reference = str(details.get("reference") or "").strip()
        return {"reference": reference} if reference else {}

    # credit: settled later through credit payments
    return {}


def _validate_draft(draft: SaleDraft) -> dict:
    if not draft.items:
        raise ValidationError("Cannot record a sale with no items")
    for line in draft.items:
        if not isinstance(line, LineItem):
            raise ValidationError("items must be LineItem snapshots")
        line.validate()

    for name in ("subtotal", "discount", "vat", "total"):
        require_amount(name, getattr(draft, name))

    if draft.payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    if draft.payment_method == "credit" and not draft.customer_id:
        raise ValidationError("customer_id is required for credit sales")

    return _normalize_payment_details(draft)


def _record_sale_inner(scope: TenantScope, draft: SaleDraft, payment_details: dict) -> Sale:
    """Core sale write without retry or commit."""
    if draft.customer_id:
        require_live(Customer, scope, draft.customer_id)

    if draft.payment_method == "credit" and draft.total > 0:
        status = "unpaid"
    else:
        status = "paid"

    sale = new_record(
        Sale,
        scope,
        items=[line.to_dict() for line in draft.items],
        subtotal=draft.subtotal,
        discount=draft.discount,
        vat=draft.vat,
        total=draft.total,
        payment_method=draft.payment_method,
        payment_details=payment_details,
        status=status,
        customer_id=draft.customer_id,
    )
    db.session.add(sale)
    db.session.flush()

    for line in draft.items:
        if line.type != "product":
            continue
        _decrement_stock_inner(scope, line.id, line.quantity)

    return sale


def record_sale(scope: TenantScope, draft: SaleDraft, *, cart: Cart | None = None) -> Sale:
    """
    Persist a sale and decrement stock for its 'product' lines atomically.

    On success the cart (if given) is cleared. On failure nothing is written
    and the cart is left as it was.

    Raises:
        SessionInvalidError: scope missing
        ValidationError: malformed draft, credit without customer, cash short
        EntityNotFoundError: a referenced product or customer does not exist
        InvalidStateError: a line would drive stock negative
    """
    scope = require_scope_arg(scope)
    payment_details = _validate_draft(draft)

    def _op():
        with local_store.transaction():
            return _record_sale_inner(scope, draft, payment_details)

    sale = run_with_retry(_op)

    if cart is not None:
        cart.clear()
    return sale
