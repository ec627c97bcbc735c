# Overview: Service-layer operations for entity lifecycle; generic create/update/soft-delete for every synced kind.

"""
Entity Lifecycle Service

================================================================================
PURPOSE: One place that stamps tenant scope, timestamps and sync status
================================================================================

Every synchronized entity moves through the same lifecycle:

    create -> (update)* -> soft delete -> purged by the sync engine

    create:      id generated as "{prefix}_{epoch_ms}_{random}", stamped with
                 company_id/pos_id from the operation's scope, created_at,
                 updated_at, sync_status='pending', deleted=False
    update:      patch merged, updated_at refreshed, sync_status='pending'
    soft delete: an update setting deleted=True. The row stays until the sync
                 engine confirms the remote authority accepted the deletion.

RULES:
1. id, company_id, pos_id are never writable through a patch
2. Updating or deleting an id that is missing, out of scope, or already
   soft-deleted raises EntityNotFoundError
3. Product stock changes only through adjust_stock / record_sale after create
4. No network I/O happens here; committed writes signal the sync engine
   through the local store change feed

Kinds whose rows carry cross-table invariants (sales, stockMovements,
creditPayments) are written only by their mutators: create_entity,
update_entity and delete_entity refuse them.
================================================================================
"""

from __future__ import annotations

import secrets
import string
import time

from ..extensions import db
from ..errors import EntityNotFoundError, InvalidOperationError
from ..models import (
    SYNCED_MODELS,
    PRODUCT_TYPES,
    EXPENSE_CATEGORIES,
    Product,
    Sale,
    Supplier,
)
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_product,
    enforce_rules_expense,
)
from .concurrency import run_with_retry
from .local_store import local_store
from .tenant_service import TenantScope, require_scope_arg, scoped_query


CREATE_POLICIES = {
    "products": ModelValidationPolicy(
        writable_fields=frozenset({"name", "barcode", "price", "stock", "type", "supplier_id"}),
        required_on_create=frozenset({"name", "price"}),
        choices={"type": PRODUCT_TYPES},
    ),
    "expenses": ModelValidationPolicy(
        writable_fields=frozenset({"description", "amount", "category"}),
        required_on_create=frozenset({"description", "amount", "category"}),
        choices={"category": EXPENSE_CATEGORIES},
    ),
    "suppliers": ModelValidationPolicy(
        writable_fields=frozenset({"name", "contact_person", "phone", "email", "address"}),
        required_on_create=frozenset({"name"}),
    ),
    "customers": ModelValidationPolicy(
        writable_fields=frozenset({"name", "phone", "email", "address"}),
        required_on_create=frozenset({"name"}),
    ),
}

UPDATE_POLICIES = {
    **CREATE_POLICIES,
    "products": ModelValidationPolicy(
        writable_fields=CREATE_POLICIES["products"].writable_fields - {"stock"},
        choices={"type": PRODUCT_TYPES},
    ),
}

# Rows that point at a kind without owning it: deleting the target clears the column
NON_OWNING_REFERENCES = {
    "suppliers": ((Product, "supplier_id"),),
    "customers": ((Sale, "customer_id"),),
}

_RULES = {
    "products": enforce_rules_product,
    "expenses": enforce_rules_expense,
}

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str) -> str:
    """Client-generated, globally unique id: {prefix}_{epoch_ms}_{random}."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def model_for(kind: str):
    model = SYNCED_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown entity kind: {kind}")
    return model


def touch(obj) -> None:
    """Mark a row as locally changed."""
    obj.updated_at = utcnow()
    obj.sync_status = "pending"


def new_record(model, scope: TenantScope, **fields):
    """Instantiate a row stamped with scope, timestamps and pending status."""
    now = utcnow()
    identity = generate_id(model.id_prefix)
    fields.setdefault(model.sync_key, identity)
    return model(
        company_id=scope.company_id,
        pos_id=scope.pos_id,
        created_at=now,
        updated_at=now,
        sync_status="pending",
        deleted=False,
        **fields,
    )


def find_live(model, scope: TenantScope, entity_id: str):
    """Scoped, not soft-deleted lookup by the kind's stable identity; None if absent."""
    key_col = getattr(model, model.sync_key)
    return scoped_query(model, scope).filter(key_col == entity_id).first()


def require_live(model, scope: TenantScope, entity_id: str):
    obj = find_live(model, scope, entity_id)
    if obj is None:
        raise EntityNotFoundError(
            f"{model.__name__} {entity_id} not found",
            details={"kind": model.__tablename__, "id": entity_id},
        )
    return obj


def _validate(kind: str, payload: dict, *, partial: bool) -> dict:
    model = model_for(kind)
    policies = UPDATE_POLICIES if partial else CREATE_POLICIES
    policy = policies.get(kind)
    if policy is None:
        raise InvalidOperationError(
            f"{kind} cannot be {'updated' if partial else 'created'} generically; use its dedicated operation"
        )
    if partial and kind == "products" and "stock" in (payload or {}):
        raise ValidationError("stock can only change through adjust_stock or record_sale")

    patch = validate_payload(model=model, payload=payload, policy=policy, partial=partial)
    rule = _RULES.get(kind)
    if rule is not None:
        rule(patch)
    return patch


def _apply_product_rules(scope: TenantScope, product: Product) -> None:
    if product.type == "service":
        product.stock = 0
        product.barcode = ""
    if product.barcode is None:
        product.barcode = ""
    if product.supplier_id:
        if find_live(Supplier, scope, product.supplier_id) is None:
            raise EntityNotFoundError(
                f"Supplier {product.supplier_id} not found",
                details={"kind": "suppliers", "id": product.supplier_id},
            )


def _create_entity_inner(scope: TenantScope, kind: str, patch: dict):
    """Core create without retry or commit; runs inside the caller's transaction."""
    model = model_for(kind)
    obj = new_record(model, scope, **patch)
    if isinstance(obj, Product):
        if obj.type is None:
            obj.type = "product"
        if obj.stock is None:
            obj.stock = 0
        _apply_product_rules(scope, obj)
    db.session.add(obj)
    db.session.flush()
    return obj


def _update_entity_inner(scope: TenantScope, kind: str, entity_id: str, patch: dict):
    """Core update without validation, retry or commit; patch is trusted here."""
    model = model_for(kind)
    obj = require_live(model, scope, entity_id)
    for key, value in patch.items():
        setattr(obj, key, value)
    if isinstance(obj, Product):
        _apply_product_rules(scope, obj)
    touch(obj)
    db.session.flush()
    return obj


def _unlink_references(scope: TenantScope, kind: str, entity_id: str) -> int:
    unlinked = 0
    for model, column in NON_OWNING_REFERENCES.get(kind, ()):
        rows = scoped_query(model, scope).filter(getattr(model, column) == entity_id).all()
        for row in rows:
            setattr(row, column, None)
            touch(row)
        unlinked += len(rows)
    return unlinked


def _soft_delete_inner(scope: TenantScope, kind: str, entity_id: str):
    obj = _update_entity_inner(scope, kind, entity_id, {"deleted": True})
    _unlink_references(scope, kind, entity_id)
    db.session.flush()
    return obj


def create_entity(scope: TenantScope, kind: str, payload: dict) -> str:
    """
    Create an entity of `kind` in `scope` and return its id.

    Raises:
        SessionInvalidError: scope missing
        ValidationError: payload rejected by the kind's policy
        InvalidOperationError: kind is created through a dedicated mutator
        EntityNotFoundError: a referenced supplier does not exist
    """
    scope = require_scope_arg(scope)
    patch = _validate(kind, payload, partial=False)

    def _op():
        with local_store.transaction():
            obj = _create_entity_inner(scope, kind, patch)
            return obj.sync_identity

    return run_with_retry(_op)


def update_entity(scope: TenantScope, kind: str, entity_id: str, payload: dict):
    """Merge `payload` into a live entity; refreshes updated_at and marks it pending."""
    scope = require_scope_arg(scope)
    patch = _validate(kind, payload, partial=True)

    def _op():
        with local_store.transaction():
            return _update_entity_inner(scope, kind, entity_id, patch)

    return run_with_retry(_op)


def delete_entity(scope: TenantScope, kind: str, entity_id: str):
    """
    Soft delete: an update setting deleted=True, so the deletion is itself a
    syncable change. Never removes the row.

    Sales, stock movements and credit payments carry cross-table invariants
    (stock, paid status) and cannot be deleted here: InvalidOperationError.
    """
    scope = require_scope_arg(scope)
    model_for(kind)
    if kind not in CREATE_POLICIES:
        raise InvalidOperationError(
            f"{kind} cannot be deleted generically; its rows are owned by their mutator",
            details={"kind": kind, "id": entity_id},
        )

    def _op():
        with local_store.transaction():
            return _soft_delete_inner(scope, kind, entity_id)

    return run_with_retry(_op)


def delete_supplier(scope: TenantScope, supplier_id: str):
    """Soft delete a supplier; products that referenced it keep existing, unlinked."""
    return delete_entity(scope, "suppliers", supplier_id)


def delete_customer(scope: TenantScope, customer_id: str):
    """Soft delete a customer; their sales keep existing with customer_id cleared."""
    return delete_entity(scope, "customers", customer_id)
