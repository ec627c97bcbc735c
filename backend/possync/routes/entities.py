# Overview: Flask API routes for generic entity CRUD; parses input and returns JSON responses.

"""
Generic entity routes, one set for every synchronized kind:

    GET    /api/<kind>          scoped collection, soft-deleted rows excluded
    POST   /api/<kind>          create (products, expenses, suppliers, customers)
    GET    /api/<kind>/<id>
    PATCH  /api/<kind>/<id>     partial update
    DELETE /api/<kind>/<id>     soft delete

Kinds use their wire names (products, sales, stockMovements, expenses,
suppliers, customers, creditPayments). Sales, stock movements and credit
payments are written through their dedicated routes; a generic create,
update or delete on them answers 409.
"""
from flask import Blueprint, request, g

from ..decorators import require_scope, handle_domain_errors
from ..services.lifecycle_service import create_entity, update_entity, delete_entity
from ..services.query_service import list_entities, get_entity

entities_bp = Blueprint("entities", __name__, url_prefix="/api")


@entities_bp.get("/<kind>")
@require_scope
@handle_domain_errors
def list_kind(kind: str):
    items = list_entities(g.scope, kind)
    return {"items": items, "count": len(items)}


@entities_bp.post("/<kind>")
@require_scope
@handle_domain_errors
def create_kind(kind: str):
    payload = request.get_json(silent=True) or {}
    entity_id = create_entity(g.scope, kind, payload)
    return get_entity(g.scope, kind, entity_id), 201


@entities_bp.get("/<kind>/<entity_id>")
@require_scope
@handle_domain_errors
def get_kind(kind: str, entity_id: str):
    return get_entity(g.scope, kind, entity_id)


@entities_bp.patch("/<kind>/<entity_id>")
@require_scope
@handle_domain_errors
def update_kind(kind: str, entity_id: str):
    payload = request.get_json(silent=True) or {}
    obj = update_entity(g.scope, kind, entity_id, payload)
    return obj.to_dict()


@entities_bp.delete("/<kind>/<entity_id>")
@require_scope
@handle_domain_errors
def delete_kind(kind: str, entity_id: str):
    delete_entity(g.scope, kind, entity_id)
    return {"ok": True}
