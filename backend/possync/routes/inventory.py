# Overview: Flask API routes for stock adjustments and stock history.

from flask import Blueprint, request, g

from ..decorators import require_scope, handle_domain_errors
from ..services.inventory_service import adjust_stock, list_stock_movements
from ..services.query_service import get_entity
from ..validation import ValidationError

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/products")


@inventory_bp.post("/<product_id>/adjust-stock")
@require_scope
@handle_domain_errors
def adjust_stock_route(product_id: str):
    """
    Body: {"quantity_change": int (non-zero to move stock), "reason": str}

    Negative changes that would take stock below zero answer 409 and write
    nothing.
    """
    payload = request.get_json(silent=True) or {}
    if "quantity_change" not in payload:
        raise ValidationError("Missing required fields: quantity_change")

    movement = adjust_stock(
        g.scope,
        product_id,
        payload["quantity_change"],
        payload.get("reason", ""),
    )
    return {
        "product": get_entity(g.scope, "products", product_id),
        "movement": movement.to_dict() if movement else None,
    }, 200


@inventory_bp.get("/<product_id>/movements")
@require_scope
@handle_domain_errors
def product_movements(product_id: str):
    get_entity(g.scope, "products", product_id)
    return {"items": [m.to_dict() for m in list_stock_movements(g.scope, product_id)]}
