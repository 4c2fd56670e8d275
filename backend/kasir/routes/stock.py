# Overview: Flask API routes for stock; set, add or subtract on a single product and its movement ledger.

# backend/kasir/routes/stock.py
from flask import Blueprint, request, g

from ..services import products_service
from ..validation import STOCK_UPDATE, STOCK_MOVEMENT_QUERY, validate_request
from ..models.auth import ROLE_ADMIN
from ..decorators import require_auth, require_role, handle_service_errors, get_product_cache

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("update stock")
def update_stock_route():
    """
    Adjust stock for one product.

    Body: {"productId": 1, "quantity": 10, "operation": "set" | "add" | "subtract", "notes": "..."}

    A subtract that would go below zero returns 400 and leaves stock unchanged.
    """
    payload = request.get_json(silent=True) or {}
    data = validate_request(STOCK_UPDATE, payload)

    product = products_service.adjust_stock(
        data["product_id"],
        g.tenant_id,
        data["quantity"],
        data["operation"],
        cache=get_product_cache(),
        user_id=g.current_user.id,
        notes=data.get("notes"),
    )
    return {"success": True, "product": product}


@stock_bp.get("/<int:product_id>/movements")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("list stock movements")
def list_stock_movements_route(product_id: int):
    """Newest-first stock ledger for one product. Query: ?limit=50"""
    query = validate_request(STOCK_MOVEMENT_QUERY, request.args.to_dict())
    movements = products_service.list_stock_movements(product_id, g.tenant_id, query.get("limit"))
    return {"success": True, "data": movements}
