# Overview: Flask API routes for product catalog operations; parses input and returns JSON responses.

# backend/kasir/routes/products.py
"""
Product catalog routes.

MULTI-TENANT: All product operations are scoped to g.tenant_id (set by
@require_auth from the session). Clients never pass a tenant id.

SECURITY: All routes require authentication.
- Read operations: any role
- Write operations: admin only
"""
from flask import Blueprint, request, g, jsonify, current_app

from ..services import products_service
from ..validation import (
    PRODUCT_CREATE,
    PRODUCT_UPDATE,
    PRODUCT_LIST_QUERY,
    RequestSchema,
    Field,
    validate_request,
    validate_many,
    ValidationError,
)
from ..models.auth import ROLE_ADMIN
from ..decorators import require_auth, require_role, handle_service_errors, get_product_cache

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PAGINATION_KEYS = ("page", "limit", "sort_by", "sort_order")

BULK_UPDATE_ENTRY = RequestSchema(
    name="bulk_update_entry",
    fields={
        "product_id": Field("int", required=True, min_value=1, source="productId"),
    },
    strict=False,
)


def _split_list_query(query: dict) -> tuple[dict, dict]:
    filters = {k: v for k, v in query.items() if k not in PAGINATION_KEYS}
    pagination = {k: v for k, v in query.items() if k in PAGINATION_KEYS}

    pagination.setdefault("limit", current_app.config["DEFAULT_PAGE_SIZE"])
    max_size = current_app.config["MAX_PAGE_SIZE"]
    if pagination["limit"] > max_size:
        raise ValidationError("Validation failed", {"limit": [f"limit must be <= {max_size}"]})
    return filters, pagination


def _page_response(result: dict) -> dict:
    return {
        "products": result["products"],
        "totalCount": result["total_count"],
        "currentPage": result["current_page"],
        "totalPages": result["total_pages"],
    }


@products_bp.get("")
@require_auth
@handle_service_errors("list products")
def list_products():
    """
    List products.

    Query params:
    - search: case-insensitive substring of name, sku or description
    - brand_id, category_id: int
    - is_active, is_sellable, is_track_stock, low_stock: bool
    - sortBy: created_at | name | price | stock (default created_at)
    - sortOrder: asc | desc (default desc)
    - page (default 1), limit (default 20, max 100)
    """
    query = validate_request(PRODUCT_LIST_QUERY, request.args)
    filters, pagination = _split_list_query(query)

    result = products_service.list_products(
        g.tenant_id, filters, pagination, cache=get_product_cache()
    )
    return _page_response(result)


@products_bp.get("/count")
@require_auth
@handle_service_errors("count products")
def count_products():
    query = validate_request(PRODUCT_LIST_QUERY, request.args)
    filters, _ = _split_list_query(query)
    count = products_service.count_products(g.tenant_id, filters, cache=get_product_cache())
    return {"count": count}


@products_bp.get("/category/<int:category_id>")
@require_auth
@handle_service_errors("list products by category")
def list_products_by_category(category_id: int):
    query = validate_request(PRODUCT_LIST_QUERY, request.args)
    _, pagination = _split_list_query(query)
    result = products_service.list_products_by_category(
        category_id, g.tenant_id, pagination, cache=get_product_cache()
    )
    return _page_response(result)


@products_bp.get("/brand/<int:brand_id>")
@require_auth
@handle_service_errors("list products by brand")
def list_products_by_brand(brand_id: int):
    query = validate_request(PRODUCT_LIST_QUERY, request.args)
    _, pagination = _split_list_query(query)
    result = products_service.list_products_by_brand(
        brand_id, g.tenant_id, pagination, cache=get_product_cache()
    )
    return _page_response(result)


@products_bp.get("/<int:product_id>")
@require_auth
@handle_service_errors("load product")
def get_product(product_id: int):
    return products_service.get_product(product_id, g.tenant_id, cache=get_product_cache())


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("create product")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    data = validate_request(PRODUCT_CREATE, payload)
    created = products_service.create_product(g.tenant_id, data, cache=get_product_cache())
    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("update product")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_request(PRODUCT_UPDATE, payload)
    return products_service.update_product(product_id, g.tenant_id, patch, cache=get_product_cache())


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("delete product")
def delete_product_route(product_id: int):
    """Soft delete: the row stays, with deleted_at/deleted_by set."""
    products_service.delete_product(
        product_id, g.tenant_id, deleted_by=g.current_user.id, cache=get_product_cache()
    )
    return {"success": True}, 200


# =============================================================================
# BULK OPERATIONS (all-or-nothing)
# =============================================================================

@products_bp.post("/bulk")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("bulk create products")
def bulk_create_route():
    """Body: {"products": [<product>, ...]}"""
    payload = request.get_json(silent=True) or {}
    items = validate_many(PRODUCT_CREATE, payload.get("products"), "products")
    created = products_service.bulk_create_products(g.tenant_id, items, cache=get_product_cache())
    return jsonify({"products": created, "count": len(created)}), 201


@products_bp.put("/bulk")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("bulk update products")
def bulk_update_route():
    """Body: {"updates": [{"productId": 1, "data": {<patch>}}, ...]}"""
    payload = request.get_json(silent=True) or {}
    entries = validate_many(BULK_UPDATE_ENTRY, payload.get("updates"), "updates")

    updates = []
    errors: dict[str, list[str]] = {}
    for idx, (entry, raw) in enumerate(zip(entries, payload["updates"])):
        try:
            patch = validate_request(PRODUCT_UPDATE, raw.get("data") or {})
        except ValidationError as exc:
            for key, messages in exc.errors.items():
                errors.setdefault(f"updates[{idx}].data.{key}", []).extend(messages)
            continue
        updates.append({"product_id": entry["product_id"], "data": patch})
    if errors:
        raise ValidationError("Validation failed", errors)

    updated = products_service.bulk_update_products(g.tenant_id, updates, cache=get_product_cache())
    return {"products": updated, "count": len(updated)}


@products_bp.delete("/bulk")
@require_auth
@require_role(ROLE_ADMIN)
@handle_service_errors("bulk delete products")
def bulk_delete_route():
    """Body: {"productIds": [1, 2, 3]}"""
    payload = request.get_json(silent=True) or {}
    raw_ids = payload.get("productIds")
    if not isinstance(raw_ids, list) or not raw_ids:
        raise ValidationError("Validation failed", {"productIds": ["productIds must be a non-empty array"]})
    if any(isinstance(i, bool) or not isinstance(i, int) or i < 1 for i in raw_ids):
        raise ValidationError("Validation failed", {"productIds": ["productIds must contain positive integers"]})

    count = products_service.bulk_delete_products(
        raw_ids, g.tenant_id, deleted_by=g.current_user.id, cache=get_product_cache()
    )
    return {"success": True, "count": count}
