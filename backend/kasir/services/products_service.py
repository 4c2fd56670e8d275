# backend/kasir/services/products_service.py
"""
Products Service: read-through caching over the product repository.

MULTI-TENANT: every function takes tenant_id explicitly and passes it to
the repository, which scopes every query.

CACHE: reads check the injected ProductCache first and populate it on miss.
Writes go to the repository, and only after they commit is the cache
invalidated (single product + every tenant listing; whole tenant after bulk
operations). With cache=None every call goes straight to the database and
returns the same results.
"""
from __future__ import annotations

import logging

from . import product_repository as repo
from .cache import (
    ProductCache,
    make_key,
    product_key,
    ENTITY_PRODUCTS,
    ENTITY_CATEGORY,
    ENTITY_BRAND,
    ENTITY_COUNT,
)
from ..validation import NotFoundError

logger = logging.getLogger(__name__)


def _serialize_page(result: dict) -> dict:
    return {
        "products": [p.to_dict() for p in result["products"]],
        "total_count": result["total_count"],
        "current_page": result["current_page"],
        "total_pages": result["total_pages"],
    }


def _cached(cache: ProductCache | None, key, loader):
    if cache is not None:
        hit = cache.get(key)
        if hit is not None:
            return hit

    value = loader()

    if cache is not None:
        cache.set(key, value)
    return value


# =============================================================================
# READS
# =============================================================================

def get_product(product_id: int, tenant_id: int, cache: ProductCache | None = None) -> dict:
    """
    Single product, cached for the product TTL.

    Raises:
        NotFoundError: no live product with that id in the tenant
    """
    def _load():
        product = repo.find_by_id(product_id, tenant_id)
        if product is None:
            raise NotFoundError("Product not found")
        return product.to_dict()

    return _cached(cache, product_key(product_id, tenant_id), _load)


def list_products(
    tenant_id: int,
    filters: dict | None = None,
    pagination: dict | None = None,
    cache: ProductCache | None = None,
) -> dict:
    """
    Filtered product listing.

    Returns:
        {"products": [...], "total_count", "current_page", "total_pages"}
    """
    filters = filters or {}
    pagination = pagination or {}
    key = make_key(ENTITY_PRODUCTS, tenant_id, {**filters, **pagination})
    return _cached(cache, key, lambda: _serialize_page(repo.find_by_filters(tenant_id, filters, pagination)))


def list_products_by_category(
    category_id: int,
    tenant_id: int,
    pagination: dict | None = None,
    cache: ProductCache | None = None,
) -> dict:
    pagination = pagination or {}
    key = make_key(ENTITY_CATEGORY, tenant_id, {"category_id": category_id, **pagination})
    return _cached(
        cache, key,
        lambda: _serialize_page(repo.find_by_filters(tenant_id, {"category_id": category_id}, pagination)),
    )


def list_products_by_brand(
    brand_id: int,
    tenant_id: int,
    pagination: dict | None = None,
    cache: ProductCache | None = None,
) -> dict:
    pagination = pagination or {}
    key = make_key(ENTITY_BRAND, tenant_id, {"brand_id": brand_id, **pagination})
    return _cached(
        cache, key,
        lambda: _serialize_page(repo.find_by_filters(tenant_id, {"brand_id": brand_id}, pagination)),
    )


def count_products(tenant_id: int, filters: dict | None = None, cache: ProductCache | None = None) -> int:
    filters = filters or {}
    key = make_key(ENTITY_COUNT, tenant_id, filters)
    return _cached(cache, key, lambda: repo.count_products(tenant_id, filters))


# =============================================================================
# WRITES
# =============================================================================

def create_product(tenant_id: int, data: dict, cache: ProductCache | None = None) -> dict:
    product = repo.create(tenant_id, data)
    if cache is not None:
        cache.invalidate(product.id, tenant_id)
    logger.info("product created id=%s sku=%s tenant=%s", product.id, product.sku, tenant_id)
    return product.to_dict()


def update_product(product_id: int, tenant_id: int, patch: dict, cache: ProductCache | None = None) -> dict:
    product = repo.update(product_id, tenant_id, patch)
    if cache is not None:
        cache.invalidate(product_id, tenant_id)
    return product.to_dict()


def delete_product(
    product_id: int,
    tenant_id: int,
    deleted_by: int | None = None,
    cache: ProductCache | None = None,
) -> bool:
    repo.soft_delete(product_id, tenant_id, deleted_by)
    if cache is not None:
        cache.invalidate(product_id, tenant_id)
    logger.info("product soft-deleted id=%s tenant=%s by=%s", product_id, tenant_id, deleted_by)
    return True


def bulk_create_products(tenant_id: int, items: list[dict], cache: ProductCache | None = None) -> list[dict]:
    products = repo.bulk_create(tenant_id, items)
    if cache is not None:
        cache.invalidate_tenant(tenant_id)
    return [p.to_dict() for p in products]


def bulk_update_products(tenant_id: int, updates: list[dict], cache: ProductCache | None = None) -> list[dict]:
    products = repo.bulk_update(tenant_id, updates)
    if cache is not None:
        cache.invalidate_tenant(tenant_id)
    return [p.to_dict() for p in products]


def bulk_delete_products(
    product_ids: list[int],
    tenant_id: int,
    deleted_by: int | None = None,
    cache: ProductCache | None = None,
) -> int:
    count = repo.bulk_delete(product_ids, tenant_id, deleted_by)
    if cache is not None:
        cache.invalidate_tenant(tenant_id)
    return count


def adjust_stock(
    product_id: int,
    tenant_id: int,
    quantity: int,
    operation: str = "set",
    cache: ProductCache | None = None,
    user_id: int | None = None,
    notes: str | None = None,
) -> dict:
    """
    Raises:
        NotFoundError: no live product with that id in the tenant
        StockError: result would be negative (stock unchanged, nothing recorded)
    """
    product = repo.update_stock(product_id, tenant_id, quantity, operation, created_by=user_id, notes=notes)
    if cache is not None:
        cache.invalidate(product_id, tenant_id)
    return product.to_dict()


def list_stock_movements(product_id: int, tenant_id: int, limit: int | None = None) -> list[dict]:
    # Ledger reads bypass the cache; every stock change appends a row
    movements = repo.list_stock_movements(product_id, tenant_id, limit or repo.DEFAULT_MOVEMENT_LIMIT)
    return [m.to_dict() for m in movements]
