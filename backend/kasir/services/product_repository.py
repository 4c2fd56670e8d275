# Overview: Product repository; the only module that queries or mutates Product rows.

"""
Product Repository

MULTI-TENANT + SOFT DELETE: Every Product query starts from
live_products(tenant_id), which applies tenant_id = :tenant AND
deleted_at IS NULL. No function in this module builds a Product query any
other way, so a forgotten filter cannot leak another tenant's rows or a
deleted product.

STOCK: apply_stock_change() is a single conditional UPDATE:

    UPDATE products SET stock = stock - :q
    WHERE id = :id AND tenant_id = :t AND deleted_at IS NULL AND stock >= :q

Concurrent cashiers cannot lose updates or drive stock negative; the loser
sees zero affected rows and gets a StockError. Every change that goes through
also appends a StockMovement row in the same database transaction.

ERRORS: failures are logged with the operation name and the ids involved
(never the payload) and re-raised unchanged. IntegrityError is translated
to ConflictError only for the per-tenant SKU constraint.

Committing functions (create, update, soft_delete, bulk_*, update_stock)
roll back on any error, so a failure never leaves partial state.
"""

from __future__ import annotations

import inspect
import logging
import math
from functools import wraps

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Brand, Category, Product, StockMovement
from ..models.catalog import (
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REFERENCE_MANUAL,
)
from ..validation import (
    ConflictError,
    DomainError,
    NotFoundError,
    ValidationError,
    SORT_FIELDS,
    STOCK_OPERATIONS,
)
from .concurrency import run_with_retry
from kasir.time_utils import utcnow

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "sku", "name", "description", "price", "min_stock",
    "is_active", "is_sellable", "is_track_stock", "brand_id", "category_id",
}
# stock is only writable at creation; afterwards it moves through update_stock
PRODUCT_CREATE_FIELDS = PRODUCT_MUTABLE_FIELDS | {"stock"}

SORT_COLUMNS = {
    "created_at": Product.created_at,
    "name": Product.name,
    "price": Product.price,
    "stock": Product.stock,
}

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
DEFAULT_MOVEMENT_LIMIT = 50

# Non-negative integer columns checked before any flush
AMOUNT_FIELDS = ("price", "stock", "min_stock")

SKU_CONSTRAINT = "uq_products_tenant_sku"
# SQLite reports the columns instead of the constraint name
SKU_CONSTRAINT_COLUMNS = "products.tenant_id, products.sku"

MOVEMENT_TYPES = {
    "set": MOVEMENT_ADJUSTMENT,
    "add": MOVEMENT_IN,
    "subtract": MOVEMENT_OUT,
}


class StockError(DomainError):
    """Raised when a stock mutation would leave a product below zero."""


def _id_context(signature: inspect.Signature, args, kwargs) -> str:
    try:
        bound = signature.bind(*args, **kwargs)
    except TypeError:
        return ""
    parts = [
        f"{name}={value!r}"
        for name, value in bound.arguments.items()
        if name.endswith(("_id", "_ids"))
    ]
    return " ".join(parts)


def _logged(operation: str):
    def decorator(fn):
        signature = inspect.signature(fn)

        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except (NotFoundError, ValidationError, ConflictError, DomainError) as exc:
                logger.warning("%s failed: %s (%s)", operation, exc, _id_context(signature, args, kwargs))
                raise
            except Exception:
                logger.exception("%s failed (%s)", operation, _id_context(signature, args, kwargs))
                raise
        return wrapper
    return decorator


# =============================================================================
# QUERY HELPERS
# =============================================================================

def live_products(tenant_id: int):
    """Base query for every Product read or write: tenant-scoped, not deleted."""
    if tenant_id is None:
        raise ValueError("tenant_id is required")
    return db.session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.deleted_at.is_(None),
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _apply_filters(query, filters: dict | None):
    filters = filters or {}

    search = filters.get("search")
    if search:
        # Case-insensitive substring match on name, sku and description
        term = f"%{_escape_like(search.lower())}%"
        query = query.filter(or_(
            func.lower(Product.name).like(term, escape="\\"),
            func.lower(Product.sku).like(term, escape="\\"),
            func.lower(Product.description).like(term, escape="\\"),
        ))

    if filters.get("brand_id") is not None:
        query = query.filter(Product.brand_id == filters["brand_id"])

    if filters.get("category_id") is not None:
        query = query.filter(Product.category_id == filters["category_id"])

    for flag in ("is_active", "is_sellable", "is_track_stock"):
        if filters.get(flag) is not None:
            query = query.filter(getattr(Product, flag).is_(bool(filters[flag])))

    if filters.get("low_stock"):
        # Column-to-column comparison evaluated by the database in one statement
        query = query.filter(
            Product.stock <= Product.min_stock,
            Product.is_track_stock.is_(True),
        )

    return query


def _resolve_relations(tenant_id: int, data: dict) -> None:
    """brand_id/category_id must point at live rows of the same tenant."""
    errors: dict[str, list[str]] = {}

    brand_id = data.get("brand_id")
    if brand_id is not None:
        brand = db.session.query(Brand).filter(
            Brand.id == brand_id,
            Brand.tenant_id == tenant_id,
            Brand.deleted_at.is_(None),
        ).first()
        if brand is None:
            errors["brand_id"] = ["Brand does not exist"]

    category_id = data.get("category_id")
    if category_id is not None:
        category = db.session.query(Category).filter(
            Category.id == category_id,
            Category.tenant_id == tenant_id,
            Category.deleted_at.is_(None),
        ).first()
        if category is None:
            errors["category_id"] = ["Category does not exist"]

    if errors:
        raise ValidationError("Validation failed", errors)


def _ensure_sku_free(tenant_id: int, sku: str, exclude_id: int | None = None) -> None:
    query = live_products(tenant_id).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"SKU already exists for this tenant: {sku}")


def _check_amounts(data: dict, required: tuple[str, ...] = ()) -> None:
    """price/stock/min_stock must be non-negative integers when present."""
    errors: dict[str, list[str]] = {}
    for key in AMOUNT_FIELDS:
        if key not in data:
            if key in required:
                errors[key] = [f"{key} is required"]
            continue
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, int):
            errors[key] = [f"{key} must be an integer"]
        elif value < 0:
            errors[key] = [f"{key} must be >= 0"]
    if errors:
        raise ValidationError("Validation failed", errors)


def _is_sku_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return SKU_CONSTRAINT in message or SKU_CONSTRAINT_COLUMNS in message


def _flush_or_conflict(sku: str | None) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        if not _is_sku_violation(exc):
            raise
        # Race with a concurrent insert, or a soft-deleted product still holding the SKU
        raise ConflictError(f"SKU already exists for this tenant: {sku}") from exc


# =============================================================================
# READS
# =============================================================================

@_logged("find_by_id")
def find_by_id(product_id: int, tenant_id: int, include_relations: bool = True) -> Product | None:
    query = live_products(tenant_id).filter(Product.id == product_id)
    if include_relations:
        query = query.options(joinedload(Product.brand), joinedload(Product.category))
    return query.first()


@_logged("find_by_sku")
def find_by_sku(sku: str, tenant_id: int) -> Product | None:
    return live_products(tenant_id).filter(Product.sku == sku).first()


@_logged("find_by_filters")
def find_by_filters(tenant_id: int, filters: dict | None = None, pagination: dict | None = None) -> dict:
    """
    Filtered, sorted, paginated product listing.

    filters: search, brand_id, category_id, is_active, is_sellable,
             is_track_stock, low_stock
    pagination: page (default 1), limit (default 20, max 100),
                sort_by in SORT_FIELDS (default created_at), sort_order asc|desc (default desc)

    Raises:
        ValidationError: unknown sort_by / sort_order, or bad page/limit
    """
    pagination = pagination or {}
    page = pagination.get("page") or DEFAULT_PAGE
    limit = pagination.get("limit") or DEFAULT_LIMIT
    sort_by = pagination.get("sort_by") or "created_at"
    sort_order = (pagination.get("sort_order") or "desc").lower()

    if sort_by not in SORT_COLUMNS:
        raise ValidationError("Validation failed", {"sort_by": [f"sort_by must be one of: {', '.join(SORT_FIELDS)}"]})
    if sort_order not in ("asc", "desc"):
        raise ValidationError("Validation failed", {"sort_order": ["sort_order must be one of: asc, desc"]})
    if page < 1:
        raise ValidationError("Validation failed", {"page": ["page must be >= 1"]})
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError("Validation failed", {"limit": [f"limit must be between 1 and {MAX_LIMIT}"]})

    query = _apply_filters(live_products(tenant_id), filters)
    total_count = query.count()

    column = SORT_COLUMNS[sort_by]
    if sort_order == "asc":
        ordering = (column.asc(), Product.id.asc())
    else:
        ordering = (column.desc(), Product.id.desc())

    products = (
        query.options(joinedload(Product.brand), joinedload(Product.category))
        .order_by(*ordering)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "products": products,
        "total_count": total_count,
        "current_page": page,
        "total_pages": math.ceil(total_count / limit),
    }


@_logged("count_products")
def count_products(tenant_id: int, filters: dict | None = None) -> int:
    return _apply_filters(live_products(tenant_id), filters).count()


# =============================================================================
# WRITES
# =============================================================================

def _create(tenant_id: int, data: dict) -> Product:
    sku = data.get("sku")
    errors: dict[str, list[str]] = {}
    if not sku:
        errors["sku"] = ["sku is required"]
    if not data.get("name"):
        errors["name"] = ["name is required"]
    if errors:
        raise ValidationError("Validation failed", errors)

    _check_amounts(data, required=("price",))
    _resolve_relations(tenant_id, data)
    _ensure_sku_free(tenant_id, sku)

    product = Product(tenant_id=tenant_id)
    for key, value in data.items():
        if key in PRODUCT_CREATE_FIELDS:
            setattr(product, key, value)

    db.session.add(product)
    _flush_or_conflict(sku)
    return product


def _update(product_id: int, tenant_id: int, patch: dict) -> Product:
    product = find_by_id(product_id, tenant_id, include_relations=False)
    if product is None:
        raise NotFoundError("Product not found")

    if "sku" in patch and patch["sku"] != product.sku:
        _ensure_sku_free(tenant_id, patch["sku"], exclude_id=product.id)

    _check_amounts({k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS})
    _resolve_relations(tenant_id, patch)

    for key, value in patch.items():
        if key in PRODUCT_MUTABLE_FIELDS:
            setattr(product, key, value)

    _flush_or_conflict(patch.get("sku", product.sku))
    return product


def _soft_delete_query(tenant_id: int, product_ids: list[int], deleted_by: int | None) -> int:
    return (
        live_products(tenant_id)
        .filter(Product.id.in_(product_ids))
        .update(
            {
                Product.deleted_at: utcnow(),
                Product.deleted_by: deleted_by,
                Product.is_active: False,
                Product.is_sellable: False,
            },
            synchronize_session=False,
        )
    )


@_logged("create")
def create(tenant_id: int, data: dict) -> Product:
    """
    Create a product.

    Raises:
        ValidationError: missing sku/name/price, negative amount, or
                         brand/category not found in tenant
        ConflictError: sku already used within the tenant
    """
    def _op():
        product = _create(tenant_id, data)
        db.session.commit()
        return find_by_id(product.id, tenant_id)

    return run_with_retry(_op)


@_logged("update")
def update(product_id: int, tenant_id: int, patch: dict) -> Product:
    """
    Patch a live product. stock is ignored here; use update_stock.

    Raises:
        NotFoundError: no live product with that id in the tenant
        ValidationError: negative price/min_stock
        ConflictError: new sku already used within the tenant
    """
    def _op():
        _update(product_id, tenant_id, patch)
        db.session.commit()
        return find_by_id(product_id, tenant_id)

    return run_with_retry(_op)


@_logged("soft_delete")
def soft_delete(product_id: int, tenant_id: int, deleted_by: int | None = None) -> bool:
    """
    Mark a product deleted and force is_active/is_sellable off in one UPDATE.

    Raises:
        NotFoundError: no live product with that id in the tenant
    """
    def _op():
        rows = _soft_delete_query(tenant_id, [product_id], deleted_by)
        if rows == 0:
            raise NotFoundError("Product not found")
        db.session.commit()
        return True

    return run_with_retry(_op)


@_logged("bulk_create")
def bulk_create(tenant_id: int, items: list[dict]) -> list[Product]:
    """Create all products or none."""
    def _op():
        seen: set[str] = set()
        created = []
        for data in items:
            sku = data.get("sku")
            if sku in seen:
                raise ConflictError(f"Duplicate SKU in batch: {sku}")
            seen.add(sku)
            created.append(_create(tenant_id, data))
        db.session.commit()
        return [find_by_id(p.id, tenant_id) for p in created]

    return run_with_retry(_op)


@_logged("bulk_update")
def bulk_update(tenant_id: int, updates: list[dict]) -> list[Product]:
    """
    Apply every {"product_id": ..., "data": {...}} patch or none of them.

    Raises:
        NotFoundError: any product_id is not a live product of the tenant
    """
    def _op():
        updated = [_update(u["product_id"], tenant_id, u.get("data") or {}) for u in updates]
        db.session.commit()
        return [find_by_id(p.id, tenant_id) for p in updated]

    return run_with_retry(_op)


@_logged("bulk_delete")
def bulk_delete(product_ids: list[int], tenant_id: int, deleted_by: int | None = None) -> int:
    """
    Soft-delete every listed product or none of them.

    Raises:
        NotFoundError: any id is not a live product of the tenant
    """
    unique_ids = sorted(set(product_ids))

    def _op():
        rows = _soft_delete_query(tenant_id, unique_ids, deleted_by)
        if rows != len(unique_ids):
            raise NotFoundError("One or more products not found")
        db.session.commit()
        return rows

    return run_with_retry(_op)


def apply_stock_change(
    product_id: int,
    tenant_id: int,
    quantity: int,
    operation: str = "set",
    *,
    reference_type: str = REFERENCE_MANUAL,
    reference_id: int | None = None,
    created_by: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Conditional stock UPDATE plus its ledger row, inside the caller's
    transaction (no commit).

    set: stock = q
    add: stock = stock + q
    subtract: stock = stock - q, only where stock >= q

    Returns the pending StockMovement.

    Raises:
        ValidationError: unknown operation or negative quantity
        NotFoundError: no live product with that id in the tenant
        StockError: result would be negative
    """
    if operation not in STOCK_OPERATIONS:
        raise ValidationError("Validation failed", {"operation": [f"operation must be one of: {', '.join(STOCK_OPERATIONS)}"]})
    if quantity is None or quantity < 0:
        raise ValidationError("Validation failed", {"quantity": ["quantity must be >= 0"]})

    target = live_products(tenant_id).filter(Product.id == product_id)

    before_qty = None
    query = target
    if operation == "add":
        new_stock = Product.stock + quantity
    elif operation == "subtract":
        new_stock = Product.stock - quantity
        query = query.filter(Product.stock >= quantity)
    else:
        # An absolute set has no delta to derive the previous level from
        before_qty = target.with_entities(Product.stock).scalar()
        new_stock = quantity

    rows = query.update(
        {Product.stock: new_stock, Product.updated_at: utcnow()},
        synchronize_session=False,
    )
    if not rows:
        exists = db.session.query(target.exists()).scalar()
        if not exists:
            raise NotFoundError("Product not found")
        raise StockError("Stock cannot be negative")

    after_qty = target.with_entities(Product.stock).scalar()
    if operation == "add":
        before_qty = after_qty - quantity
    elif operation == "subtract":
        before_qty = after_qty + quantity
    elif before_qty is None:
        before_qty = after_qty

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product_id,
        movement_type=MOVEMENT_TYPES[operation],
        quantity=quantity,
        before_qty=before_qty,
        after_qty=after_qty,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
    )
    db.session.add(movement)
    return movement


@_logged("update_stock")
def update_stock(
    product_id: int,
    tenant_id: int,
    quantity: int,
    operation: str = "set",
    created_by: int | None = None,
    notes: str | None = None,
) -> Product:
    """Apply one stock operation atomically, record it, and return the refreshed product."""
    def _op():
        apply_stock_change(
            product_id, tenant_id, quantity, operation,
            created_by=created_by, notes=notes,
        )
        db.session.commit()
        return find_by_id(product_id, tenant_id)

    product = run_with_retry(_op)
    logger.info("stock %s %s product=%s tenant=%s -> %s", operation, quantity, product_id, tenant_id, product.stock)
    return product


@_logged("list_stock_movements")
def list_stock_movements(product_id: int, tenant_id: int, limit: int = DEFAULT_MOVEMENT_LIMIT) -> list[StockMovement]:
    """
    Newest-first ledger for one live product of the tenant.

    Raises:
        NotFoundError: no live product with that id in the tenant
        ValidationError: limit outside 1..MAX_LIMIT
    """
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError("Validation failed", {"limit": [f"limit must be between 1 and {MAX_LIMIT}"]})

    exists = db.session.query(live_products(tenant_id).filter(Product.id == product_id).exists()).scalar()
    if not exists:
        raise NotFoundError("Product not found")

    return (
        db.session.query(StockMovement)
        .filter(
            StockMovement.tenant_id == tenant_id,
            StockMovement.product_id == product_id,
        )
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
