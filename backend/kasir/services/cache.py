# Overview: In-process TTL cache for product and catalog reads, with tenant-wide invalidation.

"""
Product Cache

Read-through cache for hot catalog reads. The cache is never the system of
record: every entry expires after its TTL and every write to a tenant's
products drops all of that tenant's cached listings.

KEYS:
    Keys are tuples built by make_key(entity, tenant_id, filters):

        ("product", 7, '{"product_id":12}')
        ("products", 7, '{"limit":20,"page":1,"search":"kopi"}')

    The filter signature is canonical JSON (sorted keys, None dropped), so
    the same logical query always maps to the same key and tenant 1 can never
    match tenant 11 the way a substring match on "products:1" would.

LIFECYCLE:
    cache = ProductCache()
    cache.init_app(app)          # reads CACHE_* config, registers on app.extensions
    ...
    cache.flush()                # drop everything
    cache.shutdown()             # flush and disable

Services receive the cache as an argument; pass None to bypass it.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable

logger = logging.getLogger(__name__)

ENTITY_PRODUCT = "product"
ENTITY_PRODUCTS = "products"
ENTITY_CATEGORY = "category"
ENTITY_BRAND = "brand"
ENTITY_COUNT = "count"

LIST_ENTITIES = {ENTITY_PRODUCTS, ENTITY_CATEGORY, ENTITY_BRAND, ENTITY_COUNT}

DEFAULT_PRODUCT_TTL = 600
DEFAULT_LIST_TTL = 300

# Expired entries are swept every N writes in addition to lazy purge on read.
SWEEP_EVERY = 200

CacheKey = tuple[str, int, str]


def _signature(filters: dict | None) -> str:
    cleaned = {k: v for k, v in (filters or {}).items() if v is not None}
    return json.dumps(cleaned, sort_keys=True, separators=(",", ":"), default=str)


def make_key(entity: str, tenant_id: int, filters: dict | None = None) -> CacheKey:
    """Deterministic key for (entity type, tenant, filter set)."""
    return (entity, int(tenant_id), _signature(filters))


def product_key(product_id: int, tenant_id: int) -> CacheKey:
    return make_key(ENTITY_PRODUCT, tenant_id, {"product_id": int(product_id)})


@dataclass
class _Entry:
    value: Any
    expires_at: float


class ProductCache:
    """TTL-bounded key/value store for serialized products and listings."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        product_ttl: int = DEFAULT_PRODUCT_TTL,
        list_ttl: int = DEFAULT_LIST_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.enabled = enabled
        self.product_ttl = product_ttl
        self.list_ttl = list_ttl
        self._clock = clock
        self._entries: dict[Hashable, _Entry] = {}
        self._writes = 0
        self.hits = 0
        self.misses = 0

    def init_app(self, app) -> "ProductCache":
        self.enabled = bool(app.config.get("CACHE_ENABLED", True))
        self.product_ttl = int(app.config.get("CACHE_PRODUCT_TTL", DEFAULT_PRODUCT_TTL))
        self.list_ttl = int(app.config.get("CACHE_LIST_TTL", DEFAULT_LIST_TTL))
        app.extensions["product_cache"] = self
        return self

    def default_ttl(self, key: CacheKey) -> int:
        return self.product_ttl if key[0] == ENTITY_PRODUCT else self.list_ttl

    def get(self, key: CacheKey) -> Any | None:
        if not self.enabled:
            self.misses += 1
            return None

        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            self.misses += 1
            return None

        self.hits += 1
        return copy.deepcopy(entry.value)

    def set(self, key: CacheKey, value: Any, ttl: int | None = None) -> bool:
        if not self.enabled:
            return False

        ttl = self.default_ttl(key) if ttl is None else ttl
        if ttl <= 0:
            return False

        self._entries[key] = _Entry(value=copy.deepcopy(value), expires_at=self._clock() + ttl)

        self._writes += 1
        if self._writes % SWEEP_EVERY == 0:
            self.purge_expired()
        return True

    def delete(self, key: CacheKey) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate(self, product_id: int, tenant_id: int) -> int:
        """
        Drop the product's own entry and every listing scoped to its tenant.

        A product can appear in any list, category, brand or count result of
        its tenant, so all of them go.
        """
        own = product_key(product_id, tenant_id)
        removed = 0
        for key in list(self._entries):
            if key == own or (key[1] == tenant_id and key[0] in LIST_ENTITIES):
                if self._entries.pop(key, None) is not None:
                    removed += 1
        logger.debug("cache invalidate product=%s tenant=%s removed=%d", product_id, tenant_id, removed)
        return removed

    def invalidate_tenant(self, tenant_id: int) -> int:
        removed = 0
        for key in list(self._entries):
            if key[1] == tenant_id and self._entries.pop(key, None) is not None:
                removed += 1
        logger.debug("cache invalidate tenant=%s removed=%d", tenant_id, removed)
        return removed

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in list(self._entries.items()) if e.expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)

    def flush(self) -> None:
        self._entries.clear()

    def shutdown(self) -> None:
        self.flush()
        self.enabled = False

    def stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "keys": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "product_ttl": self.product_ttl,
            "list_ttl": self.list_ttl,
        }

    def __len__(self) -> int:
        return len(self._entries)
