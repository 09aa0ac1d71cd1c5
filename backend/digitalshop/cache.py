# Overview: In-process TTL read caches for settings, reports and hot product lookups.

"""
Cache-aside helpers.

Three caches with different lifetimes:
- settings_cache: system settings, rarely written (10 min)
- report_cache: aggregate reports, must stay fresh (1 min)
- data_cache: product search and similar lookups (2 min)

Writers invalidate explicitly; anything else simply ages out.
Only successful, non-None results are stored.
"""

from __future__ import annotations

import threading
from typing import Callable, TypeVar

from cachetools import TTLCache

from .config import Config

T = TypeVar("T")


class CacheKeys:
    SYSTEM_SETTINGS = "system:settings"
    DASHBOARD = "report:dashboard"
    CUSTOMER_AGING = "report:customer-aging"
    STOCK_VALUATION = "report:stock-valuation"
    STOCK_REORDER = "report:stock-reorder"

    @staticmethod
    def sales_summary(start: str, end: str) -> str:
        return f"report:sales-summary:{start}:{end}"

    @staticmethod
    def profit_loss(start: str, end: str) -> str:
        return f"report:pnl:{start}:{end}"

    @staticmethod
    def product_search(term: str) -> str:
        return f"product:search:{term.strip().lower()}"


class NamedCache:
    """A TTLCache plus a lock and hit/miss counters."""

    def __init__(self, name: str, *, ttl: int, maxsize: int):
        self.name = name
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str):
        with self._lock:
            value = self._cache.get(key)
            if value is None:
                self.misses += 1
            else:
                self.hits += 1
            return value

    def set(self, key: str, value) -> None:
        with self._lock:
            self._cache[key] = value

    def delete_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in list(self._cache.keys()) if k.startswith(prefix)]
            for k in doomed:
                self._cache.pop(k, None)
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def stats(self) -> dict:
        with self._lock:
            return {
                "keys": len(self._cache),
                "hits": self.hits,
                "misses": self.misses,
                "ttl_seconds": self._cache.ttl,
                "max_size": self._cache.maxsize,
            }


settings_cache = NamedCache("settings", ttl=Config.CACHE_SETTINGS_TTL, maxsize=16)
report_cache = NamedCache("reports", ttl=Config.CACHE_REPORT_TTL, maxsize=256)
data_cache = NamedCache("data", ttl=Config.CACHE_DATA_TTL, maxsize=512)

ALL_CACHES = (settings_cache, report_cache, data_cache)


def cache_aside(cache: NamedCache, key: str, fetcher: Callable[[], T]) -> T:
    cached = cache.get(key)
    if cached is not None:
        return cached
    value = fetcher()
    if value is not None:
        cache.set(key, value)
    return value


def invalidate_settings() -> None:
    settings_cache.clear()


def invalidate_reports() -> None:
    report_cache.delete_prefix("report:")


def invalidate_products() -> None:
    data_cache.delete_prefix("product:")
    # Stock valuation and reorder lists are built from product rows
    report_cache.delete_prefix(CacheKeys.STOCK_VALUATION)
    report_cache.delete_prefix(CacheKeys.STOCK_REORDER)
    report_cache.delete_prefix(CacheKeys.DASHBOARD)


def clear_all() -> None:
    for cache in ALL_CACHES:
        cache.clear()
        cache.hits = 0
        cache.misses = 0


def get_cache_stats() -> dict:
    return {cache.name: cache.stats() for cache in ALL_CACHES}
