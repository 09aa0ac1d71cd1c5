"""
Read caches: cache-aside semantics, prefix invalidation and stats.
"""

from digitalshop.cache import (
    CacheKeys,
    NamedCache,
    cache_aside,
    data_cache,
    get_cache_stats,
    invalidate_products,
    invalidate_reports,
    report_cache,
)


class TestCacheAside:

    def test_fetches_once(self):
        cache = NamedCache("test", ttl=60, maxsize=8)
        calls = []

        def fetch():
            calls.append(1)
            return {"value": 42}

        assert cache_aside(cache, "k", fetch) == {"value": 42}
        assert cache_aside(cache, "k", fetch) == {"value": 42}
        assert len(calls) == 1
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    def test_none_is_not_stored(self):
        cache = NamedCache("test", ttl=60, maxsize=8)
        calls = []

        def fetch():
            calls.append(1)
            return None

        cache_aside(cache, "missing", fetch)
        cache_aside(cache, "missing", fetch)
        assert len(calls) == 2
        assert cache.stats()["keys"] == 0

    def test_delete_prefix(self):
        cache = NamedCache("test", ttl=60, maxsize=8)
        cache.set("report:a", 1)
        cache.set("report:b", 2)
        cache.set("product:c", 3)

        assert cache.delete_prefix("report:") == 2
        assert cache.get("product:c") == 3


class TestInvalidation:

    def test_product_writes_clear_stock_reports(self, db_session):
        data_cache.set(CacheKeys.product_search("water"), [1])
        report_cache.set(CacheKeys.STOCK_VALUATION, {"total": 1})
        report_cache.set(CacheKeys.DASHBOARD, {"sales": 1})
        report_cache.set(CacheKeys.sales_summary("2026-01-01", "2026-01-31"), {"total": 1})

        invalidate_products()

        assert data_cache.get(CacheKeys.product_search("water")) is None
        assert report_cache.get(CacheKeys.STOCK_VALUATION) is None
        assert report_cache.get(CacheKeys.DASHBOARD) is None
        assert report_cache.get(CacheKeys.sales_summary("2026-01-01", "2026-01-31")) == {"total": 1}

    def test_report_invalidation(self, db_session):
        report_cache.set(CacheKeys.profit_loss("2026-01-01", "2026-01-31"), {"net": 1})
        invalidate_reports()
        assert report_cache.stats()["keys"] == 0

    def test_stats_keyed_by_cache(self, db_session):
        stats = get_cache_stats()
        assert set(stats) == {"settings", "reports", "data"}
        assert stats["reports"]["keys"] == 0
        assert stats["reports"]["hits"] == 0


class TestCacheEndpoints:

    def test_dashboard_served_from_cache_until_a_sale(self, client, manager_headers, cashier_headers,
                                                       stocked_product):
        first = client.get("/api/reports/dashboard", headers=manager_headers).get_json()["data"]
        client.get("/api/reports/dashboard", headers=manager_headers)
        assert report_cache.stats()["hits"] >= 1

        client.post(
            "/api/sales",
            json={"items": [{"product_id": stocked_product.id, "quantity": 1}], "amount_paid": 10},
            headers=cashier_headers,
        )
        second = client.get("/api/reports/dashboard", headers=manager_headers).get_json()["data"]
        assert second != first

    def test_admin_cache_stats(self, client, admin_headers):
        resp = client.get("/api/system/cache/stats", headers=admin_headers)
        assert resp.status_code == 200
        assert set(resp.get_json()["data"]) == {"settings", "reports", "data"}
