"""Unit tests for the CacheCoordinator failure boundary and key scheme."""

from unittest.mock import MagicMock

import pytest

from org_chart.services.cache_backend import CacheBackend, InMemoryCacheBackend
from org_chart.services.cache_coordinator import CacheCoordinator, cache_key, view_prefix
from org_chart.services.errors import CacheBackendError


class FailingBackend(CacheBackend):
    """Raises on every call, like an unreachable Redis."""

    name = "failing"

    def get(self, key):
        raise CacheBackendError("connection refused")

    def set(self, key, value, ttl_seconds):
        raise CacheBackendError("connection refused")

    def delete(self, key):
        raise CacheBackendError("connection refused")

    def delete_prefix(self, prefix):
        raise CacheBackendError("connection refused")


@pytest.fixture
def backend():
    return InMemoryCacheBackend()


@pytest.fixture
def cache(backend):
    return CacheCoordinator(backend, namespace="org_chart_test", ttls={"org_chart": 300})


class TestKeys:

    def test_record_key(self):
        assert cache_key("department", 7) == "department:7"

    def test_view_key(self):
        assert cache_key("department", 7, "org_chart") == "department:7:org_chart"

    def test_unknown_view_rejected(self):
        with pytest.raises(ValueError):
            cache_key("department", 7, "everything")

    def test_view_prefix_is_delimited(self):
        assert view_prefix("department", 1) == "department:1:"

    def test_enum_kind_uses_value(self):
        from org_chart.services.hierarchy_store import EntityKind
        assert cache_key(EntityKind.POSITION, 3, "tree") == "position:3:tree"


class TestFetch:

    def test_miss_runs_loader_and_stores(self, cache, backend):
        loader = MagicMock(return_value={"name": "Sales"})
        assert cache.fetch("department:1", 60, loader) == {"name": "Sales"}
        assert backend.get("org_chart_test:department:1") == '{"name": "Sales"}'

    def test_hit_skips_loader(self, cache):
        cache.write("department:1", {"name": "Sales"}, 60)
        loader = MagicMock()
        assert cache.fetch("department:1", 60, loader) == {"name": "Sales"}
        loader.assert_not_called()
        assert cache.stats["hits"] == 1

    def test_force_bypasses_cache(self, cache):
        cache.write("department:1", {"name": "Old"}, 60)
        result = cache.fetch("department:1", 60, lambda: {"name": "New"}, force=True)
        assert result == {"name": "New"}
        assert cache.read("department:1") == {"name": "New"}

    def test_loader_exception_propagates_and_nothing_cached(self, cache):
        def loader():
            raise LookupError("gone")

        with pytest.raises(LookupError):
            cache.fetch("department:1", 60, loader)
        assert cache.read("department:1") is None

    def test_undecodable_entry_is_a_miss(self, cache, backend):
        backend.set("org_chart_test:department:1", "{not json", 60)
        assert cache.fetch("department:1", 60, lambda: {"ok": True}) == {"ok": True}
        assert cache.stats["errors"] == 1

    def test_ttl_for_uses_config(self, cache):
        assert cache.ttl_for("org_chart") == 300
        assert cache.ttl_for("tree") == 3600


class TestBackendFailures:

    @pytest.fixture
    def broken(self):
        return CacheCoordinator(FailingBackend(), namespace="org_chart_test")

    def test_fetch_falls_through_to_loader(self, broken):
        assert broken.fetch("department:1", 60, lambda: [1, 2]) == [1, 2]
        assert broken.stats["errors"] == 2  # read and write both failed

    def test_read_returns_none(self, broken):
        assert broken.read("department:1") is None

    def test_write_reports_failure(self, broken):
        assert broken.write("department:1", {}, 60) is False

    def test_invalidation_is_absorbed(self, broken):
        assert broken.invalidate("department:1") is False
        assert broken.invalidate_by_prefix("department:") == 0


class TestInvalidation:

    def test_invalidate_single_key(self, cache):
        cache.write("department:1", {"a": 1}, 60)
        assert cache.invalidate("department:1") is True
        assert cache.read("department:1") is None

    def test_invalidate_by_prefix(self, cache):
        cache.write("department:1:tree", [], 60)
        cache.write("department:1:org_chart", {}, 60)
        cache.write("department:12:tree", [], 60)
        assert cache.invalidate_by_prefix("department:1:") == 2
        assert cache.read("department:12:tree") == []

    def test_clear_is_scoped_to_namespace(self, backend, cache):
        backend.set("other_ns:department:1", "{}", 60)
        cache.write("department:1", {}, 60)
        cache.clear()
        assert backend.get("other_ns:department:1") == "{}"
        assert cache.read("department:1") is None
