"""Tests for the TTL data cache."""

import pytest

from project_risk_engine.ingestor.cache import DataCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> DataCache[str]:
    return DataCache(max_size=3, clock=clock)


class TestDataCache:
    """Tests for DataCache."""

    def test_get_missing(self, cache: DataCache[str]) -> None:
        assert cache.get("nope") is None

    def test_set_and_get(self, cache: DataCache[str]) -> None:
        cache.set("a", "alpha", ttl_seconds=10)
        assert cache.get("a") == "alpha"
        assert "a" in cache
        assert len(cache) == 1

    def test_lazy_expiry(self, cache: DataCache[str], clock: FakeClock) -> None:
        """Test expired entries are dropped on read."""
        cache.set("a", "alpha", ttl_seconds=10)

        clock.now += 10
        assert cache.get("a") == "alpha"

        clock.now += 0.001
        assert len(cache) == 1
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_evicts_oldest_inserted(self, cache: DataCache[str]) -> None:
        """Test FIFO eviction when full, even if the oldest was read recently."""
        cache.set("a", "1", 60)
        cache.set("b", "2", 60)
        cache.set("c", "3", 60)
        cache.get("a")

        cache.set("d", "4", 60)

        assert cache.get("a") is None
        assert cache.get("b") == "2"
        assert cache.get("d") == "4"
        assert len(cache) == 3

    def test_reset_key_refreshes_insertion_order(self, cache: DataCache[str]) -> None:
        cache.set("a", "1", 60)
        cache.set("b", "2", 60)
        cache.set("c", "3", 60)
        cache.set("a", "1b", 60)

        cache.set("d", "4", 60)

        assert cache.get("a") == "1b"
        assert cache.get("b") is None

    def test_invalidate(self, cache: DataCache[str]) -> None:
        cache.set("a", "1", 60)
        assert cache.invalidate("a") is True
        assert cache.invalidate("a") is False
        assert cache.get("a") is None

    def test_invalidate_matching(self) -> None:
        cache: DataCache[int] = DataCache()
        cache.set("on_chain:p1:1:full", 1, 60)
        cache.set("on_chain:p1:137:private", 2, 60)
        cache.set("on_chain:p10:1:full", 3, 60)

        removed = cache.invalidate_matching(lambda key: key.startswith("on_chain:p1:"))

        assert removed == 2
        assert cache.get("on_chain:p10:1:full") == 3

    def test_clear_and_stats(self, cache: DataCache[str]) -> None:
        cache.set("a", "1", 60)
        assert cache.stats() == {"size": 1, "max_size": 3}
        cache.clear()
        assert cache.stats() == {"size": 0, "max_size": 3}

    def test_invalid_max_size(self) -> None:
        with pytest.raises(ValueError):
            DataCache(max_size=0)
