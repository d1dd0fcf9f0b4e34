"""Tests for the extraction TTL cache."""

import pytest

from findadram.ingestion.cache import TTLCache


class FakeClock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    """Tests for TTLCache."""

    def test_set_and_get(self) -> None:
        cache: TTLCache[str] = TTLCache()
        cache.set("a", "alpha")
        assert cache.get("a") == "alpha"
        assert "a" in cache
        assert len(cache) == 1

    def test_missing_key(self) -> None:
        cache: TTLCache[str] = TTLCache()
        assert cache.get("missing") is None
        assert "missing" not in cache

    def test_entries_expire(self) -> None:
        """Entries are gone once their TTL has passed."""
        clock = FakeClock()
        cache: TTLCache[str] = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", "alpha")

        clock.now = 9.9
        assert cache.get("a") == "alpha"

        clock.now = 10.0
        assert cache.get("a") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self) -> None:
        """The oldest untouched entry goes first when full."""
        cache: TTLCache[int] = TTLCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert cache.get("c") == 3

    def test_clear(self) -> None:
        cache: TTLCache[int] = TTLCache()
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            TTLCache(max_entries=0)
