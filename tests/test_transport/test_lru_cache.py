import pytest

from screen_pilot.cache import LRUCache


def test_inserting_past_capacity_evicts_least_recently_used() -> None:
    cache: LRUCache[str] = LRUCache(3)
    cache.set("a", "1")
    cache.set("b", "2")
    cache.set("c", "3")

    cache.set("d", "4")

    assert "a" not in cache
    assert cache.keys() == ["b", "c", "d"]
    assert len(cache) == 3


def test_get_promotes_entry_and_changes_eviction_order() -> None:
    cache: LRUCache[str] = LRUCache(3)
    cache.set("a", "1")
    cache.set("b", "2")
    cache.set("c", "3")

    assert cache.get("a") == "1"
    cache.set("d", "4")

    assert "a" in cache
    assert "b" not in cache


def test_has_does_not_touch_recency() -> None:
    cache: LRUCache[int] = LRUCache(2)
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.has("a")
    cache.set("c", 3)

    assert not cache.has("a")


def test_replacing_existing_key_does_not_evict() -> None:
    cache: LRUCache[int] = LRUCache(2)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.set("a", 10)

    assert len(cache) == 2
    assert cache.keys() == ["b", "a"]
    assert cache.get("a") == 10


def test_delete_and_evict() -> None:
    cache: LRUCache[int | None] = LRUCache(3)
    cache.set("a", None)
    cache.set("b", 2)

    assert cache.delete("a") is True
    assert cache.delete("a") is False
    assert cache.evict() == "b"
    assert cache.evict() is None


def test_get_missing_returns_default() -> None:
    cache: LRUCache[str] = LRUCache(1)

    assert cache.get("missing") is None
    assert cache.get("missing", "fallback") == "fallback"


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        LRUCache(0)
