from __future__ import annotations

from fxledger.cache import BOOKS_KEY, DataCache, entries_key


def test_get_loads_once() -> None:
    cache = DataCache()
    calls = []

    def loader() -> list[str]:
        calls.append(1)
        return ["book"]

    assert cache.get(BOOKS_KEY, loader) == ["book"]
    assert cache.get(BOOKS_KEY, loader) == ["book"]
    assert len(calls) == 1


def test_invalidate_books_drops_related_keys() -> None:
    cache = DataCache()
    cache.get(BOOKS_KEY, list)
    cache.get(entries_key("a"), list)
    cache.get(entries_key("b"), list)
    cache.get(entries_key("c"), list)

    cache.invalidate_books(["a", "b"])

    assert cache.keys() == [entries_key("c")]
