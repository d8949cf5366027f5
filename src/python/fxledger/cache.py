"""In-memory read cache for book and entry lists."""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

BOOKS_KEY = "books"


def entries_key(book_id: str) -> str:
    """Cache key of a book's entry list."""
    return f"entries:book:{book_id}"


class DataCache:
    """Keyed cache filled on first read and dropped on writes."""

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}

    def get(self, key: str, loader: Callable[[], T]) -> T:
        """Return the cached value for key, loading it on a miss."""
        if key not in self._items:
            self._items[key] = loader()
        return self._items[key]

    def invalidate(self, key: str) -> None:
        """Drop a single key."""
        if self._items.pop(key, None) is not None:
            logger.debug("Invalidated cache key %s", key)

    def invalidate_books(self, book_ids: Any) -> None:
        """Drop the book list and the entry lists of the given books."""
        self.invalidate(BOOKS_KEY)
        for book_id in book_ids:
            self.invalidate(entries_key(book_id))

    def clear(self) -> None:
        """Drop everything."""
        self._items.clear()

    def keys(self) -> list[str]:
        return list(self._items)
