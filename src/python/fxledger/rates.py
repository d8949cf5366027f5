"""Per-book locked exchange rates."""

from __future__ import annotations

import logging

from fxledger.exceptions import ConfirmationRequiredError
from fxledger.models import BookRecord, RateLock, ensure_currency, ensure_rate, utcnow
from fxledger.normalization import has_valid_lock
from fxledger.persistence import PersistenceBackend

logger = logging.getLogger(__name__)

DEFAULT_OVERRIDE_THRESHOLD = 0.10


def validate_manual_rate(value: float | int | str | None) -> float:
    """Parse a user supplied rate; invalid input raises InvalidRateError."""
    return ensure_rate(value, "Manual exchange rate")


def is_lock_stale(book: BookRecord, default_currency: str) -> bool:
    """A stored lock is stale once the default currency moved away from its target."""
    return book.lock is not None and book.target_currency != default_currency


def check_override(
    manual_rate: float,
    api_rate: float | None,
    *,
    confirmed: bool = False,
    threshold: float = DEFAULT_OVERRIDE_THRESHOLD,
) -> float | None:
    """Guard a manual rate against fat-finger entry.

    Returns the relative difference to the API rate (None without an API
    rate). Raises ConfirmationRequiredError when it exceeds threshold and the
    caller has not confirmed.
    """
    if api_rate is None or api_rate <= 0:
        return None
    diff = abs(manual_rate - api_rate) / api_rate
    if diff > threshold and not confirmed:
        raise ConfirmationRequiredError(
            f"Rate {manual_rate} differs by {diff * 100:.1f}% from the current API rate {api_rate:.4f}",
            {
                "manual_rate": manual_rate,
                "api_rate": api_rate,
                "percent_diff": diff * 100,
            },
        )
    return diff


class RateLockManager:
    """Read and write book rate locks through a persistence backend."""

    def __init__(self, backend: PersistenceBackend) -> None:
        self.backend = backend

    def lock_rate(self, book_id: str, rate: float, target_currency: str) -> BookRecord:
        """Store rate as the book's locked rate towards target_currency."""
        rate = validate_manual_rate(rate)
        target_currency = ensure_currency(target_currency, "Target currency")
        book = self.backend.get_book(book_id)
        if book.currency == target_currency:
            raise ValueError(
                f"Book {book.name!r} is already in {target_currency}; no rate lock is needed"
            )
        updated = self.backend.update_book(
            book_id,
            locked_rate=rate,
            target_currency=target_currency,
            rate_locked_at=utcnow(),
        )
        logger.info(
            "Locked rate for book %s: 1 %s = %s %s", book_id, book.currency, rate, target_currency
        )
        return updated

    def clear_lock(self, book_id: str) -> BookRecord:
        """Remove any lock from the book."""
        return self.backend.update_book(
            book_id, locked_rate=None, target_currency=None, rate_locked_at=None
        )

    def get_lock(self, book_id: str) -> RateLock | None:
        """Return the lock stored on the book, if any."""
        return self.backend.get_book(book_id).lock

    def get_valid_lock(self, book_id: str, default_currency: str) -> RateLock | None:
        """Return the lock only while it targets default_currency."""
        lock = self.get_lock(book_id)
        if not has_valid_lock(lock, default_currency):
            return None
        return lock
