"""Conversion of entry amounts into the user's default currency."""

from __future__ import annotations

import logging
import math

from fxledger.forex import RateProvider
from fxledger.models import BookRecord, EntryRecord, NormalizationResult, RateLock

logger = logging.getLogger(__name__)

FALLBACK_RATE = 1.0
# Relative tolerance for treating two rates (or amounts) as equal
RATE_TOLERANCE = 1e-9


def rates_match(left: float | None, right: float | None) -> bool:
    """Compare two rates with the relative tolerance used across the ledger."""
    if left is None or right is None:
        return False
    return math.isclose(left, right, rel_tol=RATE_TOLERANCE)


def has_valid_lock(lock: RateLock | None, default_currency: str) -> bool:
    """A lock is only usable while it targets the current default currency."""
    return lock is not None and lock.rate > 0 and lock.target_currency == default_currency


def lock_for_entry(entry_currency: str, book: BookRecord) -> RateLock | None:
    """Return the book lock when it applies to an amount in entry_currency."""
    if entry_currency != book.currency:
        return None
    return book.lock


def lookup_rate(
    provider: RateProvider | None,
    from_currency: str,
    to_currency: str,
    book_id: str | None = None,
) -> float | None:
    """Ask the provider for a rate and treat any failure as unavailable."""
    if provider is None:
        return None
    try:
        rate = provider.get_rate(from_currency, to_currency, book_id)
    except Exception as exc:
        logger.warning("Rate lookup %s -> %s failed: %s", from_currency, to_currency, exc)
        return None
    if rate is None:
        return None
    rate = float(rate)
    if not math.isfinite(rate) or rate <= 0:
        logger.warning(
            "Rate provider returned unusable rate %r for %s -> %s", rate, from_currency, to_currency
        )
        return None
    return rate


def resolve_rate(
    currency: str,
    default_currency: str,
    provider: RateProvider | None,
    lock: RateLock | None = None,
    book_id: str | None = None,
) -> float | None:
    """Pick the conversion rate: same currency, then a valid lock, then the provider."""
    if currency == default_currency:
        return 1.0
    if has_valid_lock(lock, default_currency):
        return lock.rate
    return lookup_rate(provider, currency, default_currency, book_id)


def normalize(
    amount: float,
    currency: str,
    default_currency: str,
    provider: RateProvider | None,
    lock: RateLock | None = None,
    book_id: str | None = None,
) -> NormalizationResult:
    """Convert amount from currency into default_currency.

    A failed lookup never blocks the caller: the amount is kept as is with a
    rate of 1.0 and the result carries a warning.
    """
    rate = resolve_rate(currency, default_currency, provider, lock=lock, book_id=book_id)
    if rate is None:
        warning = (
            f"Exchange rate {currency} -> {default_currency} unavailable; "
            f"amount kept unconverted at rate {FALLBACK_RATE}"
        )
        logger.warning(warning)
        return NormalizationResult(
            normalized_amount=amount,
            conversion_rate=FALLBACK_RATE,
            normalized_currency=default_currency,
            warning=warning,
        )
    logger.debug("Normalized %s %s x %s -> %s", amount, currency, rate, default_currency)
    return NormalizationResult(
        normalized_amount=amount * rate,
        conversion_rate=rate,
        normalized_currency=default_currency,
    )


def normalize_entry(
    entry: EntryRecord,
    book: BookRecord,
    default_currency: str,
    provider: RateProvider | None,
) -> NormalizationResult:
    """Normalize an existing entry against its book."""
    return normalize(
        entry.amount,
        entry.currency,
        default_currency,
        provider,
        lock=lock_for_entry(entry.currency, book),
        book_id=book.id,
    )


def normalization_is_current(
    entry: EntryRecord,
    result: NormalizationResult,
) -> bool:
    """True when the stored normalization already equals result."""
    stored = entry.normalization
    if stored is None:
        return False
    return (
        stored.currency == result.normalized_currency
        and rates_match(stored.rate, result.conversion_rate)
        and math.isclose(stored.amount, result.normalized_amount, rel_tol=RATE_TOLERANCE, abs_tol=1e-12)
    )
