"""Read-time consistency checks for cached normalized amounts."""

from __future__ import annotations

import logging

from fxledger.forex import RateProvider
from fxledger.models import BookRecord, EntryRecord
from fxledger.normalization import (
    has_valid_lock,
    lock_for_entry,
    normalization_is_current,
    normalize_entry,
    rates_match,
    resolve_rate,
)
from fxledger.persistence import PersistenceBackend

logger = logging.getLogger(__name__)


def is_stale(entry: EntryRecord, book: BookRecord, default_currency: str) -> bool:
    """True when the entry's cached rate disagrees with the book's valid lock."""
    lock = lock_for_entry(entry.currency, book)
    if entry.normalization is None or not has_valid_lock(lock, default_currency):
        return False
    if entry.normalization.currency != default_currency:
        return False
    return not rates_match(entry.normalization.rate, lock.rate)


def reconcile(
    entry: EntryRecord,
    book: BookRecord,
    default_currency: str,
    provider: RateProvider | None = None,
) -> float:
    """Return the entry amount in default_currency without touching storage.

    1. A normalization in default_currency is trusted unless the book holds a
       valid lock whose rate differs from the cached one; then the amount is
       recomputed with the lock for this read only.
    2. Entries without a usable normalization are converted on the fly; when
       no rate is available the amount is used unconverted.
    """
    normalization = entry.normalization
    if normalization is not None and normalization.currency == default_currency:
        if is_stale(entry, book, default_currency):
            effective = entry.amount * book.locked_rate
            logger.info(
                "Stale rate on entry %s: cached %s, book %s locks %s; using %s",
                entry.id,
                normalization.rate,
                book.id,
                book.locked_rate,
                effective,
            )
            return effective
        return normalization.amount

    if entry.currency == default_currency:
        return entry.amount

    rate = resolve_rate(
        entry.currency,
        default_currency,
        provider,
        lock=lock_for_entry(entry.currency, book),
        book_id=book.id,
    )
    if rate is None:
        logger.warning(
            "No rate for legacy entry %s (%s -> %s); using unconverted amount",
            entry.id,
            entry.currency,
            default_currency,
        )
        return entry.amount
    return entry.amount * rate


def repair_and_persist(
    entry: EntryRecord,
    book: BookRecord,
    default_currency: str,
    provider: RateProvider | None,
    backend: PersistenceBackend,
) -> EntryRecord | None:
    """Recompute an entry's normalization and write it back when it changed.

    Returns the updated record, or None when nothing had to be written or
    the rate was unavailable.
    """
    result = normalize_entry(entry, book, default_currency, provider)
    if result.used_fallback:
        logger.warning("Not repairing entry %s: %s", entry.id, result.warning)
        return None
    if normalization_is_current(entry, result):
        return None
    logger.info(
        "Repairing entry %s: %s -> %s %s",
        entry.id,
        entry.normalized_amount,
        result.normalized_amount,
        result.normalized_currency,
    )
    return backend.update_entry(entry.id, normalization=result.as_normalization())
