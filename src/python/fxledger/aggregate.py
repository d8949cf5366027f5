"""Income, expense and balance totals in the default currency."""

from __future__ import annotations

from collections.abc import Iterable

from fxledger.forex import RateProvider
from fxledger.models import BookRecord, BookTotals, EntryRecord
from fxledger.reconcile import reconcile


def aggregate_entries(
    entries: Iterable[EntryRecord],
    book: BookRecord,
    default_currency: str,
    provider: RateProvider | None = None,
) -> BookTotals:
    """Sum the reconciled amounts of one book's entries."""
    total_income = 0.0
    total_expenses = 0.0
    count = 0
    for entry in entries:
        amount = reconcile(entry, book, default_currency, provider)
        if amount >= 0:
            total_income += amount
        else:
            total_expenses += abs(amount)
        count += 1
    return BookTotals(
        book_id=book.id,
        currency=default_currency,
        total_income=total_income,
        total_expenses=total_expenses,
        net_balance=total_income - total_expenses,
        entry_count=count,
    )


def combine_totals(totals: Iterable[BookTotals], default_currency: str) -> BookTotals:
    """Add per-book totals into one grand total."""
    total_income = 0.0
    total_expenses = 0.0
    count = 0
    for item in totals:
        total_income += item.total_income
        total_expenses += item.total_expenses
        count += item.entry_count
    return BookTotals(
        book_id=None,
        currency=default_currency,
        total_income=total_income,
        total_expenses=total_expenses,
        net_balance=total_income - total_expenses,
        entry_count=count,
    )


def aggregate_books(
    books: Iterable[tuple[BookRecord, list[EntryRecord]]],
    default_currency: str,
    provider: RateProvider | None = None,
) -> BookTotals:
    """Reconcile each book against its own lock and sum everything."""
    return combine_totals(
        (aggregate_entries(entries, book, default_currency, provider) for book, entries in books),
        default_currency,
    )
