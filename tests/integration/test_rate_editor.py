"""System integration tests for manual rate locks."""

from __future__ import annotations

import datetime as dt
import math

import pytest

from fxledger.exceptions import ConfirmationRequiredError, InvalidRateError, RateUnavailableError
from fxledger.models import BookDTO, EntryDTO


def _book_with_entry(client, amount: float = 100):
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR"))
    entry, _ = client.add_entry(
        EntryDTO(book_id=book.id, amount=amount, date=dt.date(2026, 3, 1), category="Hotel")
    )
    return book, entry


@pytest.mark.sit
def test_quote_rate(client, rates) -> None:
    book, _ = _book_with_entry(client)
    rates.set_rate("EUR", "USD", 1.21)

    quote = client.quote_rate(book.id)

    assert quote.api_rate == 1.21
    assert quote.locked_rate == 1.10
    assert quote.target_currency == "USD"
    assert not quote.is_stale
    assert math.isclose(quote.percent_diff, 0.11 / 1.21 * 100)


@pytest.mark.sit
def test_edit_locked_rate_renormalizes_entries(client) -> None:
    book, entry = _book_with_entry(client)

    updated, result = client.edit_locked_rate(book.id, "1.15")

    assert updated.locked_rate == 1.15
    assert updated.target_currency == "USD"
    assert result.updated == 1
    assert result.skipped == []
    stored = client.get_entry(entry.id)
    assert math.isclose(stored.normalized_amount, 115.0)
    assert stored.conversion_rate == 1.15
    assert math.isclose(client.aggregate(book.id).total_income, 115.0)


@pytest.mark.sit
def test_edit_locked_rate_far_from_api_needs_confirmation(client) -> None:
    book, entry = _book_with_entry(client)

    with pytest.raises(ConfirmationRequiredError):
        client.edit_locked_rate(book.id, 2.0)
    assert client.get_book(book.id).locked_rate == 1.10

    updated, _ = client.edit_locked_rate(book.id, 2.0, confirmed=True)
    assert updated.locked_rate == 2.0
    assert math.isclose(client.get_entry(entry.id).normalized_amount, 200.0)


@pytest.mark.sit
@pytest.mark.parametrize("rate", ["0", "-1", "nan", "inf", "abc"])
def test_edit_locked_rate_rejects_invalid_rates(client, rate: str) -> None:
    book, _ = _book_with_entry(client)

    with pytest.raises(InvalidRateError):
        client.edit_locked_rate(book.id, rate)
    assert client.get_book(book.id).locked_rate == 1.10


@pytest.mark.sit
def test_default_currency_book_has_no_editable_rate(client) -> None:
    book = client.create_book(BookDTO(name="Household", currency="USD"))

    with pytest.raises(ValueError):
        client.edit_locked_rate(book.id, 1.0)


@pytest.mark.sit
def test_revert_to_api_rate(client) -> None:
    book, entry = _book_with_entry(client)
    client.edit_locked_rate(book.id, 1.5, confirmed=True)

    reverted, result = client.revert_to_api_rate(book.id)

    assert reverted.locked_rate == 1.10
    assert result.updated == 1
    assert math.isclose(client.get_entry(entry.id).normalized_amount, 110.0)


@pytest.mark.sit
def test_revert_without_api_rate(client, rates) -> None:
    book, _ = _book_with_entry(client)
    rates.unavailable = True

    with pytest.raises(RateUnavailableError):
        client.revert_to_api_rate(book.id)
    assert client.get_book(book.id).locked_rate == 1.10


@pytest.mark.sit
def test_lock_goes_stale_when_default_currency_changes(client, rates, preferences) -> None:
    book, entry = _book_with_entry(client)
    rates.set_rate("EUR", "INR", 90.0)

    preferences.set_default_currency("INR")

    assert client.quote_rate(book.id).is_stale
    assert client.reconcile(entry.id) == 9000.0
    totals = client.aggregate(book.id)
    assert totals.currency == "INR"
    assert totals.total_income == 9000.0
