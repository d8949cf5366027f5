"""System integration tests for changing a book's currency."""

from __future__ import annotations

import datetime as dt
import math

import pytest

from fxledger.exceptions import ConfirmationRequiredError, InvalidRateError
from fxledger.models import BookDTO, EntryDTO


def _euro_book_with_entry(client):
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR", locked_rate=1.2))
    entry, _ = client.add_entry(
        EntryDTO(book_id=book.id, amount=100, date=dt.date(2026, 4, 1), category="Train")
    )
    return book, entry


@pytest.mark.sit
def test_currency_change_with_entries_needs_confirmation(client) -> None:
    book, _ = _euro_book_with_entry(client)

    with pytest.raises(ConfirmationRequiredError) as excinfo:
        client.update_book_currency(book.id, "GBP")

    assert excinfo.value.details["entry_count"] == 1
    assert excinfo.value.details["to_currency"] == "GBP"
    assert client.get_book(book.id).currency == "EUR"


@pytest.mark.sit
def test_currency_change_renormalizes_entries(client) -> None:
    book, entry = _euro_book_with_entry(client)
    assert math.isclose(entry.normalized_amount, 120.0)

    updated, result = client.update_book_currency(book.id, "gbp", confirmed=True)

    assert updated.currency == "GBP"
    assert updated.locked_rate == 1.25
    assert updated.target_currency == "USD"
    assert len(updated.currency_history) == 1
    change = updated.currency_history[0]
    assert (change.from_currency, change.to_currency) == ("EUR", "GBP")
    assert change.exchange_rate == 1.25
    assert change.affected_entries == 1

    assert result.updated == 1
    stored = client.get_entry(entry.id)
    assert stored.currency == "EUR"
    assert stored.amount == 100.0
    assert math.isclose(stored.normalized_amount, 110.0)
    assert stored.conversion_rate == 1.10


@pytest.mark.sit
def test_currency_change_to_default_clears_lock(client) -> None:
    book, entry = _euro_book_with_entry(client)

    updated, _ = client.update_book_currency(book.id, "USD", confirmed=True)

    assert updated.lock is None
    assert updated.currency_history[0].exchange_rate is None
    assert math.isclose(client.get_entry(entry.id).normalized_amount, 110.0)


@pytest.mark.sit
def test_currency_change_with_explicit_rate(client) -> None:
    book = client.create_book(BookDTO(name="Savings", currency="EUR"))

    updated, result = client.update_book_currency(book.id, "INR", rate=0.012)

    assert updated.currency == "INR"
    assert updated.locked_rate == 0.012
    assert result.updated == 0


@pytest.mark.sit
def test_currency_change_skips_entries_without_rate(client, rates) -> None:
    book, entry = _euro_book_with_entry(client)
    rates.unavailable = True

    updated, result = client.update_book_currency(book.id, "GBP", confirmed=True)

    assert updated.lock is None
    assert result.skipped == [entry.id]
    assert math.isclose(client.get_entry(entry.id).normalized_amount, 120.0)


@pytest.mark.sit
def test_currency_change_to_same_currency_is_noop(client) -> None:
    book, _ = _euro_book_with_entry(client)

    updated, result = client.update_book_currency(book.id, "EUR")

    assert updated == book
    assert result.updated == 0


@pytest.mark.sit
def test_currency_change_far_rate_needs_confirmation(client) -> None:
    book = client.create_book(BookDTO(name="Savings", currency="EUR"))

    with pytest.raises(ConfirmationRequiredError) as excinfo:
        client.update_book_currency(book.id, "INR", rate=5.0)

    assert excinfo.value.details["manual_rate"] == 5.0
    assert math.isclose(excinfo.value.details["api_rate"], 1 / 83.0)
    unchanged = client.get_book(book.id)
    assert unchanged.currency == "EUR"
    assert unchanged.currency_history == ()

    updated, _ = client.update_book_currency(book.id, "INR", rate=5.0, confirmed=True)

    assert updated.currency == "INR"
    assert updated.locked_rate == 5.0


@pytest.mark.sit
def test_currency_change_to_default_rejects_other_rate(client) -> None:
    book = client.create_book(BookDTO(name="Savings", currency="EUR"))

    with pytest.raises(InvalidRateError):
        client.update_book_currency(book.id, "USD", rate=1.2)

    assert client.get_book(book.id).currency == "EUR"
