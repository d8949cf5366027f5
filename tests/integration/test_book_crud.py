"""System integration tests for book lifecycle through the client."""

from __future__ import annotations

import datetime as dt

import pytest

from fxledger.exceptions import (
    ConfirmationRequiredError,
    InvalidRateError,
    NotFoundError,
    OperationInProgressError,
)
from fxledger.models import BookDTO, EntryDTO


@pytest.mark.sit
def test_create_book_locks_api_rate(client, rates) -> None:
    record = client.create_book(BookDTO(name="Europe trip", currency="EUR"))

    assert record.currency == "EUR"
    assert record.locked_rate == 1.10
    assert record.target_currency == "USD"
    assert record.rate_locked_at is not None
    assert client.get_book(record.id) == record


@pytest.mark.sit
def test_create_book_in_default_currency_has_no_lock(client) -> None:
    record = client.create_book(BookDTO(name="Household", currency="USD"))

    assert record.lock is None

    with pytest.raises(InvalidRateError):
        client.create_book(BookDTO(name="Other", currency="USD", locked_rate=2.0))


@pytest.mark.sit
def test_create_book_without_rate_available(client, rates) -> None:
    rates.unavailable = True

    record = client.create_book(BookDTO(name="London", currency="GBP"))

    assert record.lock is None
    assert record.locked_rate is None


@pytest.mark.sit
def test_create_book_with_manual_rate_far_from_api(client) -> None:
    book = BookDTO(name="Europe trip", currency="EUR", locked_rate=1.5)

    with pytest.raises(ConfirmationRequiredError) as excinfo:
        client.create_book(book)
    assert excinfo.value.details["api_rate"] == 1.10
    assert client.list_books() == []

    record = client.create_book(book, confirmed=True)
    assert record.locked_rate == 1.5


@pytest.mark.sit
def test_list_books_refreshes_after_create(client) -> None:
    assert client.list_books() == []

    client.create_book(BookDTO(name="Household", currency="USD"))
    client.create_book(BookDTO(name="Europe trip", currency="EUR"))

    assert [record.name for record in client.list_books()] == ["Europe trip", "Household"]


@pytest.mark.sit
def test_delete_book_removes_entries(client) -> None:
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR"))
    entry, _ = client.add_entry(
        EntryDTO(book_id=book.id, amount=10, date=dt.date(2026, 1, 2), category="Food")
    )

    client.delete_book(book.id)

    with pytest.raises(NotFoundError):
        client.get_book(book.id)
    with pytest.raises(NotFoundError):
        client.get_entry(entry.id)
    assert client.list_books() == []


@pytest.mark.sit
def test_book_action_rejected_while_in_progress(client) -> None:
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR"))

    with client._action_guard(f"book:{book.id}"):
        with pytest.raises(OperationInProgressError):
            client.edit_locked_rate(book.id, 1.11)

    updated, _ = client.edit_locked_rate(book.id, 1.11)
    assert updated.locked_rate == 1.11
