"""System integration tests for entry creation and normalization."""

from __future__ import annotations

import datetime as dt
import math

import pytest

from fxledger.exceptions import NotFoundError
from fxledger.models import BookDTO, EntryDTO, Normalization

ENTRY_DATE = dt.date(2026, 2, 16)


def _entry(book_id: str, amount: float, category: str = "Dining") -> EntryDTO:
    return EntryDTO(book_id=book_id, amount=amount, date=ENTRY_DATE, category=category)


@pytest.mark.sit
def test_add_entry_normalizes_with_book_lock(client) -> None:
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR"))

    record, result = client.add_entry(_entry(book.id, 100))

    assert record.currency == "EUR"
    assert record.amount == 100.0
    assert math.isclose(record.normalized_amount, 110.0)
    assert record.conversion_rate == 1.10
    assert record.normalized_currency == "USD"
    assert result.warning is None
    assert record.historical_rates.base_currency == "EUR"
    assert record.historical_rates.rates == {"USD": 1.10}


@pytest.mark.sit
def test_add_entry_falls_back_when_rate_unavailable(client, rates) -> None:
    rates.unavailable = True
    book = client.create_book(BookDTO(name="London", currency="GBP"))

    record, result = client.add_entry(_entry(book.id, 50))

    assert record.normalized_amount == 50.0
    assert record.conversion_rate == 1.0
    assert result.used_fallback
    assert record.historical_rates is None


@pytest.mark.sit
def test_same_currency_entry_ignores_provider(client, rates) -> None:
    book = client.create_book(BookDTO(name="Household", currency="USD"))
    rates.unavailable = True

    record, result = client.add_entry(_entry(book.id, -25))

    assert record.conversion_rate == 1.0
    assert record.normalized_amount == -25.0
    assert not result.used_fallback


@pytest.mark.sit
def test_add_entry_to_missing_book(client) -> None:
    with pytest.raises(NotFoundError):
        client.add_entry(_entry("missing", 10))


@pytest.mark.sit
def test_update_entry_recomputes_normalization(client) -> None:
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR"))
    record, _ = client.add_entry(_entry(book.id, 100))

    updated, result = client.update_entry(record.id, amount="200", remarks="corrected")

    assert updated.amount == 200.0
    assert updated.remarks == "corrected"
    assert math.isclose(updated.normalized_amount, 220.0)
    assert math.isclose(result.normalized_amount, 220.0)

    renamed, result = client.update_entry(record.id, category="Travel")
    assert renamed.category == "Travel"
    assert result is None

    with pytest.raises(ValueError):
        client.update_entry(record.id)


@pytest.mark.sit
def test_delete_entry(client) -> None:
    book = client.create_book(BookDTO(name="Household", currency="USD"))
    record, _ = client.add_entry(_entry(book.id, 10))
    assert len(client.list_entries(book.id)) == 1

    client.delete_entry(record.id)

    assert client.list_entries(book.id) == []
    with pytest.raises(NotFoundError):
        client.delete_entry(record.id)


@pytest.mark.sit
def test_reconcile_reads_do_not_persist(client) -> None:
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR"))
    record, _ = client.add_entry(_entry(book.id, 100))
    client.repository.update_entry(record.id, normalization=Normalization(105.0, "USD", 1.05))

    assert math.isclose(client.reconcile(record.id), 110.0)
    assert client.get_entry(record.id).normalized_amount == 105.0


@pytest.mark.sit
def test_repair_book_persists_stale_entries(client) -> None:
    book = client.create_book(BookDTO(name="Europe trip", currency="EUR"))
    stale, _ = client.add_entry(_entry(book.id, 100))
    fresh, _ = client.add_entry(_entry(book.id, 10))
    client.repository.update_entry(stale.id, normalization=Normalization(105.0, "USD", 1.05))

    assert client.repair_book(book.id) == 1

    repaired = client.get_entry(stale.id)
    assert math.isclose(repaired.normalized_amount, 110.0)
    assert repaired.conversion_rate == 1.10
    assert client.get_entry(fresh.id).updated_at == fresh.updated_at


@pytest.mark.sit
def test_add_entry_survives_snapshot_error(client, rates, monkeypatch) -> None:
    book = client.create_book(BookDTO(name="Home", currency="USD"))

    def _broken_snapshot(_: str):
        raise OSError("cache directory is not writable")

    monkeypatch.setattr(rates, "capture_snapshot", _broken_snapshot)

    record, result = client.add_entry(_entry(book.id, 12.5))

    assert record.historical_rates is None
    assert record.normalized_amount == 12.5
    assert result.warning is None
