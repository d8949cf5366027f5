from __future__ import annotations

import datetime as dt
import math

import pytest

from fxledger.exceptions import InvalidRateError
from fxledger.models import (
    BookDTO,
    ConversionRecord,
    EntryDTO,
    NormalizationResult,
    RateQuote,
    ensure_rate,
)


def test_book_dto_normalizes_currency() -> None:
    book = BookDTO(name="  Travel ", currency="eur")

    assert book.name == "Travel"
    assert book.currency == "EUR"
    assert book.locked_rate is None


def test_book_dto_validation() -> None:
    with pytest.raises(ValueError):
        BookDTO(name="", currency="EUR")

    with pytest.raises(ValueError):
        BookDTO(name="Travel", currency="EURO")

    with pytest.raises(InvalidRateError):
        BookDTO(name="Travel", currency="EUR", locked_rate=0)


def test_entry_dto_parses_inputs() -> None:
    entry = EntryDTO(
        book_id="abc",
        amount="-12.5",
        date="2026-02-16",
        category="Dining",
        payment_mode="UPI",
    )

    assert entry.amount == -12.5
    assert entry.date == dt.date(2026, 2, 16)
    assert entry.payment_mode == "upi"
    assert entry.party is None


def test_entry_dto_validation() -> None:
    with pytest.raises(ValueError):
        EntryDTO(book_id="abc", amount=10, date="16/02/2026", category="Dining")

    with pytest.raises(ValueError):
        EntryDTO(book_id="abc", amount=10, date="2026-02-16", category="Dining", payment_mode="barter")

    with pytest.raises(ValueError):
        EntryDTO(book_id="abc", amount=float("inf"), date="2026-02-16", category="Dining")


@pytest.mark.parametrize("value", [0, -1.5, float("nan"), float("inf"), "abc", None])
def test_ensure_rate_rejects_unusable_rates(value) -> None:
    with pytest.raises(InvalidRateError):
        ensure_rate(value)


def test_ensure_rate_accepts_numeric_strings() -> None:
    assert ensure_rate("83.25") == 83.25


def test_invalid_rate_error_is_value_error() -> None:
    assert issubclass(InvalidRateError, ValueError)


def test_conversion_record_rejects_unknown_reason() -> None:
    with pytest.raises(ValueError):
        ConversionRecord(
            from_currency="USD",
            from_amount=10.0,
            to_currency="INR",
            to_amount=830.0,
            exchange_rate=83.0,
            converted_at=dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc),
            reason="rounding",
        )


def test_rate_quote_percent_diff() -> None:
    quote = RateQuote(
        book_id="abc",
        book_currency="EUR",
        target_currency="USD",
        api_rate=1.10,
        locked_rate=1.21,
        is_stale=False,
    )

    assert math.isclose(quote.percent_diff, 10.0)

    missing = RateQuote("abc", "EUR", "USD", None, 1.21, False)
    assert missing.percent_diff is None


def test_normalization_result_fallback_flag() -> None:
    converted = NormalizationResult(110.0, 1.10, "USD")
    fallback = NormalizationResult(50.0, 1.0, "USD", warning="unavailable")

    assert not converted.used_fallback
    assert fallback.used_fallback
    assert fallback.as_normalization().rate == 1.0
