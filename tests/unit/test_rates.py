from __future__ import annotations

import math

import pytest

from fxledger.exceptions import ConfirmationRequiredError, InvalidRateError
from fxledger.rates import check_override, is_lock_stale, validate_manual_rate
from tests.utils.factories import make_book


def test_check_override_within_threshold() -> None:
    diff = check_override(1.12, 1.10)

    assert math.isclose(diff, 0.02 / 1.10)


def test_check_override_requires_confirmation() -> None:
    with pytest.raises(ConfirmationRequiredError) as excinfo:
        check_override(1.50, 1.10)

    details = excinfo.value.details
    assert details["manual_rate"] == 1.50
    assert details["api_rate"] == 1.10
    assert math.isclose(details["percent_diff"], 0.40 / 1.10 * 100)


def test_check_override_confirmed() -> None:
    assert check_override(1.50, 1.10, confirmed=True) > 0.10


def test_check_override_custom_threshold() -> None:
    with pytest.raises(ConfirmationRequiredError):
        check_override(1.12, 1.10, threshold=0.01)


def test_check_override_without_api_rate() -> None:
    assert check_override(5.0, None) is None


@pytest.mark.parametrize("value", ["", "0", "-2", "nan", "inf", "x"])
def test_validate_manual_rate_rejects(value: str) -> None:
    with pytest.raises(InvalidRateError):
        validate_manual_rate(value)


def test_is_lock_stale() -> None:
    book = make_book("EUR", locked_rate=1.10, target_currency="USD")

    assert not is_lock_stale(book, "USD")
    assert is_lock_stale(book, "INR")
    assert not is_lock_stale(make_book("EUR"), "INR")
