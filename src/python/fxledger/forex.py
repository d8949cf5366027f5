"""Forex rate fetching and caching utilities."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import datetime as dt
from decimal import Decimal
import json
import logging
from pathlib import Path
from typing import Any, Callable

import requests

from fxledger.exceptions import RateUnavailableError
from fxledger.models import BookRecord, RatesSnapshot, ensure_currency, utcnow

logger = logging.getLogger(__name__)

CACHE_VERSION = 1
DEFAULT_CACHE_TTL_HOURS = 1
DEFAULT_TIMEOUT_SECONDS = 5
REF_CURRENCY = "USD"
# Snapshot currencies kept on each entry for the audit trail
MAJOR_CURRENCIES = (
    "USD", "EUR", "GBP", "INR", "JPY", "CNY", "AUD", "CAD", "CHF",
    "SEK", "NOK", "SGD", "HKD", "KRW", "MXN", "BRL", "ZAR", "AED",
)


class RateProvider(ABC):
    """Source of exchange rates consumed by the normalization engine."""

    @abstractmethod
    def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        book_id: str | None = None,
    ) -> float | None:
        """Return the rate from from_currency to to_currency, or None."""

    @abstractmethod
    def capture_snapshot(self, base_currency: str) -> RatesSnapshot:
        """Return rates from base_currency to the major currencies."""


@dataclass(frozen=True)
class ForexConfig:
    """Configuration for forex rate fetching."""

    cache_ttl_hours: int = DEFAULT_CACHE_TTL_HOURS
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS


class ForexRateManager(RateProvider):
    """Fetch and cache forex rates using a public API.

    When ``book_lookup`` is given, a rate request scoped by ``book_id`` uses
    that book's locked rate (or its inverse) before any API rate.
    """

    EXCHANGE_RATE_API_URL = "https://api.exchangerate-api.com/v4/latest"

    def __init__(
        self,
        config: dict[str, Any],
        cache_path: str | Path,
        book_lookup: Callable[[str], BookRecord | None] | None = None,
    ) -> None:
        self.config = ForexConfig(
            cache_ttl_hours=int(config.get("cache_ttl_hours", DEFAULT_CACHE_TTL_HOURS)),
            timeout_seconds=int(config.get("timeout", DEFAULT_TIMEOUT_SECONDS)),
        )
        self.cache_path = Path(cache_path)
        self.book_lookup = book_lookup
        self._cache: dict[str, Any] = self._load_cache()

    def get_rate(
        self,
        from_currency: str,
        to_currency: str,
        book_id: str | None = None,
    ) -> float | None:
        """Get a rate for from_currency to to_currency.

        Returns None if the rate cannot be resolved.
        """
        from_currency = ensure_currency(from_currency)
        to_currency = ensure_currency(to_currency)

        if from_currency == to_currency:
            return 1.0

        if book_id is not None:
            locked = self._get_book_locked_rate(book_id, from_currency, to_currency)
            if locked is not None:
                return locked

        try:
            return self._resolve_rate(self._get_rates(), from_currency, to_currency)
        except RateUnavailableError as exc:
            logger.warning("%s", exc)
            return None

    def capture_snapshot(self, base_currency: str) -> RatesSnapshot:
        """Capture rates from base_currency to the major currencies.

        An empty snapshot is returned when no rates are available.
        """
        base_currency = ensure_currency(base_currency)
        rates = self._get_rates()
        snapshot: dict[str, float] = {}
        if rates:
            for code in MAJOR_CURRENCIES:
                try:
                    snapshot[code] = self._resolve_rate(rates, base_currency, code)
                except RateUnavailableError:
                    continue
        logger.debug("Captured %d rates for %s", len(snapshot), base_currency)
        return RatesSnapshot(captured_at=utcnow(), base_currency=base_currency, rates=snapshot)

    def _get_book_locked_rate(
        self,
        book_id: str,
        from_currency: str,
        to_currency: str,
    ) -> float | None:
        if self.book_lookup is None:
            return None
        book = self.book_lookup(book_id)
        if book is None or not book.locked_rate:
            return None
        if book.currency == from_currency and book.target_currency == to_currency:
            logger.debug("Using locked rate of book %s: %s", book_id, book.locked_rate)
            return float(book.locked_rate)
        if book.target_currency == from_currency and book.currency == to_currency:
            return float(Decimal("1") / Decimal(str(book.locked_rate)))
        return None

    @staticmethod
    def _resolve_rate(rates: dict[str, float], from_currency: str, to_currency: str) -> float:
        if from_currency == to_currency:
            return 1.0
        if not rates:
            raise RateUnavailableError(
                f"No exchange rates available for {from_currency} -> {to_currency}"
            )

        def _ref_rate(code: str) -> Decimal:
            if code == REF_CURRENCY:
                return Decimal("1")
            value = rates.get(code)
            if not value:
                raise RateUnavailableError(f"No exchange rate known for {code}")
            return Decimal(str(value))

        from_rate = _ref_rate(from_currency)
        to_rate = _ref_rate(to_currency)
        return float(to_rate / from_rate)

    def _get_rates(self) -> dict[str, float]:
        if self._is_cache_valid():
            cached_rates = self._cache.get("rates", {})
            if cached_rates:
                return cached_rates

        try:
            rates = self._fetch_from_api(REF_CURRENCY)
        except Exception as exc:
            logger.warning("Exchange rate API unavailable: %s", exc)
            rates = {}
        if rates:
            self._cache = self._build_cache(rates)
            try:
                self._save_cache(self._cache)
            except Exception as exc:
                logger.warning("Could not write rate cache %s: %s", self.cache_path, exc)
            return rates

        cached_rates = self._cache.get("rates", {}) if self._cache else {}
        if cached_rates:
            return cached_rates
        return {}

    def _fetch_from_api(self, currency: str) -> dict[str, float]:
        url = f"{self.EXCHANGE_RATE_API_URL}/{currency}"
        response = requests.get(url, timeout=self.config.timeout_seconds)
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            return {}
        rates = payload.get("rates", {})
        if not isinstance(rates, dict):
            return {}
        return rates

    def _load_cache(self) -> dict[str, Any]:
        if not self.cache_path.exists():
            return {}
        try:
            with self.cache_path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
            if not isinstance(payload, dict):
                return {}
            return payload
        except (OSError, json.JSONDecodeError):
            return {}

    def _save_cache(self, payload: dict[str, Any]) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        with self.cache_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle)

    def _build_cache(self, rates: dict[str, float]) -> dict[str, Any]:
        timestamp = utcnow().isoformat()
        return {
            "metadata": {"version": CACHE_VERSION, "last_update": timestamp},
            "timestamp": timestamp,
            "base": REF_CURRENCY,
            "rates": rates,
        }

    def _is_cache_valid(self) -> bool:
        timestamp = self._cache.get("timestamp") if self._cache else None
        if not timestamp:
            return False
        try:
            cached_at = dt.datetime.fromisoformat(timestamp)
        except ValueError:
            return False
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=dt.timezone.utc)
        age = utcnow() - cached_at
        ttl = dt.timedelta(hours=self.config.cache_ttl_hours)
        return age <= ttl
