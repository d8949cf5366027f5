"""User preference sources for the default display currency."""

from __future__ import annotations

from abc import ABC, abstractmethod
import json
from pathlib import Path

from fxledger.models import ensure_currency

DEFAULT_CURRENCY = "USD"


class UserPreferences(ABC):
    """Source of the user's default currency."""

    @abstractmethod
    def get_default_currency(self) -> str:
        """Return the current default currency code."""


class StaticPreferences(UserPreferences):
    """Fixed default currency, for embedding and tests."""

    def __init__(self, default_currency: str = DEFAULT_CURRENCY) -> None:
        self.default_currency = ensure_currency(default_currency, "Default currency")

    def get_default_currency(self) -> str:
        return self.default_currency

    def set_default_currency(self, currency: str) -> None:
        self.default_currency = ensure_currency(currency, "Default currency")


class ConfigPreferences(UserPreferences):
    """Default currency stored in the JSON config file.

    The file is read on every call so a change made elsewhere is picked up by
    the next operation.
    """

    def __init__(self, config_path: str | Path) -> None:
        self.config_path = Path(config_path)

    def get_default_currency(self) -> str:
        payload = self._load()
        return ensure_currency(payload.get("default_currency") or DEFAULT_CURRENCY, "Default currency")

    def set_default_currency(self, currency: str) -> None:
        payload = self._load()
        payload["default_currency"] = ensure_currency(currency, "Default currency")
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with self.config_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)

    def _load(self) -> dict:
        if not self.config_path.exists():
            return {}
        with self.config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            return {}
        return payload
