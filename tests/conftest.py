"""Pytest configuration and fixtures.

Integration tests run against a temporary SQLite database and an in-memory
rate provider, so no test touches the network or the user's config file.
"""
from __future__ import annotations

from pathlib import Path
import sys

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src" / "python"

for path in (SRC_DIR, ROOT_DIR):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from fxledger.client import LedgerClient  # noqa: E402
from fxledger.preferences import StaticPreferences  # noqa: E402
from tests.utils.factories import FakeRateProvider  # noqa: E402


@pytest.fixture()
def rates() -> FakeRateProvider:
    """Rate provider seeded with a few realistic rates."""
    return FakeRateProvider(
        {
            ("EUR", "USD"): 1.10,
            ("GBP", "USD"): 1.25,
            ("USD", "INR"): 83.0,
        }
    )


@pytest.fixture()
def preferences() -> StaticPreferences:
    return StaticPreferences("USD")


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """Path for a fresh ledger database in a temporary directory."""
    return tmp_path / "ledger.db"


@pytest.fixture()
def client(
    db_path: Path,
    rates: FakeRateProvider,
    preferences: StaticPreferences,
) -> LedgerClient:
    """Connected client over a fresh database."""
    with LedgerClient(
        db_path=db_path,
        rate_provider=rates,
        preferences=preferences,
        config={},
    ) as ledger:
        yield ledger
