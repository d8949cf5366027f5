"""Shared CLI helpers."""

from __future__ import annotations

import datetime as dt
from typing import Callable, TypeVar

import click

from fxledger.client import LedgerClient
from fxledger.exceptions import ConfirmationRequiredError
from fxledger.preferences import StaticPreferences

T = TypeVar("T")


def parse_date(value: str | None, field_name: str) -> dt.date | None:
    """Parse an ISO date string into a date."""
    if value is None:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter("Use YYYY-MM-DD format.", param_hint=field_name) from exc


def parse_number(value: str | None, field_name: str) -> float | None:
    """Parse a numeric string into a float."""
    if value is None:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise click.BadParameter("Use a valid number.", param_hint=field_name) from exc


def run_confirmed(action: Callable[[bool], T], assume_yes: bool) -> T:
    """Run action unconfirmed and ask the user when it needs confirmation.

    ``action`` receives the confirmed flag.
    """
    try:
        return action(assume_yes)
    except ConfirmationRequiredError as exc:
        if not click.confirm(f"{exc}. Continue?", default=False):
            raise click.Abort() from exc
        return action(True)


def format_amount(value: float | None) -> str:
    """Two decimal rendering of an amount, blank for missing values."""
    if value is None:
        return ""
    return f"{value:.2f}"


def get_client(ctx: click.Context) -> LedgerClient:
    """Build a ledger client from Click context.

    ``--currency`` on the main group overrides the configured default
    currency for this invocation only.
    """
    payload = ctx.obj or {}
    currency = payload.get("currency")
    return LedgerClient(
        db_path=payload.get("db_path"),
        preferences=StaticPreferences(currency) if currency else None,
        enable_forex_rates=payload.get("enable_forex_rates", True),
    )
