"""Domain models and data transfer objects."""

from __future__ import annotations

from dataclasses import dataclass, field
import datetime as dt
import math
import re

from fxledger.exceptions import InvalidRateError

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
PAYMENT_MODES = {"cash", "upi", "card", "net_banking", "cheque", "other"}
TRANSFER_MODES = {"move", "copy"}
CONVERSION_REASONS = {"book_currency_change", "bulk_transfer", "manual_correction"}
ALL_BOOKS = "all"


def utcnow() -> dt.datetime:
    """Current UTC time truncated to seconds."""
    return dt.datetime.now(dt.timezone.utc).replace(microsecond=0)


def _ensure_date(value: dt.date | dt.datetime | str) -> dt.date:
    """Normalize a date, datetime or ISO string to a date."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        try:
            return dt.date.fromisoformat(value)
        except ValueError as exc:
            raise ValueError("Date must be YYYY-MM-DD") from exc
    raise ValueError("Date must be a datetime.date")


def _ensure_non_empty(value: str, field_name: str) -> str:
    """Validate required text fields."""
    if not value or not value.strip():
        raise ValueError(f"{field_name} is required")
    return value.strip()


def ensure_currency(value: str | None, field_name: str = "Currency") -> str:
    """Validate a three letter currency code and return it upper-cased."""
    code = (value or "").strip().upper()
    if not CURRENCY_PATTERN.match(code):
        raise ValueError(f"{field_name} must be a three letter currency code, got {value!r}")
    return code


def ensure_amount(value: float | int | str, field_name: str = "Amount") -> float:
    """Parse a signed finite amount."""
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be a number") from exc
    if not math.isfinite(amount):
        raise ValueError(f"{field_name} must be finite")
    return amount


def ensure_rate(value: float | int | str | None, field_name: str = "Exchange rate") -> float:
    """Parse an exchange rate and reject non-positive or non-finite values."""
    if value is None:
        raise InvalidRateError(f"{field_name} is required")
    try:
        rate = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRateError(f"{field_name} must be a number") from exc
    if math.isnan(rate) or math.isinf(rate):
        raise InvalidRateError(f"{field_name} must be finite")
    if rate <= 0:
        raise InvalidRateError(f"{field_name} must be greater than zero")
    return rate


@dataclass(frozen=True)
class RatesSnapshot:
    """Exchange rates from one base currency captured at a point in time."""
    captured_at: dt.datetime
    base_currency: str
    rates: dict[str, float]


@dataclass(frozen=True)
class Normalization:
    """Cached conversion of an entry amount into the user's default currency."""
    amount: float
    currency: str
    rate: float


@dataclass(frozen=True)
class CurrencyChangeRecord:
    """Audit record written when a book switches currency."""
    from_currency: str
    to_currency: str
    exchange_rate: float | None
    changed_at: dt.datetime
    affected_entries: int
    notes: str | None = None


@dataclass(frozen=True)
class ConversionRecord:
    """Audit record written when an entry amount is converted between currencies."""
    from_currency: str
    from_amount: float
    to_currency: str
    to_amount: float
    exchange_rate: float
    converted_at: dt.datetime
    reason: str
    notes: str | None = None

    def __post_init__(self) -> None:
        if self.reason not in CONVERSION_REASONS:
            raise ValueError(f"Unsupported conversion reason: {self.reason}")


@dataclass(frozen=True)
class RateLock:
    """Locked rate of a book towards a target currency."""
    rate: float
    target_currency: str
    locked_at: dt.datetime | None


@dataclass(frozen=True)
class BookDTO:
    """Validated book input for persistence.

    ``locked_rate`` is an optional user supplied rate from the book currency to
    the default currency. When omitted the rate is fetched at creation.
    """
    name: str
    currency: str
    description: str | None = None
    locked_rate: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _ensure_non_empty(self.name, "Name"))
        object.__setattr__(self, "currency", ensure_currency(self.currency))
        if self.locked_rate is not None:
            object.__setattr__(self, "locked_rate", ensure_rate(self.locked_rate))


@dataclass(frozen=True)
class BookRecord:
    """Persisted book record from storage."""
    id: str
    name: str
    description: str | None
    currency: str
    locked_rate: float | None
    target_currency: str | None
    rate_locked_at: dt.datetime | None
    created_at: dt.datetime
    updated_at: dt.datetime
    currency_history: tuple[CurrencyChangeRecord, ...] = ()

    @property
    def lock(self) -> RateLock | None:
        if self.locked_rate is None or self.target_currency is None:
            return None
        return RateLock(self.locked_rate, self.target_currency, self.rate_locked_at)


@dataclass(frozen=True)
class EntryDTO:
    """Validated entry input. The currency is always taken from the book."""
    book_id: str
    amount: float
    date: dt.date
    category: str
    party: str | None = None
    payment_mode: str = "cash"
    remarks: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "book_id", _ensure_non_empty(self.book_id, "Book"))
        object.__setattr__(self, "amount", ensure_amount(self.amount))
        object.__setattr__(self, "date", _ensure_date(self.date))
        object.__setattr__(self, "category", _ensure_non_empty(self.category, "Category"))
        mode = (self.payment_mode or "").strip().lower()
        if mode not in PAYMENT_MODES:
            raise ValueError(f"Unsupported payment mode: {self.payment_mode}")
        object.__setattr__(self, "payment_mode", mode)


@dataclass(frozen=True)
class EntryRecord:
    """Persisted entry record from storage.

    ``normalization`` is ``None`` for entries that were never normalized
    (legacy rows); such entries are converted on demand when read.
    """
    id: str
    book_id: str
    amount: float
    currency: str
    date: dt.date
    category: str
    party: str | None
    payment_mode: str
    remarks: str | None
    normalization: Normalization | None
    historical_rates: RatesSnapshot | None
    created_at: dt.datetime
    updated_at: dt.datetime
    conversion_history: tuple[ConversionRecord, ...] = ()

    @property
    def is_normalized(self) -> bool:
        return self.normalization is not None

    @property
    def normalized_amount(self) -> float | None:
        return self.normalization.amount if self.normalization else None

    @property
    def normalized_currency(self) -> str | None:
        return self.normalization.currency if self.normalization else None

    @property
    def conversion_rate(self) -> float | None:
        return self.normalization.rate if self.normalization else None


@dataclass(frozen=True)
class ConversionRequest:
    """Transient request for a rate between two currencies."""
    from_currency: str
    to_currency: str
    book_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "from_currency", ensure_currency(self.from_currency, "From currency"))
        object.__setattr__(self, "to_currency", ensure_currency(self.to_currency, "To currency"))


@dataclass(frozen=True)
class NormalizationResult:
    """Outcome of normalizing one amount.

    ``warning`` is set when the rate lookup failed and the amount was kept
    unconverted with a rate of 1.0.
    """
    normalized_amount: float
    conversion_rate: float
    normalized_currency: str
    warning: str | None = None

    @property
    def used_fallback(self) -> bool:
        return self.warning is not None

    def as_normalization(self) -> Normalization:
        return Normalization(
            amount=self.normalized_amount,
            currency=self.normalized_currency,
            rate=self.conversion_rate,
        )


@dataclass(frozen=True)
class RateQuote:
    """Side by side view of the live API rate and a book's locked rate."""
    book_id: str
    book_currency: str
    target_currency: str
    api_rate: float | None
    locked_rate: float | None
    is_stale: bool

    @property
    def percent_diff(self) -> float | None:
        if self.api_rate is None or self.locked_rate is None:
            return None
        return abs(self.locked_rate - self.api_rate) / self.api_rate * 100


@dataclass(frozen=True)
class RenormalizeResult:
    """Entries rewritten after a lock or currency change."""
    updated: int
    skipped: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BookTotals:
    """Income, expense and balance totals in the user's default currency.

    ``book_id`` is ``None`` for the cross-book total.
    """
    book_id: str | None
    currency: str
    total_income: float
    total_expenses: float
    net_balance: float
    entry_count: int


@dataclass(frozen=True)
class TransferResult:
    """Result of a bulk move or copy."""
    mode: str
    rate: float
    succeeded: list[str]
    failed: list[tuple[str, Exception]]
    records: list[EntryRecord] = field(default_factory=list)
    # (entry id, warning) for entries kept unconverted in the target book
    warnings: list[tuple[str, str]] = field(default_factory=list)
