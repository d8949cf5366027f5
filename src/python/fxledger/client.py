"""Client orchestration layer for fxledger."""

from __future__ import annotations

from contextlib import contextmanager
import dataclasses
from pathlib import Path
from typing import Callable, Iterable, Iterator, TypeVar
import datetime as dt
import json
import logging
import os

from fxledger.aggregate import aggregate_books, aggregate_entries
from fxledger.cache import BOOKS_KEY, DataCache, entries_key
from fxledger.exceptions import (
    ConfirmationRequiredError,
    InvalidRateError,
    NotFoundError,
    OperationInProgressError,
    RateUnavailableError,
)
from fxledger.forex import ForexRateManager, RateProvider
from fxledger.models import (
    ALL_BOOKS,
    PAYMENT_MODES,
    BookDTO,
    BookRecord,
    BookTotals,
    ConversionRequest,
    CurrencyChangeRecord,
    EntryDTO,
    EntryRecord,
    NormalizationResult,
    RateQuote,
    RatesSnapshot,
    RenormalizeResult,
    TransferResult,
    ensure_amount,
    ensure_currency,
    utcnow,
)
from fxledger.normalization import (
    has_valid_lock,
    lookup_rate,
    normalization_is_current,
    normalize,
    normalize_entry,
)
from fxledger.persistence import PersistenceBackend
from fxledger.preferences import DEFAULT_CURRENCY, ConfigPreferences, StaticPreferences, UserPreferences
from fxledger.rates import (
    DEFAULT_OVERRIDE_THRESHOLD,
    RateLockManager,
    check_override,
    is_lock_stale,
    validate_manual_rate,
)
from fxledger.reconcile import reconcile, repair_and_persist
from fxledger.repository import Repository
from fxledger.transfer import BulkTransferCoordinator, suggest_rate

T = TypeVar("T")

# Configure logging
logger = logging.getLogger(__name__)
log_level = os.environ.get('LOGGING_LEVEL', 'INFO').upper()
logger.setLevel(getattr(logging, log_level, logging.INFO))
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
    logger.addHandler(handler)

CONFIG_ENV_VAR = "FXLEDGER_CONFIG"
DEFAULT_CONFIG_NAME = "fxledger-config.json"
DEFAULT_FOREX_TTL_HOURS = 1
DEFAULT_FOREX_CACHE_NAME = "forex-rates.json"


def resolve_config_path() -> Path:
    """Config file location, overridable through FXLEDGER_CONFIG."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return Path.home() / ".fxledger" / DEFAULT_CONFIG_NAME


class LedgerClient:
    """Coordinate books, entries, rate locks and aggregation over a repository."""

    def __init__(
        self,
        db_path: str | Path | None = None,
        repository: PersistenceBackend | None = None,
        rate_provider: RateProvider | None = None,
        preferences: UserPreferences | None = None,
        enable_forex_rates: bool = True,
        config: dict | None = None,
    ) -> None:
        """Initialize the client with a repository backend.

        Args:
            db_path: Path to the SQLite database; falls back to the config file
            repository: Optional custom persistence backend
            rate_provider: Optional rate provider replacing the HTTP forex manager
            preferences: Optional source of the default currency
            enable_forex_rates: Whether to build the HTTP forex manager
            config: Optional config mapping used instead of the config file
        """
        self.config_path = resolve_config_path()
        self.config = config if config is not None else self._load_config()
        self.db_path = self._resolve_db_path(db_path, repository)
        self.repository = repository or Repository(self.db_path)
        self.preferences = preferences or self._default_preferences()
        self.override_threshold = float(
            self.config.get("rate_override_threshold", DEFAULT_OVERRIDE_THRESHOLD)
        )
        self.enable_forex_rates = enable_forex_rates
        self.rate_provider = rate_provider
        if self.rate_provider is None and self.enable_forex_rates:
            self.rate_provider = ForexRateManager(
                config=self.config.get("forex", {"cache_ttl_hours": DEFAULT_FOREX_TTL_HOURS}),
                cache_path=self._derive_cache_path(),
                book_lookup=self._find_book,
            )
        self.cache = DataCache()
        self.locks = RateLockManager(self.repository)
        self.transfers = BulkTransferCoordinator(
            self.repository,
            self.rate_provider,
            run_transaction=self._run_transaction,
            on_books_changed=self.cache.invalidate_books,
        )
        self._in_flight: set[str] = set()
        self._transaction_depth = 0

    def __enter__(self) -> "LedgerClient":
        """Open the repository connection."""
        self.repository.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """Close the repository connection."""
        self.close()

    def close(self) -> None:
        """Close the repository connection."""
        self.cache.clear()
        self.repository.close()

    def _load_config(self) -> dict:
        """Load config file if present, else return empty config."""
        if not self.config_path.exists():
            return {}
        with self.config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            return {}
        return payload

    def _resolve_db_path(
        self,
        db_path: str | Path | None,
        repository: PersistenceBackend | None,
    ) -> Path | None:
        """Resolve the database path from arguments or config."""
        if db_path is not None:
            return Path(db_path)
        if repository is not None:
            return None
        resolved = self.config.get("db_path")
        if not resolved:
            raise ValueError("db_path is required when the config file does not define it")
        return Path(resolved).expanduser()

    def _default_preferences(self) -> UserPreferences:
        if self.config_path.exists():
            return ConfigPreferences(self.config_path)
        return StaticPreferences(self.config.get("default_currency") or DEFAULT_CURRENCY)

    def _derive_cache_path(self) -> Path:
        """Derive the forex cache path in a dedicated Forex directory."""
        if self.db_path is None:
            return self.config_path.parent / "Forex" / DEFAULT_FOREX_CACHE_NAME
        # Place cache beside the data directory: */Forex/forex-rates.json
        data_dir = Path(self.db_path).parent
        return data_dir.parent / "Forex" / DEFAULT_FOREX_CACHE_NAME

    def _find_book(self, book_id: str) -> BookRecord | None:
        try:
            return self.repository.get_book(book_id)
        except NotFoundError:
            return None

    def default_currency(self) -> str:
        """Read the user's default currency fresh for the current operation."""
        return self.preferences.get_default_currency()

    def _run_transaction(self, action: Callable[[], T]) -> T:
        """Run repository work inside a transaction.

        Nested calls join the outermost transaction.
        """
        if self._transaction_depth:
            return action()
        self.repository.begin_transaction()
        self._transaction_depth += 1
        try:
            result = action()
            self.repository.commit()
            return result
        except Exception:
            self.repository.rollback()
            raise
        finally:
            self._transaction_depth -= 1

    @contextmanager
    def _action_guard(self, key: str) -> Iterator[None]:
        """Refuse to start an action while the same one is still running."""
        if key in self._in_flight:
            raise OperationInProgressError(f"Operation {key} is already in progress")
        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    def _capture_snapshot(self, currency: str) -> RatesSnapshot | None:
        """Capture historical rates for a new entry; failures leave it empty."""
        if self.rate_provider is None:
            return None
        try:
            return self.rate_provider.capture_snapshot(currency)
        except Exception as exc:
            logger.warning("Could not capture historical rates for %s: %s", currency, exc)
            return None

    # Books

    def create_book(self, book: BookDTO, confirmed: bool = False) -> BookRecord:
        """Create a book and lock its rate against the default currency.

        A user supplied ``book.locked_rate`` is checked against the API rate
        and needs ``confirmed`` when it differs by more than the override
        threshold. Without one the API rate is locked; when none is available
        the book is created without a lock.
        """
        default_currency = self.default_currency()
        locked_rate: float | None = None
        target_currency: str | None = None

        if book.currency == default_currency:
            if book.locked_rate is not None and book.locked_rate != 1.0:
                raise InvalidRateError(
                    f"Book currency {book.currency} is the default currency; its rate is 1.0"
                )
        else:
            api_rate = lookup_rate(self.rate_provider, book.currency, default_currency)
            if book.locked_rate is not None:
                check_override(
                    book.locked_rate,
                    api_rate,
                    confirmed=confirmed,
                    threshold=self.override_threshold,
                )
                locked_rate = book.locked_rate
            else:
                locked_rate = api_rate
            if locked_rate is None:
                logger.warning(
                    "No rate available for %s -> %s; book created without a locked rate",
                    book.currency,
                    default_currency,
                )
            else:
                target_currency = default_currency

        record = self._run_transaction(
            lambda: self.repository.insert_book(
                book, locked_rate=locked_rate, target_currency=target_currency
            )
        )
        self.cache.invalidate(BOOKS_KEY)
        logger.info("Created book %s (%s)", record.id, record.currency)
        return record

    def get_book(self, book_id: str) -> BookRecord:
        """Get a single book by id."""
        return self.repository.get_book(book_id)

    def list_books(self) -> list[BookRecord]:
        """List all books."""
        return self.cache.get(BOOKS_KEY, self.repository.list_books)

    def delete_book(self, book_id: str) -> None:
        """Delete a book together with its entries."""
        with self._action_guard(f"book:{book_id}"):
            self._run_transaction(lambda: self.repository.delete_book(book_id))
            self.cache.invalidate_books([book_id])

    def update_book_currency(
        self,
        book_id: str,
        new_currency: str,
        rate: float | None = None,
        confirmed: bool = False,
    ) -> tuple[BookRecord, RenormalizeResult]:
        """Switch a book to another currency.

        Existing entries keep their own currency and amount; only their
        normalized amounts are recomputed. Changing the currency of a book
        that has entries needs ``confirmed``. ``rate`` optionally replaces the
        fetched rate from the new currency to the default currency.
        """
        new_currency = ensure_currency(new_currency, "New currency")
        if rate is not None:
            rate = validate_manual_rate(rate)

        with self._action_guard(f"book:{book_id}"):
            default_currency = self.default_currency()
            book = self.repository.get_book(book_id)
            if new_currency == book.currency:
                return book, RenormalizeResult(updated=0)

            entries = self.repository.list_entries(book_id)
            if entries and not confirmed:
                raise ConfirmationRequiredError(
                    f"Book {book.name!r} has {len(entries)} entries; they stay in "
                    f"{book.currency} and only their normalized amounts are recomputed",
                    {
                        "book_id": book.id,
                        "from_currency": book.currency,
                        "to_currency": new_currency,
                        "entry_count": len(entries),
                    },
                )

            locked_rate: float | None = None
            target_currency: str | None = None
            if new_currency == default_currency:
                if rate is not None and rate != 1.0:
                    raise InvalidRateError(
                        f"{new_currency} is the default currency; its rate is 1.0"
                    )
            else:
                api_rate = lookup_rate(self.rate_provider, new_currency, default_currency)
                if rate is not None:
                    check_override(
                        rate, api_rate, confirmed=confirmed, threshold=self.override_threshold
                    )
                    locked_rate = rate
                else:
                    locked_rate = api_rate
                if locked_rate is not None:
                    target_currency = default_currency
                else:
                    logger.warning(
                        "No rate available for %s -> %s; book %s left without a locked rate",
                        new_currency,
                        default_currency,
                        book.id,
                    )

            def action() -> tuple[BookRecord, RenormalizeResult]:
                history = book.currency_history + (
                    CurrencyChangeRecord(
                        from_currency=book.currency,
                        to_currency=new_currency,
                        exchange_rate=locked_rate,
                        changed_at=utcnow(),
                        affected_entries=len(entries),
                    ),
                )
                updated = self.repository.update_book(
                    book.id,
                    currency=new_currency,
                    locked_rate=locked_rate,
                    target_currency=target_currency,
                    rate_locked_at=utcnow() if locked_rate is not None else None,
                    currency_history=history,
                )
                return updated, self._renormalize_book(updated, default_currency)

            outcome = self._run_transaction(action)
            self.cache.invalidate_books([book.id])
            logger.info(
                "Book %s currency %s -> %s; %d entries renormalized, %d skipped",
                book.id,
                book.currency,
                new_currency,
                outcome[1].updated,
                len(outcome[1].skipped),
            )
            return outcome

    # Rate editor

    def quote_rate(self, book_id: str) -> RateQuote:
        """Return the fresh API rate next to the book's locked rate."""
        default_currency = self.default_currency()
        book = self.repository.get_book(book_id)
        api_rate = lookup_rate(self.rate_provider, book.currency, default_currency)
        return RateQuote(
            book_id=book.id,
            book_currency=book.currency,
            target_currency=default_currency,
            api_rate=api_rate,
            locked_rate=book.locked_rate,
            is_stale=is_lock_stale(book, default_currency),
        )

    def edit_locked_rate(
        self,
        book_id: str,
        rate: float | str,
        confirmed: bool = False,
    ) -> tuple[BookRecord, RenormalizeResult]:
        """Overwrite a book's locked rate with a manual rate.

        Invalid rates raise InvalidRateError before anything is written. A
        rate further than the override threshold from the API rate raises
        ConfirmationRequiredError unless ``confirmed``.
        """
        rate = validate_manual_rate(rate)
        with self._action_guard(f"book:{book_id}"):
            default_currency = self.default_currency()
            book = self.repository.get_book(book_id)
            if book.currency == default_currency:
                raise ValueError(
                    f"Book {book.name!r} is in the default currency; its rate is always 1.0"
                )
            api_rate = lookup_rate(self.rate_provider, book.currency, default_currency)
            check_override(
                rate, api_rate, confirmed=confirmed, threshold=self.override_threshold
            )
            return self._apply_lock(book, rate, default_currency)

    def revert_to_api_rate(self, book_id: str) -> tuple[BookRecord, RenormalizeResult]:
        """Replace a book's locked rate with the current API rate."""
        with self._action_guard(f"book:{book_id}"):
            default_currency = self.default_currency()
            book = self.repository.get_book(book_id)
            if book.currency == default_currency:
                raise ValueError(
                    f"Book {book.name!r} is in the default currency; its rate is always 1.0"
                )
            api_rate = lookup_rate(self.rate_provider, book.currency, default_currency)
            if api_rate is None:
                raise RateUnavailableError(
                    f"No API rate available for {book.currency} -> {default_currency}"
                )
            return self._apply_lock(book, api_rate, default_currency)

    def _apply_lock(
        self,
        book: BookRecord,
        rate: float,
        default_currency: str,
    ) -> tuple[BookRecord, RenormalizeResult]:
        def action() -> tuple[BookRecord, RenormalizeResult]:
            updated = self.locks.lock_rate(book.id, rate, default_currency)
            return updated, self._renormalize_book(updated, default_currency)

        outcome = self._run_transaction(action)
        self.cache.invalidate_books([book.id])
        logger.info(
            "Book %s locked at %s; %d entries renormalized", book.id, rate, outcome[1].updated
        )
        return outcome

    def _renormalize_book(self, book: BookRecord, default_currency: str) -> RenormalizeResult:
        """Rewrite the normalized amounts of every entry in the book.

        Entries whose rate cannot be resolved keep their previous values and
        are reported as skipped.
        """
        updated = 0
        skipped: list[str] = []
        for entry in self.repository.list_entries(book.id):
            result = normalize_entry(entry, book, default_currency, self.rate_provider)
            if result.used_fallback:
                skipped.append(entry.id)
                continue
            if normalization_is_current(entry, result):
                continue
            self.repository.update_entry(entry.id, normalization=result.as_normalization())
            updated += 1
        return RenormalizeResult(updated=updated, skipped=skipped)

    # Entries

    def add_entry(self, entry: EntryDTO) -> tuple[EntryRecord, NormalizationResult]:
        """Add an entry in its book's currency and normalize it.

        A failed rate lookup does not block the entry: it is stored at rate
        1.0 and the returned NormalizationResult carries a warning.
        """
        with self._action_guard(f"entry:add:{entry.book_id}"):
            default_currency = self.default_currency()
            book = self.repository.get_book(entry.book_id)
            snapshot = self._capture_snapshot(book.currency)
            result = normalize(
                entry.amount,
                book.currency,
                default_currency,
                self.rate_provider,
                lock=book.lock,
                book_id=book.id,
            )
            record = self._run_transaction(
                lambda: self.repository.insert_entry(
                    entry,
                    currency=book.currency,
                    normalization=result.as_normalization(),
                    historical_rates=snapshot,
                )
            )
            self.cache.invalidate_books([book.id])
            return record, result

    def get_entry(self, entry_id: str) -> EntryRecord:
        """Get a single entry by id."""
        return self.repository.get_entry(entry_id)

    def list_entries(self, book_id: str) -> list[EntryRecord]:
        """List the entries of a book."""
        self.repository.get_book(book_id)
        return self.cache.get(entries_key(book_id), lambda: self.repository.list_entries(book_id))

    def update_entry(
        self,
        entry_id: str,
        amount: float | str | None = None,
        date: dt.date | str | None = None,
        category: str | None = None,
        party: str | None = None,
        payment_mode: str | None = None,
        remarks: str | None = None,
    ) -> tuple[EntryRecord, NormalizationResult | None]:
        """Update an entry and recompute its normalization when the amount changes."""
        fields: dict[str, object] = {}
        if amount is not None:
            fields["amount"] = ensure_amount(amount)
        if date is not None:
            fields["date"] = date if isinstance(date, dt.date) else dt.date.fromisoformat(date)
        if category is not None:
            if not category.strip():
                raise ValueError("Category is required")
            fields["category"] = category.strip()
        if party is not None:
            fields["party"] = party
        if payment_mode is not None:
            mode = payment_mode.strip().lower()
            if mode not in PAYMENT_MODES:
                raise ValueError(f"Unsupported payment mode: {payment_mode}")
            fields["payment_mode"] = mode
        if remarks is not None:
            fields["remarks"] = remarks
        if not fields:
            raise ValueError("Entry update requires at least one field")

        with self._action_guard(f"entry:{entry_id}"):
            result: NormalizationResult | None = None
            entry = self.repository.get_entry(entry_id)
            if "amount" in fields:
                book = self.repository.get_book(entry.book_id)
                result = normalize_entry(
                    dataclasses.replace(entry, amount=fields["amount"]),
                    book,
                    self.default_currency(),
                    self.rate_provider,
                )
                fields["normalization"] = result.as_normalization()
            record = self._run_transaction(
                lambda: self.repository.update_entry(entry_id, **fields)
            )
            self.cache.invalidate_books([record.book_id])
            return record, result

    def delete_entry(self, entry_id: str) -> None:
        """Delete an entry after checking it still exists."""
        with self._action_guard(f"entry:{entry_id}"):

            def action() -> str:
                entry = self.repository.get_entry(entry_id)
                self.repository.delete_entry(entry_id)
                return entry.book_id

            book_id = self._run_transaction(action)
            self.cache.invalidate_books([book_id])

    # Reads

    def reconcile(self, entry_id: str) -> float:
        """Effective amount of one entry in the default currency."""
        entry = self.repository.get_entry(entry_id)
        book = self.repository.get_book(entry.book_id)
        return reconcile(entry, book, self.default_currency(), self.rate_provider)

    def summarize_books(self, default_currency: str | None = None) -> list[BookTotals]:
        """Per-book totals in the default currency.

        ``default_currency`` is read from the preferences when not given.
        """
        default_currency = default_currency or self.default_currency()
        return [
            aggregate_entries(
                self.list_entries(book.id), book, default_currency, self.rate_provider
            )
            for book in self.list_books()
        ]

    def aggregate(self, book_id: str = ALL_BOOKS) -> BookTotals:
        """Totals of one book, or of all books with ``"all"``."""
        default_currency = self.default_currency()
        if book_id == ALL_BOOKS:
            return aggregate_books(
                ((book, self.list_entries(book.id)) for book in self.list_books()),
                default_currency,
                self.rate_provider,
            )
        book = self.repository.get_book(book_id)
        return aggregate_entries(
            self.list_entries(book.id), book, default_currency, self.rate_provider
        )

    def request_rate(self, request: ConversionRequest) -> float | None:
        """Look up a rate, preferring the lock of ``request.book_id`` when set."""
        if request.book_id is not None:
            book = self.repository.get_book(request.book_id)
            if (
                book.currency == request.from_currency
                and has_valid_lock(book.lock, request.to_currency)
            ):
                return book.locked_rate
        return lookup_rate(
            self.rate_provider,
            request.from_currency,
            request.to_currency,
            book_id=request.book_id,
        )

    # Transfers

    def quote_transfer_rate(self, source_book_id: str, target_book_id: str) -> float | None:
        """Rate to propose before transferring between two books."""
        source = self.repository.get_book(source_book_id)
        target = self.repository.get_book(target_book_id)
        return suggest_rate(self.rate_provider, source, target)

    def transfer(
        self,
        entry_ids: Iterable[str],
        source_book_id: str,
        target_book_id: str,
        mode: str,
        rate: float,
        atomic: bool = False,
    ) -> TransferResult:
        """Move or copy entries to another book at one confirmed rate."""
        with self._action_guard(f"transfer:{source_book_id}"):
            return self.transfers.transfer(
                entry_ids,
                source_book_id,
                target_book_id,
                mode,
                rate,
                default_currency=self.default_currency(),
                atomic=atomic,
            )

    # Repair

    def repair_book(self, book_id: str) -> int:
        """Persist recomputed normalizations for a book's stale or legacy entries."""
        with self._action_guard(f"book:{book_id}"):
            default_currency = self.default_currency()

            def action() -> int:
                book = self.repository.get_book(book_id)
                repaired = 0
                for entry in self.repository.list_entries(book_id):
                    if repair_and_persist(
                        entry, book, default_currency, self.rate_provider, self.repository
                    ):
                        repaired += 1
                return repaired

            repaired = self._run_transaction(action)
            self.cache.invalidate_books([book_id])
            logger.info("Repaired %d entries in book %s", repaired, book_id)
            return repaired
