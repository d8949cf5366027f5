"""Bulk move and copy of entries between books."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import Callable, TypeVar

from fxledger.exceptions import (
    BatchTransferError,
    InvalidRateError,
    NoSelectionError,
    NotFoundError,
    PartialBatchFailure,
    SameBookTransferError,
)
from fxledger.forex import RateProvider
from fxledger.models import (
    TRANSFER_MODES,
    BookRecord,
    ConversionRecord,
    EntryDTO,
    EntryRecord,
    TransferResult,
    ensure_rate,
    utcnow,
)
from fxledger.normalization import lookup_rate, normalize
from fxledger.persistence import PersistenceBackend

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _run_directly(action: Callable[[], T]) -> T:
    return action()


def suggest_rate(
    provider: RateProvider | None,
    source: BookRecord,
    target: BookRecord,
) -> float | None:
    """Rate to present to the user before a transfer; 1.0 for same currency books."""
    if source.currency == target.currency:
        return 1.0
    return lookup_rate(provider, source.currency, target.currency)


class BulkTransferCoordinator:
    """Move or copy a selection of entries into another book at one rate."""

    def __init__(
        self,
        backend: PersistenceBackend,
        provider: RateProvider | None = None,
        run_transaction: Callable[[Callable[[], T]], T] | None = None,
        on_books_changed: Callable[[Iterable[str]], None] | None = None,
    ) -> None:
        self.backend = backend
        self.provider = provider
        self.run_transaction = run_transaction or _run_directly
        self.on_books_changed = on_books_changed

    def transfer(
        self,
        entry_ids: Iterable[str],
        source_book_id: str,
        target_book_id: str,
        mode: str,
        rate: float,
        default_currency: str,
        atomic: bool = False,
    ) -> TransferResult:
        """Transfer entries from the source book to the target book.

        Entries are written one by one. Without ``atomic`` a failing entry
        does not undo earlier writes: the failure is collected and reported
        through PartialBatchFailure (some written) or BatchTransferError
        (none written). With ``atomic`` the first failure rolls back the
        whole batch and is re-raised.
        """
        selected = list(dict.fromkeys(entry_ids))
        if not selected:
            raise NoSelectionError("Select at least one entry to transfer")
        if source_book_id == target_book_id:
            raise SameBookTransferError("Source and target book must differ")
        mode = (mode or "").strip().lower()
        if mode not in TRANSFER_MODES:
            raise ValueError(f"Unsupported transfer mode: {mode}")
        rate = ensure_rate(rate, "Transfer rate")

        source = self.backend.get_book(source_book_id)
        target = self.backend.get_book(target_book_id)
        if source.currency == target.currency and rate != 1.0:
            raise InvalidRateError(
                f"Books {source.name!r} and {target.name!r} share {source.currency}; "
                f"the transfer rate must be 1.0, got {rate}"
            )

        logger.info(
            "%s %d entries %s -> %s (%s -> %s at %s)",
            mode.capitalize(),
            len(selected),
            source.id,
            target.id,
            source.currency,
            target.currency,
            rate,
        )

        succeeded: list[str] = []
        failed: list[tuple[str, Exception]] = []
        records: list[EntryRecord] = []
        warnings: list[tuple[str, str]] = []

        def record_success(entry_id: str, record: EntryRecord, warning: str | None) -> None:
            records.append(record)
            succeeded.append(entry_id)
            if warning is not None:
                warnings.append((entry_id, warning))

        def transfer_all() -> None:
            for entry_id in selected:
                record, warning = self._transfer_one(
                    entry_id, source, target, mode, rate, default_currency
                )
                record_success(entry_id, record, warning)

        try:
            if atomic:
                self.run_transaction(transfer_all)
            else:
                for entry_id in selected:
                    try:
                        record, warning = self.run_transaction(
                            lambda entry_id=entry_id: self._transfer_one(
                                entry_id, source, target, mode, rate, default_currency
                            )
                        )
                    except Exception as exc:
                        logger.error("Transfer of entry %s failed: %s", entry_id, exc)
                        failed.append((entry_id, exc))
                        continue
                    record_success(entry_id, record, warning)
        finally:
            if self.on_books_changed is not None:
                self.on_books_changed((source.id, target.id))

        result = TransferResult(
            mode=mode,
            rate=rate,
            succeeded=succeeded,
            failed=failed,
            records=records,
            warnings=warnings,
        )
        if failed and succeeded:
            raise PartialBatchFailure(
                f"{len(succeeded)} of {len(selected)} entries transferred; {len(failed)} failed",
                result,
            )
        if failed:
            raise BatchTransferError(f"None of the {len(selected)} entries were transferred", result)
        return result

    def _transfer_one(
        self,
        entry_id: str,
        source: BookRecord,
        target: BookRecord,
        mode: str,
        rate: float,
        default_currency: str,
    ) -> tuple[EntryRecord, str | None]:
        entry = self.backend.get_entry(entry_id)
        if entry.book_id != source.id:
            raise NotFoundError(f"Entry {entry_id} is no longer in book {source.id}")

        amount = entry.amount * rate
        history = entry.conversion_history
        if entry.currency != target.currency:
            history = history + (
                ConversionRecord(
                    from_currency=entry.currency,
                    from_amount=entry.amount,
                    to_currency=target.currency,
                    to_amount=amount,
                    exchange_rate=rate,
                    converted_at=utcnow(),
                    reason="bulk_transfer",
                ),
            )
        result = normalize(
            amount,
            target.currency,
            default_currency,
            self.provider,
            lock=target.lock,
            book_id=target.id,
        )

        if mode == "move":
            record = self.backend.update_entry(
                entry.id,
                book_id=target.id,
                currency=target.currency,
                amount=amount,
                normalization=result.as_normalization(),
                conversion_history=history,
            )
            return record, result.warning
        record = self.backend.insert_entry(
            EntryDTO(
                book_id=target.id,
                amount=amount,
                date=entry.date,
                category=entry.category,
                party=entry.party,
                payment_mode=entry.payment_mode,
                remarks=entry.remarks,
            ),
            currency=target.currency,
            normalization=result.as_normalization(),
            historical_rates=entry.historical_rates,
            conversion_history=history,
        )
        return record, result.warning
