"""SQLite repository implementation for fxledger."""

from __future__ import annotations

from pathlib import Path
import datetime as dt
import json
import sqlite3
from typing import Any
import uuid

from fxledger.exceptions import NotFoundError
from fxledger.models import (
    BookDTO,
    BookRecord,
    ConversionRecord,
    CurrencyChangeRecord,
    EntryDTO,
    EntryRecord,
    Normalization,
    RatesSnapshot,
    utcnow,
)
from fxledger.persistence import PersistenceBackend
from fxledger.schema import (
    BOOK_COLUMNS,
    BOOK_FIELD_COLUMNS,
    ENTRY_COLUMNS,
    ENTRY_FIELD_COLUMNS,
    SCHEMA_DDL,
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _format_datetime(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: str | None) -> dt.datetime | None:
    if not value:
        return None
    parsed = dt.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _dump_snapshot(snapshot: RatesSnapshot | None) -> str | None:
    if snapshot is None:
        return None
    return json.dumps(
        {
            "capturedAt": _format_datetime(snapshot.captured_at),
            "baseCurrency": snapshot.base_currency,
            "rates": snapshot.rates,
        }
    )


def _load_snapshot(payload: str | None) -> RatesSnapshot | None:
    if not payload:
        return None
    data = json.loads(payload)
    return RatesSnapshot(
        captured_at=_parse_datetime(data.get("capturedAt")),
        base_currency=data["baseCurrency"],
        rates={code: float(rate) for code, rate in data.get("rates", {}).items()},
    )


def _dump_currency_history(history: tuple[CurrencyChangeRecord, ...] | list) -> str | None:
    if not history:
        return None
    return json.dumps(
        [
            {
                "fromCurrency": item.from_currency,
                "toCurrency": item.to_currency,
                "exchangeRate": item.exchange_rate,
                "changedAt": _format_datetime(item.changed_at),
                "affectedEntriesCount": item.affected_entries,
                "notes": item.notes,
            }
            for item in history
        ]
    )


def _load_currency_history(payload: str | None) -> tuple[CurrencyChangeRecord, ...]:
    if not payload:
        return ()
    return tuple(
        CurrencyChangeRecord(
            from_currency=item["fromCurrency"],
            to_currency=item["toCurrency"],
            exchange_rate=item.get("exchangeRate"),
            changed_at=_parse_datetime(item["changedAt"]),
            affected_entries=int(item.get("affectedEntriesCount", 0)),
            notes=item.get("notes"),
        )
        for item in json.loads(payload)
    )


def _dump_conversion_history(history: tuple[ConversionRecord, ...] | list) -> str | None:
    if not history:
        return None
    return json.dumps(
        [
            {
                "fromCurrency": item.from_currency,
                "fromAmount": item.from_amount,
                "toCurrency": item.to_currency,
                "toAmount": item.to_amount,
                "exchangeRate": item.exchange_rate,
                "convertedAt": _format_datetime(item.converted_at),
                "reason": item.reason,
                "notes": item.notes,
            }
            for item in history
        ]
    )


def _load_conversion_history(payload: str | None) -> tuple[ConversionRecord, ...]:
    if not payload:
        return ()
    return tuple(
        ConversionRecord(
            from_currency=item["fromCurrency"],
            from_amount=float(item["fromAmount"]),
            to_currency=item["toCurrency"],
            to_amount=float(item["toAmount"]),
            exchange_rate=float(item["exchangeRate"]),
            converted_at=_parse_datetime(item["convertedAt"]),
            reason=item["reason"],
            notes=item.get("notes"),
        )
        for item in json.loads(payload)
    )


class Repository(PersistenceBackend):
    """SQLite-backed persistence implementation."""

    def __init__(self, db_path: str | Path) -> None:
        """Create a repository for the given database path."""
        self.db_path = Path(db_path)
        self.connection: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open the database connection and make sure the schema exists."""
        if self.connection is None:
            # Transactions are opened explicitly by begin_transaction
            self.connection = sqlite3.connect(self.db_path, isolation_level=None)
            self.connection.row_factory = sqlite3.Row
            self.connection.execute("PRAGMA foreign_keys = ON")
            self.connection.executescript(SCHEMA_DDL)

    def close(self) -> None:
        """Close the database connection."""
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    def begin_transaction(self) -> None:
        """Begin a database transaction."""
        self._ensure_connection()
        self.connection.execute("BEGIN")

    def commit(self) -> None:
        """Commit the current transaction."""
        self._ensure_connection()
        self.connection.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self._ensure_connection()
        self.connection.rollback()

    def get_book(self, book_id: str) -> BookRecord:
        """Return a single book by id."""
        self._ensure_connection()
        row = self.connection.execute(
            f"SELECT {', '.join(BOOK_COLUMNS)} FROM books WHERE id = ?",
            (book_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Book {book_id} not found")
        return self._row_to_book(row)

    def list_books(self) -> list[BookRecord]:
        """Return all books ordered by name."""
        self._ensure_connection()
        rows = self.connection.execute(
            f"SELECT {', '.join(BOOK_COLUMNS)} FROM books ORDER BY name, createdAt"
        ).fetchall()
        return [self._row_to_book(row) for row in rows]

    def insert_book(
        self,
        book: BookDTO,
        locked_rate: float | None = None,
        target_currency: str | None = None,
    ) -> BookRecord:
        """Insert a new book row and return the record."""
        self._ensure_connection()
        if (locked_rate is None) != (target_currency is None):
            raise ValueError("locked_rate and target_currency must be set together")
        if target_currency is not None and target_currency == book.currency:
            raise ValueError("A book cannot lock a rate against its own currency")

        book_id = _new_id()
        timestamp = _format_datetime(utcnow())
        self.connection.execute(
            """
            INSERT INTO books (
                id,
                name,
                description,
                currency,
                lockedExchangeRate,
                targetCurrency,
                rateLockedAt,
                currencyHistory,
                createdAt,
                updatedAt
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                book_id,
                book.name,
                book.description,
                book.currency,
                locked_rate,
                target_currency,
                timestamp if locked_rate is not None else None,
                None,
                timestamp,
                timestamp,
            ),
        )
        return self.get_book(book_id)

    def update_book(self, book_id: str, **fields: Any) -> BookRecord:
        """Update the given fields of a book and return the latest record."""
        self._ensure_connection()
        self.get_book(book_id)

        assignments: list[str] = []
        params: list[object] = []
        for name, value in fields.items():
            column = BOOK_FIELD_COLUMNS.get(name)
            if column is None:
                raise ValueError(f"Unknown book field: {name}")
            if name == "rate_locked_at":
                value = _format_datetime(value)
            elif name == "currency_history":
                value = _dump_currency_history(value)
            assignments.append(f"{column} = ?")
            params.append(value)

        assignments.append("updatedAt = ?")
        params.append(_format_datetime(utcnow()))
        params.append(book_id)
        self.connection.execute(
            f"UPDATE books SET {', '.join(assignments)} WHERE id = ?",
            params,
        )
        return self.get_book(book_id)

    def delete_book(self, book_id: str) -> None:
        """Delete a book and all of its entries."""
        self._ensure_connection()
        self.get_book(book_id)
        self.connection.execute("DELETE FROM entries WHERE bookId = ?", (book_id,))
        self.connection.execute("DELETE FROM books WHERE id = ?", (book_id,))

    def list_entries(self, book_id: str) -> list[EntryRecord]:
        """Return the entries of a book ordered by date."""
        self._ensure_connection()
        rows = self.connection.execute(
            f"SELECT {', '.join(ENTRY_COLUMNS)} FROM entries WHERE bookId = ? "
            "ORDER BY date, createdAt, id",
            (book_id,),
        ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def get_entry(self, entry_id: str) -> EntryRecord:
        """Return a single entry by id."""
        self._ensure_connection()
        row = self.connection.execute(
            f"SELECT {', '.join(ENTRY_COLUMNS)} FROM entries WHERE id = ?",
            (entry_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Entry {entry_id} not found")
        return self._row_to_entry(row)

    def insert_entry(
        self,
        entry: EntryDTO,
        currency: str,
        normalization: Normalization | None = None,
        historical_rates: RatesSnapshot | None = None,
        conversion_history: tuple[ConversionRecord, ...] = (),
    ) -> EntryRecord:
        """Insert a new entry row and return the record."""
        self._ensure_connection()
        self.get_book(entry.book_id)

        entry_id = _new_id()
        timestamp = _format_datetime(utcnow())
        self.connection.execute(
            """
            INSERT INTO entries (
                id,
                bookId,
                amount,
                currency,
                normalizedAmount,
                normalizedCurrency,
                conversionRate,
                date,
                party,
                category,
                paymentMode,
                remarks,
                historicalRates,
                conversionHistory,
                createdAt,
                updatedAt
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry_id,
                entry.book_id,
                entry.amount,
                currency,
                normalization.amount if normalization else None,
                normalization.currency if normalization else None,
                normalization.rate if normalization else None,
                entry.date.isoformat(),
                entry.party,
                entry.category,
                entry.payment_mode,
                entry.remarks,
                _dump_snapshot(historical_rates),
                _dump_conversion_history(conversion_history),
                timestamp,
                timestamp,
            ),
        )
        return self.get_entry(entry_id)

    def update_entry(self, entry_id: str, **fields: Any) -> EntryRecord:
        """Update the given fields of an entry and return the latest record."""
        self._ensure_connection()
        self.get_entry(entry_id)

        assignments: list[str] = []
        params: list[object] = []
        for name, value in fields.items():
            if name == "normalization":
                assignments.extend(
                    ["normalizedAmount = ?", "normalizedCurrency = ?", "conversionRate = ?"]
                )
                params.extend(
                    [
                        value.amount if value else None,
                        value.currency if value else None,
                        value.rate if value else None,
                    ]
                )
                continue
            column = ENTRY_FIELD_COLUMNS.get(name)
            if column is None:
                raise ValueError(f"Unknown entry field: {name}")
            if name == "date":
                value = value.isoformat()
            elif name == "historical_rates":
                value = _dump_snapshot(value)
            elif name == "conversion_history":
                value = _dump_conversion_history(value)
            assignments.append(f"{column} = ?")
            params.append(value)

        assignments.append("updatedAt = ?")
        params.append(_format_datetime(utcnow()))
        params.append(entry_id)
        self.connection.execute(
            f"UPDATE entries SET {', '.join(assignments)} WHERE id = ?",
            params,
        )
        return self.get_entry(entry_id)

    def delete_entry(self, entry_id: str) -> None:
        """Delete an entry row."""
        self._ensure_connection()
        cursor = self.connection.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"Entry {entry_id} not found")

    def _ensure_connection(self) -> None:
        """Ensure the database connection is initialized."""
        if self.connection is None:
            raise RuntimeError("Repository connection is not initialized")

    @staticmethod
    def _row_to_book(row: sqlite3.Row) -> BookRecord:
        return BookRecord(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            currency=row["currency"],
            locked_rate=row["lockedExchangeRate"],
            target_currency=row["targetCurrency"],
            rate_locked_at=_parse_datetime(row["rateLockedAt"]),
            created_at=_parse_datetime(row["createdAt"]),
            updated_at=_parse_datetime(row["updatedAt"]),
            currency_history=_load_currency_history(row["currencyHistory"]),
        )

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> EntryRecord:
        normalization = None
        if row["normalizedAmount"] is not None and row["normalizedCurrency"]:
            normalization = Normalization(
                amount=row["normalizedAmount"],
                currency=row["normalizedCurrency"],
                rate=row["conversionRate"] if row["conversionRate"] is not None else 1.0,
            )
        return EntryRecord(
            id=row["id"],
            book_id=row["bookId"],
            amount=row["amount"],
            currency=row["currency"],
            date=dt.date.fromisoformat(row["date"]),
            category=row["category"],
            party=row["party"],
            payment_mode=row["paymentMode"],
            remarks=row["remarks"],
            normalization=normalization,
            historical_rates=_load_snapshot(row["historicalRates"]),
            created_at=_parse_datetime(row["createdAt"]),
            updated_at=_parse_datetime(row["updatedAt"]),
            conversion_history=_load_conversion_history(row["conversionHistory"]),
        )
