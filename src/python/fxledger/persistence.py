"""Persistence interfaces for fxledger storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from fxledger.models import (
    BookDTO,
    BookRecord,
    ConversionRecord,
    EntryDTO,
    EntryRecord,
    Normalization,
    RatesSnapshot,
)


class PersistenceBackend(ABC):
    """Abstract interface for repository backends."""

    @abstractmethod
    def connect(self) -> None:
        """Establish a backend connection."""

    @abstractmethod
    def close(self) -> None:
        """Close the backend connection."""

    @abstractmethod
    def begin_transaction(self) -> None:
        """Start a transaction."""

    @abstractmethod
    def commit(self) -> None:
        """Commit the active transaction."""

    @abstractmethod
    def rollback(self) -> None:
        """Rollback the active transaction."""

    @abstractmethod
    def get_book(self, book_id: str) -> BookRecord:
        """Return a book or raise NotFoundError."""

    @abstractmethod
    def list_books(self) -> list[BookRecord]:
        """Return all books ordered by name."""

    @abstractmethod
    def insert_book(
        self,
        book: BookDTO,
        locked_rate: float | None = None,
        target_currency: str | None = None,
    ) -> BookRecord:
        """Insert a book with its initial rate lock."""

    @abstractmethod
    def update_book(self, book_id: str, **fields: Any) -> BookRecord:
        """Update the given book fields and return the latest record."""

    @abstractmethod
    def delete_book(self, book_id: str) -> None:
        """Delete a book and its entries."""

    @abstractmethod
    def list_entries(self, book_id: str) -> list[EntryRecord]:
        """Return the entries of a book ordered by date."""

    @abstractmethod
    def get_entry(self, entry_id: str) -> EntryRecord:
        """Return an entry or raise NotFoundError."""

    @abstractmethod
    def insert_entry(
        self,
        entry: EntryDTO,
        currency: str,
        normalization: Normalization | None = None,
        historical_rates: RatesSnapshot | None = None,
        conversion_history: tuple[ConversionRecord, ...] = (),
    ) -> EntryRecord:
        """Insert an entry in the given currency and return the record."""

    @abstractmethod
    def update_entry(self, entry_id: str, **fields: Any) -> EntryRecord:
        """Update the given entry fields and return the latest record.

        ``normalization`` may be passed to replace (or, with ``None``, clear)
        the cached normalized fields.
        """

    @abstractmethod
    def delete_entry(self, entry_id: str) -> None:
        """Delete an entry."""
