"""Database schema constants."""

from __future__ import annotations

BOOK_COLUMNS = [
    "id",
    "name",
    "description",
    "currency",
    "lockedExchangeRate",
    "targetCurrency",
    "rateLockedAt",
    "currencyHistory",
    "createdAt",
    "updatedAt",
]

ENTRY_COLUMNS = [
    "id",
    "bookId",
    "amount",
    "currency",
    "normalizedAmount",
    "normalizedCurrency",
    "conversionRate",
    "date",
    "party",
    "category",
    "paymentMode",
    "remarks",
    "historicalRates",
    "conversionHistory",
    "createdAt",
    "updatedAt",
]

# Record field name -> column name for partial updates
BOOK_FIELD_COLUMNS = {
    "name": "name",
    "description": "description",
    "currency": "currency",
    "locked_rate": "lockedExchangeRate",
    "target_currency": "targetCurrency",
    "rate_locked_at": "rateLockedAt",
    "currency_history": "currencyHistory",
}

ENTRY_FIELD_COLUMNS = {
    "book_id": "bookId",
    "amount": "amount",
    "currency": "currency",
    "date": "date",
    "party": "party",
    "category": "category",
    "payment_mode": "paymentMode",
    "remarks": "remarks",
    "historical_rates": "historicalRates",
    "conversion_history": "conversionHistory",
}

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS books (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    currency TEXT NOT NULL,
    lockedExchangeRate REAL,
    targetCurrency TEXT,
    rateLockedAt TEXT,
    currencyHistory TEXT,
    createdAt TEXT NOT NULL,
    updatedAt TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY,
    bookId TEXT NOT NULL REFERENCES books(id),
    amount REAL NOT NULL,
    currency TEXT NOT NULL,
    normalizedAmount REAL,
    normalizedCurrency TEXT,
    conversionRate REAL,
    date TEXT NOT NULL,
    party TEXT,
    category TEXT NOT NULL,
    paymentMode TEXT NOT NULL,
    remarks TEXT,
    historicalRates TEXT,
    conversionHistory TEXT,
    createdAt TEXT NOT NULL,
    updatedAt TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_entries_bookId ON entries(bookId);
CREATE INDEX IF NOT EXISTS idx_entries_normalizedCurrency ON entries(normalizedCurrency);
"""
