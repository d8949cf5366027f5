"""Public fxledger package exports."""

from __future__ import annotations

from fxledger.__version__ import __version__
from fxledger.client import LedgerClient
from fxledger.exceptions import (
    BatchTransferError,
    ConfirmationRequiredError,
    InvalidRateError,
    NotFoundError,
    OperationInProgressError,
    PartialBatchFailure,
    RateUnavailableError,
)
from fxledger.forex import ForexRateManager, RateProvider
from fxledger.models import (
    BookDTO,
    BookRecord,
    BookTotals,
    EntryDTO,
    EntryRecord,
    NormalizationResult,
    TransferResult,
)
from fxledger.persistence import PersistenceBackend
from fxledger.preferences import StaticPreferences, UserPreferences
from fxledger.repository import Repository

__all__ = [
    "__version__",
    "LedgerClient",
    "BatchTransferError",
    "ConfirmationRequiredError",
    "InvalidRateError",
    "NotFoundError",
    "OperationInProgressError",
    "PartialBatchFailure",
    "RateUnavailableError",
    "ForexRateManager",
    "RateProvider",
    "BookDTO",
    "BookRecord",
    "BookTotals",
    "EntryDTO",
    "EntryRecord",
    "NormalizationResult",
    "TransferResult",
    "PersistenceBackend",
    "StaticPreferences",
    "UserPreferences",
    "Repository",
]
