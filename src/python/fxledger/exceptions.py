"""Custom exception types for fxledger."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from fxledger.models import TransferResult


class NotFoundError(Exception):
    """Raised when a requested book or entry does not exist."""


class RateUnavailableError(Exception):
    """Raised when no exchange rate can be resolved for a currency pair."""


class InvalidRateError(ValueError):
    """Raised when a rate is non-positive, NaN, or infinite."""


class NoSelectionError(ValueError):
    """Raised when a bulk transfer is requested without any entries."""


class SameBookTransferError(ValueError):
    """Raised when the source and target book of a transfer are the same."""


class ConfirmationRequiredError(Exception):
    """Raised when an operation needs explicit user confirmation to proceed."""

    def __init__(self, message: str, details: dict[str, Any]) -> None:
        super().__init__(message)
        self.details = details


class OperationInProgressError(RuntimeError):
    """Raised when the same action is triggered while it is still running."""


class BatchTransferError(Exception):
    """Raised when entries of a bulk transfer could not be written."""

    def __init__(self, message: str, result: "TransferResult") -> None:
        super().__init__(message)
        self.result = result


class PartialBatchFailure(BatchTransferError):
    """Raised when some, but not all, entries of a bulk transfer were written."""
