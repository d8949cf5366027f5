from __future__ import annotations

from fxledger.exceptions import (
    BatchTransferError,
    ConfirmationRequiredError,
    NoSelectionError,
    PartialBatchFailure,
    SameBookTransferError,
)
from fxledger.models import TransferResult


def test_confirmation_required_error_details() -> None:
    error = ConfirmationRequiredError("Rate differs", {"percent_diff": 25.0})

    assert str(error) == "Rate differs"
    assert error.details["percent_diff"] == 25.0


def test_partial_batch_failure_carries_result() -> None:
    result = TransferResult(
        mode="move",
        rate=83.0,
        succeeded=["a"],
        failed=[("b", ValueError("boom"))],
    )
    error = PartialBatchFailure("1 of 2 entries transferred", result)

    assert isinstance(error, BatchTransferError)
    assert error.result.succeeded == ["a"]
    assert error.result.failed[0][0] == "b"


def test_degenerate_transfer_errors_are_value_errors() -> None:
    assert issubclass(NoSelectionError, ValueError)
    assert issubclass(SameBookTransferError, ValueError)
