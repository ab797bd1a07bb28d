"""
Vesting ledger exception hierarchy.

Every rejected ledger call raises one of the typed exceptions below. All of
them are synchronous, non-retryable rejections: the call that raised has had
no effect on ledger state.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vesting ledger errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Authorization Errors ====================


class Unauthorized(VestingError):
    """Raised when the caller does not hold the role an operation requires."""
    pass


# ==================== Schedule Validation Errors ====================


class ScheduleValidationError(VestingError):
    """Raised when schedule creation parameters fail validation."""
    pass


class InvalidBeneficiary(ScheduleValidationError):
    """Raised when a beneficiary (or new owner) is the null identity."""
    pass


class InvalidDuration(ScheduleValidationError):
    """Raised when a schedule duration is not strictly positive."""
    pass


class InvalidAmount(ScheduleValidationError):
    """Raised when an amount is not strictly positive."""
    pass


class InvalidSchedule(ScheduleValidationError):
    """Raised when the cliff precedes the start."""
    pass


class InvalidStart(ScheduleValidationError):
    """Raised when a start time in the past is rejected by ledger policy."""
    pass


class InvalidSliceInterval(ScheduleValidationError):
    """Raised when the slice interval is smaller than one second."""
    pass


# ==================== Schedule State Errors ====================


class ScheduleStateError(VestingError):
    """Raised when an operation does not apply to a schedule's current state."""
    pass


class InvalidIndex(ScheduleStateError):
    """Raised when a schedule index is out of range for a beneficiary."""

    def __init__(
        self,
        message: str,
        beneficiary: Optional[str] = None,
        index: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.beneficiary = beneficiary
        self.index = index


class ScheduleRevoked(ScheduleStateError):
    """Raised when a revoked schedule is queried for accrual, released or revoked again."""
    pass


class NotRevocable(ScheduleStateError):
    """Raised when revoking a schedule created as non-revocable."""
    pass


class NothingToRelease(ScheduleStateError):
    """Raised when a release finds no vested, unreleased amount."""
    pass


# ==================== Custody Errors ====================


class CustodyError(VestingError):
    """Raised when asset custody cannot satisfy an operation."""
    pass


class TransferFailed(CustodyError):
    """Raised when the asset collaborator rejects a transfer.

    The ledger state mutated earlier in the same call has been restored
    before this is raised, except for payouts that already reached their
    recipient.
    """

    def __init__(
        self,
        message: str,
        recipient: Optional[str] = None,
        amount: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.recipient = recipient
        self.amount = amount


class InsufficientFunds(CustodyError):
    """Raised when custody holds less than the unallocated amount required."""
    pass


class ManagedAssetRecovery(CustodyError):
    """Raised when emergency recovery targets the ledger's own managed asset."""
    pass


# ==================== Utility Functions ====================


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, VestingError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, InvalidIndex):
        if exc.beneficiary is not None:
            context["beneficiary"] = exc.beneficiary
        if exc.index is not None:
            context["index"] = exc.index

    if isinstance(exc, TransferFailed):
        if exc.recipient is not None:
            context["recipient"] = exc.recipient
        if exc.amount is not None:
            context["amount"] = exc.amount

    return context
