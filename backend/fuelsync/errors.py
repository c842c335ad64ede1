# Overview: Error taxonomy for the settlement pipeline.

"""
Settlement pipeline errors.

Every hard failure is raised before the owning operation commits anything,
so a caller that catches one of these knows no state changed. Each error
carries a machine-readable ``code``, the HTTP status the API layer should use,
and a ``context`` dict (entity ids, expected vs actual values) so the caller
can render a precise message.

CreditLimitWarning is not an exception: it is returned next to
the posted transaction and the caller decides whether to surface it.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict


class SettlementError(Exception):
    """Base class for all pipeline failures."""

    code = "SETTLEMENT_ERROR"
    http_status = 400
    retryable = False

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.context:
            payload["details"] = self.context
        if self.retryable:
            payload["retryable"] = True
        return payload


class NotFound(SettlementError):
    code = "NOT_FOUND"
    http_status = 404


class ConcurrencyConflict(SettlementError):
    """Optimistic-lock or deadlock conflict that outlived the retry budget."""

    code = "CONCURRENCY_CONFLICT"
    http_status = 409
    retryable = True


# =============================================================================
# SALE CALCULATOR
# =============================================================================

class InvalidReading(SettlementError):
    code = "INVALID_READING"
    http_status = 422


class MissingPrice(SettlementError):
    code = "MISSING_PRICE"
    http_status = 422


# =============================================================================
# PAYMENT ALLOCATOR
# =============================================================================

class BreakdownMismatch(SettlementError):
    code = "BREAKDOWN_MISMATCH"
    http_status = 422


class UnallocatedCredit(SettlementError):
    code = "UNALLOCATED_CREDIT"
    http_status = 422


class CreditLimitExceeded(SettlementError):
    code = "CREDIT_LIMIT_EXCEEDED"
    http_status = 422


class CreditorFlagged(SettlementError):
    """Flagged creditors take no new credit until a manager clears the flag."""

    code = "CREDITOR_FLAGGED"
    http_status = 422


class ReadingAlreadySettled(SettlementError):
    code = "READING_ALREADY_SETTLED"
    http_status = 409


@dataclass(frozen=True)
class CreditLimitWarning:
    """Posting put a creditor above its limit. Non-fatal."""

    creditor_id: int
    creditor_name: str
    credit_limit_cents: int
    outstanding_before_cents: int
    outstanding_after_cents: int

    @property
    def excess_cents(self) -> int:
        return self.outstanding_after_cents - self.credit_limit_cents

    def to_dict(self) -> dict:
        data = asdict(self)
        data["code"] = "CREDIT_LIMIT_WARNING"
        data["excess_cents"] = self.excess_cents
        return data


# =============================================================================
# SHIFT LEDGER
# =============================================================================

class ShiftAlreadyActive(SettlementError):
    code = "SHIFT_ALREADY_ACTIVE"
    http_status = 409


class NoActiveShift(SettlementError):
    code = "NO_ACTIVE_SHIFT"
    http_status = 409


class ShiftNotCancellable(SettlementError):
    code = "SHIFT_NOT_CANCELLABLE"
    http_status = 409


# =============================================================================
# HANDOVER RECONCILER
# =============================================================================

class HandoverStateError(SettlementError):
    http_status = 409


class AlreadyConfirmed(HandoverStateError):
    code = "ALREADY_CONFIRMED"


class AlreadyDisputed(HandoverStateError):
    code = "ALREADY_DISPUTED"


class HandoverNotDisputed(HandoverStateError):
    code = "HANDOVER_NOT_DISPUTED"


class HandoverSequenceError(SettlementError):
    code = "HANDOVER_OUT_OF_SEQUENCE"
    http_status = 409
