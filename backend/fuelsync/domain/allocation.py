"""
Payment Allocator.

Checks a proposed {cash, online, credit} split against the sale value it
settles and the credit portion against its per-creditor allocations. The
checks are pure; posting (creditor ledger, locks, commit) happens in
services.transaction_service.

Rules:
- |cash + online + credit - sale value| <= tolerance, else BreakdownMismatch
- credit > 0: allocations must sum to credit exactly (no tolerance)
- credit == 0: no allocations allowed
- a creditor whose outstanding would pass its limit yields a
  CreditLimitWarning; limit 0 means "no limit"
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable, Mapping

from fuelsync.domain.money import format_money
from fuelsync.errors import BreakdownMismatch, CreditLimitWarning, UnallocatedCredit
from fuelsync.validation import ValidationError


@dataclass(frozen=True)
class PaymentBreakdown:
    cash_cents: int
    online_cents: int
    credit_cents: int

    def __post_init__(self):
        for field in ("cash_cents", "online_cents", "credit_cents"):
            if getattr(self, field) < 0:
                raise ValidationError(f"{field.replace('_cents', '')} cannot be negative", field=field)

    @property
    def total_cents(self) -> int:
        return self.cash_cents + self.online_cents + self.credit_cents

    def to_dict(self) -> dict:
        return {
            "cash_cents": self.cash_cents,
            "online_cents": self.online_cents,
            "credit_cents": self.credit_cents,
        }


@dataclass(frozen=True)
class CreditAllocationRequest:
    creditor_id: int
    amount_cents: int

    def __post_init__(self):
        if self.amount_cents <= 0:
            raise ValidationError(
                "Credit allocation amount must be positive",
                field="amount",
                creditor_id=self.creditor_id,
            )


@dataclass(frozen=True)
class CreditorPosition:
    """Creditor state read under lock just before posting."""

    creditor_id: int
    name: str
    credit_limit_cents: int
    outstanding_cents: int


def validate_breakdown(
    sale_value_cents: int,
    breakdown: PaymentBreakdown,
    allocations: Iterable[CreditAllocationRequest] = (),
    *,
    tolerance_cents: int = 1,
) -> None:
    """Raise BreakdownMismatch / UnallocatedCredit; return None when the split is acceptable."""
    allocations = list(allocations)

    difference = breakdown.total_cents - sale_value_cents
    if abs(difference) > tolerance_cents:
        raise BreakdownMismatch(
            f"Payment breakdown {format_money(breakdown.total_cents)} does not match "
            f"sale value {format_money(sale_value_cents)}",
            sale_value_cents=sale_value_cents,
            breakdown_total_cents=breakdown.total_cents,
            difference_cents=difference,
            tolerance_cents=tolerance_cents,
        )

    allocated = sum(a.amount_cents for a in allocations)

    if breakdown.credit_cents == 0:
        if allocations:
            raise UnallocatedCredit(
                "Credit allocations given for a transaction with no credit component",
                credit_cents=0,
                allocated_cents=allocated,
            )
        return

    if allocated != breakdown.credit_cents:
        raise UnallocatedCredit(
            f"Credit allocations total {format_money(allocated)} but credit is "
            f"{format_money(breakdown.credit_cents)}",
            credit_cents=breakdown.credit_cents,
            allocated_cents=allocated,
            difference_cents=allocated - breakdown.credit_cents,
        )


def totals_by_creditor(allocations: Iterable[CreditAllocationRequest]) -> "OrderedDict[int, int]":
    """Sum allocation amounts per creditor, ordered by creditor id (the lock order)."""
    totals: dict[int, int] = {}
    for allocation in allocations:
        totals[allocation.creditor_id] = totals.get(allocation.creditor_id, 0) + allocation.amount_cents
    return OrderedDict(sorted(totals.items()))


def exceeds_limit(credit_limit_cents: int, outstanding_cents: int) -> bool:
    if not credit_limit_cents:
        return False
    return outstanding_cents > credit_limit_cents


def credit_limit_warnings(
    positions: Mapping[int, CreditorPosition],
    allocations: Iterable[CreditAllocationRequest],
) -> list[CreditLimitWarning]:
    warnings = []
    for creditor_id, amount in totals_by_creditor(allocations).items():
        position = positions[creditor_id]
        after = position.outstanding_cents + amount
        if exceeds_limit(position.credit_limit_cents, after):
            warnings.append(
                CreditLimitWarning(
                    creditor_id=creditor_id,
                    creditor_name=position.name,
                    credit_limit_cents=position.credit_limit_cents,
                    outstanding_before_cents=position.outstanding_cents,
                    outstanding_after_cents=after,
                )
            )
    return warnings
