"""
Shift Ledger state machine.

A shift is always one of three frozen variants:

    ActiveShift  --record()-->  ActiveShift
    ActiveShift  --close()-->   ClosedShift      (terminal)
    ActiveShift  --cancel()-->  CancelledShift   (terminal, nothing posted)

Transitions exist only on the variant they are legal from, so a closed shift
has no way to accept another posting. The persisted row stores a status
column; shift_from_record() projects it back into a variant.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar, Optional, Union

from fuelsync.domain.money import LITRE_QUANTUM
from fuelsync.errors import ShiftNotCancellable
from fuelsync.validation import ValidationError

SHIFT_TYPES = ("morning", "evening", "night", "full_day", "custom")

STATUS_ACTIVE = "ACTIVE"
STATUS_CLOSED = "CLOSED"
STATUS_CANCELLED = "CANCELLED"

ZERO_LITRES = Decimal("0.000")


@dataclass(frozen=True)
class ShiftPosting:
    """What one posted transaction contributes to the shift holder's drawer."""

    transaction_id: Optional[int]
    readings_count: int
    litres_sold: Decimal
    sale_value_cents: int
    online_cents: int
    credit_cents: int


@dataclass(frozen=True)
class ShiftTotals:
    readings_count: int = 0
    total_litres_sold: Decimal = ZERO_LITRES
    total_sales_cents: int = 0
    online_cents: int = 0
    credit_cents: int = 0

    @property
    def expected_cash_cents(self) -> int:
        # cash-only portion owed at close
        return self.total_sales_cents - self.online_cents - self.credit_cents

    def add(self, posting: ShiftPosting) -> "ShiftTotals":
        return ShiftTotals(
            readings_count=self.readings_count + posting.readings_count,
            total_litres_sold=(self.total_litres_sold + Decimal(posting.litres_sold)).quantize(LITRE_QUANTUM),
            total_sales_cents=self.total_sales_cents + posting.sale_value_cents,
            online_cents=self.online_cents + posting.online_cents,
            credit_cents=self.credit_cents + posting.credit_cents,
        )

    def to_dict(self) -> dict:
        return {
            "readings_count": self.readings_count,
            "total_litres_sold": str(self.total_litres_sold),
            "total_sales_cents": self.total_sales_cents,
            "online_cents": self.online_cents,
            "credit_cents": self.credit_cents,
            "expected_cash_cents": self.expected_cash_cents,
        }


@dataclass(frozen=True)
class _ShiftBase:
    id: Optional[int]
    employee_id: int
    station_id: int
    shift_date: date
    shift_type: str
    started_at: datetime
    totals: ShiftTotals = field(default_factory=ShiftTotals)
    notes: Optional[str] = None

    @property
    def expected_cash_cents(self) -> int:
        return self.totals.expected_cash_cents


@dataclass(frozen=True)
class ActiveShift(_ShiftBase):
    status: ClassVar[str] = STATUS_ACTIVE

    def __post_init__(self):
        if self.shift_type not in SHIFT_TYPES:
            raise ValidationError(
                f"shiftType must be one of {list(SHIFT_TYPES)}",
                field="shiftType",
                value=self.shift_type,
            )

    def record(self, posting: ShiftPosting) -> "ActiveShift":
        return replace(self, totals=self.totals.add(posting))

    def close(
        self,
        *,
        actual_cash_cents: int,
        ended_at: datetime,
        actual_online_cents: Optional[int] = None,
        ended_by_user_id: Optional[int] = None,
        end_notes: Optional[str] = None,
    ) -> "ClosedShift":
        if actual_cash_cents is None or actual_cash_cents < 0:
            raise ValidationError("cashCollected must be a non-negative amount", field="cashCollected")
        if actual_online_cents is not None and actual_online_cents < 0:
            raise ValidationError("onlineCollected cannot be negative", field="onlineCollected")

        return ClosedShift(
            id=self.id,
            employee_id=self.employee_id,
            station_id=self.station_id,
            shift_date=self.shift_date,
            shift_type=self.shift_type,
            started_at=self.started_at,
            totals=self.totals,
            notes=self.notes,
            ended_at=ended_at,
            actual_cash_cents=actual_cash_cents,
            actual_online_cents=actual_online_cents,
            cash_difference_cents=actual_cash_cents - self.totals.expected_cash_cents,
            ended_by_user_id=ended_by_user_id,
            end_notes=end_notes,
        )

    def cancel(
        self,
        *,
        cancelled_at: datetime,
        cancelled_by_user_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> "CancelledShift":
        if self.totals.readings_count > 0 or self.totals.total_sales_cents != 0:
            raise ShiftNotCancellable(
                "Shift has posted sales and can only be closed",
                shift_id=self.id,
                readings_count=self.totals.readings_count,
            )
        return CancelledShift(
            id=self.id,
            employee_id=self.employee_id,
            station_id=self.station_id,
            shift_date=self.shift_date,
            shift_type=self.shift_type,
            started_at=self.started_at,
            totals=self.totals,
            notes=self.notes,
            ended_at=cancelled_at,
            ended_by_user_id=cancelled_by_user_id,
            end_notes=reason,
        )


@dataclass(frozen=True)
class ClosedShift(_ShiftBase):
    status: ClassVar[str] = STATUS_CLOSED

    ended_at: Optional[datetime] = None
    actual_cash_cents: int = 0
    actual_online_cents: Optional[int] = None
    cash_difference_cents: int = 0
    ended_by_user_id: Optional[int] = None
    end_notes: Optional[str] = None


@dataclass(frozen=True)
class CancelledShift(_ShiftBase):
    status: ClassVar[str] = STATUS_CANCELLED

    ended_at: Optional[datetime] = None
    ended_by_user_id: Optional[int] = None
    end_notes: Optional[str] = None


ShiftState = Union[ActiveShift, ClosedShift, CancelledShift]


def totals_from_record(record) -> ShiftTotals:
    return ShiftTotals(
        readings_count=record.readings_count or 0,
        total_litres_sold=Decimal(record.total_litres_sold or 0).quantize(LITRE_QUANTUM),
        total_sales_cents=record.total_sales_cents or 0,
        online_cents=record.online_cents or 0,
        credit_cents=record.credit_cents or 0,
    )


def shift_from_record(record) -> ShiftState:
    """Project a persisted shift row into its variant."""
    common = dict(
        id=record.id,
        employee_id=record.employee_id,
        station_id=record.station_id,
        shift_date=record.shift_date,
        shift_type=record.shift_type,
        started_at=record.started_at,
        totals=totals_from_record(record),
        notes=record.notes,
    )
    if record.status == STATUS_ACTIVE:
        return ActiveShift(**common)
    if record.status == STATUS_CLOSED:
        return ClosedShift(
            **common,
            ended_at=record.ended_at,
            actual_cash_cents=record.actual_cash_cents,
            actual_online_cents=record.actual_online_cents,
            cash_difference_cents=record.cash_difference_cents,
            ended_by_user_id=record.ended_by_user_id,
            end_notes=record.end_notes,
        )
    if record.status == STATUS_CANCELLED:
        return CancelledShift(
            **common,
            ended_at=record.ended_at,
            ended_by_user_id=record.ended_by_user_id,
            end_notes=record.end_notes,
        )
    raise ValueError(f"Unknown shift status {record.status!r}")


def record_fields(state: ShiftState) -> dict:
    """Column values for writing a variant back to its row."""
    fields = {
        "status": state.status,
        "readings_count": state.totals.readings_count,
        "total_litres_sold": state.totals.total_litres_sold,
        "total_sales_cents": state.totals.total_sales_cents,
        "online_cents": state.totals.online_cents,
        "credit_cents": state.totals.credit_cents,
        "expected_cash_cents": state.totals.expected_cash_cents,
        "active_employee_id": state.employee_id if isinstance(state, ActiveShift) else None,
    }
    if isinstance(state, ClosedShift):
        fields.update(
            ended_at=state.ended_at,
            actual_cash_cents=state.actual_cash_cents,
            actual_online_cents=state.actual_online_cents,
            cash_difference_cents=state.cash_difference_cents,
            ended_by_user_id=state.ended_by_user_id,
            end_notes=state.end_notes,
        )
    elif isinstance(state, CancelledShift):
        fields.update(
            ended_at=state.ended_at,
            ended_by_user_id=state.ended_by_user_id,
            end_notes=state.end_notes,
        )
    return fields
