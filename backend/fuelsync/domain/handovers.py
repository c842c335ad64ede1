"""
Handover Reconciler state machine.

    PendingHandover  --confirm()-->  ConfirmedHandover   (difference == 0, terminal)
    PendingHandover  --confirm()-->  DisputedHandover    (difference != 0)
    DisputedHandover --resolve()-->  ResolvedHandover    (terminal)

The CONFIRMED / DISPUTED outcome is computed from the amounts; a caller
cannot choose it. Physical cash must match to the smallest unit, so there is
no tolerance here.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import ClassVar, Optional, Union

from fuelsync.domain.money import format_money
from fuelsync.validation import ValidationError

HANDOVER_TYPES = ("shift_collection", "employee_to_manager", "manager_to_owner", "deposit_to_bank")

# handover_type -> the type that must have been settled before it
PREVIOUS_STEP = {
    "employee_to_manager": "shift_collection",
    "manager_to_owner": "employee_to_manager",
    "deposit_to_bank": "manager_to_owner",
}

STATUS_PENDING = "PENDING"
STATUS_CONFIRMED = "CONFIRMED"
STATUS_DISPUTED = "DISPUTED"
STATUS_RESOLVED = "RESOLVED"

CURRENCY_SYMBOL = "₹"


def dispute_note(difference_cents: int) -> str:
    if difference_cents < 0:
        return f"Shortage of {CURRENCY_SYMBOL}{format_money(-difference_cents)}"
    return f"Excess of {CURRENCY_SYMBOL}{format_money(difference_cents)}"


def _join_notes(*parts: Optional[str]) -> Optional[str]:
    kept = [p for p in parts if p]
    return "\n".join(kept) if kept else None


@dataclass(frozen=True)
class _HandoverBase:
    id: Optional[int]
    station_id: int
    handover_type: str
    handover_date: date
    from_user_id: int
    to_user_id: Optional[int]
    expected_amount_cents: int
    shift_id: Optional[int] = None
    previous_handover_id: Optional[int] = None
    notes: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status
        return data


@dataclass(frozen=True)
class PendingHandover(_HandoverBase):
    status: ClassVar[str] = STATUS_PENDING

    def __post_init__(self):
        if self.handover_type not in HANDOVER_TYPES:
            raise ValidationError(
                f"handoverType must be one of {list(HANDOVER_TYPES)}",
                field="handoverType",
                value=self.handover_type,
            )
        if self.expected_amount_cents is None or self.expected_amount_cents < 0:
            raise ValidationError("expectedAmount must be a non-negative amount", field="expectedAmount")
        if self.handover_type == "deposit_to_bank":
            if self.to_user_id is not None:
                raise ValidationError("Bank deposits have no receiving user", field="toUserId")
        elif self.to_user_id is None:
            raise ValidationError("toUserId is required", field="toUserId")
        elif self.to_user_id == self.from_user_id:
            raise ValidationError("Cannot hand over cash to yourself", field="toUserId")

    def confirm(
        self,
        *,
        confirmed_at: datetime,
        confirmed_by_user_id: Optional[int],
        actual_amount_cents: Optional[int] = None,
        accept_as_is: bool = False,
        notes: Optional[str] = None,
    ) -> Union["ConfirmedHandover", "DisputedHandover"]:
        if accept_as_is:
            if actual_amount_cents is not None and actual_amount_cents != self.expected_amount_cents:
                raise ValidationError(
                    "acceptAsIs cannot be combined with a different actualAmount",
                    field="actualAmount",
                    expected_amount_cents=self.expected_amount_cents,
                    actual_amount_cents=actual_amount_cents,
                )
            actual_amount_cents = self.expected_amount_cents
        elif actual_amount_cents is None:
            raise ValidationError("actualAmount is required unless acceptAsIs is set", field="actualAmount")

        if actual_amount_cents < 0:
            raise ValidationError("actualAmount cannot be negative", field="actualAmount")

        difference = actual_amount_cents - self.expected_amount_cents
        common = dict(
            id=self.id,
            station_id=self.station_id,
            handover_type=self.handover_type,
            handover_date=self.handover_date,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            expected_amount_cents=self.expected_amount_cents,
            shift_id=self.shift_id,
            previous_handover_id=self.previous_handover_id,
            actual_amount_cents=actual_amount_cents,
            difference_cents=difference,
            confirmed_at=confirmed_at,
            confirmed_by_user_id=confirmed_by_user_id,
        )
        if difference == 0:
            return ConfirmedHandover(notes=_join_notes(self.notes, notes), **common)
        return DisputedHandover(
            notes=self.notes,
            dispute_notes=_join_notes(dispute_note(difference), notes),
            **common,
        )


@dataclass(frozen=True)
class _CountedHandover(_HandoverBase):
    actual_amount_cents: int = 0
    difference_cents: int = 0
    confirmed_at: Optional[datetime] = None
    confirmed_by_user_id: Optional[int] = None


@dataclass(frozen=True)
class ConfirmedHandover(_CountedHandover):
    status: ClassVar[str] = STATUS_CONFIRMED


@dataclass(frozen=True)
class DisputedHandover(_CountedHandover):
    status: ClassVar[str] = STATUS_DISPUTED

    dispute_notes: Optional[str] = None

    def resolve(
        self,
        *,
        resolution_notes: str,
        resolved_at: datetime,
        resolved_by_user_id: Optional[int],
    ) -> "ResolvedHandover":
        if not resolution_notes or not resolution_notes.strip():
            raise ValidationError("Resolution notes are required", field="notes")
        return ResolvedHandover(
            id=self.id,
            station_id=self.station_id,
            handover_type=self.handover_type,
            handover_date=self.handover_date,
            from_user_id=self.from_user_id,
            to_user_id=self.to_user_id,
            expected_amount_cents=self.expected_amount_cents,
            shift_id=self.shift_id,
            previous_handover_id=self.previous_handover_id,
            notes=self.notes,
            actual_amount_cents=self.actual_amount_cents,
            difference_cents=self.difference_cents,
            confirmed_at=self.confirmed_at,
            confirmed_by_user_id=self.confirmed_by_user_id,
            dispute_notes=self.dispute_notes,
            resolution_notes=resolution_notes.strip(),
            resolved_at=resolved_at,
            resolved_by_user_id=resolved_by_user_id,
        )


@dataclass(frozen=True)
class ResolvedHandover(_CountedHandover):
    status: ClassVar[str] = STATUS_RESOLVED

    dispute_notes: Optional[str] = None
    resolution_notes: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolved_by_user_id: Optional[int] = None


HandoverState = Union[PendingHandover, ConfirmedHandover, DisputedHandover, ResolvedHandover]

SETTLED_STATES = (ConfirmedHandover, ResolvedHandover)


def settled_amount_cents(state: HandoverState) -> Optional[int]:
    """Cash that actually changed hands, once the handover is settled."""
    if isinstance(state, SETTLED_STATES):
        return state.actual_amount_cents
    return None


def handover_from_record(record) -> HandoverState:
    common = dict(
        id=record.id,
        station_id=record.station_id,
        handover_type=record.handover_type,
        handover_date=record.handover_date,
        from_user_id=record.from_user_id,
        to_user_id=record.to_user_id,
        expected_amount_cents=record.expected_amount_cents,
        shift_id=record.shift_id,
        previous_handover_id=record.previous_handover_id,
        notes=record.notes,
    )
    if record.status == STATUS_PENDING:
        return PendingHandover(**common)

    counted = dict(
        common,
        actual_amount_cents=record.actual_amount_cents,
        difference_cents=record.difference_cents,
        confirmed_at=record.confirmed_at,
        confirmed_by_user_id=record.confirmed_by_user_id,
    )
    if record.status == STATUS_CONFIRMED:
        return ConfirmedHandover(**counted)
    if record.status == STATUS_DISPUTED:
        return DisputedHandover(dispute_notes=record.dispute_notes, **counted)
    if record.status == STATUS_RESOLVED:
        return ResolvedHandover(
            dispute_notes=record.dispute_notes,
            resolution_notes=record.resolution_notes,
            resolved_at=record.resolved_at,
            resolved_by_user_id=record.resolved_by_user_id,
            **counted,
        )
    raise ValueError(f"Unknown handover status {record.status!r}")


def record_fields(state: HandoverState) -> dict:
    fields = {"status": state.status, "notes": state.notes}
    if isinstance(state, _CountedHandover):
        fields.update(
            actual_amount_cents=state.actual_amount_cents,
            difference_cents=state.difference_cents,
            confirmed_at=state.confirmed_at,
            confirmed_by_user_id=state.confirmed_by_user_id,
        )
    if isinstance(state, (DisputedHandover, ResolvedHandover)):
        fields["dispute_notes"] = state.dispute_notes
    if isinstance(state, ResolvedHandover):
        fields.update(
            resolution_notes=state.resolution_notes,
            resolved_at=state.resolved_at,
            resolved_by_user_id=state.resolved_by_user_id,
        )
    return fields
