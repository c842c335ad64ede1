# Overview: Shift Ledger persistence; start, post, close and cancel employee shifts.

"""
Shift Management Service

WHY: Each shift is a period of cash accountability for one employee at one
station. Expected cash accumulates from the employee's transactions while
the shift is ACTIVE and is compared with the counted cash at close.

DESIGN PRINCIPLES:
- One ACTIVE shift per employee across all stations (unique
  active_employee_id; the database settles concurrent starts)
- Transitions go through the domain variants in domain.shifts; the row only
  stores the result
- CLOSED and CANCELLED are terminal
- Closing can seed a shift_collection handover to the station manager
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..domain.shifts import (
    SHIFT_TYPES,
    STATUS_ACTIVE,
    STATUS_CLOSED,
    ActiveShift,
    ShiftPosting,
    ShiftState,
    record_fields,
    shift_from_record,
)
from ..errors import NoActiveShift, NotFound, ShiftAlreadyActive
from ..extensions import db
from ..models import CashHandover, Shift, User
from ..policy import SettlementPolicy, current_policy
from ..time_utils import today, utcnow
from ..validation import ValidationError
from . import handover_service
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .station_service import get_station, get_user

logger = logging.getLogger(__name__)

DEFAULT_DISCREPANCY_THRESHOLD_CENTS = 100_00
DISCREPANCY_LIMIT = 50


@dataclass(frozen=True)
class ShiftClosure:
    shift: Shift
    handover: Optional[CashHandover] = None

    def to_dict(self) -> dict:
        return {
            "shift": self.shift.to_dict(),
            "handover": self.handover.to_dict() if self.handover is not None else None,
        }


def _apply(row: Shift, state: ShiftState) -> None:
    for column, value in record_fields(state).items():
        setattr(row, column, value)


def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise NotFound("Shift not found", shift_id=shift_id)
    return shift


def get_active_shift(employee_id: int) -> Shift | None:
    return db.session.query(Shift).filter(
        Shift.employee_id == employee_id,
        Shift.status == STATUS_ACTIVE,
    ).first()


# =============================================================================
# LIFECYCLE
# =============================================================================

def start_shift(
    *,
    employee_id: int,
    station_id: int,
    shift_type: str = "custom",
    notes: str | None = None,
    shift_date: date | None = None,
    started_by_user_id: int | None = None,
) -> Shift:
    """
    Open an ACTIVE shift for the employee.

    Raises:
        ShiftAlreadyActive: the employee already has an ACTIVE shift at any
            station (including one created by a concurrent request)
        ValidationError, NotFound
    """
    if shift_type not in SHIFT_TYPES:
        raise ValidationError(f"shiftType must be one of {list(SHIFT_TYPES)}", field="shiftType")

    get_station(station_id)
    employee = get_user(employee_id)
    if not employee.is_active:
        raise ValidationError("Employee is inactive", employee_id=employee_id)

    def _op() -> Shift:
        existing = get_active_shift(employee_id)
        if existing:
            raise ShiftAlreadyActive(
                "Employee already has an active shift. End current shift first.",
                employee_id=employee_id,
                shift_id=existing.id,
                station_id=existing.station_id,
            )

        state = ActiveShift(
            id=None,
            employee_id=employee_id,
            station_id=station_id,
            shift_date=shift_date or today(),
            shift_type=shift_type,
            started_at=utcnow(),
            notes=notes,
        )
        shift = Shift(
            employee_id=state.employee_id,
            station_id=state.station_id,
            shift_date=state.shift_date,
            shift_type=state.shift_type,
            started_at=state.started_at,
            notes=state.notes,
        )
        _apply(shift, state)
        db.session.add(shift)

        try:
            db.session.flush()
            append_audit_event(
                station_id=station_id,
                event_type="shift.started",
                event_category="shift",
                entity_type="shift",
                entity_id=shift.id,
                actor_user_id=started_by_user_id or employee_id,
                occurred_at=shift.started_at,
                note=f"{shift_type} shift started",
            )
            db.session.commit()
        except IntegrityError as exc:
            # a concurrent start for the same employee committed first
            db.session.rollback()
            raise ShiftAlreadyActive(
                "Employee already has an active shift. End current shift first.",
                employee_id=employee_id,
            ) from exc
        return shift

    shift = run_with_retry(_op)
    logger.info("Shift %s started for employee %s at station %s", shift.id, employee_id, station_id)
    return shift


def post_to_active_shift(*, employee_id: int, station_id: int, posting: ShiftPosting) -> Shift | None:
    """
    Apply a transaction to the employee's ACTIVE shift at this station.

    Runs inside the caller's unit of work (no commit). Returns None when the
    employee has no ACTIVE shift here.
    """
    shift = lock_for_update(
        db.session.query(Shift).filter(
            Shift.active_employee_id == employee_id,
            Shift.station_id == station_id,
        )
    ).first()
    if shift is None:
        return None

    state = shift_from_record(shift)
    if not isinstance(state, ActiveShift):
        return None

    _apply(shift, state.record(posting))
    db.session.flush()
    return shift


def _lock_target(shift_id: int | None, employee_id: int | None) -> Shift | None:
    query = db.session.query(Shift)
    if shift_id is not None:
        query = query.filter(Shift.id == shift_id)
    elif employee_id is not None:
        query = query.filter(Shift.active_employee_id == employee_id)
    else:
        raise ValidationError("shift id or employee id is required")
    return lock_for_update(query).first()


def end_shift(
    shift_id: int | None = None,
    *,
    employee_id: int | None = None,
    actual_cash_cents: int,
    actual_online_cents: int | None = None,
    notes: str | None = None,
    ended_by_user_id: int | None = None,
    policy: SettlementPolicy | None = None,
) -> ShiftClosure:
    """
    Close an ACTIVE shift: cash_difference = actual cash - expected cash.

    The target is the given shift id, or the employee's ACTIVE shift.

    Raises:
        NoActiveShift: no such shift, or it is not ACTIVE
        ValidationError: negative or missing amounts (nothing changes)
    """
    policy = policy or current_policy()
    if actual_cash_cents is None or actual_cash_cents < 0:
        raise ValidationError("cashCollected must be a non-negative amount", field="cashCollected")
    if actual_online_cents is not None and actual_online_cents < 0:
        raise ValidationError("onlineCollected cannot be negative", field="onlineCollected")

    def _op() -> ShiftClosure:
        shift = _lock_target(shift_id, employee_id)
        if shift is None:
            raise NoActiveShift("No active shift found", shift_id=shift_id, employee_id=employee_id)

        state = shift_from_record(shift)
        if not isinstance(state, ActiveShift):
            raise NoActiveShift(
                f"Shift is {shift.status.lower()}, not active",
                shift_id=shift.id,
                status=shift.status,
            )

        closed = state.close(
            actual_cash_cents=actual_cash_cents,
            actual_online_cents=actual_online_cents,
            ended_at=utcnow(),
            ended_by_user_id=ended_by_user_id or shift.employee_id,
            end_notes=notes,
        )
        _apply(shift, closed)
        db.session.flush()

        append_audit_event(
            station_id=shift.station_id,
            event_type="shift.closed",
            event_category="shift",
            entity_type="shift",
            entity_id=shift.id,
            actor_user_id=closed.ended_by_user_id,
            occurred_at=closed.ended_at,
            note=f"Shift closed, cash difference {closed.cash_difference_cents} cents",
            payload={
                "expected_cash_cents": closed.expected_cash_cents,
                "actual_cash_cents": closed.actual_cash_cents,
                "cash_difference_cents": closed.cash_difference_cents,
            },
        )

        handover = None
        if policy.auto_handover_on_shift_end:
            handover = handover_service.create_from_shift(
                shift, policy=policy, created_by_user_id=closed.ended_by_user_id
            )

        db.session.commit()
        return ShiftClosure(shift=shift, handover=handover)

    closure = run_with_retry(_op)
    if closure.shift.cash_difference_cents:
        logger.warning(
            "Shift %s closed with cash difference %s cents",
            closure.shift.id, closure.shift.cash_difference_cents,
        )
    return closure


def cancel_shift(
    shift_id: int,
    *,
    cancelled_by_user_id: int | None = None,
    reason: str | None = None,
) -> Shift:
    """
    Cancel an ACTIVE shift that has nothing posted to it.

    Raises:
        NoActiveShift: the shift is not ACTIVE
        ShiftNotCancellable: transactions were already posted to it
    """
    def _op() -> Shift:
        shift = _lock_target(shift_id, None)
        if shift is None:
            raise NotFound("Shift not found", shift_id=shift_id)
        state = shift_from_record(shift)
        if not isinstance(state, ActiveShift):
            raise NoActiveShift(
                f"Shift is {shift.status.lower()}, not active",
                shift_id=shift.id,
                status=shift.status,
            )

        cancelled = state.cancel(
            cancelled_at=utcnow(),
            cancelled_by_user_id=cancelled_by_user_id,
            reason=reason,
        )
        _apply(shift, cancelled)
        db.session.flush()

        append_audit_event(
            station_id=shift.station_id,
            event_type="shift.cancelled",
            event_category="shift",
            entity_type="shift",
            entity_id=shift.id,
            actor_user_id=cancelled_by_user_id,
            occurred_at=cancelled.ended_at,
            note=reason or "Shift cancelled",
        )
        db.session.commit()
        return shift

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_shifts(
    station_id: int,
    *,
    shift_date: date | None = None,
    status: str | None = None,
) -> list[Shift]:
    query = db.session.query(Shift).filter(Shift.station_id == station_id)
    if shift_date is not None:
        query = query.filter(Shift.shift_date == shift_date)
    if status:
        query = query.filter(Shift.status == status.upper())
    return query.order_by(Shift.started_at.asc(), Shift.id.asc()).all()


def shift_summary(
    station_id: int,
    start: date,
    end: date,
    *,
    employee_id: int | None = None,
) -> list[dict]:
    """Per-employee totals over CLOSED shifts with shift_date in [start, end]."""
    query = (
        db.session.query(
            Shift.employee_id,
            User.name,
            func.count(Shift.id),
            func.sum(Shift.total_litres_sold),
            func.sum(Shift.total_sales_cents),
            func.sum(Shift.expected_cash_cents),
            func.sum(Shift.actual_cash_cents),
            func.sum(Shift.cash_difference_cents),
        )
        .join(User, User.id == Shift.employee_id)
        .filter(
            Shift.station_id == station_id,
            Shift.status == STATUS_CLOSED,
            Shift.shift_date >= start,
            Shift.shift_date <= end,
        )
    )
    if employee_id is not None:
        query = query.filter(Shift.employee_id == employee_id)

    rows = query.group_by(Shift.employee_id, User.name).order_by(Shift.employee_id.asc()).all()
    return [
        {
            "employee_id": emp_id,
            "employee_name": name,
            "shift_count": int(count or 0),
            "total_litres": str(litres or 0),
            "total_sales_cents": int(sales or 0),
            "expected_cash_cents": int(expected or 0),
            "actual_cash_cents": int(actual or 0),
            "total_difference_cents": int(difference or 0),
        }
        for emp_id, name, count, litres, sales, expected, actual, difference in rows
    ]


def shift_discrepancies(
    station_id: int,
    *,
    threshold_cents: int = DEFAULT_DISCREPANCY_THRESHOLD_CENTS,
) -> list[Shift]:
    """Most recent CLOSED shifts whose |cash difference| exceeds the threshold."""
    if threshold_cents < 0:
        raise ValidationError("threshold cannot be negative", field="threshold")
    return (
        db.session.query(Shift)
        .filter(
            Shift.station_id == station_id,
            Shift.status == STATUS_CLOSED,
            (Shift.cash_difference_cents > threshold_cents) | (Shift.cash_difference_cents < -threshold_cents),
        )
        .order_by(Shift.shift_date.desc(), Shift.id.desc())
        .limit(DISCREPANCY_LIMIT)
        .all()
    )
