# Overview: Handover Reconciler persistence; create, confirm, dispute and resolve cash handovers.

"""
Cash Handover Service

WHY: Every time physical cash changes custody (employee -> manager ->
owner -> bank) the receiver counts it. Exact matches confirm; anything else
becomes a dispute that only a party with settlement authority can resolve,
so discrepancies are never silently absorbed.

CONCURRENCY: confirm/resolve lock the handover row and rely on its
version_id. Of two concurrent confirmations exactly one commits; the other
is retried, re-reads the handover and fails with AlreadyConfirmed or
AlreadyDisputed.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..domain.handovers import (
    HANDOVER_TYPES,
    PREVIOUS_STEP,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    STATUS_RESOLVED,
    ConfirmedHandover,
    DisputedHandover,
    PendingHandover,
    ResolvedHandover,
    handover_from_record,
    record_fields,
    settled_amount_cents,
)
from ..domain.money import format_money
from ..domain.settlement import HandoverFact, cash_flow_by_type
from ..errors import (
    AlreadyConfirmed,
    AlreadyDisputed,
    HandoverNotDisputed,
    HandoverSequenceError,
    NotFound,
)
from ..extensions import db
from ..models import CashHandover, Shift, Station
from ..policy import SettlementPolicy, current_policy
from ..time_utils import today, utcnow
from ..validation import ValidationError
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .station_service import get_station, get_user

logger = logging.getLogger(__name__)

SEQUENCE_ERRORS = {
    "employee_to_manager": "No confirmed shift_collection found for this employee",
    "manager_to_owner": "No confirmed employee_to_manager found for this station",
    "deposit_to_bank": "No confirmed manager_to_owner found for this station",
}


def get_handover(handover_id: int) -> CashHandover:
    handover = db.session.get(CashHandover, handover_id)
    if not handover:
        raise NotFound("Handover not found", handover_id=handover_id)
    return handover


def handover_fact(handover: CashHandover) -> HandoverFact:
    return HandoverFact(
        handover_id=handover.id,
        handover_date=handover.handover_date,
        handover_type=handover.handover_type,
        status=handover.status,
        expected_amount_cents=handover.expected_amount_cents,
        actual_amount_cents=handover.actual_amount_cents,
        difference_cents=handover.difference_cents,
    )


def validate_sequence(handover_type: str, from_user_id: int, station_id: int) -> None:
    """
    Cash moves shift -> employee -> manager -> owner -> bank.

    Each step needs a settled (CONFIRMED or RESOLVED) handover of the
    previous step; employee_to_manager additionally needs it from the same
    employee.
    """
    required = PREVIOUS_STEP.get(handover_type)
    if required is None:
        return

    query = db.session.query(CashHandover.id).filter(
        CashHandover.station_id == station_id,
        CashHandover.handover_type == required,
        CashHandover.status.in_((STATUS_CONFIRMED, STATUS_RESOLVED)),
    )
    if handover_type == "employee_to_manager":
        query = query.filter(CashHandover.from_user_id == from_user_id)

    if query.first() is None:
        raise HandoverSequenceError(
            SEQUENCE_ERRORS[handover_type],
            handover_type=handover_type,
            required_type=required,
            from_user_id=from_user_id,
            station_id=station_id,
        )


def _seed_from_previous(previous_handover_id: int, station_id: int) -> int:
    previous = get_handover(previous_handover_id)
    if previous.station_id != station_id:
        raise ValidationError(
            "Previous handover belongs to a different station",
            previous_handover_id=previous_handover_id,
        )
    amount = settled_amount_cents(handover_from_record(previous))
    if amount is None:
        raise ValidationError(
            "Previous handover is not settled yet",
            previous_handover_id=previous_handover_id,
            status=previous.status,
        )
    return amount


def _insert_handover(
    *,
    station_id: int,
    handover_type: str,
    from_user_id: int,
    to_user_id: Optional[int],
    expected_amount_cents: Optional[int],
    handover_date: Optional[date],
    previous_handover_id: Optional[int] = None,
    shift_id: Optional[int] = None,
    notes: Optional[str] = None,
    bank_name: Optional[str] = None,
    deposit_reference: Optional[str] = None,
    created_by_user_id: Optional[int] = None,
    policy: SettlementPolicy,
) -> CashHandover:
    """Validate and add a PENDING handover inside the caller's unit of work."""
    if handover_type not in HANDOVER_TYPES:
        raise ValidationError(f"handoverType must be one of {list(HANDOVER_TYPES)}", field="handoverType")

    get_station(station_id)
    get_user(from_user_id)
    if to_user_id is not None:
        get_user(to_user_id)

    if expected_amount_cents is None:
        if previous_handover_id is None:
            raise ValidationError(
                "expectedAmount or previousHandoverId is required",
                field="expectedAmount",
            )
        expected_amount_cents = _seed_from_previous(previous_handover_id, station_id)
    elif previous_handover_id is not None:
        _seed_from_previous(previous_handover_id, station_id)

    if policy.enforce_handover_sequence:
        validate_sequence(handover_type, from_user_id, station_id)

    state = PendingHandover(
        id=None,
        station_id=station_id,
        handover_type=handover_type,
        handover_date=handover_date or today(),
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        expected_amount_cents=expected_amount_cents,
        shift_id=shift_id,
        previous_handover_id=previous_handover_id,
        notes=notes,
    )

    handover = CashHandover(
        station_id=state.station_id,
        handover_type=state.handover_type,
        handover_date=state.handover_date,
        from_user_id=state.from_user_id,
        to_user_id=state.to_user_id,
        expected_amount_cents=state.expected_amount_cents,
        shift_id=state.shift_id,
        previous_handover_id=state.previous_handover_id,
        bank_name=bank_name,
        deposit_reference=deposit_reference,
        created_by_user_id=created_by_user_id,
    )
    for column, value in record_fields(state).items():
        setattr(handover, column, value)
    db.session.add(handover)
    db.session.flush()

    append_audit_event(
        station_id=station_id,
        event_type="handover.created",
        event_category="handover",
        entity_type="cash_handover",
        entity_id=handover.id,
        actor_user_id=created_by_user_id or from_user_id,
        note=f"{handover_type} of {format_money(expected_amount_cents)} expected",
        payload={
            "from_user_id": from_user_id,
            "to_user_id": to_user_id,
            "expected_amount_cents": expected_amount_cents,
            "shift_id": shift_id,
            "previous_handover_id": previous_handover_id,
        },
    )
    return handover


def create_handover(
    *,
    station_id: int,
    handover_type: str,
    from_user_id: int,
    to_user_id: int | None,
    expected_amount_cents: int | None = None,
    previous_handover_id: int | None = None,
    handover_date: date | None = None,
    notes: str | None = None,
    created_by_user_id: int | None = None,
    policy: SettlementPolicy | None = None,
) -> CashHandover:
    """
    Create a PENDING handover.

    expected_amount_cents may be omitted when previous_handover_id names a
    settled handover; its actual amount is carried forward.

    Raises:
        ValidationError, NotFound, HandoverSequenceError
    """
    policy = policy or current_policy()

    def _op() -> CashHandover:
        handover = _insert_handover(
            station_id=station_id,
            handover_type=handover_type,
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            expected_amount_cents=expected_amount_cents,
            handover_date=handover_date,
            previous_handover_id=previous_handover_id,
            notes=notes,
            created_by_user_id=created_by_user_id,
            policy=policy,
        )
        db.session.commit()
        return handover

    return run_with_retry(_op)


def create_from_shift(
    shift: Shift,
    *,
    policy: SettlementPolicy,
    created_by_user_id: int | None = None,
) -> CashHandover | None:
    """
    Seed the shift_collection handover for a just-closed shift.

    The receiver is the station manager. The expected amount is the shift's
    expected cash, or the counted cash when nothing was expected. Nothing is
    created when the station has no manager, the manager closed their own
    shift, or there is neither expected nor counted cash.
    Runs inside the caller's unit of work.
    """
    station = db.session.get(Station, shift.station_id)
    manager_id = station.manager_user_id if station else None
    if manager_id is None or manager_id == shift.employee_id:
        return None

    expected = shift.expected_cash_cents or 0
    counted = shift.actual_cash_cents or 0
    if expected <= 0 and counted <= 0:
        return None

    return _insert_handover(
        station_id=shift.station_id,
        handover_type="shift_collection",
        from_user_id=shift.employee_id,
        to_user_id=manager_id,
        expected_amount_cents=expected if expected > 0 else counted,
        handover_date=shift.shift_date,
        shift_id=shift.id,
        created_by_user_id=created_by_user_id,
        policy=policy,
    )


def _lock_handover(handover_id: int) -> CashHandover:
    handover = lock_for_update(db.session.query(CashHandover).filter(CashHandover.id == handover_id)).first()
    if handover is None:
        raise NotFound("Handover not found", handover_id=handover_id)
    return handover


def _reject_settled(state) -> None:
    if isinstance(state, ConfirmedHandover):
        raise AlreadyConfirmed("Handover is already confirmed", handover_id=state.id)
    if isinstance(state, (DisputedHandover, ResolvedHandover)):
        raise AlreadyDisputed(
            f"Handover is already {state.status.lower()}",
            handover_id=state.id,
            status=state.status,
        )


def confirm_handover(
    handover_id: int,
    *,
    confirmed_by_user_id: int | None,
    actual_amount_cents: int | None = None,
    accept_as_is: bool = False,
    notes: str | None = None,
) -> CashHandover:
    """
    Count the cash: exact match -> CONFIRMED, any difference -> DISPUTED.

    accept_as_is sets the actual amount to the expected amount.

    Raises:
        AlreadyConfirmed / AlreadyDisputed: the handover is no longer PENDING
        ValidationError: neither an amount nor accept_as_is
    """
    def _op() -> CashHandover:
        handover = _lock_handover(handover_id)
        state = handover_from_record(handover)
        _reject_settled(state)

        counted = state.confirm(
            confirmed_at=utcnow(),
            confirmed_by_user_id=confirmed_by_user_id,
            actual_amount_cents=actual_amount_cents,
            accept_as_is=accept_as_is,
            notes=notes,
        )
        for column, value in record_fields(counted).items():
            setattr(handover, column, value)
        db.session.flush()

        disputed = isinstance(counted, DisputedHandover)
        append_audit_event(
            station_id=handover.station_id,
            event_type="handover.disputed" if disputed else "handover.confirmed",
            event_category="handover",
            entity_type="cash_handover",
            entity_id=handover.id,
            actor_user_id=confirmed_by_user_id,
            occurred_at=counted.confirmed_at,
            note=counted.dispute_notes if disputed else "Handover confirmed",
            payload={
                "expected_amount_cents": counted.expected_amount_cents,
                "actual_amount_cents": counted.actual_amount_cents,
                "difference_cents": counted.difference_cents,
                "accept_as_is": accept_as_is,
            },
        )
        db.session.commit()
        return handover

    handover = run_with_retry(_op)
    if handover.status != STATUS_CONFIRMED:
        logger.warning(
            "Handover %s disputed: expected %s, counted %s",
            handover.id, handover.expected_amount_cents, handover.actual_amount_cents,
        )
    return handover


def resolve_handover(
    handover_id: int,
    *,
    resolution_notes: str,
    resolved_by_user_id: int | None,
) -> CashHandover:
    """
    DISPUTED -> RESOLVED. Who may resolve is decided by the caller.

    Raises:
        HandoverNotDisputed: any other status (RESOLVED cannot be reopened)
    """
    def _op() -> CashHandover:
        handover = _lock_handover(handover_id)
        state = handover_from_record(handover)
        if not isinstance(state, DisputedHandover):
            raise HandoverNotDisputed(
                f"Only disputed handovers can be resolved (status {handover.status})",
                handover_id=handover.id,
                status=handover.status,
            )

        resolved = state.resolve(
            resolution_notes=resolution_notes,
            resolved_at=utcnow(),
            resolved_by_user_id=resolved_by_user_id,
        )
        for column, value in record_fields(resolved).items():
            setattr(handover, column, value)
        db.session.flush()

        append_audit_event(
            station_id=handover.station_id,
            event_type="handover.resolved",
            event_category="handover",
            entity_type="cash_handover",
            entity_id=handover.id,
            actor_user_id=resolved_by_user_id,
            occurred_at=resolved.resolved_at,
            note=resolved.resolution_notes,
            payload={"difference_cents": resolved.difference_cents},
        )
        db.session.commit()
        return handover

    return run_with_retry(_op)


def record_bank_deposit(
    *,
    station_id: int,
    from_user_id: int,
    amount_cents: int,
    bank_name: str | None = None,
    deposit_reference: str | None = None,
    deposit_date: date | None = None,
    previous_handover_id: int | None = None,
    notes: str | None = None,
    policy: SettlementPolicy | None = None,
) -> CashHandover:
    """Create a deposit_to_bank handover and confirm it as deposited, in one unit."""
    policy = policy or current_policy()
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("amount must be positive", field="amount")

    def _op() -> CashHandover:
        handover = _insert_handover(
            station_id=station_id,
            handover_type="deposit_to_bank",
            from_user_id=from_user_id,
            to_user_id=None,
            expected_amount_cents=amount_cents,
            handover_date=deposit_date,
            previous_handover_id=previous_handover_id,
            notes=notes,
            bank_name=bank_name,
            deposit_reference=deposit_reference,
            created_by_user_id=from_user_id,
            policy=policy,
        )
        counted = handover_from_record(handover).confirm(
            confirmed_at=utcnow(),
            confirmed_by_user_id=from_user_id,
            accept_as_is=True,
        )
        for column, value in record_fields(counted).items():
            setattr(handover, column, value)
        db.session.flush()

        append_audit_event(
            station_id=station_id,
            event_type="handover.confirmed",
            event_category="handover",
            entity_type="cash_handover",
            entity_id=handover.id,
            actor_user_id=from_user_id,
            occurred_at=counted.confirmed_at,
            note=f"Bank deposit {deposit_reference or ''}".strip(),
            payload={"amount_cents": amount_cents, "bank_name": bank_name},
        )
        db.session.commit()
        return handover

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def pending_for_user(user_id: int, *, station_id: int | None = None) -> list[CashHandover]:
    query = db.session.query(CashHandover).filter(
        CashHandover.to_user_id == user_id,
        CashHandover.status == STATUS_PENDING,
    )
    if station_id is not None:
        query = query.filter(CashHandover.station_id == station_id)
    return query.order_by(CashHandover.handover_date.desc(), CashHandover.id.desc()).all()


def list_handovers(
    station_id: int,
    start: date,
    end: date,
    *,
    status: str | None = None,
) -> list[CashHandover]:
    query = db.session.query(CashHandover).filter(
        CashHandover.station_id == station_id,
        CashHandover.handover_date >= start,
        CashHandover.handover_date <= end,
    )
    if status:
        query = query.filter(CashHandover.status == status.upper())
    return query.order_by(CashHandover.handover_date.asc(), CashHandover.id.asc()).all()


def unconfirmed_for_station(station_id: int, start: date, end: date) -> list[CashHandover]:
    return list_handovers(station_id, start, end, status=STATUS_PENDING)


def cash_flow_summary(station_id: int, start: date, end: date) -> dict:
    handovers = list_handovers(station_id, start, end)
    flow = cash_flow_by_type(handover_fact(h) for h in handovers)
    return {
        "station_id": station_id,
        "start": start.isoformat(),
        "end": end.isoformat(),
        "by_type": flow,
        "pending_count": sum(v["pending"] for v in flow.values()),
        "disputed_count": sum(v["disputed"] for v in flow.values()),
    }
