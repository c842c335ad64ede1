# Overview: Owner-confirmed daily settlement; records the day close against employee-reported totals.

"""
Daily Settlement Service

WHY: Employees report cash/online/credit per transaction. At day end the
owner counts what actually arrived on each channel. The settlement keeps
both figures side by side so a variance is recorded, never overwritten.

A day can be settled more than once (recounts, late transactions). Only
the latest final settlement counts: finalising un-finalises the previous
final record for the same station and date inside the same unit of work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby

from sqlalchemy.exc import IntegrityError

from ..domain.settlement import (
    VARIANCE_OK,
    ChannelAmounts,
    PaymentFact,
    channel_variances,
    reported_channels,
)
from ..errors import ConcurrencyConflict
from ..extensions import db
from ..models import DailySettlement, DailyTransaction
from ..policy import SettlementPolicy, current_policy
from ..time_utils import utcnow
from ..validation import ValidationError
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .station_service import get_station

logger = logging.getLogger(__name__)


@dataclass
class DailySettlementResult:
    settlement: DailySettlement
    channels: dict
    warnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "settlement": self.settlement.to_dict(),
            "channels": self.channels,
            "warnings": self.warnings,
        }


def _day_payments(station_id: int, settlement_date: date) -> list[PaymentFact]:
    rows = (
        db.session.query(DailyTransaction)
        .filter(
            DailyTransaction.station_id == station_id,
            DailyTransaction.transaction_date == settlement_date,
        )
        .order_by(DailyTransaction.id.asc())
        .all()
    )
    return [
        PaymentFact(
            transaction_date=t.transaction_date,
            cash_cents=t.cash_cents,
            online_cents=t.online_cents,
            credit_cents=t.credit_cents,
        )
        for t in rows
    ]


def _unfinalize_previous(station_id: int, settlement_date: date) -> list[int]:
    previous = lock_for_update(
        db.session.query(DailySettlement).filter(
            DailySettlement.station_id == station_id,
            DailySettlement.settlement_date == settlement_date,
            DailySettlement.is_final.is_(True),
        )
    ).all()
    for row in previous:
        row.is_final = False
        row.final_station_id = None
        row.finalized_at = None
    db.session.flush()
    return [row.id for row in previous]


def record_daily_settlement(
    station_id: int,
    settlement_date: date,
    *,
    actual_cash_cents: int,
    actual_online_cents: int = 0,
    actual_credit_cents: int = 0,
    is_final: bool = False,
    notes: str | None = None,
    recorded_by_user_id: int | None = None,
    policy: SettlementPolicy | None = None,
) -> DailySettlementResult:
    """
    Record the owner's confirmed channel totals for one station day.

    Reported totals are summed from the day's committed transactions at the
    time of recording. Channels whose variance falls outside the OK band
    come back as warnings; they never block the record.

    Raises:
        ValidationError: negative or missing amounts
        NotFound: unknown station
        ConcurrencyConflict: another final settlement for the day won a race
    """
    for name, value in (
        ("actualCash", actual_cash_cents),
        ("online", actual_online_cents),
        ("credit", actual_credit_cents),
    ):
        if value is None:
            raise ValidationError(f"{name} is required", field=name)
        if value < 0:
            raise ValidationError(f"{name} cannot be negative", field=name)

    policy = policy or current_policy()
    get_station(station_id)
    confirmed = ChannelAmounts(
        cash_cents=actual_cash_cents,
        online_cents=actual_online_cents,
        credit_cents=actual_credit_cents,
    )

    def _op() -> DailySettlementResult:
        payments = _day_payments(station_id, settlement_date)
        reported = reported_channels(payments)
        channels = channel_variances(reported, confirmed, policy.variance)

        replaced = _unfinalize_previous(station_id, settlement_date) if is_final else []

        settlement = DailySettlement(
            station_id=station_id,
            settlement_date=settlement_date,
            final_station_id=station_id if is_final else None,
            transactions_count=len(payments),
            reported_cash_cents=reported.cash_cents,
            reported_online_cents=reported.online_cents,
            reported_credit_cents=reported.credit_cents,
            actual_cash_cents=confirmed.cash_cents,
            actual_online_cents=confirmed.online_cents,
            actual_credit_cents=confirmed.credit_cents,
            cash_variance_cents=channels["cash"]["variance_cents"],
            online_variance_cents=channels["online"]["variance_cents"],
            credit_variance_cents=channels["credit"]["variance_cents"],
            is_final=is_final,
            finalized_at=utcnow() if is_final else None,
            notes=notes,
            recorded_by_user_id=recorded_by_user_id,
        )
        db.session.add(settlement)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise ConcurrencyConflict(
                "Another final settlement was recorded for this date; please retry",
                station_id=station_id,
                settlement_date=settlement_date.isoformat(),
            ) from exc

        append_audit_event(
            station_id=station_id,
            event_type="settlement.finalized" if is_final else "settlement.recorded",
            event_category="settlement",
            entity_type="daily_settlement",
            entity_id=settlement.id,
            actor_user_id=recorded_by_user_id,
            note=f"Settlement for {settlement_date.isoformat()} recorded",
            payload={
                "channels": channels,
                "transactions_count": len(payments),
                "replaced_final_ids": replaced,
            },
        )
        db.session.commit()

        warnings = [
            {"channel": channel, **row}
            for channel, row in channels.items()
            if row["variance_status"] != VARIANCE_OK
        ]
        return DailySettlementResult(settlement=settlement, channels=channels, warnings=warnings)

    result = run_with_retry(_op)
    for warning in result.warnings:
        logger.warning(
            "Station %s settlement %s: %s variance %s cents (%s%%, %s)",
            station_id,
            settlement_date,
            warning["channel"],
            warning["variance_cents"],
            warning["variance_percent"],
            warning["variance_status"],
        )
    return result


def list_daily_settlements(
    station_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
) -> list[dict]:
    """
    Settlements grouped per date, newest date first.

    Each group names its main record (the final one if any, else the latest
    attempt) and carries every attempt in recording order.
    """
    get_station(station_id)
    query = db.session.query(DailySettlement).filter(DailySettlement.station_id == station_id)
    if start is not None:
        query = query.filter(DailySettlement.settlement_date >= start)
    if end is not None:
        query = query.filter(DailySettlement.settlement_date <= end)
    rows = query.order_by(DailySettlement.settlement_date.desc(), DailySettlement.id.asc()).all()

    days = []
    for settlement_date, group in groupby(rows, key=lambda row: row.settlement_date):
        attempts = list(group)
        final = next((row for row in reversed(attempts) if row.is_final), None)
        main = final or attempts[-1]
        days.append({
            "settlement_date": settlement_date.isoformat(),
            "attempts": len(attempts),
            "final_id": final.id if final else None,
            "settlement": main.to_dict(),
            "records": [row.to_dict() for row in attempts],
        })
    return days
