# Overview: Payment Allocator posting; turns settled readings into an immutable transaction.

"""
Daily Transaction Service

Posts one transaction for a batch of readings. Everything below commits
together or not at all:

- the DailyTransaction row and its CreditAllocation rows
- one CREDIT ledger entry per allocation (creditor rows locked, id order)
- the one-time transaction link on each reading
- the posting to the employee's ACTIVE shift at the station, if any
- audit events

Hard failures (BreakdownMismatch, UnallocatedCredit, CreditLimitExceeded,
CreditorFlagged, ReadingAlreadySettled, ValidationError, NotFound) are
raised before commit and leave nothing behind. Credit-limit warnings are
returned with the result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from ..domain.allocation import (
    CreditAllocationRequest,
    PaymentBreakdown,
    credit_limit_warnings,
    validate_breakdown,
)
from ..domain.money import LITRE_QUANTUM, format_money
from ..domain.shifts import ShiftPosting
from ..errors import CreditLimitExceeded, CreditLimitWarning, NotFound, ReadingAlreadySettled
from ..extensions import db
from ..models import CreditAllocation, DailyTransaction, NozzleReading
from ..models.credit import ENTRY_CREDIT
from ..policy import SettlementPolicy, current_policy
from ..validation import ValidationError
from . import credit_service, shift_service
from .audit_service import append_audit_event
from .concurrency import run_with_retry
from .station_service import get_station

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostedTransaction:
    transaction: DailyTransaction
    warnings: list[CreditLimitWarning] = field(default_factory=list)
    shift_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "transaction": self.transaction.to_dict(include_readings=True),
            "shift_id": self.shift_id,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _load_readings(reading_ids: list[int], station_id: int, transaction_date: date) -> list[NozzleReading]:
    readings = (
        db.session.query(NozzleReading)
        .filter(NozzleReading.id.in_(reading_ids))
        .order_by(NozzleReading.id.asc())
        .all()
    )
    found = {r.id for r in readings}
    missing = [rid for rid in reading_ids if rid not in found]
    if missing:
        raise NotFound("Reading not found", reading_ids=missing)

    for reading in readings:
        if reading.station_id != station_id:
            raise ValidationError(
                "Reading belongs to a different station",
                reading_id=reading.id,
                station_id=station_id,
            )
        if reading.reading_date != transaction_date:
            raise ValidationError(
                "Reading date does not match the transaction date",
                reading_id=reading.id,
                reading_date=reading.reading_date.isoformat(),
                transaction_date=transaction_date.isoformat(),
            )
        if reading.transaction_id is not None:
            raise ReadingAlreadySettled(
                "Reading is already settled by another transaction",
                reading_id=reading.id,
                transaction_id=reading.transaction_id,
            )
    return readings


def _claim_readings(reading_ids: list[int], transaction_id: int) -> None:
    """
    Link readings to the transaction, only where still unlinked.

    The conditional UPDATE is what stops two concurrent transactions from
    settling the same reading.
    """
    claimed = (
        db.session.query(NozzleReading)
        .filter(NozzleReading.id.in_(reading_ids), NozzleReading.transaction_id.is_(None))
        .update({NozzleReading.transaction_id: transaction_id}, synchronize_session=False)
    )
    if claimed != len(reading_ids):
        raise ReadingAlreadySettled(
            "Reading was settled by a concurrent transaction",
            reading_ids=reading_ids,
        )


def create_transaction(
    *,
    station_id: int,
    transaction_date: date,
    reading_ids: Iterable[int],
    breakdown: PaymentBreakdown,
    allocations: Iterable[CreditAllocationRequest] = (),
    created_by_user_id: int | None = None,
    notes: str | None = None,
    enforce_credit_limit: bool | None = None,
    policy: SettlementPolicy | None = None,
) -> PostedTransaction:
    """
    Validate and post a transaction.

    Args:
        enforce_credit_limit: True turns credit-limit warnings into
            CreditLimitExceeded for this call; None follows CREDIT_LIMIT_POLICY.
    """
    policy = policy or current_policy()
    reading_ids = list(reading_ids)
    allocations = list(allocations)
    if not reading_ids:
        raise ValidationError("readingIds must not be empty", field="readingIds")
    if len(set(reading_ids)) != len(reading_ids):
        raise ValidationError("readingIds contains duplicates", field="readingIds")

    block_on_limit = policy.blocks_on_credit_limit if enforce_credit_limit is None else enforce_credit_limit

    def _op() -> PostedTransaction:
        get_station(station_id)
        readings = _load_readings(reading_ids, station_id, transaction_date)

        sale_value_cents = sum(r.sale_value_cents for r in readings)
        total_litres = sum((Decimal(r.litres_sold) for r in readings), Decimal("0")).quantize(LITRE_QUANTUM)

        validate_breakdown(
            sale_value_cents,
            breakdown,
            allocations,
            tolerance_cents=policy.tolerance_cents,
        )

        creditors = credit_service.lock_creditors(
            (a.creditor_id for a in allocations),
            station_id=station_id,
        )
        warnings = credit_limit_warnings(credit_service.positions(creditors), allocations)
        if warnings and block_on_limit:
            raise CreditLimitExceeded(
                "Credit allocation would exceed the creditor's limit",
                creditors=[w.to_dict() for w in warnings],
            )

        txn = DailyTransaction(
            station_id=station_id,
            transaction_date=transaction_date,
            readings_count=len(readings),
            total_litres=total_litres,
            sale_value_cents=sale_value_cents,
            cash_cents=breakdown.cash_cents,
            online_cents=breakdown.online_cents,
            credit_cents=breakdown.credit_cents,
            created_by_user_id=created_by_user_id,
            notes=notes,
        )
        db.session.add(txn)
        db.session.flush()

        for request in allocations:
            allocation = CreditAllocation(
                transaction_id=txn.id,
                creditor_id=request.creditor_id,
                amount_cents=request.amount_cents,
            )
            db.session.add(allocation)
            db.session.flush()
            credit_service.append_entry(
                creditors[request.creditor_id],
                entry_type=ENTRY_CREDIT,
                amount_cents=request.amount_cents,
                cause_type="credit_allocation",
                cause_id=allocation.id,
                entry_date=transaction_date,
                entered_by_user_id=created_by_user_id,
                reference=f"TXN-{txn.id}",
            )

        _claim_readings(reading_ids, txn.id)

        shift = None
        if created_by_user_id is not None:
            shift = shift_service.post_to_active_shift(
                employee_id=created_by_user_id,
                station_id=station_id,
                posting=ShiftPosting(
                    transaction_id=txn.id,
                    readings_count=len(readings),
                    litres_sold=total_litres,
                    sale_value_cents=sale_value_cents,
                    online_cents=breakdown.online_cents,
                    credit_cents=breakdown.credit_cents,
                ),
            )
            if shift is not None:
                txn.shift_id = shift.id

        append_audit_event(
            station_id=station_id,
            event_type="transaction.posted",
            event_category="transaction",
            entity_type="daily_transaction",
            entity_id=txn.id,
            actor_user_id=created_by_user_id,
            note=f"Transaction of {format_money(sale_value_cents)} over {len(readings)} reading(s)",
            payload={
                "reading_ids": reading_ids,
                "breakdown": breakdown.to_dict(),
                "allocations": [
                    {"creditor_id": a.creditor_id, "amount_cents": a.amount_cents} for a in allocations
                ],
                "shift_id": shift.id if shift is not None else None,
            },
        )
        for warning in warnings:
            append_audit_event(
                station_id=station_id,
                event_type="credit.limit_exceeded",
                event_category="credit",
                entity_type="creditor",
                entity_id=warning.creditor_id,
                actor_user_id=created_by_user_id,
                note=f"{warning.creditor_name} over limit by {format_money(warning.excess_cents)}",
                payload=warning.to_dict(),
            )

        db.session.commit()
        return PostedTransaction(
            transaction=txn,
            warnings=warnings,
            shift_id=shift.id if shift is not None else None,
        )

    posted = run_with_retry(_op)
    for warning in posted.warnings:
        logger.warning(
            "Creditor %s (%s) over credit limit: outstanding %s > limit %s",
            warning.creditor_id,
            warning.creditor_name,
            warning.outstanding_after_cents,
            warning.credit_limit_cents,
        )
    return posted


def get_transaction(transaction_id: int) -> DailyTransaction:
    txn = db.session.get(DailyTransaction, transaction_id)
    if not txn:
        raise NotFound("Transaction not found", transaction_id=transaction_id)
    return txn


def list_transactions(
    station_id: int,
    *,
    start: date | None = None,
    end: date | None = None,
    limit: int = 500,
) -> list[DailyTransaction]:
    query = db.session.query(DailyTransaction).filter(DailyTransaction.station_id == station_id)
    if start is not None:
        query = query.filter(DailyTransaction.transaction_date >= start)
    if end is not None:
        query = query.filter(DailyTransaction.transaction_date <= end)
    return (
        query.order_by(DailyTransaction.transaction_date.asc(), DailyTransaction.id.asc())
        .limit(limit)
        .all()
    )
