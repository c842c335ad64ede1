"""
Settlement Aggregator.

Rolls one station's committed facts for a date range into a SettlementSummary:
per-day cash variance with classification, payment verification, income
statement, receivables aging, creditor settlements and cash flow by handover
type. It also lists creditors past their credit period and compares an
owner-confirmed day close with the employee-reported channel totals.

Everything here is a pure function of its inputs. No wall-clock value is read
(the aging reference date is an explicit ``as_of``) and every collection is
emitted in a fixed order, so the same facts always produce the same summary.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from fuelsync.domain.handovers import (
    HANDOVER_TYPES,
    STATUS_CONFIRMED,
    STATUS_DISPUTED,
    STATUS_PENDING,
    STATUS_RESOLVED,
)
from fuelsync.domain.money import LITRE_QUANTUM
from fuelsync.policy import AgingThresholds, SettlementPolicy, VarianceThresholds

VARIANCE_OK = "OK"
VARIANCE_REVIEW = "REVIEW"
VARIANCE_INVESTIGATE = "INVESTIGATE"

BUCKET_CURRENT = "Current"
BUCKET_OVERDUE = "Overdue"
BUCKET_OVER_30 = "Over30Days"
BUCKET_OVER_60 = "Over60Days"

ENTRY_CREDIT = "CREDIT"
ENTRY_SETTLEMENT = "SETTLEMENT"


# =============================================================================
# INPUT FACTS
# =============================================================================

@dataclass(frozen=True)
class ShiftCashFact:
    shift_id: int
    shift_date: date
    employee_id: int
    expected_cash_cents: int
    actual_cash_cents: int


@dataclass(frozen=True)
class HandoverFact:
    handover_id: int
    handover_date: date
    handover_type: str
    status: str
    expected_amount_cents: int
    actual_amount_cents: Optional[int]
    difference_cents: Optional[int]


@dataclass(frozen=True)
class ReadingFact:
    reading_date: date
    fuel_type: str
    litres_sold: Decimal
    sale_value_cents: int


@dataclass(frozen=True)
class PaymentFact:
    transaction_date: date
    cash_cents: int
    online_cents: int
    credit_cents: int


@dataclass(frozen=True)
class CreditEntryFact:
    entry_id: int
    creditor_id: int
    entry_type: str
    delta_cents: int
    entry_date: date


@dataclass(frozen=True)
class CreditorFact:
    creditor_id: int
    name: str
    credit_limit_cents: int
    credit_period_days: Optional[int] = None


# =============================================================================
# VARIANCE
# =============================================================================

def variance_percent(variance_cents: int, expected_cents: int) -> float:
    """
    variance / expected x 100, rounded half-up to 2 decimals.

    With nothing expected, any variance counts as a full (+/-100%) deviation.
    """
    if expected_cents == 0:
        if variance_cents == 0:
            return 0.0
        return 100.0 if variance_cents > 0 else -100.0
    percent = (Decimal(variance_cents) * 100 / Decimal(expected_cents)).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    return float(percent)


def classify_variance(percent: float, thresholds: VarianceThresholds) -> str:
    magnitude = abs(percent)
    if magnitude <= thresholds.review_percent:
        return VARIANCE_OK
    if magnitude <= thresholds.investigate_percent:
        return VARIANCE_REVIEW
    return VARIANCE_INVESTIGATE


def date_range(start: date, end: date) -> list[date]:
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def daily_cash_rows(
    start: date,
    end: date,
    shifts: Iterable[ShiftCashFact],
    handovers: Iterable[HandoverFact],
    thresholds: VarianceThresholds,
) -> list[dict]:
    shifts_by_day = defaultdict(list)
    for shift in shifts:
        shifts_by_day[shift.shift_date].append(shift)

    handovers_by_day = defaultdict(list)
    for handover in handovers:
        handovers_by_day[handover.handover_date].append(handover)

    rows = []
    for day in date_range(start, end):
        day_shifts = shifts_by_day.get(day, [])
        expected = sum(s.expected_cash_cents for s in day_shifts)
        actual = sum(s.actual_cash_cents for s in day_shifts)
        variance = actual - expected
        percent = variance_percent(variance, expected)

        statuses = [h.status for h in handovers_by_day.get(day, [])]
        rows.append({
            "date": day.isoformat(),
            "shifts_closed": len(day_shifts),
            "expected_cash_cents": expected,
            "actual_cash_cents": actual,
            "variance_cents": variance,
            "variance_percent": percent,
            "variance_status": classify_variance(percent, thresholds),
            "handovers": {
                "confirmed": statuses.count(STATUS_CONFIRMED),
                "disputed": statuses.count(STATUS_DISPUTED),
                "resolved": statuses.count(STATUS_RESOLVED),
                "pending": statuses.count(STATUS_PENDING),
            },
        })
    return rows


def settlement_overview(rows: Sequence[dict]) -> dict:
    """Totals over the days that had at least one closed shift."""
    active = [r for r in rows if r["shifts_closed"]]
    total_variance = sum(r["variance_cents"] for r in active)
    if active:
        average = Decimal(sum(Decimal(str(r["variance_percent"])) for r in active)) / len(active)
        average_percent = float(average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    else:
        average_percent = 0.0
    return {
        "days_with_shifts": len(active),
        "shifts_closed": sum(r["shifts_closed"] for r in active),
        "total_expected_cash_cents": sum(r["expected_cash_cents"] for r in active),
        "total_actual_cash_cents": sum(r["actual_cash_cents"] for r in active),
        "total_variance_cents": total_variance,
        "total_absolute_variance_cents": sum(abs(r["variance_cents"]) for r in active),
        "average_variance_percent": average_percent,
        "status_counts": {
            status: sum(1 for r in active if r["variance_status"] == status)
            for status in (VARIANCE_OK, VARIANCE_REVIEW, VARIANCE_INVESTIGATE)
        },
    }


# =============================================================================
# SALES, VERIFICATION, INCOME
# =============================================================================

def summary_metrics(readings: Iterable[ReadingFact], payments: Sequence[PaymentFact]) -> dict:
    by_fuel: dict[str, dict] = {}
    total_litres = Decimal("0")
    total_value = 0
    count = 0
    for reading in readings:
        count += 1
        litres = Decimal(reading.litres_sold)
        total_litres += litres
        total_value += reading.sale_value_cents
        bucket = by_fuel.setdefault(
            reading.fuel_type, {"readings_count": 0, "litres": Decimal("0"), "sale_value_cents": 0}
        )
        bucket["readings_count"] += 1
        bucket["litres"] += litres
        bucket["sale_value_cents"] += reading.sale_value_cents

    return {
        "readings_count": count,
        "transactions_count": len(payments),
        "total_litres": str(total_litres.quantize(LITRE_QUANTUM)),
        "total_sale_value_cents": total_value,
        "fuel_breakdown": [
            {
                "fuel_type": fuel_type,
                "readings_count": data["readings_count"],
                "litres": str(data["litres"].quantize(LITRE_QUANTUM)),
                "sale_value_cents": data["sale_value_cents"],
            }
            for fuel_type, data in sorted(by_fuel.items())
        ],
    }


def income_breakdown(payments: Iterable[PaymentFact]) -> dict:
    cash = online = credit = 0
    for payment in payments:
        cash += payment.cash_cents
        online += payment.online_cents
        credit += payment.credit_cents
    return {
        "cash_received_cents": cash,
        "online_received_cents": online,
        "credit_pending_cents": credit,
        "total_received_cents": cash + online + credit,
    }


def verify_totals(breakdown: dict, calculated_sale_value_cents: int, tolerance_cents: int) -> dict:
    """A mismatch is reported as data (match=False), never raised."""
    accounted = (
        breakdown["cash_received_cents"]
        + breakdown["online_received_cents"]
        + breakdown["credit_pending_cents"]
    )
    difference = accounted - calculated_sale_value_cents
    return {
        "calculated_sale_value_cents": calculated_sale_value_cents,
        "cash_received_cents": breakdown["cash_received_cents"],
        "online_received_cents": breakdown["online_received_cents"],
        "credit_pending_cents": breakdown["credit_pending_cents"],
        "total_accounted_cents": accounted,
        "difference_cents": difference,
        "tolerance_cents": tolerance_cents,
        "match": abs(difference) <= tolerance_cents,
    }


def income_statement(total_sales_generated_cents: int, credit_pending_cents: int, rows: Sequence[dict]) -> dict:
    # shortages and unexplained excess both reduce recognised income
    cash_variance_abs = sum(abs(r["variance_cents"]) for r in rows)
    return {
        "total_sales_generated_cents": total_sales_generated_cents,
        "credit_pending_cents": credit_pending_cents,
        "cash_variance_abs_cents": cash_variance_abs,
        "net_cash_income_cents": total_sales_generated_cents - credit_pending_cents - cash_variance_abs,
    }


# =============================================================================
# RECEIVABLES
# =============================================================================

def outstanding_cents(entries: Iterable[CreditEntryFact]) -> int:
    return sum(e.delta_cents for e in entries)


def oldest_unsettled_credit_date(entries: Iterable[CreditEntryFact]) -> Optional[date]:
    """
    Date of the oldest credit not yet covered by settlements.

    Settlements pay off credits oldest-first regardless of when they were
    received.
    """
    entries = list(entries)
    settled = -sum(e.delta_cents for e in entries if e.entry_type == ENTRY_SETTLEMENT)
    credits = sorted(
        (e for e in entries if e.entry_type == ENTRY_CREDIT),
        key=lambda e: (e.entry_date, e.entry_id),
    )
    for credit in credits:
        if settled >= credit.delta_cents:
            settled -= credit.delta_cents
            continue
        return credit.entry_date
    return None


def credit_terms(
    oldest_unsettled: Optional[date], credit_period_days: int, as_of: date
) -> tuple[Optional[date], int]:
    """Due date of the oldest unsettled credit and the days past it (0 until due)."""
    if oldest_unsettled is None:
        return None, 0
    due = oldest_unsettled + timedelta(days=credit_period_days)
    return due, max((as_of - due).days, 0)


def aging_bucket(age_days: int, thresholds: AgingThresholds) -> str:
    if age_days <= thresholds.current_max_days:
        return BUCKET_CURRENT
    if age_days <= thresholds.overdue_max_days:
        return BUCKET_OVERDUE
    return BUCKET_OVER_60


def receivables_aging(
    creditors: Iterable[CreditorFact],
    entries: Iterable[CreditEntryFact],
    as_of: date,
    thresholds: AgingThresholds,
) -> dict:
    by_creditor = defaultdict(list)
    for entry in entries:
        if entry.entry_date <= as_of:
            by_creditor[entry.creditor_id].append(entry)

    buckets = {BUCKET_CURRENT: 0, BUCKET_OVERDUE: 0, BUCKET_OVER_60: 0}
    counts = {BUCKET_CURRENT: 0, BUCKET_OVERDUE: 0, BUCKET_OVER_60: 0}
    rows = []
    for creditor in sorted(creditors, key=lambda c: c.creditor_id):
        creditor_entries = by_creditor.get(creditor.creditor_id, [])
        balance = outstanding_cents(creditor_entries)
        if balance <= 0:
            continue
        oldest = oldest_unsettled_credit_date(creditor_entries)
        age_days = (as_of - oldest).days if oldest else 0
        bucket = aging_bucket(age_days, thresholds)
        # creditors without agreed terms get the current-bucket window
        period = (
            creditor.credit_period_days
            if creditor.credit_period_days is not None
            else thresholds.current_max_days
        )
        due, days_past_due = credit_terms(oldest, period, as_of)
        buckets[bucket] += balance
        counts[bucket] += 1
        rows.append({
            "creditor_id": creditor.creditor_id,
            "name": creditor.name,
            "outstanding_cents": balance,
            "credit_limit_cents": creditor.credit_limit_cents,
            "over_limit": bool(creditor.credit_limit_cents) and balance > creditor.credit_limit_cents,
            "oldest_unsettled_date": oldest.isoformat() if oldest else None,
            "age_days": age_days,
            "bucket": bucket,
            "credit_period_days": period,
            "due_date": due.isoformat() if due else None,
            "days_past_due": days_past_due,
        })

    return {
        "as_of": as_of.isoformat(),
        "total_outstanding_cents": sum(buckets.values()),
        "buckets": {
            BUCKET_CURRENT: buckets[BUCKET_CURRENT],
            BUCKET_OVERDUE: buckets[BUCKET_OVERDUE],
            BUCKET_OVER_30: buckets[BUCKET_OVERDUE] + buckets[BUCKET_OVER_60],
            BUCKET_OVER_60: buckets[BUCKET_OVER_60],
        },
        "creditor_counts": {
            BUCKET_CURRENT: counts[BUCKET_CURRENT],
            BUCKET_OVERDUE: counts[BUCKET_OVERDUE],
            BUCKET_OVER_30: counts[BUCKET_OVERDUE] + counts[BUCKET_OVER_60],
            BUCKET_OVER_60: counts[BUCKET_OVER_60],
        },
        "creditors": rows,
    }


def overdue_creditors(
    creditors: Iterable[CreditorFact],
    entries: Iterable[CreditEntryFact],
    as_of: date,
    thresholds: AgingThresholds,
) -> list[dict]:
    """
    Creditors whose oldest unsettled credit has outlived their credit period.

    Most overdue first; ties by creditor id.
    """
    rows = receivables_aging(creditors, entries, as_of, thresholds)["creditors"]
    overdue = [row for row in rows if row["days_past_due"] > 0]
    return sorted(overdue, key=lambda row: (-row["days_past_due"], row["creditor_id"]))


def creditor_settlements(
    creditors: Iterable[CreditorFact],
    entries: Iterable[CreditEntryFact],
    start: date,
    end: date,
) -> list[dict]:
    """Credit given and settlements received per creditor inside the period."""
    credited = defaultdict(int)
    settled = defaultdict(int)
    settlement_count = defaultdict(int)
    for entry in entries:
        if not (start <= entry.entry_date <= end):
            continue
        if entry.entry_type == ENTRY_CREDIT:
            credited[entry.creditor_id] += entry.delta_cents
        elif entry.entry_type == ENTRY_SETTLEMENT:
            settled[entry.creditor_id] += -entry.delta_cents
            settlement_count[entry.creditor_id] += 1

    rows = []
    for creditor in sorted(creditors, key=lambda c: c.creditor_id):
        cid = creditor.creditor_id
        if not credited[cid] and not settled[cid]:
            continue
        rows.append({
            "creditor_id": cid,
            "name": creditor.name,
            "credited_cents": credited[cid],
            "settled_cents": settled[cid],
            "settlements_count": settlement_count[cid],
            "net_change_cents": credited[cid] - settled[cid],
        })
    return rows


# =============================================================================
# OWNER SETTLEMENT
# =============================================================================

SETTLEMENT_CHANNELS = ("cash", "online", "credit")


@dataclass(frozen=True)
class ChannelAmounts:
    cash_cents: int
    online_cents: int
    credit_cents: int

    def get(self, channel: str) -> int:
        return getattr(self, f"{channel}_cents")


def reported_channels(payments: Iterable[PaymentFact]) -> ChannelAmounts:
    breakdown = income_breakdown(payments)
    return ChannelAmounts(
        cash_cents=breakdown["cash_received_cents"],
        online_cents=breakdown["online_received_cents"],
        credit_cents=breakdown["credit_pending_cents"],
    )


def channel_variances(
    reported: ChannelAmounts,
    confirmed: ChannelAmounts,
    thresholds: VarianceThresholds,
) -> dict:
    """
    Per-channel comparison of owner-confirmed against employee-reported totals.

    variance = confirmed - reported. A channel outside the OK band is
    reported, never rejected: the owner's figure is what gets recorded.
    """
    channels = {}
    for channel in SETTLEMENT_CHANNELS:
        reported_cents = reported.get(channel)
        confirmed_cents = confirmed.get(channel)
        variance = confirmed_cents - reported_cents
        percent = variance_percent(variance, reported_cents)
        channels[channel] = {
            "reported_cents": reported_cents,
            "confirmed_cents": confirmed_cents,
            "variance_cents": variance,
            "variance_percent": percent,
            "variance_status": classify_variance(percent, thresholds),
        }
    return channels


# =============================================================================
# CASH FLOW
# =============================================================================

def cash_flow_by_type(handovers: Iterable[HandoverFact]) -> dict:
    flow = {
        handover_type: {
            "count": 0,
            "expected_cents": 0,
            "settled_cents": 0,
            "difference_cents": 0,
            "pending": 0,
            "disputed": 0,
        }
        for handover_type in HANDOVER_TYPES
    }
    for handover in handovers:
        entry = flow.setdefault(handover.handover_type, {
            "count": 0, "expected_cents": 0, "settled_cents": 0,
            "difference_cents": 0, "pending": 0, "disputed": 0,
        })
        entry["count"] += 1
        entry["expected_cents"] += handover.expected_amount_cents
        if handover.status in (STATUS_CONFIRMED, STATUS_RESOLVED):
            entry["settled_cents"] += handover.actual_amount_cents or 0
        if handover.difference_cents:
            entry["difference_cents"] += handover.difference_cents
        if handover.status == STATUS_PENDING:
            entry["pending"] += 1
        elif handover.status == STATUS_DISPUTED:
            entry["disputed"] += 1
    return flow


# =============================================================================
# SUMMARY
# =============================================================================

@dataclass(frozen=True)
class SettlementSummary:
    station_id: int
    start: date
    end: date
    as_of: date
    thresholds: dict
    summary_metrics: dict
    income_breakdown: dict
    verification: dict
    daily: list = field(default_factory=list)
    settlement_summary: dict = field(default_factory=dict)
    income_statement: dict = field(default_factory=dict)
    receivables_aging: dict = field(default_factory=dict)
    creditor_settlements: list = field(default_factory=list)
    cash_flow: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "station_id": self.station_id,
            "period": {
                "start": self.start.isoformat(),
                "end": self.end.isoformat(),
                "as_of": self.as_of.isoformat(),
                "days": len(self.daily),
            },
            "thresholds": self.thresholds,
            "summary_metrics": self.summary_metrics,
            "income_breakdown": self.income_breakdown,
            "verification": self.verification,
            "daily": self.daily,
            "settlement_summary": self.settlement_summary,
            "income_statement": self.income_statement,
            "receivables_aging": self.receivables_aging,
            "creditor_settlements": self.creditor_settlements,
            "cash_flow": self.cash_flow,
        }


def build_settlement_summary(
    *,
    station_id: int,
    start: date,
    end: date,
    as_of: date,
    policy: SettlementPolicy,
    shifts: Sequence[ShiftCashFact] = (),
    handovers: Sequence[HandoverFact] = (),
    readings: Sequence[ReadingFact] = (),
    payments: Sequence[PaymentFact] = (),
    creditors: Sequence[CreditorFact] = (),
    credit_entries: Sequence[CreditEntryFact] = (),
) -> SettlementSummary:
    if end < start:
        raise ValueError("end date is before start date")

    rows = daily_cash_rows(start, end, shifts, handovers, policy.variance)
    metrics = summary_metrics(readings, payments)
    breakdown = income_breakdown(payments)
    calculated = metrics["total_sale_value_cents"]

    return SettlementSummary(
        station_id=station_id,
        start=start,
        end=end,
        as_of=as_of,
        thresholds={
            "tolerance_cents": policy.tolerance_cents,
            "variance_review_percent": policy.variance.review_percent,
            "variance_investigate_percent": policy.variance.investigate_percent,
            "aging_current_max_days": policy.aging.current_max_days,
            "aging_overdue_max_days": policy.aging.overdue_max_days,
        },
        summary_metrics=metrics,
        income_breakdown=breakdown,
        verification=verify_totals(breakdown, calculated, policy.tolerance_cents),
        daily=rows,
        settlement_summary=settlement_overview(rows),
        income_statement=income_statement(calculated, breakdown["credit_pending_cents"], rows),
        receivables_aging=receivables_aging(creditors, credit_entries, as_of, policy.aging),
        creditor_settlements=creditor_settlements(creditors, credit_entries, start, end),
        cash_flow=cash_flow_by_type(handovers),
    )
