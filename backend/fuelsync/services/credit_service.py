# Overview: Creditor ledger; outstanding balances are folds over append-only entries.

"""
Creditor ledger invariants

- CreditLedgerEntry rows are append-only; nothing updates or deletes them.
- outstanding(creditor) = SUM(delta_cents) over its entries.
- Every append happens with the creditor row locked (in creditor id order
  when several are touched) and bumps the creditor's version_id, so two
  concurrent postings cannot both read the same balance and both win.
- A flagged creditor takes no new CREDIT entries; SETTLEMENT entries are
  still accepted.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable

from sqlalchemy import func

from ..domain.allocation import CreditorPosition
from ..domain.money import format_money
from ..errors import CreditorFlagged, NotFound
from ..extensions import db
from ..models import Creditor, CreditLedgerEntry
from ..models.credit import ENTRY_CREDIT, ENTRY_SETTLEMENT
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .station_service import get_station

logger = logging.getLogger(__name__)


def get_creditor(creditor_id: int) -> Creditor:
    creditor = db.session.get(Creditor, creditor_id)
    if not creditor:
        raise NotFound("Creditor not found", creditor_id=creditor_id)
    return creditor


def create_creditor(
    station_id: int,
    name: str,
    *,
    credit_limit_cents: int = 0,
    credit_period_days: int | None = None,
    contact_person: str | None = None,
    contact_number: str | None = None,
    actor_user_id: int | None = None,
) -> Creditor:
    get_station(station_id)
    if not name:
        raise ValidationError("name is required", field="name")
    if credit_limit_cents is None or credit_limit_cents < 0:
        raise ValidationError("creditLimit cannot be negative", field="creditLimit")
    if credit_period_days is not None and credit_period_days < 0:
        raise ValidationError("creditPeriodDays cannot be negative", field="creditPeriodDays")

    existing = db.session.query(Creditor).filter_by(station_id=station_id, name=name).first()
    if existing:
        raise ConflictError(f"Creditor '{name}' already exists at this station", name=name)

    creditor = Creditor(
        station_id=station_id,
        name=name,
        credit_limit_cents=credit_limit_cents,
        credit_period_days=credit_period_days,
        contact_person=contact_person,
        contact_number=contact_number,
        is_active=True,
    )
    db.session.add(creditor)
    db.session.flush()

    append_audit_event(
        station_id=station_id,
        event_type="creditor.created",
        event_category="credit",
        entity_type="creditor",
        entity_id=creditor.id,
        actor_user_id=actor_user_id,
        note=f"Creditor {name} created",
        payload={"credit_limit_cents": credit_limit_cents},
    )
    db.session.commit()
    return creditor


def outstanding_cents(creditor_id: int, *, as_of: date | None = None) -> int:
    query = db.session.query(func.coalesce(func.sum(CreditLedgerEntry.delta_cents), 0)).filter(
        CreditLedgerEntry.creditor_id == creditor_id
    )
    if as_of is not None:
        query = query.filter(CreditLedgerEntry.entry_date <= as_of)
    return int(query.scalar() or 0)


def outstanding_by_creditor(creditor_ids: Iterable[int]) -> dict[int, int]:
    ids = list(creditor_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(CreditLedgerEntry.creditor_id, func.sum(CreditLedgerEntry.delta_cents))
        .filter(CreditLedgerEntry.creditor_id.in_(ids))
        .group_by(CreditLedgerEntry.creditor_id)
        .all()
    )
    totals = {creditor_id: 0 for creditor_id in ids}
    totals.update({creditor_id: int(total or 0) for creditor_id, total in rows})
    return totals


def lock_creditors(creditor_ids: Iterable[int], *, station_id: int) -> dict[int, Creditor]:
    """
    Lock the creditor rows (ascending id) and check they can take postings.

    Raises NotFound, ValidationError (other station, inactive) or
    CreditorFlagged.

    Must be called inside the unit of work that appends the entries.
    """
    ids = sorted(set(creditor_ids))
    if not ids:
        return {}

    creditors = lock_for_update(
        db.session.query(Creditor).filter(Creditor.id.in_(ids)).order_by(Creditor.id.asc())
    ).all()
    found = {c.id: c for c in creditors}

    for creditor_id in ids:
        creditor = found.get(creditor_id)
        if creditor is None:
            raise NotFound("Creditor not found", creditor_id=creditor_id)
        if creditor.station_id != station_id:
            raise ValidationError(
                "Creditor belongs to a different station",
                creditor_id=creditor_id,
                station_id=station_id,
            )
        if not creditor.is_active:
            raise ValidationError("Creditor is inactive", creditor_id=creditor_id)
        if creditor.is_flagged:
            raise CreditorFlagged(
                f"Creditor {creditor.name} is flagged: {creditor.flag_reason}",
                creditor_id=creditor_id,
                flag_reason=creditor.flag_reason,
            )
    return found


def positions(creditors: dict[int, Creditor]) -> dict[int, CreditorPosition]:
    balances = outstanding_by_creditor(creditors.keys())
    return {
        creditor_id: CreditorPosition(
            creditor_id=creditor_id,
            name=creditor.name,
            credit_limit_cents=creditor.credit_limit_cents,
            outstanding_cents=balances[creditor_id],
        )
        for creditor_id, creditor in creditors.items()
    }


def append_entry(
    creditor: Creditor,
    *,
    entry_type: str,
    amount_cents: int,
    cause_type: str,
    cause_id: int | None,
    entry_date: date,
    entered_by_user_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> CreditLedgerEntry:
    """Append one entry for a creditor already locked by the caller. Does not commit."""
    if amount_cents <= 0:
        raise ValidationError("Ledger amount must be positive", creditor_id=creditor.id)
    delta = amount_cents if entry_type == ENTRY_CREDIT else -amount_cents

    entry = CreditLedgerEntry(
        creditor_id=creditor.id,
        station_id=creditor.station_id,
        entry_type=entry_type,
        delta_cents=delta,
        cause_type=cause_type,
        cause_id=cause_id,
        entry_date=entry_date,
        reference=reference,
        notes=notes,
        entered_by_user_id=entered_by_user_id,
    )
    db.session.add(entry)
    # dirties the row so the version_id check runs at flush
    creditor.last_entry_at = utcnow()
    db.session.flush()
    return entry


def record_settlement(
    creditor_id: int,
    amount_cents: int,
    *,
    settlement_date: date,
    entered_by_user_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> CreditLedgerEntry:
    """
    Post a payment received from a creditor.

    Raises:
        ValidationError: non-positive amount, or more than is outstanding
        NotFound, ConcurrencyConflict
    """
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("amount must be positive", field="amount")

    def _op() -> CreditLedgerEntry:
        creditor = lock_for_update(db.session.query(Creditor).filter(Creditor.id == creditor_id)).first()
        if creditor is None:
            raise NotFound("Creditor not found", creditor_id=creditor_id)

        balance = outstanding_cents(creditor.id)
        if amount_cents > balance:
            raise ValidationError(
                f"Settlement {format_money(amount_cents)} exceeds outstanding {format_money(balance)}",
                field="amount",
                creditor_id=creditor.id,
                outstanding_cents=balance,
                amount_cents=amount_cents,
            )

        entry = append_entry(
            creditor,
            entry_type=ENTRY_SETTLEMENT,
            amount_cents=amount_cents,
            cause_type="settlement_payment",
            cause_id=None,
            entry_date=settlement_date,
            entered_by_user_id=entered_by_user_id,
            reference=reference,
            notes=notes,
        )

        append_audit_event(
            station_id=creditor.station_id,
            event_type="credit.settlement_posted",
            event_category="credit",
            entity_type="creditor",
            entity_id=creditor.id,
            actor_user_id=entered_by_user_id,
            note=f"Settlement of {format_money(amount_cents)} from {creditor.name}",
            payload={
                "ledger_entry_id": entry.id,
                "amount_cents": amount_cents,
                "outstanding_before_cents": balance,
                "outstanding_after_cents": balance - amount_cents,
            },
        )
        db.session.commit()
        return entry

    entry = run_with_retry(_op)
    logger.info("Creditor %s settled %s cents", creditor_id, amount_cents)
    return entry


DEFAULT_FLAG_REASON = "Credit issue"


def _set_flag(creditor_id: int, *, flagged: bool, reason: str | None, actor_user_id: int | None) -> Creditor:
    def _op() -> Creditor:
        creditor = lock_for_update(db.session.query(Creditor).filter(Creditor.id == creditor_id)).first()
        if creditor is None:
            raise NotFound("Creditor not found", creditor_id=creditor_id)

        new_reason = (reason or DEFAULT_FLAG_REASON) if flagged else None
        if creditor.is_flagged == flagged and creditor.flag_reason == new_reason:
            db.session.rollback()
            return creditor

        previous_reason = creditor.flag_reason
        creditor.is_flagged = flagged
        creditor.flag_reason = new_reason
        creditor.flagged_at = utcnow() if flagged else None
        db.session.flush()

        append_audit_event(
            station_id=creditor.station_id,
            event_type="creditor.flagged" if flagged else "creditor.unflagged",
            event_category="credit",
            entity_type="creditor",
            entity_id=creditor.id,
            actor_user_id=actor_user_id,
            note=f"Creditor {creditor.name} {'flagged' if flagged else 'unflagged'}",
            payload={"flag_reason": new_reason, "previous_flag_reason": previous_reason},
        )
        db.session.commit()
        return creditor

    creditor = run_with_retry(_op)
    logger.info("Creditor %s %s", creditor_id, "flagged" if flagged else "unflagged")
    return creditor


def flag_creditor(creditor_id: int, *, reason: str | None = None, actor_user_id: int | None = None) -> Creditor:
    """
    Stop new credit for a creditor. Settlements are still accepted.

    Re-flagging with a new reason replaces the reason; repeating the same
    call changes nothing and writes no audit event.
    """
    return _set_flag(creditor_id, flagged=True, reason=reason, actor_user_id=actor_user_id)


def unflag_creditor(creditor_id: int, *, actor_user_id: int | None = None) -> Creditor:
    return _set_flag(creditor_id, flagged=False, reason=None, actor_user_id=actor_user_id)


def list_creditors(station_id: int, *, include_inactive: bool = False) -> list[tuple[Creditor, int]]:
    query = db.session.query(Creditor).filter(Creditor.station_id == station_id)
    if not include_inactive:
        query = query.filter(Creditor.is_active.is_(True))
    creditors = query.order_by(Creditor.name.asc(), Creditor.id.asc()).all()
    balances = outstanding_by_creditor(c.id for c in creditors)
    return [(c, balances[c.id]) for c in creditors]


def ledger_entries(creditor_id: int) -> list[CreditLedgerEntry]:
    return (
        db.session.query(CreditLedgerEntry)
        .filter(CreditLedgerEntry.creditor_id == creditor_id)
        .order_by(CreditLedgerEntry.entry_date.asc(), CreditLedgerEntry.id.asc())
        .all()
    )
