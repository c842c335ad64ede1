from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_iso_date, to_utc_z

ENTRY_CREDIT = "CREDIT"
ENTRY_SETTLEMENT = "SETTLEMENT"


class Creditor(db.Model):
    """
    Customer allowed to buy fuel on credit.

    There is no stored balance: outstanding is the sum of the creditor's
    CreditLedgerEntry rows. version_id is bumped whenever an entry is
    appended so concurrent postings against one creditor serialize.
    credit_limit_cents == 0 means no limit. A flagged creditor accepts
    settlements but no new credit.
    """
    __tablename__ = "creditors"
    __table_args__ = (
        db.UniqueConstraint("station_id", "name", name="uq_creditors_station_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    contact_person = db.Column(db.String(128), nullable=True)
    contact_number = db.Column(db.String(32), nullable=True)
    credit_limit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    credit_period_days = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    is_flagged = db.Column(db.Boolean, nullable=False, default=False, index=True)
    flag_reason = db.Column(db.String(255), nullable=True)
    flagged_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_entry_at = db.Column(db.DateTime(timezone=True), nullable=True)  # touched on every ledger append
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, outstanding_cents: int | None = None) -> dict:
        data = {
            "id": self.id,
            "station_id": self.station_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "contact_number": self.contact_number,
            "credit_limit_cents": self.credit_limit_cents,
            "credit_period_days": self.credit_period_days,
            "is_active": self.is_active,
            "is_flagged": self.is_flagged,
            "flag_reason": self.flag_reason,
            "flagged_at": to_utc_z(self.flagged_at),
            "last_entry_at": to_utc_z(self.last_entry_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
        if outstanding_cents is not None:
            data["outstanding_cents"] = outstanding_cents
            data["available_credit_cents"] = (
                None if not self.credit_limit_cents else self.credit_limit_cents - outstanding_cents
            )
        return data


class CreditLedgerEntry(db.Model):
    """
    Append-only creditor balance change.

    CREDIT entries carry a positive delta (a credit allocation posted with a
    transaction); SETTLEMENT entries carry a negative delta (a payment
    received). cause_type/cause_id point at what produced the entry.
    """
    __tablename__ = "credit_ledger_entries"
    __table_args__ = (
        db.Index("ix_credit_ledger_creditor_date", "creditor_id", "entry_date"),
        db.CheckConstraint(
            "(entry_type = 'CREDIT' AND delta_cents > 0) OR (entry_type = 'SETTLEMENT' AND delta_cents < 0)",
            name="delta_sign_matches_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    creditor_id = db.Column(db.Integer, db.ForeignKey("creditors.id"), nullable=False)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)

    entry_type = db.Column(db.String(16), nullable=False)  # CREDIT, SETTLEMENT
    delta_cents = db.Column(db.BigInteger, nullable=False)

    cause_type = db.Column(db.String(32), nullable=False)  # credit_allocation, settlement_payment
    cause_id = db.Column(db.Integer, nullable=True)

    entry_date = db.Column(db.Date, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    entered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    creditor = db.relationship("Creditor", backref=db.backref("ledger_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "creditor_id": self.creditor_id,
            "station_id": self.station_id,
            "entry_type": self.entry_type,
            "delta_cents": self.delta_cents,
            "cause_type": self.cause_type,
            "cause_id": self.cause_id,
            "entry_date": to_iso_date(self.entry_date),
            "reference": self.reference,
            "notes": self.notes,
            "entered_by_user_id": self.entered_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
