from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_iso_date, to_utc_z


class CashHandover(db.Model):
    """
    Transfer of physical cash custody between two parties.

    PENDING -> CONFIRMED (amounts match exactly)
    PENDING -> DISPUTED  (any difference) -> RESOLVED

    to_user_id is NULL for deposit_to_bank.
    """
    __tablename__ = "cash_handovers"
    __table_args__ = (
        db.Index("ix_cash_handovers_station_date", "station_id", "handover_date"),
        db.Index("ix_cash_handovers_to_status", "to_user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False)
    handover_type = db.Column(db.String(32), nullable=False, index=True)
    handover_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    from_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    previous_handover_id = db.Column(db.Integer, db.ForeignKey("cash_handovers.id"), nullable=True)

    # Money (cents)
    expected_amount_cents = db.Column(db.BigInteger, nullable=False)
    actual_amount_cents = db.Column(db.BigInteger, nullable=True)
    difference_cents = db.Column(db.BigInteger, nullable=True)  # actual - expected

    notes = db.Column(db.Text, nullable=True)
    dispute_notes = db.Column(db.Text, nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)

    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # deposit_to_bank only
    bank_name = db.Column(db.String(128), nullable=True)
    deposit_reference = db.Column(db.String(128), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift = db.relationship("Shift", backref=db.backref("handovers", lazy=True))
    previous_handover = db.relationship("CashHandover", remote_side=[id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "handover_type": self.handover_type,
            "handover_date": to_iso_date(self.handover_date),
            "status": self.status,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "shift_id": self.shift_id,
            "previous_handover_id": self.previous_handover_id,
            "expected_amount_cents": self.expected_amount_cents,
            "actual_amount_cents": self.actual_amount_cents,
            "difference_cents": self.difference_cents,
            "notes": self.notes,
            "dispute_notes": self.dispute_notes,
            "resolution_notes": self.resolution_notes,
            "confirmed_at": to_utc_z(self.confirmed_at),
            "confirmed_by_user_id": self.confirmed_by_user_id,
            "resolved_at": to_utc_z(self.resolved_at),
            "resolved_by_user_id": self.resolved_by_user_id,
            "bank_name": self.bank_name,
            "deposit_reference": self.deposit_reference,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
