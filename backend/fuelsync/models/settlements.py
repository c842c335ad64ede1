from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_iso_date, to_utc_z


class DailySettlement(db.Model):
    """
    Owner-confirmed close of one station business day.

    reported_* are the employee-reported channel totals summed from the day's
    DailyTransaction rows when the settlement is recorded; actual_* are what
    the owner confirmed. variance = actual - reported per channel.

    A day may be settled several times; at most one record per station and
    date is final. final_station_id equals station_id while is_final and is
    NULL otherwise, so its unique constraint holds that rule under
    concurrent finalisation.
    """
    __tablename__ = "daily_settlements"
    __table_args__ = (
        db.UniqueConstraint("final_station_id", "settlement_date", name="uq_daily_settlements_final"),
        db.Index("ix_daily_settlements_station_date", "station_id", "settlement_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False)
    settlement_date = db.Column(db.Date, nullable=False)
    final_station_id = db.Column(db.Integer, nullable=True)

    transactions_count = db.Column(db.Integer, nullable=False, default=0)

    # Employee-reported (cents)
    reported_cash_cents = db.Column(db.BigInteger, nullable=False, default=0)
    reported_online_cents = db.Column(db.BigInteger, nullable=False, default=0)
    reported_credit_cents = db.Column(db.BigInteger, nullable=False, default=0)

    # Owner-confirmed (cents)
    actual_cash_cents = db.Column(db.BigInteger, nullable=False, default=0)
    actual_online_cents = db.Column(db.BigInteger, nullable=False, default=0)
    actual_credit_cents = db.Column(db.BigInteger, nullable=False, default=0)

    cash_variance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    online_variance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    credit_variance_cents = db.Column(db.BigInteger, nullable=False, default=0)

    is_final = db.Column(db.Boolean, nullable=False, default=False)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "settlement_date": to_iso_date(self.settlement_date),
            "transactions_count": self.transactions_count,
            "reported": {
                "cash_cents": self.reported_cash_cents,
                "online_cents": self.reported_online_cents,
                "credit_cents": self.reported_credit_cents,
            },
            "confirmed": {
                "cash_cents": self.actual_cash_cents,
                "online_cents": self.actual_online_cents,
                "credit_cents": self.actual_credit_cents,
            },
            "variance": {
                "cash_cents": self.cash_variance_cents,
                "online_cents": self.online_variance_cents,
                "credit_cents": self.credit_variance_cents,
            },
            "is_final": self.is_final,
            "finalized_at": to_utc_z(self.finalized_at),
            "notes": self.notes,
            "recorded_by_user_id": self.recorded_by_user_id,
            "recorded_at": to_utc_z(self.recorded_at),
            "version_id": self.version_id,
        }
