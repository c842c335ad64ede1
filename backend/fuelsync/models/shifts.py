from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_iso_date, to_utc_z


class Shift(db.Model):
    """
    Employee shift at a station.

    LIFECYCLE:
    - ACTIVE: accepts postings from the employee's transactions
    - CLOSED: cash counted, cash_difference frozen (terminal)
    - CANCELLED: abandoned before anything was posted (terminal)

    active_employee_id equals employee_id while ACTIVE and is NULL otherwise.
    Its unique constraint is what makes "one active shift per employee"
    hold under concurrent starts.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.UniqueConstraint("active_employee_id", name="uq_shifts_active_employee_id"),
        db.Index("ix_shifts_station_date", "station_id", "shift_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False)
    active_employee_id = db.Column(db.Integer, nullable=True)

    shift_date = db.Column(db.Date, nullable=False)
    shift_type = db.Column(db.String(16), nullable=False, default="custom")
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Running totals while ACTIVE
    readings_count = db.Column(db.Integer, nullable=False, default=0)
    total_litres_sold = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    total_sales_cents = db.Column(db.BigInteger, nullable=False, default=0)
    online_cents = db.Column(db.BigInteger, nullable=False, default=0)
    credit_cents = db.Column(db.BigInteger, nullable=False, default=0)
    expected_cash_cents = db.Column(db.BigInteger, nullable=False, default=0)  # sales - online - credit

    # Set at close
    actual_cash_cents = db.Column(db.BigInteger, nullable=True)
    actual_online_cents = db.Column(db.BigInteger, nullable=True)
    cash_difference_cents = db.Column(db.BigInteger, nullable=True)  # actual - expected

    notes = db.Column(db.Text, nullable=True)
    end_notes = db.Column(db.Text, nullable=True)
    ended_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    employee = db.relationship("User", foreign_keys=[employee_id], backref=db.backref("shifts", lazy=True))
    station = db.relationship("Station", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def online_difference_cents(self) -> int | None:
        """Counted online receipts minus posted online, once the close recorded a count."""
        if self.actual_online_cents is None:
            return None
        return self.actual_online_cents - (self.online_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "station_id": self.station_id,
            "shift_date": to_iso_date(self.shift_date),
            "shift_type": self.shift_type,
            "status": self.status,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at),
            "readings_count": self.readings_count,
            "total_litres_sold": str(self.total_litres_sold),
            "total_sales_cents": self.total_sales_cents,
            "online_cents": self.online_cents,
            "credit_cents": self.credit_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "actual_cash_cents": self.actual_cash_cents,
            "actual_online_cents": self.actual_online_cents,
            "cash_difference_cents": self.cash_difference_cents,
            "online_difference_cents": self.online_difference_cents,
            "notes": self.notes,
            "end_notes": self.end_notes,
            "ended_by_user_id": self.ended_by_user_id,
            "version_id": self.version_id,
        }
