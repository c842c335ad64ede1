from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_iso_date, to_utc_z


class DailyTransaction(db.Model):
    """
    Settlement of one batch of readings across payment channels.

    IMMUTABLE: corrections are posted as new transactions, never edits.
    cash + online + credit matches sale_value_cents within the monetary
    tolerance; credit equals the sum of the credit allocations exactly.
    """
    __tablename__ = "daily_transactions"
    __table_args__ = (
        db.Index("ix_daily_transactions_station_date", "station_id", "transaction_date"),
        db.CheckConstraint("cash_cents >= 0", name="cash_non_negative"),
        db.CheckConstraint("online_cents >= 0", name="online_non_negative"),
        db.CheckConstraint("credit_cents >= 0", name="credit_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    transaction_date = db.Column(db.Date, nullable=False)

    readings_count = db.Column(db.Integer, nullable=False, default=0)
    total_litres = db.Column(db.Numeric(14, 3), nullable=False, default=0)
    sale_value_cents = db.Column(db.BigInteger, nullable=False)

    # Payment breakdown (cents)
    cash_cents = db.Column(db.BigInteger, nullable=False, default=0)
    online_cents = db.Column(db.BigInteger, nullable=False, default=0)
    credit_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    allocations = db.relationship(
        "CreditAllocation",
        backref="transaction",
        lazy=True,
        order_by="CreditAllocation.id",
    )
    readings = db.relationship("NozzleReading", backref="transaction", lazy=True, order_by="NozzleReading.id")

    @property
    def total_paid_cents(self) -> int:
        return self.cash_cents + self.online_cents + self.credit_cents

    def to_dict(self, include_readings: bool = False) -> dict:
        data = {
            "id": self.id,
            "station_id": self.station_id,
            "shift_id": self.shift_id,
            "transaction_date": to_iso_date(self.transaction_date),
            "readings_count": self.readings_count,
            "total_litres": str(self.total_litres),
            "sale_value_cents": self.sale_value_cents,
            "payment_breakdown": {
                "cash_cents": self.cash_cents,
                "online_cents": self.online_cents,
                "credit_cents": self.credit_cents,
            },
            "credit_allocations": [a.to_dict() for a in self.allocations],
            "created_by_user_id": self.created_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
        if include_readings:
            data["readings"] = [r.to_dict() for r in self.readings]
        return data


class CreditAllocation(db.Model):
    """Portion of a transaction's credit component owed by one creditor."""
    __tablename__ = "credit_allocations"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("daily_transactions.id"), nullable=False, index=True)
    creditor_id = db.Column(db.Integer, db.ForeignKey("creditors.id"), nullable=False, index=True)
    amount_cents = db.Column(db.BigInteger, nullable=False)

    creditor = db.relationship("Creditor", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "creditor_id": self.creditor_id,
            "amount_cents": self.amount_cents,
        }
