from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_iso_date, to_utc_z


class NozzleReading(db.Model):
    """
    Immutable meter reading.

    comparison_value, litres_sold, price_cents and sale_value_cents are the
    Sale Calculator's output frozen at entry time. The only later write is the
    one-time transaction_id link when a transaction settles the reading.
    """
    __tablename__ = "nozzle_readings"
    __table_args__ = (
        db.Index("ix_nozzle_readings_nozzle_created", "nozzle_id", "id"),
        db.Index("ix_nozzle_readings_station_date", "station_id", "reading_date"),
        db.CheckConstraint("entered_value > comparison_value", name="reading_advances_meter"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False)
    nozzle_id = db.Column(db.Integer, db.ForeignKey("nozzles.id"), nullable=False, index=True)
    fuel_type = db.Column(db.String(32), nullable=False)

    entered_value = db.Column(db.Numeric(14, 3), nullable=False)
    comparison_value = db.Column(db.Numeric(14, 3), nullable=False)
    litres_sold = db.Column(db.Numeric(14, 3), nullable=False)

    # Money in cents
    price_cents = db.Column(db.BigInteger, nullable=False)  # price per litre at entry
    sale_value_cents = db.Column(db.BigInteger, nullable=False)

    reading_date = db.Column(db.Date, nullable=False)
    reading_time = db.Column(db.Time, nullable=True)

    entered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("daily_transactions.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    nozzle = db.relationship("Nozzle", backref=db.backref("readings", lazy=True))

    @property
    def is_settled(self) -> bool:
        return self.transaction_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "nozzle_id": self.nozzle_id,
            "fuel_type": self.fuel_type,
            "entered_value": str(self.entered_value),
            "comparison_value": str(self.comparison_value),
            "litres_sold": str(self.litres_sold),
            "price_cents": self.price_cents,
            "sale_value_cents": self.sale_value_cents,
            "reading_date": to_iso_date(self.reading_date),
            "reading_time": self.reading_time.isoformat() if self.reading_time else None,
            "entered_by_user_id": self.entered_by_user_id,
            "transaction_id": self.transaction_id,
            "created_at": to_utc_z(self.created_at),
        }
