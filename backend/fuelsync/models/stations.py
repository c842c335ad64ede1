from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_iso_date, to_utc_z


class Station(db.Model):
    """
    Fuel station: the unit every reading, shift, handover and report belongs to.

    manager_user_id receives automatic shift_collection handovers.
    """
    __tablename__ = "stations"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stations_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=False)

    # users.id; plain integers because users.station_id points back here
    manager_user_id = db.Column(db.Integer, nullable=True, index=True)
    owner_user_id = db.Column(db.Integer, nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "manager_user_id": self.manager_user_id,
            "owner_user_id": self.owner_user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Nozzle(db.Model):
    """
    Dispensing nozzle with a cumulative meter.

    initial_reading is the meter value at installation; it is the comparison
    value for the first reading. version_id is bumped on every reading so two
    concurrent readings cannot share a comparison value.
    """
    __tablename__ = "nozzles"
    __table_args__ = (
        db.UniqueConstraint("station_id", "label", name="uq_nozzles_station_label"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    label = db.Column(db.String(32), nullable=False)  # e.g. "P1-N2"
    fuel_type = db.Column(db.String(32), nullable=False, index=True)  # petrol, diesel, cng, ...
    initial_reading = db.Column(db.Numeric(14, 3), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_reading_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    station = db.relationship("Station", backref=db.backref("nozzles", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "label": self.label,
            "fuel_type": self.fuel_type,
            "initial_reading": str(self.initial_reading) if self.initial_reading is not None else None,
            "is_active": self.is_active,
            "last_reading_at": to_utc_z(self.last_reading_at),
            "version_id": self.version_id,
        }


class FuelPrice(db.Model):
    """Price per litre for a fuel type at a station, effective from a date (inclusive)."""
    __tablename__ = "fuel_prices"
    __table_args__ = (
        db.UniqueConstraint("station_id", "fuel_type", "effective_from", name="uq_fuel_prices_station_fuel_from"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    fuel_type = db.Column(db.String(32), nullable=False)
    price_cents = db.Column(db.BigInteger, nullable=False)  # per litre
    effective_from = db.Column(db.Date, nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "fuel_type": self.fuel_type,
            "price_cents": self.price_cents,
            "effective_from": to_iso_date(self.effective_from),
            "created_by_user_id": self.created_by_user_id,
        }
