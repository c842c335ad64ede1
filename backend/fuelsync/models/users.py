from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z

ROLES = ("employee", "manager", "owner", "super_admin")

# Roles allowed to resolve disputed handovers
SETTLEMENT_AUTHORITY_ROLES = ("owner", "super_admin")
MANAGER_ROLES = ("manager", "owner", "super_admin")


class User(db.Model):
    """
    Station staff member.

    Authentication lives outside this service; the gateway passes the acting
    user's id and this record supplies role and home station.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default="employee", index=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("users", lazy=True))

    @property
    def has_settlement_authority(self) -> bool:
        return self.role in SETTLEMENT_AUTHORITY_ROLES

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def can_access_station(self, station) -> bool:
        if self.role == "super_admin":
            return True
        if station is None:
            return False
        if self.role == "owner" and station.owner_user_id == self.id:
            return True
        return self.station_id == station.id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "station_id": self.station_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
