from __future__ import annotations

from ..extensions import db
from fuelsync.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit trail for settlement events.

    Written in the same DB transaction as the change it records. occurred_at
    is business time; created_at is system time.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_station_occurred", "station_id", "occurred_at"),
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g. shift.closed, handover.disputed
    event_category = db.Column(db.String(32), nullable=False, index=True)  # reading, transaction, credit, shift, handover, settlement

    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)  # JSON

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
