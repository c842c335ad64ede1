# Overview: Append-only audit trail for settlement events; no business rules live here.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent, Station
from ..time_utils import utcnow
"""
Audit trail invariants

- Append-only: events are never updated or deleted.
- Events are written inside the same DB transaction as the change they
  record, so a rolled-back operation leaves no audit event behind.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_audit_event(
    *,
    station_id: int,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> AuditEvent:
    station = db.session.get(Station, station_id)
    if not station:
        raise ValueError(f"Station {station_id} not found for audit event")

    ev = AuditEvent(
        station_id=station_id,
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
        note=note[:255] if note else None,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # assigns ev.id without committing
    return ev


def list_audit_events(
    station_id: int,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_category: str | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    query = db.session.query(AuditEvent).filter(AuditEvent.station_id == station_id)
    if entity_type:
        query = query.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditEvent.entity_id == entity_id)
    if event_category:
        query = query.filter(AuditEvent.event_category == event_category)
    return query.order_by(AuditEvent.id.asc()).limit(limit).all()
