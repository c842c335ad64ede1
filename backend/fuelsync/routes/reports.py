# Overview: Flask API routes for the settlement report and the audit trail.

import math

from flask import Blueprint, jsonify, request

from ..decorators import error_response, internal_error, require_actor, require_role, station_access_error
from ..errors import SettlementError
from ..models.users import MANAGER_ROLES
from ..services import settlement_service
from ..services.audit_service import list_audit_events
from ..services.station_service import get_station
from ..validation import ValidationError, parse_date, parse_int

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _parse_percent(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a number", field=name)
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be a finite number", field=name)
    return value


@reports_bp.get("/settlement")
@require_actor
@require_role(*MANAGER_ROLES)
def settlement_report_route():
    """
    Query: station_id, start, end (YYYY-MM-DD), optional as_of,
    review_percent and investigate_percent.
    """
    try:
        station_id = parse_int(request.args.get("station_id"), "station_id")
        start = parse_date(request.args.get("start"), "start")
        end = parse_date(request.args.get("end"), "end")
        as_of = parse_date(request.args.get("as_of"), "as_of", required=False)

        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        summary = settlement_service.build_settlement_report(
            station_id,
            start,
            end,
            as_of=as_of,
            review_percent=_parse_percent("review_percent"),
            investigate_percent=_parse_percent("investigate_percent"),
        )
        return jsonify(summary.to_dict()), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to build settlement report")


@reports_bp.get("/audit-events")
@require_actor
@require_role(*MANAGER_ROLES)
def audit_events_route():
    try:
        station_id = parse_int(request.args.get("station_id"), "station_id")
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        limit = parse_int(request.args.get("limit"), "limit", required=False) or 200
        events = list_audit_events(
            station_id,
            entity_type=request.args.get("entity_type"),
            entity_id=parse_int(request.args.get("entity_id"), "entity_id", required=False),
            event_category=request.args.get("category"),
            limit=min(max(limit, 1), 1000),
        )
        return jsonify({"events": [e.to_dict() for e in events]}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list audit events")
