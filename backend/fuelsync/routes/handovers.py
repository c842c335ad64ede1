# Overview: Flask API routes for the Handover Reconciler.

"""
Handover API Routes

POST /api/handovers                           create a PENDING handover
POST /api/handovers/<id>/confirm              recipient counts the cash
POST /api/handovers/<id>/resolve              owner/super_admin closes a dispute
POST /api/handovers/bank-deposit              record a deposit_to_bank
GET  /api/handovers/pending                   handovers awaiting the acting user
GET  /api/handovers/<id>                      one handover
GET  /api/stations/<id>/handovers             station handovers in a date range
GET  /api/stations/<id>/handovers/summary     cash flow by handover type
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import (
    error_response,
    internal_error,
    json_body,
    require_actor,
    require_role,
    station_access_error,
)
from ..errors import SettlementError
from ..models.users import MANAGER_ROLES, SETTLEMENT_AUTHORITY_ROLES
from ..services import handover_service
from ..services.station_service import get_station
from ..time_utils import today
from ..validation import ValidationError, clean_text, parse_bool, parse_choice, parse_date, parse_int, parse_money, pick

handovers_bp = Blueprint("handovers", __name__, url_prefix="/api/handovers")
station_handovers_bp = Blueprint("station_handovers", __name__, url_prefix="/api/stations")

HANDOVER_STATUSES = ("pending", "confirmed", "disputed", "resolved")


@handovers_bp.post("")
@require_actor
def create_handover_route():
    """
    Request body:
    {
        "stationId": 1,
        "handoverType": "employee_to_manager",
        "toUserId": 2,
        "expectedAmount": "2000.00",      (or previousHandoverId)
        "previousHandoverId": 15,         (optional)
        "fromUserId": 7,                  (optional, managers only; default acting user)
        "handoverDate": "2026-03-01",     (optional)
        "notes": "..."                    (optional)
    }
    """
    try:
        data = json_body()
        station_id = parse_int(pick(data, "stationId", "station_id"), "stationId")
        user = g.current_user
        from_user_id = parse_int(pick(data, "fromUserId", "from_user_id"), "fromUserId", required=False)
        if from_user_id is not None and from_user_id != user.id and not user.is_manager:
            return jsonify({
                "error": "FORBIDDEN",
                "message": "Only managers can record a handover on behalf of another user",
            }), 403

        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        handover = handover_service.create_handover(
            station_id=station_id,
            handover_type=pick(data, "handoverType", "handover_type"),
            from_user_id=from_user_id or user.id,
            to_user_id=parse_int(pick(data, "toUserId", "to_user_id"), "toUserId", required=False),
            expected_amount_cents=parse_money(
                pick(data, "expectedAmount", "expected_amount"), "expectedAmount", required=False
            ),
            previous_handover_id=parse_int(
                pick(data, "previousHandoverId", "previous_handover_id"), "previousHandoverId", required=False
            ),
            handover_date=parse_date(pick(data, "handoverDate", "handover_date"), "handoverDate", required=False),
            notes=clean_text(pick(data, "notes"), max_length=2000),
            created_by_user_id=user.id,
        )
        return jsonify({"handover": handover.to_dict()}), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create handover")


@handovers_bp.post("/<int:handover_id>/confirm")
@require_actor
def confirm_handover_route(handover_id: int):
    """
    Request body:
    {
        "actualAmount": "1800.00",   (or "acceptAsIs": true)
        "notes": "..."               (optional)
    }

    Only the recipient, or a user with settlement authority over the
    station, may confirm.
    """
    try:
        data = json_body()
        handover = handover_service.get_handover(handover_id)
        user = g.current_user

        denied = station_access_error(get_station(handover.station_id))
        if denied:
            return denied
        if handover.to_user_id != user.id and not user.has_settlement_authority:
            return jsonify({
                "error": "FORBIDDEN",
                "message": "Only the recipient can confirm this handover",
            }), 403

        handover = handover_service.confirm_handover(
            handover_id,
            confirmed_by_user_id=user.id,
            actual_amount_cents=parse_money(
                pick(data, "actualAmount", "actual_amount"), "actualAmount", required=False
            ),
            accept_as_is=parse_bool(pick(data, "acceptAsIs", "accept_as_is"), "acceptAsIs"),
            notes=clean_text(pick(data, "notes"), max_length=2000),
        )
        return jsonify({"handover": handover.to_dict()}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to confirm handover")


@handovers_bp.post("/<int:handover_id>/resolve")
@require_actor
@require_role(*SETTLEMENT_AUTHORITY_ROLES)
def resolve_handover_route(handover_id: int):
    """
    Request body:
    {
        "resolutionNotes": "Shortage recovered from employee"
    }
    """
    try:
        data = json_body()
        handover = handover_service.get_handover(handover_id)
        denied = station_access_error(get_station(handover.station_id))
        if denied:
            return denied

        notes = clean_text(pick(data, "resolutionNotes", "resolution_notes", "notes"), max_length=2000)
        if not notes:
            raise ValidationError("resolutionNotes is required", field="resolutionNotes")

        handover = handover_service.resolve_handover(
            handover_id,
            resolution_notes=notes,
            resolved_by_user_id=g.current_user.id,
        )
        return jsonify({"handover": handover.to_dict()}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to resolve handover")


@handovers_bp.post("/bank-deposit")
@require_actor
@require_role(*MANAGER_ROLES)
def bank_deposit_route():
    """
    Request body:
    {
        "stationId": 1,
        "amount": "50000.00",
        "bankName": "State Bank",          (optional)
        "depositReference": "DEP-0042",    (optional)
        "depositDate": "2026-03-02",       (optional)
        "previousHandoverId": 21,          (optional)
        "notes": "..."                     (optional)
    }
    """
    try:
        data = json_body()
        station_id = parse_int(pick(data, "stationId", "station_id"), "stationId")
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        handover = handover_service.record_bank_deposit(
            station_id=station_id,
            from_user_id=g.current_user.id,
            amount_cents=parse_money(pick(data, "amount"), "amount"),
            bank_name=clean_text(pick(data, "bankName", "bank_name"), max_length=128),
            deposit_reference=clean_text(pick(data, "depositReference", "deposit_reference"), max_length=128),
            deposit_date=parse_date(pick(data, "depositDate", "deposit_date"), "depositDate", required=False),
            previous_handover_id=parse_int(
                pick(data, "previousHandoverId", "previous_handover_id"), "previousHandoverId", required=False
            ),
            notes=clean_text(pick(data, "notes"), max_length=2000),
        )
        return jsonify({"handover": handover.to_dict()}), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to record bank deposit")


@handovers_bp.get("/pending")
@require_actor
def pending_handovers_route():
    try:
        station_id = parse_int(request.args.get("station_id"), "station_id", required=False)
        handovers = handover_service.pending_for_user(g.current_user.id, station_id=station_id)
        return jsonify({"handovers": [h.to_dict() for h in handovers]}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list pending handovers")


@handovers_bp.get("/<int:handover_id>")
@require_actor
def get_handover_route(handover_id: int):
    try:
        handover = handover_service.get_handover(handover_id)
        denied = station_access_error(get_station(handover.station_id))
        if denied:
            return denied
        return jsonify({"handover": handover.to_dict()}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to get handover")


def _date_range():
    end = parse_date(request.args.get("end"), "end", required=False) or today()
    start = parse_date(request.args.get("start"), "start", required=False) or end
    if end < start:
        raise ValidationError("end must not be before start", field="end")
    return start, end


@station_handovers_bp.get("/<int:station_id>/handovers")
@require_actor
def list_station_handovers_route(station_id: int):
    try:
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        start, end = _date_range()
        status = request.args.get("status")
        if status:
            status = parse_choice(status, "status", HANDOVER_STATUSES)
        handovers = handover_service.list_handovers(station_id, start, end, status=status)
        return jsonify({"handovers": [h.to_dict() for h in handovers]}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list handovers")


@station_handovers_bp.get("/<int:station_id>/handovers/summary")
@require_actor
@require_role(*MANAGER_ROLES)
def handover_summary_route(station_id: int):
    try:
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        start, end = _date_range()
        return jsonify(handover_service.cash_flow_summary(station_id, start, end)), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to build handover summary")
