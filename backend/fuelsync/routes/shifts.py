# Overview: Flask API routes for the Shift Ledger (start, end, cancel, summaries).

"""
Shift API Routes

POST /api/shifts/start                              open a shift for the acting employee
POST /api/shifts/<id>/end                           close a shift with the cash counted
POST /api/shifts/<id>/cancel                        cancel an empty shift (manager)
GET  /api/shifts/active                             the acting employee's active shift
GET  /api/shifts/<id>                               one shift
GET  /api/stations/<id>/shifts                      shifts for a day, optionally by status
GET  /api/stations/<id>/shifts/summary              per-employee totals
GET  /api/stations/<id>/shifts/discrepancies        closed shifts over the threshold
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
from ..domain.shifts import SHIFT_TYPES
from ..errors import SettlementError
from ..models.users import MANAGER_ROLES
from ..services import shift_service
from ..services.station_service import get_station
from ..time_utils import today
from ..validation import clean_text, parse_choice, parse_date, parse_int, parse_money, pick

shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")
station_shifts_bp = Blueprint("station_shifts", __name__, url_prefix="/api/stations")


def _forbidden(message: str):
    return jsonify({"error": "FORBIDDEN", "message": message}), 403


@shifts_bp.post("/start")
@require_actor
def start_shift_route():
    """
    Request body:
    {
        "stationId": 1,
        "shiftType": "morning",    (optional, default "custom")
        "employeeId": 7,           (optional, managers only)
        "notes": "..."             (optional)
    }
    """
    try:
        data = json_body()
        station_id = parse_int(pick(data, "stationId", "station_id"), "stationId")
        employee_id = parse_int(pick(data, "employeeId", "employee_id"), "employeeId", required=False)
        user = g.current_user

        if employee_id is not None and employee_id != user.id and not user.is_manager:
            return _forbidden("Only managers can start a shift for another employee")

        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        shift = shift_service.start_shift(
            employee_id=employee_id or user.id,
            station_id=station_id,
            shift_type=parse_choice(pick(data, "shiftType", "shift_type"), "shiftType", SHIFT_TYPES, default="custom"),
            notes=clean_text(pick(data, "notes"), max_length=2000),
            started_by_user_id=user.id,
        )
        return jsonify({"shift": shift.to_dict()}), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to start shift")


@shifts_bp.post("/<int:shift_id>/end")
@require_actor
def end_shift_route(shift_id: int):
    """
    Request body:
    {
        "cashCollected": "4950.00",
        "onlineCollected": "1000.00",   (optional)
        "notes": "..."                  (optional)
    }
    """
    try:
        data = json_body()
        shift = shift_service.get_shift(shift_id)
        user = g.current_user
        if shift.employee_id != user.id and not user.is_manager:
            return _forbidden("Only the shift's employee or a manager can end it")
        denied = station_access_error(get_station(shift.station_id))
        if denied:
            return denied

        closure = shift_service.end_shift(
            shift_id,
            actual_cash_cents=parse_money(pick(data, "cashCollected", "cash_collected"), "cashCollected"),
            actual_online_cents=parse_money(
                pick(data, "onlineCollected", "online_collected"), "onlineCollected", required=False
            ),
            notes=clean_text(pick(data, "notes"), max_length=2000),
            ended_by_user_id=user.id,
        )
        return jsonify(closure.to_dict()), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to end shift")


@shifts_bp.post("/<int:shift_id>/cancel")
@require_actor
@require_role(*MANAGER_ROLES)
def cancel_shift_route(shift_id: int):
    try:
        data = json_body()
        shift = shift_service.get_shift(shift_id)
        denied = station_access_error(get_station(shift.station_id))
        if denied:
            return denied

        shift = shift_service.cancel_shift(
            shift_id,
            cancelled_by_user_id=g.current_user.id,
            reason=clean_text(pick(data, "reason"), max_length=2000),
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to cancel shift")


@shifts_bp.get("/active")
@require_actor
def active_shift_route():
    try:
        shift = shift_service.get_active_shift(g.current_user.id)
        return jsonify({"shift": shift.to_dict() if shift else None}), 200
    except Exception:
        return internal_error("Failed to get active shift")


@shifts_bp.get("/<int:shift_id>")
@require_actor
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        denied = station_access_error(get_station(shift.station_id))
        if denied:
            return denied
        return jsonify({"shift": shift.to_dict()}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to get shift")


@station_shifts_bp.get("/<int:station_id>/shifts")
@require_actor
def list_station_shifts_route(station_id: int):
    try:
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        shift_date = parse_date(request.args.get("date"), "date", required=False) or today()
        status = request.args.get("status")
        if status:
            status = parse_choice(status, "status", ("active", "closed", "cancelled"))

        shifts = shift_service.list_shifts(station_id, shift_date=shift_date, status=status)
        return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list shifts")


@station_shifts_bp.get("/<int:station_id>/shifts/summary")
@require_actor
@require_role(*MANAGER_ROLES)
def shift_summary_route(station_id: int):
    try:
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        end = parse_date(request.args.get("end"), "end", required=False) or today()
        start = parse_date(request.args.get("start"), "start", required=False) or end
        employee_id = parse_int(request.args.get("employee_id"), "employee_id", required=False)

        rows = shift_service.shift_summary(station_id, start, end, employee_id=employee_id)
        return jsonify({
            "station_id": station_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "employees": rows,
        }), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to build shift summary")


@station_shifts_bp.get("/<int:station_id>/shifts/discrepancies")
@require_actor
@require_role(*MANAGER_ROLES)
def shift_discrepancies_route(station_id: int):
    try:
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        threshold = parse_money(request.args.get("threshold"), "threshold", required=False)
        if threshold is None:
            threshold = shift_service.DEFAULT_DISCREPANCY_THRESHOLD_CENTS

        shifts = shift_service.shift_discrepancies(station_id, threshold_cents=threshold)
        return jsonify({
            "station_id": station_id,
            "threshold_cents": threshold,
            "shifts": [s.to_dict() for s in shifts],
        }), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list discrepancies")
