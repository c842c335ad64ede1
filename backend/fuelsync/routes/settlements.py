# Overview: Flask API routes for owner-confirmed daily settlements.

"""
POST /api/stations/<id>/settlements     owner records the day's confirmed totals
GET  /api/stations/<id>/settlements     settlements grouped per date
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
from ..services import daily_settlement_service
from ..services.station_service import get_station
from ..time_utils import today
from ..validation import clean_text, parse_bool, parse_date, parse_money, pick

station_settlements_bp = Blueprint("station_settlements", __name__, url_prefix="/api/stations")


@station_settlements_bp.post("/<int:station_id>/settlements")
@require_actor
@require_role(*SETTLEMENT_AUTHORITY_ROLES)
def record_settlement_route(station_id: int):
    """
    Request body:
    {
        "date": "2026-03-01",       (optional, default today)
        "actualCash": "2725.00",
        "online": "1000.00",        (optional, default 0)
        "credit": "1000.00",        (optional, default 0)
        "isFinal": true,            (optional, default false)
        "notes": "..."              (optional)
    }
    """
    try:
        data = json_body()
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        result = daily_settlement_service.record_daily_settlement(
            station_id,
            parse_date(pick(data, "date", "settlementDate"), "date", required=False) or today(),
            actual_cash_cents=parse_money(pick(data, "actualCash", "actual_cash"), "actualCash"),
            actual_online_cents=parse_money(pick(data, "online", "actualOnline"), "online", required=False) or 0,
            actual_credit_cents=parse_money(pick(data, "credit", "actualCredit"), "credit", required=False) or 0,
            is_final=parse_bool(pick(data, "isFinal", "is_final"), "isFinal"),
            notes=clean_text(pick(data, "notes"), max_length=2000),
            recorded_by_user_id=g.current_user.id,
        )
        return jsonify(result.to_dict()), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to record settlement")


@station_settlements_bp.get("/<int:station_id>/settlements")
@require_actor
@require_role(*MANAGER_ROLES)
def list_settlements_route(station_id: int):
    """Query: optional start, end (YYYY-MM-DD)."""
    try:
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        days = daily_settlement_service.list_daily_settlements(
            station_id,
            start=parse_date(request.args.get("start"), "start", required=False),
            end=parse_date(request.args.get("end"), "end", required=False),
        )
        return jsonify({"settlements": days}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list settlements")
