# Overview: Flask API routes for nozzle readings; parses input and returns JSON responses.

"""
Reading API Routes

POST /api/readings           record a reading (Sale Calculator + persist)
GET  /api/readings/preview   run the calculation without persisting
GET  /api/readings           list a station's readings
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, internal_error, json_body, require_actor, station_access_error
from ..errors import SettlementError
from ..services import reading_service
from ..services.station_service import get_nozzle, get_station
from ..time_utils import today
from ..validation import parse_bool, parse_date, parse_int, parse_quantity, parse_time, pick

readings_bp = Blueprint("readings", __name__, url_prefix="/api/readings")


@readings_bp.post("")
@require_actor
def record_reading_route():
    """
    Request body:
    {
        "nozzleId": 3,
        "readingValue": "150.000",
        "readingDate": "2026-03-01",
        "readingTime": "08:30"   (optional)
    }
    """
    try:
        data = json_body()
        nozzle_id = parse_int(pick(data, "nozzleId", "nozzle_id"), "nozzleId")
        reading_value = parse_quantity(pick(data, "readingValue", "reading_value"), "readingValue")
        reading_date = parse_date(pick(data, "readingDate", "reading_date"), "readingDate", required=False) or today()
        reading_time = parse_time(pick(data, "readingTime", "reading_time"), "readingTime")

        nozzle = get_nozzle(nozzle_id)
        denied = station_access_error(nozzle.station)
        if denied:
            return denied

        reading = reading_service.record_reading(
            nozzle_id=nozzle_id,
            reading_value=reading_value,
            reading_date=reading_date,
            reading_time=reading_time,
            entered_by_user_id=g.current_user.id,
        )
        return jsonify({"reading": reading.to_dict()}), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to record reading")


@readings_bp.get("/preview")
@require_actor
def preview_reading_route():
    try:
        nozzle_id = parse_int(request.args.get("nozzle_id") or request.args.get("nozzleId"), "nozzleId")
        reading_value = parse_quantity(
            request.args.get("reading_value") or request.args.get("readingValue"), "readingValue"
        )
        reading_date = parse_date(
            request.args.get("reading_date") or request.args.get("readingDate"), "readingDate", required=False
        ) or today()

        nozzle = get_nozzle(nozzle_id)
        denied = station_access_error(nozzle.station)
        if denied:
            return denied

        sale = reading_service.preview_sale(nozzle_id, reading_value, reading_date)
        return jsonify({"preview": sale.to_dict()}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to preview reading")


@readings_bp.get("")
@require_actor
def list_readings_route():
    try:
        station_id = parse_int(request.args.get("station_id"), "station_id")
        reading_date = parse_date(request.args.get("date"), "date", required=False)
        unsettled_only = parse_bool(request.args.get("unsettled"), "unsettled")
        nozzle_id = parse_int(request.args.get("nozzle_id"), "nozzle_id", required=False)

        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        readings = reading_service.list_readings(
            station_id,
            reading_date=reading_date,
            unsettled_only=unsettled_only,
            nozzle_id=nozzle_id,
        )
        return jsonify({"readings": [r.to_dict() for r in readings]}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list readings")
