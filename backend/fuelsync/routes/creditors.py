# Overview: Flask API routes for creditors, their settlement payments and credit flags.

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
from ..models.users import MANAGER_ROLES
from ..services import credit_service, settlement_service
from ..services.station_service import get_station
from ..time_utils import today
from ..validation import clean_text, parse_bool, parse_date, parse_int, parse_money, pick

creditors_bp = Blueprint("creditors", __name__, url_prefix="/api/creditors")


@creditors_bp.post("")
@require_actor
@require_role(*MANAGER_ROLES)
def create_creditor_route():
    """
    Request body:
    {
        "stationId": 1,
        "name": "City Transport Co",
        "creditLimit": "50000.00",     (0 or omitted = no limit)
        "creditPeriodDays": 30,        (optional)
        "contactPerson": "...",        (optional)
        "contactNumber": "..."         (optional)
    }
    """
    try:
        data = json_body()
        station_id = parse_int(pick(data, "stationId", "station_id"), "stationId")
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        creditor = credit_service.create_creditor(
            station_id,
            clean_text(pick(data, "name"), max_length=128),
            credit_limit_cents=parse_money(pick(data, "creditLimit", "credit_limit"), "creditLimit", required=False) or 0,
            credit_period_days=parse_int(
                pick(data, "creditPeriodDays", "credit_period_days"), "creditPeriodDays", required=False
            ),
            contact_person=clean_text(pick(data, "contactPerson", "contact_person"), max_length=128),
            contact_number=clean_text(pick(data, "contactNumber", "contact_number"), max_length=32),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"creditor": creditor.to_dict(outstanding_cents=0)}), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create creditor")


@creditors_bp.get("")
@require_actor
def list_creditors_route():
    try:
        station_id = parse_int(request.args.get("station_id"), "station_id")
        include_inactive = parse_bool(request.args.get("include_inactive"), "include_inactive")
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        rows = credit_service.list_creditors(station_id, include_inactive=include_inactive)
        return jsonify({
            "creditors": [creditor.to_dict(outstanding_cents=balance) for creditor, balance in rows]
        }), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list creditors")


@creditors_bp.get("/overdue")
@require_actor
def overdue_creditors_route():
    """Query: station_id, optional as_of (YYYY-MM-DD, default today)."""
    try:
        station_id = parse_int(request.args.get("station_id"), "station_id")
        as_of = parse_date(request.args.get("as_of"), "as_of", required=False) or today()
        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        rows = settlement_service.overdue_creditors(station_id, as_of=as_of)
        return jsonify({"as_of": as_of.isoformat(), "creditors": rows}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list overdue creditors")


@creditors_bp.get("/<int:creditor_id>")
@require_actor
def get_creditor_route(creditor_id: int):
    try:
        creditor = credit_service.get_creditor(creditor_id)
        denied = station_access_error(get_station(creditor.station_id))
        if denied:
            return denied

        return jsonify({
            "creditor": creditor.to_dict(outstanding_cents=credit_service.outstanding_cents(creditor.id)),
            "ledger": [e.to_dict() for e in credit_service.ledger_entries(creditor.id)],
        }), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to get creditor")


@creditors_bp.post("/<int:creditor_id>/settlements")
@require_actor
@require_role(*MANAGER_ROLES)
def record_settlement_route(creditor_id: int):
    """
    Request body:
    {
        "amount": "500.00",
        "settlementDate": "2026-03-05",   (optional, default today)
        "reference": "UTR123",            (optional)
        "notes": "..."                    (optional)
    }
    """
    try:
        data = json_body()
        creditor = credit_service.get_creditor(creditor_id)
        denied = station_access_error(get_station(creditor.station_id))
        if denied:
            return denied

        entry = credit_service.record_settlement(
            creditor_id,
            parse_money(pick(data, "amount"), "amount"),
            settlement_date=parse_date(
                pick(data, "settlementDate", "settlement_date"), "settlementDate", required=False
            ) or today(),
            entered_by_user_id=g.current_user.id,
            reference=clean_text(pick(data, "reference"), max_length=128),
            notes=clean_text(pick(data, "notes"), max_length=2000),
        )
        return jsonify({
            "settlement": entry.to_dict(),
            "outstanding_cents": credit_service.outstanding_cents(creditor_id),
        }), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to record settlement")


@creditors_bp.post("/<int:creditor_id>/flag")
@require_actor
@require_role(*MANAGER_ROLES)
def flag_creditor_route(creditor_id: int):
    """
    Request body:
    {
        "reason": "Cheque bounced"     (optional, default "Credit issue")
    }
    """
    try:
        data = json_body()
        creditor = credit_service.get_creditor(creditor_id)
        denied = station_access_error(get_station(creditor.station_id))
        if denied:
            return denied

        creditor = credit_service.flag_creditor(
            creditor_id,
            reason=clean_text(pick(data, "reason"), max_length=255),
            actor_user_id=g.current_user.id,
        )
        return jsonify({
            "creditor": creditor.to_dict(outstanding_cents=credit_service.outstanding_cents(creditor_id)),
        }), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to flag creditor")


@creditors_bp.post("/<int:creditor_id>/unflag")
@require_actor
@require_role(*MANAGER_ROLES)
def unflag_creditor_route(creditor_id: int):
    try:
        creditor = credit_service.get_creditor(creditor_id)
        denied = station_access_error(get_station(creditor.station_id))
        if denied:
            return denied

        creditor = credit_service.unflag_creditor(creditor_id, actor_user_id=g.current_user.id)
        return jsonify({
            "creditor": creditor.to_dict(outstanding_cents=credit_service.outstanding_cents(creditor_id)),
        }), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to unflag creditor")
