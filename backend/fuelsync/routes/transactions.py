# Overview: Flask API routes for daily transactions (Payment Allocator intake).

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, internal_error, json_body, require_actor, station_access_error
from ..domain.allocation import CreditAllocationRequest, PaymentBreakdown
from ..errors import SettlementError
from ..services import transaction_service
from ..services.station_service import get_station
from ..validation import (
    ValidationError,
    clean_text,
    parse_bool,
    parse_date,
    parse_int,
    parse_int_list,
    parse_money,
    pick,
    require,
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _parse_breakdown(data: dict) -> PaymentBreakdown:
    breakdown = pick(data, "paymentBreakdown", "payment_breakdown")
    if not isinstance(breakdown, dict):
        raise ValidationError("paymentBreakdown is required", field="paymentBreakdown")
    return PaymentBreakdown(
        cash_cents=parse_money(breakdown.get("cash"), "cash", required=False) or 0,
        online_cents=parse_money(breakdown.get("online"), "online", required=False) or 0,
        credit_cents=parse_money(breakdown.get("credit"), "credit", required=False) or 0,
    )


def _parse_allocations(data: dict) -> list[CreditAllocationRequest]:
    raw = pick(data, "creditAllocations", "credit_allocations", default=None) or []
    if not isinstance(raw, list):
        raise ValidationError("creditAllocations must be an array", field="creditAllocations")
    allocations = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("creditAllocations entries must be objects", field="creditAllocations")
        allocations.append(
            CreditAllocationRequest(
                creditor_id=parse_int(pick(item, "creditorId", "creditor_id"), "creditorId"),
                amount_cents=parse_money(item.get("amount"), "amount"),
            )
        )
    return allocations


@transactions_bp.post("")
@require_actor
def create_transaction_route():
    """
    Request body:
    {
        "stationId": 1,
        "transactionDate": "2026-03-01",
        "readingIds": [11, 12],
        "paymentBreakdown": {"cash": "2775.00", "online": "1000.00", "credit": "1000.00"},
        "creditAllocations": [{"creditorId": 4, "amount": "1000.00"}],
        "notes": "...",               (optional)
        "enforceCreditLimit": false   (optional)
    }
    """
    try:
        data = json_body()
        station_id = parse_int(pick(data, "stationId", "station_id"), "stationId")
        transaction_date = parse_date(pick(data, "transactionDate", "transaction_date"), "transactionDate")
        reading_ids = parse_int_list(require(data, "readingIds", "reading_ids"), "readingIds")
        breakdown = _parse_breakdown(data)
        allocations = _parse_allocations(data)
        enforce = pick(data, "enforceCreditLimit", "enforce_credit_limit")

        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        posted = transaction_service.create_transaction(
            station_id=station_id,
            transaction_date=transaction_date,
            reading_ids=reading_ids,
            breakdown=breakdown,
            allocations=allocations,
            created_by_user_id=g.current_user.id,
            notes=clean_text(pick(data, "notes"), max_length=2000),
            enforce_credit_limit=None if enforce is None else parse_bool(enforce, "enforceCreditLimit"),
        )
        return jsonify(posted.to_dict()), 201

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to create transaction")


@transactions_bp.get("")
@require_actor
def list_transactions_route():
    try:
        station_id = parse_int(request.args.get("station_id"), "station_id")
        start = parse_date(request.args.get("start"), "start", required=False)
        end = parse_date(request.args.get("end"), "end", required=False)

        denied = station_access_error(get_station(station_id))
        if denied:
            return denied

        transactions = transaction_service.list_transactions(station_id, start=start, end=end)
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to list transactions")


@transactions_bp.get("/<int:transaction_id>")
@require_actor
def get_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        denied = station_access_error(get_station(txn.station_id))
        if denied:
            return denied
        return jsonify({"transaction": txn.to_dict(include_readings=True)}), 200

    except SettlementError as exc:
        return error_response(exc)
    except Exception:
        return internal_error("Failed to get transaction")
