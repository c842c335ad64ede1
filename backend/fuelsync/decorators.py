# Overview: Request-context decorators and error translation for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import SettlementError
from .extensions import db
from .models import User

ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting user supplied by the upstream gateway.

    Authentication happens before requests reach this service; the gateway
    forwards the authenticated user's id in the X-User-Id header.

    Sets g.current_user. Returns 401 when the header is missing, malformed
    or names an unknown or inactive user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "UNAUTHENTICATED", "message": "Acting user required"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "UNAUTHENTICATED", "message": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the acting user to hold one of the given roles (after @require_actor)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "UNAUTHENTICATED", "message": "Acting user required"}), 401
            if user.role not in roles:
                return jsonify({
                    "error": "FORBIDDEN",
                    "message": "Insufficient role",
                    "details": {"required_roles": list(roles), "role": user.role},
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def station_access_error(station):
    """403 response when the acting user may not work with this station, else None."""
    if g.current_user.can_access_station(station):
        return None
    return jsonify({
        "error": "FORBIDDEN",
        "message": "Station access denied",
        "details": {"station_id": station.id if station is not None else None},
    }), 403


def error_response(exc: SettlementError):
    """Translate a pipeline error into its JSON body and HTTP status."""
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.http_status


def internal_error(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "INTERNAL_ERROR", "message": "Internal server error"}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
