# Overview: Shared request parsing and error-to-response mapping for the ledger routes.

from flask import request, jsonify, current_app

from ..services.concurrency import is_transient_db_error
from ..services.receipt_service import UnknownSequenceError
from ..time_utils import parse_iso_date
from ..validation import ConflictError, NotFoundError, ValidationError


MAX_PAGE_SIZE = 500


def parse_pagination(default_limit: int = 100) -> tuple[int, int]:
    limit = request.args.get("limit", default_limit, type=int)
    offset = request.args.get("offset", 0, type=int)

    # Clamp limit
    if limit < 1:
        limit = 1
    if limit > MAX_PAGE_SIZE:
        limit = MAX_PAGE_SIZE
    if offset < 0:
        offset = 0
    return limit, offset


def parse_date_arg(name: str):
    """Read an optional YYYY-MM-DD query parameter; raises ValidationError."""
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be in YYYY-MM-DD format")


def parse_list_filters() -> dict:
    return {
        "date_from": parse_date_arg("date_from"),
        "date_to": parse_date_arg("date_to"),
        "category": request.args.get("category") or None,
        "search": request.args.get("search") or None,
    }


def read_json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def pop_idempotency_key(data: dict):
    """
    Take the idempotency key out of the body (idempotencyKey / idempotency_key)
    or, failing that, from the Idempotency-Key header.
    """
    key = None
    for field in ("idempotencyKey", "idempotency_key"):
        if field in data:
            value = data.pop(field)
            if key is None:
                key = value
    if key is None:
        key = request.headers.get("Idempotency-Key")
    return key


def list_response(items, total: int, limit: int, offset: int):
    return jsonify({
        "items": [item.to_dict() for item in items],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


def ledger_error_response(exc: Exception, *, action: str):
    """
    Map ledger service errors to HTTP responses.

    Anything unrecognized is logged and becomes a 500.
    """
    if isinstance(exc, ValidationError):
        return jsonify({"error": "Validation failed", "message": str(exc)}), 422
    if isinstance(exc, ConflictError):
        body = {"error": str(exc)}
        code = getattr(exc, "code", None)
        if code:
            body["code"] = code
        return jsonify(body), 409
    if isinstance(exc, NotFoundError):
        return jsonify({"error": "Not found", "message": str(exc)}), 404
    if isinstance(exc, UnknownSequenceError):
        return jsonify({
            "error": "Receipt sequence is not initialized",
            "code": "UNKNOWN_SEQUENCE",
            "transactionType": exc.transaction_type,
        }), 500
    if is_transient_db_error(exc):
        current_app.logger.warning("Transient database error while trying to %s: %s", action, exc)
        return transient_error_response()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def transient_error_response():
    return jsonify({
        "error": "Database temporarily unavailable, please retry",
        "code": "DB_UNAVAILABLE",
        "retryable": True,
    }), 503
