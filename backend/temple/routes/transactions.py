# Overview: Flask API routes for all ledger entries regardless of type; parses input and returns JSON responses.

"""
Transaction Routes

Generic access to every transaction type (Donation, Expense, Utilities,
Salary, RentIncome). Utilities, salary and rent receipts are recorded here;
donations and expenses also have their own endpoints.

SECURITY:
- Admin, Treasurer and Viewer can read
- Admin and Treasurer can record and correct entries
- Only Admin can delete
- Donations stay Admin-only for writes, matching /api/donations
"""

from flask import Blueprint, jsonify, g, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER, TYPE_DONATION
from ..services import receipt_service, transaction_service
from ..validation import ValidationError
from .common import (
    ledger_error_response,
    list_response,
    parse_date_arg,
    parse_list_filters,
    parse_pagination,
    pop_idempotency_key,
    read_json_body,
)


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

READ_ROLES = (ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER)
WRITE_ROLES = (ROLE_ADMIN, ROLE_TREASURER)


def _donation_write_denied(transaction_type: str):
    if transaction_type == TYPE_DONATION and g.current_user.role != ROLE_ADMIN:
        return jsonify({
            "error": "Permission denied",
            "required_roles": [ROLE_ADMIN],
            "message": "Access denied. Required roles: Admin",
        }), 403
    return None


def _type_arg(required: bool):
    raw = request.args.get("type")
    if not raw:
        if required:
            raise ValidationError("type is required")
        return None
    return transaction_service.check_transaction_type(raw)


@transactions_bp.get("")
@require_auth
@require_role(*READ_ROLES)
def list_transactions_route():
    """
    List transactions of any type, newest first.

    Query parameters:
    - type: optional transaction type filter
    - date_from / date_to, category, search, limit, offset
    """
    try:
        limit, offset = parse_pagination()
        items, total = transaction_service.list_transactions(
            transaction_type=_type_arg(required=False),
            limit=limit,
            offset=offset,
            **parse_list_filters(),
        )
        return list_response(items, total, limit, offset)
    except Exception as e:
        return ledger_error_response(e, action="list transactions")


@transactions_bp.get("/summary")
@require_auth
@require_role(*READ_ROLES)
def summary_route():
    """
    Totals per type plus income, outgoing and net for an optional date range.
    """
    try:
        summary = transaction_service.summarize_transactions(
            date_from=parse_date_arg("date_from"),
            date_to=parse_date_arg("date_to"),
        )
        return jsonify(summary)
    except Exception as e:
        return ledger_error_response(e, action="summarize transactions")


@transactions_bp.get("/next-receipt-number")
@require_auth
@require_role(*WRITE_ROLES)
def next_receipt_number_route():
    """Non-binding preview: GET /api/transactions/next-receipt-number?type=Salary"""
    try:
        transaction_type = _type_arg(required=True)
        return jsonify({
            "transactionType": transaction_type,
            "receiptNumber": receipt_service.peek_next(transaction_type),
        })
    except Exception as e:
        return ledger_error_response(e, action="preview receipt number")


@transactions_bp.post("")
@require_auth
@require_role(*WRITE_ROLES)
def create_transaction_route():
    """
    Record an entry of the type given in the body ("type": "Salary", ...).

    Returns:
        201 new record, 200 replayed idempotency key, 409 lost race, 422 invalid
    """
    try:
        data = read_json_body()
        transaction_type = transaction_service.check_transaction_type(data.pop("type", None))
        denied = _donation_write_denied(transaction_type)
        if denied:
            return denied
        idempotency_key = pop_idempotency_key(data)
        txn, created = transaction_service.create_transaction(
            transaction_type,
            data,
            idempotency_key=idempotency_key,
            created_by_user_id=g.current_user.id,
        )
        return jsonify(txn.to_dict()), 201 if created else 200
    except Exception as e:
        return ledger_error_response(e, action="create transaction")


@transactions_bp.get("/<string:transaction_id>")
@require_auth
@require_role(*READ_ROLES)
def get_transaction_route(transaction_id: str):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        return jsonify(txn.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch transaction")


@transactions_bp.put("/<string:transaction_id>")
@require_auth
@require_role(*WRITE_ROLES)
def update_transaction_route(transaction_id: str):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        denied = _donation_write_denied(txn.type)
        if denied:
            return denied
        data = read_json_body()
        txn = transaction_service.update_transaction(transaction_id, data)
        return jsonify(txn.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update transaction")


@transactions_bp.delete("/<string:transaction_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_transaction_route(transaction_id: str):
    try:
        transaction_service.delete_transaction(transaction_id)
        return jsonify({"message": "Transaction deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete transaction")
