# Overview: Flask API routes for expense operations; parses input and returns JSON responses.

"""
Expense Routes

SECURITY: All routes require authentication.
- Admin, Treasurer and Viewer can read
- Admin and Treasurer can record and correct expenses
- Only Admin can delete
"""

from flask import Blueprint, jsonify, g

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER, TYPE_EXPENSE
from ..services import receipt_service, transaction_service
from .common import (
    ledger_error_response,
    list_response,
    parse_list_filters,
    parse_pagination,
    pop_idempotency_key,
    read_json_body,
)


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")

READ_ROLES = (ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER)
WRITE_ROLES = (ROLE_ADMIN, ROLE_TREASURER)


@expenses_bp.get("")
@require_auth
@require_role(*READ_ROLES)
def list_expenses_route():
    try:
        limit, offset = parse_pagination()
        items, total = transaction_service.list_transactions(
            transaction_type=TYPE_EXPENSE,
            limit=limit,
            offset=offset,
            **parse_list_filters(),
        )
        return list_response(items, total, limit, offset)
    except Exception as e:
        return ledger_error_response(e, action="list expenses")


@expenses_bp.get("/next-receipt-number")
@require_auth
@require_role(*WRITE_ROLES)
def next_receipt_number_route():
    try:
        return jsonify({"receiptNumber": receipt_service.peek_next(TYPE_EXPENSE)})
    except Exception as e:
        return ledger_error_response(e, action="preview expense receipt number")


@expenses_bp.post("")
@require_auth
@require_role(*WRITE_ROLES)
def create_expense_route():
    """
    Record an expense and allocate its receipt number.

    Request body:
    {
        "date": "2024-01-15",          // required, YYYY-MM-DD
        "category": "Maintenance",     // required
        "description": "...",          // required
        "amount": 1200.50,             // required, > 0
        "payeeName": "...",            // required
        "payeeContact": "9876543210",  // optional, 10 digits
        "vendor": "...", "receipt": "...",
        "idempotencyKey": "..."        // optional, unique per submission
    }

    Returns:
        201 new expense, 200 replayed idempotency key, 409 lost race, 422 invalid
    """
    try:
        data = read_json_body()
        idempotency_key = pop_idempotency_key(data)
        txn, created = transaction_service.create_transaction(
            TYPE_EXPENSE,
            data,
            idempotency_key=idempotency_key,
            created_by_user_id=g.current_user.id,
        )
        return jsonify(txn.to_dict()), 201 if created else 200
    except Exception as e:
        return ledger_error_response(e, action="create expense")


@expenses_bp.get("/<string:transaction_id>")
@require_auth
@require_role(*READ_ROLES)
def get_expense_route(transaction_id: str):
    try:
        txn = transaction_service.get_transaction(transaction_id, TYPE_EXPENSE)
        return jsonify(txn.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch expense")


@expenses_bp.put("/<string:transaction_id>")
@require_auth
@require_role(*WRITE_ROLES)
def update_expense_route(transaction_id: str):
    try:
        data = read_json_body()
        txn = transaction_service.update_transaction(transaction_id, data, TYPE_EXPENSE)
        return jsonify(txn.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update expense")


@expenses_bp.delete("/<string:transaction_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_expense_route(transaction_id: str):
    try:
        transaction_service.delete_transaction(transaction_id, TYPE_EXPENSE)
        return jsonify({"message": "Expense deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete expense")
