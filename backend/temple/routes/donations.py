# Overview: Flask API routes for donation operations; parses input and returns JSON responses.

"""
Donation Routes

SECURITY: All routes require authentication and the Admin role.

Creation is idempotent: a client that retries with the same idempotencyKey
(body field or Idempotency-Key header) gets the stored record back with 200
instead of a second receipt.
"""

from flask import Blueprint, jsonify, g

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, TYPE_DONATION
from ..services import receipt_service, transaction_service
from .common import (
    ledger_error_response,
    list_response,
    parse_list_filters,
    parse_pagination,
    pop_idempotency_key,
    read_json_body,
)


donations_bp = Blueprint("donations", __name__, url_prefix="/api/donations")


@donations_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_donations_route():
    """
    List donations, newest first.

    Query parameters:
    - date_from / date_to: YYYY-MM-DD, inclusive
    - category, search
    - limit (default 100, max 500), offset

    Returns:
        {items: Donation[], count: int, limit: int, offset: int}
    """
    try:
        limit, offset = parse_pagination()
        items, total = transaction_service.list_transactions(
            transaction_type=TYPE_DONATION,
            limit=limit,
            offset=offset,
            **parse_list_filters(),
        )
        return list_response(items, total, limit, offset)
    except Exception as e:
        return ledger_error_response(e, action="list donations")


@donations_bp.get("/next-receipt-number")
@require_auth
@require_role(ROLE_ADMIN)
def next_receipt_number_route():
    """
    Preview the receipt number the next donation will probably get.

    Non-binding: a concurrent donation may claim it first.

    Returns:
        {receiptNumber: "0007"}
    """
    try:
        return jsonify({"receiptNumber": receipt_service.peek_next(TYPE_DONATION)})
    except Exception as e:
        return ledger_error_response(e, action="preview donation receipt number")


@donations_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_donation_route():
    """
    Record a donation and allocate its receipt number.

    Request body:
    {
        "date": "2024-01-15",          // required, YYYY-MM-DD
        "category": "General",         // required
        "subCategory": "...",          // optional
        "description": "...",          // required
        "amount": 501,                 // required, > 0
        "donorName": "...",            // required
        "donorContact": "9876543210",  // optional, 10 digits
        "familyMembers": 4,            // optional
        "amountPerPerson": 125.25,     // optional
        "idempotencyKey": "..."        // optional, unique per submission
    }

    Returns:
        201 with the new donation, or 200 with the stored one on a replayed key
        409 on a lost race, 422 on invalid input
    """
    try:
        data = read_json_body()
        idempotency_key = pop_idempotency_key(data)
        txn, created = transaction_service.create_transaction(
            TYPE_DONATION,
            data,
            idempotency_key=idempotency_key,
            created_by_user_id=g.current_user.id,
        )
        return jsonify(txn.to_dict()), 201 if created else 200
    except Exception as e:
        return ledger_error_response(e, action="create donation")


@donations_bp.get("/<string:transaction_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_donation_route(transaction_id: str):
    try:
        txn = transaction_service.get_transaction(transaction_id, TYPE_DONATION)
        return jsonify(txn.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch donation")


@donations_bp.put("/<string:transaction_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_donation_route(transaction_id: str):
    """Correct a donation. Receipt number and type cannot change."""
    try:
        data = read_json_body()
        txn = transaction_service.update_transaction(transaction_id, data, TYPE_DONATION)
        return jsonify(txn.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update donation")


@donations_bp.delete("/<string:transaction_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_donation_route(transaction_id: str):
    try:
        transaction_service.delete_transaction(transaction_id, TYPE_DONATION)
        return jsonify({"message": "Donation deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete donation")
