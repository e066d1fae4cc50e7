# Overview: Flask API routes for receipt sequence inspection; parses input and returns JSON responses.

"""
Receipt sequence routes (Admin only).

Read-only: counters only move when a record is created.
"""

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, TRANSACTION_TYPES
from ..services import receipt_service
from .common import ledger_error_response


receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipt-sequences")


@receipts_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_sequences_route():
    try:
        items = []
        for sequence in receipt_service.list_sequences():
            item = sequence.to_dict()
            item["receiptNumber"] = receipt_service.format_receipt_number(sequence.next_number)
            items.append(item)
        return jsonify({"items": items, "count": len(items)})
    except Exception as e:
        return ledger_error_response(e, action="list receipt sequences")


@receipts_bp.get("/<string:transaction_type>/next")
@require_auth
@require_role(ROLE_ADMIN)
def peek_sequence_route(transaction_type: str):
    if transaction_type not in TRANSACTION_TYPES:
        return jsonify({"error": f"Unknown transaction type: {transaction_type}"}), 404
    try:
        return jsonify({
            "transactionType": transaction_type,
            "receiptNumber": receipt_service.peek_next(transaction_type),
        })
    except Exception as e:
        return ledger_error_response(e, action="preview receipt number")
