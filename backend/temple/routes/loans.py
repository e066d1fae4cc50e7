# Overview: Flask API routes for tenant loans and rent penalties.

"""
Loan and Rent Penalty Routes

SECURITY: All routes require authentication.
- Admin, Treasurer and Viewer can read
- Admin and Treasurer can create and correct loans and penalties
- Only Admin can delete

Repayments are not posted here: an EMI or a penalty is paid by recording a
rent payment (or any ledger record) that carries loanId/emiAmount or penaltyId.
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER
from ..services import loan_service
from .common import ledger_error_response, read_json_body


loans_bp = Blueprint("loans", __name__, url_prefix="/api/loans")
penalties_bp = Blueprint("rent_penalties", __name__, url_prefix="/api/rent-penalties")

READ_ROLES = (ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER)
WRITE_ROLES = (ROLE_ADMIN, ROLE_TREASURER)


def _list_args() -> dict:
    return {
        "status": request.args.get("status") or None,
        "agreement_id": request.args.get("agreement_id") or None,
    }


# =============================================================================
# LOANS
# =============================================================================


@loans_bp.get("")
@require_auth
@require_role(*READ_ROLES)
def list_loans_route():
    try:
        loans = loan_service.list_loans(**_list_args())
        return jsonify({"items": [loan.to_dict() for loan in loans], "count": len(loans)})
    except Exception as e:
        return ledger_error_response(e, action="list loans")


@loans_bp.post("")
@require_auth
@require_role(*WRITE_ROLES)
def create_loan_route():
    """
    Request body:
    {
        "agreementId": "...",          // required
        "loanAmount": 50000,           // required, > 0
        "interestRate": 12,            // optional, percent
        "disbursedDate": "2024-01-10", // required
        "loanDuration": 10,            // required, months
        "monthlyEmi": 5000,            // required, <= loanAmount
        "nextEmiDate": "2024-02-10"    // defaults to disbursedDate
    }
    """
    try:
        loan = loan_service.create_loan(read_json_body())
        return jsonify(loan.to_dict()), 201
    except Exception as e:
        return ledger_error_response(e, action="create loan")


@loans_bp.get("/<string:loan_id>")
@require_auth
@require_role(*READ_ROLES)
def get_loan_route(loan_id: str):
    try:
        return jsonify(loan_service.get_loan(loan_id).to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch loan")


@loans_bp.put("/<string:loan_id>")
@require_auth
@require_role(*WRITE_ROLES)
def update_loan_route(loan_id: str):
    try:
        loan = loan_service.update_loan(loan_id, read_json_body())
        return jsonify(loan.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update loan")


@loans_bp.delete("/<string:loan_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_loan_route(loan_id: str):
    try:
        loan_service.delete_loan(loan_id)
        return jsonify({"message": "Loan deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete loan")


# =============================================================================
# RENT PENALTIES
# =============================================================================


@penalties_bp.get("")
@require_auth
@require_role(*READ_ROLES)
def list_penalties_route():
    try:
        penalties = loan_service.list_penalties(**_list_args())
        return jsonify({"items": [p.to_dict() for p in penalties], "count": len(penalties)})
    except Exception as e:
        return ledger_error_response(e, action="list rent penalties")


@penalties_bp.post("")
@require_auth
@require_role(*WRITE_ROLES)
def create_penalty_route():
    """
    Request body:
    {
        "agreementId": "...",          // required
        "dueDate": "2024-01-05",       // required
        "paidDate": "2024-01-20",      // optional
        "penaltyRate": 2,              // required, percent
        "rentAmount": 5000,            // defaults to the monthly rent
        "penaltyAmount": 100           // defaults to rentAmount * penaltyRate / 100
    }
    """
    try:
        penalty = loan_service.create_penalty(read_json_body())
        return jsonify(penalty.to_dict()), 201
    except Exception as e:
        return ledger_error_response(e, action="create rent penalty")


@penalties_bp.get("/<string:penalty_id>")
@require_auth
@require_role(*READ_ROLES)
def get_penalty_route(penalty_id: str):
    try:
        return jsonify(loan_service.get_penalty(penalty_id).to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch rent penalty")


@penalties_bp.put("/<string:penalty_id>")
@require_auth
@require_role(*WRITE_ROLES)
def update_penalty_route(penalty_id: str):
    try:
        penalty = loan_service.update_penalty(penalty_id, read_json_body())
        return jsonify(penalty.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update rent penalty")


@penalties_bp.delete("/<string:penalty_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_penalty_route(penalty_id: str):
    try:
        loan_service.delete_penalty(penalty_id)
        return jsonify({"message": "Rent penalty deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete rent penalty")
