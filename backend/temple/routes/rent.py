# Overview: Flask API routes for the rent register (shops, tenants, agreements) and rent payments.

"""
Rent Routes

SECURITY: All routes require authentication.
- Admin, Treasurer and Viewer can read
- Only Admin maintains shops, tenants and agreements
- Admin and Treasurer can record rent payments
- Only Admin can delete
"""

from flask import Blueprint, jsonify, g, request

from ..decorators import require_auth, require_role
from ..models import ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER, TYPE_RENT_INCOME
from ..services import rental_service, transaction_service
from ..validation import ValidationError
from .common import (
    ledger_error_response,
    list_response,
    parse_list_filters,
    parse_pagination,
    pop_idempotency_key,
    read_json_body,
)


rent_bp = Blueprint("rent", __name__, url_prefix="/api/rent")

READ_ROLES = (ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER)
WRITE_ROLES = (ROLE_ADMIN, ROLE_TREASURER)


def _items(records):
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)})


# =============================================================================
# SHOPS
# =============================================================================


@rent_bp.get("/shops")
@require_auth
@require_role(*READ_ROLES)
def list_shops_route():
    try:
        return _items(rental_service.list_shops(status=request.args.get("status") or None))
    except Exception as e:
        return ledger_error_response(e, action="list shops")


@rent_bp.post("/shops")
@require_auth
@require_role(ROLE_ADMIN)
def create_shop_route():
    """
    Request body:
    {
        "shopNumber": "S-01",     // required, unique
        "size": 120,              // required, > 0
        "monthlyRent": 5000,      // required, > 0
        "deposit": 20000,         // required, >= 0
        "status": "Vacant",       // Vacant | Maintenance
        "description": "..."
    }
    """
    try:
        shop = rental_service.create_shop(read_json_body())
        return jsonify(shop.to_dict()), 201
    except Exception as e:
        return ledger_error_response(e, action="create shop")


@rent_bp.get("/shops/<string:shop_id>")
@require_auth
@require_role(*READ_ROLES)
def get_shop_route(shop_id: str):
    try:
        return jsonify(rental_service.get_shop(shop_id).to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch shop")


@rent_bp.put("/shops/<string:shop_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_shop_route(shop_id: str):
    try:
        shop = rental_service.update_shop(shop_id, read_json_body())
        return jsonify(shop.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update shop")


@rent_bp.delete("/shops/<string:shop_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_shop_route(shop_id: str):
    try:
        rental_service.delete_shop(shop_id)
        return jsonify({"message": "Shop deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete shop")


# =============================================================================
# TENANTS
# =============================================================================


@rent_bp.get("/tenants")
@require_auth
@require_role(*READ_ROLES)
def list_tenants_route():
    try:
        tenants = rental_service.list_tenants(
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
        )
        return _items(tenants)
    except Exception as e:
        return ledger_error_response(e, action="list tenants")


@rent_bp.post("/tenants")
@require_auth
@require_role(ROLE_ADMIN)
def create_tenant_route():
    """
    Request body:
    {
        "name": "...",            // required
        "phone": "9876543210",    // required, 10 digits
        "email": "...",           // optional, unique
        "address": "...", "businessType": "...", "idProof": "...",
        "status": "Active"        // Active | Inactive
    }
    """
    try:
        tenant = rental_service.create_tenant(read_json_body())
        return jsonify(tenant.to_dict()), 201
    except Exception as e:
        return ledger_error_response(e, action="create tenant")


@rent_bp.get("/tenants/<string:tenant_id>")
@require_auth
@require_role(*READ_ROLES)
def get_tenant_route(tenant_id: str):
    try:
        return jsonify(rental_service.get_tenant(tenant_id).to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch tenant")


@rent_bp.put("/tenants/<string:tenant_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_tenant_route(tenant_id: str):
    try:
        tenant = rental_service.update_tenant(tenant_id, read_json_body())
        return jsonify(tenant.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update tenant")


@rent_bp.delete("/tenants/<string:tenant_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_tenant_route(tenant_id: str):
    try:
        rental_service.delete_tenant(tenant_id)
        return jsonify({"message": "Tenant deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete tenant")


# =============================================================================
# AGREEMENTS
# =============================================================================


@rent_bp.get("/agreements")
@require_auth
@require_role(*READ_ROLES)
def list_agreements_route():
    try:
        agreements = rental_service.list_agreements(
            status=request.args.get("status") or None,
            shop_id=request.args.get("shop_id") or None,
            tenant_id=request.args.get("tenant_id") or None,
        )
        return _items(agreements)
    except Exception as e:
        return ledger_error_response(e, action="list agreements")


@rent_bp.post("/agreements")
@require_auth
@require_role(ROLE_ADMIN)
def create_agreement_route():
    """
    Request body:
    {
        "shopId": "...", "tenantId": "...",   // required
        "agreementDate": "2024-01-01",        // required
        "duration": 11,                       // required, months
        "monthlyRent": 5000,                  // required, > 0
        "securityDeposit": 0, "advanceRent": 0,
        "agreementType": "Commercial",
        "nextDueDate": "2024-02-01"           // defaults to agreementDate
    }

    Returns:
        201 created, 409 shop not available, 422 invalid
    """
    try:
        agreement = rental_service.create_agreement(read_json_body())
        return jsonify(agreement.to_dict()), 201
    except Exception as e:
        return ledger_error_response(e, action="create agreement")


@rent_bp.get("/agreements/<string:agreement_id>")
@require_auth
@require_role(*READ_ROLES)
def get_agreement_route(agreement_id: str):
    try:
        return jsonify(rental_service.get_agreement(agreement_id).to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch agreement")


@rent_bp.put("/agreements/<string:agreement_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_agreement_route(agreement_id: str):
    try:
        agreement = rental_service.update_agreement(agreement_id, read_json_body())
        return jsonify(agreement.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="update agreement")


@rent_bp.delete("/agreements/<string:agreement_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_agreement_route(agreement_id: str):
    try:
        rental_service.delete_agreement(agreement_id)
        return jsonify({"message": "Agreement deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete agreement")


# =============================================================================
# RENT PAYMENTS
# =============================================================================


@rent_bp.get("/payments")
@require_auth
@require_role(*READ_ROLES)
def list_payments_route():
    try:
        limit, offset = parse_pagination()
        items, total = rental_service.list_rent_payments(
            agreement_id=request.args.get("agreement_id") or None,
            limit=limit,
            offset=offset,
            **parse_list_filters(),
        )
        return list_response(items, total, limit, offset)
    except Exception as e:
        return ledger_error_response(e, action="list rent payments")


@rent_bp.post("/payments")
@require_auth
@require_role(*WRITE_ROLES)
def create_payment_route():
    """
    Record rent collected under an agreement.

    Request body:
    {
        "agreementId": "...",          // required
        "date": "2024-01-15",          // required, YYYY-MM-DD
        "amount": 5000,                // optional, defaults to the monthly rent
        "paymentMethod": "UPI",        // optional
        "loanId": "...", "emiAmount": 1000,   // optional EMI repayment
        "penaltyId": "...",                   // optional penalty settlement
        "idempotencyKey": "..."
    }

    Tenant and shop details come from the agreement.

    Returns:
        201 new payment, 200 replayed idempotency key, 404 unknown agreement,
        409 conflict, 422 invalid
    """
    try:
        data = read_json_body()
        idempotency_key = pop_idempotency_key(data)
        agreement_id = data.get("agreementId", data.get("agreement_id"))
        if isinstance(agreement_id, str):
            agreement_id = agreement_id.strip()
        if not agreement_id:
            raise ValidationError("Missing required fields: agreement_id")
        txn, created = rental_service.record_rent_payment(
            agreement_id,
            data,
            idempotency_key=idempotency_key,
            created_by_user_id=g.current_user.id,
        )
        return jsonify(txn.to_dict()), 201 if created else 200
    except Exception as e:
        return ledger_error_response(e, action="record rent payment")


@rent_bp.get("/payments/<string:transaction_id>")
@require_auth
@require_role(*READ_ROLES)
def get_payment_route(transaction_id: str):
    try:
        txn = transaction_service.get_transaction(transaction_id, TYPE_RENT_INCOME)
        return jsonify(txn.to_dict())
    except Exception as e:
        return ledger_error_response(e, action="fetch rent payment")


@rent_bp.delete("/payments/<string:transaction_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_payment_route(transaction_id: str):
    try:
        transaction_service.delete_transaction(transaction_id, TYPE_RENT_INCOME)
        return jsonify({"message": "Rent payment deleted successfully"})
    except Exception as e:
        return ledger_error_response(e, action="delete rent payment")
