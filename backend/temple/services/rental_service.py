# Overview: Service-layer operations for the rent register; shops, tenants, agreements and rent payments.

"""
Rental Service

WHY: Temple-owned shops are let to tenants under agreements. Rent payments
are ledger records (type RentIncome) that must point at a real agreement, so
tenant and shop details on the receipt always match the register.

DESIGN:
- A shop has at most one Active agreement. Creating one marks the shop
  Occupied; ending it (Expired / Terminated) marks the shop Vacant again.
- Register records that ledger records point at are never deleted; they are
  ended or deactivated instead.
- Rent payments go through transaction_service.create_transaction, so they
  get receipt numbers and idempotent replays like every other record.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Agreement, Loan, RentPenalty, Shop, Tenant, Transaction, TYPE_RENT_INCOME
from ..validation import (
    AGREEMENT_POLICY,
    AGREEMENT_UPDATE_POLICY,
    SHOP_POLICY,
    TENANT_POLICY,
    ConflictError,
    NotFoundError,
    ValidationError,
    enforce_rules_rental,
    validate_payload,
)
from . import transaction_service
from .concurrency import begin_write, lock_for_update


class ShopNotFoundError(NotFoundError):
    """Raised when a shop is not found."""
    pass


class TenantNotFoundError(NotFoundError):
    """Raised when a tenant is not found."""
    pass


class AgreementNotFoundError(NotFoundError):
    """Raised when an agreement is not found."""
    pass


class ShopUnavailableError(ConflictError):
    """The shop already has an active agreement or is under maintenance."""
    code = "SHOP_UNAVAILABLE"


class RecordInUseError(ConflictError):
    """Other records still point at the one being deleted."""
    code = "RECORD_IN_USE"


def _commit(duplicate_message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(duplicate_message)
    except Exception:
        db.session.rollback()
        raise


def _clean(model, policy, data: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=model, payload=data, policy=policy, partial=partial)
    enforce_rules_rental(patch)
    return patch


# =============================================================================
# SHOPS
# =============================================================================


def get_shop(shop_id: str) -> Shop:
    shop = db.session.query(Shop).filter_by(id=shop_id).first()
    if not shop:
        raise ShopNotFoundError(f"Shop {shop_id} not found")
    return shop


def list_shops(*, status: str | None = None) -> list[Shop]:
    query = db.session.query(Shop)
    if status:
        query = query.filter(Shop.status == status)
    return query.order_by(Shop.shop_number.asc()).all()


def create_shop(data: dict) -> Shop:
    patch = _clean(Shop, SHOP_POLICY, data, partial=False)
    if patch.get("status") == "Occupied":
        raise ValidationError("A shop becomes Occupied through an agreement")

    if db.session.query(Shop).filter(Shop.shop_number == patch["shop_number"]).first():
        raise ConflictError(f"Shop number '{patch['shop_number']}' already exists")

    shop = Shop(**patch)
    db.session.add(shop)
    _commit(f"Shop number '{patch['shop_number']}' already exists")
    current_app.logger.info("Created shop %s (%s)", shop.shop_number, shop.id)
    return shop


def update_shop(shop_id: str, data: dict) -> Shop:
    shop = get_shop(shop_id)
    patch = _clean(Shop, SHOP_POLICY, data, partial=True)

    if "status" in patch and patch["status"] != shop.status:
        if shop.status == "Occupied" or patch["status"] == "Occupied":
            raise ValidationError("Occupancy follows the shop's agreements; end or create an agreement instead")

    if "shop_number" in patch:
        duplicate = db.session.query(Shop).filter(
            Shop.shop_number == patch["shop_number"],
            Shop.id != shop_id,
        ).first()
        if duplicate:
            raise ConflictError(f"Shop number '{patch['shop_number']}' already exists")

    for key, value in patch.items():
        setattr(shop, key, value)
    _commit(f"Shop number '{shop.shop_number}' already exists")
    current_app.logger.info("Updated shop %s", shop.id)
    return shop


def delete_shop(shop_id: str) -> None:
    shop = get_shop(shop_id)
    if db.session.query(Agreement).filter(Agreement.shop_id == shop_id).count():
        raise RecordInUseError("Shop has agreements and cannot be deleted")
    db.session.delete(shop)
    _commit("Shop could not be deleted")
    current_app.logger.info("Deleted shop %s", shop_id)


# =============================================================================
# TENANTS
# =============================================================================


def get_tenant(tenant_id: str) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        raise TenantNotFoundError(f"Tenant {tenant_id} not found")
    return tenant


def list_tenants(*, status: str | None = None, search: str | None = None) -> list[Tenant]:
    query = db.session.query(Tenant)
    if status:
        query = query.filter(Tenant.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Tenant.name.ilike(pattern), Tenant.phone.ilike(pattern)))
    return query.order_by(Tenant.name.asc()).all()


def _check_email_free(email: str | None, tenant_id: str | None = None) -> None:
    if not email:
        return
    query = db.session.query(Tenant).filter(Tenant.email == email)
    if tenant_id:
        query = query.filter(Tenant.id != tenant_id)
    if query.first():
        raise ConflictError(f"A tenant with email '{email}' already exists")


def create_tenant(data: dict) -> Tenant:
    patch = _clean(Tenant, TENANT_POLICY, data, partial=False)
    _check_email_free(patch.get("email"))

    tenant = Tenant(**patch)
    db.session.add(tenant)
    _commit("A tenant with this email already exists")
    current_app.logger.info("Created tenant %s", tenant.id)
    return tenant


def update_tenant(tenant_id: str, data: dict) -> Tenant:
    tenant = get_tenant(tenant_id)
    patch = _clean(Tenant, TENANT_POLICY, data, partial=True)
    _check_email_free(patch.get("email"), tenant_id)

    for key, value in patch.items():
        setattr(tenant, key, value)
    _commit("A tenant with this email already exists")
    current_app.logger.info("Updated tenant %s", tenant.id)
    return tenant


def delete_tenant(tenant_id: str) -> None:
    tenant = get_tenant(tenant_id)
    if db.session.query(Agreement).filter(Agreement.tenant_id == tenant_id).count():
        raise RecordInUseError("Tenant has agreements; set the tenant Inactive instead")
    db.session.delete(tenant)
    _commit("Tenant could not be deleted")
    current_app.logger.info("Deleted tenant %s", tenant_id)


# =============================================================================
# AGREEMENTS
# =============================================================================


def get_agreement(agreement_id: str) -> Agreement:
    agreement = db.session.query(Agreement).filter_by(id=agreement_id).first()
    if not agreement:
        raise AgreementNotFoundError(f"Agreement {agreement_id} not found")
    return agreement


def list_agreements(
    *,
    status: str | None = None,
    shop_id: str | None = None,
    tenant_id: str | None = None,
) -> list[Agreement]:
    query = db.session.query(Agreement)
    if status:
        query = query.filter(Agreement.status == status)
    if shop_id:
        query = query.filter(Agreement.shop_id == shop_id)
    if tenant_id:
        query = query.filter(Agreement.tenant_id == tenant_id)
    return query.order_by(Agreement.agreement_date.desc(), Agreement.id.asc()).all()


def _occupy(shop: Shop, agreement_id: str | None = None) -> None:
    """Mark the shop Occupied; fails when another active agreement holds it."""
    if shop.status == "Maintenance":
        raise ShopUnavailableError(f"Shop {shop.shop_number} is under maintenance")
    query = db.session.query(Agreement).filter(
        Agreement.shop_id == shop.id,
        Agreement.status == "Active",
    )
    if agreement_id:
        query = query.filter(Agreement.id != agreement_id)
    if query.first():
        raise ShopUnavailableError(f"Shop {shop.shop_number} already has an active agreement")
    shop.status = "Occupied"


def create_agreement(data: dict) -> Agreement:
    """
    Lease a shop to a tenant.

    Raises:
        ValidationError: bad input, unknown shop/tenant, inactive tenant
        ShopUnavailableError: the shop is taken or under maintenance
    """
    patch = _clean(Agreement, AGREEMENT_POLICY, data, partial=False)
    if patch.get("next_due_date") is None:
        patch["next_due_date"] = patch["agreement_date"]

    tenant = db.session.get(Tenant, patch["tenant_id"])
    if tenant is None:
        raise ValidationError(f"tenant_id {patch['tenant_id']} does not match a tenant")
    if tenant.status != "Active":
        raise ValidationError("Tenant is inactive")

    try:
        begin_write()
        shop = lock_for_update(db.session.query(Shop).filter(Shop.id == patch["shop_id"])).first()
        if shop is None:
            raise ValidationError(f"shop_id {patch['shop_id']} does not match a shop")
        if patch.get("status", "Active") == "Active":
            _occupy(shop)

        agreement = Agreement(**patch)
        db.session.add(agreement)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Created agreement %s: shop %s to tenant %s", agreement.id, shop.shop_number, tenant.id
    )
    return agreement


def update_agreement(agreement_id: str, data: dict) -> Agreement:
    """Change lease terms or end the lease; the shop's occupancy follows the status."""
    agreement = get_agreement(agreement_id)
    patch = _clean(Agreement, AGREEMENT_UPDATE_POLICY, data, partial=True)

    try:
        begin_write()
        shop = lock_for_update(db.session.query(Shop).filter(Shop.id == agreement.shop_id)).first()
        new_status = patch.get("status", agreement.status)
        if new_status != agreement.status:
            if new_status == "Active":
                _occupy(shop, agreement.id)
            elif agreement.status == "Active" and shop.status == "Occupied":
                shop.status = "Vacant"

        for key, value in patch.items():
            setattr(agreement, key, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Updated agreement %s", agreement.id)
    return agreement


def delete_agreement(agreement_id: str) -> None:
    agreement = get_agreement(agreement_id)

    if db.session.query(Transaction).filter(Transaction.agreement_id == agreement_id).count():
        raise RecordInUseError("Agreement has recorded payments; terminate it instead")
    if db.session.query(Loan).filter(Loan.agreement_id == agreement_id).count():
        raise RecordInUseError("Agreement has loans; terminate it instead")
    if db.session.query(RentPenalty).filter(RentPenalty.agreement_id == agreement_id).count():
        raise RecordInUseError("Agreement has rent penalties; terminate it instead")

    if agreement.status == "Active" and agreement.shop.status == "Occupied":
        agreement.shop.status = "Vacant"
    db.session.delete(agreement)
    _commit("Agreement could not be deleted")
    current_app.logger.info("Deleted agreement %s", agreement_id)


# =============================================================================
# RENT PAYMENTS
# =============================================================================


def record_rent_payment(
    agreement_id: str,
    data: dict,
    *,
    idempotency_key: str | None = None,
    created_by_user_id: int | None = None,
) -> tuple[Transaction, bool]:
    """
    Record rent collected under an agreement as a RentIncome ledger record.

    The amount defaults to the agreement's monthly rent. Tenant name, tenant
    contact and shop number are copied from the agreement.

    Returns:
        (transaction, created) as transaction_service.create_transaction

    Raises:
        AgreementNotFoundError: unknown agreement (nothing allocated)
    """
    agreement = get_agreement(agreement_id)

    payload = dict(data)
    for key in ("agreementId", "agreement_id"):
        if key in payload and payload.pop(key) != agreement_id:
            raise ValidationError("agreementId in the body does not match the agreement")
    payload["agreement_id"] = agreement.id
    if payload.get("amount") is None:
        payload["amount"] = agreement.monthly_rent

    return transaction_service.create_transaction(
        TYPE_RENT_INCOME,
        payload,
        idempotency_key=idempotency_key,
        created_by_user_id=created_by_user_id,
    )


def list_rent_payments(
    *,
    agreement_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
    **filters,
) -> tuple[list[Transaction], int]:
    return transaction_service.list_transactions(
        transaction_type=TYPE_RENT_INCOME,
        agreement_id=agreement_id,
        limit=limit,
        offset=offset,
        **filters,
    )
