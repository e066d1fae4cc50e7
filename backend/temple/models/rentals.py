from __future__ import annotations

import uuid

from ..extensions import db
from temple.time_utils import to_utc_z


# =============================================================================
# STATUSES
# =============================================================================

SHOP_STATUSES = ("Vacant", "Occupied", "Maintenance")
TENANT_STATUSES = ("Active", "Inactive")
AGREEMENT_TYPES = ("Residential", "Commercial")
AGREEMENT_STATUSES = ("Active", "Expired", "Terminated")
LOAN_STATUSES = ("Active", "Completed", "Defaulted")
PENALTY_STATUSES = ("Pending", "Paid")


def _enum(values, name):
    return db.Enum(*values, name=name, native_enum=False, create_constraint=True, validate_strings=True)


def _new_id() -> str:
    return uuid.uuid4().hex


def _money(value):
    if value is None:
        return None
    return float(value)


def _day(value):
    return value.isoformat() if value else None


class Shop(db.Model):
    """A rentable unit on temple property."""
    __tablename__ = "shops"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    shop_number = db.Column(db.String(20), nullable=False, unique=True, index=True)
    size = db.Column(db.Numeric(10, 2), nullable=False)
    monthly_rent = db.Column(db.Numeric(10, 2), nullable=False)
    deposit = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(_enum(SHOP_STATUSES, "shop_status"), nullable=False, default="Vacant", index=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shopNumber": self.shop_number,
            "size": _money(self.size),
            "monthlyRent": _money(self.monthly_rent),
            "deposit": _money(self.deposit),
            "status": self.status,
            "description": self.description,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Tenant(db.Model):
    __tablename__ = "tenants"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(100), nullable=False, index=True)
    phone = db.Column(db.String(20), nullable=False, index=True)
    email = db.Column(db.String(100), nullable=True, unique=True)
    address = db.Column(db.Text, nullable=True)
    business_type = db.Column(db.String(100), nullable=True)
    status = db.Column(_enum(TENANT_STATUSES, "tenant_status"), nullable=False, default="Active", index=True)
    id_proof = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "businessType": self.business_type,
            "status": self.status,
            "idProof": self.id_proof,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Agreement(db.Model):
    """
    A lease of one shop to one tenant.

    INVARIANTS:
    - a shop has at most one Active agreement
    - agreements with recorded rent payments, loans or penalties are never deleted
    """
    __tablename__ = "agreements"
    __table_args__ = (
        db.CheckConstraint("duration >= 1", name="ck_agreements_duration_positive"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    shop_id = db.Column(db.String(36), db.ForeignKey("shops.id"), nullable=False, index=True)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    agreement_date = db.Column(db.Date, nullable=False)
    duration = db.Column(db.Integer, nullable=False)  # months
    monthly_rent = db.Column(db.Numeric(10, 2), nullable=False)
    security_deposit = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    advance_rent = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    agreement_type = db.Column(_enum(AGREEMENT_TYPES, "agreement_type"), nullable=False, default="Commercial")
    status = db.Column(_enum(AGREEMENT_STATUSES, "agreement_status"), nullable=False, default="Active", index=True)
    next_due_date = db.Column(db.Date, nullable=False)
    last_payment_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    shop = db.relationship("Shop", backref=db.backref("agreements", lazy=True))
    tenant = db.relationship("Tenant", backref=db.backref("agreements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shopId": self.shop_id,
            "shopNumber": self.shop.shop_number if self.shop else None,
            "tenantId": self.tenant_id,
            "tenantName": self.tenant.name if self.tenant else None,
            "agreementDate": _day(self.agreement_date),
            "duration": self.duration,
            "monthlyRent": _money(self.monthly_rent),
            "securityDeposit": _money(self.security_deposit),
            "advanceRent": _money(self.advance_rent),
            "agreementType": self.agreement_type,
            "status": self.status,
            "nextDueDate": _day(self.next_due_date),
            "lastPaymentDate": _day(self.last_payment_date),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class Loan(db.Model):
    """
    Money lent to a tenant under an agreement, repaid in EMIs.

    EMI repayments are ledger records carrying loan_id and emi_amount; recording
    one reduces outstanding_balance in the same DB transaction.
    """
    __tablename__ = "loans"
    __table_args__ = (
        db.CheckConstraint("loan_amount > 0", name="ck_loans_amount_positive"),
        db.CheckConstraint("outstanding_balance >= 0", name="ck_loans_outstanding_non_negative"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    agreement_id = db.Column(db.String(36), db.ForeignKey("agreements.id"), nullable=False, index=True)
    tenant_id = db.Column(db.String(36), db.ForeignKey("tenants.id"), nullable=False, index=True)
    loan_amount = db.Column(db.Numeric(12, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    disbursed_date = db.Column(db.Date, nullable=False, index=True)
    loan_duration = db.Column(db.Integer, nullable=False)  # months
    monthly_emi = db.Column(db.Numeric(10, 2), nullable=False)
    outstanding_balance = db.Column(db.Numeric(12, 2), nullable=False)
    total_repaid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(_enum(LOAN_STATUSES, "loan_status"), nullable=False, default="Active", index=True)
    next_emi_date = db.Column(db.Date, nullable=False)
    last_payment_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    agreement = db.relationship("Agreement", backref=db.backref("loans", lazy=True))
    tenant = db.relationship("Tenant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agreementId": self.agreement_id,
            "tenantId": self.tenant_id,
            "tenantName": self.tenant.name if self.tenant else None,
            "loanAmount": _money(self.loan_amount),
            "interestRate": _money(self.interest_rate),
            "disbursedDate": _day(self.disbursed_date),
            "loanDuration": self.loan_duration,
            "monthlyEmi": _money(self.monthly_emi),
            "outstandingBalance": _money(self.outstanding_balance),
            "totalRepaid": _money(self.total_repaid),
            "status": self.status,
            "nextEmiDate": _day(self.next_emi_date),
            "lastPaymentDate": _day(self.last_payment_date),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class RentPenalty(db.Model):
    """Late-payment penalty on an agreement. Settled by a ledger record carrying penalty_id."""
    __tablename__ = "rent_penalties"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    agreement_id = db.Column(db.String(36), db.ForeignKey("agreements.id"), nullable=False, index=True)
    rent_amount = db.Column(db.Numeric(10, 2), nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    paid_date = db.Column(db.Date, nullable=True)
    penalty_rate = db.Column(db.Numeric(5, 2), nullable=False)
    penalty_amount = db.Column(db.Numeric(10, 2), nullable=False)
    penalty_paid = db.Column(db.Boolean, nullable=False, default=False, index=True)
    penalty_paid_date = db.Column(db.Date, nullable=True)
    status = db.Column(_enum(PENALTY_STATUSES, "penalty_status"), nullable=False, default="Pending", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    agreement = db.relationship("Agreement", backref=db.backref("penalties", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "agreementId": self.agreement_id,
            "tenantName": self.agreement.tenant.name if self.agreement and self.agreement.tenant else None,
            "rentAmount": _money(self.rent_amount),
            "dueDate": _day(self.due_date),
            "paidDate": _day(self.paid_date),
            "penaltyRate": _money(self.penalty_rate),
            "penaltyAmount": _money(self.penalty_amount),
            "penaltyPaid": self.penalty_paid,
            "penaltyPaidDate": _day(self.penalty_paid_date),
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
