# Overview: Service-layer operations for tenant loans and rent penalties.

"""
Loan and Rent Penalty Service

Loans are lent against an agreement and repaid through EMI ledger records
(loan_id + emi_amount). Rent penalties are charged on late rent and settled
by a ledger record carrying penalty_id. Balances and paid flags move only
through those ledger records (see transaction_service), never by editing the
loan or penalty directly.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..extensions import db
from ..models import Agreement, Loan, RentPenalty, Transaction
from ..validation import (
    LOAN_POLICY,
    LOAN_UPDATE_POLICY,
    PENALTY_POLICY,
    PENALTY_UPDATE_POLICY,
    ConflictError,
    NotFoundError,
    ValidationError,
    enforce_rules_rental,
    validate_payload,
)
from .rental_service import RecordInUseError


class LoanNotFoundError(NotFoundError):
    """Raised when a loan is not found."""
    pass


class PenaltyNotFoundError(NotFoundError):
    """Raised when a rent penalty is not found."""
    pass


def _save() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _agreement_for(patch: dict):
    """Resolve agreement_id from a payload; an unknown id is a validation error."""
    agreement = db.session.get(Agreement, patch["agreement_id"])
    if agreement is None:
        raise ValidationError(f"agreement_id {patch['agreement_id']} does not match an agreement")
    return agreement


# =============================================================================
# LOANS
# =============================================================================


def get_loan(loan_id: str) -> Loan:
    loan = db.session.query(Loan).filter_by(id=loan_id).first()
    if not loan:
        raise LoanNotFoundError(f"Loan {loan_id} not found")
    return loan


def list_loans(*, status: str | None = None, agreement_id: str | None = None) -> list[Loan]:
    query = db.session.query(Loan)
    if status:
        query = query.filter(Loan.status == status)
    if agreement_id:
        query = query.filter(Loan.agreement_id == agreement_id)
    return query.order_by(Loan.disbursed_date.desc(), Loan.id.asc()).all()


def create_loan(data: dict) -> Loan:
    """
    Lend money to the tenant of an agreement.

    The outstanding balance starts at the loan amount; the first EMI is due on
    next_emi_date, or on the disbursal date when omitted.
    """
    patch = validate_payload(model=Loan, payload=data, policy=LOAN_POLICY, partial=False)
    enforce_rules_rental(patch)

    agreement = _agreement_for(patch)
    if patch["monthly_emi"] > patch["loan_amount"]:
        raise ValidationError("monthly_emi cannot exceed loan_amount")
    if patch.get("status", "Active") != "Active":
        raise ValidationError("A new loan is Active")
    if patch.get("next_emi_date") is None:
        patch["next_emi_date"] = patch["disbursed_date"]

    loan = Loan(
        tenant_id=agreement.tenant_id,
        outstanding_balance=patch["loan_amount"],
        total_repaid=Decimal("0.00"),
        **patch,
    )
    db.session.add(loan)
    _save()
    current_app.logger.info(
        "Created loan %s of %s for agreement %s", loan.id, loan.loan_amount, agreement.id
    )
    return loan


def update_loan(loan_id: str, data: dict) -> Loan:
    loan = get_loan(loan_id)
    patch = validate_payload(model=Loan, payload=data, policy=LOAN_UPDATE_POLICY, partial=True)
    enforce_rules_rental(patch)

    status = patch.get("status")
    if status == "Completed" and loan.outstanding_balance > 0:
        raise ValidationError("A loan with an outstanding balance cannot be Completed")
    if status == "Active" and loan.outstanding_balance <= 0:
        raise ValidationError("A fully repaid loan cannot be Active")

    for key, value in patch.items():
        setattr(loan, key, value)
    _save()
    current_app.logger.info("Updated loan %s", loan.id)
    return loan


def delete_loan(loan_id: str) -> None:
    loan = get_loan(loan_id)
    if db.session.query(Transaction).filter(Transaction.loan_id == loan_id).count():
        raise RecordInUseError("Loan has recorded repayments and cannot be deleted")
    db.session.delete(loan)
    _save()
    current_app.logger.info("Deleted loan %s", loan_id)


# =============================================================================
# RENT PENALTIES
# =============================================================================


def calculate_penalty(rent_amount: Decimal, penalty_rate: Decimal) -> Decimal:
    """penalty_rate percent of rent_amount, rounded to paise."""
    return (Decimal(rent_amount) * Decimal(penalty_rate) / 100).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )


def get_penalty(penalty_id: str) -> RentPenalty:
    penalty = db.session.query(RentPenalty).filter_by(id=penalty_id).first()
    if not penalty:
        raise PenaltyNotFoundError(f"Rent penalty {penalty_id} not found")
    return penalty


def list_penalties(*, status: str | None = None, agreement_id: str | None = None) -> list[RentPenalty]:
    query = db.session.query(RentPenalty)
    if status:
        query = query.filter(RentPenalty.status == status)
    if agreement_id:
        query = query.filter(RentPenalty.agreement_id == agreement_id)
    return query.order_by(RentPenalty.due_date.desc(), RentPenalty.id.asc()).all()


def create_penalty(data: dict) -> RentPenalty:
    """
    Charge a late-payment penalty on an agreement.

    rent_amount defaults to the agreement's monthly rent and penalty_amount to
    penalty_rate percent of it.
    """
    patch = validate_payload(model=RentPenalty, payload=data, policy=PENALTY_POLICY, partial=False)
    enforce_rules_rental(patch)

    agreement = _agreement_for(patch)
    if patch.get("rent_amount") is None:
        patch["rent_amount"] = agreement.monthly_rent
    if patch.get("penalty_amount") is None:
        patch["penalty_amount"] = calculate_penalty(patch["rent_amount"], patch["penalty_rate"])

    penalty = RentPenalty(status="Pending", penalty_paid=False, **patch)
    db.session.add(penalty)
    _save()
    current_app.logger.info(
        "Created rent penalty %s of %s for agreement %s", penalty.id, penalty.penalty_amount, agreement.id
    )
    return penalty


def update_penalty(penalty_id: str, data: dict) -> RentPenalty:
    penalty = get_penalty(penalty_id)
    if penalty.status == "Paid":
        raise ConflictError("A paid rent penalty cannot be changed")

    patch = validate_payload(model=RentPenalty, payload=data, policy=PENALTY_UPDATE_POLICY, partial=True)
    enforce_rules_rental(patch)

    # Recalculate unless the caller set the amount explicitly
    if ("rent_amount" in patch or "penalty_rate" in patch) and "penalty_amount" not in patch:
        patch["penalty_amount"] = calculate_penalty(
            patch.get("rent_amount", penalty.rent_amount),
            patch.get("penalty_rate", penalty.penalty_rate),
        )

    for key, value in patch.items():
        setattr(penalty, key, value)
    _save()
    current_app.logger.info("Updated rent penalty %s", penalty.id)
    return penalty


def delete_penalty(penalty_id: str) -> None:
    penalty = get_penalty(penalty_id)
    if db.session.query(Transaction).filter(Transaction.penalty_id == penalty_id).count():
        raise RecordInUseError("Rent penalty was paid by a recorded transaction and cannot be deleted")
    db.session.delete(penalty)
    _save()
    current_app.logger.info("Deleted rent penalty %s", penalty_id)
