# Overview: Service-layer operations for financial records; encapsulates business logic and database work.

"""
Transaction Service

WHY: Donations, expenses, utilities, salaries and rent receipts share one
table and one creation path so every record gets a receipt number from the
same allocator and every client retry is deduplicated the same way.

CREATION CONTRACT:
- Input is validated before any allocation, so invalid requests never touch
  the receipt counter.
- A repeated idempotency key returns the already-stored record (created=False).
- Otherwise the receipt number is allocated and the record inserted inside one
  DB transaction; a failure anywhere rolls both back.
- Unique constraints on idempotency_key and (receipt_number, type) are the
  last line of defense against racing requests; violations become 409s.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Agreement, Loan, RentPenalty, Transaction, TRANSACTION_TYPES, TYPE_RENT_INCOME
from ..validation import (
    ConflictError,
    NotFoundError,
    TRANSACTION_POLICIES,
    ValidationError,
    enforce_rules_transaction,
    validate_payload,
)
from . import receipt_service
from .concurrency import begin_write, ensure_no_pending_writes, run_with_retry


MAX_IDEMPOTENCY_KEY_LENGTH = 128


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction is not found."""
    pass


class DuplicateSubmissionError(ConflictError):
    """The idempotency key was stored by a concurrent request that won the race."""
    code = "DUPLICATE_SUBMISSION"


class ReceiptNumberConflictError(ConflictError):
    """(receipt_number, type) already exists; a fresh attempt gets a new number."""
    code = "RECEIPT_NUMBER_CONFLICT"


class IdempotencyKeyReuseError(ConflictError):
    """The idempotency key already belongs to a record of another type."""
    code = "IDEMPOTENCY_KEY_REUSED"


class LoanRepaymentError(ConflictError):
    """The loan is not active or the EMI exceeds its outstanding balance."""
    code = "LOAN_REPAYMENT_REJECTED"


class PenaltyAlreadyPaidError(ConflictError):
    """The rent penalty was already settled by another record."""
    code = "PENALTY_ALREADY_PAID"


# Set once at creation; they move loan balances and penalty states
LINK_FIELDS = ("agreement_id", "loan_id", "emi_amount", "penalty_id", "penalty_amount")


def check_transaction_type(transaction_type: str | None) -> str:
    if not transaction_type:
        raise ValidationError("type is required")
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")
    return transaction_type


def normalize_idempotency_key(raw) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ValidationError("idempotencyKey must be a string")
    key = raw.strip()
    if not key:
        return None
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(f"idempotencyKey exceeds max length {MAX_IDEMPOTENCY_KEY_LENGTH}")
    return key


def _resolve_links(transaction_type: str, patch: dict) -> None:
    """
    Check the agreement, loan and penalty a new record points at.

    RentIncome records take tenant and shop details from their agreement.
    Runs before allocation, so a bad reference never consumes a receipt number.
    """
    agreement = None
    if patch.get("agreement_id"):
        agreement = db.session.get(Agreement, patch["agreement_id"])
        if agreement is None:
            raise ValidationError(f"agreement_id {patch['agreement_id']} does not match an agreement")
        if transaction_type == TYPE_RENT_INCOME:
            patch["tenant_name"] = agreement.tenant.name
            patch["tenant_contact"] = agreement.tenant.phone
            patch["shop_number"] = agreement.shop.shop_number

    if patch.get("loan_id"):
        loan = db.session.get(Loan, patch["loan_id"])
        if loan is None:
            raise ValidationError(f"loan_id {patch['loan_id']} does not match a loan")
        if agreement is not None and loan.agreement_id != agreement.id:
            raise ValidationError("loan_id belongs to a different agreement")
        if loan.status != "Active":
            raise LoanRepaymentError(f"Loan is {loan.status}")
        if patch.get("emi_amount") is None:
            patch["emi_amount"] = min(loan.monthly_emi, loan.outstanding_balance)
        if patch["emi_amount"] > loan.outstanding_balance:
            raise LoanRepaymentError(
                f"emi_amount exceeds the outstanding balance of {loan.outstanding_balance:,}"
            )
    elif patch.get("emi_amount") is not None:
        raise ValidationError("emi_amount requires loan_id")

    if patch.get("penalty_id"):
        penalty = db.session.get(RentPenalty, patch["penalty_id"])
        if penalty is None:
            raise ValidationError(f"penalty_id {patch['penalty_id']} does not match a rent penalty")
        if agreement is not None and penalty.agreement_id != agreement.id:
            raise ValidationError("penalty_id belongs to a different agreement")
        if penalty.status == "Paid":
            raise PenaltyAlreadyPaidError("Rent penalty is already paid")
        if patch.get("penalty_amount") is None:
            patch["penalty_amount"] = penalty.penalty_amount
    elif patch.get("penalty_amount") is not None:
        raise ValidationError("penalty_amount requires penalty_id")


def _apply_links(txn: Transaction) -> None:
    """Move loan balances, penalty states and agreement dates; caller commits."""
    if txn.type == TYPE_RENT_INCOME and txn.agreement_id:
        agreement = db.session.get(Agreement, txn.agreement_id)
        if agreement.last_payment_date is None or txn.date > agreement.last_payment_date:
            agreement.last_payment_date = txn.date

    if txn.loan_id:
        # Guarded UPDATE: a concurrent repayment may have reduced the balance
        result = db.session.execute(
            update(Loan)
            .where(
                Loan.id == txn.loan_id,
                Loan.status == "Active",
                Loan.outstanding_balance >= txn.emi_amount,
            )
            .values(
                outstanding_balance=Loan.outstanding_balance - txn.emi_amount,
                total_repaid=Loan.total_repaid + txn.emi_amount,
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise LoanRepaymentError("emi_amount exceeds the outstanding balance")
        loan = db.session.get(Loan, txn.loan_id, populate_existing=True)
        if loan.last_payment_date is None or txn.date > loan.last_payment_date:
            loan.last_payment_date = txn.date
        if loan.outstanding_balance <= 0:
            loan.status = "Completed"

    if txn.penalty_id:
        result = db.session.execute(
            update(RentPenalty)
            .where(RentPenalty.id == txn.penalty_id, RentPenalty.status == "Pending")
            .values(status="Paid", penalty_paid=True, penalty_paid_date=txn.date)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise PenaltyAlreadyPaidError("Rent penalty is already paid")


def _revert_links(txn: Transaction) -> None:
    """Undo _apply_links for a deleted record; caller commits."""
    if txn.loan_id and txn.emi_amount is not None:
        db.session.execute(
            update(Loan)
            .where(Loan.id == txn.loan_id)
            .values(
                outstanding_balance=Loan.outstanding_balance + txn.emi_amount,
                total_repaid=Loan.total_repaid - txn.emi_amount,
            )
            .execution_options(synchronize_session=False)
        )
        loan = db.session.get(Loan, txn.loan_id, populate_existing=True)
        if loan is not None and loan.status == "Completed" and loan.outstanding_balance > 0:
            loan.status = "Active"

    if txn.penalty_id:
        db.session.execute(
            update(RentPenalty)
            .where(RentPenalty.id == txn.penalty_id)
            .values(status="Pending", penalty_paid=False, penalty_paid_date=None)
            .execution_options(synchronize_session=False)
        )


def _clean_create_payload(transaction_type: str, data: dict) -> dict:
    policy = TRANSACTION_POLICIES[transaction_type]
    patch = validate_payload(model=Transaction, payload=data, policy=policy, partial=False)
    enforce_rules_transaction(patch)
    _resolve_links(transaction_type, patch)

    if transaction_type == TYPE_RENT_INCOME and not patch.get("description"):
        shop = patch.get("shop_number")
        patch["description"] = f"Rent payment for shop {shop}" if shop else "Rent payment"
    return patch


def find_by_idempotency_key(idempotency_key: str) -> Transaction | None:
    return (
        db.session.query(Transaction)
        .filter(Transaction.idempotency_key == idempotency_key)
        .first()
    )


def _classify_integrity_error(exc: IntegrityError) -> ConflictError | None:
    message = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
    if "idempotency_key" in message:
        return DuplicateSubmissionError("Duplicate submission: idempotency key already used")
    if "receipt_number" in message:
        return ReceiptNumberConflictError("Receipt number already exists")
    return None


def create_transaction(
    transaction_type: str,
    data: dict,
    *,
    idempotency_key: str | None = None,
    created_by_user_id: int | None = None,
) -> tuple[Transaction, bool]:
    """
    Create a financial record with a freshly allocated receipt number.

    Returns:
        (transaction, created) where created is False when the idempotency key
        had already been seen and the stored record is returned instead.

    Raises:
        ValidationError: malformed input (nothing allocated)
        IdempotencyKeyReuseError: key already used by a different type
        DuplicateSubmissionError: lost the race on the idempotency key
        ReceiptNumberConflictError: lost the race on the receipt number
        receipt_service.UnknownSequenceError: sequences were never seeded
    """
    ensure_no_pending_writes()
    check_transaction_type(transaction_type)
    idempotency_key = normalize_idempotency_key(idempotency_key)
    patch = _clean_create_payload(transaction_type, data)

    def _op() -> tuple[Transaction, bool]:
        if idempotency_key:
            existing = find_by_idempotency_key(idempotency_key)
            if existing is not None:
                if existing.type != transaction_type:
                    raise IdempotencyKeyReuseError(
                        f"Idempotency key already used for a {existing.type} record"
                    )
                return existing, False

        try:
            begin_write()
            receipt_number = receipt_service.allocate_next(transaction_type, commit=False)
            txn = Transaction(
                type=transaction_type,
                receipt_number=receipt_number,
                idempotency_key=idempotency_key,
                created_by_user_id=created_by_user_id,
                **patch,
            )
            db.session.add(txn)
            _apply_links(txn)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            conflict = _classify_integrity_error(exc)
            if conflict is None:
                raise
            raise conflict from exc
        except Exception:
            db.session.rollback()
            raise
        return txn, True

    txn, created = run_with_retry(_op)
    if created:
        current_app.logger.info(
            "Created %s %s with receipt %s", transaction_type, txn.id, txn.receipt_number
        )
    else:
        current_app.logger.info(
            "Idempotent replay for %s key=%s -> %s", transaction_type, idempotency_key, txn.id
        )
    return txn, created


def get_transaction(transaction_id: str, transaction_type: str | None = None) -> Transaction:
    query = db.session.query(Transaction).filter(Transaction.id == transaction_id)
    if transaction_type:
        query = query.filter(Transaction.type == transaction_type)
    txn = query.first()
    if not txn:
        raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
    return txn


def list_transactions(
    *,
    transaction_type: str | None = None,
    agreement_id: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    category: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Transaction], int]:
    """
    List transactions newest first.

    Returns (items, total) where total ignores limit/offset.
    """
    query = db.session.query(Transaction)

    if transaction_type:
        query = query.filter(Transaction.type == transaction_type)
    if agreement_id:
        query = query.filter(Transaction.agreement_id == agreement_id)
    if date_from:
        query = query.filter(Transaction.date >= date_from)
    if date_to:
        query = query.filter(Transaction.date <= date_to)
    if category:
        query = query.filter(Transaction.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Transaction.description.ilike(pattern),
                Transaction.receipt_number.ilike(pattern),
                Transaction.donor_name.ilike(pattern),
                Transaction.payee_name.ilike(pattern),
                Transaction.tenant_name.ilike(pattern),
            )
        )

    total = query.count()
    items = (
        query.order_by(Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def update_transaction(
    transaction_id: str,
    data: dict,
    transaction_type: str | None = None,
) -> Transaction:
    """
    Correct a record in place.

    The receipt number, type and idempotency key never change, and neither do
    the agreement, loan and penalty links.
    """
    txn = get_transaction(transaction_id, transaction_type)

    policy = TRANSACTION_POLICIES[txn.type]
    patch = validate_payload(model=Transaction, payload=data, policy=policy, partial=True)
    locked = sorted(k for k in LINK_FIELDS if k in patch)
    if locked:
        raise ValidationError(f"Fields cannot be changed after creation: {', '.join(locked)}")
    enforce_rules_transaction(patch)

    for key, value in patch.items():
        setattr(txn, key, value)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Updated %s %s", txn.type, txn.id)
    return txn


def delete_transaction(transaction_id: str, transaction_type: str | None = None) -> None:
    """
    Delete a record administratively.

    Its receipt number is not handed out again. An EMI repayment is added
    back to its loan and a settled penalty returns to Pending.
    """
    txn = get_transaction(transaction_id, transaction_type)
    try:
        begin_write()
        _revert_links(txn)
        db.session.delete(txn)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info("Deleted %s %s (receipt %s)", txn.type, transaction_id, txn.receipt_number)


def summarize_transactions(
    *,
    date_from: date | None = None,
    date_to: date | None = None,
) -> dict:
    """
    Count and total per transaction type.

    Returns {"byType": {type: {"count", "total"}}, "income", "outgoing", "net"}.
    """
    query = db.session.query(
        Transaction.type,
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.amount), 0),
    )
    if date_from:
        query = query.filter(Transaction.date >= date_from)
    if date_to:
        query = query.filter(Transaction.date <= date_to)

    by_type = {t: {"count": 0, "total": 0.0} for t in TRANSACTION_TYPES}
    for txn_type, count, total in query.group_by(Transaction.type).all():
        by_type[txn_type] = {
            "count": int(count),
            "total": float(Decimal(str(total)).quantize(Decimal("0.01"))),
        }

    income = by_type["Donation"]["total"] + by_type["RentIncome"]["total"]
    outgoing = sum(by_type[t]["total"] for t in ("Expense", "Utilities", "Salary"))
    return {
        "byType": by_type,
        "income": round(income, 2),
        "outgoing": round(outgoing, 2),
        "net": round(income - outgoing, 2),
    }
