from __future__ import annotations

import uuid

from ..extensions import db
from temple.time_utils import to_utc_z


# =============================================================================
# TRANSACTION TYPES
# =============================================================================

TYPE_DONATION = "Donation"
TYPE_EXPENSE = "Expense"
TYPE_UTILITIES = "Utilities"
TYPE_SALARY = "Salary"
TYPE_RENT_INCOME = "RentIncome"

TRANSACTION_TYPES = (
    TYPE_DONATION,
    TYPE_EXPENSE,
    TYPE_UTILITIES,
    TYPE_SALARY,
    TYPE_RENT_INCOME,
)

PAYMENT_METHODS = ("Cash", "Check", "Bank Transfer", "UPI")

transaction_type_enum = db.Enum(
    *TRANSACTION_TYPES,
    name="transaction_type",
    native_enum=False,
    create_constraint=True,
    validate_strings=True,
)


def _new_id() -> str:
    return uuid.uuid4().hex


def _money(value):
    if value is None:
        return None
    return float(value)


class ReceiptSequence(db.Model):
    """
    One counter per transaction type holding the next receipt number to issue.

    WHY: Receipt numbers are printed on donation/expense slips and must never
    repeat within a type, even when two treasurers save at the same moment.
    The row is the lock: the allocator increments it with a single UPDATE
    inside the same DB transaction that inserts the business record.

    Rows are created once by the seeding step and are never deleted.
    """
    __tablename__ = "receipt_sequences"
    __table_args__ = (
        db.CheckConstraint("next_number >= 1", name="ck_receipt_sequences_next_number_positive"),
    )

    transaction_type = db.Column(transaction_type_enum, primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "transactionType": self.transaction_type,
            "nextNumber": self.next_number,
            "updatedAt": to_utc_z(self.updated_at),
        }


class Transaction(db.Model):
    """
    A financial record: donation received, expense paid, utility bill,
    salary payout or rent collected.

    INVARIANTS:
    - (receipt_number, type) is unique; the number comes from ReceiptSequence
    - idempotency_key is unique when present (client retries map to one row)
    - amount is positive with two decimal places
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.UniqueConstraint("receipt_number", "type", name="uq_transactions_receipt_number_type"),
        db.UniqueConstraint("idempotency_key", name="uq_transactions_idempotency_key"),
        db.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        db.Index("ix_transactions_type_date", "type", "date"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    date = db.Column(db.Date, nullable=False, index=True)
    type = db.Column(transaction_type_enum, nullable=False, index=True)
    category = db.Column(db.String(100), nullable=False, index=True)
    sub_category = db.Column(db.String(100), nullable=True)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    receipt_number = db.Column(db.String(50), nullable=True, index=True)
    idempotency_key = db.Column(db.String(128), nullable=True)

    # Donation
    donor_name = db.Column(db.String(100), nullable=True)
    donor_contact = db.Column(db.String(20), nullable=True)
    family_members = db.Column(db.Integer, nullable=True)
    amount_per_person = db.Column(db.Numeric(10, 2), nullable=True)

    # Expense / Utilities / Salary
    vendor = db.Column(db.String(100), nullable=True)
    receipt = db.Column(db.String(255), nullable=True)
    payee_name = db.Column(db.String(100), nullable=True)
    payee_contact = db.Column(db.String(20), nullable=True)

    # RentIncome
    tenant_name = db.Column(db.String(100), nullable=True)
    tenant_contact = db.Column(db.String(20), nullable=True)
    agreement_id = db.Column(db.String(36), db.ForeignKey("agreements.id"), nullable=True, index=True)
    shop_number = db.Column(db.String(20), nullable=True)
    payment_method = db.Column(db.String(20), nullable=True)

    # Loan EMI repayment / rent penalty settlement
    loan_id = db.Column(db.String(36), db.ForeignKey("loans.id"), nullable=True, index=True)
    emi_amount = db.Column(db.Numeric(10, 2), nullable=True)
    penalty_id = db.Column(db.String(36), db.ForeignKey("rent_penalties.id"), nullable=True, index=True)
    penalty_amount = db.Column(db.Numeric(10, 2), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    created_by = db.relationship("User", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "type": self.type,
            "category": self.category,
            "subCategory": self.sub_category,
            "description": self.description,
            "amount": _money(self.amount),
            "receiptNumber": self.receipt_number,
            "idempotencyKey": self.idempotency_key,
            "donorName": self.donor_name,
            "donorContact": self.donor_contact,
            "familyMembers": self.family_members,
            "amountPerPerson": _money(self.amount_per_person),
            "vendor": self.vendor,
            "receipt": self.receipt,
            "payeeName": self.payee_name,
            "payeeContact": self.payee_contact,
            "tenantName": self.tenant_name,
            "tenantContact": self.tenant_contact,
            "agreementId": self.agreement_id,
            "shopNumber": self.shop_number,
            "paymentMethod": self.payment_method,
            "loanId": self.loan_id,
            "emiAmount": _money(self.emi_amount),
            "penaltyId": self.penalty_id,
            "penaltyAmount": _money(self.penalty_amount),
            "createdByUserId": self.created_by_user_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
