from .auth import User, SessionToken, ROLES, ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER
from .transactions import (
    Transaction,
    ReceiptSequence,
    TRANSACTION_TYPES,
    PAYMENT_METHODS,
    TYPE_DONATION,
    TYPE_EXPENSE,
    TYPE_UTILITIES,
    TYPE_SALARY,
    TYPE_RENT_INCOME,
)
from .rentals import (
    Shop,
    Tenant,
    Agreement,
    Loan,
    RentPenalty,
    SHOP_STATUSES,
    TENANT_STATUSES,
    AGREEMENT_TYPES,
    AGREEMENT_STATUSES,
    LOAN_STATUSES,
    PENALTY_STATUSES,
)

__all__ = [
    'User', 'SessionToken',
    'ROLES', 'ROLE_ADMIN', 'ROLE_TREASURER', 'ROLE_VIEWER',
    'Transaction', 'ReceiptSequence',
    'TRANSACTION_TYPES', 'PAYMENT_METHODS',
    'TYPE_DONATION', 'TYPE_EXPENSE', 'TYPE_UTILITIES', 'TYPE_SALARY', 'TYPE_RENT_INCOME',
    'Shop', 'Tenant', 'Agreement', 'Loan', 'RentPenalty',
    'SHOP_STATUSES', 'TENANT_STATUSES', 'AGREEMENT_TYPES', 'AGREEMENT_STATUSES',
    'LOAN_STATUSES', 'PENALTY_STATUSES',
]
