from __future__ import annotations
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from temple.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from temple.models import (
    PAYMENT_METHODS,
    TYPE_DONATION,
    TYPE_EXPENSE,
    TYPE_RENT_INCOME,
    TYPE_SALARY,
    TYPE_UTILITIES,
)


# Maximum amount: 9,999,999,999.99 (fits Numeric(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")

CONTACT_RE = re.compile(r"^\d{10}$")


class ValidationError(ValueError):
    """422-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate submission)."""


class NotFoundError(LookupError):
    """404-level: the addressed record does not exist."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - defaults_on_create: values filled in when a create payload omits them
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()
    defaults_on_create: dict = field(default_factory=dict)


def to_column_key(key: str) -> str:
    """donorName -> donor_name; snake_case keys pass through unchanged."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Money - accept numbers or numeric strings, quantize to the column scale
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        if isinstance(value, (int, float, Decimal)):
            raw = str(value)
        elif isinstance(value, str):
            raw = value.strip()
        else:
            raise ValidationError(f"{col.key} must be a number")
        try:
            amount = Decimal(raw)
        except InvalidOperation:
            raise ValidationError(f"{col.key} must be a number")
        if not amount.is_finite():
            raise ValidationError(f"{col.key} must be a finite number")
        scale = coltype.scale if coltype.scale is not None else 2
        try:
            amount = amount.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValidationError(f"{col.key} is out of range")
        # Numeric(p, s) holds at most p - s integer digits
        if coltype.precision is not None:
            limit = Decimal(10) ** (coltype.precision - scale) - Decimal(1).scaleb(-scale)
            if abs(amount) > limit:
                raise ValidationError(f"{col.key} cannot exceed {limit:,}")
        return amount

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Calendar dates (YYYY-MM-DD only)
    if isinstance(coltype, Date):
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be in YYYY-MM-DD format")
            if d is None:
                raise ValidationError(f"{col.key} must be in YYYY-MM-DD format")
            return d
        raise ValidationError(f"{col.key} must be in YYYY-MM-DD format")

    # Enums
    if isinstance(coltype, Enum):
        s = str(value).strip()
        if s not in coltype.enums:
            raise ValidationError(f"{col.key} must be one of: {', '.join(coltype.enums)}")
        return s

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict keyed by column name with only writable fields.

    Keys may be camelCase ("donorName") or column names ("donor_name").

    partial=False: create semantics (apply defaults, enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    cols = _columns_by_key(model)

    normalized: dict = {}
    for raw_key, raw in payload.items():
        k = to_column_key(str(raw_key))
        # Reject unknown / non-writable fields
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {raw_key}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {raw_key}")
        if k in normalized:
            raise ValidationError(f"Duplicate field: {raw_key}")
        normalized[k] = raw

    patch: dict = {}

    for k, raw in normalized.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    # Required checks run on trimmed values so "   " counts as missing
    if partial:
        blank = sorted(k for k in policy.required_on_create if k in patch and patch[k] in (None, ""))
        if blank:
            raise ValidationError(f"Required fields cannot be blank: {', '.join(blank)}")
    else:
        for k, default in policy.defaults_on_create.items():
            if patch.get(k) in (None, ""):
                patch[k] = default
        missing = sorted(f for f in policy.required_on_create if patch.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return patch


# =============================================================================
# Transaction policies
# =============================================================================

_COMMON_FIELDS = {"date", "category", "sub_category", "description", "amount"}
_DONATION_FIELDS = {"donor_name", "donor_contact", "family_members", "amount_per_person"}
_PAYEE_FIELDS = {"payee_name", "payee_contact", "vendor", "receipt"}
# Tenant and shop details are copied from the agreement, never taken from the client
_RENT_FIELDS = {"agreement_id", "payment_method"}
_LINK_FIELDS = {"loan_id", "emi_amount", "penalty_id", "penalty_amount"}

_PAYEE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_COMMON_FIELDS | _PAYEE_FIELDS | _LINK_FIELDS),
    required_on_create=frozenset({"date", "category", "description", "amount", "payee_name"}),
)

TRANSACTION_POLICIES: dict[str, ModelValidationPolicy] = {
    TYPE_DONATION: ModelValidationPolicy(
        writable_fields=frozenset(_COMMON_FIELDS | _DONATION_FIELDS),
        required_on_create=frozenset({"date", "category", "description", "amount", "donor_name"}),
    ),
    TYPE_EXPENSE: _PAYEE_POLICY,
    TYPE_UTILITIES: _PAYEE_POLICY,
    TYPE_SALARY: _PAYEE_POLICY,
    TYPE_RENT_INCOME: ModelValidationPolicy(
        writable_fields=frozenset(_COMMON_FIELDS | _RENT_FIELDS | _LINK_FIELDS),
        required_on_create=frozenset({"date", "category", "amount", "agreement_id"}),
        defaults_on_create={
            "category": "Rent",
            "sub_category": "Monthly Rent",
            "payment_method": "Cash",
        },
    ),
}


def _positive(patch: dict, key: str, label: str) -> None:
    if key in patch and patch[key] is not None and patch[key] <= 0:
        raise ValidationError(f"{label} must be positive")


def enforce_rules_transaction(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "amount" in patch:
        amount = patch["amount"]
        if amount is None or amount <= 0:
            raise ValidationError("amount must be positive")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"amount cannot exceed {MAX_AMOUNT:,}")

    for key in ("donor_contact", "payee_contact", "tenant_contact"):
        if key in patch:
            contact = patch[key]
            # Empty string clears the contact
            if contact == "":
                patch[key] = None
            elif contact is not None and not CONTACT_RE.match(contact):
                raise ValidationError(f"{key} must be 10 digits")

    _positive(patch, "family_members", "family_members")
    _positive(patch, "amount_per_person", "amount_per_person")
    _positive(patch, "emi_amount", "emi_amount")
    _positive(patch, "penalty_amount", "penalty_amount")

    if "payment_method" in patch and patch["payment_method"] is not None:
        if patch["payment_method"] not in PAYMENT_METHODS:
            raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")


# =============================================================================
# Rent register policies (shops, tenants, agreements, loans, penalties)
# =============================================================================

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

SHOP_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"shop_number", "size", "monthly_rent", "deposit", "status", "description"}),
    required_on_create=frozenset({"shop_number", "size", "monthly_rent", "deposit"}),
)

TENANT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "phone", "email", "address", "business_type", "status", "id_proof"}),
    required_on_create=frozenset({"name", "phone"}),
)

_AGREEMENT_TERMS = {
    "agreement_date", "duration", "monthly_rent", "security_deposit", "advance_rent",
    "agreement_type", "status", "next_due_date",
}

AGREEMENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_AGREEMENT_TERMS | {"shop_id", "tenant_id"}),
    required_on_create=frozenset({"shop_id", "tenant_id", "agreement_date", "duration", "monthly_rent"}),
)

# The shop and tenant of an agreement never change; a new lease is a new agreement
AGREEMENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset(_AGREEMENT_TERMS),
    required_on_create=AGREEMENT_POLICY.required_on_create,
)

LOAN_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "agreement_id", "loan_amount", "interest_rate", "disbursed_date",
        "loan_duration", "monthly_emi", "next_emi_date", "status",
    }),
    required_on_create=frozenset({"agreement_id", "loan_amount", "disbursed_date", "loan_duration", "monthly_emi"}),
)

# Balances move only through EMI ledger records
LOAN_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"interest_rate", "monthly_emi", "next_emi_date", "status"}),
    required_on_create=LOAN_POLICY.required_on_create,
)

PENALTY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"agreement_id", "rent_amount", "due_date", "paid_date", "penalty_rate", "penalty_amount"}),
    required_on_create=frozenset({"agreement_id", "due_date", "penalty_rate"}),
)

PENALTY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"rent_amount", "due_date", "paid_date", "penalty_rate", "penalty_amount"}),
    required_on_create=PENALTY_POLICY.required_on_create,
)


def _between(patch: dict, key: str, low, high) -> None:
    if key in patch and patch[key] is not None and not (low <= patch[key] <= high):
        raise ValidationError(f"{key} must be between {low} and {high}")


def enforce_rules_rental(patch: dict) -> None:
    """Rules shared by the rent register records; keys absent from patch are skipped."""
    for key in ("size", "monthly_rent", "loan_amount", "monthly_emi", "rent_amount"):
        _positive(patch, key, key)

    for key in ("deposit", "security_deposit", "advance_rent", "penalty_amount"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise ValidationError(f"{key} cannot be negative")

    _between(patch, "duration", 1, 1000)
    _between(patch, "loan_duration", 1, 1000)
    _between(patch, "interest_rate", 0, 100)
    _between(patch, "penalty_rate", 0, 100)

    if "phone" in patch and patch["phone"] is not None and not CONTACT_RE.match(patch["phone"]):
        raise ValidationError("phone must be 10 digits")

    if "email" in patch:
        # Empty string clears the email
        if patch["email"] == "":
            patch["email"] = None
        elif patch["email"] is not None:
            patch["email"] = patch["email"].lower()
            if not EMAIL_RE.match(patch["email"]):
                raise ValidationError("email is not a valid email address")
