# Overview: Service-layer operations for receipt sequences; allocates receipt numbers atomically.

"""
Receipt Number Allocation

WHY: Every donation, expense, utility bill, salary payout and rent payment
carries a human-facing receipt number. Numbers are sequential per transaction
type and must never repeat, even when requests arrive concurrently.

DESIGN:
- One ReceiptSequence row per transaction type holds the next number to issue.
- allocate_next() runs UPDATE ... SET next_number = next_number + 1 first,
  which takes the row write lock, then reads the row back inside the same
  transaction. Concurrent allocations for one type serialize on that lock;
  different types never block each other.
- No counters are cached in process memory. The database row is the only
  source of truth.
- peek_next() is a plain read for UI previews. It is not a reservation.
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ReceiptSequence, Transaction, TRANSACTION_TYPES
from .concurrency import begin_write, ensure_no_pending_writes, run_with_retry


DEFAULT_RECEIPT_NUMBER_WIDTH = 4

_DIGITS_RE = re.compile(r"^\d+$")


class UnknownSequenceError(Exception):
    """Raised when no sequence row exists for a transaction type (seeding never ran)."""

    def __init__(self, transaction_type: str):
        super().__init__(f"No receipt sequence for transaction type '{transaction_type}'")
        self.transaction_type = transaction_type


def _check_type(transaction_type: str) -> None:
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(
            f"Invalid transaction type '{transaction_type}'. "
            f"Must be one of: {', '.join(TRANSACTION_TYPES)}"
        )


def _receipt_width() -> int:
    return int(current_app.config.get("RECEIPT_NUMBER_WIDTH", DEFAULT_RECEIPT_NUMBER_WIDTH))


def format_receipt_number(number: int, width: int | None = None) -> str:
    """
    Zero-pad a receipt number: 1 -> "0001".

    Numbers wider than `width` keep all their digits (10000 -> "10000");
    they are never truncated or wrapped.
    """
    if number < 1:
        raise ValueError("Receipt numbers start at 1")
    if width is None:
        width = _receipt_width()
    return f"{number:0{width}d}"


def _missing_sequence(transaction_type: str) -> UnknownSequenceError:
    current_app.logger.error(
        "Receipt sequence missing for %s; run `flask receipts seed` (deployment/migration bug)",
        transaction_type,
    )
    return UnknownSequenceError(transaction_type)


def _increment_and_read(transaction_type: str) -> int:
    stmt = (
        update(ReceiptSequence)
        .where(ReceiptSequence.transaction_type == transaction_type)
        .values(next_number=ReceiptSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise _missing_sequence(transaction_type)

    # Same transaction, row already write-locked by the UPDATE above
    current = (
        db.session.query(ReceiptSequence.next_number)
        .filter(ReceiptSequence.transaction_type == transaction_type)
        .scalar()
    )
    return current - 1


def allocate_next(transaction_type: str, *, commit: bool = True) -> str:
    """
    Atomically allocate the next receipt number for a transaction type.

    commit=True: the increment is committed before returning (retried on
    transient errors, rolled back on failure).
    commit=False: the caller owns the transaction; the increment becomes
    durable only together with whatever the caller commits alongside it.

    Raises:
        ValueError: unknown transaction type
        UnknownSequenceError: the sequence row was never seeded
    """
    _check_type(transaction_type)

    if not commit:
        return format_receipt_number(_increment_and_read(transaction_type))

    # Checked before the retry loop, whose rollback would discard the pending work
    ensure_no_pending_writes()

    def _op() -> str:
        try:
            begin_write()
            number = _increment_and_read(transaction_type)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return format_receipt_number(number)

    receipt_number = run_with_retry(_op)
    current_app.logger.info("Allocated receipt %s for %s", receipt_number, transaction_type)
    return receipt_number


def peek_next(transaction_type: str) -> str:
    """
    Preview the next receipt number without allocating it.

    The value may be claimed by another request before the caller acts on it.
    """
    _check_type(transaction_type)
    next_number = (
        db.session.query(ReceiptSequence.next_number)
        .filter(ReceiptSequence.transaction_type == transaction_type)
        .scalar()
    )
    if next_number is None:
        raise _missing_sequence(transaction_type)
    return format_receipt_number(next_number)


def list_sequences() -> list[ReceiptSequence]:
    """All sequence rows in transaction-type order."""
    rows = db.session.query(ReceiptSequence).all()
    order = {t: i for i, t in enumerate(TRANSACTION_TYPES)}
    return sorted(rows, key=lambda r: order.get(r.transaction_type, len(order)))


def _max_recorded_receipt(transaction_type: str) -> int:
    """Highest numeric receipt number already stored for a type (0 if none)."""
    numbers = (
        db.session.query(Transaction.receipt_number)
        .filter(
            Transaction.type == transaction_type,
            Transaction.receipt_number.isnot(None),
            func.length(Transaction.receipt_number) > 0,
        )
        .all()
    )
    highest = 0
    for (raw,) in numbers:
        value = raw.strip()
        if _DIGITS_RE.match(value):
            highest = max(highest, int(value))
    return highest


def seed_sequences() -> dict[str, int]:
    """
    Create the missing sequence rows.

    Each new row starts after the highest receipt number already recorded for
    its type, or at 1. Existing rows are left untouched, so this is safe to run
    on every start-up.

    Returns {transaction_type: next_number} for the rows created.
    """
    existing = {
        t for (t,) in db.session.query(ReceiptSequence.transaction_type).all()
    }
    created: dict[str, int] = {}

    for transaction_type in TRANSACTION_TYPES:
        if transaction_type in existing:
            continue
        next_number = _max_recorded_receipt(transaction_type) + 1
        db.session.add(ReceiptSequence(transaction_type=transaction_type, next_number=next_number))
        created[transaction_type] = next_number

    if not created:
        return created

    try:
        db.session.commit()
    except IntegrityError:
        # Another process seeded concurrently; its rows win
        db.session.rollback()
        current_app.logger.info("Receipt sequences were seeded concurrently by another process")
        return {}

    current_app.logger.info("Seeded receipt sequences: %s", created)
    return created
