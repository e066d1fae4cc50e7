"""
Concurrency tests for receipt allocation and idempotent creation.

Uses a file-backed SQLite database so every worker thread gets its own
connection and the database write lock is really contended.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from temple import create_app
from temple.extensions import db
from temple.models import Transaction, TYPE_DONATION, TYPE_EXPENSE
from temple.services import receipt_service, transaction_service
from temple.services.transaction_service import DuplicateSubmissionError


WORKERS = 8


@pytest.fixture()
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'REQUEST_TIMEOUT_SECONDS': 0,
        'SEED_SEQUENCES_ON_STARTUP': False,
    })
    with app.app_context():
        db.create_all()
        receipt_service.seed_sequences()
        db.session.remove()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


def _donation(n: int) -> dict:
    return {
        "date": "2024-02-01",
        "category": "General",
        "description": f"Offering {n}",
        "amount": 100 + n,
        "donorName": f"Donor {n}",
    }


def _in_context(app, func, *args, **kwargs):
    with app.app_context():
        try:
            return func(*args, **kwargs)
        finally:
            db.session.remove()


def test_parallel_allocations_are_distinct_and_contiguous(file_app):
    count = 20
    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        futures = [
            pool.submit(_in_context, file_app, receipt_service.allocate_next, TYPE_DONATION)
            for _ in range(count)
        ]
        numbers = [f.result() for f in futures]

    assert len(set(numbers)) == count
    assert sorted(numbers) == [f"{n:04d}" for n in range(1, count + 1)]

    with file_app.app_context():
        assert receipt_service.peek_next(TYPE_DONATION) == f"{count + 1:04d}"


def test_parallel_allocations_across_types(file_app):
    types = [TYPE_DONATION, TYPE_EXPENSE] * 6
    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        results = list(pool.map(
            lambda t: (t, _in_context(file_app, receipt_service.allocate_next, t)),
            types,
        ))

    for transaction_type in (TYPE_DONATION, TYPE_EXPENSE):
        numbers = sorted(n for t, n in results if t == transaction_type)
        assert numbers == [f"{n:04d}" for n in range(1, 7)]


def test_parallel_creates_get_unique_receipts(file_app):
    count = 12

    def _create(n):
        txn, created = transaction_service.create_transaction(
            TYPE_DONATION, _donation(n), idempotency_key=f"submit-{n}"
        )
        return txn.receipt_number, created

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        results = list(pool.map(lambda n: _in_context(file_app, _create, n), range(count)))

    assert all(created for _, created in results)
    receipts = sorted(r for r, _ in results)
    assert receipts == [f"{n:04d}" for n in range(1, count + 1)]


def test_parallel_retries_of_one_submission_create_one_record(file_app):
    attempts = 6

    def _submit(_):
        try:
            txn, created = transaction_service.create_transaction(
                TYPE_DONATION, _donation(1), idempotency_key="double-click"
            )
            return "created" if created else "replayed"
        except DuplicateSubmissionError:
            return "conflict"

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        outcomes = list(pool.map(lambda i: _in_context(file_app, _submit, i), range(attempts)))

    assert outcomes.count("created") == 1
    assert set(outcomes) <= {"created", "replayed", "conflict"}

    with file_app.app_context():
        rows = db.session.query(Transaction).filter_by(idempotency_key="double-click").all()
        assert len(rows) == 1
        assert rows[0].receipt_number == "0001"
        # Losers rolled back their increments
        assert receipt_service.peek_next(TYPE_DONATION) == "0002"
