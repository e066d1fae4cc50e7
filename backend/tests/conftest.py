"""
Pytest fixtures for temple accounts backend tests.

Provides test database setup, seeded receipt sequences, one user per role
and bearer-token headers for each of them.
"""

import pytest
from temple import create_app
from temple.extensions import db
from temple.models import ROLE_ADMIN, ROLE_TREASURER, ROLE_VIEWER
from temple.services.auth_service import create_user
from temple.services.receipt_service import seed_sequences


PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    # Requests run inline so they share the test's app context and session
    'REQUEST_TIMEOUT_SECONDS': 0,
    'SEED_SEQUENCES_ON_STARTUP': False,
    'BCRYPT_ROUNDS': 4,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()


@pytest.fixture(scope='function')
def sequences(db_session):
    """One receipt sequence per transaction type, all starting at 1."""
    return seed_sequences()


@pytest.fixture(scope='function')
def users(db_session, sequences):
    """admin / treasurer / viewer, all with PASSWORD."""
    return {
        ROLE_ADMIN: create_user("admin", "admin@temple.local", PASSWORD, role=ROLE_ADMIN, bcrypt_rounds=4),
        ROLE_TREASURER: create_user(
            "treasurer", "treasurer@temple.local", PASSWORD, role=ROLE_TREASURER, bcrypt_rounds=4
        ),
        ROLE_VIEWER: create_user("viewer", "viewer@temple.local", PASSWORD, role=ROLE_VIEWER, bcrypt_rounds=4),
    }


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, users):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def treasurer_headers(client, users):
    return auth_headers(get_auth_token(client, "treasurer"))


@pytest.fixture(scope='function')
def viewer_headers(client, users):
    return auth_headers(get_auth_token(client, "viewer"))


@pytest.fixture(scope='function')
def donation_payload():
    return {
        "date": "2024-01-15",
        "category": "General",
        "description": "Annadanam offering",
        "amount": 501,
        "donorName": "Ramesh Kumar",
        "donorContact": "9876543210",
    }


@pytest.fixture(scope='function')
def expense_payload():
    return {
        "date": "2024-01-16",
        "category": "Maintenance",
        "description": "Roof repair",
        "amount": "1200.50",
        "payeeName": "Sri Builders",
        "vendor": "Sri Builders",
    }


@pytest.fixture(scope='function')
def shop(db_session):
    from temple.services import rental_service
    return rental_service.create_shop({
        "shopNumber": "S-4",
        "size": 120,
        "monthlyRent": 5000,
        "deposit": 20000,
    })


@pytest.fixture(scope='function')
def tenant(db_session):
    from temple.services import rental_service
    return rental_service.create_tenant({
        "name": "Lakshmi Stores",
        "phone": "9123456780",
        "email": "lakshmi@stores.example",
    })


@pytest.fixture(scope='function')
def agreement(shop, tenant):
    """Active lease of shop S-4 to Lakshmi Stores at 5000 a month."""
    from temple.services import rental_service
    return rental_service.create_agreement({
        "shopId": shop.id,
        "tenantId": tenant.id,
        "agreementDate": "2024-01-01",
        "duration": 11,
        "monthlyRent": 5000,
    })
