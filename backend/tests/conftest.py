"""
Pytest fixtures for CRM backend tests.

Provides the test app (in-memory SQLite), per-test clean tables, stores,
one user per role and helpers for contexts and auth headers.
"""

import pytest
from crm import create_app
from crm.extensions import db
from crm.models import Identity, Profile, Store, UserStore, Product
from crm.permissions import Role
from crm.services import change_feed, session_service
from crm.services.auth_service import hash_password


PASSWORD = "Password123!"
# Hashed once; bcrypt cost 12 is slow
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        # Flush the wipe's staged bulk-delete events before the test subscribes
        change_feed.drain()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(autouse=True)
def fresh_feed(monkeypatch):
    """Each test gets its own change feed with no leftover subscribers."""
    feed = change_feed.ChangeFeed()
    monkeypatch.setattr(change_feed, "feed", feed)
    return feed


def make_user(username: str, role: Role, store: Store | None = None, *, full_name: str | None = None) -> Profile:
    """Insert identity + profile (+ store assignment) directly."""
    identity = Identity(email=f"{username}@crm.test", password_hash=PASSWORD_HASH)
    db.session.add(identity)
    db.session.flush()

    profile = Profile(
        id=identity.id,
        username=username,
        full_name=full_name or username.replace("_", " ").title(),
        email=identity.email,
        role=role,
    )
    db.session.add(profile)
    if store is not None:
        db.session.add(UserStore(user_id=identity.id, store_id=store.id))
    db.session.commit()
    return profile


def context(profile: Profile):
    """Fresh SessionContext for a profile (current role and store)."""
    return session_service.context_for(db.session.get(Profile, profile.id))


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(profile: Profile) -> dict:
    """Open a session without going through bcrypt verification."""
    _, token = session_service.create_session(profile.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def store_a(db_session):
    store = Store(name="North Store", address="1 North Road")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def store_b(db_session):
    store = Store(name="South Store")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def admin(db_session):
    return make_user("admin_user", Role.ADMIN)


@pytest.fixture(scope='function')
def board(db_session):
    return make_user("board_user", Role.BOARD)


@pytest.fixture(scope='function')
def manager_a(db_session, store_a):
    return make_user("manager_a", Role.MANAGER, store_a)


@pytest.fixture(scope='function')
def manager_unassigned(db_session):
    return make_user("manager_none", Role.MANAGER)


@pytest.fixture(scope='function')
def sales_a(db_session, store_a):
    return make_user("sales_a", Role.SALESPERSON, store_a)


@pytest.fixture(scope='function')
def sales_a2(db_session, store_a):
    return make_user("sales_a2", Role.SALESPERSON, store_a)


@pytest.fixture(scope='function')
def sales_b(db_session, store_b):
    return make_user("sales_b", Role.SALESPERSON, store_b)


@pytest.fixture(scope='function')
def products(db_session):
    rows = [
        Product(product_code="P-100", description="Oak Table", cost_price_cents=10000, sale_price_cents=25000),
        Product(product_code="P-200", description="Pine Chair", cost_price_cents=2000, sale_price_cents=4500),
        Product(product_code="P-300", description="Walnut Desk", cost_price_cents=30000, sale_price_cents=60000),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows
