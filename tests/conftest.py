import os
import tempfile

os.environ.setdefault("JWT_SECRET", "test-access-secret-0123456789abcdef0123")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-0123456789abcdef012")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="expense-ai-uploads-")
os.environ["REVENUECAT_WEBHOOK_SECRET"] = ""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from werkzeug.security import generate_password_hash

from expense_ai.database import Base, Subscription, User, get_db, init_db
from expense_ai.main import app
from expense_ai.services.ai import get_extractor
from expense_ai.services.categories import create_default_categories
from expense_ai.services.preferences import get_or_create_preferences
from expense_ai.services.push import get_push_client
from expense_ai.timeutils import utcnow

PASSWORD = "Secret123!"


class FakePushClient:
    """Records every message; tokens listed in `failing` raise, in `rejected` return False."""

    def __init__(self):
        self.sent = []
        self.failing = set()
        self.rejected = set()

    def send(self, token, title, body, data=None):
        if token in self.failing:
            raise RuntimeError(f"provider exploded for {token}")
        if token in self.rejected:
            return False
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        return True


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def push_client():
    return FakePushClient()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(email=None, **prefs):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            password_hash=generate_password_hash(PASSWORD),
            first_name="Test",
            last_name="User",
        )
        db.add(user)
        db.flush()
        user.revenuecat_user_id = str(user.id)
        create_default_categories(db, user.id)
        preferences = get_or_create_preferences(db, user.id)
        for field, value in prefs.items():
            setattr(preferences, field, value)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def client(session_factory, push_client):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_push_client] = lambda: push_client
    yield TestClient(app)
    app.dependency_overrides.clear()


def signup(client, email="jane@example.com"):
    response = client.post(
        "/api/v1/auth/signup",
        json={"email": email, "password": PASSWORD, "first_name": "Jane", "last_name": "Doe"},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def auth(client):
    """Signed-up user: returns (user dict, headers)."""
    data = signup(client)
    return data["user"], {"Authorization": f"Bearer {data['access_token']}"}


@pytest.fixture
def auth_headers(auth):
    return auth[1]


@pytest.fixture
def premium(auth, db):
    user, headers = auth
    now = utcnow()
    db.add(
        Subscription(
            user_id=user["id"],
            revenuecat_user_id=str(user["id"]),
            product_id="expenseai_premium_monthly",
            store="app_store",
            plan="monthly",
            status="active",
            current_period_start=now - timedelta(days=1),
            current_period_end=now + timedelta(days=29),
        )
    )
    db.commit()
    return headers


@pytest.fixture
def use_extractor():
    def _install(extractor):
        app.dependency_overrides[get_extractor] = lambda: extractor

    return _install
