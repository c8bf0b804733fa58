import os
from urllib.parse import parse_qsl

os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ethree.api.routes.routes import get_db
from ethree.config import Settings
from ethree.infrastructure.db.models import Base, UserProfile
from ethree.infrastructure.gateway.easebuzz import EasebuzzClient, compute_callback_hash
from ethree.main import create_app


TEST_KEY = "TESTKEY01"
TEST_SALT = "TESTSALT01"


class FakeGateway:
    """Records initiation requests and answers with a canned response."""

    def __init__(self):
        self.requests: list[dict] = []
        self.response = httpx.Response(200, json={"status": 1, "data": "acc_key_123"})
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(dict(parse_qsl(request.content.decode("utf-8"))))
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def last_request(self) -> dict:
        return self.requests[-1]


@pytest.fixture
def settings():
    return Settings(
        merchant_key=TEST_KEY,
        merchant_salt=TEST_SALT,
        gateway_env="test",
        frontend_url="http://frontend.test",
        backend_url="http://backend.test",
    )


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def gateway_client(settings, fake_gateway):
    http = httpx.Client(transport=httpx.MockTransport(fake_gateway.handler))
    client = EasebuzzClient(settings, http_client=http)
    yield client
    client.close()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def user(db_session):
    profile = UserProfile(
        id="user-1",
        name="Ravi Kumar",
        mobile="+91 98765-43210",
        email="ravi@example.com",
        role="customer",
    )
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture
def app(settings, gateway_client, session_factory):
    application = create_app(settings, gateway_client)

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "user-1", "X-User-Role": "customer"}


@pytest.fixture
def admin_headers():
    return {"X-User-Id": "admin-1", "X-User-Role": "admin"}


@pytest.fixture
def signed_callback():
    """Builds a gateway callback payload carrying a valid hash."""

    def build(txnid: str, status: str = "success", **overrides) -> dict:
        payload = {
            "key": TEST_KEY,
            "txnid": txnid,
            "amount": "300.00",
            "productinfo": "Bumper Cars",
            "firstname": "Ravi Kumar",
            "email": "ravi@example.com",
            "status": status,
            "easepayid": "EZ" + txnid.replace("-", ""),
            "mode": "UPI",
            "udf1": "E3",
            "udf2": "user-1",
        }
        payload.update(overrides)
        payload["hash"] = compute_callback_hash(payload, TEST_SALT)
        return payload

    return build


@pytest.fixture
def cart():
    return [
        {"id": "bumper-cars", "name": "Bumper Cars", "price": 150, "quantity": 2},
    ]


@pytest.fixture
def place_order(client, user, auth_headers, cart):
    """Checks out the default cart and returns the new txnid."""

    def place(location: str = "E3", items: list | None = None) -> str:
        response = client.post(
            f"/api/orders/{location}/checkout",
            json={"items": items or cart},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        return response.json()["txnid"]

    return place
