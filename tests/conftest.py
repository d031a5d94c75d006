import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app

ADMIN_EMAIL = "admin@dragonmart.ae"
ADMIN_PASSWORD = "admin-pass"


def make_database():
    return Database("mongodb://localhost:27017", "dragon_mart_test", client_factory=mongomock.MongoClient)


@pytest.fixture
def database():
    db = make_database().open()
    yield db
    db.close()


@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-secret",
        database_name="dragon_mart_test",
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
        admin_name="Store Admin",
    )


@pytest.fixture
def client(settings):
    app = create_app(settings, make_database())
    with TestClient(app) as c:
        yield c


def register(client, email="sara@example.com", password="secret123", name="Sara", phone="+971500000001"):
    return client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "phone": phone, "password": password},
    )


def login(client, email, password):
    res = client.post("/api/auth/login", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return res.json()["token"]


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def customer_token(client):
    assert register(client).status_code == 201
    return login(client, "sara@example.com", "secret123")


@pytest.fixture
def admin_token(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
