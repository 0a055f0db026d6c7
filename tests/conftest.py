from datetime import timedelta

import pytest

from app import create_app
from config import TestConfig
from models import db
from utils import timeutil

PASSWORD = "Passw0rd!"


class FakeClock:
    def __init__(self):
        self.now = timeutil.now_utc()

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(timeutil, "now_utc", fake)
    return fake


@pytest.fixture
def make_app(tmp_path):
    created = []

    def _make(backend="json", **overrides):
        overrides.setdefault("STORAGE_BACKEND", backend)
        overrides.setdefault("DATA_DIR", str(tmp_path / "data"))
        app = create_app(TestConfig, overrides=overrides)
        with app.app_context():
            db.create_all()
        created.append(app)
        return app

    yield _make

    for app in created:
        with app.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture(params=["json", "sql"])
def app(request, make_app):
    return make_app(request.param)


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, username, email, password=PASSWORD):
    return client.post(
        "/api/auth/register",
        json={"username": username, "email": email, "password": password},
    )


def login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def users(client):
    """alice, bob and carol registered; name -> {"id", "token"}."""
    out = {}
    for name in ("alice", "bob", "carol"):
        resp = register(client, name, f"{name}@example.com")
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        out[name] = {"id": body["user"]["id"], "token": body["token"]}
    return out
