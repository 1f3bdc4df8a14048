import json
import os
from urllib.parse import urlsplit

# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import pytest
import requests
from sqlalchemy.exc import OperationalError
from gc_estimator import create_app
from gc_estimator.extensions import db
from gc_estimator.services import router
from gc_estimator.services.stores import RemoteStore

REMOTE_BASE = "http://records.test/api/v1"


@pytest.fixture(scope="session")
def app():
    app = create_app()
    app.config.update(TESTING=True, APP_ENV="test")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _db_clean(app):
    stores = dict(app.extensions["gc_estimator.stores"])
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test; also undo any store-mode / store-registry changes
    app.config["STORE_MODE"] = router.LOCAL
    app.extensions["gc_estimator.stores"] = stores
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


class _Response:
    def __init__(self, resp):
        self.status_code = resp.status_code
        self.content = resp.get_data()
        self.text = resp.get_data(as_text=True)

    def json(self):
        return json.loads(self.content)


class FlaskClientSession:
    """requests.Session stand-in: sends RemoteStore traffic to the app's own record API."""

    def __init__(self, app):
        self.client = app.test_client()
        self.calls = []

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append((method, path, dict(headers or {})))
        resp = self.client.open(path, method=method, headers=headers, json=json, query_string=params)
        return _Response(resp)


class DeadSession:
    """Every call fails at the transport, like an unreachable host."""

    def __init__(self):
        self.calls = 0

    def request(self, method, url, **kwargs):
        self.calls += 1
        raise requests.ConnectionError(f"connection refused: {url}")


class LockedSession:
    """Database session whose reads fail like a locked SQLite file."""

    def __init__(self):
        self.rollbacks = 0

    def _locked(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))

    get = query = _locked

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture()
def remote_session(app):
    return FlaskClientSession(app)


@pytest.fixture()
def remote_store(app, remote_session):
    """Remote mode wired to the in-process record API (no network)."""
    store = RemoteStore(REMOTE_BASE, session=remote_session)
    with app.app_context():
        router.register_store(router.REMOTE, store)
    return store


@pytest.fixture(params=[router.LOCAL, router.REMOTE])
def backend(request, app, remote_store):
    """Run a test once per store; yields the mode name."""
    app.config["STORE_MODE"] = request.param
    return request.param


@pytest.fixture()
def trade_data():
    """Factory for minimal trade payloads."""

    def make(**overrides):
        data = {
            "category": "rough-framing",
            "name": "Framing package",
            "quantity": "1",
            "unit": "ls",
            "labor_cost": "0",
            "material_cost": "0",
            "subcontractor_cost": "0",
        }
        data.update(overrides)
        return data

    return make
