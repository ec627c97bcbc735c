"""
Pytest fixtures for possync backend tests.

Provides a fresh in-memory local store per test, tenant scopes, a manual
scheduler for the sync engine and a mock remote authority.
"""

import json

import httpx
import pytest

from possync import create_app
from possync.extensions import db
from possync.services.lifecycle_service import create_entity
from possync.services.sync_service import ManualScheduler, init_sync_engine
from possync.services.tenant_service import TenantScope, company_id_for, pos_id_for, get_session_provider


SYNC_URL = "https://sync.test/api/sync"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SYNC_ENDPOINT_URL': SYNC_URL,
    'SYNC_API_KEY': 'test-key',
    'SYNC_DEBOUNCE_SECONDS': 2.0,
    'SYNC_RETRY_INTERVAL_SECONDS': 60.0,
}


class RemoteRecorder:
    """
    Mock remote authority. Records every pushed payload; can be switched to
    fail with an HTTP status or a connection error.
    """

    def __init__(self):
        self.requests = []
        self.fail_status = None
        self.offline = False
        self.on_push = None

    @property
    def payloads(self):
        return [r["payload"] for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)
        payload = json.loads(request.content)
        self.requests.append({"headers": dict(request.headers), "payload": payload})
        if self.on_push is not None:
            self.on_push(payload)
        if self.fail_status:
            return httpx.Response(self.fail_status, json={"error": "remote failure"})
        return httpx.Response(200, json={"ok": True})


@pytest.fixture(scope='function')
def scheduler():
    return ManualScheduler()


@pytest.fixture(scope='function')
def remote():
    return RemoteRecorder()


@pytest.fixture(scope='function')
def app(scheduler, remote):
    """Create application for testing, with the sync engine on a manual clock."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        init_sync_engine(app, scheduler=scheduler, transport=httpx.MockTransport(remote.handler))
        yield app
        app.extensions["sync_engine"].detach()
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def engine(app):
    return app.extensions["sync_engine"]


@pytest.fixture(scope='function')
def scope_a(app):
    """Active session: company 'Boutique Soa', till 'Caisse 1'."""
    return get_session_provider().login("Boutique Soa", "Caisse 1").scope


@pytest.fixture(scope='function')
def scope_b(app):
    """A second tenant; never logged in, used with explicit scope only."""
    return TenantScope(company_id=company_id_for("Epicerie Be"), pos_id=pos_id_for("Caisse 2"))


@pytest.fixture(scope='function')
def make_product(app):
    def _make(scope, **fields):
        payload = {"name": "Coffee", "price": 500, "stock": 10, "type": "product"}
        payload.update(fields)
        return create_entity(scope, "products", payload)
    return _make


@pytest.fixture(scope='function')
def make_customer(app):
    def _make(scope, name="Rakoto"):
        return create_entity(scope, "customers", {"name": name, "phone": "+261 34 00 000 00"})
    return _make
