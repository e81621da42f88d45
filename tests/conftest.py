"""Pytest configuration and fixtures."""

import os
import tempfile
from datetime import datetime, timezone
from typing import Optional

import httpx
import pytest

# Set test environment variables before importing settings
_db_dir = tempfile.mkdtemp(prefix="ledgerboard-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["ENVIRONMENT"] = "development"
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ["STORE_RETRY_BACKOFF_SECONDS"] = "0"
os.environ["PROVIDER_PAGE_DELAY_SECONDS"] = "0"

from ledgerboard.connectors.siigo import ConstantDelay, SiigoClient  # noqa: E402
from ledgerboard.crypto import encrypt  # noqa: E402
from ledgerboard.database import Base, SessionLocal, engine, init_db  # noqa: E402
from ledgerboard.models import Company  # noqa: E402

BASE_URL = "https://siigo.test"
PARTNER_ID = "TestPartner"


class FakeSiigo:
    """In-memory SIIGO API served through httpx.MockTransport."""

    def __init__(self):
        self.auth_status = 200
        self.auth_payload: Optional[dict] = None
        self.expires_in = 86400
        self.auth_calls = 0
        self.requests: list[httpx.Request] = []
        self.resources: dict[str, list[dict]] = {
            "invoices": [],
            "customers": [],
            "purchases": [],
            "accounts": [],
            "products": [],
        }
        # (resource, page) -> (status, headers)
        self.failures: dict[tuple[str, int], tuple[int, dict]] = {}

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def reads(self, resource: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"/v1/{resource}"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/auth":
            self.auth_calls += 1
            if self.auth_status != 200:
                return httpx.Response(self.auth_status, text="invalid_grant")
            payload = self.auth_payload or {
                "access_token": f"token-{self.auth_calls}",
                "expires_in": self.expires_in,
                "token_type": "Bearer",
            }
            return httpx.Response(200, json=payload)

        resource = request.url.path.removeprefix("/v1/")
        page = int(request.url.params.get("page", 1))
        page_size = int(request.url.params.get("page_size", 100))
        if (resource, page) in self.failures:
            status, headers = self.failures[(resource, page)]
            return httpx.Response(status, headers=headers, text="upstream failure")

        items = self.resources.get(resource, [])
        start = (page - 1) * page_size
        return httpx.Response(200, json={
            "pagination": {"page": page, "page_size": page_size, "total_results": len(items)},
            "results": items[start:start + page_size],
        })


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(autouse=True)
def fresh_db():
    """Empty tables for every test."""
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def siigo():
    return FakeSiigo()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client(siigo, clock):
    """Factory for a SiigoClient wired to the fake API."""
    def _make(**kwargs) -> SiigoClient:
        options = {
            "username": "api@acme.co",
            "access_key": "secret-key",
            "partner_id": PARTNER_ID,
            "base_url": BASE_URL,
            "page_size": 100,
            "pacing": ConstantDelay(0),
            "transport": siigo.transport,
            "clock": clock,
        }
        options.update(kwargs)
        return SiigoClient(**options)

    return _make


def _add_company(**fields) -> Company:
    with SessionLocal() as db:
        company = Company(**fields)
        db.add(company)
        db.commit()
        db.refresh(company)
        return company


@pytest.fixture
def company():
    """Active tenant without SIIGO credentials."""
    return _add_company(name="Acme SAS", subdomain="acme", api_key="a" * 64)


@pytest.fixture
def configured_company():
    """Active tenant with encrypted SIIGO credentials."""
    return _add_company(
        name="Globex SAS",
        subdomain="globex",
        api_key="b" * 64,
        siigo_username="api@globex.co",
        siigo_access_key=encrypt("secret-key"),
        siigo_partner_id=PARTNER_ID,
    )


@pytest.fixture
def api(siigo):
    """TestClient whose provider calls go to the fake SIIGO API."""
    from fastapi.testclient import TestClient

    from ledgerboard.api.routes import get_client_options
    from ledgerboard.main import app

    app.dependency_overrides[get_client_options] = lambda: {
        "base_url": BASE_URL,
        "transport": siigo.transport,
        "pacing": ConstantDelay(0),
    }
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
