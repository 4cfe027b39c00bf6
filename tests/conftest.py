"""
conftest.py — Shared Test Fixtures for ordersync

Provides an in-memory SQLite database, an in-memory record store, a fake
Dolibarr API served through httpx.MockTransport, and factories for order
records.

Business Rules:
- All tests run against isolated in-memory stores (no prod data risk)
- Import pauses are zeroed so batching tests never sleep
- Each test function gets fresh tables (dropped afterwards)

Called by: all test files via pytest autodiscovery
Depends on: ordersync.models (Base), ordersync.store, ordersync.connectors
"""

import os

os.environ["TESTING"] = "1"  # Must be set before importing ordersync modules
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timezone

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ordersync.config import Settings
from ordersync.connectors.dolibarr import DolibarrConnector
from ordersync.locking import OperationLock
from ordersync.models import Base
from ordersync.store import MemoryStore

DOLIBARR_URL = "https://erp.test/api/index.php"
ORDERS = "adv_orders"

# ── In-memory SQLite engine ──────────────────────────────────────────

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# ── Factories ────────────────────────────────────────────────────────


def make_order(**fields) -> dict:
    """A stored order document with sensible defaults."""
    doc = {
        "id": fields.pop("id", "ADV-1"),
        "contract_ref": "CT-001",
        "company_name": "Atlas Telecom",
        "phone": "0522000000",
        "offer": "FIBRE 100M ESE",
        "sales_agent": "Sara Alami",
        "validation_state": "PENDING",
        "activation_state": "STUDY",
        "manually_created": False,
        "submitted_at": "2024-03-01T09:00:00+00:00",
        "processed_at": "2024-03-01T09:00:00+00:00",
    }
    doc.update(fields)
    return doc


def ts(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


# ── Fake Dolibarr ────────────────────────────────────────────────────


class FakeDolibarr:
    """Routes a MockTransport to in-memory Dolibarr data.

    listing: rows returned by GET /orders (paged by limit/page)
    details: GET /orders/{id} bodies keyed by id
    failing: paths that answer 500
    """

    def __init__(self):
        self.listing: list[dict] = []
        self.details: dict[str, dict] = {}
        self.users: list[dict] = []
        self.thirdparties: dict[str, dict] = {}
        self.representatives: dict[str, list] = {}
        self.products: list[dict] = []
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.on_detail = None

    def add_order(self, rowid: int, ref: str, contract: str | None = None, **detail):
        self.listing.append(
            {"id": str(rowid), "ref": ref, "array_options": {"options_val_cont": contract}}
        )
        body = {
            "id": str(rowid),
            "ref": ref,
            "socid": detail.pop("socid", None),
            "user_author_id": detail.pop("user_author_id", None),
            "date_creation": detail.pop("date_creation", 1709283600),
            "array_options": {"options_val_cont": contract},
            "lines": detail.pop("lines", []),
        }
        body.update(detail)
        self.details[str(rowid)] = body

    def detail_calls(self) -> list[str]:
        return [c for c in self.calls if c.startswith("/orders/")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.replace("/api/index.php", "", 1)
        self.calls.append(path)
        if request.headers.get("DOLAPIKEY") != "test-key":
            return httpx.Response(401, json={"error": "bad key"})
        if path in self.failing:
            return httpx.Response(500, json={"error": "boom"})

        if path == "/orders":
            limit = int(request.url.params["limit"])
            page = int(request.url.params["page"])
            return httpx.Response(200, json=self.listing[page * limit:(page + 1) * limit])
        if path.startswith("/orders/"):
            oid = path.rsplit("/", 1)[1]
            if self.on_detail is not None:
                self.on_detail(oid)
            if oid in self.details:
                return httpx.Response(200, json=self.details[oid])
            return httpx.Response(404, json={"error": "not found"})
        if path == "/users":
            return httpx.Response(200, json=self.users)
        if path.startswith("/users/"):
            uid = path.rsplit("/", 1)[1]
            for user in self.users:
                if str(user.get("id")) == uid:
                    return httpx.Response(200, json=user)
            return httpx.Response(404, json={"error": "not found"})
        if path.endswith("/representatives"):
            socid = path.split("/")[2]
            return httpx.Response(200, json=self.representatives.get(socid, []))
        if path.startswith("/thirdparties/"):
            socid = path.rsplit("/", 1)[1]
            if socid in self.thirdparties:
                return httpx.Response(200, json=self.thirdparties[socid])
            return httpx.Response(404, json={"error": "not found"})
        if path == "/products":
            return httpx.Response(200, json=self.products)
        return httpx.Response(404, json={"error": "no route"})


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        dolibarr_url=DOLIBARR_URL,
        dolibarr_api_key="test-key",
        sync_page_size=100,
        sync_max_pages=100,
        detail_batch_pause=0,
        thirdparty_batch_pause=0,
    )


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def lock() -> OperationLock:
    return OperationLock()


@pytest.fixture()
def dolibarr() -> FakeDolibarr:
    return FakeDolibarr()


@pytest.fixture()
def connector(dolibarr) -> DolibarrConnector:
    client = httpx.AsyncClient(transport=httpx.MockTransport(dolibarr.handler))
    return DolibarrConnector(DOLIBARR_URL, "test-key", client=client)
