import os

from cryptography.fernet import Fernet

# Settings are read at import time; configure before importing the app
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CREDENTIALS_ENCRYPTION_KEY", Fernet.generate_key().decode("utf-8"))

import asyncio  # noqa: E402
import copy  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dispatch_hub.api.deps import get_orchestrator  # noqa: E402
from dispatch_hub.carriers.registry import CarrierAdapterRegistry  # noqa: E402
from dispatch_hub.core.db import get_db, get_session_factory  # noqa: E402
from dispatch_hub.core.errors import OrderNotFoundError  # noqa: E402
from dispatch_hub.main import app  # noqa: E402
from dispatch_hub.models.base import Base  # noqa: E402
from dispatch_hub.models.delivery_company import DeliveryCompany  # noqa: E402
from dispatch_hub.services.credential_vault import CredentialVault  # noqa: E402
from dispatch_hub.services.dispatch import DispatchOrchestrator  # noqa: E402
from dispatch_hub.services.dispatch_locks import InProcessDispatchLocks  # noqa: E402
from dispatch_hub.services.http_client import HubHttpClient  # noqa: E402


CARRIER_URL = "https://carrier.test/api/orders"

ORDER = {
    "_id": "ord-1",
    "orderNumber": "ORD-1001",
    "customerInfo": {
        "firstName": "Omar",
        "lastName": "Khalil",
        "email": "omar@example.com",
        "mobile": "+962 77-123-4567",
    },
    "shippingAddress": {
        "street": "5 King Hussein St",
        "city": "Amman",
        "country": "Jordan",
    },
    "totalAmount": 42.5,
}

FIELD_MAPPINGS = [
    {"sourceField": "customerInfo", "targetField": "customer_name", "required": True, "transform": "full_name"},
    {"sourceField": "customerInfo.mobile", "targetField": "customer_phone", "required": True, "transform": "phone_last10"},
    {"sourceField": "shippingAddress.street", "targetField": "delivery_address", "required": True},
    {"sourceField": "shippingAddress.city", "targetField": "city", "required": True},
    {"sourceField": "totalAmount", "targetField": "cod_amount"},
    {"sourceField": "orderNumber", "targetField": "reference"},
    {"sourceField": "notes", "targetField": "notes"},
]


class FakeOrderLookup:
    def __init__(self, orders: dict[str, dict]):
        self.orders = orders

    async def get_order(self, order_id: str) -> dict:
        if order_id not in self.orders:
            raise OrderNotFoundError(f"Order {order_id} not found", detail={"order_id": order_id})
        return copy.deepcopy(self.orders[order_id])


class CarrierStub:
    """
    httpx.MockTransport handler. Queued responses are served in order;
    an exception instance in the queue is raised instead.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.queue: list = []
        self.delay = 0.0

    def reply(self, *responses) -> None:
        self.queue.extend(responses)

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        nxt = self.queue.pop(0) if self.queue else httpx.Response(201, json={"id": "ext-default"})
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


@pytest.fixture
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def orders():
    return FakeOrderLookup({"ord-1": ORDER})


@pytest.fixture
def carrier():
    return CarrierStub()


@pytest.fixture
async def http_client(carrier):
    client = HubHttpClient(timeout_seconds=5, transport=httpx.MockTransport(carrier))
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def vault():
    return CredentialVault()


@pytest.fixture
def orchestrator(session_factory, orders, vault, http_client):
    return DispatchOrchestrator(
        session_factory=session_factory,
        orders=orders,
        vault=vault,
        adapters=CarrierAdapterRegistry(http_client),
        locks=InProcessDispatchLocks(wait_seconds=0.05),
    )


@pytest.fixture
def make_company(session_factory, vault):
    """Inserts a DeliveryCompany directly; keyword overrides replace the defaults."""

    async def _make(**overrides) -> DeliveryCompany:
        credentials = overrides.pop("credentials", {"api_key": "sk-test-123"})
        values = {
            "name": "Fast Couriers",
            "code": "FAST",
            "api_url": CARRIER_URL,
            "api_format": "rest",
            "is_active": True,
            "settings": {"price_calculation": "fixed", "base_price": 3.5},
            "field_mappings": copy.deepcopy(FIELD_MAPPINGS),
            "custom_fields": {},
        }
        values.update(overrides)
        async with session_factory() as db:
            row = DeliveryCompany(**values, credentials_ciphertext=vault.seal(credentials))
            db.add(row)
            await db.commit()
            await db.refresh(row)
        return row

    return _make


@pytest.fixture
async def client(session_factory, orchestrator):
    """
    HTTP client bound to the per-test database and fake collaborators via dependency overrides.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
