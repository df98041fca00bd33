import os
import tempfile
from decimal import Decimal

# Settings are read at import time
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'nearmart_test.db')}",
)
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("CACHE_ENABLED", "false")

import pytest
import httpx

from nearmart.core.security import ROLE_CUSTOMER, ROLE_RETAILER, create_access_token, get_password_hash
from nearmart.database import build_engine, build_session_factory, get_db, init_db
from nearmart.models import Customer, Product, Retailer
from nearmart.services.cache_service import InMemoryCache
from nearmart.services.geocoder_service import FixedWindowRateLimiter, GeocoderService


# ==================== DATABASE ====================

@pytest.fixture
async def engine(tmp_path):
    """A fresh SQLite file per test so separate sessions really interleave."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'nearmart.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ==================== ENTITIES ====================

async def make_retailer(db, email="store@example.com", store_name="Corner Store",
                        longitude=-73.9857, latitude=40.7484) -> Retailer:
    retailer = Retailer(
        name="Store Owner",
        email=email,
        password_hash=get_password_hash("secret123"),
        store_name=store_name,
        street="1 Main St",
        city="Springfield",
        state="IL",
        zip_code="62701",
        longitude=longitude,
        latitude=latitude,
    )
    db.add(retailer)
    await db.commit()
    return retailer


async def make_customer(db, email="alice@example.com") -> Customer:
    customer = Customer(
        name="Alice",
        email=email,
        password_hash=get_password_hash("secret123"),
        phone="+15550100",
        street="742 Evergreen Terrace",
        city="Springfield",
        state="IL",
        zip_code="62704",
        longitude=-73.9850,
        latitude=40.7480,
    )
    db.add(customer)
    await db.commit()
    return customer


async def make_product(db, retailer, name="Apples", price="2.99", stock=10,
                       is_available=True) -> Product:
    product = Product(
        retailer_id=retailer.id,
        name=name,
        category="Produce",
        images=[f"https://img.example.com/{name.lower()}.jpg"],
        price=Decimal(price),
        stock=stock,
        is_available=is_available,
    )
    db.add(product)
    await db.commit()
    return product


@pytest.fixture
async def retailer(db):
    return await make_retailer(db)


@pytest.fixture
async def other_retailer(db):
    return await make_retailer(db, email="rival@example.com", store_name="Rival Mart",
                               longitude=-73.9000, latitude=40.8000)


@pytest.fixture
async def customer(db):
    return await make_customer(db)


@pytest.fixture
async def product_a(db, retailer):
    return await make_product(db, retailer, name="Apples", price="2.99", stock=10)


@pytest.fixture
async def product_b(db, retailer):
    return await make_product(db, retailer, name="Bread", price="1.99", stock=5)


# ==================== GEOCODER ====================

class FakeProvider:
    """Scripted geocoding provider for httpx.MockTransport.

    Responses are served in order; the last one repeats. Exceptions are raised.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or [httpx.Response(200, json=[])]
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture
def geo_provider():
    return FakeProvider()


@pytest.fixture
async def geocoder(geo_provider):
    """Geocoder wired to `geo_provider`; script it per test."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(geo_provider)) as http_client:
        yield GeocoderService(
            cache=InMemoryCache(max_entries=10),
            rate_limiter=FixedWindowRateLimiter(limit=100, window_seconds=60),
            client=http_client,
            base_url="https://geo.test",
            max_retries=2,
            retry_delay=0.01,
        )


# ==================== HTTP ====================

@pytest.fixture
async def client(session_factory, geocoder):
    """API client bound to the per-test database. The lifespan is not run."""
    from nearmart.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.state.geocoder = geocoder
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    app.state.geocoder = None


def auth_headers(entity, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(entity.id, role)}"}


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer, ROLE_CUSTOMER)


@pytest.fixture
def retailer_headers(retailer):
    return auth_headers(retailer, ROLE_RETAILER)
