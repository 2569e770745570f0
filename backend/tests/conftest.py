"""
Shared test fixtures and configuration for UpNext backend tests.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DEBUG"] = "true"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-min-32-chars"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["NOTIFICATION_DELIVERY"] = "log"
os.environ.pop("REDIS_URL", None)
os.environ.pop("KV_URL", None)

from upnext.api.deps import build_coordinator, get_clock  # noqa: E402
from upnext.core.store import InMemoryStore, get_store  # noqa: E402
from upnext.models.user import Role  # noqa: E402


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def coordinator(store, clock):
    return build_coordinator(store, clock)


@pytest.fixture
def rotation(coordinator):
    return coordinator.rotation


@pytest.fixture
def audit(coordinator):
    return coordinator.audit


@pytest.fixture
def users(coordinator):
    return coordinator.users


@pytest_asyncio.fixture
async def seeded_users(users):
    """One user per role, passwords equal to '<username>-pass'."""
    return {
        "manager": await users.create("manager", "manager-pass", "Morgan Manager", Role.MANAGER),
        "bdc": await users.create("bdc", "bdc-pass", "Blake Bdc", Role.BDC),
        "sales": await users.create("sally", "sally-pass", "Sally Sales", Role.SALESPERSON),
    }


@pytest_asyncio.fixture
async def client(store, clock):
    from upnext.main import app

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Log in through the API and return Authorization headers."""
    async def _login(username: str, password: str) -> dict:
        response = await client.post("/api/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        # Tests authenticate with explicit headers, not the login cookie
        client.cookies.clear()
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login
