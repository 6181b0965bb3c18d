"""
Pytest configuration and fixtures.
"""
import uuid
from typing import AsyncGenerator, Callable, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from nibret.core.security import CurrentUser, UserRole, create_access_token
from nibret.services.activity_queue import ActivityQueue


@pytest.fixture
def make_user() -> Callable[..., CurrentUser]:
    def _make(role: str = UserRole.AGENT, **overrides) -> CurrentUser:
        fields = {
            "id": uuid.uuid4(),
            "role": role,
            "name": f"Test {role.title()}",
            "email": f"{role}@nibret.test",
        }
        fields.update(overrides)
        return CurrentUser(**fields)

    return _make


@pytest.fixture
def auth_headers() -> Callable[[CurrentUser], Dict[str, str]]:
    """Bearer headers for a CurrentUser, signed with the test secret."""

    def _headers(user: CurrentUser) -> Dict[str, str]:
        token = create_access_token(
            {"sub": str(user.id), "role": user.role, "name": user.name, "email": user.email}
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def ledger_queue(monkeypatch) -> ActivityQueue:
    """A fresh, unstarted activity queue in place of the process-wide one."""
    queue = ActivityQueue(maxsize=100)
    monkeypatch.setattr("nibret.services.activity_ledger.activity_queue", queue)
    return queue


@pytest_asyncio.fixture
async def api_client(monkeypatch, ledger_queue) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX AsyncClient configured against the FastAPI app with test overrides."""
    from nibret.main import app
    from nibret.core.database import get_db
    from nibret.core.redis import get_redis
    from nibret.core.rate_limiter import limiter

    class StubResult:
        def scalar(self):
            return 1

        def scalar_one(self):
            return 1

    class StubSession:
        async def execute(self, *_args, **_kwargs):
            return StubResult()

        async def commit(self):
            return None

        async def rollback(self):
            return None

        async def close(self):
            return None

    class StubRedis:
        async def ping(self):
            return True

    async def override_db():
        session = StubSession()
        try:
            yield session
        finally:
            await session.close()

    async def override_redis():
        return StubRedis()

    previous_storage, previous_strategy = limiter._storage, limiter._limiter
    limiter._storage = MemoryStorage()
    limiter._limiter = FixedWindowRateLimiter(limiter._storage)

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_redis] = override_redis
    app.state.test_db_override = override_db
    app.state.test_redis_override = override_redis

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        for name in ("test_db_override", "test_redis_override"):
            if hasattr(app.state, name):
                delattr(app.state, name)
        limiter._storage, limiter._limiter = previous_storage, previous_strategy
