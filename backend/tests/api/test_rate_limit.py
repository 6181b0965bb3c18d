"""Rate limiting integration tests."""

import uuid

import pytest
from fastapi import Request

from slowapi.util import get_remote_address

from nibret.core.config import settings
from nibret.core.rate_limiter import limiter
from nibret.main import app


def _test_key_func(request: Request) -> str:
    return request.headers.get("x-test-key", get_remote_address(request))


@app.post("/__limited")
@limiter.limit("3/minute", key_func=_test_key_func)
async def limited_endpoint(request: Request):  # pragma: no cover - exercised via tests
    return {"ok": True}


@pytest.mark.asyncio
async def test_per_endpoint_rate_limit(api_client):
    from slowapi import extension as slowapi_extension

    assert slowapi_extension._rate_limit_exceeded_handler.__name__ == "_rate_limit_handler"
    limiter.reset()
    headers = {"x-test-key": f"per-test-{uuid.uuid4()}"}
    for _ in range(3):
        response = await api_client.post("/__limited", headers=headers)
        assert response.status_code == 200

    response = await api_client.post("/__limited", headers=headers)
    assert response.status_code == 429
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_activity_tracking_is_rate_limited(api_client, ledger_queue):
    limiter.reset()
    allowed = int(settings.PUBLIC_WRITE_RATE_LIMIT.split("/")[0])
    event = {"type": "page_view", "action": "visit", "metadata": {"page_url": "/"}}

    for _ in range(allowed):
        response = await api_client.post("/api/v1/analytics/track", json=event)
        assert response.status_code == 202

    response = await api_client.post("/api/v1/analytics/track", json=event)
    assert response.status_code == 429
    assert response.json()["error"].startswith("Rate limit exceeded")


@pytest.mark.asyncio
async def test_public_writes_share_one_budget(api_client, ledger_queue):
    limiter.reset()
    allowed = int(settings.PUBLIC_WRITE_RATE_LIMIT.split("/")[0])
    event = {"type": "page_view", "action": "visit", "metadata": {"page_url": "/"}}

    for _ in range(allowed):
        await api_client.post("/api/v1/analytics/track", json=event)

    response = await api_client.post(
        "/api/v1/leads",
        json={
            "first_name": "Abebe",
            "last_name": "Kebede",
            "email": "abebe@nibret.com",
            "phone": "+251911000000",
        },
    )
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_health_checks_are_exempt(api_client):
    limiter.reset()
    for _ in range(5):
        response = await api_client.get("/api/v1/health/liveness")
        assert response.status_code == 200
