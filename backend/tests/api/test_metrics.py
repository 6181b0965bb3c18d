"""
Metrics instrumentation tests.
"""

import pytest
from prometheus_client import REGISTRY

from fastapi import Response

from nibret.core.metrics import record_activity_event
from nibret.core.redis import CacheService
from nibret.main import app


@app.get("/__test-error")
async def trigger_error():
    return Response(status_code=500)


def _get_metric_value(metric: str, labels: dict) -> float:
    value = REGISTRY.get_sample_value(metric, labels)
    return value or 0.0


@pytest.mark.asyncio
async def test_http_metrics_and_request_id(api_client):
    labels = {"method": "GET", "path": "/api/v1/health/liveness", "status": "200"}
    before = _get_metric_value("app_http_requests_total", labels)

    response = await api_client.get("/api/v1/health/liveness")

    after = _get_metric_value("app_http_requests_total", labels)
    assert after == pytest.approx(before + 1)
    assert response.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_is_propagated(api_client):
    response = await api_client.get(
        "/api/v1/health/liveness", headers={"X-Request-ID": "trace-42"}
    )
    assert response.headers["X-Request-ID"] == "trace-42"


@pytest.mark.asyncio
async def test_http_error_metrics(api_client):
    total_labels = {"method": "GET", "path": "/__test-error", "status": "500"}

    total_before = _get_metric_value("app_http_requests_total", total_labels)
    errors_before = _get_metric_value("app_http_request_errors_total", total_labels)

    response = await api_client.get("/__test-error")

    assert response.status_code == 500
    assert _get_metric_value("app_http_requests_total", total_labels) == pytest.approx(total_before + 1)
    assert _get_metric_value("app_http_request_errors_total", total_labels) == pytest.approx(errors_before + 1)


class InMemoryRedis:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def scan_iter(self, match):
        for key in list(self.store):
            if match == "*" or key.startswith(match.rstrip("*")):
                yield key


@pytest.mark.asyncio
async def test_cache_metrics():
    cache = CacheService(InMemoryRedis())

    def value(operation):
        return _get_metric_value("app_cache_operations_total", {"operation": operation})

    miss_before = value("miss")
    await cache.get("missing")
    assert value("miss") == pytest.approx(miss_before + 1)

    set_before = value("set")
    await cache.set("key", {"value": 1})
    assert value("set") == pytest.approx(set_before + 1)

    hit_before = value("hit")
    assert await cache.get("key") == {"value": 1}
    assert value("hit") == pytest.approx(hit_before + 1)

    delete_before = value("delete")
    await cache.delete("key")
    assert value("delete") == pytest.approx(delete_before + 1)

    await cache.set("another", {"value": 2})
    invalidate_before = value("invalidate")
    await cache.invalidate_pattern("an*")
    assert value("invalidate") == pytest.approx(invalidate_before + 1)


@pytest.mark.asyncio
async def test_get_or_compute_caches_result():
    cache = CacheService(InMemoryRedis())
    calls = []

    async def compute():
        calls.append(1)
        return {"total": 3}

    key = cache.key("analytics", "dashboard", 30)
    assert key == "nibret:analytics:dashboard:30"
    assert await cache.get_or_compute(key, compute, ttl=60) == {"total": 3}
    assert await cache.get_or_compute(key, compute, ttl=60) == {"total": 3}
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_get_or_compute_survives_cache_outage():
    class BrokenRedis:
        async def get(self, key):
            raise ConnectionError("redis down")

        async def setex(self, key, ttl, value):
            raise ConnectionError("redis down")

    async def compute():
        return [1, 2]

    assert await CacheService(BrokenRedis()).get_or_compute("k", compute, ttl=5) == [1, 2]


def test_activity_event_metric():
    labels = {"outcome": "dropped"}
    before = _get_metric_value("app_activity_events_total", labels)
    record_activity_event("dropped")
    assert _get_metric_value("app_activity_events_total", labels) == pytest.approx(before + 1)
