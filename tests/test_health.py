"""Tests for the health/metrics server."""

import pytest
from aiohttp.test_utils import TestClient, TestServer

from phishguard.monitoring.health import HealthServer


async def _client(provider) -> TestClient:
    server = HealthServer(host="127.0.0.1", port=0, status_provider=provider)
    client = TestClient(TestServer(server.build_app()))
    await client.start_server()
    return client


@pytest.mark.asyncio
async def test_healthz_with_async_provider():
    async def provider():
        return {"model_status": "READY", "sandbox_healthy": True}

    client = await _client(provider)
    try:
        resp = await client.get("/healthz")
        assert resp.status == 200
        assert await resp.json() == {"model_status": "READY", "sandbox_healthy": True, "status": "ok"}
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_metrics_only_expose_numbers():
    client = await _client(lambda: {"signature_count": 53, "sandbox_healthy": False, "model_status": "READY"})
    try:
        resp = await client.get("/metrics")
        text = await resp.text()
        assert "phishguard_signature_count 53" in text
        assert "phishguard_sandbox_healthy 0" in text
        assert "model_status" not in text
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_provider_failure_reports_error():
    def provider():
        raise RuntimeError("db down")

    client = await _client(provider)
    try:
        resp = await client.get("/healthz")
        assert resp.status == 503
        assert (await resp.json())["message"] == "db down"
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_disabled_server_does_not_bind():
    server = HealthServer(host="127.0.0.1", port=0, status_provider=dict, enabled=False)
    await server.start()
    assert server._runner is None
    await server.stop()
