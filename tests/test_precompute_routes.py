from __future__ import annotations

import json
import uuid

import pytest
from httpx import AsyncClient

from restock.middleware.logging import job_id_from_path
from restock.services.job_store import ConcurrentChunkError
from restock.services.precompute_service import PrecomputeService
from restock.services.provider_client import ProviderError
from restock.services.token_provider import TokenError
from tests.conftest import FakeProvider, FakeRedis, FakeSession


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
	response = await client.get("/health")
	assert response.status_code == 200
	assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_job_lifecycle_over_http(client: AsyncClient) -> None:
	created = await client.post("/api/v1/precompute/jobs", json={"months": 3})
	assert created.status_code == 201
	job_id = created.json()["job_id"]
	assert created.json()["total_items"] == 5

	first = await client.post(f"/api/v1/precompute/jobs/{job_id}/chunks", json={"batch_size": 3})
	assert first.status_code == 200
	assert first.json()["status"] == "running"
	assert first.json()["progress"] == 60

	second = await client.post(f"/api/v1/precompute/jobs/{job_id}/chunks")
	assert second.json()["status"] == "done"
	assert second.json()["progress"] == 100

	status = await client.get(f"/api/v1/precompute/jobs/{job_id}")
	assert status.status_code == 200
	assert status.json()["processed_items"] == 5

	results = await client.get(f"/api/v1/precompute/jobs/{job_id}/suggestions")
	assert results.status_code == 200
	body = results.json()
	assert len(body["suggestions"]) == 5
	assert body["stats"]["high"] == 5
	assert body["stats"]["total_estimated_cost"] == 760.0


@pytest.mark.asyncio
async def test_start_without_body_uses_default_months(client: AsyncClient) -> None:
	response = await client.post("/api/v1/precompute/jobs")
	assert response.status_code == 201
	assert response.json()["status"] == "queued"


@pytest.mark.asyncio
async def test_invalid_months_rejected(client: AsyncClient) -> None:
	response = await client.post("/api/v1/precompute/jobs", json={"months": 0})
	assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_job_is_404(client: AsyncClient) -> None:
	job_id = uuid.uuid4()
	assert (await client.get(f"/api/v1/precompute/jobs/{job_id}")).status_code == 404
	assert (await client.post(f"/api/v1/precompute/jobs/{job_id}/chunks")).status_code == 404
	assert (await client.get(f"/api/v1/precompute/jobs/{job_id}/suggestions")).status_code == 404


@pytest.mark.asyncio
async def test_concurrent_chunk_maps_to_409(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
	async def fake_run_chunk(self: PrecomputeService, job_id: uuid.UUID, _options: object) -> None:
		raise ConcurrentChunkError(f"Job {job_id} was modified concurrently (expected version 1)")

	monkeypatch.setattr(PrecomputeService, "run_chunk", fake_run_chunk)

	response = await client.post(f"/api/v1/precompute/jobs/{uuid.uuid4()}/chunks")
	assert response.status_code == 409


@pytest.mark.asyncio
async def test_provider_failure_maps_to_502(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
	async def fake_start(self: PrecomputeService, _months: int | None = None) -> None:
		raise ProviderError("Items fetch failed: 503", 503)

	monkeypatch.setattr(PrecomputeService, "start", fake_start)

	response = await client.post("/api/v1/precompute/jobs", json={"months": 6})
	assert response.status_code == 502
	assert "provider failure" in response.json()["detail"]


@pytest.mark.asyncio
async def test_status_cache_written_after_commit(
	client: AsyncClient,
	fake_session: FakeSession,
	fake_redis: FakeRedis,
) -> None:
	order: list[str] = []
	fake_session.commit.side_effect = lambda: order.append("commit")

	async def record_setex(key: str, _ttl: int, value: str) -> bool:
		order.append("setex")
		fake_redis.values[key] = value
		return True

	fake_redis.setex.side_effect = record_setex

	created = await client.post("/api/v1/precompute/jobs", json={"months": 3})
	job_id = created.json()["job_id"]

	assert order == ["commit", "setex"]
	assert json.loads(fake_redis.values[f"job:{job_id}:status"])["status"] == "queued"


@pytest.mark.asyncio
async def test_token_failure_mid_chunk_maps_to_502_without_caching(
	client: AsyncClient,
	provider: FakeProvider,
	fake_session: FakeSession,
	fake_redis: FakeRedis,
) -> None:
	created = await client.post("/api/v1/precompute/jobs", json={"months": 3})
	job_id = created.json()["job_id"]
	fake_session.commit.reset_mock()
	fake_redis.setex.reset_mock()
	provider.detail_error = TokenError("Token fetch failed: 401 invalid_client")

	response = await client.post(f"/api/v1/precompute/jobs/{job_id}/chunks")

	assert response.status_code == 502
	fake_session.commit.assert_not_awaited()
	fake_redis.setex.assert_not_awaited()


@pytest.mark.asyncio
async def test_precompute_openapi_contract(client: AsyncClient) -> None:
	response = await client.get("/openapi.json")
	assert response.status_code == 200
	paths = response.json()["paths"]
	assert "/api/v1/precompute/jobs" in paths
	assert "/api/v1/precompute/jobs/{job_id}/chunks" in paths
	assert "/api/v1/precompute/jobs/{job_id}" in paths
	assert "/api/v1/precompute/jobs/{job_id}/suggestions" in paths


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient) -> None:
	response = await client.get("/health", headers={"x-request-id": "req-123"})
	assert response.headers["x-request-id"] == "req-123"

	generated = await client.get("/health")
	assert len(generated.headers["x-request-id"]) == 32


def test_job_id_is_read_from_job_paths() -> None:
	job_id = "6f1c1c8e-2f9a-4a51-9a57-3c8d6f0f5b11"
	assert job_id_from_path(f"/api/v1/precompute/jobs/{job_id}/chunks") == job_id
	assert job_id_from_path(f"/api/v1/precompute/jobs/{job_id.upper()}") == job_id
	assert job_id_from_path("/api/v1/precompute/jobs") is None
