"""Shared pytest fixtures: in-memory job store, fake provider, async test client."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from restock.config import Settings
from restock.database import get_db
from restock.main import app
from restock.models.jobs import PrecomputeJob
from restock.models.suggestions import SuggestionRow
from restock.routes.precompute import get_precompute_service
from restock.schemas.provider import (
	CatalogItem,
	ItemDetail,
	ItemPage,
	SalesLine,
	SalesRecordPage,
	SalesRecordRef,
)
from restock.services.job_store import ConcurrentChunkError
from restock.services.precompute_service import PrecomputeService
from restock.services.provider_client import ProviderError

FIXED_NOW = datetime(2026, 3, 16, 9, 30, tzinfo=UTC)

JOB_FIELDS = (
	"id",
	"status",
	"total_items",
	"processed_items",
	"cursor_pos",
	"months",
	"version",
	"started_at",
	"finished_at",
	"error",
)


class FakeRedis:
	def __init__(self) -> None:
		self.values: dict[str, str] = {}
		self.setex = AsyncMock(side_effect=self._setex)
		self.get = AsyncMock(side_effect=self._get)

	async def _setex(self, key: str, _ttl: int, value: str) -> bool:
		self.values[key] = value
		return True

	async def _get(self, key: str) -> str | None:
		return self.values.get(key)


class FakeSession:
	"""Request session stand-in; the job store fakes hold the data."""

	def __init__(self) -> None:
		self.commit = AsyncMock()
		self.rollback = AsyncMock()


class FakeJobStore:
	"""Stands in for ``JobStore``; every ``get_job`` returns a detached copy
	so two services see independent snapshots, like two sessions would."""

	def __init__(self) -> None:
		self.jobs: dict[uuid.UUID, dict[str, Any]] = {}
		self.suggestions: list[SuggestionRow] = []
		self._next_suggestion_id = 1

	async def insert_job(self, job: PrecomputeJob) -> PrecomputeJob:
		self.jobs[job.id] = {name: getattr(job, name) for name in JOB_FIELDS}
		return job

	async def get_job(self, job_id: uuid.UUID) -> PrecomputeJob | None:
		stored = self.jobs.get(job_id)
		if stored is None:
			return None
		return PrecomputeJob(**stored)

	async def update_job(self, job: PrecomputeJob, **values: Any) -> PrecomputeJob:
		stored = self.jobs[job.id]
		if stored["version"] != job.version:
			raise ConcurrentChunkError(f"Job {job.id} was modified concurrently (expected version {job.version})")
		stored.update(values, version=job.version + 1)
		for key, value in values.items():
			setattr(job, key, value)
		job.version += 1
		return job

	async def insert_suggestions(self, rows: list[SuggestionRow]) -> None:
		for row in rows:
			row.id = self._next_suggestion_id
			self._next_suggestion_id += 1
			self.suggestions.append(row)

	async def list_suggestions(self, job_id: uuid.UUID) -> list[SuggestionRow]:
		rows = [row for row in self.suggestions if row.job_id == job_id]
		return sorted(rows, key=lambda row: (-row.priority_rank, row.id))


class FakeProvider:
	"""Static catalog, per-item detail and invoice data served page by page."""

	def __init__(
		self,
		catalog: list[CatalogItem],
		*,
		details: dict[str, ItemDetail] | None = None,
		sales: dict[str, list[tuple[str, date, float]]] | None = None,
		failing_details: set[str] | None = None,
		records_per_page: int = 50,
	) -> None:
		self.catalog = catalog
		self.details = details or {}
		self.sales = sales or {}
		self.failing_details = failing_details or set()
		self.records_per_page = records_per_page
		self.list_calls: list[tuple[int, int]] = []
		self.detail_calls: list[str] = []
		self.history_calls: list[str] = []
		self.list_error: Exception | None = None
		self.detail_error: Exception | None = None
		self.entered = asyncio.Event()
		self.gate: asyncio.Event | None = None

	async def list_items(self, page: int, per_page: int) -> ItemPage:
		self.list_calls.append((page, per_page))
		self.entered.set()
		if self.gate is not None:
			await self.gate.wait()
		if self.list_error is not None:
			raise self.list_error
		start = (page - 1) * per_page
		items = self.catalog[start : start + per_page]
		return ItemPage(page=page, items=items, has_more_page=start + per_page < len(self.catalog))

	async def count_items(self, per_page: int) -> int:
		return len(self.catalog)

	async def get_item_detail(self, item_id: str) -> ItemDetail:
		self.detail_calls.append(item_id)
		if self.detail_error is not None:
			raise self.detail_error
		if item_id in self.failing_details:
			raise ProviderError("Item detail fetch failed: 503", 503)
		return self.details.get(item_id) or ItemDetail(item_id=item_id)

	async def list_sales_records(
		self,
		item_id: str,
		from_date: date,
		to_date: date,
		page: int,
		per_page: int = 200,
	) -> SalesRecordPage:
		self.history_calls.append(item_id)
		records = [
			SalesRecordRef(record_id=record_id, record_date=day)
			for record_id, day, _quantity in self.sales.get(item_id, [])
		]
		start = (page - 1) * self.records_per_page
		chunk = records[start : start + self.records_per_page]
		return SalesRecordPage(page=page, records=chunk, has_more_page=start + self.records_per_page < len(records))

	async def get_sales_lines(self, record_id: str) -> list[SalesLine]:
		for item_id, entries in self.sales.items():
			for entry_id, _day, quantity in entries:
				if entry_id == record_id:
					return [SalesLine(item_id=item_id, quantity=quantity)]
		return []


class StepClock:
	"""Monotonic clock that advances ``step`` seconds on every read."""

	def __init__(self, step: float = 0.0) -> None:
		self.step = step
		self.now = 0.0

	def __call__(self) -> float:
		value = self.now
		self.now += self.step
		return value


def make_item(index: int, **overrides: Any) -> CatalogItem:
	values: dict[str, Any] = {
		"item_id": f"item-{index}",
		"sku": f"SKU-{index:03d}",
		"description": f"Widget {index}",
		"stock_on_hand": 2.0,
		"reorder_point": 10.0,
		"max_stock": 50.0,
		"unit_cost": 4.0,
	}
	values.update(overrides)
	return CatalogItem(**values)


@pytest.fixture
def settings() -> Settings:
	return Settings(
		zoho_client_id="client",
		zoho_client_secret="secret",
		zoho_refresh_token="refresh",
		zoho_org_id="org-1",
		precompute_page_size=4,
		precompute_batch_size=10,
		precompute_concurrency=2,
		precompute_group_size=3,
		precompute_max_history_pages=5,
		precompute_time_budget_seconds=8.5,
		precompute_default_months=6,
	)


@pytest.fixture
def job_store() -> FakeJobStore:
	return FakeJobStore()


@pytest.fixture
def fake_redis() -> FakeRedis:
	return FakeRedis()


@pytest.fixture
def fake_session() -> FakeSession:
	return FakeSession()


@pytest.fixture
def catalog() -> list[CatalogItem]:
	return [make_item(index) for index in range(1, 6)]


@pytest.fixture
def provider(catalog: list[CatalogItem]) -> FakeProvider:
	return FakeProvider(catalog)


@pytest.fixture
def service(
	job_store: FakeJobStore,
	provider: FakeProvider,
	fake_redis: FakeRedis,
	settings: Settings,
) -> PrecomputeService:
	return PrecomputeService(
		job_store,  # type: ignore[arg-type]
		provider,  # type: ignore[arg-type]
		fake_redis,  # type: ignore[arg-type]
		settings=settings,
		clock=StepClock(),
		now=lambda: FIXED_NOW,
	)


@pytest.fixture
async def client(service: PrecomputeService, fake_session: FakeSession) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled and the service built on fakes."""

	async def fake_db() -> AsyncGenerator[FakeSession, None]:
		yield fake_session

	app.dependency_overrides[get_db] = fake_db
	app.dependency_overrides[get_precompute_service] = lambda: service
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()
