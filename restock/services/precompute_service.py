"""Resumable, timeboxed precompute of reorder suggestions.

A job is advanced by repeated ``run_chunk`` calls. Each call resumes at the
job's persisted cursor, enriches at most ``batch_size`` catalog items in
small concurrent groups, stops early once the wall-clock budget is spent,
and writes its suggestion rows before the job's counters. At most one
runner per job is expected; a second one is rejected by the version check
in ``JobStore.update_job``.
"""

from __future__ import annotations

import calendar
import json
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime

import httpx
import structlog
from redis.asyncio import Redis

from restock.config import Settings, get_settings
from restock.models.enums import PRIORITY_RANK, TERMINAL_JOB_STATUSES, JobStatusEnum
from restock.models.jobs import PrecomputeJob
from restock.models.suggestions import SuggestionRow
from restock.schemas.jobs import (
	ChunkOptions,
	ChunkProgressResponse,
	ChunkRunRequest,
	JobStartResponse,
	JobStatusResponse,
	JobSuggestionsResponse,
	SuggestionOut,
)
from restock.schemas.provider import CatalogItem
from restock.schemas.suggestions import SuggestionInput
from restock.services.job_store import JobStore
from restock.services.paged_fetcher import fetch_range
from restock.services.provider_client import InventoryProviderClient, ProviderError
from restock.services.sales_history import SalesHistoryAggregator
from restock.services.suggestion_engine import is_orderable_sku, round_half_up, suggest, summarize_suggestions
from restock.services.token_provider import ProviderConfigError, TokenError
from restock.services.trend import summarize
from restock.services.worker_pool import run_bounded

JOB_STATUS_TTL_SECONDS = 60 * 60 * 24

logger = structlog.get_logger("restock.precompute")


def status_cache_key(job_id: uuid.UUID) -> str:
	return f"job:{job_id}:status"


@dataclass(frozen=True)
class SalesWindow:
	from_date: date
	to_date: date


def subtract_months(day: date, months: int) -> date:
	"""Same day ``months`` earlier, clamped to the end of shorter months."""
	month_index = day.year * 12 + (day.month - 1) - months
	year, month = divmod(month_index, 12)
	month += 1
	last_day = calendar.monthrange(year, month)[1]
	return date(year, month, min(day.day, last_day))


def compute_progress(processed_items: int, total_items: int, status: JobStatusEnum) -> int:
	if total_items <= 0:
		return 100 if status == JobStatusEnum.done else 0
	return max(0, min(100, round_half_up(100 * processed_items / total_items)))


def is_enrichable(item: CatalogItem) -> bool:
	"""Items worth a detail + history fetch; everything else is skipped."""
	return item.track_inventory and is_orderable_sku(item.sku)


class PrecomputeService:
	def __init__(
		self,
		store: JobStore,
		provider: InventoryProviderClient,
		redis_client: Redis | None = None,
		*,
		settings: Settings | None = None,
		clock: Callable[[], float] = time.monotonic,
		now: Callable[[], datetime] = lambda: datetime.now(UTC),
	):
		self.store = store
		self.provider = provider
		self.redis_client = redis_client
		self.settings = settings or get_settings()
		self.history = SalesHistoryAggregator(provider)
		self._clock = clock
		self._now = now
		self._pending_status: dict[uuid.UUID, JobStatusResponse] = {}

	def resolve_options(self, request: ChunkRunRequest | None = None) -> ChunkOptions:
		request = request or ChunkRunRequest()
		return ChunkOptions(
			batch_size=request.batch_size or self.settings.precompute_batch_size,
			concurrency=request.concurrency or self.settings.precompute_concurrency,
			group_size=request.group_size or self.settings.precompute_group_size,
			max_history_pages=request.max_history_pages or self.settings.precompute_max_history_pages,
			time_budget_seconds=self.settings.precompute_time_budget_seconds,
		)

	async def start(self, months: int | None = None) -> JobStartResponse:
		months = months or self.settings.precompute_default_months
		if months < 1:
			raise ValueError("months must be >= 1")

		total_items = await self.provider.count_items(self.settings.precompute_page_size)
		job = PrecomputeJob(
			id=uuid.uuid4(),
			status=JobStatusEnum.queued,
			total_items=total_items,
			processed_items=0,
			cursor_pos=0,
			months=months,
			version=0,
		)
		job = await self.store.insert_job(job)
		self._queue_status(job)
		logger.info("job_started", job_id=str(job.id), total_items=total_items, months=months)
		return JobStartResponse(job_id=job.id, status=job.status.value, total_items=total_items)

	async def run_chunk(self, job_id: uuid.UUID, options: ChunkOptions) -> ChunkProgressResponse:
		chunk_started = self._clock()
		job = await self._require_job(job_id)
		if job.status in TERMINAL_JOB_STATUSES:
			return self._to_progress(job)

		if job.status == JobStatusEnum.queued:
			await self.store.update_job(job, status=JobStatusEnum.running, started_at=self._now(), error=None)

		window = self._sales_window(job)
		remaining = max(0, job.total_items - job.cursor_pos)
		try:
			items = (
				await fetch_range(
					job.cursor_pos,
					min(options.batch_size, remaining),
					self.settings.precompute_page_size,
					self.provider.list_items,
				)
				if remaining
				else []
			)
		except ProviderConfigError as exc:
			await self._fail(job, exc)
			return self._to_progress(job)

		if not items:
			await self._finalize(job, job.total_items, reason="provider_exhausted")
			return self._to_progress(job)

		rows: list[SuggestionRow] = []
		consumed = 0
		timed_out = False
		while consumed < len(items):
			group: list[CatalogItem] = []
			end = consumed
			while end < len(items) and len(group) < options.group_size:
				if is_enrichable(items[end]):
					group.append(items[end])
				end += 1

			if group:
				try:
					results = await run_bounded(
						group,
						options.concurrency,
						lambda item, _index: self._enrich(job.id, item, window, options.max_history_pages),
						fatal=(TokenError, ProviderConfigError),
					)
				except ProviderConfigError as exc:
					await self._fail(job, exc)
					return self._to_progress(job)
				rows.extend(row for row in results if row is not None)
			consumed = end

			if self._clock() - chunk_started >= options.time_budget_seconds:
				timed_out = consumed < len(items)
				break

		await self.store.insert_suggestions(rows)

		advanced = job.cursor_pos + consumed
		if advanced >= job.total_items:
			await self._finalize(job, advanced, reason="completed")
		else:
			await self.store.update_job(job, processed_items=advanced, cursor_pos=advanced)
			self._queue_status(job)

		logger.info(
			"chunk_completed",
			job_id=str(job.id),
			items_fetched=len(items),
			items_consumed=consumed,
			suggestions_added=len(rows),
			cursor_pos=job.cursor_pos,
			processed_items=job.processed_items,
			elapsed_seconds=round(self._clock() - chunk_started, 3),
			timed_out=timed_out,
		)
		return self._to_progress(job, suggestions_added=len(rows), timed_out=timed_out)

	async def get_job_status(self, job_id: uuid.UUID) -> JobStatusResponse:
		"""Status as stored in Postgres; the Redis copy is refreshed on publish."""
		job = await self._require_job(job_id)
		self._queue_status(job)
		return self._pending_status[job.id]

	async def publish_status(self) -> None:
		"""Write queued status snapshots to Redis.

		Call only after the session that produced them has committed.
		"""
		pending, self._pending_status = self._pending_status, {}
		if self.redis_client is None:
			return
		for job_id, payload in pending.items():
			await self.redis_client.setex(
				status_cache_key(job_id),
				JOB_STATUS_TTL_SECONDS,
				json.dumps(payload.model_dump(mode="json")),
			)

	async def list_suggestions(self, job_id: uuid.UUID) -> JobSuggestionsResponse:
		await self._require_job(job_id)
		rows = await self.store.list_suggestions(job_id)
		return JobSuggestionsResponse(
			job_id=job_id,
			suggestions=[SuggestionOut.model_validate(row) for row in rows],
			stats=summarize_suggestions((row.priority_level, row.estimated_cost) for row in rows),
		)

	async def _enrich(
		self,
		job_id: uuid.UUID,
		item: CatalogItem,
		window: SalesWindow,
		max_history_pages: int,
	) -> SuggestionRow | None:
		current_stock = item.stock_on_hand
		try:
			detail = await self.provider.get_item_detail(item.item_id)
			current_stock = detail.current_stock
		except (ProviderError, httpx.TransportError) as exc:
			logger.info("item_enrichment_degraded", item_id=item.item_id, stage="detail", error=str(exc))

		series = await self.history.aggregate(item.item_id, window.from_date, window.to_date, max_history_pages)
		summary = summarize(series.buckets)

		suggestion = suggest(
			SuggestionInput(
				sku=item.sku,
				description=item.description,
				current_stock=current_stock,
				reorder_point=item.reorder_point,
				max_stock=item.max_stock,
				avg_monthly_sales=summary.avg_monthly_rate,
				unit_cost=item.unit_cost,
				sales_trend=summary.trend,
				supplier=item.supplier,
				category=item.category,
				last_sale=summary.last_date,
				history_complete=series.complete,
			)
		)
		if suggestion is None:
			return None

		return SuggestionRow(
			job_id=job_id,
			sku=suggestion.sku,
			description=suggestion.description,
			current_stock=suggestion.current_stock,
			suggested_quantity=suggestion.suggested_quantity,
			priority_level=suggestion.priority,
			priority_rank=PRIORITY_RANK[suggestion.priority],
			reason=suggestion.reason,
			estimated_cost=suggestion.estimated_cost,
			days_until_stockout=suggestion.days_until_stockout,
			sales_trend=summary.trend,
			avg_monthly_sales=summary.avg_monthly_rate,
			supplier=item.supplier,
			category=item.category,
			last_purchase_date=item.last_purchase_date,
			history_complete=series.complete,
			computed_at=self._now(),
		)

	async def _fail(self, job: PrecomputeJob, exc: Exception) -> None:
		await self.store.update_job(job, status=JobStatusEnum.error, error=str(exc)[:2048])
		self._queue_status(job)
		logger.error("job_failed", job_id=str(job.id), error=str(exc))

	async def _finalize(self, job: PrecomputeJob, processed_items: int, *, reason: str) -> None:
		final = min(processed_items, job.total_items)
		await self.store.update_job(
			job,
			status=JobStatusEnum.done,
			processed_items=max(final, job.processed_items),
			cursor_pos=max(final, job.cursor_pos),
			finished_at=self._now(),
		)
		self._queue_status(job)
		logger.info("job_finalized", job_id=str(job.id), reason=reason, total_items=job.total_items)

	def _sales_window(self, job: PrecomputeJob) -> SalesWindow:
		anchor = (job.started_at or self._now()).date()
		return SalesWindow(from_date=subtract_months(anchor, job.months), to_date=anchor)

	async def _require_job(self, job_id: uuid.UUID) -> PrecomputeJob:
		job = await self.store.get_job(job_id)
		if job is None:
			raise LookupError(f"Job {job_id} not found")
		return job

	def _queue_status(self, job: PrecomputeJob) -> None:
		self._pending_status[job.id] = self._to_status_payload(job)

	@staticmethod
	def _to_progress(
		job: PrecomputeJob,
		*,
		suggestions_added: int = 0,
		timed_out: bool = False,
	) -> ChunkProgressResponse:
		return ChunkProgressResponse(
			job_id=job.id,
			status=job.status.value,
			total_items=job.total_items,
			processed_items=job.processed_items,
			progress=compute_progress(job.processed_items, job.total_items, job.status),
			suggestions_added=suggestions_added,
			timed_out=timed_out,
			error=job.error,
		)

	@staticmethod
	def _to_status_payload(job: PrecomputeJob) -> JobStatusResponse:
		return JobStatusResponse(
			job_id=job.id,
			status=job.status.value,
			total_items=job.total_items,
			processed_items=job.processed_items,
			progress=compute_progress(job.processed_items, job.total_items, job.status),
			started_at=job.started_at,
			finished_at=job.finished_at,
			error=job.error,
		)
