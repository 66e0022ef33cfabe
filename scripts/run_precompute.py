"""Drive a precompute job to completion, one committed chunk at a time.

Usage::

    python -m scripts.run_precompute --months 6
    python -m scripts.run_precompute --job-id <uuid> --batch-size 100
"""

from __future__ import annotations

import argparse
import asyncio
import uuid

import httpx
import structlog
from redis.asyncio import Redis

from restock.config import get_settings
from restock.database import async_session_factory, engine
from restock.middleware.logging import configure_structured_logging
from restock.models.enums import TERMINAL_JOB_STATUSES, JobStatusEnum
from restock.schemas.jobs import ChunkRunRequest
from restock.services.fetch_client import RetryingFetchClient
from restock.services.job_store import JobStore
from restock.services.precompute_service import PrecomputeService
from restock.services.provider_client import InventoryProviderClient
from restock.services.token_provider import OAuthTokenProvider

logger = structlog.get_logger("restock.runner")

FINISHED_STATUSES = {status.value for status in TERMINAL_JOB_STATUSES}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	parser = argparse.ArgumentParser(description="Run a reorder-suggestion precompute job until done.")
	parser.add_argument("--job-id", type=uuid.UUID, default=None, help="resume an existing job")
	parser.add_argument("--months", type=int, default=None, help="sales lookback for a new job")
	parser.add_argument("--batch-size", type=int, default=None)
	parser.add_argument("--concurrency", type=int, default=None)
	parser.add_argument("--group-size", type=int, default=None)
	parser.add_argument("--max-history-pages", type=int, default=None)
	parser.add_argument("--max-chunks", type=int, default=10_000)
	return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> str:
	settings = get_settings()
	request = ChunkRunRequest(
		batch_size=args.batch_size,
		concurrency=args.concurrency,
		group_size=args.group_size,
		max_history_pages=args.max_history_pages,
	)

	redis = Redis.from_url(settings.redis_url, decode_responses=True)
	try:
		return await _drive(args, request, redis)
	finally:
		await redis.aclose()


async def _drive(args: argparse.Namespace, request: ChunkRunRequest, redis: Redis) -> str:
	settings = get_settings()
	async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as http_client:
		fetcher = RetryingFetchClient(http_client)
		provider = InventoryProviderClient(fetcher, OAuthTokenProvider(fetcher, settings), settings)

		job_id = args.job_id
		if job_id is None:
			async with async_session_factory() as session:
				service = PrecomputeService(JobStore(session), provider, redis, settings=settings)
				started = await service.start(args.months)
				await session.commit()
			await service.publish_status()
			job_id = started.job_id

		status = JobStatusEnum.queued.value
		for _ in range(args.max_chunks):
			async with async_session_factory() as session:
				service = PrecomputeService(JobStore(session), provider, redis, settings=settings)
				progress = await service.run_chunk(job_id, service.resolve_options(request))
				await session.commit()
			await service.publish_status()
			status = progress.status
			logger.info(
				"runner_progress",
				job_id=str(job_id),
				status=status,
				processed_items=progress.processed_items,
				total_items=progress.total_items,
				progress=progress.progress,
			)
			if status in FINISHED_STATUSES:
				break
		return status


def main(argv: list[str] | None = None) -> int:
	configure_structured_logging()
	args = _parse_args(argv)

	async def _run() -> str:
		try:
			return await run(args)
		finally:
			await engine.dispose()

	status = asyncio.run(_run())
	return 0 if status == JobStatusEnum.done.value else 1


if __name__ == "__main__":
	raise SystemExit(main())
