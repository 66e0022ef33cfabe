"""Durable access to the ``jobs`` and ``suggestions`` tables."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from restock.models.jobs import PrecomputeJob
from restock.models.suggestions import SuggestionRow


class ConcurrentChunkError(RuntimeError):
	"""Raised when a job row changed under a runner (version mismatch)."""


class JobStore:
	"""Insert/update/query over one ``AsyncSession``.

	Methods flush but never commit; the caller owns the transaction, so a
	chunk's suggestion rows and its cursor update become durable together.
	"""

	def __init__(self, db: AsyncSession):
		self.db = db

	async def insert_job(self, job: PrecomputeJob) -> PrecomputeJob:
		self.db.add(job)
		await self.db.flush()
		await self.db.refresh(job)
		return job

	async def get_job(self, job_id: uuid.UUID) -> PrecomputeJob | None:
		row = await self.db.execute(select(PrecomputeJob).where(PrecomputeJob.id == job_id))
		return row.scalar_one_or_none()

	async def update_job(self, job: PrecomputeJob, **values: Any) -> PrecomputeJob:
		"""Compare-and-swap on ``version``; bumps it and mirrors values onto ``job``."""
		expected_version = job.version
		result = await self.db.execute(
			update(PrecomputeJob)
			.where(PrecomputeJob.id == job.id, PrecomputeJob.version == expected_version)
			.values(version=expected_version + 1, **values)
			.execution_options(synchronize_session=False)
		)
		if result.rowcount != 1:
			raise ConcurrentChunkError(f"Job {job.id} was modified concurrently (expected version {expected_version})")
		set_committed_value(job, "version", expected_version + 1)
		for key, value in values.items():
			set_committed_value(job, key, value)
		return job

	async def insert_suggestions(self, rows: Sequence[SuggestionRow]) -> None:
		if not rows:
			return
		self.db.add_all(list(rows))
		await self.db.flush()

	async def list_suggestions(self, job_id: uuid.UUID) -> list[SuggestionRow]:
		rows = await self.db.execute(
			select(SuggestionRow)
			.where(SuggestionRow.job_id == job_id)
			.order_by(SuggestionRow.priority_rank.desc(), SuggestionRow.id.asc())
		)
		return list(rows.scalars().all())
