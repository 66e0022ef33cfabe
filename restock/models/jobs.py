"""Durable precompute job model: one row per chunked suggestion run."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from restock.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from restock.models.enums import JobStatusEnum


class PrecomputeJob(Base, UUIDPrimaryKeyMixin, TimestampMixin):
	"""Tracks cursor, counters and lifecycle of a resumable precompute run.

	``cursor_pos`` and ``processed_items`` advance together (skipped items
	count as processed), so both are equal at every committed snapshot.
	``version`` is bumped on every update and guards against two runners
	advancing the same job concurrently.
	"""

	__tablename__ = "jobs"
	__table_args__ = (
		CheckConstraint("processed_items >= 0", name="ck_jobs_processed_non_negative"),
		CheckConstraint("cursor_pos >= 0", name="ck_jobs_cursor_non_negative"),
		CheckConstraint("months >= 1", name="ck_jobs_months_min_1"),
		Index("ix_jobs_status_created_at", "status", "created_at"),
	)

	status: Mapped[JobStatusEnum] = mapped_column(
		Enum(
			JobStatusEnum,
			name="precompute_job_status",
			create_constraint=False,
			native_enum=True,
		),
		nullable=False,
		default=JobStatusEnum.queued,
		server_default=JobStatusEnum.queued.value,
	)
	total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	processed_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	cursor_pos: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	months: Mapped[int] = mapped_column(Integer, nullable=False)
	version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
	started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
	finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
	error: Mapped[str | None] = mapped_column(String(2048), nullable=True)

	def __repr__(self) -> str:
		return (
			f"<PrecomputeJob id={self.id} status={self.status} "
			f"cursor={self.cursor_pos}/{self.total_items}>"
		)
