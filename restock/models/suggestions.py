"""Suggestion rows produced by precompute jobs (append-only per job)."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
	BigInteger,
	Boolean,
	DateTime,
	Enum,
	Float,
	ForeignKey,
	Index,
	Integer,
	Numeric,
	SmallInteger,
	String,
	func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from restock.models.base import Base
from restock.models.enums import PriorityEnum, SalesTrendEnum


class SuggestionRow(Base):
	"""One reorder suggestion for one SKU within one job.

	Rows are never updated in place; the job cursor is the only guard
	against inserting the same SKU twice. ``days_until_stockout`` is NULL
	when sales velocity is zero.
	"""

	__tablename__ = "suggestions"
	__table_args__ = (
		Index("ix_suggestions_job_sku", "job_id", "sku"),
		Index("ix_suggestions_job_priority", "job_id", "priority_rank"),
	)

	id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
	job_id: Mapped[uuid.UUID] = mapped_column(
		UUID(as_uuid=True),
		ForeignKey("jobs.id", ondelete="CASCADE"),
		nullable=False,
	)
	sku: Mapped[str] = mapped_column(String(128), nullable=False)
	description: Mapped[str] = mapped_column(String(512), nullable=False, default="")
	current_stock: Mapped[float] = mapped_column(Float, nullable=False)
	suggested_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
	priority_level: Mapped[PriorityEnum] = mapped_column(
		Enum(PriorityEnum, name="suggestion_priority", create_constraint=False, native_enum=True),
		nullable=False,
	)
	priority_rank: Mapped[int] = mapped_column(SmallInteger, nullable=False)
	reason: Mapped[str] = mapped_column(String(255), nullable=False)
	estimated_cost: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False)
	days_until_stockout: Mapped[int | None] = mapped_column(Integer, nullable=True)
	sales_trend: Mapped[SalesTrendEnum] = mapped_column(
		Enum(SalesTrendEnum, name="sales_trend", create_constraint=False, native_enum=True),
		nullable=False,
		default=SalesTrendEnum.stable,
	)
	avg_monthly_sales: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
	supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
	category: Mapped[str | None] = mapped_column(String(255), nullable=True)
	last_purchase_date: Mapped[str | None] = mapped_column(String(32), nullable=True)
	history_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
	computed_at: Mapped[datetime] = mapped_column(
		DateTime(timezone=True),
		server_default=func.now(),
		nullable=False,
	)

	def __repr__(self) -> str:
		return f"<SuggestionRow job={self.job_id} sku={self.sku} priority={self.priority_level}>"
