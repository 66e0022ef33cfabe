"""Pydantic schemas for precompute job endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from restock.models.enums import PriorityEnum, SalesTrendEnum
from restock.schemas.suggestions import SuggestionStats


class JobStartRequest(BaseModel):
	months: int | None = Field(default=None, ge=1, le=36)


class JobStartResponse(BaseModel):
	job_id: uuid.UUID
	status: str
	total_items: int


class ChunkRunRequest(BaseModel):
	"""Per-invocation knobs; unset values fall back to settings."""

	batch_size: int | None = Field(default=None, ge=1, le=2000)
	concurrency: int | None = Field(default=None, ge=1, le=32)
	group_size: int | None = Field(default=None, ge=1, le=500)
	max_history_pages: int | None = Field(default=None, ge=1, le=100)


class ChunkOptions(BaseModel):
	batch_size: int = Field(ge=1)
	concurrency: int = Field(ge=1)
	group_size: int = Field(ge=1)
	max_history_pages: int = Field(ge=1)
	time_budget_seconds: float = Field(gt=0)


class ChunkProgressResponse(BaseModel):
	job_id: uuid.UUID
	status: str
	total_items: int
	processed_items: int
	progress: int
	suggestions_added: int = 0
	timed_out: bool = False
	error: str | None = None


class JobStatusResponse(BaseModel):
	job_id: uuid.UUID
	status: str
	total_items: int
	processed_items: int
	progress: int
	started_at: datetime | None = None
	finished_at: datetime | None = None
	error: str | None = None


class SuggestionOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	sku: str
	description: str
	current_stock: float
	suggested_quantity: int
	priority_level: PriorityEnum
	reason: str
	estimated_cost: float
	days_until_stockout: int | None = None
	sales_trend: SalesTrendEnum
	avg_monthly_sales: float
	supplier: str | None = None
	category: str | None = None
	last_purchase_date: str | None = None
	history_complete: bool
	computed_at: datetime | None = None


class JobSuggestionsResponse(BaseModel):
	job_id: uuid.UUID
	suggestions: list[SuggestionOut] = Field(default_factory=list)
	stats: SuggestionStats
