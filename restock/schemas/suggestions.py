"""Pydantic schemas for the reorder rule engine."""

from __future__ import annotations

from pydantic import BaseModel

from restock.models.enums import PriorityEnum, SalesTrendEnum


class SuggestionInput(BaseModel):
	"""Normalized, enriched view of one SKU fed to the rule engine."""

	sku: str
	description: str = ""
	current_stock: float = 0.0
	reorder_point: float = 0.0
	max_stock: float = 100.0
	avg_monthly_sales: float = 0.0
	unit_cost: float = 0.0
	sales_trend: SalesTrendEnum = SalesTrendEnum.stable
	supplier: str | None = None
	category: str | None = None
	last_sale: str | None = None
	history_complete: bool = True


class Suggestion(BaseModel):
	sku: str
	description: str = ""
	current_stock: float
	suggested_quantity: int
	priority: PriorityEnum
	reason: str
	estimated_cost: float
	days_until_stockout: int | None = None


class SuggestionStats(BaseModel):
	total_suggestions: int = 0
	high: int = 0
	medium: int = 0
	low: int = 0
	total_estimated_cost: float = 0.0
