"""Strict internal shapes for provider data.

Provider payloads use several key names for the same concept; they are
mapped onto these types once, in ``restock.services.provider_client``.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field


class CatalogItem(BaseModel):
	item_id: str
	sku: str
	description: str = ""
	stock_on_hand: float = 0.0
	reorder_point: float = 0.0
	max_stock: float = 100.0
	unit_cost: float = 0.0
	supplier: str = "Unknown"
	category: str = "General"
	last_purchase_date: str | None = None
	track_inventory: bool = True


class ItemPage(BaseModel):
	page: int
	items: list[CatalogItem] = Field(default_factory=list)
	has_more_page: bool = False


class LocationStock(BaseModel):
	location_id: str | None = None
	available_stock: float = 0.0


class ItemDetail(BaseModel):
	item_id: str
	locations: list[LocationStock] = Field(default_factory=list)
	available_stock: float | None = None
	stock_on_hand: float | None = None

	@property
	def current_stock(self) -> float:
		if self.locations:
			return sum(location.available_stock for location in self.locations)
		if self.available_stock is not None:
			return self.available_stock
		return self.stock_on_hand or 0.0


class SalesRecordRef(BaseModel):
	record_id: str
	record_date: date


class SalesRecordPage(BaseModel):
	page: int
	records: list[SalesRecordRef] = Field(default_factory=list)
	has_more_page: bool = False


class SalesLine(BaseModel):
	item_id: str
	quantity: float = 0.0
