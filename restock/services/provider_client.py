"""Inventory provider adapter: HTTP calls plus payload normalization.

Everything above this module works with the strict types in
``restock.schemas.provider``; provider key aliases never leak past here.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any

import httpx
import structlog

from restock.config import Settings
from restock.schemas.provider import (
	CatalogItem,
	ItemDetail,
	ItemPage,
	LocationStock,
	SalesLine,
	SalesRecordPage,
	SalesRecordRef,
)
from restock.services.fetch_client import FetchRequest, RetryingFetchClient
from restock.services.token_provider import ProviderConfigError, TokenProvider

logger = structlog.get_logger("restock.provider")

DEFAULT_MAX_STOCK = 100.0


class ProviderError(RuntimeError):
	"""Raised for a provider response that cannot be used."""

	def __init__(self, message: str, status_code: int | None = None):
		super().__init__(message)
		self.status_code = status_code


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
	for key in keys:
		value = payload.get(key)
		if value is not None and value != "":
			return value
	return None


def _to_str(value: Any) -> str | None:
	return None if value is None else str(value)


def _to_float(value: Any, default: float = 0.0) -> float:
	if value is None or value == "":
		return default
	try:
		return float(value)
	except (TypeError, ValueError):
		return default


def _to_bool(value: Any, default: bool = True) -> bool:
	if value is None:
		return default
	if isinstance(value, str):
		return value.strip().lower() not in {"false", "0", "no"}
	return bool(value)


def _has_more(payload: Mapping[str, Any]) -> bool:
	context = payload.get("page_context")
	if not isinstance(context, Mapping):
		return False
	return bool(context.get("has_more_page"))


def normalize_item(payload: Mapping[str, Any]) -> CatalogItem:
	item_id = str(_first(payload, "item_id", "id") or "")
	max_stock = _to_float(_first(payload, "maximum_stock_level", "max_stock"), DEFAULT_MAX_STOCK)
	return CatalogItem(
		item_id=item_id,
		sku=str(_first(payload, "sku", "item_id") or ""),
		description=str(_first(payload, "name", "description") or ""),
		stock_on_hand=_to_float(_first(payload, "stock_on_hand", "available_stock")),
		reorder_point=_to_float(_first(payload, "reorder_level", "reorder_point")),
		max_stock=max_stock or DEFAULT_MAX_STOCK,
		unit_cost=_to_float(_first(payload, "purchase_rate", "cost_price")),
		supplier=str(_first(payload, "vendor_name", "preferred_vendor") or "Unknown"),
		category=str(_first(payload, "category_name", "item_type") or "General"),
		last_purchase_date=_to_str(_first(payload, "last_purchase_date")),
		track_inventory=_to_bool(payload.get("track_inventory")),
	)


def normalize_item_detail(payload: Mapping[str, Any]) -> ItemDetail:
	raw_locations = _first(payload, "locations", "warehouses") or []
	locations: list[LocationStock] = []
	for entry in raw_locations:
		if not isinstance(entry, Mapping):
			continue
		locations.append(
			LocationStock(
				location_id=_to_str(_first(entry, "location_id", "warehouse_id")),
				available_stock=_to_float(
					_first(
						entry,
						"location_available_stock",
						"warehouse_available_stock",
						"location_stock_on_hand",
						"warehouse_stock_on_hand",
					)
				),
			)
		)

	available = _first(payload, "available_stock", "actual_available_stock")
	on_hand = _first(payload, "stock_on_hand")
	return ItemDetail(
		item_id=str(_first(payload, "item_id", "id") or ""),
		locations=locations,
		available_stock=_to_float(available) if available is not None else None,
		stock_on_hand=_to_float(on_hand) if on_hand is not None else None,
	)


def normalize_sales_record_ref(payload: Mapping[str, Any]) -> SalesRecordRef | None:
	record_id = _first(payload, "invoice_id", "salesorder_id", "id")
	raw_date = _first(payload, "date", "invoice_date", "created_time")
	if record_id is None or raw_date is None:
		return None
	try:
		record_date = date.fromisoformat(str(raw_date)[:10])
	except ValueError:
		return None
	return SalesRecordRef(record_id=str(record_id), record_date=record_date)


def normalize_sales_lines(payload: Mapping[str, Any]) -> list[SalesLine]:
	lines: list[SalesLine] = []
	for entry in payload.get("line_items") or []:
		if not isinstance(entry, Mapping):
			continue
		item_id = _first(entry, "item_id")
		if item_id is None:
			continue
		lines.append(SalesLine(item_id=str(item_id), quantity=_to_float(_first(entry, "quantity", "quantity_invoiced"))))
	return lines


class InventoryProviderClient:
	"""Paginated catalog, item detail and invoice access for one organization."""

	def __init__(
		self,
		fetcher: RetryingFetchClient,
		token_provider: TokenProvider,
		settings: Settings,
	):
		self.fetcher = fetcher
		self.token_provider = token_provider
		self.settings = settings
		self.base_url = settings.zoho_inventory_base.rstrip("/")

	async def _headers(self) -> dict[str, str]:
		if not self.settings.zoho_org_id:
			raise ProviderConfigError("Missing zoho_org_id setting")
		token = await self.token_provider.get_token()
		return {
			"Authorization": f"Zoho-oauthtoken {token}",
			"X-com-zoho-inventory-organizationid": self.settings.zoho_org_id,
			"Content-Type": "application/json",
		}

	async def _get(self, path: str, params: Mapping[str, Any] | None = None) -> httpx.Response:
		request = FetchRequest(url=f"{self.base_url}{path}", headers=await self._headers(), params=params)
		response = await self.fetcher.fetch(
			request,
			retries=self.settings.fetch_retries,
			base_backoff_ms=self.settings.fetch_backoff_ms,
		)
		if response.status_code == 401:
			self.token_provider.invalidate()
			retry_request = FetchRequest(url=request.url, headers=await self._headers(), params=params)
			response = await self.fetcher.fetch(
				retry_request,
				retries=self.settings.fetch_retries,
				base_backoff_ms=self.settings.fetch_backoff_ms,
			)
		return response

	@staticmethod
	def _json_or_raise(response: httpx.Response, what: str) -> dict[str, Any]:
		if not response.is_success:
			raise ProviderError(f"{what} failed: {response.status_code} {response.text[:200]}", response.status_code)
		try:
			payload = response.json()
		except ValueError as exc:
			raise ProviderError(f"{what} returned invalid JSON", response.status_code) from exc
		if not isinstance(payload, dict):
			raise ProviderError(f"{what} returned unexpected payload", response.status_code)
		return payload

	async def list_items(self, page: int, per_page: int) -> ItemPage:
		response = await self._get("/items", {"page": page, "per_page": per_page})
		payload = self._json_or_raise(response, "Items fetch")
		items = [normalize_item(raw) for raw in payload.get("items") or [] if isinstance(raw, Mapping)]
		return ItemPage(page=page, items=items, has_more_page=_has_more(payload))

	async def count_items(self, per_page: int) -> int:
		"""Count catalog items page by page without enriching them."""
		total = 0
		page = 1
		while True:
			result = await self.list_items(page, per_page)
			total += len(result.items)
			if not result.has_more_page:
				logger.info("catalog_counted", total_items=total, pages=page)
				return total
			page += 1

	async def get_item_detail(self, item_id: str) -> ItemDetail:
		response = await self._get(f"/items/{item_id}")
		payload = self._json_or_raise(response, "Item detail fetch")
		item = payload.get("item")
		return normalize_item_detail(item if isinstance(item, Mapping) else payload)

	async def list_sales_records(
		self,
		item_id: str,
		from_date: date,
		to_date: date,
		page: int,
		per_page: int = 200,
	) -> SalesRecordPage:
		response = await self._get(
			"/invoices",
			{
				"item_id": item_id,
				"date_start": from_date.isoformat(),
				"date_end": to_date.isoformat(),
				"page": page,
				"per_page": per_page,
			},
		)
		payload = self._json_or_raise(response, "Sales records fetch")
		records = [
			ref
			for ref in (normalize_sales_record_ref(raw) for raw in payload.get("invoices") or [] if isinstance(raw, Mapping))
			if ref is not None
		]
		return SalesRecordPage(page=page, records=records, has_more_page=_has_more(payload))

	async def get_sales_lines(self, record_id: str) -> list[SalesLine]:
		response = await self._get(f"/invoices/{record_id}")
		payload = self._json_or_raise(response, "Sales record detail fetch")
		invoice = payload.get("invoice")
		return normalize_sales_lines(invoice if isinstance(invoice, Mapping) else payload)
