"""Per-item weekly sales aggregation over a lookback window."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Protocol

import httpx
import structlog

from restock.schemas.provider import SalesLine, SalesRecordPage
from restock.services.provider_client import ProviderError

logger = structlog.get_logger("restock.sales_history")


class SalesSource(Protocol):
	async def list_sales_records(
		self,
		item_id: str,
		from_date: date,
		to_date: date,
		page: int,
	) -> SalesRecordPage: ...

	async def get_sales_lines(self, record_id: str) -> list[SalesLine]: ...


@dataclass(frozen=True)
class WeeklyBucket:
	week_start: date
	quantity: float


@dataclass
class WeeklySeries:
	"""Sparse weekly series sorted by week; ``complete`` is False when any
	page or record could not be read."""

	buckets: list[WeeklyBucket] = field(default_factory=list)
	complete: bool = True


def week_start(day: date) -> date:
	"""Monday of the ISO week containing ``day``."""
	return day - timedelta(days=day.weekday())


class SalesHistoryAggregator:
	"""Buckets one item's invoiced quantities by ISO week.

	Sales history only enriches a suggestion, so failures degrade instead
	of raising: an unreachable listing yields whatever was read so far (an
	empty series when nothing was), and an unreadable record is skipped.
	"""

	def __init__(self, source: SalesSource):
		self.source = source

	async def aggregate(self, item_id: str, from_date: date, to_date: date, max_pages: int) -> WeeklySeries:
		totals: dict[date, float] = defaultdict(float)
		complete = True
		page = 1

		while page <= max_pages:
			try:
				result = await self.source.list_sales_records(item_id, from_date, to_date, page)
			except (ProviderError, httpx.TransportError) as exc:
				logger.info("sales_history_unavailable", item_id=item_id, page=page, error=str(exc))
				complete = False
				break

			for record in result.records:
				if record.record_date < from_date or record.record_date > to_date:
					continue
				try:
					lines = await self.source.get_sales_lines(record.record_id)
				except (ProviderError, httpx.TransportError) as exc:
					logger.info("sales_record_skipped", item_id=item_id, record_id=record.record_id, error=str(exc))
					complete = False
					continue
				quantity = sum(line.quantity for line in lines if line.item_id == item_id)
				if quantity:
					totals[week_start(record.record_date)] += quantity

			if not result.has_more_page:
				break
			if page == max_pages:
				logger.info("sales_history_truncated", item_id=item_id, max_pages=max_pages)
				complete = False
			page += 1

		buckets = [
			WeeklyBucket(week_start=week, quantity=quantity)
			for week, quantity in sorted(totals.items())
			if quantity != 0
		]
		return WeeklySeries(buckets=buckets, complete=complete)
