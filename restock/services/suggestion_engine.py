"""Deterministic reorder policy: (stock, trend, cost) -> (priority, quantity, reason)."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal

from restock.models.enums import PRIORITY_RANK, PriorityEnum, SalesTrendEnum
from restock.schemas.suggestions import Suggestion, SuggestionInput, SuggestionStats

RESERVED_SKU_PREFIXES = ("0-", "800-", "2000-")
DAYS_PER_MONTH = 30
STOCKOUT_HORIZON_DAYS = 14

REASON_BELOW_REORDER = "Below reorder point"
REASON_BELOW_REORDER_INCREASING = "Below reorder point with increasing sales trend"
REASON_BELOW_REORDER_DECREASING = "Below reorder point but declining sales trend"
REASON_LOW_STOCK_INCREASING = "Low stock with increasing demand"
REASON_STOCKOUT_SOON = "Will run out of stock within 2 weeks"
REASON_LOW_STOCK = "Low stock level"


def is_orderable_sku(sku: str) -> bool:
	"""False for reserved SKU namespaces (``0-``, ``800-``, ``2000-``), any case."""
	return not sku.strip().lower().startswith(RESERVED_SKU_PREFIXES)


def round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


def round_money(value: float) -> float:
	return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def days_until_stockout(current_stock: float, avg_monthly_sales: float) -> float | None:
	"""Days of cover at the current sales rate; None when nothing sells."""
	daily_rate = avg_monthly_sales / DAYS_PER_MONTH
	if daily_rate <= 0:
		return None
	return current_stock / daily_rate


def suggest(item: SuggestionInput) -> Suggestion | None:
	"""Apply the first matching rule; None when no rule fires or quantity rounds to 0."""
	if not is_orderable_sku(item.sku):
		return None

	current_stock = item.current_stock
	max_stock = max(1.0, item.max_stock)
	avg_monthly_sales = max(0.0, item.avg_monthly_sales)
	stock_ratio = current_stock / max_stock
	stockout_days = days_until_stockout(current_stock, avg_monthly_sales)

	if current_stock <= item.reorder_point:
		priority = PriorityEnum.high
		quantity = max(0.0, max_stock * 0.8 - current_stock)
		if item.sales_trend == SalesTrendEnum.increasing:
			quantity *= 1.2
			reason = REASON_BELOW_REORDER_INCREASING
		elif item.sales_trend == SalesTrendEnum.decreasing:
			quantity *= 0.8
			reason = REASON_BELOW_REORDER_DECREASING
		else:
			reason = REASON_BELOW_REORDER
	elif stock_ratio < 0.3 and item.sales_trend == SalesTrendEnum.increasing:
		priority = PriorityEnum.medium
		quantity = max(0.0, max_stock * 0.6 - current_stock)
		reason = REASON_LOW_STOCK_INCREASING
	elif stockout_days is not None and stockout_days < STOCKOUT_HORIZON_DAYS and avg_monthly_sales > 0:
		priority = PriorityEnum.medium
		quantity = max(0.0, avg_monthly_sales * 1.1 - current_stock)
		reason = REASON_STOCKOUT_SOON
	elif stock_ratio < 0.2:
		priority = PriorityEnum.low
		quantity = max(0.0, max_stock * 0.4 - current_stock)
		reason = REASON_LOW_STOCK
	else:
		return None

	suggested_quantity = round_half_up(quantity)
	if suggested_quantity <= 0:
		return None

	return Suggestion(
		sku=item.sku,
		description=item.description,
		current_stock=current_stock,
		suggested_quantity=suggested_quantity,
		priority=priority,
		reason=reason,
		estimated_cost=round_money(suggested_quantity * item.unit_cost),
		days_until_stockout=round_half_up(stockout_days) if stockout_days is not None else None,
	)


def rank_suggestions(suggestions: Iterable[Suggestion]) -> list[Suggestion]:
	"""High before medium before low; ties keep input order."""
	return sorted(suggestions, key=lambda suggestion: -PRIORITY_RANK[suggestion.priority])


def build_suggestions(items: Sequence[SuggestionInput]) -> list[Suggestion]:
	suggestions = (suggest(item) for item in items if is_orderable_sku(item.sku))
	return rank_suggestions(suggestion for suggestion in suggestions if suggestion is not None)


def summarize_suggestions(priorities_and_costs: Iterable[tuple[PriorityEnum, float]]) -> SuggestionStats:
	stats = SuggestionStats()
	total_cost = 0.0
	for priority, estimated_cost in priorities_and_costs:
		stats.total_suggestions += 1
		if priority == PriorityEnum.high:
			stats.high += 1
		elif priority == PriorityEnum.medium:
			stats.medium += 1
		else:
			stats.low += 1
		total_cost += estimated_cost
	stats.total_estimated_cost = round_money(total_cost)
	return stats
