from __future__ import annotations

from datetime import date, timedelta

from restock.models.enums import SalesTrendEnum
from restock.services.sales_history import WeeklyBucket
from restock.services.trend import classify_change, summarize


def _series(*quantities: float) -> list[WeeklyBucket]:
	first = date(2026, 1, 5)
	return [
		WeeklyBucket(week_start=first + timedelta(weeks=offset), quantity=quantity)
		for offset, quantity in enumerate(quantities)
	]


def test_empty_series_is_stable_with_zero_rate() -> None:
	summary = summarize([])
	assert summary.trend == SalesTrendEnum.stable
	assert summary.avg_monthly_rate == 0.0
	assert summary.last_date is None


def test_threshold_is_strict() -> None:
	assert classify_change(0.10) == SalesTrendEnum.stable
	assert classify_change(-0.10) == SalesTrendEnum.stable
	assert classify_change(0.1001) == SalesTrendEnum.increasing
	assert classify_change(-0.1001) == SalesTrendEnum.decreasing


def test_rate_uses_at_least_one_month() -> None:
	assert summarize(_series(3, 3)).avg_monthly_rate == 6.0
	assert summarize(_series(*([2] * 8))).avg_monthly_rate == 8.0


def test_recent_half_against_older_half() -> None:
	increasing = summarize(_series(1, 1, 4, 4))
	decreasing = summarize(_series(10, 10, 2, 2))
	flat = summarize(_series(10, 10, 10, 11))

	assert increasing.trend == SalesTrendEnum.increasing
	assert decreasing.trend == SalesTrendEnum.decreasing
	assert flat.trend == SalesTrendEnum.stable
	assert increasing.last_date == "2026-01-26"


def test_single_bucket_is_stable() -> None:
	summary = summarize(_series(5))
	assert summary.trend == SalesTrendEnum.stable
	assert summary.avg_monthly_rate == 5.0
	assert summary.last_date == "2026-01-05"
