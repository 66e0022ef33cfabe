"""Sales velocity and trend classification from a weekly series."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from statistics import fmean

from restock.models.enums import SalesTrendEnum
from restock.services.sales_history import WeeklyBucket

WEEKS_PER_MONTH = 4
TREND_THRESHOLD = 0.10


@dataclass(frozen=True)
class TrendSummary:
	trend: SalesTrendEnum
	avg_monthly_rate: float
	last_date: str | None


def classify_change(change: float) -> SalesTrendEnum:
	if change > TREND_THRESHOLD:
		return SalesTrendEnum.increasing
	if change < -TREND_THRESHOLD:
		return SalesTrendEnum.decreasing
	return SalesTrendEnum.stable


def summarize(series: Sequence[WeeklyBucket]) -> TrendSummary:
	"""Average monthly rate plus older-half vs. recent-half trend."""
	if not series:
		return TrendSummary(trend=SalesTrendEnum.stable, avg_monthly_rate=0.0, last_date=None)

	quantities = [bucket.quantity for bucket in series]
	months = max(1.0, len(quantities) / WEEKS_PER_MONTH)
	avg_monthly_rate = sum(quantities) / months

	split = max(1, len(quantities) // 2)
	older = quantities[:split]
	recent = quantities[split:]
	older_avg = fmean(older) if older else avg_monthly_rate
	recent_avg = fmean(recent) if recent else older_avg

	change = (recent_avg - older_avg) / older_avg if older_avg else 0.0
	last_date = max(bucket.week_start.isoformat() for bucket in series)
	return TrendSummary(trend=classify_change(change), avg_monthly_rate=avg_monthly_rate, last_date=last_date)
