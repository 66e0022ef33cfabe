"""PostgreSQL-backed enum types for the precompute tables.

Each StrEnum maps 1:1 to a PostgreSQL CREATE TYPE ... AS ENUM; the type
name is given where the column is declared (``sales_trend`` backs
``suggestions.sales_trend``).
"""

from enum import StrEnum


class JobStatusEnum(StrEnum):
    """Precompute job lifecycle. Transitions only move forward."""

    queued = "queued"
    running = "running"
    done = "done"
    error = "error"


class PriorityEnum(StrEnum):
    """Reorder urgency of a suggestion row."""

    high = "high"
    medium = "medium"
    low = "low"


class SalesTrendEnum(StrEnum):
    """Recent vs. older sales velocity classification."""

    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"


PRIORITY_RANK: dict[PriorityEnum, int] = {
    PriorityEnum.high: 3,
    PriorityEnum.medium: 2,
    PriorityEnum.low: 1,
}

TERMINAL_JOB_STATUSES = frozenset({JobStatusEnum.done, JobStatusEnum.error})
