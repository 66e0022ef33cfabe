"""ORM model registry: importing this module registers every table on Base.metadata.

Application code can do::

    from restock.models import PrecomputeJob, SuggestionRow
"""

# ── Base & Mixins ───────────────────────────────────────────────────────────
from restock.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# ── Enums ───────────────────────────────────────────────────────────────────
from restock.models.enums import (
    PRIORITY_RANK,
    JobStatusEnum,
    PriorityEnum,
    SalesTrendEnum,
)

# ── Precompute tables ───────────────────────────────────────────────────────
from restock.models.jobs import PrecomputeJob
from restock.models.suggestions import SuggestionRow

__all__ = [
    # Base & mixins
    "Base",
    # Enums
    "JobStatusEnum",
    "PRIORITY_RANK",
    # Tables
    "PrecomputeJob",
    "PriorityEnum",
    "SalesTrendEnum",
    "SuggestionRow",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
]
