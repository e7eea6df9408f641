"""SQLAlchemy ORM models for the baseline ledger and its collaborators."""

from baseline_ledger.models.baseline_version import BaselineVersion
from baseline_ledger.models.milestone import Milestone
from baseline_ledger.models.variation import (
    Variation,
    VariationMilestone,
    VariationStatus,
)

__all__ = [
    "BaselineVersion",
    "Milestone",
    "Variation",
    "VariationMilestone",
    "VariationStatus",
]
