"""Best-effort dosing advisory checks."""

from .client import (
    PEDIATRIC,
    RENAL,
    WEIGHT_BASED,
    AdvisoryFinding,
    AdvisoryRequest,
    DosingAdvisor,
)
from .scheduler import AdvisoryScheduler

__all__ = [
    "AdvisoryFinding",
    "AdvisoryRequest",
    "AdvisoryScheduler",
    "DosingAdvisor",
    "PEDIATRIC",
    "RENAL",
    "WEIGHT_BASED",
]
