"""Event reconciliation: one processing context per in-flight match."""

from rankforge.core.reconciliation.context import ContextState, ProcessingContext
from rankforge.core.reconciliation.tallies import PlayerStatsTracker

__all__ = ["ContextState", "PlayerStatsTracker", "ProcessingContext"]
