"""Exception hierarchy for the ingestion core.

Reconciliation anomalies are data (see ``contracts.match.Anomaly``), not
exceptions. Only the persistence boundary raises to the caller.
"""

from __future__ import annotations

from rankforge.contracts.match import MatchKey


class RankForgeError(Exception):
    """Base class for all RankForge errors."""


class ParseError(RankForgeError):
    """A recognised line whose fields could not be extracted."""

    def __init__(self, kind: str, reason: str) -> None:
        super().__init__(f"{kind}: {reason}")
        self.kind = kind
        self.reason = reason


class ReconciliationError(RankForgeError):
    """The processing context was driven out of its lifecycle."""


class StoreError(RankForgeError):
    """The store could not complete an operation."""


class RetryableFlushError(StoreError):
    """A match batch could not be committed; it has been re-buffered."""

    def __init__(self, key: MatchKey, attempts: int, cause: BaseException | None = None) -> None:
        super().__init__(f"Flush of {key} failed after {attempts} attempt(s): {cause}")
        self.key = key
        self.attempts = attempts
        self.cause = cause
