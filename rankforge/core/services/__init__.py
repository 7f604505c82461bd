"""Service layer implementing the ingestion pipeline.

Services connect the store port with the parsing, reconciliation and rating
core, providing high-level operations to the runner.
"""

from rankforge.core.services.flusher import FlushResult, MatchFlusher
from rankforge.core.services.ingestion_service import IngestionReport, IngestionService

__all__ = ["FlushResult", "IngestionReport", "IngestionService", "MatchFlusher"]
