"""Adapter implementations of the event store port."""

from .memory_store import InMemoryEventStore
from .postgres_store import PostgresEventStore

__all__ = ["InMemoryEventStore", "PostgresEventStore"]
