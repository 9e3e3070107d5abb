"""Persistence collaborator interface and an in-memory implementation."""

from adaptgov.persistence.base import AdaptationStore, to_millis
from adaptgov.persistence.memory import InMemoryAdaptationStore

__all__ = [
    "AdaptationStore",
    "InMemoryAdaptationStore",
    "to_millis",
]
