"""Persistence collaborator interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional


def to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class AdaptationStore(ABC):
    """
    Abstract key-value and record store used by the adaptation engine.

    Records are JSON-serializable dicts. Every call is asynchronous; a
    failing implementation raises and the engine logs and carries on.
    """

    @abstractmethod
    async def get_setting(self, key: str) -> Optional[Any]:
        """Value stored under ``key``, or None."""

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def add_adaptation_signal(self, record: Dict[str, Any]) -> None:
        """Persist one signal record (carries ``timestamp_ms``)."""

    @abstractmethod
    async def get_adaptation_signals_by_period(self, start_ms: int, end_ms: int) -> List[Dict[str, Any]]:
        """Signal records with ``start_ms <= timestamp_ms <= end_ms``."""

    @abstractmethod
    async def prune_adaptation_signals(
        self,
        max_age_ms: int,
        max_count: int,
        now_ms: Optional[int] = None,
    ) -> int:
        """Delete signals older than ``max_age_ms`` and beyond the newest ``max_count``."""

    @abstractmethod
    async def record_adaptation_history(self, record: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def get_latest_adaptation_history(self) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    async def mark_adaptation_history_reverted(self, adaptation_id: str) -> None:
        pass

    @abstractmethod
    async def save_snapshot(self, name: str, payload: Dict[str, Any]) -> None:
        """Store an export (e.g. signals about to be pruned)."""
