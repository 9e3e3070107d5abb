"""In-process AdaptationStore."""

from copy import deepcopy
from typing import Any, Dict, List, Optional
import asyncio
import time
from loguru import logger

from adaptgov.persistence.base import AdaptationStore


class InMemoryAdaptationStore(AdaptationStore):
    """
    Dict-backed store for tests and single-process use.

    Records are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self, max_history: int = 500):
        self.max_history = max_history
        self.settings: Dict[str, Any] = {}
        self.signals: List[Dict[str, Any]] = []
        self.history: List[Dict[str, Any]] = []
        self.snapshots: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get_setting(self, key: str) -> Optional[Any]:
        async with self._lock:
            return deepcopy(self.settings.get(key))

    async def set_setting(self, key: str, value: Any) -> None:
        async with self._lock:
            self.settings[key] = deepcopy(value)

    async def add_adaptation_signal(self, record: Dict[str, Any]) -> None:
        async with self._lock:
            self.signals.append(deepcopy(record))

    async def get_adaptation_signals_by_period(self, start_ms: int, end_ms: int) -> List[Dict[str, Any]]:
        async with self._lock:
            return [
                deepcopy(r) for r in self.signals
                if start_ms <= r["timestamp_ms"] <= end_ms
            ]

    async def prune_adaptation_signals(
        self,
        max_age_ms: int,
        max_count: int,
        now_ms: Optional[int] = None,
    ) -> int:
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        cutoff = now_ms - max_age_ms

        async with self._lock:
            before = len(self.signals)
            kept = sorted(
                (r for r in self.signals if r["timestamp_ms"] >= cutoff),
                key=lambda r: r["timestamp_ms"],
            )
            if len(kept) > max_count:
                kept = kept[-max_count:]
            self.signals = kept
            deleted = before - len(kept)

        if deleted:
            logger.debug(f"Store pruned {deleted} signal record(s)")
        return deleted

    async def record_adaptation_history(self, record: Dict[str, Any]) -> None:
        async with self._lock:
            self.history.append(deepcopy(record))
            if len(self.history) > self.max_history:
                self.history = self.history[-self.max_history:]

    async def get_latest_adaptation_history(self) -> Optional[Dict[str, Any]]:
        async with self._lock:
            return deepcopy(self.history[-1]) if self.history else None

    async def mark_adaptation_history_reverted(self, adaptation_id: str) -> None:
        async with self._lock:
            for record in self.history:
                if record.get("id") == adaptation_id:
                    record["reverted"] = True

    async def save_snapshot(self, name: str, payload: Dict[str, Any]) -> None:
        async with self._lock:
            self.snapshots[name] = deepcopy(payload)
