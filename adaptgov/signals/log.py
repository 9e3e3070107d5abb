"""Bounded in-memory signal log."""

from collections import deque
from datetime import datetime, timedelta
from typing import List, Optional
import threading
from loguru import logger

from adaptgov.signals.types import AdaptationSignal


class SignalLog:
    """
    Append-only, time-ordered ring buffer of signals.

    Count-based eviction happens inline on insert (oldest first). Age-based
    pruning is a separate maintenance call. Readers always get a copy.
    """

    def __init__(self, max_size: int = 500):
        self.max_size = max_size
        self._signals: deque = deque(maxlen=max_size)
        self._lock = threading.Lock()
        self.evicted_count = 0

    def record(self, signal: AdaptationSignal) -> None:
        with self._lock:
            if len(self._signals) >= self.max_size:
                self.evicted_count += 1
            self._signals.append(signal)

    def snapshot(self) -> List[AdaptationSignal]:
        """Copy of the log, oldest first."""
        with self._lock:
            return list(self._signals)

    def since(self, cutoff: datetime) -> List[AdaptationSignal]:
        """Signals recorded at or after ``cutoff``."""
        return [s for s in self.snapshot() if s.timestamp >= cutoff]

    def prune(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Drop signals older than ``max_age``. Returns how many were removed."""
        cutoff = (now or datetime.now()) - max_age
        with self._lock:
            kept = [s for s in self._signals if s.timestamp >= cutoff]
            removed = len(self._signals) - len(kept)
            if removed:
                self._signals = deque(kept, maxlen=self.max_size)

        if removed:
            logger.info(f"Pruned {removed} signal(s) older than {cutoff.isoformat()}")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._signals.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._signals)
