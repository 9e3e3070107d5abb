"""
Governance gates.

Three independent checks run before a weekly cycle may propose anything:
minimum observation window, abuse protection and the weekly transparency
budget. A closed gate is not an error; the cycle simply yields nothing.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Tuple
import threading
from loguru import logger

from adaptgov.governance.rollback import AdaptationHistory, ChangeSource
from adaptgov.signals.types import AdaptationSignal, SignalType
from adaptgov.utils.config import GateConfig


class GateName(str, Enum):
    OBSERVATION_WINDOW = "observation_window"
    ABUSE_PROTECTION = "abuse_protection"
    TRANSPARENCY_BUDGET = "transparency_budget"


@dataclass
class GateDecision:
    """Outcome of evaluating every gate."""
    allowed: bool
    gate: Optional[GateName] = None
    reason: str = ""

    @classmethod
    def open(cls) -> "GateDecision":
        return cls(allowed=True, reason="All gates open")

    @classmethod
    def closed(cls, gate: GateName, reason: str) -> "GateDecision":
        return cls(allowed=False, gate=gate, reason=reason)


class GovernanceMonitor:
    """
    Evaluates the governance gates for one user.

    Abuse detection raises two sticky indicators (``is_frozen`` and
    ``manual_mode_suggested``) that stay up until ``reset_indicators``.
    """

    def __init__(self, config: Optional[GateConfig] = None):
        self.config = config or GateConfig()
        self._lock = threading.Lock()
        self.is_frozen = False
        self.manual_mode_suggested = False
        self.frozen_at: Optional[datetime] = None

    # === INDIVIDUAL GATES ===

    def check_observation_window(self, signals: List[AdaptationSignal]) -> Optional[GateDecision]:
        if len(signals) < self.config.min_signals:
            return GateDecision.closed(
                GateName.OBSERVATION_WINDOW,
                f"Observation window not met: {len(signals)}/{self.config.min_signals} signals",
            )
        return None

    def override_rate(self, signals: Iterable[AdaptationSignal], now: datetime) -> Tuple[float, int]:
        """(forced-task rate, window size) over the trailing abuse window."""
        cutoff = now - timedelta(days=self.config.abuse_window_days)
        window = [s for s in signals if s.timestamp >= cutoff]
        forced = sum(1 for s in window if s.type == SignalType.FORCED_TASK)
        return forced / max(len(window), 1), len(window)

    def check_abuse(self, signals: List[AdaptationSignal], now: datetime) -> Optional[GateDecision]:
        if self.is_frozen:
            return GateDecision.closed(
                GateName.ABUSE_PROTECTION,
                "Adaptation frozen until the abuse indicators are reset",
            )

        rate, total = self.override_rate(signals, now)
        if rate > self.config.max_override_rate and total > self.config.abuse_min_signals:
            with self._lock:
                if not self.is_frozen:
                    self.frozen_at = now
                self.is_frozen = True
                self.manual_mode_suggested = True
            logger.warning(
                f"POTENTIAL ABUSE DETECTED: override rate {rate:.0%} over {total} signals "
                f"in {self.config.abuse_window_days} days, adaptation frozen"
            )
            return GateDecision.closed(
                GateName.ABUSE_PROTECTION,
                f"Adaptation frozen: override rate {rate:.2f} > {self.config.max_override_rate}",
            )
        return None

    def recent_adaptation_count(self, history: Iterable[AdaptationHistory], now: datetime) -> int:
        cutoff = now - timedelta(days=self.config.transparency_window_days)
        return sum(
            1 for h in history
            if h.source == ChangeSource.ADAPTATION and h.timestamp >= cutoff
        )

    def remaining_budget(self, history: Iterable[AdaptationHistory], now: Optional[datetime] = None) -> int:
        """Adaptations still allowed in the current transparency window."""
        used = self.recent_adaptation_count(history, now or datetime.now())
        return max(self.config.max_adaptations_per_window - used, 0)

    def check_transparency_budget(
        self,
        history: Iterable[AdaptationHistory],
        now: datetime,
    ) -> Optional[GateDecision]:
        used = self.recent_adaptation_count(history, now)
        if used >= self.config.max_adaptations_per_window:
            return GateDecision.closed(
                GateName.TRANSPARENCY_BUDGET,
                f"Transparency budget exhausted: {used} adaptations in "
                f"{self.config.transparency_window_days} days",
            )
        return None

    # === COMBINED ===

    def evaluate(
        self,
        signals: List[AdaptationSignal],
        history: List[AdaptationHistory],
        now: Optional[datetime] = None,
    ) -> GateDecision:
        """Evaluate the gates in order. The first closed gate wins."""
        now = now or datetime.now()

        decision = (
            self.check_observation_window(signals)
            or self.check_abuse(signals, now)
            or self.check_transparency_budget(history, now)
        )
        if decision is not None:
            logger.info(f"Adaptation skipped ({decision.gate.value}): {decision.reason}")
            return decision

        return GateDecision.open()

    def reset_indicators(self) -> None:
        with self._lock:
            self.is_frozen = False
            self.manual_mode_suggested = False
            self.frozen_at = None
        logger.info("Abuse indicators reset")
