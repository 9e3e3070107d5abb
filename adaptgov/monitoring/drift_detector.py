"""Parameter drift detection over tracked parameter snapshots."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any
import math
import threading
import numpy as np
from loguru import logger

from adaptgov.parameters.model import Parameters
from adaptgov.utils.config import DriftConfig


class DriftDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"


class DriftType(str, Enum):
    """Kinds of drift."""
    SHIFT = "shift"  # recent week vs. a baseline two weeks earlier
    PROGRESSIVE = "progressive"  # multi-week trend


@dataclass
class ParameterSnapshot:
    """Parameters observed at a point in time."""
    parameters: Parameters
    timestamp: datetime


@dataclass
class DriftReport:
    """Result of drift detection."""
    parameter: str
    drift: float  # signed difference (or trend)
    direction: DriftDirection
    recommendation: str
    drift_type: DriftType = DriftType.SHIFT
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)


def _mean(values: List[float]) -> float:
    # Exactly rounded sum so equal windows compare equal
    return math.fsum(values) / len(values)


class DriftMonitor:
    """
    Tracks parameter snapshots and detects systematic deviation.

    Two checks:
    1. Shift - mean of the last week vs. the week two weeks earlier
    2. Progressive - strictness trend across four trailing weeks

    Detection never raises; no drift is ``None``.
    """

    def __init__(self, config: Optional[DriftConfig] = None):
        self.config = config or DriftConfig()
        self._lock = threading.Lock()
        self._snapshots: deque = deque(maxlen=self.config.max_snapshots)
        self._drift_history: deque = deque(maxlen=100)

    def track(self, params: Parameters, timestamp: Optional[datetime] = None) -> None:
        """Append a snapshot; the oldest one is evicted at capacity."""
        with self._lock:
            self._snapshots.append(ParameterSnapshot(params, timestamp or datetime.now()))

    def snapshots(self) -> List[ParameterSnapshot]:
        with self._lock:
            return list(self._snapshots)

    def load(self, snapshots: List[ParameterSnapshot]) -> None:
        with self._lock:
            self._snapshots = deque(snapshots, maxlen=self.config.max_snapshots)

    def _recommendation(self, parameter: str, direction: DriftDirection) -> str:
        if parameter == "strictness":
            if direction == DriftDirection.UP:
                return "Structure keeps tightening; check that the plan is still achievable"
            return "Structure keeps loosening; consider a conservative reset"
        if parameter == "max_tasks":
            if direction == DriftDirection.UP:
                return "Daily load keeps growing; watch for overload"
            return "Daily load keeps shrinking; review recent rejections"
        return f"Review recent adaptations of {parameter}"

    def detect_drift(self) -> Optional[DriftReport]:
        """
        Compare the recent window with the baseline window.

        Watched parameters are checked in configured order; the first one
        whose mean moved by more than its threshold is reported.
        """
        history = self.snapshots()
        cfg = self.config

        if len(history) < cfg.recent_window:
            return None

        recent = history[-cfg.recent_window:]
        start = len(history) - cfg.baseline_offset - cfg.baseline_span
        end = len(history) - cfg.baseline_offset
        baseline = history[max(start, 0):max(end, 0)]
        if not baseline:
            return None

        for parameter, threshold in cfg.thresholds.items():
            recent_mean = _mean([float(getattr(s.parameters, parameter)) for s in recent])
            baseline_mean = _mean([float(getattr(s.parameters, parameter)) for s in baseline])
            drift = recent_mean - baseline_mean

            if abs(drift) > threshold:
                direction = DriftDirection.UP if drift > 0 else DriftDirection.DOWN
                report = DriftReport(
                    parameter=parameter,
                    drift=drift,
                    direction=direction,
                    recommendation=self._recommendation(parameter, direction),
                    details={
                        "recent_mean": recent_mean,
                        "baseline_mean": baseline_mean,
                        "threshold": threshold,
                    },
                )
                self._record(report)
                return report

        return None

    def detect_progressive_drift(self, parameter: str = "strictness") -> Optional[DriftReport]:
        """Sum of week-over-week changes across the trailing weeks."""
        history = self.snapshots()
        cfg = self.config
        week = 7

        if len(history) < cfg.progressive_weeks * week:
            return None

        values = np.array([float(getattr(s.parameters, parameter)) for s in history])

        # Most recent week first
        weekly_means = []
        for w in range(cfg.progressive_weeks):
            end = len(values) - w * week
            weekly_means.append(float(np.mean(values[end - week:end])))

        # Chronological changes: newer minus older
        trend = float(sum(weekly_means[i] - weekly_means[i + 1] for i in range(len(weekly_means) - 1)))

        if abs(trend) <= cfg.progressive_threshold:
            return None

        direction = DriftDirection.UP if trend > 0 else DriftDirection.DOWN
        report = DriftReport(
            parameter=parameter,
            drift=trend,
            direction=direction,
            recommendation=self._recommendation(parameter, direction),
            drift_type=DriftType.PROGRESSIVE,
            details={"weekly_means": weekly_means},
        )
        self._record(report)
        return report

    def _record(self, report: DriftReport) -> None:
        with self._lock:
            self._drift_history.append(report)
        logger.warning(
            f"{report.drift_type.value.upper()} DRIFT: {report.parameter} {report.direction.value} "
            f"by {report.drift:+.3f} - {report.recommendation}"
        )

    def get_drift_history(self) -> List[DriftReport]:
        with self._lock:
            return list(self._drift_history)
