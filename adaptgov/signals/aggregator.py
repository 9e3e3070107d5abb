"""
Weekly aggregation of behavioral signals.

Reduces a signal window to counts, ratios and four derived flags. Ratios
use ``max(total, 1)`` as denominator so an empty window yields zeros.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

from adaptgov.parameters.model import SystemMode
from adaptgov.signals.types import (
    AdaptationSignal,
    EnergyLevel,
    SignalType,
    TimeOfDay,
)
from adaptgov.utils.config import AggregationConfig


# =============================================================================
# AGGREGATE TYPES
# =============================================================================

@dataclass
class ForcedTaskStats:
    count: int = 0
    ratio: float = 0.0
    by_energy: Dict[EnergyLevel, int] = field(default_factory=dict)
    by_mode: Dict[SystemMode, int] = field(default_factory=dict)


@dataclass
class RejectedSuggestionStats:
    count: int = 0
    ratio: float = 0.0
    common_reasons: List[str] = field(default_factory=list)


@dataclass
class OverrunStats:
    count: int = 0
    avg_overrun_minutes: float = 0.0
    typical_time_of_day: TimeOfDay = TimeOfDay.MORNING


@dataclass
class ModeOverrideStats:
    count: int = 0
    ratio: float = 0.0
    from_to: Dict[str, int] = field(default_factory=dict)  # "FROM→TO" -> count


@dataclass
class EnergyMismatchStats:
    count: int = 0
    ratio: float = 0.0


@dataclass
class AdaptationAggregate:
    """Ephemeral per-cycle summary. Never persisted."""
    week: int
    total_signals: int
    forced_tasks: ForcedTaskStats
    rejected_suggestions: RejectedSuggestionStats
    overrun_sessions: OverrunStats
    mode_overrides: ModeOverrideStats
    energy_mismatches: EnergyMismatchStats

    # Derived flags
    needs_more_flexibility: bool = False
    needs_more_structure: bool = False
    energy_estimates_off: bool = False
    mode_mismatch: bool = False


# =============================================================================
# AGGREGATION
# =============================================================================

def get_iso_week_number(value: Union[date, datetime]) -> int:
    """ISO-8601 week number (the week that holds the date's Thursday)."""
    return value.isocalendar()[1]


def _typical_time_of_day(overruns: List[AdaptationSignal]) -> TimeOfDay:
    # Fixed tally order so ties resolve to the earliest bucket
    tally = {TimeOfDay.MORNING: 0, TimeOfDay.AFTERNOON: 0, TimeOfDay.EVENING: 0}
    for signal in overruns:
        bucket = signal.context.time_of_day or TimeOfDay.AFTERNOON
        tally[bucket] += 1

    best = TimeOfDay.MORNING
    for bucket, count in tally.items():
        if count > tally[best]:
            best = bucket
    return best


def aggregate_week(
    signals: Iterable[AdaptationSignal],
    now: Optional[datetime] = None,
    config: Optional[AggregationConfig] = None,
) -> AdaptationAggregate:
    """
    Aggregate a signal window.

    Args:
        signals: Signals to aggregate (usually a log snapshot)
        now: Reference time for the week number
        config: Flag thresholds

    Returns:
        AdaptationAggregate with per-pattern stats and derived flags
    """
    config = config or AggregationConfig()
    signals = list(signals)
    denominator = max(len(signals), 1)

    by_type: Dict[SignalType, List[AdaptationSignal]] = {t: [] for t in SignalType}
    for signal in signals:
        by_type[signal.type].append(signal)

    # === FORCED TASKS ===
    forced = by_type[SignalType.FORCED_TASK]
    by_energy: Dict[EnergyLevel, int] = {}
    by_mode: Dict[SystemMode, int] = {}
    for signal in forced:
        by_energy[signal.context.energy] = by_energy.get(signal.context.energy, 0) + 1
        by_mode[signal.context.mode] = by_mode.get(signal.context.mode, 0) + 1

    forced_stats = ForcedTaskStats(
        count=len(forced),
        ratio=len(forced) / denominator,
        by_energy=by_energy,
        by_mode=by_mode,
    )

    # === REJECTED SUGGESTIONS ===
    rejected = by_type[SignalType.REJECTED_SUGGESTION]
    reasons = Counter(s.context.reason for s in rejected if s.context.reason)
    rejected_stats = RejectedSuggestionStats(
        count=len(rejected),
        ratio=len(rejected) / denominator,
        common_reasons=[reason for reason, _ in reasons.most_common(3)],
    )

    # === SESSION OVERRUNS ===
    overruns = by_type[SignalType.SESSION_OVERRUN]
    total_minutes = sum(
        s.context.duration if s.context.duration else config.default_overrun_minutes
        for s in overruns
    )
    overrun_stats = OverrunStats(
        count=len(overruns),
        avg_overrun_minutes=total_minutes / len(overruns) if overruns else 0.0,
        typical_time_of_day=_typical_time_of_day(overruns),
    )

    # === MODE OVERRIDES ===
    overrides = by_type[SignalType.MODE_OVERRIDE]
    from_to: Dict[str, int] = {}
    for signal in overrides:
        source = signal.context.from_mode.value if signal.context.from_mode else "CURRENT"
        transition = f"{source}→{signal.context.mode.value}"
        from_to[transition] = from_to.get(transition, 0) + 1

    override_stats = ModeOverrideStats(
        count=len(overrides),
        ratio=len(overrides) / denominator,
        from_to=from_to,
    )

    # === ENERGY MISMATCHES ===
    mismatches = by_type[SignalType.ENERGY_MISMATCH]
    mismatch_stats = EnergyMismatchStats(
        count=len(mismatches),
        ratio=len(mismatches) / denominator,
    )

    return AdaptationAggregate(
        week=get_iso_week_number(now or datetime.now()),
        total_signals=len(signals),
        forced_tasks=forced_stats,
        rejected_suggestions=rejected_stats,
        overrun_sessions=overrun_stats,
        mode_overrides=override_stats,
        energy_mismatches=mismatch_stats,
        needs_more_flexibility=forced_stats.ratio > config.flexibility_forced_ratio,
        needs_more_structure=(
            forced_stats.ratio < config.structure_forced_ratio
            and rejected_stats.ratio > config.structure_rejected_ratio
        ),
        energy_estimates_off=mismatch_stats.ratio > config.energy_mismatch_ratio,
        mode_mismatch=override_stats.ratio > config.mode_override_ratio,
    )
