"""Signal capture and weekly aggregation."""

from adaptgov.signals.types import (
    AdaptationSignal,
    SignalContext,
    SignalType,
    EnergyLevel,
    TaskType,
    TimeOfDay,
)
from adaptgov.signals.log import SignalLog
from adaptgov.signals.aggregator import (
    AdaptationAggregate,
    aggregate_week,
    get_iso_week_number,
)

__all__ = [
    "AdaptationSignal",
    "SignalContext",
    "SignalType",
    "EnergyLevel",
    "TaskType",
    "TimeOfDay",
    "SignalLog",
    "AdaptationAggregate",
    "aggregate_week",
    "get_iso_week_number",
]
