"""Monitoring of the governed parameters."""

from adaptgov.monitoring.drift_detector import (
    DriftMonitor,
    DriftReport,
    DriftDirection,
    DriftType,
    ParameterSnapshot,
)

__all__ = [
    "DriftMonitor",
    "DriftReport",
    "DriftDirection",
    "DriftType",
    "ParameterSnapshot",
]
