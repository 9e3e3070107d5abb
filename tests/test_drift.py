"""Tests for parameter drift detection."""

import pytest
from datetime import timedelta

from adaptgov.monitoring import DriftDirection, DriftMonitor, DriftType
from adaptgov.parameters import Parameters


def track_series(monitor: DriftMonitor, clock, series, field: str = "strictness") -> None:
    start = clock.now - timedelta(days=len(series))
    for day, value in enumerate(series):
        monitor.track(Parameters(**{field: value}), start + timedelta(days=day))


class TestShiftDrift:
    """Tests for DriftMonitor.detect_drift."""

    def test_upward_strictness_drift(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [0.6] * 20 + [0.8] * 10)

        report = monitor.detect_drift()

        assert report is not None
        assert report.parameter == "strictness"
        assert report.direction == DriftDirection.UP
        assert report.drift_type == DriftType.SHIFT
        assert report.drift == pytest.approx(0.2)
        assert monitor.get_drift_history() == [report]

    def test_downward_drift(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [0.7] * 20 + [0.4] * 10)

        report = monitor.detect_drift()

        assert report.direction == DriftDirection.DOWN
        assert report.drift == pytest.approx(-0.3)

    def test_oscillation_is_not_drift(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [0.6 if i % 2 == 0 else 0.8 for i in range(30)])

        assert monitor.detect_drift() is None

    def test_too_few_snapshots(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [0.3, 0.8, 0.3, 0.8, 0.3, 0.8])

        assert monitor.detect_drift() is None

    def test_empty_baseline(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [0.3] * 3 + [0.8] * 7)

        assert monitor.detect_drift() is None

    def test_max_tasks_drift(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [5] * 20 + [7] * 10, field="max_tasks")

        report = monitor.detect_drift()

        assert report.parameter == "max_tasks"
        assert report.direction == DriftDirection.UP
        assert report.drift == 2.0

    def test_capacity(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [0.6] * 120)

        assert len(monitor.snapshots()) == 90


class TestProgressiveDrift:
    """Tests for DriftMonitor.detect_progressive_drift."""

    def test_steady_tightening(self, clock):
        monitor = DriftMonitor()
        series = [0.40] * 7 + [0.55] * 7 + [0.70] * 7 + [0.85] * 7
        track_series(monitor, clock, series)

        report = monitor.detect_progressive_drift()

        assert report.drift_type == DriftType.PROGRESSIVE
        assert report.direction == DriftDirection.UP
        assert report.drift == pytest.approx(0.45)
        assert report.details["weekly_means"] == pytest.approx([0.85, 0.70, 0.55, 0.40])

    def test_steady_loosening(self, clock):
        monitor = DriftMonitor()
        series = [0.80] * 7 + [0.65] * 7 + [0.50] * 7 + [0.35] * 7
        track_series(monitor, clock, series)

        report = monitor.detect_progressive_drift()

        assert report.direction == DriftDirection.DOWN
        assert report.drift == pytest.approx(-0.45)

    def test_small_trend(self, clock):
        monitor = DriftMonitor()
        series = [0.50] * 7 + [0.55] * 7 + [0.60] * 7 + [0.65] * 7
        track_series(monitor, clock, series)

        assert monitor.detect_progressive_drift() is None

    def test_needs_four_weeks(self, clock):
        monitor = DriftMonitor()
        track_series(monitor, clock, [0.3] * 14 + [0.8] * 13)

        assert monitor.detect_progressive_drift() is None
