"""Tests for the signal log and weekly aggregation."""

import pytest
from datetime import date, datetime, timedelta

from adaptgov.parameters.model import SystemMode
from adaptgov.signals import (
    AdaptationSignal,
    EnergyLevel,
    SignalLog,
    SignalType,
    TimeOfDay,
    aggregate_week,
    get_iso_week_number,
)


class TestSignalLog:
    """Tests for SignalLog."""

    def test_fifo_retention(self, make_signal):
        log = SignalLog(max_size=500)
        signals = [make_signal(minutes_ago=1000 - i) for i in range(600)]

        for signal in signals:
            log.record(signal)

        snapshot = log.snapshot()
        assert len(snapshot) == 500
        assert snapshot == signals[100:]
        assert log.evicted_count == 100

    def test_snapshot_is_a_copy(self, make_signal):
        log = SignalLog()
        log.record(make_signal())

        snapshot = log.snapshot()
        snapshot.clear()

        assert len(log) == 1

    def test_prune_by_age(self, make_signal, clock):
        log = SignalLog()
        old = make_signal(minutes_ago=60 * 24 * 100)
        recent = make_signal(minutes_ago=60)
        log.record(old)
        log.record(recent)

        removed = log.prune(timedelta(days=90), now=clock.now)

        assert removed == 1
        assert log.snapshot() == [recent]

    def test_since(self, make_signal, clock):
        log = SignalLog()
        log.record(make_signal(minutes_ago=120))
        newer = make_signal(minutes_ago=10)
        log.record(newer)

        assert log.since(clock.now - timedelta(minutes=30)) == [newer]

    def test_signal_dict_round_trip(self, make_signal):
        signal = make_signal(
            SignalType.MODE_OVERRIDE,
            mode=SystemMode.FLEXIBLE,
            from_mode=SystemMode.STRICT,
            time_of_day=TimeOfDay.EVENING,
        )

        assert AdaptationSignal.from_dict(signal.to_dict()) == signal


class TestIsoWeek:
    """Tests for get_iso_week_number."""

    def test_first_of_january_2023(self):
        assert get_iso_week_number(date(2023, 1, 1)) == 52

    def test_week_belongs_to_next_year(self):
        assert get_iso_week_number(datetime(2024, 12, 30, 9, 0)) == 1

    def test_mid_year(self):
        assert get_iso_week_number(date(2024, 3, 6)) == 10


class TestAggregateWeek:
    """Tests for aggregate_week."""

    def test_equal_split(self, make_signal):
        signals = [
            make_signal(SignalType.FORCED_TASK),
            make_signal(SignalType.REJECTED_SUGGESTION),
        ]

        aggregate = aggregate_week(signals)

        assert aggregate.forced_tasks.ratio == 0.5
        assert aggregate.rejected_suggestions.ratio == 0.5
        assert aggregate.total_signals == 2

    def test_empty_window(self):
        aggregate = aggregate_week([], now=datetime(2023, 1, 1))

        assert aggregate.week == 52
        assert aggregate.forced_tasks.count == 0
        assert aggregate.forced_tasks.ratio == 0.0
        assert aggregate.overrun_sessions.avg_overrun_minutes == 0.0
        assert aggregate.overrun_sessions.typical_time_of_day == TimeOfDay.MORNING
        assert not any([
            aggregate.needs_more_flexibility,
            aggregate.needs_more_structure,
            aggregate.energy_estimates_off,
            aggregate.mode_mismatch,
        ])

    def test_forced_task_buckets(self, make_signal):
        signals = [
            make_signal(SignalType.FORCED_TASK, energy=EnergyLevel.LOW, mode=SystemMode.STRICT),
            make_signal(SignalType.FORCED_TASK, energy=EnergyLevel.LOW, mode=SystemMode.COACH),
            make_signal(SignalType.FORCED_TASK, energy=EnergyLevel.HIGH, mode=SystemMode.STRICT),
        ]

        stats = aggregate_week(signals).forced_tasks

        assert stats.by_energy == {EnergyLevel.LOW: 2, EnergyLevel.HIGH: 1}
        assert stats.by_mode == {SystemMode.STRICT: 2, SystemMode.COACH: 1}

    def test_overrun_average_uses_default_duration(self, make_signal):
        signals = [
            make_signal(SignalType.SESSION_OVERRUN, duration=45),
            make_signal(SignalType.SESSION_OVERRUN),
        ]

        stats = aggregate_week(signals).overrun_sessions

        assert stats.count == 2
        assert stats.avg_overrun_minutes == 30.0

    def test_typical_time_of_day(self, make_signal):
        signals = [
            make_signal(SignalType.SESSION_OVERRUN, time_of_day=TimeOfDay.EVENING),
            make_signal(SignalType.SESSION_OVERRUN, time_of_day=TimeOfDay.EVENING),
            make_signal(SignalType.SESSION_OVERRUN),  # unspecified counts as afternoon
        ]

        assert aggregate_week(signals).overrun_sessions.typical_time_of_day == TimeOfDay.EVENING

    def test_typical_time_of_day_tie_prefers_earlier_bucket(self, make_signal):
        signals = [
            make_signal(SignalType.SESSION_OVERRUN, time_of_day=TimeOfDay.EVENING),
            make_signal(SignalType.SESSION_OVERRUN, time_of_day=TimeOfDay.MORNING),
        ]

        assert aggregate_week(signals).overrun_sessions.typical_time_of_day == TimeOfDay.MORNING

    def test_mode_transitions(self, make_signal):
        signals = [
            make_signal(SignalType.MODE_OVERRIDE, mode=SystemMode.FLEXIBLE),
            make_signal(SignalType.MODE_OVERRIDE, mode=SystemMode.FLEXIBLE, from_mode=SystemMode.STRICT),
            make_signal(SignalType.MODE_OVERRIDE, mode=SystemMode.FLEXIBLE, from_mode=SystemMode.STRICT),
        ]

        stats = aggregate_week(signals).mode_overrides

        assert stats.from_to == {"CURRENT→FLEXIBLE": 1, "STRICT→FLEXIBLE": 2}

    def test_common_reasons(self, make_signal):
        signals = [
            make_signal(SignalType.REJECTED_SUGGESTION, reason="too late"),
            make_signal(SignalType.REJECTED_SUGGESTION, reason="too late"),
            make_signal(SignalType.REJECTED_SUGGESTION, reason="boring"),
            make_signal(SignalType.REJECTED_SUGGESTION),
        ]

        assert aggregate_week(signals).rejected_suggestions.common_reasons == ["too late", "boring"]

    @pytest.mark.parametrize(
        "counts,flag",
        [
            ({SignalType.FORCED_TASK: 7, SignalType.SESSION_OVERRUN: 3}, "needs_more_flexibility"),
            ({SignalType.REJECTED_SUGGESTION: 8, SignalType.SESSION_OVERRUN: 2}, "needs_more_structure"),
            ({SignalType.ENERGY_MISMATCH: 4, SignalType.SESSION_OVERRUN: 6}, "energy_estimates_off"),
            ({SignalType.MODE_OVERRIDE: 4, SignalType.SESSION_OVERRUN: 6}, "mode_mismatch"),
        ],
    )
    def test_derived_flags(self, make_batch, counts, flag):
        aggregate = aggregate_week(make_batch(counts))

        flags = {
            "needs_more_flexibility": aggregate.needs_more_flexibility,
            "needs_more_structure": aggregate.needs_more_structure,
            "energy_estimates_off": aggregate.energy_estimates_off,
            "mode_mismatch": aggregate.mode_mismatch,
        }
        assert flags.pop(flag) is True
        assert not any(flags.values())

    def test_thresholds_are_strict(self, make_batch):
        aggregate = aggregate_week(
            make_batch({SignalType.ENERGY_MISMATCH: 3, SignalType.SESSION_OVERRUN: 7})
        )

        assert aggregate.energy_mismatches.ratio == pytest.approx(0.3)
        assert aggregate.energy_estimates_off is False
