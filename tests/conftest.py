"""Pytest configuration and fixtures for adaptgov tests."""

import asyncio
import tempfile
from pathlib import Path
from typing import Callable, Generator, List
from datetime import datetime, timedelta

import pytest

from adaptgov.engine import AdaptationEngine
from adaptgov.parameters.model import SystemMode
from adaptgov.persistence.base import AdaptationStore
from adaptgov.persistence.memory import InMemoryAdaptationStore
from adaptgov.signals.types import (
    AdaptationSignal,
    EnergyLevel,
    SignalContext,
    SignalType,
    TimeOfDay,
)

USER_ID = "user-1"


class FakeClock:
    """Controllable time source."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FailingStore(AdaptationStore):
    """Store whose every call fails."""

    def __init__(self):
        self.calls: List[str] = []

    async def _fail(self, name: str):
        self.calls.append(name)
        raise IOError(f"{name} unavailable")

    async def get_setting(self, key):
        await self._fail("get_setting")

    async def set_setting(self, key, value):
        await self._fail("set_setting")

    async def add_adaptation_signal(self, record):
        await self._fail("add_adaptation_signal")

    async def get_adaptation_signals_by_period(self, start_ms, end_ms):
        await self._fail("get_adaptation_signals_by_period")

    async def prune_adaptation_signals(self, max_age_ms, max_count, now_ms=None):
        await self._fail("prune_adaptation_signals")

    async def record_adaptation_history(self, record):
        await self._fail("record_adaptation_history")

    async def get_latest_adaptation_history(self):
        await self._fail("get_latest_adaptation_history")

    async def mark_adaptation_history_reverted(self, adaptation_id):
        await self._fail("mark_adaptation_history_reverted")

    async def save_snapshot(self, name, payload):
        await self._fail("save_snapshot")


class YieldingStore(InMemoryAdaptationStore):
    """In-memory store that yields to the event loop before every write."""

    async def set_setting(self, key, value):
        await asyncio.sleep(0)
        await super().set_setting(key, value)

    async def add_adaptation_signal(self, record):
        await asyncio.sleep(0)
        await super().add_adaptation_signal(record)

    async def record_adaptation_history(self, record):
        await asyncio.sleep(0)
        await super().record_adaptation_history(record)

    async def prune_adaptation_signals(self, max_age_ms, max_count, now_ms=None):
        await asyncio.sleep(0)
        return await super().prune_adaptation_signals(max_age_ms, max_count, now_ms)


@pytest.fixture(scope="function")
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 6, 12, 0, 0)


@pytest.fixture
def clock(fixed_now: datetime) -> FakeClock:
    return FakeClock(fixed_now)


@pytest.fixture
def make_signal(clock: FakeClock) -> Callable[..., AdaptationSignal]:
    """Factory for signals timestamped relative to the fake clock."""

    def _make(
        signal_type: SignalType = SignalType.FORCED_TASK,
        minutes_ago: float = 60,
        user_id: str = USER_ID,
        energy: EnergyLevel = EnergyLevel.MEDIUM,
        mode: SystemMode = SystemMode.STRICT,
        from_mode: SystemMode = None,
        time_of_day: TimeOfDay = None,
        duration: float = None,
        reason: str = None,
    ) -> AdaptationSignal:
        return AdaptationSignal(
            user_id=user_id,
            type=signal_type,
            context=SignalContext(
                energy=energy,
                mode=mode,
                from_mode=from_mode,
                time_of_day=time_of_day,
                duration=duration,
                reason=reason,
            ),
            timestamp=clock.now - timedelta(minutes=minutes_ago),
        )

    return _make


@pytest.fixture
def make_batch(make_signal) -> Callable[..., List[AdaptationSignal]]:
    """Build a batch from ``{SignalType: count}``, spread over the last days."""

    def _make(counts, **kwargs) -> List[AdaptationSignal]:
        signals = []
        for signal_type, count in counts.items():
            for _ in range(count):
                signals.append(make_signal(signal_type, minutes_ago=len(signals) * 30 + 1, **kwargs))
        return signals

    return _make


@pytest.fixture
def store() -> InMemoryAdaptationStore:
    return InMemoryAdaptationStore()


@pytest.fixture
def yielding_store() -> YieldingStore:
    return YieldingStore()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def engine(store: InMemoryAdaptationStore, clock: FakeClock) -> AdaptationEngine:
    return AdaptationEngine(USER_ID, store=store, clock=clock)


@pytest.fixture(scope="session")
def default_config_path() -> Path:
    return Path(__file__).parent.parent / "configs" / "default.yaml"


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks integration tests")
