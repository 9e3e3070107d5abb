"""Behavioral signal types."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from adaptgov.parameters.model import SystemMode


class SignalType(str, Enum):
    """Kinds of user interaction that feed adaptation."""
    FORCED_TASK = "FORCED_TASK"
    REJECTED_SUGGESTION = "REJECTED_SUGGESTION"
    SESSION_OVERRUN = "SESSION_OVERRUN"
    MODE_OVERRIDE = "MODE_OVERRIDE"
    ENERGY_MISMATCH = "ENERGY_MISMATCH"


class EnergyLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class TaskType(str, Enum):
    ROUTINE = "ROUTINE"
    CREATIVE = "CREATIVE"
    ANALYTICAL = "ANALYTICAL"
    COMMUNICATION = "COMMUNICATION"
    LEARNING = "LEARNING"


class TimeOfDay(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
    EVENING = "EVENING"


@dataclass(frozen=True)
class SignalContext:
    """Context captured with a signal."""
    energy: EnergyLevel = EnergyLevel.MEDIUM
    task_type: TaskType = TaskType.ROUTINE
    mode: SystemMode = SystemMode.STRICT
    from_mode: Optional[SystemMode] = None  # MODE_OVERRIDE only
    session_id: Optional[str] = None
    task_id: Optional[str] = None
    time_of_day: Optional[TimeOfDay] = None
    day_of_week: Optional[int] = None  # 0 = Monday
    duration: Optional[float] = None  # overrun minutes
    reason: Optional[str] = None  # why a suggestion was rejected

    def to_dict(self) -> Dict[str, Any]:
        return {
            "energy": self.energy.value,
            "task_type": self.task_type.value,
            "mode": self.mode.value,
            "from_mode": self.from_mode.value if self.from_mode else None,
            "session_id": self.session_id,
            "task_id": self.task_id,
            "time_of_day": self.time_of_day.value if self.time_of_day else None,
            "day_of_week": self.day_of_week,
            "duration": self.duration,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignalContext":
        return cls(
            energy=EnergyLevel(data.get("energy", EnergyLevel.MEDIUM.value)),
            task_type=TaskType(data.get("task_type", TaskType.ROUTINE.value)),
            mode=SystemMode(data.get("mode", SystemMode.STRICT.value)),
            from_mode=SystemMode(data["from_mode"]) if data.get("from_mode") else None,
            session_id=data.get("session_id"),
            task_id=data.get("task_id"),
            time_of_day=TimeOfDay(data["time_of_day"]) if data.get("time_of_day") else None,
            day_of_week=data.get("day_of_week"),
            duration=data.get("duration"),
            reason=data.get("reason"),
        )


@dataclass(frozen=True)
class AdaptationSignal:
    """A single observed interaction. Never mutated after creation."""
    user_id: str
    type: SignalType
    context: SignalContext = field(default_factory=SignalContext)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "type": self.type.value,
            "context": self.context.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptationSignal":
        return cls(
            user_id=data["user_id"],
            type=SignalType(data["type"]),
            context=SignalContext.from_dict(data.get("context", {})),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
