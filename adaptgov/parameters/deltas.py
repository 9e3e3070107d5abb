"""
Typed parameter deltas.

One frozen variant per parameter, tagged by a class-level
``parameter_name``, so the old/new value types always match the field.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Type
import math

from adaptgov.exceptions import ParameterValidationError
from adaptgov.parameters.model import (
    EnergyForecastMode,
    PARAMETER_NAMES,
    Parameters,
    SystemMode,
)


@dataclass(frozen=True)
class ParameterDelta:
    """Base of the delta variants. Never instantiated directly."""
    parameter_name: ClassVar[str] = ""
    value_type: ClassVar[type] = object

    old_value: Any
    new_value: Any

    @property
    def changed(self) -> bool:
        return self.old_value != self.new_value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameter_name": self.parameter_name,
            "old_value": _plain(self.old_value),
            "new_value": _plain(self.new_value),
        }

    def describe(self) -> str:
        return f"{self.parameter_name}: {_plain(self.old_value)} -> {_plain(self.new_value)}"

    def applies_to(self, params: Parameters) -> bool:
        """True if ``old_value`` is still the current value in ``params``."""
        current = getattr(params, self.parameter_name)
        if _is_real(current) and _is_real(self.old_value):
            return math.isclose(current, self.old_value, rel_tol=1e-9, abs_tol=1e-12)
        return current == self.old_value


@dataclass(frozen=True)
class MaxTasksDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "max_tasks"
    value_type: ClassVar[type] = int
    old_value: int
    new_value: int


@dataclass(frozen=True)
class StrictnessDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "strictness"
    value_type: ClassVar[type] = float
    old_value: float
    new_value: float


@dataclass(frozen=True)
class CoachFrequencyDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "coach_frequency"
    value_type: ClassVar[type] = float
    old_value: float
    new_value: float


@dataclass(frozen=True)
class CoachEnabledDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "coach_enabled"
    value_type: ClassVar[type] = bool
    old_value: bool
    new_value: bool


@dataclass(frozen=True)
class EnergyForecastModeDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "energy_forecast_mode"
    value_type: ClassVar[type] = EnergyForecastMode
    old_value: EnergyForecastMode
    new_value: EnergyForecastMode


@dataclass(frozen=True)
class DefaultModeDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "default_mode"
    value_type: ClassVar[type] = SystemMode
    old_value: SystemMode
    new_value: SystemMode


@dataclass(frozen=True)
class SessionBufferDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "session_buffer"
    value_type: ClassVar[type] = float
    old_value: float
    new_value: float


@dataclass(frozen=True)
class EstimationFactorDelta(ParameterDelta):
    parameter_name: ClassVar[str] = "estimation_factor"
    value_type: ClassVar[type] = float
    old_value: float
    new_value: float


DELTA_TYPES: Dict[str, Type[ParameterDelta]] = {
    cls.parameter_name: cls
    for cls in (
        MaxTasksDelta,
        StrictnessDelta,
        CoachFrequencyDelta,
        CoachEnabledDelta,
        EnergyForecastModeDelta,
        DefaultModeDelta,
        SessionBufferDelta,
        EstimationFactorDelta,
    )
}


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _is_real(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def stale_deltas(deltas: List[ParameterDelta], params: Parameters) -> List[str]:
    """Names of the deltas whose ``old_value`` no longer matches ``params``."""
    return [d.parameter_name for d in deltas if not d.applies_to(params)]


def _coerce(delta_cls: Type[ParameterDelta], value: Any) -> Any:
    value_type = delta_cls.value_type
    if isinstance(value_type, type) and issubclass(value_type, Enum) and not isinstance(value, value_type):
        try:
            return value_type(value)
        except ValueError:
            raise ParameterValidationError(
                delta_cls.parameter_name, value, f"not a valid {value_type.__name__}"
            )
    return value


def make_delta(name: str, old_value: Any, new_value: Any) -> ParameterDelta:
    """Build the delta variant for ``name``, coercing enum strings."""
    delta_cls = DELTA_TYPES.get(name)
    if delta_cls is None:
        raise ParameterValidationError(name, new_value, "unknown parameter")
    return delta_cls(
        old_value=_coerce(delta_cls, old_value),
        new_value=_coerce(delta_cls, new_value),
    )


def delta_from_dict(data: Dict[str, Any]) -> ParameterDelta:
    return make_delta(data["parameter_name"], data["old_value"], data["new_value"])


def diff_parameters(old: Parameters, new: Parameters) -> List[ParameterDelta]:
    """Deltas for the fields whose value differs, in field order."""
    deltas = []
    for name in PARAMETER_NAMES:
        before, after = getattr(old, name), getattr(new, name)
        if before != after:
            deltas.append(make_delta(name, before, after))
    return deltas
