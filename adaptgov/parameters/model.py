"""
Governed parameters and the clamp that keeps them in bounds.

Every path that produces a new ``Parameters`` value goes through
``clamp_parameters`` before the value is observed or persisted.
"""

from dataclasses import dataclass, asdict, fields, replace
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Type
import math
import threading
from loguru import logger

from adaptgov.exceptions import ParameterValidationError
from adaptgov.utils.config import Bound, ParameterBoundsConfig


# =============================================================================
# ENUMS
# =============================================================================

class EnergyForecastMode(str, Enum):
    """How optimistic the energy forecast is."""
    ACCURATE = "ACCURATE"
    CONSERVATIVE = "CONSERVATIVE"


class SystemMode(str, Enum):
    """Operating modes of the task assistant."""
    STRICT = "STRICT"
    ASSISTED = "ASSISTED"
    FLEXIBLE = "FLEXIBLE"
    COACH = "COACH"
    RESTRICTED = "RESTRICTED"


# =============================================================================
# PARAMETERS
# =============================================================================

@dataclass(frozen=True)
class Parameters:
    """The behavioral parameters consumed by the task-selection engine."""
    max_tasks: int = 5
    strictness: float = 0.6
    coach_frequency: float = 1 / 30  # nudges per minute
    coach_enabled: bool = True
    energy_forecast_mode: EnergyForecastMode = EnergyForecastMode.ACCURATE
    default_mode: SystemMode = SystemMode.STRICT
    session_buffer: float = 10.0  # minutes
    estimation_factor: float = 1.0

    def with_changes(self, **changes: Any) -> "Parameters":
        """Copy with some fields replaced. The result is NOT clamped."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["energy_forecast_mode"] = self.energy_forecast_mode.value
        data["default_mode"] = self.default_mode.value
        return data

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        bounds: Optional[ParameterBoundsConfig] = None,
    ) -> "Parameters":
        """Build clamped parameters from a persisted dict. Unknown keys are ignored."""
        known = {name: data[name] for name in PARAMETER_NAMES if name in data}
        return clamp_parameters(cls(**known), bounds or DEFAULT_BOUNDS)


PARAMETER_NAMES = tuple(f.name for f in fields(Parameters))
DEFAULT_PARAMETERS = Parameters()
DEFAULT_BOUNDS = ParameterBoundsConfig()

NUMERIC_FIELDS = (
    "max_tasks",
    "strictness",
    "coach_frequency",
    "session_buffer",
    "estimation_factor",
)
ENUM_FIELDS: Dict[str, Type[Enum]] = {
    "energy_forecast_mode": EnergyForecastMode,
    "default_mode": SystemMode,
}


# =============================================================================
# CLAMP
# =============================================================================

def _lower(bound: Bound) -> float:
    # Rates, durations and counts are never negative
    return bound.minimum if bound.minimum is not None else 0.0


def _clamp_number(value: Any, default: float, bound: Bound) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float(default)

    if math.isnan(number):
        number = float(default)

    return min(max(number, _lower(bound)), bound.maximum)


def _coerce_enum(value: Any, enum_cls: Type[Enum], default: Enum) -> Enum:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        pass
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().upper())
        except ValueError:
            pass
    return default


_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


def _coerce_bool(value: Any, default: bool) -> bool:
    # Persisted settings may carry booleans as strings
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        return default
    return bool(value)


def clamp_parameters(
    params: Parameters,
    bounds: ParameterBoundsConfig = DEFAULT_BOUNDS,
) -> Parameters:
    """
    Bring every field of ``params`` inside its configured range.

    Pure, idempotent and total: NaN falls back to the field default,
    +inf lands on the maximum and -inf on the minimum. Enum fields accept
    their string values and fall back to the default on anything else;
    ``coach_enabled`` accepts "true"/"false" strings.
    """
    defaults = DEFAULT_PARAMETERS

    max_tasks = _clamp_number(params.max_tasks, defaults.max_tasks, bounds.max_tasks)
    max_tasks = int(round(max_tasks))

    return Parameters(
        max_tasks=max_tasks,
        strictness=_clamp_number(params.strictness, defaults.strictness, bounds.strictness),
        coach_frequency=_clamp_number(
            params.coach_frequency, defaults.coach_frequency, bounds.coach_frequency
        ),
        coach_enabled=_coerce_bool(params.coach_enabled, defaults.coach_enabled),
        energy_forecast_mode=_coerce_enum(
            params.energy_forecast_mode, EnergyForecastMode, defaults.energy_forecast_mode
        ),
        default_mode=_coerce_enum(params.default_mode, SystemMode, defaults.default_mode),
        session_buffer=_clamp_number(
            params.session_buffer, defaults.session_buffer, bounds.session_buffer
        ),
        estimation_factor=_clamp_number(
            params.estimation_factor, defaults.estimation_factor, bounds.estimation_factor
        ),
    )


def validate_value(
    name: str,
    value: Any,
    bounds: ParameterBoundsConfig = DEFAULT_BOUNDS,
) -> None:
    """
    Check one value against the type and range of its field.

    Raises:
        ParameterValidationError: on an unknown field, a wrong type or a
            value outside the configured range
    """
    if name not in PARAMETER_NAMES:
        raise ParameterValidationError(name, value, "unknown parameter")

    if name == "coach_enabled":
        if not isinstance(value, bool):
            raise ParameterValidationError(name, value, "expected a boolean")
        return

    if name in ENUM_FIELDS:
        enum_cls = ENUM_FIELDS[name]
        if _coerce_enum(value, enum_cls, None) is None:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ParameterValidationError(name, value, f"expected one of {allowed}")
        return

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ParameterValidationError(name, value, "expected a number")
    if not math.isfinite(value):
        raise ParameterValidationError(name, value, "expected a finite number")
    if name == "max_tasks" and float(value) != int(value):
        raise ParameterValidationError(name, value, "expected an integer")

    bound: Bound = getattr(bounds, name)
    low = _lower(bound)
    if value < low or value > bound.maximum:
        raise ParameterValidationError(
            name, value, f"outside range [{low}, {bound.maximum}]"
        )


# =============================================================================
# PARAMETER STORE
# =============================================================================

class ParameterStore:
    """
    Single owner of the current parameter value.

    Values handed out are immutable, so callers always get a safe copy.
    """

    def __init__(
        self,
        initial: Optional[Parameters] = None,
        bounds: ParameterBoundsConfig = DEFAULT_BOUNDS,
    ):
        self.bounds = bounds
        self._lock = threading.Lock()
        self._params = clamp_parameters(initial or DEFAULT_PARAMETERS, bounds)

    def get(self) -> Parameters:
        with self._lock:
            return self._params

    def set(self, params: Parameters) -> Parameters:
        """Clamp and store ``params``. Returns the stored value."""
        clamped = clamp_parameters(params, self.bounds)
        with self._lock:
            self._params = clamped
        return clamped

    def apply_deltas(self, deltas: Iterable[Any]) -> Parameters:
        """Set every delta's new value on the current parameters, then clamp."""
        with self._lock:
            changes = {d.parameter_name: d.new_value for d in deltas}
            self._params = clamp_parameters(
                self._params.with_changes(**changes), self.bounds
            )
            params = self._params

        if changes:
            logger.debug(f"Applied {len(changes)} parameter change(s): {sorted(changes)}")
        return params

    def reset(self) -> Parameters:
        return self.set(DEFAULT_PARAMETERS)
