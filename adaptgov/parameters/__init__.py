"""Governed parameters, their bounds and typed deltas."""

from adaptgov.parameters.model import (
    Parameters,
    ParameterStore,
    EnergyForecastMode,
    SystemMode,
    PARAMETER_NAMES,
    DEFAULT_PARAMETERS,
    DEFAULT_BOUNDS,
    clamp_parameters,
    validate_value,
)
from adaptgov.parameters.deltas import (
    ParameterDelta,
    MaxTasksDelta,
    StrictnessDelta,
    CoachFrequencyDelta,
    CoachEnabledDelta,
    EnergyForecastModeDelta,
    DefaultModeDelta,
    SessionBufferDelta,
    EstimationFactorDelta,
    DELTA_TYPES,
    make_delta,
    delta_from_dict,
    diff_parameters,
    stale_deltas,
)

__all__ = [
    "Parameters",
    "ParameterStore",
    "EnergyForecastMode",
    "SystemMode",
    "PARAMETER_NAMES",
    "DEFAULT_PARAMETERS",
    "DEFAULT_BOUNDS",
    "clamp_parameters",
    "validate_value",
    "ParameterDelta",
    "MaxTasksDelta",
    "StrictnessDelta",
    "CoachFrequencyDelta",
    "CoachEnabledDelta",
    "EnergyForecastModeDelta",
    "DefaultModeDelta",
    "SessionBufferDelta",
    "EstimationFactorDelta",
    "DELTA_TYPES",
    "make_delta",
    "delta_from_dict",
    "diff_parameters",
    "stale_deltas",
]
