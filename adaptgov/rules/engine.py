"""
Adjustment rules.

Five independent threshold rules, applied in order to a working copy of
the current parameters. Individual rules do not enforce bounds; one final
clamp does.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from loguru import logger

from adaptgov.parameters.deltas import ParameterDelta, diff_parameters
from adaptgov.parameters.model import (
    DEFAULT_BOUNDS,
    EnergyForecastMode,
    Parameters,
    SystemMode,
    clamp_parameters,
)
from adaptgov.signals.aggregator import AdaptationAggregate
from adaptgov.utils.config import ParameterBoundsConfig, RuleConfig


@dataclass
class AdjustmentRule:
    """A named threshold rule."""
    name: str
    trigger: str
    reason: str
    applies: Callable[[AdaptationAggregate, RuleConfig], bool]
    action: Callable[[AdaptationAggregate, Parameters, RuleConfig], Parameters]


@dataclass
class RuleOutcome:
    """Result of running the rule set once."""
    parameters: Parameters
    deltas: List[ParameterDelta] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    fired: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.deltas)

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


def most_frequent_destination(from_to: Dict[str, int]) -> Optional[SystemMode]:
    """Destination mode with the largest transition count (first seen wins ties)."""
    totals: Dict[str, int] = {}
    for transition, count in from_to.items():
        _, _, destination = transition.partition("→")
        if destination:
            totals[destination] = totals.get(destination, 0) + count

    best: Optional[str] = None
    for destination, count in totals.items():
        if best is None or count > totals[best]:
            best = destination

    if best is None:
        return None
    try:
        return SystemMode(best)
    except ValueError:
        return None


# =============================================================================
# RULE SET
# =============================================================================

def _more_flexibility(agg: AdaptationAggregate, params: Parameters, cfg: RuleConfig) -> Parameters:
    return params.with_changes(
        max_tasks=params.max_tasks + cfg.max_tasks_step,
        strictness=params.strictness - cfg.strictness_step,
    )


def _quieter_coach(agg: AdaptationAggregate, params: Parameters, cfg: RuleConfig) -> Parameters:
    return params.with_changes(
        coach_frequency=max(cfg.coach_frequency_floor, params.coach_frequency * cfg.coach_frequency_factor),
        coach_enabled=False,
    )


def _longer_sessions(agg: AdaptationAggregate, params: Parameters, cfg: RuleConfig) -> Parameters:
    return params.with_changes(
        session_buffer=params.session_buffer + cfg.session_buffer_step,
        estimation_factor=params.estimation_factor * cfg.estimation_factor_multiplier,
    )


def _realign_mode(agg: AdaptationAggregate, params: Parameters, cfg: RuleConfig) -> Parameters:
    return params.with_changes(
        default_mode=most_frequent_destination(agg.mode_overrides.from_to),
    )


def _conservative_energy(agg: AdaptationAggregate, params: Parameters, cfg: RuleConfig) -> Parameters:
    return params.with_changes(energy_forecast_mode=EnergyForecastMode.CONSERVATIVE)


RULES: List[AdjustmentRule] = [
    AdjustmentRule(
        name="too_many_forces",
        trigger="forced task ratio above threshold",
        reason="User needs more flexibility",
        applies=lambda agg, cfg: agg.forced_tasks.ratio > cfg.forced_ratio,
        action=_more_flexibility,
    ),
    AdjustmentRule(
        name="too_many_rejections",
        trigger="rejected suggestion ratio above threshold",
        reason="Coach is too intrusive",
        applies=lambda agg, cfg: agg.rejected_suggestions.ratio > cfg.rejected_ratio,
        action=_quieter_coach,
    ),
    AdjustmentRule(
        name="consistent_overruns",
        trigger="sessions overrun by more than the allowed minutes on average",
        reason="Estimates are too optimistic",
        applies=lambda agg, cfg: (
            agg.overrun_sessions.count > 0
            and agg.overrun_sessions.avg_overrun_minutes > cfg.overrun_minutes
        ),
        action=_longer_sessions,
    ),
    AdjustmentRule(
        name="mode_mismatch",
        trigger="default mode overridden too often",
        reason="Default mode is misaligned with actual use",
        applies=lambda agg, cfg: (
            agg.mode_mismatch
            and most_frequent_destination(agg.mode_overrides.from_to) is not None
        ),
        action=_realign_mode,
    ),
    AdjustmentRule(
        name="energy_prediction_off",
        trigger="energy forecasts often wrong",
        reason="Energy predictions are unreliable",
        applies=lambda agg, cfg: agg.energy_estimates_off,
        action=_conservative_energy,
    ),
]


def derive_adjustments(
    aggregate: AdaptationAggregate,
    params: Parameters,
    config: Optional[RuleConfig] = None,
    bounds: ParameterBoundsConfig = DEFAULT_BOUNDS,
) -> RuleOutcome:
    """
    Run every rule against ``params`` and diff the clamped result.

    Returns:
        RuleOutcome with the new parameters, the fields that actually
        changed and one reason per fired rule
    """
    config = config or RuleConfig()
    working = params
    fired: List[str] = []
    reasons: List[str] = []

    for rule in RULES:
        if rule.applies(aggregate, config):
            working = rule.action(aggregate, working, config)
            fired.append(rule.name)
            reasons.append(rule.reason)

    new_params = clamp_parameters(working, bounds)
    deltas = diff_parameters(params, new_params)

    for rule_name, reason in zip(fired, reasons):
        logger.info(f"Rule {rule_name} fired: {reason}")
    if fired and not deltas:
        logger.debug("Fired rules produced no change (parameters already at bounds)")

    return RuleOutcome(parameters=new_params, deltas=deltas, reasons=reasons, fired=fired)


def apply_adjustment_rules(
    aggregate: AdaptationAggregate,
    params: Parameters,
    config: Optional[RuleConfig] = None,
    bounds: ParameterBoundsConfig = DEFAULT_BOUNDS,
) -> Parameters:
    """New clamped parameters after applying every rule."""
    return derive_adjustments(aggregate, params, config, bounds).parameters
