"""Threshold rules that turn aggregates into parameter adjustments."""

from adaptgov.rules.engine import (
    AdjustmentRule,
    RuleOutcome,
    RULES,
    apply_adjustment_rules,
    derive_adjustments,
    most_frequent_destination,
)

__all__ = [
    "AdjustmentRule",
    "RuleOutcome",
    "RULES",
    "apply_adjustment_rules",
    "derive_adjustments",
    "most_frequent_destination",
]
