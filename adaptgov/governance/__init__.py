"""
Adaptation governance.

Gates that can hold a cycle back, the consent gate and proposal lifecycle,
history with rollback, and the tamper-evident governance log.
"""

from adaptgov.governance.gates import GovernanceMonitor, GateDecision, GateName
from adaptgov.governance.validation import (
    ValidationGate,
    AdaptationProposal,
    AdaptationImpact,
    ValidationResult,
    ConsentState,
    ConsentDecision,
    ImpactEffect,
)
from adaptgov.governance.rollback import (
    RollbackManager,
    AdaptationHistory,
    HistoryConsent,
    ChangeSource,
    invert_delta,
    invert_deltas,
    new_adaptation_id,
)
from adaptgov.governance.audit import GovernanceLog, GovernanceLogEntry, UserPreferences

__all__ = [
    "GovernanceMonitor",
    "GateDecision",
    "GateName",
    "ValidationGate",
    "AdaptationProposal",
    "AdaptationImpact",
    "ValidationResult",
    "ConsentState",
    "ConsentDecision",
    "ImpactEffect",
    "RollbackManager",
    "AdaptationHistory",
    "HistoryConsent",
    "ChangeSource",
    "invert_delta",
    "invert_deltas",
    "new_adaptation_id",
    "GovernanceLog",
    "GovernanceLogEntry",
    "UserPreferences",
]
