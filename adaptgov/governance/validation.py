"""
Validation gate and proposal lifecycle.

Decides whether a set of deltas needs explicit user consent, estimates
its qualitative impact and tracks proposals until they are resolved.
Consent is asynchronous: ``propose`` returns immediately and a later
``resolve`` call carries the user's decision.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
import threading
from loguru import logger

from adaptgov.exceptions import ProposalNotFoundError
from adaptgov.governance.rollback import new_adaptation_id
from adaptgov.parameters.deltas import ParameterDelta, delta_from_dict
from adaptgov.utils.config import ConsentConfig


class ConsentState(str, Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    PENDING = "PENDING"
    NOT_REQUIRED = "NOT_REQUIRED"


class ConsentDecision(str, Enum):
    """User answers to a consent request."""
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"
    POSTPONE = "POSTPONE"


class ImpactEffect(str, Enum):
    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"


@dataclass
class AdaptationImpact:
    """Qualitative impact estimate shown with a proposal."""
    current_behavior: str
    proposed_behavior: str
    estimated_effect: ImpactEffect
    confidence: float  # in [0.5, 0.8]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_behavior": self.current_behavior,
            "proposed_behavior": self.proposed_behavior,
            "estimated_effect": self.estimated_effect.value,
            "confidence": self.confidence,
        }


@dataclass
class ValidationResult:
    """Anomaly review of a change set. Advisory only."""
    approved: bool
    reason: str
    needs_human_review: bool
    flagged: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved": self.approved,
            "reason": self.reason,
            "needs_human_review": self.needs_human_review,
            "flagged": list(self.flagged),
        }


@dataclass
class AdaptationProposal:
    """A proposed set of parameter changes."""
    id: str
    proposed_changes: List[ParameterDelta]
    reason: str
    user_consent_required: bool
    consent_given: ConsentState
    timestamp: datetime
    impact: AdaptationImpact
    applied: bool = False
    review: Optional[ValidationResult] = None

    @property
    def is_pending(self) -> bool:
        return self.consent_given == ConsentState.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "proposed_changes": [d.to_dict() for d in self.proposed_changes],
            "reason": self.reason,
            "user_consent_required": self.user_consent_required,
            "consent_given": self.consent_given.value,
            "timestamp": self.timestamp.isoformat(),
            "impact": self.impact.to_dict(),
            "applied": self.applied,
            "review": self.review.to_dict() if self.review else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptationProposal":
        impact = data["impact"]
        review = data.get("review")
        return cls(
            id=data["id"],
            proposed_changes=[delta_from_dict(d) for d in data["proposed_changes"]],
            reason=data.get("reason", ""),
            user_consent_required=bool(data["user_consent_required"]),
            consent_given=ConsentState(data["consent_given"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            impact=AdaptationImpact(
                current_behavior=impact["current_behavior"],
                proposed_behavior=impact["proposed_behavior"],
                estimated_effect=ImpactEffect(impact["estimated_effect"]),
                confidence=impact["confidence"],
            ),
            applied=bool(data.get("applied", False)),
            review=ValidationResult(**review) if review else None,
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ValidationGate:
    """
    Consent policy and proposal store.

    Thresholds:
    - ``max_tasks`` above 5 needs consent
    - ``strictness`` below 0.4 needs consent
    - a numeric change above 50% (relative) is flagged for human review
    """

    def __init__(self, config: Optional[ConsentConfig] = None):
        self.config = config or ConsentConfig()
        self._proposals: Dict[str, AdaptationProposal] = {}
        self._lock = threading.Lock()

    # === POLICY ===

    def requires_consent(self, deltas: List[ParameterDelta]) -> bool:
        for delta in deltas:
            if delta.parameter_name == "max_tasks" and delta.new_value > self.config.max_tasks_threshold:
                return True
            if delta.parameter_name == "strictness" and delta.new_value < self.config.strictness_threshold:
                return True
        return False

    def estimate_impact(self, deltas: List[ParameterDelta]) -> AdaptationImpact:
        """Count positive and negative factors; the majority sets the effect."""
        positive = 0
        negative = 0

        for delta in deltas:
            if delta.parameter_name == "max_tasks":
                if delta.new_value > delta.old_value:
                    positive += 1  # more room to fit the day
                else:
                    negative += 1
            elif delta.parameter_name == "strictness":
                if delta.new_value > delta.old_value:
                    negative += 1  # tighter structure, more friction
                else:
                    positive += 1

        if positive > negative:
            effect = ImpactEffect.POSITIVE
        elif negative > positive:
            effect = ImpactEffect.NEGATIVE
        else:
            effect = ImpactEffect.NEUTRAL

        return AdaptationImpact(
            current_behavior=", ".join(f"{d.parameter_name}={d.to_dict()['old_value']}" for d in deltas),
            proposed_behavior=", ".join(f"{d.parameter_name}={d.to_dict()['new_value']}" for d in deltas),
            estimated_effect=effect,
            confidence=min(0.8, 0.5 + 0.1 * abs(positive - negative)),
        )

    def review(self, deltas: List[ParameterDelta]) -> ValidationResult:
        """Flag numeric changes whose relative magnitude exceeds the threshold."""
        flagged = []
        for delta in deltas:
            if _is_number(delta.old_value) and _is_number(delta.new_value):
                diff = abs(delta.new_value - delta.old_value)
                relative = diff / max(abs(delta.old_value), 0.001)
                if relative > self.config.review_relative_change:
                    flagged.append(delta.parameter_name)

        if flagged:
            logger.warning(f"Adaptation needs human review, radical change in: {flagged}")
            return ValidationResult(
                approved=False,
                reason="Anomalies detected, requires human review",
                needs_human_review=True,
                flagged=flagged,
            )
        return ValidationResult(
            approved=True,
            reason="No critical issues detected",
            needs_human_review=False,
        )

    # === LIFECYCLE ===

    def propose(
        self,
        deltas: List[ParameterDelta],
        reason: str,
        consent_required: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> AdaptationProposal:
        """Create and store a proposal. Pending when consent is required."""
        if consent_required is None:
            consent_required = self.requires_consent(deltas)

        proposal = AdaptationProposal(
            id=new_adaptation_id(),
            proposed_changes=list(deltas),
            reason=reason,
            user_consent_required=consent_required,
            consent_given=ConsentState.PENDING if consent_required else ConsentState.NOT_REQUIRED,
            timestamp=now or datetime.now(),
            impact=self.estimate_impact(deltas),
            review=self.review(deltas),
        )

        with self._lock:
            self._proposals[proposal.id] = proposal

        logger.info(f"Adaptation proposed: {proposal.id}")
        logger.info(f"  Reason: {reason}")
        logger.info(f"  Changes: {[d.describe() for d in deltas]}")
        logger.info(
            f"  Impact: {proposal.impact.estimated_effect.value} "
            f"(confidence {proposal.impact.confidence:.1f}), consent required: {consent_required}"
        )
        return proposal

    def resolve(self, proposal_id: str, decision: ConsentDecision) -> AdaptationProposal:
        """
        Record a user decision.

        ACCEPT marks the proposal accepted (the caller applies it), REJECT
        discards it from the pending set and POSTPONE leaves it pending.
        Resolving an already resolved proposal returns it unchanged.
        """
        decision = ConsentDecision(decision)
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            if proposal is None:
                raise ProposalNotFoundError(proposal_id)

            if not proposal.is_pending:
                logger.debug(f"Proposal {proposal_id} already resolved ({proposal.consent_given.value})")
                return proposal

            if decision == ConsentDecision.ACCEPT:
                proposal.consent_given = ConsentState.ACCEPT
            elif decision == ConsentDecision.REJECT:
                proposal.consent_given = ConsentState.REJECT

        logger.info(f"Adaptation proposal {proposal_id}: {decision.value}")
        return proposal

    def find_pending(self, deltas: List[ParameterDelta]) -> Optional[AdaptationProposal]:
        """A pending proposal with exactly these changes, if any."""
        with self._lock:
            for proposal in self._proposals.values():
                if proposal.is_pending and proposal.proposed_changes == list(deltas):
                    return proposal
        return None

    def supersede_pending(self) -> List[AdaptationProposal]:
        """Reject every pending proposal. Used when a newer proposal replaces them."""
        with self._lock:
            superseded = [p for p in self._proposals.values() if p.is_pending]
            for proposal in superseded:
                proposal.consent_given = ConsentState.REJECT

        for proposal in superseded:
            logger.info(f"Adaptation proposal {proposal.id} superseded")
        return superseded

    def restore(self, proposal: AdaptationProposal) -> None:
        """Re-register a persisted proposal, e.g. after a restart."""
        with self._lock:
            self._proposals[proposal.id] = proposal

    def mark_applied(self, proposal_id: str) -> None:
        with self._lock:
            proposal = self._proposals.get(proposal_id)
            if proposal is not None:
                proposal.applied = True

    def get(self, proposal_id: str) -> Optional[AdaptationProposal]:
        with self._lock:
            return self._proposals.get(proposal_id)

    def pending(self) -> List[AdaptationProposal]:
        with self._lock:
            return [p for p in self._proposals.values() if p.is_pending]

    def all(self) -> List[AdaptationProposal]:
        with self._lock:
            return list(self._proposals.values())

    def cleanup_old_proposals(self, max_age_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """Forget resolved proposals older than ``max_age_days``. Pending ones are kept."""
        days = max_age_days if max_age_days is not None else self.config.proposal_max_age_days
        cutoff = (now or datetime.now()) - timedelta(days=days)
        with self._lock:
            stale = [
                pid for pid, p in self._proposals.items()
                if not p.is_pending and p.timestamp < cutoff
            ]
            for pid in stale:
                del self._proposals[pid]

        if stale:
            logger.debug(f"Removed {len(stale)} old proposal(s)")
        return len(stale)
