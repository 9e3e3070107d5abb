"""
Exception hierarchy for the adaptation engine.

Gated skips are not errors: a cycle that is held back by a governance gate
returns ``None``. Exceptions are raised only when a caller asks for something
that cannot be done (unknown ids, invalid values, illegal state changes).
"""

from typing import Any, Dict, List, Optional


class AdaptationError(Exception):
    """Base class for every adaptation failure."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logs and UI layers."""
        return {
            "error": {
                "code": self.__class__.__name__,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# VALIDATION
# =============================================================================

class ParameterValidationError(AdaptationError):
    """A parameter value has the wrong type or lies outside its range."""

    def __init__(self, parameter: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid value for {parameter}: {reason}",
            details={
                "parameter": parameter,
                "value": repr(value),
                "reason": reason,
            },
        )
        self.parameter = parameter
        self.value = value


# =============================================================================
# LOOKUP
# =============================================================================

class AdaptationNotFoundError(AdaptationError):
    """No history record carries the requested id."""

    def __init__(self, adaptation_id: str):
        super().__init__(
            message="Adaptation not found",
            details={"adaptation_id": adaptation_id},
        )
        self.adaptation_id = adaptation_id


class AdaptationAlreadyRevertedError(AdaptationError):
    """The history record was already rolled back."""

    def __init__(self, adaptation_id: str):
        super().__init__(
            message="Adaptation has already been reverted",
            details={"adaptation_id": adaptation_id},
        )
        self.adaptation_id = adaptation_id


class ProposalNotFoundError(AdaptationError):
    """No proposal carries the requested id."""

    def __init__(self, proposal_id: str):
        super().__init__(
            message="Proposal not found",
            details={"proposal_id": proposal_id},
        )
        self.proposal_id = proposal_id


class StaleProposalError(AdaptationError):
    """The parameters changed after the proposal was made."""

    def __init__(self, proposal_id: str, parameters: List[str]):
        super().__init__(
            message="Proposal no longer matches the current parameters",
            details={"proposal_id": proposal_id, "parameters": list(parameters)},
        )
        self.proposal_id = proposal_id
        self.parameters = list(parameters)


# =============================================================================
# STATE MACHINE
# =============================================================================

class InvalidTransitionError(AdaptationError):
    """The weekly cycle attempted a transition that is not allowed."""

    def __init__(self, current_state: str, target_state: str):
        super().__init__(
            message=f"Illegal cycle transition {current_state} -> {target_state}",
            details={
                "current_state": current_state,
                "target_state": target_state,
            },
        )
