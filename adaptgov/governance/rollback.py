"""
Adaptation history and rollback.

Every applied change is recorded. Rolling one back inverts its deltas,
validates each restored value, applies them through the clamp and records
the reversal as a new change. The original record only gains
``reverted=True``.
"""

from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
import json
import threading
import uuid
from loguru import logger

from adaptgov.exceptions import (
    AdaptationAlreadyRevertedError,
    AdaptationNotFoundError,
)
from adaptgov.parameters.deltas import ParameterDelta, delta_from_dict
from adaptgov.parameters.model import (
    DEFAULT_BOUNDS,
    Parameters,
    clamp_parameters,
    validate_value,
)
from adaptgov.utils.config import ParameterBoundsConfig


class HistoryConsent(str, Enum):
    """Consent recorded with an applied change."""
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    POSTPONED = "POSTPONED"
    NOT_REQUIRED = "NOT_REQUIRED"


class ChangeSource(str, Enum):
    """What produced a history record."""
    ADAPTATION = "ADAPTATION"
    ROLLBACK = "ROLLBACK"
    RESET = "RESET"
    CONSERVATIVE = "CONSERVATIVE"


def new_adaptation_id() -> str:
    return "adapt_" + uuid.uuid4().hex[:12]


@dataclass
class AdaptationHistory:
    """Audit record of one applied parameter change."""
    id: str
    timestamp: datetime
    parameter_changes: List[ParameterDelta]
    quality_before: Optional[float] = None
    quality_after: Optional[float] = None
    user_consent: HistoryConsent = HistoryConsent.NOT_REQUIRED
    reverted: bool = False
    source: ChangeSource = ChangeSource.ADAPTATION
    reverts: Optional[str] = None  # id of the record this one undoes
    reason: str = ""

    def copy(self) -> "AdaptationHistory":
        return replace(self, parameter_changes=list(self.parameter_changes))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "parameter_changes": [d.to_dict() for d in self.parameter_changes],
            "quality_before": self.quality_before,
            "quality_after": self.quality_after,
            "user_consent": self.user_consent.value,
            "reverted": self.reverted,
            "source": self.source.value,
            "reverts": self.reverts,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AdaptationHistory":
        return cls(
            id=data["id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            parameter_changes=[delta_from_dict(d) for d in data.get("parameter_changes", [])],
            quality_before=data.get("quality_before"),
            quality_after=data.get("quality_after"),
            user_consent=HistoryConsent(data.get("user_consent", HistoryConsent.NOT_REQUIRED.value)),
            reverted=bool(data.get("reverted", False)),
            source=ChangeSource(data.get("source", ChangeSource.ADAPTATION.value)),
            reverts=data.get("reverts"),
            reason=data.get("reason", ""),
        )


# =============================================================================
# DELTA INVERSION
# =============================================================================

def invert_delta(delta: ParameterDelta) -> ParameterDelta:
    """Swap old and new value, keeping the variant."""
    return replace(delta, old_value=delta.new_value, new_value=delta.old_value)


def invert_deltas(deltas: Iterable[ParameterDelta]) -> List[ParameterDelta]:
    """Invert a change list. Reversed so later changes are undone first."""
    return [invert_delta(d) for d in reversed(list(deltas))]


# =============================================================================
# ROLLBACK MANAGER
# =============================================================================

class RollbackManager:
    """
    Stores applied-adaptation history and reverts recorded changes.

    History is append-only and capped; readers get copies.
    """

    def __init__(
        self,
        max_entries: int = 500,
        bounds: ParameterBoundsConfig = DEFAULT_BOUNDS,
    ):
        self.max_entries = max_entries
        self.bounds = bounds
        self._entries: deque = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def record(self, entry: AdaptationHistory) -> None:
        with self._lock:
            self._entries.append(entry.copy())

    def load(self, entries: Iterable[AdaptationHistory]) -> None:
        """Replace the in-memory history, e.g. after a restart."""
        with self._lock:
            self._entries = deque((e.copy() for e in entries), maxlen=self.max_entries)

    def _find(self, adaptation_id: str) -> Optional[AdaptationHistory]:
        for entry in self._entries:
            if entry.id == adaptation_id:
                return entry
        return None

    def get(self, adaptation_id: str) -> Optional[AdaptationHistory]:
        with self._lock:
            entry = self._find(adaptation_id)
            return entry.copy() if entry else None

    def history(self) -> List[AdaptationHistory]:
        with self._lock:
            return [e.copy() for e in self._entries]

    def rollbackable(self) -> List[AdaptationHistory]:
        """Records that have not been reverted yet, oldest first."""
        return [e for e in self.history() if not e.reverted]

    def latest(self, rollbackable_only: bool = False) -> Optional[AdaptationHistory]:
        entries = self.rollbackable() if rollbackable_only else self.history()
        return entries[-1] if entries else None

    def recent_adaptations(self, since: datetime) -> List[AdaptationHistory]:
        """Rule-driven adaptations applied at or after ``since``."""
        return [
            e for e in self.history()
            if e.source == ChangeSource.ADAPTATION and e.timestamp >= since
        ]

    def mark_reverted(self, adaptation_id: str) -> bool:
        with self._lock:
            entry = self._find(adaptation_id)
            if entry is None:
                return False
            entry.reverted = True
            return True

    def export_json(self) -> str:
        return json.dumps([e.to_dict() for e in self.history()], indent=2)

    def rollback(
        self,
        adaptation_id: str,
        params: Parameters,
        now: Optional[datetime] = None,
        quality_before: Optional[float] = None,
    ) -> Tuple[Parameters, AdaptationHistory]:
        """
        Revert one recorded change.

        Args:
            adaptation_id: Id of the history record to revert
            params: Current parameters
            now: Timestamp of the reversal record
            quality_before: Optional quality score before the reversal

        Returns:
            (new parameters, reversal record)

        Raises:
            AdaptationNotFoundError: no record with that id
            AdaptationAlreadyRevertedError: the record was already reverted
            ParameterValidationError: a restored value is invalid; nothing
                is applied

        When the history is full, appending the reversal record evicts the
        oldest record. That can be the reverted original itself, after which
        its id is no longer found.
        """
        with self._lock:
            original = self._find(adaptation_id)
            if original is None:
                raise AdaptationNotFoundError(adaptation_id)
            if original.reverted:
                raise AdaptationAlreadyRevertedError(adaptation_id)

            inverted = invert_deltas(original.parameter_changes)

            # Validate everything before touching any state
            for delta in inverted:
                validate_value(delta.parameter_name, delta.new_value, self.bounds)

            changes = {d.parameter_name: d.new_value for d in inverted}
            new_params = clamp_parameters(params.with_changes(**changes), self.bounds)

            reversal = AdaptationHistory(
                id=new_adaptation_id(),
                timestamp=now or datetime.now(),
                parameter_changes=inverted,
                quality_before=quality_before,
                user_consent=HistoryConsent.ACCEPTED,
                source=ChangeSource.ROLLBACK,
                reverts=original.id,
                reason=f"Rollback of {original.id}",
            )
            original.reverted = True
            # A full history evicts its oldest record, possibly the original
            self._entries.append(reversal)

        logger.warning(
            f"ROLLBACK: {adaptation_id} reverted "
            f"({', '.join(d.describe() for d in inverted) or 'no changes'})"
        )
        return new_params, reversal.copy()
