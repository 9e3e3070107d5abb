"""
Governance log.

Append-only, size-capped audit trail of every applied change. Entries are
hash-chained so the trail can prove it was not edited, including after the
oldest entries have been evicted.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import hashlib
import json
import threading
from loguru import logger

from adaptgov.governance.rollback import ChangeSource, new_adaptation_id
from adaptgov.parameters.deltas import ParameterDelta

GENESIS_HASH = "genesis"


def _chain(previous: str, entry_hash: str) -> str:
    return hashlib.sha256(f"{previous}{entry_hash}".encode()).hexdigest()[:16]


@dataclass
class GovernanceLogEntry:
    """One applied change as shown to the user."""
    id: str
    timestamp: datetime
    user_id: str
    changes: List[ParameterDelta]
    reason: str
    source: ChangeSource = ChangeSource.ADAPTATION
    prev_hash: str = GENESIS_HASH
    hash: str = ""

    def __post_init__(self):
        if not self.hash:
            self.hash = self.compute_hash()

    def compute_hash(self) -> str:
        changes = [d.to_dict() for d in self.changes]
        content = (
            f"{self.id}{self.timestamp.isoformat()}{self.user_id}"
            f"{changes}{self.reason}{self.source.value}{self.prev_hash}"
        )
        return hashlib.sha256(content.encode()).hexdigest()[:16]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "user_id": self.user_id,
            "changes": [d.to_dict() for d in self.changes],
            "reason": self.reason,
            "source": self.source.value,
            "prev_hash": self.prev_hash,
            "hash": self.hash,
        }


@dataclass
class UserPreferences:
    """Explicit user limits. A numeric value is a ceiling for that parameter."""
    user_id: str
    preferences: Dict[str, Any] = field(default_factory=dict)


class GovernanceLog:
    """
    Tamper-evident journal of applied adaptations.

    The log cannot be edited through its API; entries only get appended.
    """

    def __init__(self, max_entries: int = 500):
        self.max_entries = max_entries
        self.entries: deque = deque(maxlen=max_entries)
        self._user_preferences: Dict[str, UserPreferences] = {}
        self._lock = threading.Lock()

        # Chain hash for integrity
        self.chain_hash = GENESIS_HASH
        # Chain value just before the oldest retained entry
        self._base_hash = GENESIS_HASH

    def log_adaptation(
        self,
        user_id: str,
        changes: List[ParameterDelta],
        reason: str,
        source: ChangeSource = ChangeSource.ADAPTATION,
        entry_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> GovernanceLogEntry:
        """Append an entry and notify the user through the log."""
        with self._lock:
            entry = GovernanceLogEntry(
                id=entry_id or new_adaptation_id(),
                timestamp=timestamp or datetime.now(),
                user_id=user_id,
                changes=list(changes),
                reason=reason,
                source=source,
                prev_hash=self.chain_hash,
            )

            if len(self.entries) == self.max_entries:
                self._base_hash = _chain(self._base_hash, self.entries[0].hash)

            self.chain_hash = _chain(self.chain_hash, entry.hash)
            self.entries.append(entry)

        logger.info(f"Adaptation applied: {reason} [{', '.join(d.describe() for d in changes)}]")
        return entry

    def get_logs(self) -> List[GovernanceLogEntry]:
        with self._lock:
            return list(self.entries)

    def get_user_logs(self, user_id: str) -> List[GovernanceLogEntry]:
        return [e for e in self.get_logs() if e.user_id == user_id]

    # === USER PREFERENCES ===

    def set_user_preferences(self, user_id: str, preferences: Dict[str, Any]) -> None:
        with self._lock:
            self._user_preferences[user_id] = UserPreferences(user_id, dict(preferences))

    def get_user_preferences(self, user_id: str) -> Optional[UserPreferences]:
        with self._lock:
            return self._user_preferences.get(user_id)

    def validate_against_user_preferences(self, user_id: str, changes: List[ParameterDelta]) -> bool:
        """False if any change pushes a parameter above a user-set ceiling."""
        prefs = self.get_user_preferences(user_id)
        if prefs is None:
            return True

        for change in changes:
            ceiling = prefs.preferences.get(change.parameter_name)
            if (
                isinstance(ceiling, (int, float)) and not isinstance(ceiling, bool)
                and isinstance(change.new_value, (int, float)) and not isinstance(change.new_value, bool)
                and change.new_value > ceiling
            ):
                logger.info(
                    f"Change to {change.parameter_name} exceeds user preference "
                    f"({change.new_value} > {ceiling})"
                )
                return False
        return True

    # === TRANSPARENCY ===

    @staticmethod
    def ensure_transparency(entry: GovernanceLogEntry) -> bool:
        """An entry is transparent when it says when, what and why."""
        if not entry.timestamp or not entry.reason:
            return False
        for change in entry.changes:
            if change.old_value is None or change.new_value is None:
                return False
        return True

    def verify_integrity(self) -> Tuple[bool, str]:
        """Verify governance log integrity."""
        with self._lock:
            entries = list(self.entries)
            expected = self.chain_hash
            computed_hash = self._base_hash

        for entry in entries:
            if entry.prev_hash != computed_hash or entry.compute_hash() != entry.hash:
                return False, f"Integrity violation at entry {entry.id}"
            computed_hash = _chain(computed_hash, entry.hash)

        if computed_hash == expected:
            return True, "Integrity verified"
        return False, f"Integrity violation! Expected {expected}, got {computed_hash}"

    def self_check(self) -> Dict[str, Any]:
        """Integrity plus transparency of every retained entry."""
        intact, message = self.verify_integrity()
        opaque = [e.id for e in self.get_logs() if not self.ensure_transparency(e)]
        passed = intact and not opaque
        if not passed:
            logger.warning(f"Governance log self-check failed: {message}, opaque entries: {opaque}")
        return {
            "passed": passed,
            "integrity": message,
            "entries": len(self.entries),
            "opaque_entries": opaque,
        }

    def export_json(self) -> str:
        return json.dumps([e.to_dict() for e in self.get_logs()], indent=2)
