"""
Adaptation engine.

One instance per user owns the parameters, the signal log, the history
and the monitors. The weekly cycle runs as an explicit state machine:

    IDLE -> CHECK_OBSERVATION_WINDOW -> CHECK_ABUSE -> CHECK_TRANSPARENCY_BUDGET
         -> AGGREGATE -> DERIVE_RULES -> COMPUTE_DELTA -> VALIDATE
         -> PENDING_CONSENT | APPLY -> RECORD_HISTORY -> TRACK_DRIFT -> IDLE

Consent is two calls: ``run_weekly_adaptation`` returns a pending proposal
right away and ``resolve_consent`` applies or discards it later. At most
one proposal waits at a time: a cycle that derives the same changes
returns it again, a cycle that derives different ones supersedes it. A
proposal is only applied while the parameters still hold its old values.
Everything that changes parameters runs under one per-engine lock.
Persistence failures are logged and never abort the in-memory operation.
"""

from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Union
import asyncio
from loguru import logger

from adaptgov.exceptions import (
    AdaptationError,
    InvalidTransitionError,
    ProposalNotFoundError,
    StaleProposalError,
)
from adaptgov.governance.audit import GovernanceLog
from adaptgov.governance.gates import GovernanceMonitor
from adaptgov.governance.rollback import (
    AdaptationHistory,
    ChangeSource,
    HistoryConsent,
    RollbackManager,
    new_adaptation_id,
)
from adaptgov.governance.validation import (
    AdaptationProposal,
    ConsentDecision,
    ConsentState,
    ValidationGate,
)
from adaptgov.monitoring.drift_detector import DriftMonitor, DriftReport
from adaptgov.parameters.deltas import diff_parameters, stale_deltas
from adaptgov.parameters.model import (
    DEFAULT_PARAMETERS,
    ParameterStore,
    Parameters,
    SystemMode,
    clamp_parameters,
    validate_value,
)
from adaptgov.persistence.base import AdaptationStore, to_millis
from adaptgov.rules.engine import derive_adjustments
from adaptgov.signals.aggregator import aggregate_week
from adaptgov.signals.log import SignalLog
from adaptgov.signals.types import AdaptationSignal
from adaptgov.utils.config import (
    GovernanceConfig,
    governance_config_from,
    load_config,
    load_env_settings,
)

PARAMS_KEY = "adaptation_parameters"
PENDING_KEY = "adaptation_pending_proposals"

TRANSPARENCY_ACTIONS = ("reset_adaptation", "rollback_latest")


class CycleState(str, Enum):
    IDLE = "IDLE"
    CHECK_OBSERVATION_WINDOW = "CHECK_OBSERVATION_WINDOW"
    CHECK_ABUSE = "CHECK_ABUSE"
    CHECK_TRANSPARENCY_BUDGET = "CHECK_TRANSPARENCY_BUDGET"
    AGGREGATE = "AGGREGATE"
    DERIVE_RULES = "DERIVE_RULES"
    COMPUTE_DELTA = "COMPUTE_DELTA"
    VALIDATE = "VALIDATE"
    PENDING_CONSENT = "PENDING_CONSENT"
    APPLY = "APPLY"
    RECORD_HISTORY = "RECORD_HISTORY"
    TRACK_DRIFT = "TRACK_DRIFT"


# IDLE and PENDING_CONSENT are the resting states; PENDING_CONSENT means
# at least one proposal still waits for a decision.
_REST = {CycleState.IDLE, CycleState.PENDING_CONSENT}

TRANSITIONS: Dict[CycleState, Set[CycleState]] = {
    CycleState.IDLE: {CycleState.CHECK_OBSERVATION_WINDOW, CycleState.APPLY, CycleState.PENDING_CONSENT},
    CycleState.PENDING_CONSENT: {
        CycleState.CHECK_OBSERVATION_WINDOW,
        CycleState.APPLY,
        *_REST,
    },
    CycleState.CHECK_OBSERVATION_WINDOW: {CycleState.CHECK_ABUSE, *_REST},
    CycleState.CHECK_ABUSE: {CycleState.CHECK_TRANSPARENCY_BUDGET, *_REST},
    CycleState.CHECK_TRANSPARENCY_BUDGET: {CycleState.AGGREGATE, *_REST},
    CycleState.AGGREGATE: {CycleState.DERIVE_RULES},
    CycleState.DERIVE_RULES: {CycleState.COMPUTE_DELTA},
    CycleState.COMPUTE_DELTA: {CycleState.VALIDATE, *_REST},
    CycleState.VALIDATE: {CycleState.APPLY, *_REST},
    CycleState.APPLY: {CycleState.RECORD_HISTORY},
    CycleState.RECORD_HISTORY: {CycleState.TRACK_DRIFT},
    CycleState.TRACK_DRIFT: set(_REST),
}


class AdaptationEngine:
    """
    Adaptive parameter governance for a single user.

    Args:
        user_id: Owner of every signal and parameter
        store: Optional persistence collaborator
        config: Governance configuration (defaults when omitted)
        initial_params: Starting parameters (clamped)
        clock: Time source, ``datetime.now`` by default
        quality_scorer: Optional scorer of a parameter set, recorded with
            each applied change as quality before/after
    """

    def __init__(
        self,
        user_id: str,
        store: Optional[AdaptationStore] = None,
        config: Optional[GovernanceConfig] = None,
        initial_params: Optional[Parameters] = None,
        clock: Optional[Callable[[], datetime]] = None,
        quality_scorer: Optional[Callable[[Parameters], float]] = None,
    ):
        self.user_id = user_id
        self.store = store
        self.config = config or GovernanceConfig()
        self.clock = clock or datetime.now
        self.quality_scorer = quality_scorer

        bounds = self.config.bounds
        self.parameters = ParameterStore(initial_params, bounds)
        self.signal_log = SignalLog(self.config.signal_log.max_size)
        self.monitor = GovernanceMonitor(self.config.gates)
        self.validation = ValidationGate(self.config.consent)
        self.drift = DriftMonitor(self.config.drift)
        self.rollback_manager = RollbackManager(self.config.history.max_entries, bounds)
        self.governance_log = GovernanceLog(self.config.history.governance_log_size)

        self._lock = asyncio.Lock()
        self._state = CycleState.IDLE
        self.last_trace: List[CycleState] = [CycleState.IDLE]
        self.last_skip_reason: Optional[str] = None

        self.drift.track(self.parameters.get(), self.clock())
        logger.info(f"Adaptation engine ready for user {user_id}")

    @classmethod
    def from_config(
        cls,
        user_id: str,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> "AdaptationEngine":
        """
        Build an engine from a YAML configuration file.

        Without ``config_path`` the file named by ``ADAPTGOV_CONFIG_PATH``
        is used (``configs/default.yaml`` when unset).
        """
        if config_path is None:
            config_path = load_env_settings().config_path
        config = governance_config_from(load_config(config_path, overrides))
        return cls(user_id, config=config, **kwargs)

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    @property
    def state(self) -> CycleState:
        return self._state

    def _transition(self, target: CycleState) -> None:
        if target not in TRANSITIONS.get(self._state, set()):
            raise InvalidTransitionError(self._state.value, target.value)
        self._state = target
        self.last_trace.append(target)

    def _settle(self) -> None:
        """Move to the resting state that matches the pending proposals."""
        target = CycleState.PENDING_CONSENT if self.validation.pending() else CycleState.IDLE
        if target != self._state:
            self._transition(target)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _persist(self, operation: str, *args: Any) -> bool:
        if self.store is None:
            return True
        try:
            await getattr(self.store, operation)(*args)
            return True
        except Exception as e:
            logger.error(f"Persistence failure in {operation}: {e}")
            return False

    async def _persist_parameters(self, params: Parameters) -> None:
        await self._persist("set_setting", PARAMS_KEY, params.to_dict())

    async def _persist_pending(self) -> None:
        await self._persist(
            "set_setting", PENDING_KEY, [p.to_dict() for p in self.validation.pending()]
        )

    def _quality(self, params: Parameters) -> Optional[float]:
        if self.quality_scorer is None:
            return None
        return float(self.quality_scorer(params))

    # =========================================================================
    # SIGNALS
    # =========================================================================

    async def record_signal(self, signal: AdaptationSignal) -> None:
        """Fire-and-forget ingestion. Never takes the cycle lock."""
        if signal.user_id != self.user_id:
            logger.warning(
                f"Dropping signal for user {signal.user_id} sent to engine of {self.user_id}"
            )
            return

        self.signal_log.record(signal)

        record = signal.to_dict()
        record["timestamp_ms"] = to_millis(signal.timestamp)
        await self._persist("add_adaptation_signal", record)

    async def prune_signals(self) -> int:
        """Export then drop signals beyond the age horizon. Returns the in-memory count removed."""
        async with self._lock:
            now = self.clock()
            cfg = self.config.signal_log
            max_age = timedelta(days=cfg.max_age_days)
            cutoff_ms = to_millis(now - max_age)

            if cfg.export_before_prune and self.store is not None:
                try:
                    expiring = await self.store.get_adaptation_signals_by_period(0, cutoff_ms - 1)
                except Exception as e:
                    logger.error(f"Persistence failure in get_adaptation_signals_by_period: {e}")
                    expiring = []
                if expiring:
                    await self._persist(
                        "save_snapshot",
                        f"signals_before_prune_{now:%Y%m%d%H%M%S}",
                        {"exported_at": now.isoformat(), "user_id": self.user_id, "signals": expiring},
                    )

            removed = self.signal_log.prune(max_age, now)
            await self._persist(
                "prune_adaptation_signals",
                int(max_age.total_seconds() * 1000),
                cfg.max_size,
                to_millis(now),
            )
            self.validation.cleanup_old_proposals(now=now)
            return removed

    # =========================================================================
    # WEEKLY CYCLE
    # =========================================================================

    def _skip(self, reason: str) -> None:
        self.last_skip_reason = reason
        self._settle()

    async def run_weekly_adaptation(self) -> Optional[AdaptationProposal]:
        """
        Run one adaptation cycle.

        Returns:
            None when a gate holds the cycle back or no parameter would
            change, otherwise the proposal (pending or already applied)
        """
        async with self._lock:
            if self._state not in _REST:
                raise InvalidTransitionError(self._state.value, CycleState.CHECK_OBSERVATION_WINDOW.value)

            self.last_trace = [self._state]
            self.last_skip_reason = None
            try:
                return await self._run_cycle()
            except Exception:
                self._state = CycleState.IDLE
                self.last_trace.append(CycleState.IDLE)
                raise

    async def _run_cycle(self) -> Optional[AdaptationProposal]:
        now = self.clock()
        signals = self.signal_log.snapshot()
        history = self.rollback_manager.history()

        # === GATES ===
        self._transition(CycleState.CHECK_OBSERVATION_WINDOW)
        decision = self.monitor.check_observation_window(signals)
        if decision is None:
            self._transition(CycleState.CHECK_ABUSE)
            decision = self.monitor.check_abuse(signals, now)
        if decision is None:
            self._transition(CycleState.CHECK_TRANSPARENCY_BUDGET)
            decision = self.monitor.check_transparency_budget(history, now)
        if decision is not None:
            logger.info(f"Adaptation skipped ({decision.gate.value}): {decision.reason}")
            self._skip(decision.reason)
            return None

        # === RULES ===
        self._transition(CycleState.AGGREGATE)
        aggregate = aggregate_week(signals, now, self.config.aggregation)

        self._transition(CycleState.DERIVE_RULES)
        current = self.parameters.get()
        outcome = derive_adjustments(aggregate, current, self.config.rules, self.config.bounds)

        self._transition(CycleState.COMPUTE_DELTA)
        if not outcome.has_changes:
            logger.info("Adaptation cycle complete: no parameter change")
            self.drift.track(current, now)
            self._skip("No parameter change")
            return None

        # === CONSENT ===
        self._transition(CycleState.VALIDATE)
        consent_required = self.validation.requires_consent(outcome.deltas)
        if not self.governance_log.validate_against_user_preferences(self.user_id, outcome.deltas):
            consent_required = True

        if consent_required:
            existing = self.validation.find_pending(outcome.deltas)
            if existing is not None:
                logger.info(f"Proposal {existing.id} still waits for consent")
                self.drift.track(current, now)
                self._settle()
                return existing

        # A new proposal replaces whatever still waits for a decision
        superseded = self.validation.supersede_pending()
        proposal = self.validation.propose(outcome.deltas, outcome.reason, consent_required, now)

        if consent_required:
            self.drift.track(current, now)
            self._transition(CycleState.PENDING_CONSENT)
            await self._persist_pending()
            return proposal

        await self._commit(proposal, HistoryConsent.NOT_REQUIRED)
        if superseded:
            await self._persist_pending()
        return proposal

    async def _commit(self, proposal: AdaptationProposal, consent: HistoryConsent) -> Parameters:
        """Apply, record and track. Caller holds the lock."""
        if proposal.applied:
            logger.debug(f"Proposal {proposal.id} already applied")
            return self.parameters.get()

        # Deltas carry absolute values made against one parameter state
        stale = stale_deltas(proposal.proposed_changes, self.parameters.get())
        if stale:
            raise StaleProposalError(proposal.id, stale)

        # All-or-nothing: nothing is applied if any value is invalid
        for delta in proposal.proposed_changes:
            validate_value(delta.parameter_name, delta.new_value, self.config.bounds)

        now = self.clock()
        quality_before = self._quality(self.parameters.get())

        self._transition(CycleState.APPLY)
        params = self.parameters.apply_deltas(proposal.proposed_changes)
        proposal.applied = True
        self.validation.mark_applied(proposal.id)

        self._transition(CycleState.RECORD_HISTORY)
        entry = AdaptationHistory(
            id=proposal.id,
            timestamp=now,
            parameter_changes=list(proposal.proposed_changes),
            quality_before=quality_before,
            quality_after=self._quality(params),
            user_consent=consent,
            source=ChangeSource.ADAPTATION,
            reason=proposal.reason,
        )
        self.rollback_manager.record(entry)
        self.governance_log.log_adaptation(
            self.user_id,
            entry.parameter_changes,
            proposal.reason,
            ChangeSource.ADAPTATION,
            entry_id=entry.id,
            timestamp=now,
        )
        await self._persist_parameters(params)
        await self._persist("record_adaptation_history", entry.to_dict())

        self._transition(CycleState.TRACK_DRIFT)
        self.drift.track(params, now)
        self.drift.detect_drift()

        self._settle()
        return params

    async def apply_proposal(self, proposal: AdaptationProposal) -> Parameters:
        """
        Commit a proposal. Applying it twice changes nothing.

        Raises:
            AdaptationError: consent is required and was not given
            StaleProposalError: the parameters changed since the proposal was made
            ParameterValidationError: a proposed value is invalid
        """
        async with self._lock:
            if proposal.applied:
                return self.parameters.get()

            if proposal.user_consent_required and proposal.consent_given != ConsentState.ACCEPT:
                raise AdaptationError(
                    "Proposal requires user consent",
                    details={"proposal_id": proposal.id, "consent": proposal.consent_given.value},
                )

            consent = (
                HistoryConsent.ACCEPTED if proposal.consent_given == ConsentState.ACCEPT
                else HistoryConsent.NOT_REQUIRED
            )
            params = await self._commit(proposal, consent)
            await self._persist_pending()
            return params

    async def resolve_consent(
        self,
        proposal_id: str,
        decision: Union[ConsentDecision, str],
    ) -> AdaptationProposal:
        """
        Apply a user decision to a pending proposal.

        ACCEPT applies it, REJECT discards it, POSTPONE keeps it pending.
        Accepting a proposal made against parameters that have changed since
        rejects it instead.

        Raises:
            ProposalNotFoundError: unknown proposal id
            StaleProposalError: the accepted proposal no longer matches the
                current parameters
        """
        decision = ConsentDecision(decision)
        async with self._lock:
            pending = self.validation.get(proposal_id)
            if pending is None:
                raise ProposalNotFoundError(proposal_id)

            if decision == ConsentDecision.ACCEPT and pending.is_pending:
                stale = stale_deltas(pending.proposed_changes, self.parameters.get())
                if stale:
                    logger.warning(f"Proposal {proposal_id} is stale ({stale}), rejecting it")
                    self.validation.resolve(proposal_id, ConsentDecision.REJECT)
                    self._settle()
                    await self._persist_pending()
                    raise StaleProposalError(proposal_id, stale)

            proposal = self.validation.resolve(proposal_id, decision)

            if decision == ConsentDecision.ACCEPT and proposal.consent_given == ConsentState.ACCEPT:
                await self._commit(proposal, HistoryConsent.ACCEPTED)
            else:
                self._settle()

            await self._persist_pending()
            return proposal

    # =========================================================================
    # ROLLBACK AND RESETS
    # =========================================================================

    async def _rollback_locked(self, adaptation_id: str) -> Parameters:
        now = self.clock()
        params, reversal = self.rollback_manager.rollback(
            adaptation_id,
            self.parameters.get(),
            now,
            quality_before=self._quality(self.parameters.get()),
        )
        params = self.parameters.set(params)

        self.governance_log.log_adaptation(
            self.user_id,
            reversal.parameter_changes,
            reversal.reason,
            ChangeSource.ROLLBACK,
            entry_id=reversal.id,
            timestamp=now,
        )
        await self._persist_parameters(params)
        await self._persist("record_adaptation_history", reversal.to_dict())
        await self._persist("mark_adaptation_history_reverted", adaptation_id)

        self.drift.track(params, now)
        return params

    async def rollback(self, adaptation_id: str) -> Parameters:
        """
        Revert a recorded change.

        Raises:
            AdaptationNotFoundError: unknown id
            AdaptationAlreadyRevertedError: already reverted
            ParameterValidationError: a restored value is invalid
        """
        async with self._lock:
            return await self._rollback_locked(adaptation_id)

    async def rollback_latest(self) -> Optional[Parameters]:
        """Revert the most recent change that is not itself a rollback."""
        async with self._lock:
            candidates = [
                e for e in self.rollback_manager.rollbackable()
                if e.source != ChangeSource.ROLLBACK
            ]
            if not candidates:
                logger.info("Nothing to roll back")
                return None
            return await self._rollback_locked(candidates[-1].id)

    async def _apply_direct(
        self,
        target: Parameters,
        source: ChangeSource,
        reason: str,
        consent: HistoryConsent,
    ) -> Parameters:
        """Record a change that bypasses the rules (reset, conservative mode)."""
        now = self.clock()
        current = self.parameters.get()
        target = clamp_parameters(target, self.config.bounds)
        deltas = diff_parameters(current, target)
        if not deltas:
            return current

        quality_before = self._quality(current)
        params = self.parameters.set(target)
        entry = AdaptationHistory(
            id=new_adaptation_id(),
            timestamp=now,
            parameter_changes=deltas,
            quality_before=quality_before,
            quality_after=self._quality(params),
            user_consent=consent,
            source=source,
            reason=reason,
        )
        self.rollback_manager.record(entry)
        self.governance_log.log_adaptation(
            self.user_id, deltas, reason, source, entry_id=entry.id, timestamp=now
        )
        await self._persist_parameters(params)
        await self._persist("record_adaptation_history", entry.to_dict())

        self.drift.track(params, now)
        return params

    async def reset_to_defaults(self) -> Parameters:
        """Restore default parameters and reject every pending proposal."""
        async with self._lock:
            for proposal in self.validation.pending():
                self.validation.resolve(proposal.id, ConsentDecision.REJECT)

            params = await self._apply_direct(
                DEFAULT_PARAMETERS,
                ChangeSource.RESET,
                "Reset all adjustments to defaults",
                HistoryConsent.ACCEPTED,
            )
            self.monitor.reset_indicators()
            self._settle()
            await self._persist_pending()

        logger.info(f"Parameters reset to defaults for user {self.user_id}")
        return params

    async def enter_conservative_mode(self, reason: str) -> Parameters:
        """Switch to the most protective parameter set."""
        logger.warning(f"Entering conservative mode: {reason}")
        async with self._lock:
            current = self.parameters.get()
            target = current.with_changes(
                max_tasks=self.config.bounds.max_tasks.minimum,
                strictness=0.5,
                coach_enabled=False,
                default_mode=SystemMode.STRICT,
            )
            return await self._apply_direct(
                target,
                ChangeSource.CONSERVATIVE,
                f"Conservative mode: {reason}",
                HistoryConsent.NOT_REQUIRED,
            )

    async def run_transparency_action(self, action: str) -> Optional[Parameters]:
        """Run an action offered on the transparency panel."""
        if action == "reset_adaptation":
            return await self.reset_to_defaults()
        if action == "rollback_latest":
            return await self.rollback_latest()
        raise ValueError(f"Unknown transparency action: {action}")

    # =========================================================================
    # RESTORE
    # =========================================================================

    async def load(self) -> Parameters:
        """Restore persisted parameters, latest history and pending proposals."""
        if self.store is None:
            return self.parameters.get()

        async with self._lock:
            try:
                stored = await self.store.get_setting(PARAMS_KEY)
                if stored:
                    self.parameters.set(Parameters.from_dict(stored, self.config.bounds))

                latest = await self.store.get_latest_adaptation_history()
                if latest and self.rollback_manager.get(latest["id"]) is None:
                    self.rollback_manager.record(AdaptationHistory.from_dict(latest))

                for data in await self.store.get_setting(PENDING_KEY) or []:
                    proposal = AdaptationProposal.from_dict(data)
                    if self.validation.get(proposal.id) is None:
                        self.validation.restore(proposal)
            except Exception as e:
                logger.error(f"Failed to restore persisted adaptation state: {e}")

            params = self.parameters.get()
            self.drift.track(params, self.clock())
            self._settle()

        logger.info(f"Restored parameters for user {self.user_id}")
        return params

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_current_params(self) -> Parameters:
        return self.parameters.get()

    def check_invariants(self) -> bool:
        """False iff parameter drift is detected."""
        return self.drift.detect_drift() is None

    def detect_progressive_drift(self) -> Optional[DriftReport]:
        return self.drift.detect_progressive_drift()

    def pending_proposals(self) -> List[AdaptationProposal]:
        return self.validation.pending()

    def history(self) -> List[AdaptationHistory]:
        return self.rollback_manager.history()

    def transparency_summary(self, recent: int = 5) -> Dict[str, Any]:
        """Data for the transparency panel."""
        now = self.clock()
        logs = self.governance_log.get_user_logs(self.user_id)[-recent:]
        return {
            "user_id": self.user_id,
            "message": "The system adjusts to your actual usage. These changes are always reversible.",
            "current_parameters": self.parameters.get().to_dict(),
            "recent_changes": [
                {
                    "id": entry.id,
                    "date": entry.timestamp.isoformat(),
                    "changes": [d.describe() for d in entry.changes],
                    "reason": entry.reason,
                    "source": entry.source.value,
                }
                for entry in reversed(logs)
            ],
            "remaining_budget": self.monitor.remaining_budget(self.rollback_manager.history(), now),
            "adaptation_frozen": self.monitor.is_frozen,
            "manual_mode_suggested": self.monitor.manual_mode_suggested,
            "pending_proposals": len(self.validation.pending()),
            "actions": list(TRANSPARENCY_ACTIONS),
        }
