"""
Verdict Dispatcher - the single entry point between an agent and execution.

Flow:
1. Validate the proposal (ValidationError, nothing recorded)
2. Classify + decide (any failure aborts fail-closed, never defaults to ALLOW)
3. Record the decision in the audit log (LogWriteError fails the dispatch)
4. Bind the capability and hand it back

The audit line is always persisted before the capability is returned, so a
decision is observable no later than it is usable. Nothing executes inside
dispatch(); only the caller can invoke an ALLOW capability.
"""

import logging
import threading
from typing import Any, Dict, Mapping

from .core.capability import DecisionCapability, ExecutionResult, Executor, bind
from .core.decision import Decision, Verdict
from .core.errors import ClassificationError, ValidationError
from .core.proposal import Proposal, validate_proposal_fields
from .service.audit.decision_log import DecisionLog
from .service.policy.verdict_engine import VerdictEngine

logger = logging.getLogger(__name__)


class VerdictDispatcher:
    """
    Routes proposals through classifier -> engine -> audit log -> capability.

    The decision log handle is owned by the caller and passed in explicitly.
    """

    def __init__(
        self,
        engine: VerdictEngine,
        decision_log: DecisionLog,
        executor: Executor,
    ):
        if executor is None:
            raise ValueError("VerdictDispatcher requires an executor collaborator")

        self.engine = engine
        self.decision_log = decision_log
        self.executor = executor

        self._stats_lock = threading.Lock()
        self._stats: Dict[str, int] = {v.value: 0 for v in Verdict}
        self._stats["rejected"] = 0
        self._stats["aborted"] = 0

        logger.info(
            f"VerdictDispatcher initialized (policy={engine.config.policy_id}, "
            f"log={decision_log.log_file})"
        )

    def dispatch(self, proposal: Proposal) -> DecisionCapability:
        """
        Decide on a proposal and return its capability.

        Raises:
            ValidationError: malformed proposal
            ClassificationError: evaluation failed
            LogWriteError: the decision could not be recorded
        """
        if not isinstance(proposal, Proposal):
            self._bump("rejected")
            raise ValidationError(
                f"Expected a Proposal, got {type(proposal).__name__}"
            )

        try:
            validate_proposal_fields(proposal.action, proposal.arguments)
        except ValidationError:
            self._bump("rejected")
            raise

        try:
            decision = self.engine.decide(proposal)
        except ValidationError:
            self._bump("rejected")
            raise
        except Exception as e:
            self._bump("aborted")
            logger.error(
                f"Evaluation failed for {proposal.action}; aborting dispatch: {e}",
                exc_info=True,
            )
            raise ClassificationError(
                f"Failed to evaluate proposal: {e}",
                details={"action": proposal.action},
            ) from e

        handle = self.decision_log.record(
            decision,
            proposal,
            intercepted=decision.intercepted,
            source=proposal.metadata.source,
        )
        self._bump(decision.verdict.value)

        return bind(
            decision,
            proposal,
            self.executor,
            proof_path=handle.log_file,
            recorder=self._record_outcome,
        )

    def dispatch_tool_call(self, payload: Mapping[str, Any]) -> DecisionCapability:
        """Intercept an agent tool_call payload ({tool_name, arguments, metadata})."""
        try:
            proposal = Proposal.from_tool_call(payload)
        except ValidationError:
            self._bump("rejected")
            raise
        return self.dispatch(proposal)

    def _record_outcome(
        self, decision: Decision, action: str, result: ExecutionResult
    ) -> None:
        self.decision_log.record_execution(
            decision, action, success=result.success, error=result.error
        )

    def _bump(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Dispatch counters since construction."""
        with self._stats_lock:
            stats = dict(self._stats)
        stats["policy_id"] = self.engine.config.policy_id
        stats["log_file"] = str(self.decision_log.log_file)
        return stats
