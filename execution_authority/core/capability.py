"""
Capability Model - Verdict-gated execution handles.

A capability is the value handed back to the caller after a decision:

- StopCapability:  no execution handle, blocked
- HoldCapability:  no execution handle, requires external approval
- AllowCapability: carries execute(), bound to the proposal and executor

STOP and HOLD classes have no `execute` member at all. Probing for one is a
contract violation: `hasattr(cap, "execute")` is False and direct access
raises CapabilityMisuseError. Callers must check `cap.verdict` (or
can_execute()) before reaching for the handle.

bind() is the point where nothing executes: it only describes what could
execute (ALLOW) or confirms that nothing can (STOP/HOLD).

This module defines the executor *contract* only; it never imports an
executor implementation.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from .decision import Decision, Verdict
from .errors import CapabilityMisuseError
from .proposal import Proposal, now_ms

logger = logging.getLogger(__name__)

# Names that would expose an execution path on a STOP/HOLD capability
EXECUTION_MEMBERS = frozenset({"execute", "execution_handle", "handle", "run"})

# External collaborator: (action, arguments) -> {success, result?, error?}
Executor = Callable[[str, Dict[str, Any]], Awaitable[Mapping[str, Any]]]

# Called after an ALLOW invocation completes: (decision, action, result)
OutcomeRecorder = Callable[[Decision, str, "ExecutionResult"], Any]


@dataclass(frozen=True)
class ExecutionResult:
    """Result of invoking an ALLOW capability."""

    success: bool
    result: Optional[Any] = None
    error: Optional[str] = None
    executed_at: int = 0

    @classmethod
    def from_response(cls, response: Any) -> "ExecutionResult":
        """Normalize an executor response into an ExecutionResult."""
        if isinstance(response, ExecutionResult):
            return response
        if not isinstance(response, Mapping) or "success" not in response:
            return cls(
                success=False,
                error=f"Executor returned malformed response: {response!r}",
                executed_at=now_ms(),
            )
        return cls(
            success=bool(response["success"]),
            result=response.get("result"),
            error=response.get("error"),
            executed_at=now_ms(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "result": self.result,
            "error": self.error,
            "executed_at": self.executed_at,
        }


class Capability:
    """
    Base of the sealed capability hierarchy.

    Do not instantiate directly; use bind().
    """

    __slots__ = ("decision", "proof_path")

    verdict: Verdict

    def __init__(self, decision: Decision, proof_path: Optional[str] = None):
        if decision.verdict != self.verdict:
            raise ValueError(
                f"{type(self).__name__} cannot wrap a {decision.verdict.value} decision"
            )
        self.decision = decision
        self.proof_path = proof_path

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__module__ != __name__:
            raise TypeError("Capability hierarchy is sealed")

    def __getattr__(self, name: str):
        if name in EXECUTION_MEMBERS:
            raise CapabilityMisuseError(
                f"{self.verdict.value} capability has no execution handle "
                f"(attempted to access '{name}')",
                details={"verdict": self.verdict.value, "member": name},
            )
        raise AttributeError(f"{type(self).__name__!s} has no attribute {name!r}")

    @property
    def reason(self) -> str:
        return self.decision.reason

    @property
    def fingerprint(self) -> str:
        return self.decision.fingerprint

    @property
    def risk_score(self) -> int:
        return self.decision.risk_score

    @property
    def executed(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "reason": self.reason,
            "risk_score": self.risk_score,
            "decision_hash": self.fingerprint,
            "proof_path": self.proof_path,
            "executed": self.executed,
        }

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(fingerprint={self.fingerprint[:12]!r}, "
            f"reason={self.reason!r})"
        )


class StopCapability(Capability):
    """Blocked. No execution path exists."""

    __slots__ = ()

    verdict = Verdict.STOP
    blocked = True

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["blocked"] = True
        return d


class HoldCapability(Capability):
    """Deferred for external approval. No execution path exists."""

    __slots__ = ()

    verdict = Verdict.HOLD
    requires_approval = True

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["requires_approval"] = True
        return d


class AllowCapability(Capability):
    """
    Permitted. Carries a single-use execution handle.

    execute() forwards to the bound executor exactly once and returns its
    normalized result. A second call raises CapabilityMisuseError.
    """

    __slots__ = ("_proposal", "_executor", "_recorder", "_result", "_invoked", "_guard")

    verdict = Verdict.ALLOW

    def __init__(
        self,
        decision: Decision,
        proposal: Proposal,
        executor: Executor,
        proof_path: Optional[str] = None,
        recorder: Optional[OutcomeRecorder] = None,
    ):
        super().__init__(decision, proof_path)
        if executor is None:
            raise ValueError("ALLOW capability requires an executor")
        self._proposal = proposal
        self._executor = executor
        self._recorder = recorder
        self._result: Optional[ExecutionResult] = None
        self._invoked = False
        self._guard = threading.Lock()

    @property
    def proposal(self) -> Proposal:
        return self._proposal

    @property
    def executed(self) -> bool:
        return self._result is not None

    @property
    def result(self) -> Optional[ExecutionResult]:
        return self._result

    async def execute(self) -> ExecutionResult:
        """
        Invoke the executor for the bound proposal.

        Executor exceptions become an unsuccessful ExecutionResult. The
        outcome is recorded before it is returned.
        """
        with self._guard:
            if self._invoked:
                raise CapabilityMisuseError(
                    "ALLOW capability already invoked",
                    details={"fingerprint": self.fingerprint},
                )
            self._invoked = True

        action = self._proposal.action
        logger.info(f"Executing allowed action {action} (fp={self.fingerprint[:12]})")

        try:
            response = await self._executor(action, self._proposal.arguments_dict())
            outcome = ExecutionResult.from_response(response)
        except Exception as e:
            logger.error(f"Executor failed for {action}: {e}")
            outcome = ExecutionResult(
                success=False,
                error=f"Tool execution failed: {e}",
                executed_at=now_ms(),
            )

        self._result = outcome

        if self._recorder is not None:
            self._recorder(self.decision, action, outcome)

        return outcome

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        if self._result is not None:
            d["result"] = self._result.to_dict()
        return d


DecisionCapability = Union[StopCapability, HoldCapability, AllowCapability]


def bind(
    decision: Decision,
    proposal: Proposal,
    executor: Executor,
    proof_path: Optional[str] = None,
    recorder: Optional[OutcomeRecorder] = None,
) -> DecisionCapability:
    """
    Build the capability for a decision.

    Only the ALLOW branch ever touches the executor reference.
    """
    if decision.verdict == Verdict.STOP:
        return StopCapability(decision, proof_path)

    if decision.verdict == Verdict.HOLD:
        return HoldCapability(decision, proof_path)

    if decision.verdict == Verdict.ALLOW:
        return AllowCapability(
            decision,
            proposal,
            executor,
            proof_path=proof_path,
            recorder=recorder,
        )

    raise ValueError(f"Unknown verdict: {decision.verdict!r}")


def can_execute(capability: Capability) -> bool:
    """True only for ALLOW capabilities (execute() exists)."""
    return isinstance(capability, AllowCapability)


def execution_absent(capability: Capability) -> bool:
    """True for STOP/HOLD capabilities (no execution path)."""
    return isinstance(capability, (StopCapability, HoldCapability))
