"""
Verdict Engine - turns a proposal into exactly one STOP/HOLD/ALLOW decision.

Evaluation order:
1. Always-block list   -> STOP (reason names the rule that fired)
2. Approval-required   -> HOLD
3. Risk score          -> STOP if score >= stop_threshold
                          HOLD if score >= hold_threshold
                          ALLOW otherwise

Evaluation is a pure function of (proposal, static policy tables); only the
decided_at component of the fingerprint varies with wall-clock time.
"""

import logging
from typing import Optional

from ...config.gate_config import GateConfig
from ...core.decision import Decision, DecisionRule, Verdict
from ...core.fingerprint import compute_fingerprint
from ...core.proposal import Proposal, now_ms, validate_proposal_fields
from ..risk.classifier import RiskAssessment, RiskClassifier

logger = logging.getLogger(__name__)


class VerdictEngine:
    """Combines static policy tables with classifier output."""

    def __init__(
        self,
        config: Optional[GateConfig] = None,
        classifier: Optional[RiskClassifier] = None,
    ):
        self.config = (config or GateConfig()).validate()
        self.classifier = classifier or RiskClassifier(
            weights=self.config.weights, max_score=self.config.max_score
        )
        self._block_list = frozenset(self.config.block_list)
        self._approval_list = frozenset(self.config.approval_list)

    def decide(self, proposal: Proposal, decided_at: Optional[int] = None) -> Decision:
        """
        Evaluate a proposal.

        Args:
            proposal: Proposal to evaluate
            decided_at: Decision time (epoch ms); defaults to now

        Returns:
            Immutable Decision

        Raises:
            ValidationError: proposal is malformed (checked before classification)
        """
        validate_proposal_fields(proposal.action, proposal.arguments)
        decided_at = now_ms() if decided_at is None else decided_at
        action = proposal.action

        if action in self._block_list:
            return self._build(
                proposal,
                Verdict.STOP,
                self.config.block_list_score,
                f"Forbidden action: {action} is categorically blocked",
                DecisionRule.BLOCK_LIST,
                decided_at,
            )

        if action in self._approval_list:
            return self._build(
                proposal,
                Verdict.HOLD,
                self.config.approval_list_score,
                f"Action {action} requires external approval",
                DecisionRule.APPROVAL_LIST,
                decided_at,
            )

        assessment = self.classifier.classify(proposal)
        verdict = self.verdict_for_score(assessment.score)
        return self._build(
            proposal,
            verdict,
            assessment.score,
            self._threshold_reason(action, verdict, assessment),
            DecisionRule.RISK_THRESHOLD,
            decided_at,
        )

    def verdict_for_score(self, score: int) -> Verdict:
        """Monotonic mapping from risk score to verdict."""
        if score >= self.config.stop_threshold:
            return Verdict.STOP
        if score >= self.config.hold_threshold:
            return Verdict.HOLD
        return Verdict.ALLOW

    def _threshold_reason(
        self, action: str, verdict: Verdict, assessment: RiskAssessment
    ) -> str:
        categories = ", ".join(sorted(assessment.matched_categories))
        suffix = f" [{categories}]" if categories else ""

        if verdict == Verdict.STOP:
            return (
                f"Risk score {assessment.score} exceeds STOP threshold "
                f"({self.config.stop_threshold}){suffix}"
            )
        if verdict == Verdict.HOLD:
            return (
                f"Risk score {assessment.score} requires approval "
                f"(threshold {self.config.hold_threshold}){suffix}"
            )
        return f"Action {action} approved (risk score: {assessment.score})"

    def _build(
        self,
        proposal: Proposal,
        verdict: Verdict,
        risk_score: int,
        reason: str,
        rule: DecisionRule,
        decided_at: int,
    ) -> Decision:
        fingerprint = compute_fingerprint(
            action=proposal.action,
            resource=proposal.resource,
            arguments=proposal.arguments_dict(),
            verdict=verdict.value,
            decided_at=decided_at,
        )

        if verdict == Verdict.ALLOW:
            logger.info(
                f"{verdict.value} {proposal.action} risk={risk_score} "
                f"rule={rule.value} fp={fingerprint[:12]}"
            )
        else:
            logger.warning(
                f"{verdict.value} {proposal.action} risk={risk_score} "
                f"rule={rule.value} fp={fingerprint[:12]}: {reason}"
            )

        return Decision(
            verdict=verdict,
            risk_score=risk_score,
            reason=reason,
            fingerprint=fingerprint,
            decided_at=decided_at,
            rule=rule,
            policy_id=self.config.policy_id,
        )
