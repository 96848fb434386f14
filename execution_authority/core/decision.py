"""
Verdict and Decision - the output of policy evaluation.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict


class Verdict(str, Enum):
    """Closed set of verdicts. Never extended at runtime."""

    STOP = "STOP"  # Block
    HOLD = "HOLD"  # Defer for external approval
    ALLOW = "ALLOW"  # Permit


class DecisionRule(str, Enum):
    """Which policy table or threshold produced the verdict."""

    BLOCK_LIST = "block_list"
    APPROVAL_LIST = "approval_list"
    RISK_THRESHOLD = "risk_threshold"


@dataclass(frozen=True)
class Decision:
    """
    Immutable verdict for one proposal evaluation.

    Owned by the verdict engine; referenced by capabilities and audit records.
    """

    verdict: Verdict
    risk_score: int  # 0-10
    reason: str
    fingerprint: str  # SHA256 hex
    decided_at: int  # epoch ms
    rule: DecisionRule = DecisionRule.RISK_THRESHOLD
    policy_id: str = ""

    @property
    def intercepted(self) -> bool:
        """True when nothing may execute (STOP/HOLD)."""
        return self.verdict != Verdict.ALLOW

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        d = asdict(self)
        d["verdict"] = self.verdict.value
        d["rule"] = self.rule.value
        return d
