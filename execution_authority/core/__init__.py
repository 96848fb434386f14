"""
Core data structures: proposals, decisions, fingerprints and capabilities.
"""

from .capability import (
    AllowCapability,
    Capability,
    ExecutionResult,
    HoldCapability,
    StopCapability,
    bind,
    can_execute,
    execution_absent,
)
from .decision import Decision, DecisionRule, Verdict
from .errors import (
    AuthorityError,
    CapabilityMisuseError,
    ClassificationError,
    ConfigError,
    LogWriteError,
    ValidationError,
)
from .proposal import Proposal, ProposalMetadata

__all__ = [
    "AllowCapability",
    "AuthorityError",
    "Capability",
    "CapabilityMisuseError",
    "ClassificationError",
    "ConfigError",
    "Decision",
    "DecisionRule",
    "ExecutionResult",
    "HoldCapability",
    "LogWriteError",
    "Proposal",
    "ProposalMetadata",
    "StopCapability",
    "ValidationError",
    "Verdict",
    "bind",
    "can_execute",
    "execution_absent",
]
