"""
Risk Classifier for the Execution Authority Runtime.

Maps a proposal to a coarse 0-10 risk score plus the set of categories that
fired. Scoring is substring based over the canonical lower-cased arguments,
so it over-flags rather than under-flags: "platform x" hits "rm " and
"deleted_at" hits "delete". Callers needing precision should treat the score
as a coarse signal.

Each distinct vocabulary term found adds its category weight; the protected
resource bonus is applied once. The total is capped at max_score.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from ...config.gate_config import DEFAULT_WEIGHTS, MAX_SCORE
from ...core.fingerprint import canonical_json
from ...core.proposal import Proposal

logger = logging.getLogger(__name__)


# "rm -rf" also contains "rm ", so a forced recursive delete scores twice.
DESTRUCTIVE_TERMS: Tuple[str, ...] = (
    "rm ",
    "rm -rf",
    "delete",
    "drop",
    "truncate",
    "destroy",
    "wipe",
    "shred",
    "mkfs",
    "dd if=",
)

PRIVILEGE_TERMS: Tuple[str, ...] = (
    "sudo",
    "root",
    "admin",
    "chmod 777",
    "chown",
    "setuid",
)

CREDENTIAL_TERMS: Tuple[str, ...] = (
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "apikey",
    "private_key",
    "credential",
)

# "prod" also covers "production", "prod-eu", "api_prod" and so on.
PRODUCTION_TERMS: Tuple[str, ...] = ("prod",)

PROTECTED_RESOURCE_MARKERS: Tuple[str, ...] = (
    "/etc/",
    "system",
    "/root/",
    "/boot/",
    "/.ssh/",
)

ARGUMENT_CATEGORIES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("destructive", DESTRUCTIVE_TERMS),
    ("privilege", PRIVILEGE_TERMS),
    ("credential", CREDENTIAL_TERMS),
    ("production", PRODUCTION_TERMS),
)

PROTECTED_RESOURCE = "protected_resource"


@dataclass(frozen=True)
class RiskAssessment:
    """Classifier output."""

    score: int  # 0-10
    matched_categories: FrozenSet[str] = frozenset()

    # Breakdown: category -> terms that hit
    hits: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def primary_category(self) -> Optional[str]:
        """Category contributing the most terms, if any."""
        if not self.hits:
            return None
        return max(sorted(self.hits), key=lambda name: len(self.hits[name]))


class RiskClassifier:
    """
    Deterministic, total risk classifier.

    Pure: no state besides the weight table, safe to share across threads.
    """

    def __init__(
        self,
        weights: Optional[Mapping[str, int]] = None,
        max_score: int = MAX_SCORE,
    ):
        self.weights: Dict[str, int] = dict(DEFAULT_WEIGHTS)
        if weights:
            self.weights.update(weights)
        self.max_score = max_score

    def classify(self, proposal: Proposal) -> RiskAssessment:
        """
        Score a proposal.

        Args:
            proposal: Validated proposal

        Returns:
            RiskAssessment with capped score and matched categories
        """
        text = canonical_json(proposal.arguments_dict()).lower()
        resource = str(proposal.resource).lower()

        score = 0
        hits: Dict[str, List[str]] = {}

        for category, terms in ARGUMENT_CATEGORIES:
            found = [term for term in terms if term in text]
            if found:
                hits[category] = found
                score += self.weights.get(category, 0) * len(found)

        markers = [m for m in PROTECTED_RESOURCE_MARKERS if m in resource]
        if markers:
            hits[PROTECTED_RESOURCE] = markers
            score += self.weights.get(PROTECTED_RESOURCE, 0)

        score = min(score, self.max_score)

        if hits:
            logger.debug(
                f"Risk hits for {proposal.action}: "
                + ", ".join(f"{k}={v}" for k, v in sorted(hits.items()))
                + f" -> score={score}"
            )

        return RiskAssessment(
            score=score,
            matched_categories=frozenset(hits),
            hits=hits,
        )
