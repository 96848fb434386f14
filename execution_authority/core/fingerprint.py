"""
Canonical JSON and SHA256 helpers.

Implements deterministic identity for proposals and decisions:
1. Canonical JSON serialization (sorted keys, no whitespace)
2. SHA256 hashing
3. Decision fingerprint over (action, resource, arguments, verdict, decided_at)

Same inputs always produce the same digest; any one-byte change produces a
different one.
"""

import hashlib
import json
from typing import Any, Dict


def canonical_json(data: Any) -> str:
    """
    Serialize to canonical JSON.

    Only plain JSON values are accepted; anything else raises TypeError
    rather than being coerced into a form that could collide.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(text: str) -> str:
    """Hex-encoded SHA256 of a UTF-8 string (64 characters)."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def compute_input_hash(proposal_dict: Dict[str, Any]) -> str:
    """Hash of the canonical proposal as submitted (audit `input_sha256`)."""
    return sha256_hex(canonical_json(proposal_dict))


def compute_fingerprint(
    action: str,
    resource: str,
    arguments: Dict[str, Any],
    verdict: str,
    decided_at: int,
) -> str:
    """
    Compute the decision fingerprint.

    Args:
        action: Proposal action identifier
        resource: Extracted resource identifier
        arguments: Proposal arguments
        verdict: STOP / HOLD / ALLOW
        decided_at: Decision time in epoch milliseconds

    Returns:
        Hex-encoded SHA256 digest
    """
    canonical = {
        "action": action,
        "resource": resource,
        "arguments": arguments,
        "verdict": verdict,
        "decided_at": decided_at,
    }
    return sha256_hex(canonical_json(canonical))
