"""
Proof Manifest - Derived summary of the decision log.

A manifest is regenerated from scratch on every call, never patched in place:
1. Read the log once (snapshot; appends after the read are not included)
2. Check the hash chain; malformed lines make it invalid
3. Join execution outcomes into their ALLOW decisions by fingerprint
4. Count verdicts and outcomes
5. Digest the canonical manifest body (minus manifest_sha256)

Any verifier re-running the same aggregation over the same lines gets the
same counts, and verify_manifest() recomputes the digest.
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiofiles

from ...core.decision import Verdict
from ...core.fingerprint import canonical_json, sha256_hex
from .decision_log import (
    DecisionLog,
    EVENT_DECISION,
    EVENT_EXECUTION,
    RESULT_ERROR,
    RESULT_SUCCESS,
    find_broken_links,
)

logger = logging.getLogger(__name__)

# Decisions further apart than this start a new session
SESSION_GAP_MS = 60_000

MANIFEST_FILENAME = "proof_manifest.json"
SUMMARY_FILENAME = "summary.txt"

# Fields copied from each decision line into the manifest
DECISION_FIELDS = (
    "timestamp",
    "input_sha256",
    "policy_id",
    "decision",
    "execution_attempted",
    "execution_result",
    "fingerprint",
    "action",
    "resource",
    "risk_score",
    "decided_at",
    "intercepted",
    "source",
    "session_id",
)


@dataclass
class ProofManifest:
    """Aggregated view of a decision log."""

    generated_at: str
    session_id: str
    log_file: str
    total_decisions: int
    stop_count: int
    hold_count: int
    allow_count: int
    execution_success_count: int
    execution_error_count: int
    decisions: List[Dict[str, Any]] = field(default_factory=list)
    chain_head: str = ""
    chain_valid: bool = True
    manifest_sha256: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def body(self) -> Dict[str, Any]:
        """Manifest without its own digest."""
        d = self.to_dict()
        d.pop("manifest_sha256", None)
        return d


def compute_manifest_digest(manifest: Dict[str, Any]) -> str:
    """SHA256 over the canonical manifest, excluding manifest_sha256."""
    body = {k: v for k, v in manifest.items() if k != "manifest_sha256"}
    return sha256_hex(canonical_json(body))


def verify_manifest(manifest: Dict[str, Any]) -> bool:
    """True if the stored digest matches the manifest body."""
    stored = manifest.get("manifest_sha256")
    if not stored:
        return False
    return stored == compute_manifest_digest(manifest)


def split_sessions(
    decisions: List[Dict[str, Any]], gap_ms: int = SESSION_GAP_MS
) -> List[List[Dict[str, Any]]]:
    """Group consecutive decisions separated by at most gap_ms."""
    if not decisions:
        return []

    sessions: List[List[Dict[str, Any]]] = [[decisions[0]]]
    for prev, curr in zip(decisions, decisions[1:]):
        if int(curr.get("decided_at", 0)) - int(prev.get("decided_at", 0)) > gap_ms:
            sessions.append([curr])
        else:
            sessions[-1].append(curr)
    return sessions


class ProofManifestGenerator:
    """
    Builds proof manifests from a DecisionLog.

    Safe to run while other threads append: the log is read once and the
    manifest describes exactly what was read.
    """

    def __init__(self, decision_log: DecisionLog, proof_dir: Optional[Path] = None):
        self.decision_log = decision_log
        self.proof_dir = Path(proof_dir) if proof_dir else decision_log.log_file.parent

    def generate(
        self,
        session_id: Optional[str] = None,
        latest_session_only: bool = False,
    ) -> ProofManifest:
        """
        Aggregate the log into a manifest.

        Args:
            session_id: Only include decisions carrying this session id
            latest_session_only: Only include the most recent time-gap session

        Returns:
            ProofManifest with digest filled in
        """
        entries, malformed = self.decision_log.scan()
        decisions, outcomes = self._partition(entries)

        if session_id is not None:
            decisions = [d for d in decisions if d.get("session_id") == session_id]

        if latest_session_only and decisions:
            decisions = split_sessions(decisions)[-1]

        summaries = [self._summarize(d, outcomes) for d in decisions]

        manifest = ProofManifest(
            generated_at=datetime.now(timezone.utc).isoformat(),
            session_id=session_id or self._derive_session_id(summaries),
            log_file=str(self.decision_log.log_file),
            total_decisions=len(summaries),
            stop_count=_count(summaries, "decision", Verdict.STOP.value),
            hold_count=_count(summaries, "decision", Verdict.HOLD.value),
            allow_count=_count(summaries, "decision", Verdict.ALLOW.value),
            execution_success_count=_count(summaries, "execution_result", RESULT_SUCCESS),
            execution_error_count=_count(summaries, "execution_result", RESULT_ERROR),
            decisions=summaries,
            chain_head=entries[-1].get("entry_hash", "") if entries else "",
            chain_valid=not find_broken_links(entries) and not malformed,
        )
        manifest.manifest_sha256 = compute_manifest_digest(manifest.to_dict())

        logger.info(
            f"Manifest generated: session={manifest.session_id} "
            f"total={manifest.total_decisions} stop={manifest.stop_count} "
            f"hold={manifest.hold_count} allow={manifest.allow_count} "
            f"sha256={manifest.manifest_sha256[:12]}"
        )
        return manifest

    def _partition(
        self, entries: List[Dict[str, Any]]
    ) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
        decisions = []
        outcomes: Dict[str, str] = {}

        for e in entries:
            event_type = e.get("event_type")
            if event_type == EVENT_DECISION:
                decisions.append(e)
            elif event_type == EVENT_EXECUTION and e.get("fingerprint"):
                outcomes[e["fingerprint"]] = e.get("execution_result")
            else:
                logger.warning(f"Ignoring log entry with event_type={event_type!r}")

        return decisions, outcomes

    @staticmethod
    def _summarize(entry: Dict[str, Any], outcomes: Dict[str, str]) -> Dict[str, Any]:
        summary = {name: entry.get(name) for name in DECISION_FIELDS}
        if summary["decision"] == Verdict.ALLOW.value:
            summary["execution_result"] = outcomes.get(summary["fingerprint"])
        else:
            summary["execution_result"] = None
        return summary

    @staticmethod
    def _derive_session_id(summaries: List[Dict[str, Any]]) -> str:
        if not summaries:
            return "session-empty"
        first = str(summaries[0].get("timestamp", ""))
        return "session-" + first.replace(":", "-").replace(".", "-")

    async def save(self, manifest: ProofManifest) -> Dict[str, Path]:
        """Write proof_manifest.json and summary.txt into proof_dir."""
        self.proof_dir.mkdir(parents=True, exist_ok=True)

        manifest_path = self.proof_dir / MANIFEST_FILENAME
        summary_path = self.proof_dir / SUMMARY_FILENAME

        async with aiofiles.open(manifest_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(manifest.to_dict(), indent=2))

        async with aiofiles.open(summary_path, "w", encoding="utf-8") as f:
            await f.write(render_summary(manifest))

        logger.info(f"Proof artifacts written: {manifest_path}, {summary_path}")
        return {"manifest": manifest_path, "summary": summary_path}


def _count(summaries: List[Dict[str, Any]], key: str, value: str) -> int:
    return sum(1 for s in summaries if s.get(key) == value)


def render_summary(manifest: ProofManifest) -> str:
    """Human-readable proof summary."""
    return f"""Execution Authority Runtime - Decision Proof Artifact

Generated: {manifest.generated_at}
Session ID: {manifest.session_id}
Log File: {manifest.log_file}

=== Decision Summary ===
Total Attempts: {manifest.total_decisions}
STOP (Blocked): {manifest.stop_count}
HOLD (Deferred): {manifest.hold_count}
ALLOW (Permitted): {manifest.allow_count}

=== Execution Results ===
Success: {manifest.execution_success_count}
Error: {manifest.execution_error_count}

=== Integrity ===
Chain Head: {manifest.chain_head}
Chain Valid: {manifest.chain_valid}
Manifest SHA256: {manifest.manifest_sha256}

Every decision is logged before a capability is returned to the caller.
"""
