"""
Decision Log - Hash-linked, append-only audit trail of every verdict.

One JSON object per line. Each line is bound to the previous one:
- prev_hash: entry_hash of the previous line (genesis = 64 zeros)
- entry_hash: SHA256 of the canonical line without entry_hash

Key properties:
- Append-only: prior lines are never rewritten
- Exclusive append: a thread lock plus an OS file lock around
  read-last-hash / write / fsync, so concurrent writers never interleave
- Fail-hard: any write failure surfaces as LogWriteError
- Verifiable: verify_chain() recomputes every link
"""

import fcntl
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, List, Optional, Tuple

from ...core.decision import Decision, Verdict
from ...core.errors import LogWriteError
from ...core.fingerprint import canonical_json, compute_input_hash, sha256_hex
from ...core.proposal import Proposal, now_ms

logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64

EVENT_DECISION = "decision"
EVENT_EXECUTION = "execution"

RESULT_SUCCESS = "success"
RESULT_ERROR = "error"

_TAIL_CHUNK = 65536


def ms_to_iso(ms: int) -> str:
    """Epoch milliseconds to ISO-8601 (UTC)."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class AuditRecord:
    """One decision as persisted in the log."""

    fingerprint: str
    verdict: str
    action: str
    resource: str
    risk_score: int
    decided_at: int
    intercepted: bool
    source: str

    input_sha256: str = ""
    policy_id: str = ""
    rule: str = ""
    reason: str = ""
    session_id: Optional[str] = None

    @classmethod
    def from_decision(
        cls,
        decision: Decision,
        proposal: Proposal,
        intercepted: bool,
        source: str,
    ) -> "AuditRecord":
        return cls(
            fingerprint=decision.fingerprint,
            verdict=decision.verdict.value,
            action=proposal.action,
            resource=proposal.resource,
            risk_score=decision.risk_score,
            decided_at=decision.decided_at,
            intercepted=intercepted,
            source=source,
            input_sha256=compute_input_hash(proposal.to_dict()),
            policy_id=decision.policy_id,
            rule=decision.rule.value,
            reason=decision.reason,
            session_id=proposal.metadata.session_id,
        )

    def to_entry(self) -> Dict[str, Any]:
        """Log line body (before chain fields are added)."""
        allowed = self.verdict == Verdict.ALLOW.value
        return {
            "event_type": EVENT_DECISION,
            "timestamp": ms_to_iso(self.decided_at),
            "input_sha256": self.input_sha256,
            "policy_id": self.policy_id,
            "decision": self.verdict,
            "execution_attempted": allowed,
            "execution_result": None,
            "fingerprint": self.fingerprint,
            "action": self.action,
            "resource": self.resource,
            "risk_score": self.risk_score,
            "decided_at": self.decided_at,
            "intercepted": self.intercepted,
            "source": self.source,
            "session_id": self.session_id,
            "rule": self.rule,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class LogHandle:
    """Reference to a persisted log line."""

    log_file: str
    fingerprint: str
    entry_hash: str
    prev_hash: str


@dataclass
class ChainVerification:
    """Result of chain verification."""

    valid: bool
    total_entries: int
    first_hash: str
    last_hash: str
    broken_links: List[int] = field(default_factory=list)
    malformed_lines: List[int] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "total_entries": self.total_entries,
            "first_hash": self.first_hash,
            "last_hash": self.last_hash,
            "broken_links": list(self.broken_links),
            "malformed_lines": list(self.malformed_lines),
            "message": self.message,
        }


def compute_entry_hash(entry: Dict[str, Any]) -> str:
    """SHA256 over the canonical entry, excluding entry_hash itself."""
    body = {k: v for k, v in entry.items() if k != "entry_hash"}
    return sha256_hex(canonical_json(body))


class DecisionLog:
    """
    Durable store for decision records.

    The handle is owned by the caller: open it at process start, pass it to
    the dispatcher, close it at shutdown.
    """

    def __init__(self, log_file: Path):
        self.log_file = Path(log_file).expanduser()
        self._lock = threading.Lock()
        self._closed = False

        logger.info(f"DecisionLog initialized with log_file={self.log_file}")

    def __enter__(self) -> "DecisionLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop accepting appends. Every append is already fsync'd."""
        with self._lock:
            if not self._closed:
                self._closed = True
                logger.info(f"DecisionLog closed: {self.log_file}")

    def record(
        self,
        decision: Decision,
        proposal: Proposal,
        intercepted: bool,
        source: str,
    ) -> LogHandle:
        """
        Append one decision line.

        Returns:
            LogHandle for the written line

        Raises:
            LogWriteError: the line could not be durably written
        """
        record = AuditRecord.from_decision(decision, proposal, intercepted, source)
        return self._append(record.to_entry(), decision.fingerprint)

    def record_execution(
        self,
        decision: Decision,
        action: str,
        success: bool,
        error: Optional[str] = None,
    ) -> LogHandle:
        """Append the outcome of invoking an ALLOW capability."""
        if decision.verdict != Verdict.ALLOW:
            raise ValueError(
                f"Execution outcome recorded for {decision.verdict.value} decision"
            )

        executed_at = now_ms()
        entry = {
            "event_type": EVENT_EXECUTION,
            "timestamp": ms_to_iso(executed_at),
            "policy_id": decision.policy_id,
            "decision": decision.verdict.value,
            "execution_attempted": True,
            "execution_result": RESULT_SUCCESS if success else RESULT_ERROR,
            "fingerprint": decision.fingerprint,
            "action": action,
            "executed_at": executed_at,
            "error": error,
        }
        return self._append(entry, decision.fingerprint)

    def _append(self, entry: Dict[str, Any], fingerprint: str) -> LogHandle:
        with self._lock:
            if self._closed:
                raise LogWriteError(
                    f"Decision log is closed: {self.log_file}",
                    details={"fingerprint": fingerprint},
                )

            try:
                self.log_file.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_file, "a+b") as f:
                    fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                    try:
                        prev_hash, needs_newline = self._read_tail(f)
                        entry["prev_hash"] = prev_hash
                        entry["entry_hash"] = compute_entry_hash(entry)

                        line = json.dumps(entry, sort_keys=True) + "\n"
                        if needs_newline:
                            line = "\n" + line
                        f.write(line.encode("utf-8"))
                        f.flush()
                        os.fsync(f.fileno())
                    finally:
                        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            except OSError as e:
                logger.error(f"Failed to write decision log {self.log_file}: {e}")
                raise LogWriteError(
                    f"Failed to write decision log: {e}",
                    details={"log_file": str(self.log_file), "fingerprint": fingerprint},
                ) from e

        logger.debug(
            f"Audit entry appended: {entry['event_type']} {entry['decision']} "
            f"for {fingerprint[:12]} (hash={entry['entry_hash'][:12]})"
        )

        return LogHandle(
            log_file=str(self.log_file),
            fingerprint=fingerprint,
            entry_hash=entry["entry_hash"],
            prev_hash=entry["prev_hash"],
        )

    def _read_tail(self, f: BinaryIO):
        """
        Find the previous entry hash from the end of the open file.

        Returns:
            (prev_hash, needs_newline) - needs_newline is True when the file
            ends in a partial line left by a crash
        """
        f.seek(0, os.SEEK_END)
        end = f.tell()
        if end == 0:
            return GENESIS_HASH, False

        f.seek(end - 1)
        needs_newline = f.read(1) != b"\n"

        # Walk backwards chunk by chunk; a line may be longer than one chunk.
        # `head` holds the (possibly partial) first line of what was read.
        head = b""
        pos = end
        while pos > 0:
            start = max(0, pos - _TAIL_CHUNK)
            f.seek(start)
            lines = (f.read(pos - start) + head).split(b"\n")
            pos = start

            if pos > 0:
                head = lines.pop(0)
            else:
                head = b""

            for raw in reversed(lines):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    last = json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    logger.warning("Skipping unparseable tail line in decision log")
                    continue
                if isinstance(last, dict) and last.get("entry_hash"):
                    return last["entry_hash"], needs_newline

        logger.warning(
            f"No valid entry found at tail of {self.log_file}; chaining from genesis"
        )
        return GENESIS_HASH, needs_newline

    def iter_entries(self) -> Iterator[Dict[str, Any]]:
        """Yield parseable entries in order. Malformed lines are skipped."""
        for _, entry in self._iter_numbered():
            if entry is not None:
                yield entry

    def _iter_numbered(self):
        if not self.log_file.exists():
            return

        with open(self.log_file, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning(f"Failed to parse log line {lineno}: {e}")
                    yield lineno, None
                    continue
                if not isinstance(entry, dict):
                    logger.warning(f"Log line {lineno} is not an object")
                    yield lineno, None
                    continue
                yield lineno, entry

    def read_entries(self) -> List[Dict[str, Any]]:
        """All parseable entries (snapshot of what was read)."""
        return list(self.iter_entries())

    def scan(self) -> Tuple[List[Dict[str, Any]], List[int]]:
        """
        Read the log once.

        Returns:
            (parseable entries, line numbers of malformed lines)
        """
        entries: List[Dict[str, Any]] = []
        malformed: List[int] = []
        for lineno, entry in self._iter_numbered():
            if entry is None:
                malformed.append(lineno)
            else:
                entries.append(entry)
        return entries, malformed

    def decisions(self) -> List[Dict[str, Any]]:
        """Only decision entries."""
        return [e for e in self.iter_entries() if e.get("event_type") == EVENT_DECISION]

    def search(
        self,
        fingerprint: Optional[str] = None,
        event_type: Optional[str] = None,
        decision: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Filter entries by fingerprint, event type and/or verdict."""
        results = []
        for e in self.iter_entries():
            if fingerprint and e.get("fingerprint") != fingerprint:
                continue
            if event_type and e.get("event_type") != event_type:
                continue
            if decision and e.get("decision") != decision:
                continue
            results.append(e)
        return results

    def get_recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent entries (newest first)."""
        if limit <= 0:
            return []
        entries = self.read_entries()
        return list(reversed(entries[-limit:]))

    def count(self) -> int:
        """Count decision entries."""
        return len(self.decisions())

    def verify_chain(self) -> ChainVerification:
        """
        Verify entire chain integrity.

        Returns:
            ChainVerification with results
        """
        if not self.log_file.exists():
            return ChainVerification(
                valid=True,
                total_entries=0,
                first_hash="",
                last_hash="",
                message="No decision log exists yet",
            )

        entries, malformed = self.scan()
        broken_links = find_broken_links(entries)
        valid = not broken_links and not malformed

        return ChainVerification(
            valid=valid,
            total_entries=len(entries),
            first_hash=entries[0].get("entry_hash", "") if entries else "",
            last_hash=entries[-1].get("entry_hash", "") if entries else "",
            broken_links=broken_links,
            malformed_lines=malformed,
            message=f"Chain valid: {valid}, {len(entries)} entries, "
            f"{len(broken_links)} broken links, {len(malformed)} malformed lines",
        )


def find_broken_links(entries: List[Dict[str, Any]]) -> List[int]:
    """Indices of entries whose prev_hash or entry_hash does not check out."""
    broken = []
    expected_prev = GENESIS_HASH

    for index, entry in enumerate(entries):
        if entry.get("prev_hash") != expected_prev:
            broken.append(index)
            logger.warning(
                f"Chain broken at entry {index}: "
                f"expected prev_hash={expected_prev[:12]}, "
                f"got={str(entry.get('prev_hash'))[:12]}"
            )

        computed = compute_entry_hash(entry)
        if entry.get("entry_hash") != computed:
            if not broken or broken[-1] != index:
                broken.append(index)
            logger.warning(
                f"Entry {index} has invalid hash: "
                f"stored={str(entry.get('entry_hash'))[:12]}, "
                f"computed={computed[:12]}"
            )

        expected_prev = entry.get("entry_hash", "")

    return broken
