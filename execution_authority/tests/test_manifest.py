"""
Tests for proof manifest generation.
"""

import asyncio
import json
from collections import Counter

import pytest

from execution_authority.core.proposal import Proposal
from execution_authority.dispatcher import VerdictDispatcher
from execution_authority.service.audit import ProofManifestGenerator, verify_manifest
from execution_authority.service.audit.manifest import split_sessions

from conftest import RecordingExecutor

SCENARIOS = [
    ("delete_server_files", {"path": "/var/lib/production", "recursive": True}),
    ("reverse_shell", {"host": "192.168.1.100", "port": 4444}),
    ("deploy_production", {"service": "api-gateway", "version": "v2.3.0"}),
    ("read_config", {"file": "/app/config.json"}),
    ("list_files", {"path": "/app"}),
]


@pytest.fixture
def generator(decision_log, gate_config):
    return ProofManifestGenerator(decision_log, proof_dir=gate_config.proof_dir)


def run_scenarios(dispatcher, session_id=None):
    async def run():
        for action, arguments in SCENARIOS:
            capability = dispatcher.dispatch(
                Proposal.create(action, arguments, session_id=session_id)
            )
            if capability.decision.verdict.value == "ALLOW":
                await capability.execute()

    asyncio.run(run())


def tally(decision_log):
    """Count verdicts straight from the raw log lines."""
    counts = Counter()
    with open(decision_log.log_file) as f:
        for line in f:
            entry = json.loads(line)
            if entry["event_type"] == "decision":
                counts[entry["decision"]] += 1
            else:
                counts[entry["execution_result"]] += 1
    return counts


class TestGenerate:
    """Aggregation over the decision log."""

    def test_counts_match_independent_tally(self, dispatcher, decision_log, generator):
        run_scenarios(dispatcher)
        run_scenarios(dispatcher)

        manifest = generator.generate()
        counts = tally(decision_log)

        assert manifest.total_decisions == counts["STOP"] + counts["HOLD"] + counts["ALLOW"]
        assert manifest.stop_count == counts["STOP"] == 4
        assert manifest.hold_count == counts["HOLD"] == 2
        assert manifest.allow_count == counts["ALLOW"] == 4
        assert manifest.execution_success_count == counts["success"] == 4
        assert manifest.execution_error_count == 0

    def test_outcomes_joined_by_fingerprint(self, dispatcher, generator):
        run_scenarios(dispatcher)

        decisions = generator.generate().decisions
        for summary in decisions:
            if summary["decision"] == "ALLOW":
                assert summary["execution_attempted"] is True
                assert summary["execution_result"] == "success"
            else:
                assert summary["execution_attempted"] is False
                assert summary["execution_result"] is None

    def test_executor_errors_counted(self, engine, decision_log, generator):
        failing = RecordingExecutor(error=RuntimeError("nope"))
        run_scenarios(VerdictDispatcher(engine, decision_log, failing))

        manifest = generator.generate()
        assert manifest.execution_error_count == 2
        assert manifest.execution_success_count == 0

    def test_unexecuted_allow_has_no_result(self, dispatcher, generator):
        dispatcher.dispatch(Proposal.create("read_config", {"file": "a"}))

        summary = generator.generate().decisions[0]
        assert summary["execution_attempted"] is True
        assert summary["execution_result"] is None

    def test_chain_state(self, dispatcher, decision_log, generator):
        run_scenarios(dispatcher)

        manifest = generator.generate()
        assert manifest.chain_valid
        assert manifest.chain_head == decision_log.read_entries()[-1]["entry_hash"]

    def test_empty_log(self, generator):
        manifest = generator.generate()

        assert manifest.total_decisions == 0
        assert manifest.session_id == "session-empty"
        assert verify_manifest(manifest.to_dict())

    def test_malformed_lines_skipped(self, dispatcher, decision_log, generator):
        run_scenarios(dispatcher)
        with open(decision_log.log_file, "a") as f:
            f.write("not json\n")

        manifest = generator.generate()
        assert manifest.total_decisions == len(SCENARIOS)

    def test_malformed_lines_invalidate_chain(self, dispatcher, decision_log, generator):
        run_scenarios(dispatcher)
        with open(decision_log.log_file, "a") as f:
            f.write("not json\n")

        manifest = generator.generate()
        assert manifest.chain_valid is False
        assert manifest.chain_valid == decision_log.verify_chain().valid

    def test_session_filter(self, dispatcher, generator):
        run_scenarios(dispatcher, session_id="alpha")
        run_scenarios(dispatcher, session_id="beta")
        dispatcher.dispatch(Proposal.create("reverse_shell", {}, session_id="beta"))

        manifest = generator.generate(session_id="beta")
        assert manifest.session_id == "beta"
        assert manifest.total_decisions == len(SCENARIOS) + 1
        assert manifest.stop_count == 3

    def test_latest_session_only(self, engine, decision_log, generator):
        for decided_at in (1_000, 2_000, 200_000, 230_000):
            proposal = Proposal.create("read_config", {"file": str(decided_at)})
            decision = engine.decide(proposal, decided_at=decided_at)
            decision_log.record(decision, proposal, intercepted=False, source="test")

        manifest = generator.generate(latest_session_only=True)
        assert manifest.total_decisions == 2
        assert [d["decided_at"] for d in manifest.decisions] == [200_000, 230_000]
        assert manifest.session_id == "session-1970-01-01T00-03-20+00-00"


class TestDigest:
    """manifest_sha256 covers the manifest body."""

    def test_verify_roundtrip(self, dispatcher, generator):
        run_scenarios(dispatcher)
        manifest = generator.generate().to_dict()

        assert len(manifest["manifest_sha256"]) == 64
        assert verify_manifest(manifest)

    def test_tampered_manifest_fails(self, dispatcher, generator):
        run_scenarios(dispatcher)
        manifest = generator.generate().to_dict()
        manifest["stop_count"] -= 1

        assert not verify_manifest(manifest)

    def test_missing_digest_fails(self, generator):
        manifest = generator.generate().to_dict()
        manifest["manifest_sha256"] = ""

        assert not verify_manifest(manifest)


class TestSave:
    """Proof artifacts on disk."""

    def test_save_writes_artifacts(self, dispatcher, generator, gate_config):
        run_scenarios(dispatcher)
        manifest = generator.generate()

        paths = asyncio.run(generator.save(manifest))

        assert paths["manifest"] == gate_config.proof_dir / "proof_manifest.json"
        loaded = json.loads(paths["manifest"].read_text())
        assert loaded == manifest.to_dict()
        assert verify_manifest(loaded)

        summary = paths["summary"].read_text()
        assert f"STOP (Blocked): {manifest.stop_count}" in summary
        assert manifest.manifest_sha256 in summary


class TestSplitSessions:
    """Time-gap session grouping."""

    def test_empty(self):
        assert split_sessions([]) == []

    def test_gap_boundary(self):
        decisions = [{"decided_at": t} for t in (0, 60_000, 120_001, 125_000)]
        sessions = split_sessions(decisions)

        assert [[d["decided_at"] for d in s] for s in sessions] == [
            [0, 60_000],
            [120_001, 125_000],
        ]
