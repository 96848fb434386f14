"""
Verdict Engine Tests

Critical Properties:
1. Block-list actions are STOP regardless of arguments
2. Approval-list actions are HOLD
3. Everything else maps monotonically from risk score
4. Fingerprints are deterministic and sensitive to every input
"""

import pytest

from execution_authority.config import GateConfig
from execution_authority.config.gate_config import APPROVAL_LIST, BLOCK_LIST
from execution_authority.core.decision import DecisionRule, Verdict
from execution_authority.core.errors import ConfigError, ValidationError
from execution_authority.core.fingerprint import compute_fingerprint
from execution_authority.core.proposal import Proposal
from execution_authority.service.policy import VerdictEngine

ARGUMENT_VARIANTS = [
    {},
    {"file": "/app/config.json"},
    {"command": "sudo rm -rf /data"},
    {"path": "/etc/shadow", "password": "hunter2"},
]


class TestStaticPolicyTables:
    """Block and approval lists override the classifier."""

    @pytest.mark.parametrize("action", BLOCK_LIST)
    @pytest.mark.parametrize("arguments", ARGUMENT_VARIANTS)
    def test_block_list_always_stops(self, engine, action, arguments):
        decision = engine.decide(Proposal.create(action, arguments))

        assert decision.verdict == Verdict.STOP
        assert decision.rule == DecisionRule.BLOCK_LIST
        assert decision.risk_score == 10
        assert decision.reason == f"Forbidden action: {action} is categorically blocked"

    @pytest.mark.parametrize("action", APPROVAL_LIST)
    @pytest.mark.parametrize("arguments", ARGUMENT_VARIANTS)
    def test_approval_list_always_holds(self, engine, action, arguments):
        decision = engine.decide(Proposal.create(action, arguments))

        assert decision.verdict == Verdict.HOLD
        assert decision.rule == DecisionRule.APPROVAL_LIST
        assert decision.risk_score == 7
        assert decision.reason == f"Action {action} requires external approval"

    def test_block_list_wins_over_approval_list(self, tmp_path):
        config = GateConfig(
            log_path=tmp_path / "log.jsonl",
            block_list=("deploy_production",),
            approval_list=("deploy_production",),
        )
        decision = VerdictEngine(config).decide(
            Proposal.create("deploy_production", {})
        )
        assert decision.verdict == Verdict.STOP


class TestRiskThresholds:
    """Score-driven verdicts."""

    @pytest.mark.parametrize(
        "score,expected",
        [(s, Verdict.ALLOW) for s in range(0, 5)]
        + [(s, Verdict.HOLD) for s in range(5, 8)]
        + [(s, Verdict.STOP) for s in range(8, 11)],
    )
    def test_verdict_for_score(self, engine, score, expected):
        assert engine.verdict_for_score(score) == expected

    def test_monotonic(self, engine):
        order = [Verdict.ALLOW, Verdict.HOLD, Verdict.STOP]
        ranks = [order.index(engine.verdict_for_score(s)) for s in range(0, 11)]
        assert ranks == sorted(ranks)

    def test_benign_read_allowed(self, engine):
        decision = engine.decide(
            Proposal.create("read_config", {"file": "/app/config.json"})
        )

        assert decision.verdict == Verdict.ALLOW
        assert decision.risk_score == 0
        assert decision.reason == "Action read_config approved (risk score: 0)"
        assert not decision.intercepted

    def test_sudo_delete_stopped(self, engine):
        decision = engine.decide(
            Proposal.create("execute_command", {"command": "sudo rm -rf /data"})
        )

        assert decision.verdict == Verdict.STOP
        assert decision.rule == DecisionRule.RISK_THRESHOLD
        assert decision.risk_score == 8
        assert decision.reason.startswith("Risk score 8 exceeds STOP threshold (8)")
        assert decision.intercepted

    def test_credential_on_protected_path_allowed(self, engine):
        decision = engine.decide(
            Proposal.create("read_file", {"path": "/etc/shadow", "password": "hunter2"})
        )

        assert decision.risk_score == 4
        assert decision.verdict == Verdict.ALLOW

    def test_hold_band(self, engine):
        # destructive 3 + credential 2
        decision = engine.decide(
            Proposal.create("cleanup", {"target": "cache", "token": "wipe"})
        )

        assert decision.risk_score == 5
        assert decision.verdict == Verdict.HOLD
        assert "requires approval (threshold 5)" in decision.reason

    def test_custom_thresholds(self, tmp_path):
        config = GateConfig(
            log_path=tmp_path / "log.jsonl", stop_threshold=9, hold_threshold=6
        )
        decision = VerdictEngine(config).decide(
            Proposal.create("execute_command", {"command": "sudo rm -rf /data"})
        )

        assert decision.risk_score == 8
        assert decision.verdict == Verdict.HOLD

    def test_invalid_thresholds_rejected(self, tmp_path):
        config = GateConfig(
            log_path=tmp_path / "log.jsonl", stop_threshold=5, hold_threshold=5
        )
        with pytest.raises(ConfigError):
            VerdictEngine(config)

    def test_policy_id_carried(self, engine):
        decision = engine.decide(Proposal.create("noop", {}))
        assert decision.policy_id == engine.config.policy_id


class TestValidation:
    """Malformed proposals fail before classification."""

    def test_missing_action(self):
        with pytest.raises(ValidationError):
            Proposal.create(None, {})

    @pytest.mark.parametrize("action", ["", "   ", 42])
    def test_bad_action(self, action):
        with pytest.raises(ValidationError):
            Proposal.create(action, {})

    @pytest.mark.parametrize("arguments", [None, ["rm", "-rf"], "rm -rf /"])
    def test_arguments_must_be_mapping(self, arguments):
        with pytest.raises(ValidationError):
            Proposal.create("execute_command", arguments)

    def test_resource_extraction_order(self):
        proposal = Proposal.create(
            "fetch", {"url": "https://example.com", "host": "example.com"}
        )
        assert proposal.resource == "example.com"

    def test_resource_unknown(self):
        assert Proposal.create("noop", {"a": 1}).resource == "unknown"

    def test_arguments_are_frozen_copies(self):
        source = {"nested": {"k": "v"}}
        proposal = Proposal.create("noop", source)
        source["nested"]["k"] = "changed"

        assert proposal.arguments["nested"]["k"] == "v"
        with pytest.raises(TypeError):
            proposal.arguments["new"] = 1

    def test_nested_arguments_are_read_only(self, engine):
        proposal = Proposal.create("run", {"items": ["ls"], "opts": {"depth": 1}})
        before = engine.decide(proposal, decided_at=1000)

        with pytest.raises(AttributeError):
            proposal.arguments["items"].append("sudo rm -rf /")
        with pytest.raises(TypeError):
            proposal.arguments["opts"]["depth"] = 99

        after = engine.decide(proposal, decided_at=1000)
        assert after.fingerprint == before.fingerprint
        assert after.verdict == Verdict.ALLOW

    def test_arguments_dict_is_mutable_copy(self):
        proposal = Proposal.create("run", {"items": ["ls"], "opts": {"depth": 1}})

        plain = proposal.arguments_dict()
        assert plain == {"items": ["ls"], "opts": {"depth": 1}}

        plain["items"].append("pwd")
        assert proposal.arguments["items"] == ("ls",)

    @pytest.mark.parametrize(
        "arguments",
        [
            {"tags": {"a", "b"}},
            {"blob": b"a"},
            {1: "numeric key"},
            {"nested": {"obj": object()}},
            {"items": [1, {"x": frozenset()}]},
        ],
    )
    def test_non_json_values_rejected(self, arguments):
        with pytest.raises(ValidationError):
            Proposal.create("run", arguments)

    def test_bytes_and_their_repr_do_not_collide(self):
        with pytest.raises(ValidationError):
            Proposal.create("run", {"v": b"a"})
        assert Proposal.create("run", {"v": "b'a'"}).arguments["v"] == "b'a'"


class TestFingerprint:
    """Fingerprints identify (action, resource, arguments, verdict, decided_at)."""

    BASE = {"action": "read_config", "arguments": {"file": "/app/config.json"}}

    def _decide(self, engine, action=None, arguments=None, resource=None, decided_at=1000):
        proposal = Proposal.create(
            action or self.BASE["action"],
            arguments if arguments is not None else self.BASE["arguments"],
            resource=resource,
        )
        return engine.decide(proposal, decided_at=decided_at)

    def test_deterministic(self, engine):
        first = self._decide(engine)
        second = self._decide(engine)

        assert first.fingerprint == second.fingerprint
        assert len(first.fingerprint) == 64

    @pytest.mark.parametrize(
        "change",
        [
            {"action": "read_configs"},
            {"arguments": {"file": "/app/config.jsoN"}},
            {"arguments": {"file": "/app/config.json", "extra": None}},
            {"resource": "/app/other.json"},
            {"decided_at": 1001},
        ],
    )
    def test_any_change_changes_fingerprint(self, engine, change):
        base = self._decide(engine)
        changed = self._decide(engine, **change)

        assert base.fingerprint != changed.fingerprint

    def test_verdict_is_part_of_fingerprint(self):
        kwargs = dict(
            action="noop", resource="unknown", arguments={}, decided_at=1000
        )
        assert compute_fingerprint(verdict="ALLOW", **kwargs) != compute_fingerprint(
            verdict="HOLD", **kwargs
        )

    def test_tuple_and_list_fingerprint_alike(self, engine):
        first = self._decide(engine, arguments={"items": ["a", "b"]})
        second = self._decide(engine, arguments={"items": ("a", "b")})

        assert first.fingerprint == second.fingerprint

    def test_argument_key_order_irrelevant(self, engine):
        first = self._decide(engine, arguments={"a": 1, "b": 2})
        second = self._decide(engine, arguments={"b": 2, "a": 1})

        assert first.fingerprint == second.fingerprint
