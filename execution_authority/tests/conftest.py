"""
Shared fixtures for the Execution Authority test suite.
"""

import pytest

from execution_authority.config import GateConfig
from execution_authority.dispatcher import VerdictDispatcher
from execution_authority.service.audit import DecisionLog
from execution_authority.service.policy import VerdictEngine


class RecordingExecutor:
    """Executor double that records every invocation."""

    def __init__(self, response=None, error=None):
        self.calls = []
        self.response = response
        self.error = error

    async def __call__(self, action, arguments):
        self.calls.append((action, arguments))
        if self.error is not None:
            raise self.error
        if self.response is not None:
            return self.response
        return {"success": True, "result": {"tool_name": action}}


@pytest.fixture
def gate_config(tmp_path):
    return GateConfig(
        log_path=tmp_path / "audit" / "decision_log.jsonl",
        proof_dir=tmp_path / "proof",
    )


@pytest.fixture
def engine(gate_config):
    return VerdictEngine(gate_config)


@pytest.fixture
def decision_log(gate_config):
    log = DecisionLog(gate_config.log_path)
    yield log
    log.close()


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def dispatcher(engine, decision_log, executor):
    return VerdictDispatcher(engine, decision_log, executor)
