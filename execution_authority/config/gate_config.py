"""
Execution Authority Runtime - Gate Configuration

Central configuration for the verdict gate: thresholds, category weights,
static policy tables and audit storage locations.

Environment Variables:
  EAR_POLICY_ID        - Policy identifier written into every audit line
  EAR_STOP_THRESHOLD   - Risk score at or above which the verdict is STOP
  EAR_HOLD_THRESHOLD   - Risk score at or above which the verdict is HOLD
  EAR_LOG_PATH         - Decision log (JSONL) location
  EAR_PROOF_DIR        - Directory for proof_manifest.json / summary.txt
  EAR_SOURCE           - Default proposal source label
  EAR_LOG_LEVEL        - Logging level for entry points
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from ..core.errors import ConfigError

logger = logging.getLogger(__name__)

# =============================================================================
# DEFAULTS
# =============================================================================

DEFAULT_BASE_DIR = Path.home() / ".execution-authority"

POLICY_ID = os.getenv("EAR_POLICY_ID", "ear-default-v1")
LOG_PATH = os.getenv(
    "EAR_LOG_PATH", str(DEFAULT_BASE_DIR / "audit" / "decision_log.jsonl")
)
PROOF_DIR = os.getenv("EAR_PROOF_DIR", str(DEFAULT_BASE_DIR / "proof"))
SOURCE = os.getenv("EAR_SOURCE", "agent")
LOG_LEVEL = os.getenv("EAR_LOG_LEVEL", "INFO")

STOP_THRESHOLD = 8
HOLD_THRESHOLD = 5
MAX_SCORE = 10
BLOCK_LIST_SCORE = 10
APPROVAL_LIST_SCORE = 7

DEFAULT_WEIGHTS: Dict[str, int] = {
    "destructive": 3,
    "privilege": 2,
    "credential": 2,
    "production": 1,
    "protected_resource": 2,
}

# High-risk actions that are always blocked
BLOCK_LIST: Tuple[str, ...] = (
    "delete_server_files",
    "reverse_shell",
    "execute_shell",
    "rm_rf",
    "drop_database",
    "expose_secrets",
    "network_scan",
    "privilege_escalation",
)

# Actions requiring external approval
APPROVAL_LIST: Tuple[str, ...] = (
    "deploy_production",
    "modify_database",
    "send_email_blast",
    "delete_resource",
)


@dataclass
class GateConfig:
    """Verdict gate configuration."""

    policy_id: str = POLICY_ID

    # Thresholds
    stop_threshold: int = STOP_THRESHOLD
    hold_threshold: int = HOLD_THRESHOLD
    max_score: int = MAX_SCORE
    block_list_score: int = BLOCK_LIST_SCORE
    approval_list_score: int = APPROVAL_LIST_SCORE

    # Classifier
    weights: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    # Static policy tables
    block_list: Tuple[str, ...] = BLOCK_LIST
    approval_list: Tuple[str, ...] = APPROVAL_LIST

    # Storage
    log_path: Path = field(default_factory=lambda: Path(LOG_PATH))
    proof_dir: Path = field(default_factory=lambda: Path(PROOF_DIR))

    source: str = SOURCE
    log_level: str = LOG_LEVEL

    def __post_init__(self):
        self.log_path = Path(self.log_path).expanduser()
        self.proof_dir = Path(self.proof_dir).expanduser()
        self.block_list = tuple(self.block_list)
        self.approval_list = tuple(self.approval_list)
        merged = dict(DEFAULT_WEIGHTS)
        merged.update(self.weights or {})
        self.weights = merged

    def validate(self) -> "GateConfig":
        """Check threshold ordering and weights. Raises ConfigError."""
        if not 0 < self.hold_threshold < self.stop_threshold <= self.max_score:
            raise ConfigError(
                "Thresholds must satisfy 0 < hold < stop <= max_score",
                details={
                    "hold_threshold": self.hold_threshold,
                    "stop_threshold": self.stop_threshold,
                    "max_score": self.max_score,
                },
            )
        for name, weight in self.weights.items():
            if not isinstance(weight, int) or weight < 0:
                raise ConfigError(
                    f"Weight for category '{name}' must be a non-negative integer"
                )
        overlap = set(self.block_list) & set(self.approval_list)
        if overlap:
            logger.warning(
                f"Actions present in both block and approval lists resolve to STOP: "
                f"{sorted(overlap)}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy_id": self.policy_id,
            "stop_threshold": self.stop_threshold,
            "hold_threshold": self.hold_threshold,
            "max_score": self.max_score,
            "block_list_score": self.block_list_score,
            "approval_list_score": self.approval_list_score,
            "weights": dict(self.weights),
            "block_list": list(self.block_list),
            "approval_list": list(self.approval_list),
            "log_path": str(self.log_path),
            "proof_dir": str(self.proof_dir),
            "source": self.source,
            "log_level": self.log_level,
        }

    @classmethod
    def from_env(cls) -> "GateConfig":
        """Load configuration from environment variables."""
        return cls(**_env_overrides())

    @classmethod
    def from_file(cls, path: Path) -> "GateConfig":
        """Load configuration from a YAML (or JSON) file."""
        return cls(**_read_config_file(Path(path)))


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    string_vars = {
        "EAR_POLICY_ID": "policy_id",
        "EAR_LOG_PATH": "log_path",
        "EAR_PROOF_DIR": "proof_dir",
        "EAR_SOURCE": "source",
        "EAR_LOG_LEVEL": "log_level",
    }
    int_vars = {
        "EAR_STOP_THRESHOLD": "stop_threshold",
        "EAR_HOLD_THRESHOLD": "hold_threshold",
    }
    for var, name in string_vars.items():
        value = os.getenv(var)
        if value:
            overrides[name] = value
    for var, name in int_vars.items():
        value = os.getenv(var)
        if value:
            try:
                overrides[name] = int(value)
            except ValueError as e:
                raise ConfigError(f"{var} must be an integer, got {value!r}") from e
    return overrides


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    known = {f.name for f in fields(GateConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(
            f"Unknown config keys in {path}: {sorted(unknown)}",
            details={"unknown": sorted(unknown)},
        )
    return data


def load_config(path: Optional[Path] = None) -> GateConfig:
    """
    Build the effective configuration.

    File values first, then environment overrides, then validation.
    """
    values: Dict[str, Any] = {}
    if path is not None:
        values.update(_read_config_file(Path(path)))
    values.update(_env_overrides())

    config = GateConfig(**values).validate()
    logger.info(
        f"Gate config loaded: policy={config.policy_id} "
        f"stop>={config.stop_threshold} hold>={config.hold_threshold} "
        f"log={config.log_path}"
    )
    return config
