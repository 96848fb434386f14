"""
Audit service - hash-linked decision log and proof manifests.
"""

from .decision_log import (
    AuditRecord,
    ChainVerification,
    DecisionLog,
    LogHandle,
)
from .manifest import ProofManifest, ProofManifestGenerator, verify_manifest

__all__ = [
    "AuditRecord",
    "ChainVerification",
    "DecisionLog",
    "LogHandle",
    "ProofManifest",
    "ProofManifestGenerator",
    "verify_manifest",
]
