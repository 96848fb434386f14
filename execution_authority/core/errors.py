"""
Error taxonomy for the Execution Authority Runtime.

Every error carries a stable machine-readable code so transport layers
(HTTP routes, CLI) can react without parsing messages.

Propagation rules:
- ValidationError: raised before classification, nothing is recorded
- ClassificationError: dispatch aborts fail-closed, never defaults to ALLOW
- LogWriteError: the whole dispatch fails, a decision is not valid until observable
- CapabilityMisuseError: caller tried to reach an execution handle that does not exist
"""

from typing import Any, Dict, Optional


EAR_E_VALIDATION = "EAR_E_VALIDATION"
EAR_E_CLASSIFICATION = "EAR_E_CLASSIFICATION"
EAR_E_LOG_WRITE = "EAR_E_LOG_WRITE"
EAR_E_CAPABILITY_MISUSE = "EAR_E_CAPABILITY_MISUSE"
EAR_E_CONFIG = "EAR_E_CONFIG"


class AuthorityError(Exception):
    """Base error with stable code."""

    code = "EAR_E_INTERNAL"
    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "http_status": self.http_status,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(AuthorityError):
    """Malformed proposal (missing action, non-mapping arguments)."""

    code = EAR_E_VALIDATION
    http_status = 400


class ClassificationError(AuthorityError):
    """Risk classification or verdict evaluation failed."""

    code = EAR_E_CLASSIFICATION
    http_status = 500


class LogWriteError(AuthorityError):
    """Audit log append failed."""

    code = EAR_E_LOG_WRITE
    http_status = 503


class CapabilityMisuseError(AuthorityError, AttributeError):
    """
    Execution handle requested from a capability that cannot carry one.

    Subclasses AttributeError so hasattr() reports the handle as absent,
    while direct access still fails loudly with this error.
    """

    code = EAR_E_CAPABILITY_MISUSE
    http_status = 500


class ConfigError(AuthorityError):
    """Invalid gate configuration."""

    code = EAR_E_CONFIG
    http_status = 500
