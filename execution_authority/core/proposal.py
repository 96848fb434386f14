"""
Proposal - Representation of an action an agent wants to perform.

This is the core input data structure: every verdict is a pure function of a
Proposal and the static policy tables.
"""

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .errors import ValidationError


# Argument keys probed (in order) when extracting the targeted resource
RESOURCE_FIELDS = ("path", "file", "resource", "target", "host", "url")
UNKNOWN_RESOURCE = "unknown"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ProposalMetadata:
    """Where a proposal came from."""

    source: str
    timestamp: int  # epoch ms
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
        }


@dataclass(frozen=True)
class Proposal:
    """
    A requested action awaiting a verdict.

    Immutable once constructed: arguments are copied into read-only mappings
    and tuples all the way down.
    """

    action: str
    resource: str
    arguments: Mapping[str, Any]
    metadata: ProposalMetadata = field(
        default_factory=lambda: ProposalMetadata(source="agent", timestamp=now_ms())
    )

    @classmethod
    def create(
        cls,
        action: Any,
        arguments: Any = None,
        resource: Optional[str] = None,
        source: str = "agent",
        timestamp: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> "Proposal":
        """
        Validate inputs and build a Proposal.

        Raises ValidationError if the action is missing or the arguments are
        not a key/value mapping.
        """
        validate_proposal_fields(action, arguments)
        args = freeze_arguments(arguments)

        return cls(
            action=action,
            resource=resource if resource else extract_resource(args),
            arguments=args,
            metadata=ProposalMetadata(
                source=source,
                timestamp=timestamp if timestamp is not None else now_ms(),
                session_id=session_id,
            ),
        )

    @classmethod
    def from_tool_call(cls, payload: Mapping[str, Any]) -> "Proposal":
        """
        Convert an agent tool_call payload into a Proposal.

        Payload shape: {tool_name, arguments, metadata?: {source, timestamp, session_id}}
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("Tool call payload must be an object")

        metadata = payload.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise ValidationError("Tool call metadata must be an object")

        return cls.create(
            action=payload.get("tool_name"),
            arguments=payload.get("arguments"),
            source=metadata.get("source") or "agent",
            timestamp=metadata.get("timestamp"),
            session_id=metadata.get("session_id"),
        )

    def arguments_dict(self) -> Dict[str, Any]:
        """Plain-dict copy of the arguments for serialization."""
        return thaw(self.arguments)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "action": self.action,
            "resource": self.resource,
            "arguments": self.arguments_dict(),
            "metadata": self.metadata.to_dict(),
        }


def validate_proposal_fields(action: Any, arguments: Any) -> None:
    """
    Validate raw proposal fields.

    Raises ValidationError if issues found.
    """
    if action is None:
        raise ValidationError("Proposal is missing an action")
    if not isinstance(action, str) or not action.strip():
        raise ValidationError(
            "Proposal action must be a non-empty string",
            details={"action": repr(action)},
        )
    if arguments is None:
        raise ValidationError(
            "Proposal is missing arguments", details={"action": action}
        )
    if not isinstance(arguments, Mapping):
        raise ValidationError(
            "Proposal arguments must be a key/value mapping",
            details={"action": action, "type": type(arguments).__name__},
        )


def extract_resource(arguments: Mapping[str, Any]) -> str:
    """Best-effort resource identifier from common argument names."""
    for name in RESOURCE_FIELDS:
        value = arguments.get(name)
        if value:
            return str(value)
    return UNKNOWN_RESOURCE


# Scalar argument types; anything else has no single canonical JSON form
SCALAR_TYPES = (str, int, float, bool, type(None))


def freeze_arguments(arguments: Mapping[str, Any]) -> Mapping[str, Any]:
    """
    Deep read-only copy of proposal arguments.

    Mappings become MappingProxyType and lists/tuples become tuples. Values
    without a canonical JSON form (sets, bytes, objects, non-string keys)
    raise ValidationError.
    """
    return _freeze(arguments, "arguments")


def _freeze(value: Any, path: str) -> Any:
    if isinstance(value, SCALAR_TYPES):
        return value

    if isinstance(value, Mapping):
        frozen = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(
                    f"Argument keys must be strings at {path}",
                    details={"path": path, "key": repr(key)},
                )
            frozen[key] = _freeze(item, f"{path}.{key}")
        return MappingProxyType(frozen)

    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item, f"{path}[{i}]") for i, item in enumerate(value))

    raise ValidationError(
        f"Unsupported argument value at {path}: {type(value).__name__}",
        details={"path": path, "type": type(value).__name__},
    )


def thaw(value: Any) -> Any:
    """Mutable plain-JSON copy of frozen arguments (dicts and lists)."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value
