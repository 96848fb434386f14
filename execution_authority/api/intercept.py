"""
/v1/tool-calls - Agent tool-call interception endpoint.

Evaluates an intercepted tool call and returns the verdict. This endpoint
never executes anything: the response only reports what was decided and
where the proof was recorded.
"""

import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..core.errors import AuthorityError
from ..dispatcher import VerdictDispatcher

logger = logging.getLogger(__name__)


class ToolCallMetadata(BaseModel):
    """Where the tool call came from."""

    source: Optional[str] = None
    timestamp: Optional[int] = None
    session_id: Optional[str] = None


class ToolCallRequest(BaseModel):
    """Intercepted agent tool call."""

    tool_name: Optional[str] = None
    arguments: Optional[Dict[str, Any]] = None
    metadata: Optional[ToolCallMetadata] = None


class InterceptResponse(BaseModel):
    """Verdict for an intercepted tool call."""

    decision: Literal["STOP", "HOLD", "ALLOW"]
    decision_hash: str
    reason: str
    risk_score: int
    requires_approval: bool = False
    executed: bool = False
    proof_path: Optional[str] = None
    metadata: Dict[str, Any] = {}


def create_intercept_routes(dispatcher: VerdictDispatcher) -> APIRouter:
    """Create FastAPI routes for tool-call interception."""
    router = APIRouter(prefix="/v1", tags=["intercept"])

    @router.post("/tool-calls", response_model=InterceptResponse)
    def intercept_tool_call(request: ToolCallRequest):
        """
        Decide on a tool call without executing it.

        STOP/HOLD/ALLOW are all 200 responses; malformed calls are 400 and
        audit write failures are 503.
        """
        metadata: Dict[str, Any] = {}
        if request.metadata:
            metadata = {
                "source": request.metadata.source,
                "timestamp": request.metadata.timestamp,
                "session_id": request.metadata.session_id,
            }

        payload: Dict[str, Any] = {
            "tool_name": request.tool_name,
            "arguments": request.arguments,
            "metadata": metadata,
        }

        try:
            capability = dispatcher.dispatch_tool_call(payload)
        except AuthorityError as e:
            logger.warning(f"Tool call rejected: {e}")
            raise HTTPException(status_code=e.http_status, detail=e.as_dict())

        decision = capability.decision
        return InterceptResponse(
            decision=decision.verdict.value,
            decision_hash=decision.fingerprint,
            reason=decision.reason,
            risk_score=decision.risk_score,
            requires_approval=getattr(capability, "requires_approval", False),
            executed=False,
            proof_path=capability.proof_path,
            metadata={"rule": decision.rule.value, "policy_id": decision.policy_id},
        )

    @router.get("/stats")
    def get_stats():
        """Dispatch counters."""
        return dispatcher.get_stats()

    return router
