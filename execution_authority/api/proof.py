"""
/v1/proof - Proof manifest and chain verification endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter

from ..service.audit.decision_log import DecisionLog
from ..service.audit.manifest import ProofManifestGenerator

logger = logging.getLogger(__name__)


def create_proof_routes(
    decision_log: DecisionLog, generator: ProofManifestGenerator
) -> APIRouter:
    """Create FastAPI routes for proof artifacts."""
    router = APIRouter(prefix="/v1/proof", tags=["proof"])

    @router.get("/manifest")
    def get_manifest(session_id: Optional[str] = None, latest_session: bool = False):
        """Regenerate the proof manifest from the decision log."""
        manifest = generator.generate(
            session_id=session_id, latest_session_only=latest_session
        )
        return manifest.to_dict()

    @router.get("/verify")
    def verify_chain():
        """Verify the decision log hash chain."""
        return decision_log.verify_chain().to_dict()

    @router.get("/recent")
    def get_recent(limit: int = 50):
        """Most recent log entries (newest first)."""
        return {"entries": decision_log.get_recent(limit=limit)}

    return router
