"""
Execution Authority Runtime - HTTP Entry Point

Runs the verdict gate as an HTTP service on port 8766.

Endpoints:
- GET  /health               - Health check
- POST /v1/tool-calls        - Decide on an intercepted tool call (never executes)
- GET  /v1/stats             - Dispatch counters
- GET  /v1/proof/manifest    - Regenerate the proof manifest
- GET  /v1/proof/verify      - Verify the decision log hash chain
- GET  /v1/proof/recent      - Most recent log entries
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import __version__
from .api import create_intercept_routes, create_proof_routes
from .config import GateConfig, load_config
from .core.capability import Executor
from .dispatcher import VerdictDispatcher
from .executor import echo_executor
from .service.audit import DecisionLog, ProofManifestGenerator
from .service.policy import VerdictEngine

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("execution_authority.main")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for entry points."""
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )


def create_app(
    config: Optional[GateConfig] = None,
    executor: Optional[Executor] = None,
    decision_log: Optional[DecisionLog] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    The decision log is opened here and closed on shutdown; the executor is
    injected into the dispatcher and never reached by the HTTP routes.
    """
    config = config or load_config()
    decision_log = decision_log or DecisionLog(config.log_path)

    engine = VerdictEngine(config)
    dispatcher = VerdictDispatcher(engine, decision_log, executor or echo_executor)
    generator = ProofManifestGenerator(decision_log, proof_dir=config.proof_dir)

    app = FastAPI(
        title="Execution Authority Runtime",
        description="Verdict-gated execution for agent tool calls",
        version=__version__,
    )

    app.include_router(create_intercept_routes(dispatcher))
    app.include_router(create_proof_routes(decision_log, generator))

    app.state.config = config
    app.state.dispatcher = dispatcher
    app.state.decision_log = decision_log

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "execution-authority-runtime",
            "version": __version__,
            "policy_id": config.policy_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.on_event("startup")
    async def on_startup():
        logger.info(
            f"Execution authority starting (policy={config.policy_id}, "
            f"log={decision_log.log_file})"
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        """Release the decision log handle."""
        logger.info("Execution authority shutting down...")
        decision_log.close()

    return app


def main():
    """Run the HTTP service."""
    config = load_config()
    configure_logging(config.log_level)

    logger.info(f"Starting Execution Authority Runtime v{__version__}")
    logger.info("   Listening on http://localhost:8766")
    logger.info("   Endpoints:")
    logger.info("     - GET  /health")
    logger.info("     - POST /v1/tool-calls")
    logger.info("     - GET  /v1/proof/manifest")
    logger.info("     - GET  /v1/proof/verify")

    uvicorn.run(
        create_app(config, executor=echo_executor),
        host="127.0.0.1",
        port=8766,
        log_level="info",
        access_log=False,
    )


if __name__ == "__main__":
    main()
