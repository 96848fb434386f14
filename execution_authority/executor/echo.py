"""
Echo Executor - placeholder for the real tool runtime.

Only ever reached through an ALLOW capability. Core and service modules must
not import this package; entry points inject it into the dispatcher.
"""

import logging
from typing import Any, Dict

from ..core.proposal import now_ms

logger = logging.getLogger(__name__)


async def echo_executor(action: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
    """
    Log and echo the requested action.

    Returns:
        {success, result} per the executor contract
    """
    started = now_ms()
    logger.info(f"Executing action: {action}")
    logger.debug(f"Arguments: {arguments}")

    return {
        "success": True,
        "result": {
            "tool_name": action,
            "status": "executed",
            "arguments": arguments,
            "timestamp": started,
        },
    }
