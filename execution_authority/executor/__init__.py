"""
ALLOW-only execution package.

Imported exclusively by entry points (main, cli). Deployments that must not
ship an execution path can omit this package entirely.
"""

from .echo import echo_executor

__all__ = ["echo_executor"]
