"""
Policy evaluation for the Execution Authority Runtime.
"""

from .verdict_engine import VerdictEngine

__all__ = [
    "VerdictEngine",
]
