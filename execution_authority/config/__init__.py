"""
Configuration for the Execution Authority Runtime.
"""

from .gate_config import GateConfig, load_config

__all__ = [
    "GateConfig",
    "load_config",
]
