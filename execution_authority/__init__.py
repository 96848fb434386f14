"""
Execution Authority Runtime

Verdict-gated execution for agent actions: every proposal is classified,
decided (STOP / HOLD / ALLOW), recorded, and only an ALLOW capability can
reach the executor.
"""

__version__ = "0.1.0"
