"""
Risk classification for the Execution Authority Runtime.
"""

from .classifier import RiskClassifier, RiskAssessment

__all__ = [
    "RiskClassifier",
    "RiskAssessment",
]
