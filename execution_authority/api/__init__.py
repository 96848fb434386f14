"""
HTTP surface for the Execution Authority Runtime.
"""

from .intercept import create_intercept_routes
from .proof import create_proof_routes

__all__ = [
    "create_intercept_routes",
    "create_proof_routes",
]
