"""
Models package initialization
Import all models and setup relationships
"""

from .attempt import Attempt, AttemptStatus, ProctoringState
from .question import Question

# Import and setup relationships
from .relations import setup_relationships
from .test import Test

# Setup all relationships after models are imported
setup_relationships()

# Make models available at package level
__all__ = [
    "Attempt",
    "AttemptStatus",
    "ProctoringState",
    "Question",
    "Test",
]
