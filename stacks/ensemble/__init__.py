"""
Ensemble Module
================

Stacked ensembles built from held-out candidate predictions.

Candidates are blended with a non-negative elastic net; only candidates
with a non-zero coefficient are refit and used for prediction.
"""

from .registry import CandidateRegistry
from .blending import BlendingSolver, BlendModel
from .refit import MemberRefitter
from .dispatch import PredictionDispatcher
from .fitted import FittedEnsemble
from .stacking import ModelStack, stacks

__all__ = [
    'CandidateRegistry',
    'BlendingSolver',
    'BlendModel',
    'MemberRefitter',
    'PredictionDispatcher',
    'FittedEnsemble',
    'ModelStack',
    'stacks',
]
