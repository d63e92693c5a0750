"""
Candidate Models
================

Fitting procedures for stack candidates, all behind one interface:
``fit(X, y) -> model`` and ``predict(model, X) -> predictions``.
"""

from .base import CandidateSpec, FunctionSpec
from .sklearn_spec import SklearnSpec
from .neural import MLPNet, TorchMLPSpec
from .factory import make_spec, candidate_grid, create_base_specs

__all__ = [
    'CandidateSpec',
    'FunctionSpec',
    'SklearnSpec',
    'MLPNet',
    'TorchMLPSpec',
    'make_spec',
    'candidate_grid',
    'create_base_specs',
]
