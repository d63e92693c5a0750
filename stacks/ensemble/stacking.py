"""
Model Stack
===========

User-facing pipeline for building stacked ensembles:

    ensemble = (
        stacks()
        .add_candidates(ridge_candidates, name="ridge")
        .add_candidates(forest_candidate)
        .blend_predictions()
        .fit_members(X_train, y_train)
    )
    ensemble.predict(X_test)

Stages:
1. add_candidates: register held-out predictions (Candidate Registry)
2. blend_predictions: fit the regularized blend (Blending Solver)
3. fit_members: refit non-zero members on all data (Member Refitter)
4. predict: combine member predictions (Prediction Dispatcher)

Each stage consumes the complete output of the previous one.
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd

from ..core.config import StackConfig, validate_blend
from ..core.exceptions import NotFittedError
from ..core.types import Candidate, Mode, RegistryHandle
from .blending import BlendingSolver, BlendModel
from .fitted import FittedEnsemble
from .refit import MemberRefitter
from .registry import CandidateRegistry
from .summaries import collect_parameters, format_summary, glance_blend, tidy_blend

logger = logging.getLogger(__name__)


class ModelStack:
    """
    Data stack of candidate predictions and, once blended, its blend.

    Parameters:
    -----------
    config : StackConfig
        Registry, blending and refit settings
    """

    def __init__(self, config: Optional[StackConfig] = None):
        self.config = config or StackConfig()
        self.config.validate()

        self.registry = CandidateRegistry(self.config.registry)
        self.blend_model: Optional[BlendModel] = None
        self.handles: List[RegistryHandle] = []

    @property
    def candidates(self):
        return self.registry.candidates

    @property
    def mode(self) -> Optional[Mode]:
        return self.registry.mode

    @property
    def partition(self):
        return self.registry.partition

    @property
    def data_stack(self) -> pd.DataFrame:
        """Stacked predictions with the outcome as the first column."""
        matrix, outcome = self.registry.stacked_matrix()
        return pd.concat([outcome, matrix], axis=1)

    def __len__(self) -> int:
        return len(self.registry)

    def add_candidates(
        self,
        candidates: Union[Candidate, Iterable[Candidate]],
        name: Optional[str] = None,
        partition=None
    ) -> "ModelStack":
        """
        Register a candidate or a candidate family.

        Args:
            candidates: One Candidate or an iterable of Candidates
            name: Family name recorded on every candidate without one
            partition: Partition the predictions were produced on
                (defaults to each candidate's own partition)

        Returns:
            self, for chaining

        Raises:
            PartitionMismatch, DuplicateCandidate: nothing is registered
        """
        if isinstance(candidates, Candidate):
            candidates = [candidates]
        candidates = list(candidates)

        if name is not None:
            candidates = [c if c.family is not None else replace(c, family=name) for c in candidates]

        self.handles.extend(self.registry.register_many(candidates, partition))

        if self.blend_model is not None:
            logger.info("New candidates invalidate the previous blend")
            self.blend_model = None

        return self

    def blend_predictions(
        self,
        penalty: Optional[Union[float, Sequence[float]]] = None,
        mixture: Optional[float] = None,
        non_negative: Optional[bool] = None,
        metric: Optional[str] = None,
        n_folds: Optional[int] = None
    ) -> "ModelStack":
        """
        Fit the blend over the registered candidates.

        Arguments override the configured BlendConfig for this call.

        Raises:
            NotFittedError: no candidates registered
            SolverNonConvergence: solver ran out of iterations
        """
        overrides = {}
        if penalty is not None:
            if isinstance(penalty, (int, float)):
                penalty = [penalty]
            overrides['penalty'] = tuple(float(p) for p in penalty)
        if mixture is not None:
            overrides['mixture'] = mixture
        if non_negative is not None:
            overrides['non_negative'] = non_negative
        if metric is not None:
            overrides['metric'] = metric
        if n_folds is not None:
            overrides['n_folds'] = n_folds

        blend_config = replace(self.config.blend, **overrides)
        validate_blend(blend_config)

        matrix, outcome = self.registry.stacked_matrix()
        self.blend_model = BlendingSolver(blend_config).fit(
            matrix, outcome, layout=self.registry.layout()
        )
        return self

    def fit_members(self, X, y) -> FittedEnsemble:
        """
        Refit members with non-zero coefficients on the full training set.

        Args:
            X: Training features (same rows the partition was built on)
            y: Training outcome

        Raises:
            NotFittedError: blend_predictions() has not been called
        """
        if self.blend_model is None:
            raise NotFittedError("Call blend_predictions() before fit_members()")

        fitted = MemberRefitter(self.config.refit).refit(
            self.registry.candidates, self.blend_model, X, y
        )
        matrix, outcome = self.registry.stacked_matrix()
        fitted.data_stack = matrix
        fitted.outcome = outcome
        return fitted

    def tidy(self) -> pd.DataFrame:
        return tidy_blend(self._require_blend())

    def glance(self) -> pd.DataFrame:
        return glance_blend(self._require_blend(), len(self))

    def collect_parameters(self, family: str) -> pd.DataFrame:
        """Hyper-parameters of a candidate family (plus coefficients once blended)."""
        candidates = self.registry.candidates
        weights = self.blend_model.candidate_weights() if self.blend_model is not None else None
        return collect_parameters(
            {name: c.params for name, c in candidates.items()},
            {name: c.family for name, c in candidates.items()},
            family,
            weights,
        )

    def autoplot(self, type: str = "performance"):
        from ..plotting import autoplot
        return autoplot(self._require_blend(), type=type)

    def _require_blend(self) -> BlendModel:
        if self.blend_model is None:
            raise NotFittedError("Call blend_predictions() first")
        return self.blend_model

    def summary(self) -> str:
        return format_summary("MODEL STACK", n_candidates=len(self), blend_model=self.blend_model)

    def __repr__(self) -> str:
        mode = self.mode.value if self.mode is not None else "empty"
        state = "blended" if self.blend_model is not None else "unblended"
        return f"ModelStack(mode={mode}, candidates={len(self)}, {state})"


def stacks(config: Optional[StackConfig] = None) -> ModelStack:
    """Start an empty model stack."""
    return ModelStack(config)
