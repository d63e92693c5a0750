"""
Fitted Ensemble
===============

Terminal artifact of the stacking pipeline: the blend plus its refit
members. Predicts on new data, exposes per-member predictions and the
coefficient table, and persists with joblib.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import joblib
import pandas as pd

from ..core.types import Mode
from ..models.base import CandidateSpec
from .blending import BlendModel
from .dispatch import PredictionDispatcher
from .summaries import collect_parameters, format_summary, glance_blend, tidy_blend

logger = logging.getLogger(__name__)


@dataclass
class FittedEnsemble:
    """
    Blend model plus the members that were refit on the full training set.

    blend_model holds the coefficients in use (after any renormalization
    for dropped members); original_coefficients keeps the solver's output.
    """
    blend_model: BlendModel
    members: Dict[str, Any]
    specs: Dict[str, CandidateSpec]
    original_coefficients: pd.Series
    dropped: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    families: Dict[str, Optional[str]] = field(default_factory=dict)
    data_stack: Optional[pd.DataFrame] = None
    outcome: Optional[pd.Series] = None

    @property
    def mode(self) -> Mode:
        return self.blend_model.mode

    @property
    def classes(self) -> List[Any]:
        return self.blend_model.classes

    @property
    def member_names(self) -> List[str]:
        return list(self.members)

    @property
    def coefficients(self) -> pd.Series:
        return self.blend_model.coefficients.copy()

    @property
    def is_empty(self) -> bool:
        return not self.members

    def member_weights(self) -> pd.Series:
        """Total coefficient per surviving member."""
        weights = self.blend_model.candidate_weights()
        return weights[weights.index.isin(self.member_names)]

    def predict(
        self,
        new_data,
        mode: str = "ensemble",
        type: Optional[str] = None,
        n_jobs: int = 1,
        backend: str = "threading"
    ) -> pd.DataFrame:
        """
        Predict on new data.

        Args:
            new_data: Feature rows in the training schema
            mode: 'ensemble' (blended) or 'members' (one column per member)
            type: 'numeric' for regression; 'class' (default) or 'prob'
                for classification
            n_jobs: Members to predict concurrently
            backend: joblib backend

        Raises:
            EmptyEnsemble: the ensemble has no members
        """
        dispatcher = PredictionDispatcher(n_jobs=n_jobs, backend=backend)
        return dispatcher.predict(self, new_data, mode=mode, type=type)

    def tidy(self) -> pd.DataFrame:
        """Coefficient table of the blend in use."""
        return tidy_blend(self.blend_model)

    def glance(self) -> pd.DataFrame:
        """One-row summary."""
        summary = glance_blend(self.blend_model, len(self.params), len(self.members))
        summary['n_dropped'] = len(self.dropped)
        return summary

    def augment(self, data: pd.DataFrame, type: Optional[str] = None) -> pd.DataFrame:
        """Return ``data`` with the ensemble's prediction columns appended."""
        predictions = self.predict(data, type=type)
        predictions.index = data.index
        return pd.concat([data, predictions], axis=1)

    def collect_parameters(self, family: str) -> pd.DataFrame:
        """Hyper-parameters and final coefficient of every candidate in a family."""
        return collect_parameters(
            self.params, self.families, family, self.blend_model.candidate_weights()
        )

    def autoplot(self, type: str = "performance"):
        """plotly figure of the penalty path or the member weights."""
        from ..plotting import autoplot
        return autoplot(self.blend_model, type=type, weights=self.member_weights())

    def axe_data(self) -> "FittedEnsemble":
        """Drop the stored stacked matrix and outcome; prediction still works."""
        self.data_stack = None
        self.outcome = None
        return self

    def save(self, path: Union[str, Path]):
        """Save ensemble to a directory (members must be picklable)."""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        member_files = {name: f'member_{i}.joblib' for i, name in enumerate(self.members)}

        joblib.dump(self.blend_model, path / 'blend_model.joblib')
        joblib.dump({
            'original_coefficients': self.original_coefficients,
            'dropped': self.dropped,
            'params': self.params,
            'families': self.families,
            'members': list(self.members),
            'member_files': member_files,
        }, path / 'manifest.joblib')

        for name, model in self.members.items():
            joblib.dump({'spec': self.specs[name], 'model': model}, path / member_files[name])

        logger.info(f"Ensemble with {len(self.members)} members saved to {path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "FittedEnsemble":
        """Load an ensemble saved with save()."""
        path = Path(path)

        blend_model = joblib.load(path / 'blend_model.joblib')
        manifest = joblib.load(path / 'manifest.joblib')

        members = {}
        specs = {}
        for name in manifest['members']:
            bundle = joblib.load(path / manifest['member_files'][name])
            members[name] = bundle['model']
            specs[name] = bundle['spec']

        logger.info(f"Ensemble loaded from {path}")
        return cls(
            blend_model=blend_model,
            members=members,
            specs=specs,
            original_coefficients=manifest['original_coefficients'],
            dropped=manifest['dropped'],
            params=manifest['params'],
            families=manifest['families'],
        )

    def summary(self) -> str:
        return format_summary(
            "FITTED ENSEMBLE",
            n_candidates=len(self.params),
            blend_model=self.blend_model,
            members=self.member_names,
            dropped=self.dropped,
        )

    def __repr__(self) -> str:
        return (
            f"FittedEnsemble(mode={self.mode.value}, members={len(self.members)}, "
            f"dropped={len(self.dropped)}, penalty={self.blend_model.penalty:g})"
        )
