"""
Prediction Dispatcher
=====================

Turns refit members into predictions.

mode="ensemble": one blended prediction per row.
    regression      -> intercept + sum(coef * member prediction)
    classification  -> weighted class probabilities, renormalized to 1
mode="members": one unweighted column per surviving member.
"""

import logging
from typing import Any, List, Optional

import numpy as np
import pandas as pd
from joblib import delayed

from ..core.exceptions import EmptyEnsemble
from ..core.parallel import run_tasks
from ..core.types import Mode, StackLayout, stack_column
from ..models.base import CandidateSpec, as_prediction_frame

logger = logging.getLogger(__name__)

PREDICTION_MODES = ('ensemble', 'members')


def _member_frame(
    name: str,
    spec: CandidateSpec,
    model: Any,
    new_data,
    layout: StackLayout,
    index: pd.Index
) -> pd.DataFrame:
    preds = spec.predict(model, new_data)
    frame = as_prediction_frame(preds, layout.mode, list(layout.classes), index)
    if layout.mode == Mode.REGRESSION:
        frame.columns = [stack_column(name)]
    else:
        frame.columns = [stack_column(name, cls) for cls in layout.classes]
    return frame


def _row_index(new_data) -> pd.Index:
    if isinstance(new_data, (pd.DataFrame, pd.Series)):
        return new_data.index
    return pd.RangeIndex(len(new_data))


class PredictionDispatcher:
    """
    Predicts with a FittedEnsemble.

    Parameters:
    -----------
    n_jobs : int
        Members to predict concurrently
    backend : str
        joblib backend
    """

    def __init__(self, n_jobs: int = 1, backend: str = "threading"):
        self.n_jobs = n_jobs
        self.backend = backend

    @staticmethod
    def resolve_type(layout_mode: Mode, type: Optional[str]) -> str:
        if layout_mode == Mode.REGRESSION:
            if type not in (None, 'numeric'):
                raise ValueError(f"Regression stacks only predict type='numeric', got '{type}'")
            return 'numeric'
        if type is None:
            return 'class'
        if type not in ('class', 'prob'):
            raise ValueError(f"Classification predictions use type='class' or 'prob', got '{type}'")
        return type

    def member_predictions(self, fitted, new_data) -> List[pd.DataFrame]:
        """Raw per-member prediction frames, named by stacked column."""
        layout = fitted.blend_model.layout
        index = _row_index(new_data)
        return run_tasks(
            (
                delayed(_member_frame)(name, fitted.specs[name], model, new_data, layout, index)
                for name, model in fitted.members.items()
            ),
            n_jobs=self.n_jobs,
            backend=self.backend,
        )

    def predict(
        self,
        fitted,
        new_data,
        mode: str = "ensemble",
        type: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Predict on new rows with the training schema.

        Args:
            fitted: FittedEnsemble
            new_data: Feature rows
            mode: 'ensemble' or 'members'
            type: 'numeric' (regression), 'class' or 'prob' (classification)

        Returns:
            DataFrame indexed like new_data

        Raises:
            EmptyEnsemble: no member survived selection and refitting
        """
        if mode not in PREDICTION_MODES:
            raise ValueError(f"mode must be one of {PREDICTION_MODES}, got '{mode}'")

        if not fitted.members:
            raise EmptyEnsemble(
                "The ensemble has no members: every blending coefficient is zero "
                "or every selected member failed to refit"
            )

        layout = fitted.blend_model.layout
        pred_type = self.resolve_type(layout.mode, type)
        index = _row_index(new_data)
        frames = self.member_predictions(fitted, new_data)

        if mode == "members":
            return self._members_output(frames, list(fitted.members), layout, pred_type, index)

        stacked = pd.concat(frames, axis=1)
        blended = fitted.blend_model.combine(stacked)

        if layout.mode == Mode.REGRESSION:
            return pd.DataFrame({'.pred': blended}, index=index)

        if pred_type == 'prob':
            return pd.DataFrame(
                blended, index=index, columns=[f".pred_{cls}" for cls in layout.classes]
            )

        labels = np.asarray(layout.classes, dtype=object)[np.argmax(blended, axis=1)]
        return pd.DataFrame({'.pred_class': labels}, index=index)

    @staticmethod
    def _members_output(
        frames: List[pd.DataFrame],
        names: List[str],
        layout: StackLayout,
        pred_type: str,
        index: pd.Index
    ) -> pd.DataFrame:
        if layout.mode == Mode.REGRESSION or pred_type == 'prob':
            return pd.concat(frames, axis=1)

        classes = np.asarray(layout.classes, dtype=object)
        labels = {
            name: classes[np.argmax(frame.to_numpy(), axis=1)]
            for name, frame in zip(names, frames)
        }
        return pd.DataFrame(labels, index=index)
