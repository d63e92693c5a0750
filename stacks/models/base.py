"""
Candidate Specifications
========================

Uniform capability interface for candidate fitting procedures:

    model = spec.fit(X, y)
    predictions = spec.predict(model, X_new)

Regression specs return one prediction per row. Classification specs
return a DataFrame of class probabilities whose columns are class labels.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd

from ..core.types import Mode


class CandidateSpec(ABC):
    """Abstract base class for candidate fitting procedures."""

    mode: Mode = Mode.REGRESSION

    @abstractmethod
    def fit(self, X, y) -> Any:
        """Fit on (X, y) and return the fitted model."""
        pass

    @abstractmethod
    def predict(self, model: Any, X):
        """Predict with a model returned by fit()."""
        pass

    @property
    def params(self) -> Dict[str, Any]:
        """Hyper-parameters describing this specification."""
        return {}


class FunctionSpec(CandidateSpec):
    """
    Candidate built from two plain callables.

    Example:
        spec = FunctionSpec(
            fit_fn=lambda X, y: np.polyfit(X[:, 0], y, 1),
            predict_fn=lambda coefs, X: np.polyval(coefs, X[:, 0]),
        )
    """

    def __init__(
        self,
        fit_fn: Callable[[Any, Any], Any],
        predict_fn: Callable[[Any, Any], Any],
        mode: str = "regression",
        params: Optional[Dict[str, Any]] = None
    ):
        self.fit_fn = fit_fn
        self.predict_fn = predict_fn
        self.mode = Mode(mode)
        self._params = dict(params or {})

    def fit(self, X, y) -> Any:
        return self.fit_fn(X, y)

    def predict(self, model: Any, X):
        return self.predict_fn(model, X)

    @property
    def params(self) -> Dict[str, Any]:
        return dict(self._params)

    def __repr__(self) -> str:
        fit_name = getattr(self.fit_fn, '__name__', type(self.fit_fn).__name__)
        return f"FunctionSpec(fit_fn={fit_name}, mode={self.mode.value})"


def take_rows(data, idx):
    """Positional row selection for DataFrames, Series and arrays."""
    if hasattr(data, 'iloc'):
        return data.iloc[idx]
    return np.asarray(data)[idx]


def as_prediction_frame(
    preds,
    mode: Mode,
    classes: List[Any],
    index: pd.Index
) -> pd.DataFrame:
    """
    Normalize raw spec output into a prediction frame.

    Regression output becomes a single ``.pred`` column. Classification
    output becomes one probability column per class, in ``classes`` order;
    classes a model never saw get probability 0.
    """
    mode = Mode(mode)

    if mode == Mode.REGRESSION:
        values = np.asarray(preds, dtype=float)
        if values.ndim == 2 and values.shape[1] == 1:
            values = values[:, 0]
        if values.ndim != 1:
            raise ValueError(f"Regression predictions must be 1-D, got shape {values.shape}")
        if len(values) != len(index):
            raise ValueError(f"Got {len(values)} predictions for {len(index)} rows")
        return pd.DataFrame({'.pred': values}, index=index)

    if isinstance(preds, pd.DataFrame):
        unknown = [c for c in preds.columns if c not in classes]
        if unknown:
            raise ValueError(f"Predicted classes {unknown} are not outcome classes {classes}")
        frame = preds.reindex(columns=classes, fill_value=0.0).astype(float)
        values = frame.to_numpy()
    else:
        values = np.asarray(preds, dtype=float)
        if values.ndim != 2 or values.shape[1] != len(classes):
            raise ValueError(
                f"Class probabilities must have shape (n, {len(classes)}), got {values.shape}"
            )

    if len(values) != len(index):
        raise ValueError(f"Got {len(values)} predictions for {len(index)} rows")

    return pd.DataFrame(values, index=index, columns=list(classes))
