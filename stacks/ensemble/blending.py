"""
Blending Solver
===============

Fits the regularized linear model that combines candidate predictions.

Regression:
    outcome ~ intercept + sum_j w_j * pred_j        (ElasticNet, w_j >= 0)

Classification:
    for every class k, indicator(outcome == k) ~ sum_j w_jk * prob_jk
    (ElasticNet without intercept, w_jk >= 0). The blended probability
    of class k is the weighted sum, renormalized across classes.

The penalty is chosen by K-fold cross-validation inside the stacked
matrix with the one-standard-error rule: among penalties whose mean CV
error is within one standard error of the minimum, the largest (sparsest)
one wins.
"""

import logging
import warnings
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import delayed
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import ElasticNet
from sklearn.metrics import mean_absolute_error, mean_squared_error
from sklearn.model_selection import KFold

from ..core.config import BlendConfig, CLASSIFICATION_METRICS, REGRESSION_METRICS, validate_blend
from ..core.exceptions import SolverNonConvergence
from ..core.parallel import run_tasks
from ..core.types import Mode, StackLayout

logger = logging.getLogger(__name__)


@dataclass
class BlendModel:
    """Fitted blend: coefficients per stacked column plus the penalty path."""
    mode: Mode
    penalty: float
    best_penalty: float
    mixture: float
    metric: str
    non_negative: bool
    coefficients: pd.Series
    intercept: float
    layout: StackLayout
    path: pd.DataFrame = field(default_factory=pd.DataFrame)
    coef_path: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def classes(self) -> List[Any]:
        return list(self.layout.classes)

    @property
    def is_empty(self) -> bool:
        return not bool((self.coefficients != 0).any())

    def candidate_weights(self) -> pd.Series:
        """Total coefficient per candidate, in stack order."""
        weights = {
            name: float(self.coefficients[self.layout.columns_for_candidate(name)].sum())
            for name in self.layout.candidates
        }
        return pd.Series(weights, dtype=float)

    def selected_candidates(self) -> List[str]:
        """Candidates with at least one non-zero coefficient."""
        return [
            name for name in self.layout.candidates
            if (self.coefficients[self.layout.columns_for_candidate(name)] != 0).any()
        ]

    def with_coefficients(self, coefficients: pd.Series) -> "BlendModel":
        return replace(self, coefficients=coefficients.reindex(self.coefficients.index).fillna(0.0))

    def combine(self, stacked: pd.DataFrame) -> np.ndarray:
        """
        Blend a frame of stacked columns.

        Only columns with a non-zero coefficient are read.

        Returns:
            Regression: 1-D array. Classification: (n, n_classes) probabilities.
        """
        return combine(stacked, self.coefficients, self.intercept, self.layout)


def combine(
    stacked: pd.DataFrame,
    coefficients: pd.Series,
    intercept: float,
    layout: StackLayout
) -> np.ndarray:
    active = coefficients[coefficients != 0]

    if layout.mode == Mode.REGRESSION:
        if active.empty:
            return np.full(len(stacked), intercept, dtype=float)
        return intercept + stacked[active.index].to_numpy(dtype=float) @ active.to_numpy()

    n_classes = len(layout.classes)
    scores = np.zeros((len(stacked), n_classes))
    for k, cls in enumerate(layout.classes):
        cols = [c for c in layout.columns_for_class(cls) if c in active.index]
        if cols:
            scores[:, k] = stacked[cols].to_numpy(dtype=float) @ active[cols].to_numpy()

    scores = np.clip(scores, 0.0, None)
    totals = scores.sum(axis=1, keepdims=True)
    uniform = np.full_like(scores, 1.0 / n_classes)
    safe_totals = np.where(totals > 0, totals, 1.0)
    return np.where(totals > 0, scores / safe_totals, uniform)


def _score(metric: str, y_true: np.ndarray, pred: np.ndarray, classes: Sequence[Any]) -> float:
    if metric == 'rmse':
        return float(np.sqrt(mean_squared_error(y_true, pred)))
    if metric == 'mae':
        return float(mean_absolute_error(y_true, pred))
    onehot = (np.asarray(y_true)[:, None] == np.asarray(classes)[None, :]).astype(float)
    if metric == 'brier':
        return float(np.mean(np.sum((pred - onehot) ** 2, axis=1)))
    if metric == 'log_loss':
        return float(-np.mean(np.sum(onehot * np.log(np.clip(pred, 1e-15, 1.0)), axis=1)))
    raise ValueError(f"Unknown metric: {metric}")


class BlendingSolver:
    """
    Regularized stacking solver.

    Parameters:
    -----------
    config : BlendConfig
        Penalty grid, mixture, sign constraint, metric, CV folds,
        iteration budget and worker pool settings
    """

    def __init__(self, config: Optional[BlendConfig] = None):
        self.config = config or BlendConfig()
        validate_blend(self.config)

    def _metric_for(self, mode: Mode) -> str:
        metric = self.config.metric
        if metric is None:
            return 'rmse' if mode == Mode.REGRESSION else 'brier'
        allowed = REGRESSION_METRICS if mode == Mode.REGRESSION else CLASSIFICATION_METRICS
        if metric not in allowed:
            raise ValueError(f"Metric '{metric}' does not apply to {mode.value}; use one of {allowed}")
        return metric

    def _elastic_net(self, penalty: float, fit_intercept: bool) -> ElasticNet:
        return ElasticNet(
            alpha=penalty,
            l1_ratio=self.config.mixture,
            fit_intercept=fit_intercept,
            positive=self.config.non_negative,
            max_iter=self.config.max_iter,
            tol=self.config.tol,
        )

    def _fit_one(
        self,
        X: pd.DataFrame,
        y: np.ndarray,
        penalty: float,
        layout: StackLayout
    ) -> Tuple[pd.Series, float]:
        """Fit at a single penalty; returns (coefficients, intercept)."""
        coefs = pd.Series(0.0, index=X.columns)
        intercept = 0.0

        # non-convergence is detected through n_iter_
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', ConvergenceWarning)
            if layout.mode == Mode.REGRESSION:
                model = self._elastic_net(penalty, fit_intercept=True)
                model.fit(X.to_numpy(dtype=float), y.astype(float))
                self._check_converged(model, penalty)
                coefs[:] = model.coef_
                intercept = float(model.intercept_)
            else:
                for cls in layout.classes:
                    cols = layout.columns_for_class(cls)
                    target = (y == cls).astype(float)
                    model = self._elastic_net(penalty, fit_intercept=False)
                    model.fit(X[cols].to_numpy(dtype=float), target)
                    self._check_converged(model, penalty, cls)
                    coefs[cols] = model.coef_

        if self.config.non_negative:
            coefs = coefs.clip(lower=0.0)

        return coefs, intercept

    def _check_converged(self, model: ElasticNet, penalty: float, cls: Any = None):
        if model.n_iter_ >= self.config.max_iter:
            detail = f"class {cls}" if cls is not None else ""
            raise SolverNonConvergence(penalty, self.config.max_iter, detail)

    def _fold_errors(
        self,
        X: pd.DataFrame,
        y: np.ndarray,
        train_idx: np.ndarray,
        test_idx: np.ndarray,
        penalties: Sequence[float],
        layout: StackLayout,
        metric: str
    ) -> np.ndarray:
        """CV errors of one fold across the whole penalty grid."""
        X_train, y_train = X.iloc[train_idx], y[train_idx]
        X_test, y_test = X.iloc[test_idx], y[test_idx]

        errors = np.empty(len(penalties))
        for i, penalty in enumerate(penalties):
            coefs, intercept = self._fit_one(X_train, y_train, penalty, layout)
            pred = combine(X_test, coefs, intercept, layout)
            errors[i] = _score(metric, y_test, pred, layout.classes)
        return errors

    def fit(
        self,
        matrix: pd.DataFrame,
        outcomes,
        penalty_grid: Optional[Sequence[float]] = None,
        layout: Optional[StackLayout] = None
    ) -> BlendModel:
        """
        Fit the blend.

        Args:
            matrix: Stacked prediction matrix
            outcomes: True outcome per row
            penalty_grid: Penalties to sweep (defaults to the configured grid)
            layout: Column -> candidate/class mapping; plain regression
                layout (one candidate per column) when omitted

        Returns:
            BlendModel

        Raises:
            SolverNonConvergence: the solver ran out of iterations
        """
        if penalty_grid is not None:
            validate_blend(replace(self.config, penalty=tuple(penalty_grid)))
            penalties = penalty_grid
        else:
            penalties = self.config.penalty
        penalties = sorted(set(float(p) for p in penalties))

        layout = layout or StackLayout.for_regression(matrix.columns)
        missing = [c for c in layout.columns if c not in matrix.columns]
        if missing:
            raise ValueError(f"Layout columns missing from matrix: {missing}")
        matrix = matrix[layout.columns]

        y = np.asarray(outcomes)
        if len(y) != len(matrix):
            raise ValueError(f"outcomes has {len(y)} rows, matrix has {len(matrix)}")

        if len(matrix) < 2:
            raise ValueError(f"Blending needs at least 2 stacked rows, got {len(matrix)}")

        metric = self._metric_for(layout.mode)
        n_folds = min(self.config.n_folds, len(matrix))
        kfold = KFold(n_splits=n_folds, shuffle=True, random_state=self.config.random_state)

        logger.info(
            f"Blending {matrix.shape[1]} columns from {len(layout.candidates)} candidates "
            f"over {len(penalties)} penalties ({n_folds}-fold CV, metric={metric})"
        )

        fold_errors = run_tasks(
            (
                delayed(self._fold_errors)(matrix, y, train_idx, test_idx, penalties, layout, metric)
                for train_idx, test_idx in kfold.split(matrix)
            ),
            n_jobs=self.config.n_jobs,
            backend=self.config.backend,
        )
        errors = np.vstack(fold_errors)  # (n_folds, n_penalties)

        mean = errors.mean(axis=0)
        std_err = errors.std(axis=0, ddof=1) / np.sqrt(n_folds) if n_folds > 1 else np.zeros_like(mean)

        # full-data fits along the grid, for the coefficient path
        coef_path = {}
        intercepts = {}
        for penalty in penalties:
            coef_path[penalty], intercepts[penalty] = self._fit_one(matrix, y, penalty, layout)
        coef_frame = pd.DataFrame(coef_path).T
        coef_frame.index.name = 'penalty'

        path = pd.DataFrame({
            'penalty': penalties,
            'mean': mean,
            'std_err': std_err,
            'n_nonzero': [int((coef_path[p] != 0).sum()) for p in penalties],
            'n_members': [self._n_members(coef_path[p], layout) for p in penalties],
        })

        best_penalty, selected = self.select_penalty(path, one_se_rule=self.config.one_se_rule)

        model = BlendModel(
            mode=layout.mode,
            penalty=selected,
            best_penalty=best_penalty,
            mixture=self.config.mixture,
            metric=metric,
            non_negative=self.config.non_negative,
            coefficients=coef_path[selected].copy(),
            intercept=intercepts[selected],
            layout=layout,
            path=path,
            coef_path=coef_frame,
        )

        members = model.selected_candidates()
        logger.info(
            f"Selected penalty {selected:g} (best {best_penalty:g}); "
            f"{len(members)} of {len(layout.candidates)} candidates have non-zero weight"
        )
        if not members:
            logger.warning("All blending coefficients are zero; the ensemble will be empty")

        return model

    @staticmethod
    def _n_members(coefs: pd.Series, layout: StackLayout) -> int:
        nonzero = coefs[coefs != 0].index
        return len({layout.candidate_of(col) for col in nonzero})

    @staticmethod
    def select_penalty(path: pd.DataFrame, one_se_rule: bool = True) -> Tuple[float, float]:
        """
        Pick the penalty from a CV path.

        Returns:
            (best penalty, selected penalty). With the one-standard-error
            rule the selected penalty is the largest one whose mean error is
            within one standard error of the best; otherwise it is the best.
        """
        best_pos = int(np.argmin(path['mean'].to_numpy()))
        best = path.iloc[best_pos]
        best_penalty = float(best['penalty'])

        if not one_se_rule:
            return best_penalty, best_penalty

        threshold = best['mean'] + best['std_err']
        eligible = path[path['mean'] <= threshold]
        return best_penalty, float(eligible['penalty'].max())
