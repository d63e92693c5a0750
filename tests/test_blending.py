"""
Tests for the Blending Solver
=============================

Tests penalty selection, coefficient constraints, non-convergence and
the fitted blend on synthetic stacks with known weights.
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pandas as pd
from sklearn.linear_model import LogisticRegression
from sklearn.naive_bayes import GaussianNB

from stacks import (
    BlendConfig,
    BlendingSolver,
    CandidateRegistry,
    SklearnSpec,
    SolverNonConvergence,
    fit_resamples,
)
from stacks.core.types import Mode, StackLayout
from stacks.ensemble.blending import combine


def _registered(candidates):
    registry = CandidateRegistry()
    registry.register_many(candidates)
    matrix, outcome = registry.stacked_matrix()
    return matrix, outcome, registry.layout()


class TestSelectPenalty:
    """Test the one-standard-error rule."""

    @pytest.fixture
    def path(self):
        return pd.DataFrame({
            'penalty': [0.001, 0.01, 0.1, 1.0],
            'mean': [0.50, 0.40, 0.42, 0.60],
            'std_err': [0.05, 0.05, 0.05, 0.05],
        })

    def test_one_se_rule(self, path):
        best, selected = BlendingSolver.select_penalty(path, one_se_rule=True)
        assert best == 0.01
        assert selected == 0.1

    def test_without_rule(self, path):
        best, selected = BlendingSolver.select_penalty(path, one_se_rule=False)
        assert best == selected == 0.01

    def test_selected_is_never_below_best(self, path):
        path['mean'] = [0.30, 0.40, 0.42, 0.60]
        best, selected = BlendingSolver.select_penalty(path)
        assert best == 0.001
        assert selected == 0.001


class TestRegressionBlend:
    """Test blends of regression candidates."""

    def test_recovers_known_weights(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b', 'c'))

        model = BlendingSolver().fit(matrix, outcome, layout=layout)
        weights = model.candidate_weights()

        assert model.mode == Mode.REGRESSION
        assert weights['a'] > 0
        assert weights['b'] > 0
        assert weights['a'] > weights['b']
        assert weights['a'] + weights['b'] == pytest.approx(1.0, abs=0.05)
        assert weights['c'] < 0.05
        assert model.intercept == pytest.approx(0.0, abs=0.05)

    def test_path(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b', 'c'))
        grid = [1e-4, 1e-3, 1e-2]

        model = BlendingSolver().fit(matrix, outcome, penalty_grid=grid, layout=layout)

        assert list(model.path.columns) == ['penalty', 'mean', 'std_err', 'n_nonzero', 'n_members']
        assert model.path['penalty'].tolist() == grid
        assert (model.path['std_err'] >= 0).all()
        assert model.penalty in grid
        assert model.penalty >= model.best_penalty
        assert list(model.coef_path.columns) == ['a', 'b', 'c']
        assert len(model.coef_path) == 3

    def test_selection_follows_one_se_rule(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b', 'c'))

        model = BlendingSolver().fit(matrix, outcome, layout=layout)

        path = model.path.set_index('penalty')
        best = path.loc[model.best_penalty]
        threshold = best['mean'] + best['std_err']
        assert best['mean'] == path['mean'].min()
        assert path.loc[model.penalty, 'mean'] <= threshold
        larger = path[path.index > model.penalty]
        assert (larger['mean'] > threshold).all()

    def test_non_negative(self, regression_data, column_candidates):
        X, y = regression_data
        X['neg_a'] = -X['a']
        candidates = column_candidates('a', 'b', 'neg_a')
        matrix, outcome, layout = _registered(candidates)

        model = BlendingSolver().fit(matrix, outcome, layout=layout)

        assert (model.coefficients >= 0).all()
        assert model.coefficients['neg_a'] == 0.0

    def test_sign_unconstrained(self, regression_data, column_candidates):
        X, y = regression_data
        X['neg_a'] = -X['a']
        matrix, outcome, layout = _registered(column_candidates('neg_a', 'b'))

        model = BlendingSolver(BlendConfig(non_negative=False)).fit(matrix, outcome, layout=layout)

        assert model.coefficients['neg_a'] < 0

    def test_registration_order_invariance(self, column_candidates):
        forward = _registered(column_candidates('a', 'b', 'c'))
        backward = _registered(list(reversed(column_candidates('a', 'b', 'c'))))

        first = BlendingSolver().fit(*forward[:2], layout=forward[2])
        second = BlendingSolver().fit(*backward[:2], layout=backward[2])

        assert first.penalty == second.penalty
        for name in ['a', 'b', 'c']:
            assert first.coefficients[name] == pytest.approx(second.coefficients[name], abs=1e-3)

    def test_huge_penalty_gives_empty_blend(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b', 'c'))

        model = BlendingSolver().fit(matrix, outcome, penalty_grid=[10.0], layout=layout)

        assert model.is_empty
        assert model.selected_candidates() == []
        assert model.intercept == pytest.approx(outcome.mean())

    def test_plain_matrix_without_layout(self, regression_data):
        X, y = regression_data

        model = BlendingSolver().fit(X, y)

        assert list(model.coefficients.index) == ['a', 'b', 'c']
        assert model.layout.candidates == ['a', 'b', 'c']

    def test_non_convergence(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b', 'c'))

        solver = BlendingSolver(BlendConfig(max_iter=1))
        with pytest.raises(SolverNonConvergence) as excinfo:
            solver.fit(matrix, outcome, layout=layout)
        assert excinfo.value.max_iter == 1

    def test_metric_must_fit_mode(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b'))
        with pytest.raises(ValueError):
            BlendingSolver(BlendConfig(metric='brier')).fit(matrix, outcome, layout=layout)

    def test_mae_metric(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b'))
        model = BlendingSolver(BlendConfig(metric='mae')).fit(matrix, outcome, layout=layout)
        assert model.metric == 'mae'

    def test_parallel_folds_match(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b', 'c'))

        sequential = BlendingSolver().fit(matrix, outcome, layout=layout)
        threaded = BlendingSolver(BlendConfig(n_jobs=2)).fit(matrix, outcome, layout=layout)

        pd.testing.assert_frame_equal(sequential.path, threaded.path)

    def test_bad_grid(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a'))
        with pytest.raises(ValueError):
            BlendingSolver().fit(matrix, outcome, penalty_grid=[-1.0], layout=layout)

    def test_single_row_rejected(self, column_candidates):
        matrix, outcome, layout = _registered(column_candidates('a', 'b'))
        with pytest.raises(ValueError, match="at least 2"):
            BlendingSolver().fit(matrix.iloc[:1], outcome.iloc[:1], layout=layout)


class TestClassificationBlend:
    """Test per-class blends."""

    @pytest.fixture
    def class_stack(self, classification_data, class_partition):
        X, y = classification_data
        candidates = [
            fit_resamples(SklearnSpec(LogisticRegression(max_iter=1000)), class_partition, X, y, name='logistic'),
            fit_resamples(SklearnSpec(GaussianNB()), class_partition, X, y, name='bayes'),
        ]
        return _registered(candidates)

    def test_probabilities(self, class_stack):
        matrix, outcome, layout = class_stack

        model = BlendingSolver().fit(matrix, outcome, layout=layout)
        proba = model.combine(matrix)

        assert model.mode == Mode.CLASSIFICATION
        assert model.metric == 'brier'
        assert model.intercept == 0.0
        assert proba.shape == (150, 3)
        assert (proba >= 0).all()
        np.testing.assert_allclose(proba.sum(axis=1), 1.0)
        assert (model.coefficients >= 0).all()
        assert not model.is_empty

    def test_log_loss(self, class_stack):
        matrix, outcome, layout = class_stack
        model = BlendingSolver(BlendConfig(metric='log_loss')).fit(
            matrix, outcome, penalty_grid=[1e-3, 1e-2], layout=layout
        )
        assert np.isfinite(model.path['mean']).all()


class TestCombine:
    """Test the blending arithmetic."""

    def test_regression(self):
        stacked = pd.DataFrame({'a': [1.0, 2.0], 'b': [3.0, 4.0]})
        layout = StackLayout.for_regression(['a', 'b'])
        coefs = pd.Series({'a': 0.5, 'b': 0.25})

        np.testing.assert_allclose(combine(stacked, coefs, 1.0, layout), [2.25, 3.0])

    def test_zero_coefficients_not_read(self):
        stacked = pd.DataFrame({'a': [1.0, 2.0]})
        layout = StackLayout.for_regression(['a', 'b'])
        coefs = pd.Series({'a': 1.0, 'b': 0.0})

        np.testing.assert_allclose(combine(stacked, coefs, 0.0, layout), [1.0, 2.0])

    def test_classification_zero_row_is_uniform(self):
        layout = StackLayout(
            mode=Mode.CLASSIFICATION,
            classes=('x', 'y'),
            column_map={'m_x': ('m', 'x'), 'm_y': ('m', 'y')},
        )
        stacked = pd.DataFrame({'m_x': [0.0, 0.2], 'm_y': [0.0, 0.6]})
        coefs = pd.Series({'m_x': 1.0, 'm_y': 1.0})

        proba = combine(stacked, coefs, 0.0, layout)

        np.testing.assert_allclose(proba, [[0.5, 0.5], [0.25, 0.75]])
