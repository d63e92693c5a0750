"""
Tests for the Model Stack
=========================

Tests the add_candidates -> blend_predictions -> fit_members -> predict
pipeline and the inspection helpers.
"""

import pytest
from dataclasses import replace
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
import plotly.graph_objects as go
from sklearn.linear_model import LinearRegression, Ridge

from stacks import (
    FittedEnsemble,
    ModelStack,
    NotFittedError,
    SklearnSpec,
    StackConfig,
    candidate_grid,
    fit_resamples,
    stacks,
)


@pytest.fixture
def ridge_family(regression_data, partition):
    X, y = regression_data
    return [
        fit_resamples(spec, partition, X, y, name=name, params=params, family='ridge')
        for name, spec, params in candidate_grid(Ridge(), {'alpha': [0.01, 10.0, 1000.0]}, family='ridge')
    ]


@pytest.fixture
def blended(column_candidates):
    return stacks().add_candidates(column_candidates('a', 'b', 'c')).blend_predictions()


class TestPipeline:
    """Test the chained verbs."""

    def test_chain(self, regression_data, column_candidates):
        X, y = regression_data

        ensemble = (
            stacks()
            .add_candidates(column_candidates('a'))
            .add_candidates(column_candidates('b', 'c'))
            .blend_predictions()
            .fit_members(X, y)
        )

        assert isinstance(ensemble, FittedEnsemble)
        assert 'a' in ensemble.member_names
        assert 'b' in ensemble.member_names
        assert ensemble.data_stack.shape == (100, 3)
        assert len(ensemble.outcome) == 100

    def test_data_stack(self, column_candidates):
        stack = stacks().add_candidates(column_candidates('a', 'b'))

        data = stack.data_stack

        assert list(data.columns) == ['outcome', 'a', 'b']
        assert len(data) == 100
        assert len(stack) == 2

    def test_family_name(self, ridge_family):
        stack = stacks().add_candidates(ridge_family, name='ridge_family')
        assert {c.family for c in stack.candidates.values()} == {'ridge'}

        bare = [replace(c, family=None) for c in ridge_family]
        stack = stacks().add_candidates(bare, name='ridge_family')
        assert {c.family for c in stack.candidates.values()} == {'ridge_family'}

    def test_fit_members_needs_blend(self, regression_data, column_candidates):
        X, y = regression_data
        stack = stacks().add_candidates(column_candidates('a'))
        with pytest.raises(NotFittedError):
            stack.fit_members(X, y)

    def test_blend_needs_candidates(self):
        with pytest.raises(NotFittedError):
            stacks().blend_predictions()

    def test_new_candidates_invalidate_blend(self, blended, regression_data, partition):
        X, y = regression_data
        assert blended.blend_model is not None

        blended.add_candidates(fit_resamples(SklearnSpec(LinearRegression()), partition, X, y, name='linear'))

        assert blended.blend_model is None
        with pytest.raises(NotFittedError):
            blended.tidy()

    def test_overrides(self, column_candidates):
        stack = stacks().add_candidates(column_candidates('a', 'b'))

        stack.blend_predictions(penalty=0.001, mixture=0.5, metric='mae', n_folds=3)

        assert stack.blend_model.penalty == 0.001
        assert stack.blend_model.mixture == 0.5
        assert stack.blend_model.metric == 'mae'

    def test_override_validated(self, column_candidates):
        stack = stacks().add_candidates(column_candidates('a'))
        with pytest.raises(ValueError):
            stack.blend_predictions(mixture=2.0)

    def test_config(self, column_candidates):
        config = StackConfig()
        config.blend.penalty = (0.01,)

        stack = stacks(config).add_candidates(column_candidates('a', 'b'))
        stack.blend_predictions()

        assert isinstance(stack, ModelStack)
        assert stack.blend_model.penalty == 0.01


class TestInspection:
    """Test tidy, glance, collect_parameters, summary and plots."""

    def test_tidy(self, blended):
        table = blended.tidy()

        assert list(table.columns) == ['term', 'member', 'class', 'estimate']
        assert table['term'].tolist() == ['(Intercept)', 'a', 'b', 'c']
        assert table.loc[table['term'] == 'a', 'estimate'].iloc[0] > 0

    def test_glance(self, blended):
        summary = blended.glance()

        assert len(summary) == 1
        row = summary.iloc[0]
        assert row['mode'] == 'regression'
        assert row['penalty'] == blended.blend_model.penalty
        assert row['n_candidates'] == 3
        assert row['metric'] == 'rmse'
        assert row['cv_error'] > 0

    def test_collect_parameters(self, ridge_family):
        stack = stacks().add_candidates(ridge_family)

        params = stack.collect_parameters('ridge')
        assert params['member'].tolist() == ['ridge_1', 'ridge_2', 'ridge_3']
        assert params['alpha'].tolist() == [0.01, 10.0, 1000.0]
        assert 'coef' not in params.columns

        stack.blend_predictions()
        params = stack.collect_parameters('ridge')
        assert 'coef' in params.columns
        assert (params['coef'] >= 0).all()

    def test_collect_parameters_unknown_family(self, ridge_family):
        stack = stacks().add_candidates(ridge_family)
        with pytest.raises(ValueError):
            stack.collect_parameters('forest')

    def test_summary_and_repr(self, blended):
        text = blended.summary()
        assert "MODEL STACK" in text
        assert "WEIGHTS" in text
        assert repr(blended).endswith(", blended)")

        empty = stacks()
        assert "not fitted" in empty.summary()
        assert "empty" in repr(empty)

    @pytest.mark.parametrize("kind", ['performance', 'members', 'weights'])
    def test_autoplot(self, blended, kind):
        assert isinstance(blended.autoplot(kind), go.Figure)

    def test_autoplot_unknown(self, blended):
        with pytest.raises(ValueError):
            blended.autoplot('coefficients')


class TestFittedEnsemble:
    """Test the fitted ensemble helpers."""

    @pytest.fixture
    def ensemble(self, regression_data, ridge_family, partition):
        X, y = regression_data
        linear = fit_resamples(SklearnSpec(LinearRegression()), partition, X, y, name='linear')
        return (
            stacks()
            .add_candidates(ridge_family)
            .add_candidates(linear)
            .blend_predictions(penalty=[1e-4, 1e-3])
            .fit_members(X, y)
        )

    def test_tidy_and_glance(self, ensemble):
        assert ensemble.tidy()['term'].iloc[0] == '(Intercept)'

        summary = ensemble.glance().iloc[0]
        assert summary['n_candidates'] == 4
        assert summary['n_members'] == len(ensemble.member_names)
        assert summary['n_dropped'] == 0

    def test_augment(self, ensemble, regression_data):
        X, _ = regression_data

        augmented = ensemble.augment(X)

        assert list(augmented.columns) == ['a', 'b', 'c', '.pred']
        assert len(augmented) == len(X)

    def test_member_weights(self, ensemble):
        weights = ensemble.member_weights()
        assert list(weights.index) == ensemble.member_names
        assert (weights > 0).all()

    def test_collect_parameters(self, ensemble):
        params = ensemble.collect_parameters('ridge')
        assert len(params) == 3
        assert 'coef' in params.columns

    def test_axe_data(self, ensemble, regression_data):
        X, _ = regression_data
        before = ensemble.predict(X)

        ensemble.axe_data()

        assert ensemble.data_stack is None
        assert ensemble.outcome is None
        pd.testing.assert_frame_equal(ensemble.predict(X), before)

    def test_save_load(self, ensemble, regression_data, tmp_path):
        X, _ = regression_data

        ensemble.save(tmp_path / "stack")
        loaded = FittedEnsemble.load(tmp_path / "stack")

        assert loaded.member_names == ensemble.member_names
        pd.testing.assert_frame_equal(loaded.predict(X), ensemble.predict(X))
        pd.testing.assert_series_equal(loaded.coefficients, ensemble.coefficients)

    def test_save_load_path_like_names(self, regression_data, partition, tmp_path):
        X, y = regression_data
        names = ['linear/v1', '../ridge']
        stack = stacks()
        stack.add_candidates(fit_resamples(SklearnSpec(LinearRegression()), partition, X, y, name=names[0]))
        stack.add_candidates(fit_resamples(SklearnSpec(Ridge(alpha=0.01)), partition, X, y, name=names[1]))
        ensemble = stack.blend_predictions(penalty=[1e-4]).fit_members(X, y)

        ensemble.save(tmp_path / "stack")
        loaded = FittedEnsemble.load(tmp_path / "stack")

        assert not (tmp_path / "ridge.joblib").exists()
        assert sorted(p.name for p in (tmp_path / "stack").glob("member_*.joblib")) == [
            f"member_{i}.joblib" for i in range(len(ensemble.member_names))
        ]
        assert loaded.member_names == ensemble.member_names
        pd.testing.assert_frame_equal(loaded.predict(X), ensemble.predict(X))

    def test_summary_and_repr(self, ensemble):
        assert "FITTED ENSEMBLE" in ensemble.summary()
        assert "members=" in repr(ensemble)

    def test_autoplot_weights(self, ensemble):
        assert isinstance(ensemble.autoplot('weights'), go.Figure)
