"""
Tests for Resampling
====================

Tests resample partitions and held-out prediction collection.
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression, LogisticRegression
from sklearn.model_selection import KFold

from stacks import FunctionSpec, Mode, ResamplePartition, SklearnSpec, fit_resamples


class TestResamplePartition:
    """Test partition construction and identity."""

    def test_vfold_holds_out_every_row_once(self):
        partition = ResamplePartition.vfold(50, v=5, random_state=0)

        assert partition.n_folds == 5
        assert len(partition) == 5
        assert partition.n_obs == 50
        assert partition.n_heldout == 50
        assert sorted(partition.heldout_rows) == list(range(50))

    def test_heldout_index(self):
        partition = ResamplePartition.vfold(20, v=4, random_state=0)
        index = partition.heldout_index

        assert list(index.names) == ['fold', 'row']
        assert set(index.get_level_values('fold')) == {0, 1, 2, 3}
        assert partition.fold_index(2).equals(index[index.get_level_values('fold') == 2])

    def test_identity(self):
        a = ResamplePartition.vfold(30, v=3, random_state=7)
        b = ResamplePartition.vfold(30, v=3, random_state=7)
        c = ResamplePartition.vfold(30, v=3, random_state=8)

        assert a == b
        assert hash(a) == hash(b)
        assert a.identity == b.identity
        assert a != c

    def test_from_splitter_matches_vfold(self):
        X = np.zeros((40, 2))
        from_splitter = ResamplePartition.from_splitter(
            KFold(n_splits=4, shuffle=True, random_state=3), X
        )
        assert from_splitter == ResamplePartition.vfold(40, v=4, random_state=3)

    def test_splits_are_read_only(self):
        partition = ResamplePartition.vfold(10, v=2, random_state=0)
        train, heldout = partition.splits[0]

        with pytest.raises(ValueError):
            heldout[0] = 99
        with pytest.raises(ValueError):
            train[0] = 99

    def test_iteration(self):
        partition = ResamplePartition([([2, 3], [0, 1]), ([0, 1], [2, 3])])

        assert partition.n_obs == 4
        folds = list(partition)
        assert len(folds) == 2
        assert list(folds[1][1]) == [2, 3]

    @pytest.mark.parametrize("splits, n_obs", [
        ([], None),
        ([([0, 1], [])], None),
        ([([0], [1, 1])], None),
        ([([0], [5])], 3),
        ([([-1], [0])], None),
    ])
    def test_invalid_splits(self, splits, n_obs):
        with pytest.raises(ValueError):
            ResamplePartition(splits, n_obs=n_obs)

    def test_repr(self):
        partition = ResamplePartition.vfold(10, v=2, random_state=0)
        assert "n_folds=2" in repr(partition)


class TestFitResamples:
    """Test held-out prediction collection."""

    def test_regression_candidate(self, regression_data, partition):
        X, y = regression_data

        candidate = fit_resamples(SklearnSpec(LinearRegression()), partition, X, y, name="linear")

        assert candidate.name == "linear"
        assert candidate.mode == Mode.REGRESSION
        assert candidate.partition == partition
        assert candidate.predictions.index.equals(partition.heldout_index)
        assert list(candidate.predictions.columns) == ['.pred']
        np.testing.assert_allclose(
            candidate.outcome.to_numpy(), y.to_numpy()[partition.heldout_rows]
        )
        # near-linear data
        assert np.abs(candidate.predictions['.pred'] - candidate.outcome).max() < 0.1

    def test_heldout_rows_never_seen_in_training(self, partition):
        X = pd.DataFrame({'id': np.arange(100)})
        y = np.zeros(100)

        spec = FunctionSpec(
            fit_fn=lambda X, y: set(X['id']),
            predict_fn=lambda seen, X: np.array([float(i in seen) for i in X['id']]),
        )
        candidate = fit_resamples(spec, partition, X, y, name="memory")

        assert (candidate.predictions['.pred'] == 0.0).all()

    def test_classification_candidate(self, classification_data, class_partition):
        X, y = classification_data

        candidate = fit_resamples(
            SklearnSpec(LogisticRegression(max_iter=1000)), class_partition, X, y, name="logistic"
        )

        assert candidate.mode == Mode.CLASSIFICATION
        assert sorted(candidate.classes) == ['high', 'low', 'mid']
        np.testing.assert_allclose(candidate.predictions.sum(axis=1), 1.0)
        assert candidate.stack_columns() == [f"logistic_{c}" for c in candidate.classes]

    def test_params_default_to_spec(self, regression_data, partition):
        X, y = regression_data

        candidate = fit_resamples(SklearnSpec(LinearRegression()), partition, X, y, name="linear")
        assert 'fit_intercept' in candidate.params

        candidate = fit_resamples(
            SklearnSpec(LinearRegression()), partition, X, y, name="linear", params={'k': 1}
        )
        assert candidate.params == {'k': 1}

    def test_parallel_matches_sequential(self, regression_data, partition):
        X, y = regression_data
        spec = SklearnSpec(LinearRegression())

        sequential = fit_resamples(spec, partition, X, y, name="linear")
        threaded = fit_resamples(spec, partition, X, y, name="linear", n_jobs=2)

        pd.testing.assert_frame_equal(sequential.predictions, threaded.predictions)

    def test_row_count_mismatch(self, regression_data, partition):
        X, y = regression_data
        with pytest.raises(ValueError):
            fit_resamples(SklearnSpec(LinearRegression()), partition, X.iloc[:50], y.iloc[:50], name="x")
