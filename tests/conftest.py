"""
Pytest Fixtures for stacks
==========================

Shared test fixtures used across all test files.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np
import pandas as pd
import pytest
from sklearn.datasets import make_classification

from stacks import FunctionSpec, ResamplePartition, fit_resamples


def column_spec(column: str) -> FunctionSpec:
    """Candidate whose prediction is one feature column, unchanged."""
    return FunctionSpec(
        fit_fn=lambda X, y: column,
        predict_fn=lambda model, X: X[model].to_numpy(dtype=float),
        params={'column': column},
    )


@pytest.fixture
def regression_data():
    """100 rows, y = 0.7 * a + 0.3 * b + small noise; c is unrelated."""
    rng = np.random.default_rng(0)
    n = 100
    X = pd.DataFrame({
        'a': rng.normal(size=n),
        'b': rng.normal(size=n),
        'c': rng.normal(size=n),
    })
    y = pd.Series(0.7 * X['a'] + 0.3 * X['b'] + rng.normal(scale=0.01, size=n), name='y')
    return X, y


@pytest.fixture
def partition():
    return ResamplePartition.vfold(100, v=5, random_state=1)


@pytest.fixture
def other_partition():
    return ResamplePartition.vfold(100, v=5, random_state=2)


@pytest.fixture
def column_candidates(regression_data, partition):
    """Build one candidate per named feature column on the shared partition."""
    X, y = regression_data

    def build(*columns, on=None, family=None):
        return [
            fit_resamples(column_spec(col), on or partition, X, y, name=col, family=family)
            for col in columns
        ]

    return build


@pytest.fixture
def classification_data():
    """150 rows, three string-labelled classes."""
    X, y = make_classification(
        n_samples=150,
        n_features=6,
        n_informative=4,
        n_redundant=0,
        n_classes=3,
        random_state=0,
    )
    X = pd.DataFrame(X, columns=[f"x{i}" for i in range(X.shape[1])])
    y = pd.Series(np.array(['low', 'mid', 'high'])[y], name='label')
    return X, y


@pytest.fixture
def class_partition():
    return ResamplePartition.vfold(150, v=5, random_state=1)
