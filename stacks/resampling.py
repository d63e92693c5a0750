"""
Resample Partitions
===================

Immutable train/held-out splits shared by every candidate of a stack,
plus ``fit_resamples`` which turns a candidate specification into
held-out predictions over a partition.

The partition is passed around as a value. Two partitions are the same
partition when their identities (a digest of the split indices) match.
"""

import hashlib
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import delayed
from sklearn.model_selection import KFold

from .core.parallel import run_tasks
from .core.types import Candidate, Mode
from .models.base import CandidateSpec, as_prediction_frame, take_rows

logger = logging.getLogger(__name__)


class ResamplePartition:
    """
    Ordered collection of (train, held-out) index splits over ``n_obs`` rows.

    Example:
        partition = ResamplePartition.vfold(n_obs=200, v=5, random_state=1)
        partition.n_heldout          # 200
        partition.heldout_index      # MultiIndex of (fold, row)
    """

    def __init__(
        self,
        splits: Iterable[Tuple[Any, Any]],
        n_obs: Optional[int] = None
    ):
        normalized = []
        for train_idx, heldout_idx in splits:
            train = np.array(train_idx, dtype=np.int64).ravel()
            heldout = np.array(heldout_idx, dtype=np.int64).ravel()
            if len(heldout) == 0:
                raise ValueError("Every split needs at least one held-out row")
            if len(np.unique(heldout)) != len(heldout):
                raise ValueError("Held-out rows must be unique within a split")
            train.setflags(write=False)
            heldout.setflags(write=False)
            normalized.append((train, heldout))

        if not normalized:
            raise ValueError("A partition needs at least one split")

        largest = max(
            int(max(train.max(initial=-1), heldout.max())) for train, heldout in normalized
        )
        smallest = min(
            int(min(train.min(initial=0), heldout.min())) for train, heldout in normalized
        )
        if n_obs is None:
            n_obs = largest + 1
        if smallest < 0 or largest >= n_obs:
            raise ValueError(f"Split indices must lie in [0, {n_obs})")

        self._splits = tuple(normalized)
        self._n_obs = int(n_obs)
        self._identity = self._digest()

        folds = np.concatenate([
            np.full(len(heldout), fold, dtype=np.int64)
            for fold, (_, heldout) in enumerate(self._splits)
        ])
        rows = np.concatenate([heldout for _, heldout in self._splits])
        self._heldout_index = pd.MultiIndex.from_arrays([folds, rows], names=['fold', 'row'])

    @classmethod
    def from_splitter(cls, splitter, X, y=None, groups=None) -> "ResamplePartition":
        """Build a partition from any sklearn splitter (KFold, TimeSeriesSplit, ...)."""
        splits = list(splitter.split(X, y, groups))
        return cls(splits, n_obs=len(X))

    @classmethod
    def vfold(
        cls,
        n_obs: int,
        v: int = 5,
        shuffle: bool = True,
        random_state: Optional[int] = None
    ) -> "ResamplePartition":
        """V-fold cross-validation partition; every row is held out exactly once."""
        kfold = KFold(
            n_splits=v,
            shuffle=shuffle,
            random_state=random_state if shuffle else None
        )
        return cls(kfold.split(np.arange(n_obs)), n_obs=n_obs)

    def _digest(self) -> str:
        sha = hashlib.sha1()
        sha.update(str(self._n_obs).encode())
        for train, heldout in self._splits:
            sha.update(b'|train|')
            sha.update(train.tobytes())
            sha.update(b'|heldout|')
            sha.update(heldout.tobytes())
        return sha.hexdigest()

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def splits(self) -> Tuple[Tuple[np.ndarray, np.ndarray], ...]:
        return self._splits

    @property
    def n_obs(self) -> int:
        return self._n_obs

    @property
    def n_folds(self) -> int:
        return len(self._splits)

    @property
    def n_heldout(self) -> int:
        """Total held-out observations across folds."""
        return len(self._heldout_index)

    @property
    def heldout_index(self) -> pd.MultiIndex:
        return self._heldout_index

    @property
    def heldout_rows(self) -> np.ndarray:
        """Original row positions of the held-out observations, in fold order."""
        return self._heldout_index.get_level_values('row').to_numpy()

    def fold_index(self, fold: int) -> pd.MultiIndex:
        """Held-out index of a single fold."""
        _, heldout = self._splits[fold]
        return pd.MultiIndex.from_arrays(
            [np.full(len(heldout), fold, dtype=np.int64), heldout],
            names=['fold', 'row']
        )

    def __iter__(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        return iter(self._splits)

    def __len__(self) -> int:
        return len(self._splits)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ResamplePartition):
            return NotImplemented
        return self._identity == other._identity

    def __hash__(self) -> int:
        return hash(self._identity)

    def __repr__(self) -> str:
        return (
            f"ResamplePartition(n_obs={self._n_obs}, n_folds={self.n_folds}, "
            f"n_heldout={self.n_heldout}, id={self._identity[:8]})"
        )


def _predict_fold(
    spec: CandidateSpec,
    partition: ResamplePartition,
    fold: int,
    X,
    y,
    classes: List[Any]
) -> pd.DataFrame:
    train_idx, heldout_idx = partition.splits[fold]
    model = spec.fit(take_rows(X, train_idx), take_rows(y, train_idx))
    preds = spec.predict(model, take_rows(X, heldout_idx))
    return as_prediction_frame(preds, spec.mode, classes, partition.fold_index(fold))


def fit_resamples(
    spec: CandidateSpec,
    partition: ResamplePartition,
    X,
    y,
    name: str,
    params: Optional[Dict[str, Any]] = None,
    family: Optional[str] = None,
    n_jobs: int = 1,
    backend: str = "threading"
) -> Candidate:
    """
    Fit a candidate on every fold and collect its held-out predictions.

    Args:
        spec: Candidate fitting procedure
        partition: Resample partition shared by the stack
        X: Training features (DataFrame or array), ``partition.n_obs`` rows
        y: Training outcome
        name: Candidate name
        params: Hyper-parameters to report through collect_parameters
        family: Candidate family name
        n_jobs: Fold fits to run concurrently
        backend: joblib backend

    Returns:
        Candidate aligned with ``partition.heldout_index``
    """
    if len(X) != partition.n_obs:
        raise ValueError(f"X has {len(X)} rows, partition covers {partition.n_obs}")

    y_values = np.asarray(y)
    mode = Mode(spec.mode)
    classes = list(np.unique(y_values)) if mode == Mode.CLASSIFICATION else []

    frames = run_tasks(
        (
            delayed(_predict_fold)(spec, partition, fold, X, y_values, classes)
            for fold in range(partition.n_folds)
        ),
        n_jobs=n_jobs,
        backend=backend,
    )
    predictions = pd.concat(frames)

    outcome = pd.Series(
        y_values[partition.heldout_rows],
        index=partition.heldout_index,
        name='outcome'
    )

    logger.debug(f"Collected {len(predictions)} held-out predictions for {name}")

    return Candidate(
        name=name,
        mode=mode,
        predictions=predictions,
        outcome=outcome,
        partition=partition,
        spec=spec,
        params=dict(params or getattr(spec, 'params', {}) or {}),
        family=family,
    )
