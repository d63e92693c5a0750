"""
Candidate Registry
==================

Accumulates held-out predictions of candidate models into the stacked
prediction matrix.

Rows of the matrix follow the partition's held-out index, so the matrix
is the same whatever order candidates arrive in. A registration either
fully succeeds or leaves the registry untouched.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..core.config import RegistryConfig
from ..core.exceptions import DuplicateCandidate, NotFittedError, PartitionMismatch
from ..core.types import Candidate, Mode, RegistryHandle, StackLayout, outcome_matches

logger = logging.getLogger(__name__)


def _align(frame, index: pd.MultiIndex, what: str):
    """Reorder a frame/series onto the partition's held-out index."""
    if frame.index.equals(index):
        return frame.copy()

    if (
        len(frame) == len(index)
        and frame.index.is_unique
        and frame.index.isin(index).all()
    ):
        return frame.reindex(index)

    raise PartitionMismatch(
        f"{what} rows do not line up with the partition's held-out rows "
        f"({len(frame)} rows given, {len(index)} expected)"
    )


class CandidateRegistry:
    """
    Registry of candidates sharing one resample partition.

    The first registration establishes the partition, mode, class labels
    and held-out outcome; every later candidate must agree with them.

    Usage:
        registry = CandidateRegistry()
        registry.register(candidate_a)
        registry.register(candidate_b)
        matrix, outcome = registry.stacked_matrix()
    """

    def __init__(self, config: Optional[RegistryConfig] = None):
        self.config = config or RegistryConfig()

        self._partition = None
        self._mode: Optional[Mode] = None
        self._classes: Tuple[Any, ...] = ()
        self._outcome: Optional[pd.Series] = None
        self._candidates: Dict[str, Candidate] = {}
        self._matrix: Optional[pd.DataFrame] = None
        self._layout: Optional[StackLayout] = None

    @property
    def partition(self):
        return self._partition

    @property
    def mode(self) -> Optional[Mode]:
        return self._mode

    @property
    def classes(self) -> List[Any]:
        return list(self._classes)

    @property
    def candidates(self) -> Dict[str, Candidate]:
        return dict(self._candidates)

    def __len__(self) -> int:
        return len(self._candidates)

    def __contains__(self, name: str) -> bool:
        return name in self._candidates

    def register(self, candidate: Candidate, partition_ref=None) -> RegistryHandle:
        """
        Register one candidate.

        Args:
            candidate: Candidate with held-out predictions
            partition_ref: Partition the predictions were produced on
                (defaults to ``candidate.partition``)

        Returns:
            RegistryHandle

        Raises:
            PartitionMismatch: partition, rows, outcome or mode disagree
            DuplicateCandidate: name already registered
        """
        return self.register_many([candidate], partition_ref)[0]

    def register_many(
        self,
        candidates: Iterable[Candidate],
        partition_ref=None
    ) -> List[RegistryHandle]:
        """Register a candidate family atomically (all or nothing)."""
        candidates = list(candidates)
        if not candidates:
            raise ValueError("No candidates to register")

        partition = self._partition
        mode = self._mode
        classes = self._classes
        outcome = self._outcome
        matrix = self._matrix.copy() if self._matrix is not None else None
        column_map = dict(self._layout.column_map) if self._layout is not None else {}
        names = set(self._candidates)

        staged: List[Candidate] = []
        handles: List[RegistryHandle] = []

        for candidate in candidates:
            ref = partition_ref if partition_ref is not None else candidate.partition
            if ref is None:
                raise PartitionMismatch(
                    f"Candidate '{candidate.name}' does not reference a resample partition"
                )
            if candidate.partition is not None and candidate.partition != ref:
                raise PartitionMismatch(
                    f"Candidate '{candidate.name}' was produced on a different partition "
                    "than the one it is registered with"
                )

            if partition is None:
                partition = ref
            elif ref != partition:
                raise PartitionMismatch(
                    f"Candidate '{candidate.name}' uses partition {ref.identity[:8]}, "
                    f"stack uses {partition.identity[:8]}"
                )

            if candidate.name in names:
                raise DuplicateCandidate(candidate.name)

            if mode is None:
                mode = candidate.mode
            elif candidate.mode != mode:
                raise PartitionMismatch(
                    f"Candidate '{candidate.name}' is a {candidate.mode.value} candidate, "
                    f"stack holds {mode.value} candidates"
                )

            predictions = _align(
                candidate.predictions, partition.heldout_index, f"Predictions of '{candidate.name}'"
            )
            cand_outcome = _align(
                candidate.outcome, partition.heldout_index, f"Outcome of '{candidate.name}'"
            )

            if outcome is None:
                outcome = cand_outcome.rename('outcome')
            elif not outcome_matches(outcome, cand_outcome):
                raise PartitionMismatch(
                    f"Outcome of '{candidate.name}' differs from the stack's outcome"
                )

            if mode == Mode.CLASSIFICATION:
                if not classes:
                    classes = tuple(predictions.columns)
                    unseen = set(pd.unique(outcome)) - set(classes)
                    if unseen:
                        raise PartitionMismatch(
                            f"Outcome classes {sorted(map(str, unseen))} have no probability column"
                        )
                elif set(predictions.columns) != set(classes):
                    raise PartitionMismatch(
                        f"Candidate '{candidate.name}' predicts classes {list(predictions.columns)}, "
                        f"stack uses {list(classes)}"
                    )
                predictions = predictions[list(classes)]
                entries = [(candidate.name, cls) for cls in classes]
            else:
                entries = [(candidate.name, None)]

            columns = candidate.stack_columns() if mode == Mode.REGRESSION else [
                f"{candidate.name}_{cls}" for cls in classes
            ]
            block = pd.DataFrame(
                predictions.to_numpy(dtype=float), index=partition.heldout_index, columns=columns
            )

            clash = [c for c in columns if c in column_map]
            if clash:
                raise DuplicateCandidate(
                    f"{candidate.name} (columns {clash} already belong to another candidate)"
                )

            if self.config.drop_duplicate_predictions and matrix is not None:
                if self._duplicates_existing(block, matrix):
                    logger.warning(
                        f"Candidate '{candidate.name}' duplicates predictions already "
                        "in the stack; skipping it"
                    )
                    handles.append(RegistryHandle(
                        name=candidate.name,
                        columns=(),
                        partition_id=partition.identity,
                        family=candidate.family,
                        skipped=True,
                    ))
                    continue

            matrix = block if matrix is None else pd.concat([matrix, block], axis=1)
            for col, entry in zip(columns, entries):
                column_map[col] = entry
            names.add(candidate.name)
            staged.append(candidate)
            handles.append(RegistryHandle(
                name=candidate.name,
                columns=tuple(columns),
                partition_id=partition.identity,
                family=candidate.family,
            ))

        # commit
        self._partition = partition
        self._mode = mode
        self._classes = tuple(classes)
        self._outcome = outcome
        self._matrix = matrix
        self._layout = StackLayout(mode=mode, classes=tuple(classes), column_map=column_map)
        for candidate in staged:
            self._candidates[candidate.name] = candidate

        logger.info(
            f"Registered {len(staged)} candidate(s); stack now holds "
            f"{len(self._candidates)} candidates, {0 if matrix is None else matrix.shape[1]} columns"
        )
        return handles

    @staticmethod
    def _duplicates_existing(block: pd.DataFrame, matrix: pd.DataFrame) -> bool:
        """True when every column of block equals some existing column."""
        existing = matrix.to_numpy()
        for col in block.columns:
            values = block[col].to_numpy()
            if not any(np.array_equal(values, existing[:, j]) for j in range(existing.shape[1])):
                return False
        return True

    def stacked_matrix(self) -> Tuple[pd.DataFrame, pd.Series]:
        """
        Return the stacked prediction matrix and the held-out outcome.

        Raises:
            NotFittedError: no candidate registered yet
        """
        if self._matrix is None:
            raise NotFittedError("No candidates registered; call add_candidates() first")
        return self._matrix.copy(), self._outcome.copy()

    def layout(self) -> StackLayout:
        """Column -> (candidate, class) mapping of the stacked matrix."""
        if self._layout is None:
            raise NotFittedError("No candidates registered; call add_candidates() first")
        return StackLayout(
            mode=self._layout.mode,
            classes=self._layout.classes,
            column_map=dict(self._layout.column_map),
        )
