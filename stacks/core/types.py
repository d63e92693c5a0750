"""
Type Definitions
================
Typed data structures shared by the stacking stages.
All data flows through these types for consistency.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from ..models.base import CandidateSpec
    from ..resampling import ResamplePartition


class Mode(Enum):
    """Prediction task of a stack."""
    REGRESSION = "regression"
    CLASSIFICATION = "classification"


def stack_column(candidate: str, cls: Any = None) -> str:
    """Name of a candidate's column in the stacked prediction matrix."""
    if cls is None:
        return candidate
    return f"{candidate}_{cls}"


@dataclass(frozen=True, eq=False)
class Candidate:
    """
    Held-out predictions of one trained model specification.

    predictions is indexed by the partition's ``(fold, row)`` held-out index.
    Regression candidates carry a single column; classification candidates
    carry one probability column per class, named by the class label.
    """
    name: str
    mode: Mode
    predictions: pd.DataFrame
    outcome: pd.Series
    partition: Optional["ResamplePartition"] = None
    spec: Optional["CandidateSpec"] = None
    params: Dict[str, Any] = field(default_factory=dict)
    family: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Candidate name must be a non-empty string")

        object.__setattr__(self, 'mode', Mode(self.mode))

        if not isinstance(self.predictions, pd.DataFrame):
            raise ValueError(f"predictions for '{self.name}' must be a DataFrame")

        if self.mode == Mode.REGRESSION and self.predictions.shape[1] != 1:
            raise ValueError(
                f"Regression candidate '{self.name}' must have exactly one prediction "
                f"column, got {self.predictions.shape[1]}"
            )

        if self.mode == Mode.CLASSIFICATION and self.predictions.shape[1] < 2:
            raise ValueError(
                f"Classification candidate '{self.name}' needs one probability column per class"
            )

        if len(self.outcome) != len(self.predictions):
            raise ValueError(
                f"outcome for '{self.name}' has {len(self.outcome)} rows, "
                f"predictions have {len(self.predictions)}"
            )

    @property
    def classes(self) -> List[Any]:
        """Class labels (empty for regression)."""
        if self.mode == Mode.REGRESSION:
            return []
        return list(self.predictions.columns)

    @property
    def n_heldout(self) -> int:
        return len(self.predictions)

    def stack_columns(self) -> List[str]:
        """Column names this candidate contributes to the stacked matrix."""
        if self.mode == Mode.REGRESSION:
            return [stack_column(self.name)]
        return [stack_column(self.name, cls) for cls in self.classes]


@dataclass(frozen=True)
class RegistryHandle:
    """Receipt for one registration."""
    name: str
    columns: Tuple[str, ...]
    partition_id: str
    family: Optional[str] = None
    skipped: bool = False

    @property
    def registered(self) -> bool:
        return not self.skipped


@dataclass
class StackLayout:
    """
    Maps stacked matrix columns back to candidates and classes.

    column_map: column name -> (candidate name, class label or None)
    """
    mode: Mode
    classes: Tuple[Any, ...] = ()
    column_map: Dict[str, Tuple[str, Any]] = field(default_factory=dict)

    @classmethod
    def for_regression(cls, columns) -> "StackLayout":
        """One candidate per column, named after the column."""
        return cls(
            mode=Mode.REGRESSION,
            column_map={str(c): (str(c), None) for c in columns},
        )

    @property
    def columns(self) -> List[str]:
        return list(self.column_map)

    @property
    def candidates(self) -> List[str]:
        """Candidate names in column order, without repeats."""
        seen = []
        for candidate, _ in self.column_map.values():
            if candidate not in seen:
                seen.append(candidate)
        return seen

    def columns_for_class(self, cls: Any) -> List[str]:
        return [col for col, (_, c) in self.column_map.items() if c == cls]

    def columns_for_candidate(self, candidate: str) -> List[str]:
        return [col for col, (name, _) in self.column_map.items() if name == candidate]

    def candidate_of(self, column: str) -> str:
        return self.column_map[column][0]

    def class_of(self, column: str) -> Any:
        return self.column_map[column][1]

    def subset(self, candidates) -> "StackLayout":
        """Layout restricted to the given candidates."""
        keep = set(candidates)
        return StackLayout(
            mode=self.mode,
            classes=self.classes,
            column_map={
                col: entry for col, entry in self.column_map.items() if entry[0] in keep
            },
        )


def outcome_matches(a: pd.Series, b: pd.Series) -> bool:
    """True when two aligned outcome series hold the same values."""
    if len(a) != len(b):
        return False
    a_values = a.to_numpy()
    b_values = b.to_numpy()
    if pd.api.types.is_numeric_dtype(a) and pd.api.types.is_numeric_dtype(b):
        return bool(np.allclose(a_values.astype(float), b_values.astype(float), equal_nan=True))
    return bool(np.array_equal(a_values.astype(str), b_values.astype(str)))
