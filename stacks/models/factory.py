"""
Candidate Factory
=================

Creates candidate specifications: converts user objects to the uniform
candidate interface, expands hyper-parameter grids into candidate
families and provides a default set of diverse base candidates.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
import logging

from lightgbm import LGBMClassifier, LGBMRegressor
from sklearn.base import BaseEstimator, clone
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.linear_model import LogisticRegression, Ridge
from sklearn.model_selection import ParameterGrid
from sklearn.neighbors import KNeighborsClassifier, KNeighborsRegressor
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from ..core.types import Mode
from .base import CandidateSpec
from .neural import TorchMLPSpec
from .sklearn_spec import SklearnSpec

logger = logging.getLogger(__name__)


def make_spec(model: Union[CandidateSpec, BaseEstimator], mode: Optional[str] = None) -> CandidateSpec:
    """
    Wrap a model in the candidate interface.

    Args:
        model: A CandidateSpec (returned as is) or an sklearn estimator/Pipeline
        mode: Optional mode override for sklearn estimators

    Returns:
        CandidateSpec
    """
    if isinstance(model, CandidateSpec):
        return model
    if hasattr(model, 'fit') and hasattr(model, 'get_params'):
        return SklearnSpec(model, mode=mode)
    raise ValueError(
        f"Cannot build a candidate from {type(model).__name__}; "
        "pass an sklearn estimator or a CandidateSpec"
    )


def candidate_grid(
    estimator: BaseEstimator,
    param_grid: Union[Mapping[str, Sequence], Sequence[Mapping[str, Sequence]]],
    family: str,
    mode: Optional[str] = None
) -> List[Tuple[str, CandidateSpec, Dict[str, Any]]]:
    """
    Expand a hyper-parameter grid into a candidate family.

    Each configuration becomes one candidate named ``<family>_<i>``
    (1-based, zero-padded to the grid size).

    Returns:
        List of (name, spec, params)
    """
    configs = list(ParameterGrid(param_grid))
    if not configs:
        raise ValueError(f"Parameter grid for '{family}' is empty")

    width = len(str(len(configs)))
    members = []
    for i, params in enumerate(configs, start=1):
        configured = clone(estimator).set_params(**params)
        name = f"{family}_{i:0{width}d}"
        members.append((name, make_spec(configured, mode=mode), dict(params)))

    logger.info(f"Candidate family '{family}' expanded to {len(members)} configurations")
    return members


def create_base_specs(
    mode: str = "regression",
    include_neural: bool = True,
    random_state: int = 42
) -> Dict[str, CandidateSpec]:
    """
    Create a diverse default set of candidate specifications.

    Args:
        mode: 'regression' or 'classification'
        include_neural: Whether to include the PyTorch MLP
        random_state: Seed for stochastic models

    Returns:
        Dictionary of candidate name -> spec
    """
    mode = Mode(mode)
    specs: Dict[str, CandidateSpec] = {}

    if mode == Mode.CLASSIFICATION:
        specs['logistic'] = SklearnSpec(
            make_pipeline(StandardScaler(), LogisticRegression(max_iter=1000))
        )
        specs['random_forest'] = SklearnSpec(
            RandomForestClassifier(n_estimators=200, random_state=random_state)
        )
        specs['lightgbm'] = SklearnSpec(
            LGBMClassifier(n_estimators=200, min_child_samples=5, random_state=random_state, verbose=-1)
        )
        specs['knn'] = SklearnSpec(
            make_pipeline(StandardScaler(), KNeighborsClassifier(n_neighbors=15))
        )
    else:
        specs['ridge'] = SklearnSpec(make_pipeline(StandardScaler(), Ridge(alpha=1.0)))
        specs['random_forest'] = SklearnSpec(
            RandomForestRegressor(n_estimators=200, random_state=random_state)
        )
        specs['lightgbm'] = SklearnSpec(
            LGBMRegressor(n_estimators=200, min_child_samples=5, random_state=random_state, verbose=-1)
        )
        specs['knn'] = SklearnSpec(
            make_pipeline(StandardScaler(), KNeighborsRegressor(n_neighbors=15))
        )

    if include_neural:
        specs['mlp'] = TorchMLPSpec(mode=mode.value, random_state=random_state)

    logger.info(f"Created {len(specs)} {mode.value} base candidates: {list(specs)}")
    return specs
