"""
Member Refitter
===============

Retrains, on the full training set, every candidate with a non-zero
blending coefficient.

A candidate whose fitting procedure errors is dropped: its coefficients
are zeroed, the survivors are renormalized (see RefitConfig.renormalize)
and a warning names every dropped candidate. The ensemble is still built.
"""

import logging
import time
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd
from joblib import delayed

from ..core.config import RefitConfig, validate_refit
from ..core.exceptions import RefitFailure
from ..core.parallel import run_tasks
from ..core.types import Candidate, Mode
from .blending import BlendModel
from .fitted import FittedEnsemble

logger = logging.getLogger(__name__)


def _refit_member(candidate: Candidate, X, y) -> Tuple[Any, Optional[RefitFailure]]:
    """Fit one candidate on the full training data; never raises."""
    if candidate.spec is None:
        return None, RefitFailure(candidate.name, "no fitting procedure attached")

    start = time.perf_counter()
    try:
        model = candidate.spec.fit(X, y)
    except Exception as e:
        failure = RefitFailure(candidate.name, f"{type(e).__name__}: {e}")
        failure.__cause__ = e
        return None, failure

    logger.debug(f"Refit {candidate.name} in {time.perf_counter() - start:.2f}s")
    return model, None


class MemberRefitter:
    """
    Refits selected candidates and assembles the FittedEnsemble.

    Usage:
        refitter = MemberRefitter(RefitConfig(n_jobs=4))
        ensemble = refitter.refit(candidates, blend_model, X_train, y_train)
        ensemble.dropped   # {name: reason} for members whose refit failed
    """

    def __init__(self, config: Optional[RefitConfig] = None):
        self.config = config or RefitConfig()
        validate_refit(self.config)

    def refit(
        self,
        candidates: Mapping[str, Candidate],
        blend_model: BlendModel,
        X,
        y
    ) -> FittedEnsemble:
        """
        Refit every candidate with a non-zero coefficient.

        Args:
            candidates: All registered candidates by name
            blend_model: Fitted blend
            X: Full training features
            y: Full training outcome

        Returns:
            FittedEnsemble (possibly with no members)
        """
        selected = blend_model.selected_candidates()
        missing = [name for name in selected if name not in candidates]
        if missing:
            raise ValueError(f"Blend references unknown candidates: {missing}")

        logger.info(f"Refitting {len(selected)} members on {len(X)} training rows")

        results = run_tasks(
            (delayed(_refit_member)(candidates[name], X, y) for name in selected),
            n_jobs=self.config.n_jobs,
            backend=self.config.backend,
        )

        members: Dict[str, Any] = {}
        failures: Dict[str, RefitFailure] = {}
        for name, (model, failure) in zip(selected, results):
            if failure is None:
                members[name] = model
            else:
                failures[name] = failure

        if failures:
            for failure in failures.values():
                logger.warning(str(failure))
            logger.warning(
                f"Dropped {len(failures)} member(s) after refit failure: {sorted(failures)}; "
                f"coefficients renormalized with policy '{self.config.renormalize}'"
            )

        coefficients = self.renormalize(blend_model, list(failures))

        return FittedEnsemble(
            blend_model=blend_model.with_coefficients(coefficients),
            members=members,
            specs={name: candidates[name].spec for name in members},
            original_coefficients=blend_model.coefficients.copy(),
            dropped={name: str(failure) for name, failure in failures.items()},
            params={name: dict(c.params) for name, c in candidates.items()},
            families={name: c.family for name, c in candidates.items()},
        )

    def renormalize(self, blend_model: BlendModel, dropped: List[str]) -> pd.Series:
        """
        Zero the coefficients of dropped candidates and rescale the rest.

        ``preserve_sum`` scales the surviving coefficients so that their
        total (per class for classification) equals the total before the
        drop. ``none`` only zeroes.
        """
        coefs = blend_model.coefficients.copy()
        layout = blend_model.layout
        dropped_cols = [col for name in dropped for col in layout.columns_for_candidate(name)]
        if not dropped_cols:
            return coefs

        if layout.mode == Mode.REGRESSION:
            groups = [layout.columns]
        else:
            groups = [layout.columns_for_class(cls) for cls in layout.classes]

        for cols in groups:
            before = float(coefs[cols].sum())
            coefs[[c for c in cols if c in dropped_cols]] = 0.0
            after = float(coefs[cols].sum())
            if self.config.renormalize == 'preserve_sum' and after != 0 and before != 0:
                coefs[cols] = coefs[cols] * (before / after)

        return coefs
