"""
Inspection Helpers
==================
Coefficient tables, one-row summaries and text reports shared by
ModelStack and FittedEnsemble.
"""

from typing import Any, Dict, Iterable, Optional

import numpy as np
import pandas as pd

from ..core.types import Mode
from .blending import BlendModel


def tidy_blend(blend_model: BlendModel) -> pd.DataFrame:
    """
    Coefficient table.

    Columns: term, member, class, estimate. Regression tables start with
    an ``(Intercept)`` row.
    """
    layout = blend_model.layout
    rows = []
    if layout.mode == Mode.REGRESSION:
        rows.append({
            'term': '(Intercept)',
            'member': None,
            'class': None,
            'estimate': blend_model.intercept,
        })
    for column, coef in blend_model.coefficients.items():
        rows.append({
            'term': column,
            'member': layout.candidate_of(column),
            'class': layout.class_of(column),
            'estimate': float(coef),
        })
    return pd.DataFrame(rows, columns=['term', 'member', 'class', 'estimate'])


def glance_blend(
    blend_model: BlendModel,
    n_candidates: int,
    n_members: Optional[int] = None
) -> pd.DataFrame:
    """One-row summary of a blend."""
    path = blend_model.path
    selected = path[np.isclose(path['penalty'], blend_model.penalty)].iloc[0]
    if n_members is None:
        n_members = len(blend_model.selected_candidates())
    return pd.DataFrame([{
        'mode': blend_model.mode.value,
        'penalty': blend_model.penalty,
        'best_penalty': blend_model.best_penalty,
        'mixture': blend_model.mixture,
        'metric': blend_model.metric,
        'cv_error': float(selected['mean']),
        'cv_std_err': float(selected['std_err']),
        'n_candidates': n_candidates,
        'n_members': n_members,
    }])


def collect_parameters(
    params: Dict[str, Dict[str, Any]],
    families: Dict[str, Optional[str]],
    family: str,
    weights: Optional[pd.Series] = None
) -> pd.DataFrame:
    """
    Hyper-parameters (and stacking coefficient, once blended) of one family.

    Raises:
        ValueError: no candidate belongs to the family
    """
    names = [name for name, fam in families.items() if fam == family]
    if not names:
        known = sorted({fam for fam in families.values() if fam is not None})
        raise ValueError(f"No candidate family '{family}'; known families: {known}")

    rows = []
    for name in names:
        row = {'member': name}
        row.update(params.get(name, {}))
        if weights is not None:
            row['coef'] = float(weights.get(name, 0.0))
        rows.append(row)
    return pd.DataFrame(rows)


def format_summary(
    title: str,
    n_candidates: int,
    blend_model: Optional[BlendModel] = None,
    members: Optional[Iterable[str]] = None,
    dropped: Optional[Dict[str, str]] = None,
    weights: Optional[pd.Series] = None,
) -> str:
    """Human-readable report."""
    lines = [
        "=" * 60,
        title,
        "=" * 60,
        f"Candidates:       {n_candidates}",
    ]

    if blend_model is None:
        lines.append("Blend:            not fitted")
        return "\n".join(lines)

    selected = blend_model.selected_candidates() if members is None else list(members)
    lines.extend([
        f"Mode:             {blend_model.mode.value}",
        f"Penalty:          {blend_model.penalty:g} (best {blend_model.best_penalty:g})",
        f"Mixture:          {blend_model.mixture:g}",
        f"Metric:           {blend_model.metric}",
        f"Members:          {len(selected)}",
        "",
        "-" * 60,
        "WEIGHTS",
        "-" * 60,
    ])

    weights = blend_model.candidate_weights() if weights is None else weights
    for name in selected:
        lines.append(f"  {name:<30} {weights.get(name, 0.0):>10.4f}")

    if dropped:
        lines.extend(["", "-" * 60, "DROPPED AT REFIT", "-" * 60])
        for name, reason in dropped.items():
            lines.append(f"  {name}: {reason}")

    lines.append("=" * 60)
    return "\n".join(lines)
