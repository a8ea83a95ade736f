from __future__ import annotations

from typing import Dict, Iterable, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, f1_score


BOOTSTRAP_METRICS = ("accuracy", "macro_f1")


def _safe_metric_values(y_true: np.ndarray, y_pred: np.ndarray, levels: Sequence[str]) -> Dict[str, float]:
    out = {m: np.nan for m in BOOTSTRAP_METRICS}
    if y_true.size == 0:
        return out
    out["accuracy"] = float(accuracy_score(y_true, y_pred))
    out["macro_f1"] = float(f1_score(y_true, y_pred, labels=list(levels), average="macro", zero_division=0))
    return out


def _stratified_bootstrap_indices(y_true: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    # Resample within each observed class so class counts stay fixed.
    parts = []
    for level in pd.unique(y_true):
        idx = np.where(y_true == level)[0]
        parts.append(idx[rng.integers(0, idx.size, size=idx.size, endpoint=False)])
    s = np.concatenate(parts) if parts else np.array([], dtype=int)
    rng.shuffle(s)
    return s


def stratified_bootstrap_metric_draws(
    *,
    y_true,
    y_pred,
    levels: Sequence[str],
    n_boot: int,
    seed: int,
) -> pd.DataFrame:
    if n_boot <= 0:
        return pd.DataFrame(columns=["iter", *BOOTSTRAP_METRICS])
    y = np.asarray(y_true, dtype=object)
    p = np.asarray(y_pred, dtype=object)
    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n_boot):
        idx = _stratified_bootstrap_indices(y, rng)
        m = _safe_metric_values(y[idx], p[idx], levels)
        rows.append({"iter": i, **m})
    return pd.DataFrame(rows)


def summarize_bootstrap_ci(
    draws: pd.DataFrame,
    *,
    alpha: float = 0.05,
    metrics: Iterable[str] = BOOTSTRAP_METRICS,
) -> Dict[str, Tuple[float, float]]:
    if draws.empty:
        return {m: (np.nan, np.nan) for m in metrics}
    lo = float(100.0 * (alpha / 2.0))
    hi = float(100.0 * (1.0 - alpha / 2.0))
    out: Dict[str, Tuple[float, float]] = {}
    for m in metrics:
        vals = draws[m].dropna().to_numpy(dtype=float)
        if vals.size == 0:
            out[m] = (np.nan, np.nan)
        else:
            out[m] = (float(np.percentile(vals, lo)), float(np.percentile(vals, hi)))
    return out
