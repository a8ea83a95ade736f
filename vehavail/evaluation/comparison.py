"""Fit a sequence of nested MNL specifications against one train/test split.

Every specification is estimated on the same complete-case training sample
and scored on the same complete-case test sample (complete for the union of
all specification variables), so likelihoods and accuracies are comparable
across rows of the comparison table.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

from vehavail.config import MNL_MAX_ITER, MNL_METHOD
from vehavail.data.build import complete_cases
from vehavail.evaluation.metrics import compute_multiclass_metrics, confusion_matrix_df, predict_class
from vehavail.models.mnl import FittedMNL, ModelSpec, fit_mnl, fit_statistics


@dataclass
class SpecResult:
    spec: ModelSpec
    fitted: FittedMNL
    proba: pd.DataFrame
    y_pred: pd.Series
    metrics: Dict[str, float]
    confusion: pd.DataFrame

    def summary_row(self) -> Dict[str, object]:
        return {**fit_statistics(self.fitted), **{f"test_{k}": v for k, v in self.metrics.items()}}


@dataclass
class SpecComparison:
    outcome: str
    levels: List[str]
    train: pd.DataFrame
    test: pd.DataFrame
    results: List[SpecResult] = field(default_factory=list)
    lr_tests: pd.DataFrame = field(default_factory=pd.DataFrame)

    def summary_table(self) -> pd.DataFrame:
        rows = [r.summary_row() for r in self.results]
        for row in rows:
            row["n_train"] = int(len(self.train))
            row["n_test"] = int(len(self.test))
        return pd.DataFrame(rows)

    def result(self, name: str) -> SpecResult:
        for r in self.results:
            if r.spec.name == name:
                return r
        raise KeyError(name)


def likelihood_ratio_test(restricted: FittedMNL, full: FittedMNL) -> Dict[str, object]:
    """LR test of `restricted` against the larger `full` model on the same sample."""

    r, f = restricted.results, full.results
    if int(r.nobs) != int(f.nobs) or (
        restricted.train_index is not None
        and full.train_index is not None
        and not restricted.train_index.equals(full.train_index)
    ):
        raise ValueError(
            f"LR test needs both models fitted on the same rows ({restricted.spec.name}: {int(r.nobs)}, "
            f"{full.spec.name}: {int(f.nobs)})."
        )
    if not restricted.spec.is_nested_in(full.spec):
        raise ValueError(f"{restricted.spec.name} is not nested in {full.spec.name}.")

    df_diff = int(np.asarray(f.params).size - np.asarray(r.params).size)
    if df_diff <= 0:
        raise ValueError(f"{full.spec.name} must have more parameters than {restricted.spec.name}.")

    statistic = max(0.0, 2.0 * (float(f.llf) - float(r.llf)))
    return {
        "restricted": restricted.spec.name,
        "full": full.spec.name,
        "lr_statistic": statistic,
        "df": df_diff,
        "p_value": float(stats.chi2.sf(statistic, df_diff)),
    }


def tenure_effect(
    fitted: FittedMNL,
    data: pd.DataFrame,
    *,
    tenure_col: str = "tenure",
    treated: str = "own",
    control: str = "rent",
    by: Optional[str] = "urban",
) -> pd.DataFrame:
    """Average predicted outcome shares with every household set to owner vs renter.

    Returns one row per (group, outcome level); group "all" pools every row,
    other groups come from the `by` column. diff = share_own - share_rent.
    """

    categories = list(data[tenure_col].cat.categories)
    scenario_probs = {}
    for scenario in (treated, control):
        cf = data.copy()
        cf[tenure_col] = pd.Categorical([scenario] * len(cf), categories=categories)
        scenario_probs[scenario] = fitted.predict_proba(cf)

    groups = [("all", np.ones(len(data), dtype=bool))]
    if by is not None and by in data.columns:
        for g in data[by].dropna().unique().tolist():
            groups.append((str(g), (data[by] == g).to_numpy()))

    rows = []
    for group, mask in groups:
        n = int(mask.sum())
        if n == 0:
            continue
        for level in fitted.levels:
            p_t = float(scenario_probs[treated].loc[mask, level].mean())
            p_c = float(scenario_probs[control].loc[mask, level].mean())
            rows.append(
                {
                    "spec": fitted.spec.name,
                    "group": group,
                    "n": n,
                    "level": level,
                    f"share_{treated}": p_t,
                    f"share_{control}": p_c,
                    "diff": p_t - p_c,
                }
            )
    return pd.DataFrame(rows)


def compare_specs(
    specs: Sequence[ModelSpec],
    train: pd.DataFrame,
    test: pd.DataFrame,
    outcome: str,
    levels: Sequence[str],
    *,
    method: str = MNL_METHOD,
    maxiter: int = MNL_MAX_ITER,
) -> SpecComparison:
    if not specs:
        raise ValueError("No specifications to compare.")
    levels = list(levels)

    variables: List[str] = []
    for spec in specs:
        variables.extend(v for v in spec.variables if v not in variables)
    cols = [outcome] + variables

    train_cc = complete_cases(train, cols)
    test_cc = complete_cases(test, cols)
    if train_cc.empty or test_cc.empty:
        raise ValueError(
            f"Complete-case samples are empty (train={len(train_cc)}, test={len(test_cc)}) for columns {cols}."
        )

    comparison = SpecComparison(outcome=outcome, levels=levels, train=train_cc, test=test_cc)
    y_test = test_cc[outcome].astype("string").to_numpy(dtype=object)

    for spec in specs:
        fitted = fit_mnl(spec, train_cc, outcome, levels, method=method, maxiter=maxiter)
        proba = fitted.predict_proba(test_cc)
        y_pred = predict_class(proba)
        comparison.results.append(
            SpecResult(
                spec=spec,
                fitted=fitted,
                proba=proba,
                y_pred=y_pred,
                metrics=compute_multiclass_metrics(y_test, proba, levels),
                confusion=confusion_matrix_df(y_test, y_pred.to_numpy(dtype=object), levels),
            )
        )

    lr_rows = []
    for prev, nxt in zip(comparison.results, comparison.results[1:]):
        if prev.spec.is_nested_in(nxt.spec):
            lr_rows.append(likelihood_ratio_test(prev.fitted, nxt.fitted))
    comparison.lr_tests = pd.DataFrame(lr_rows, columns=["restricted", "full", "lr_statistic", "df", "p_value"])
    return comparison
