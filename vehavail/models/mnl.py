"""Multinomial logit specifications and fitting on the household panel.

Estimation itself is delegated to statsmodels' MNLogit. This module owns the
pieces around it: turning a specification into a patsy design matrix, coding
the outcome so the chosen reference level is the base equation, and mapping
the solver's output back to labelled probabilities and coefficient tables.
"""
from __future__ import annotations

import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from patsy import build_design_matrices, dmatrix
from scipy import stats
from statsmodels.discrete.discrete_model import MNLogit
from statsmodels.tools.sm_exceptions import HessianInversionWarning

from vehavail.config import MNL_MAX_ITER, MNL_METHOD, MODEL_SPECS
from vehavail.data.validate import assert_required_columns


@dataclass(frozen=True)
class ModelSpec:
    name: str
    terms: Tuple[str, ...]
    reference: str

    @property
    def rhs(self) -> str:
        return " + ".join(self.terms) if self.terms else "1"

    def formula(self, outcome: str) -> str:
        return f"{outcome} ~ {self.rhs}"

    @property
    def variables(self) -> List[str]:
        out: List[str] = []
        for term in self.terms:
            for var in term.split(":"):
                var = var.strip()
                if var not in out:
                    out.append(var)
        return out

    def is_nested_in(self, other: "ModelSpec") -> bool:
        return set(self.terms) <= set(other.terms) and self.reference == other.reference


def nested_specs(reference: str, specs: Iterable[Tuple[str, Sequence[str]]] = MODEL_SPECS) -> List[ModelSpec]:
    return [ModelSpec(name=name, terms=tuple(terms), reference=reference) for name, terms in specs]


def order_levels(levels: Sequence[str], reference: str) -> List[str]:
    """Outcome levels with the reference first (the MNL base equation)."""
    levels = list(levels)
    if reference not in levels:
        raise ValueError(f"Reference level {reference!r} is not one of {levels}.")
    return [reference] + [lvl for lvl in levels if lvl != reference]


def _design_frame(data: pd.DataFrame, variables: Sequence[str]) -> pd.DataFrame:
    # patsy reads nullable integer columns as objects (i.e. categorical); hand it floats.
    frame = pd.DataFrame(index=data.index)
    for var in variables:
        s = data[var]
        if isinstance(s.dtype, pd.CategoricalDtype):
            frame[var] = s
        else:
            frame[var] = pd.to_numeric(s, errors="raise").astype(float)
    return frame


@dataclass
class FittedMNL:
    spec: ModelSpec
    outcome: str
    levels: List[str]
    fit_levels: List[str]
    results: object
    exog_names: List[str]
    design_info: Optional[object] = None
    fit_warnings: List[str] = field(default_factory=list)
    train_index: Optional[pd.Index] = None

    @property
    def converged(self) -> bool:
        return bool(self.results.mle_retvals.get("converged", False))

    def design_matrix(self, data: pd.DataFrame) -> pd.DataFrame:
        assert_required_columns(data, self.spec.variables)
        frame = _design_frame(data, self.spec.variables)
        if frame.isna().any().any():
            raise ValueError(f"{self.spec.name}: predictors contain missing values; pass complete cases.")
        if self.design_info is None:
            return pd.DataFrame({"Intercept": 1.0}, index=data.index)
        return build_design_matrices([self.design_info], frame, return_type="dataframe")[0]

    def predict_proba(self, data: pd.DataFrame) -> pd.DataFrame:
        """Class probabilities, one column per outcome level in canonical order."""
        X = self.design_matrix(data)
        probs = np.asarray(self.results.predict(X), dtype=float)
        out = pd.DataFrame(probs, index=data.index, columns=self.fit_levels)
        return out[self.levels]


def fit_mnl(
    spec: ModelSpec,
    data: pd.DataFrame,
    outcome: str,
    levels: Sequence[str],
    *,
    method: str = MNL_METHOD,
    maxiter: int = MNL_MAX_ITER,
) -> FittedMNL:
    """Fit one MNL specification on complete rows of `data`.

    The outcome is integer coded with the reference level as 0, so MNLogit
    estimates one equation per non-reference level.
    """

    assert_required_columns(data, [outcome] + spec.variables)
    levels = list(levels)
    fit_levels = order_levels(levels, spec.reference)

    sample = data.loc[data[[outcome] + spec.variables].notna().all(axis=1)]
    if sample.empty:
        raise ValueError(f"{spec.name}: no complete rows to fit on.")

    y_labels = sample[outcome].astype("string")
    observed = set(y_labels.unique().tolist())
    unexpected = sorted(observed - set(levels))
    if unexpected:
        raise ValueError(f"{spec.name}: outcome labels {unexpected} are not in {levels}.")
    absent = [lvl for lvl in fit_levels if lvl not in observed]
    if absent:
        raise ValueError(f"{spec.name}: outcome level(s) {absent} not observed in the estimation sample.")

    codes = {lvl: i for i, lvl in enumerate(fit_levels)}
    y = pd.Series(y_labels.map(codes).astype(int).to_numpy(), index=sample.index, name=outcome)

    frame = _design_frame(sample, spec.variables)
    if spec.terms:
        X = dmatrix(spec.rhs, frame, return_type="dataframe")
        design_info = X.design_info
        # patsy DesignInfo does not pickle; keep it off the frame the results hold on to.
        X = pd.DataFrame(X.to_numpy(), index=X.index, columns=list(X.columns))
    else:
        X = pd.DataFrame({"Intercept": 1.0}, index=sample.index)
        design_info = None

    empty_cols = [c for c in X.columns if not X[c].any()]
    if empty_cols:
        raise ValueError(f"{spec.name}: design columns {empty_cols} are all zero in the estimation sample.")
    rank = int(np.linalg.matrix_rank(X.to_numpy(dtype=float)))
    if rank < X.shape[1]:
        raise RuntimeError(
            f"{spec.name}: singular Hessian; design matrix has rank {rank} for {X.shape[1]} columns {list(X.columns)}."
        )

    model = MNLogit(y, X)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            results = model.fit(method=method, maxiter=maxiter, disp=False)
        except np.linalg.LinAlgError as exc:
            raise RuntimeError(f"{spec.name}: singular Hessian while fitting MNL ({exc}).") from exc
    if any(issubclass(w.category, HessianInversionWarning) for w in caught):
        raise RuntimeError(f"{spec.name}: singular Hessian at the MNL optimum; standard errors are unavailable.")

    return FittedMNL(
        spec=spec,
        outcome=outcome,
        levels=levels,
        fit_levels=fit_levels,
        results=results,
        exog_names=list(X.columns),
        design_info=design_info,
        fit_warnings=[f"{w.category.__name__}: {w.message}" for w in caught],
        train_index=sample.index,
    )


def coefficient_table(fitted: FittedMNL, alpha: float = 0.05) -> pd.DataFrame:
    """Tidy coefficients: one row per (non-reference equation, term)."""

    res = fitted.results
    params = np.asarray(res.params, dtype=float)
    bse = np.asarray(res.bse, dtype=float)
    zvals = np.asarray(res.tvalues, dtype=float)
    pvals = np.asarray(res.pvalues, dtype=float)
    crit = float(stats.norm.ppf(1.0 - alpha / 2.0))

    rows = []
    for j, level in enumerate(fitted.fit_levels[1:]):
        for i, term in enumerate(fitted.exog_names):
            coef = float(params[i, j])
            se = float(bse[i, j])
            rows.append(
                {
                    "spec": fitted.spec.name,
                    "reference": fitted.spec.reference,
                    "equation": level,
                    "term": term,
                    "coef": coef,
                    "std_err": se,
                    "z": float(zvals[i, j]),
                    "p_value": float(pvals[i, j]),
                    "ci95_low": coef - crit * se,
                    "ci95_high": coef + crit * se,
                    "rrr": float(np.exp(coef)),
                }
            )
    return pd.DataFrame(rows)


def fit_statistics(fitted: FittedMNL) -> Dict[str, object]:
    res = fitted.results
    return {
        "spec": fitted.spec.name,
        "formula": fitted.spec.formula(fitted.outcome),
        "reference": fitted.spec.reference,
        "nobs": int(res.nobs),
        "n_params": int(np.asarray(res.params).size),
        "llf": float(res.llf),
        "llnull": float(res.llnull),
        "prsquared": float(res.prsquared),
        "aic": float(res.aic),
        "bic": float(res.bic),
        "converged": fitted.converged,
        "iterations": int(res.mle_retvals.get("iterations", -1)),
        "n_fit_warnings": len(fitted.fit_warnings),
    }
