from __future__ import annotations

import re
from typing import Dict, Iterable, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from vehavail.config import NHTS_MISSING_CODES


_NORMALIZE_RE = re.compile(r"[^0-9a-zA-Z]+")


def _normalize_name(name: str) -> str:
    return _NORMALIZE_RE.sub("_", name).strip("_").lower()


def normalize_column_names(df: pd.DataFrame) -> Dict[str, str]:
    """Return a normalized-name -> exact-name mapping for df columns.

    This does not modify the DataFrame. NHTS releases differ in column casing
    (HOUSEID in 2017, houseid in 2022), so lookups go through this mapping.
    """

    mapping: Dict[str, str] = {}
    collisions: Dict[str, list[str]] = {}

    for col in df.columns.astype(str).tolist():
        norm = _normalize_name(col)
        if norm in mapping and mapping[norm] != col:
            collisions.setdefault(norm, sorted({mapping[norm], col}))
        mapping[norm] = col

    if collisions:
        raise ValueError(f"Normalized column name collisions: {collisions}")

    return mapping


def recode_missing_codes(series: pd.Series, *, missing_values: Tuple = NHTS_MISSING_CODES) -> pd.Series:
    """Map survey missing codes (and NaN) to NA; return nullable Int64."""

    s = pd.to_numeric(series, errors="coerce")
    s = s.mask(s.isin(missing_values))
    non_integer = s.dropna()
    non_integer = non_integer[non_integer != np.floor(non_integer)]
    if len(non_integer) > 0:
        raise ValueError(f"Expected integer survey codes; observed: {sorted(non_integer.unique().tolist())[:10]}")
    return s.round().astype("Int64")


def coerce_categorical(series: pd.Series, levels: Sequence[str]) -> pd.Series:
    """Convert a label Series to a categorical with a fixed category order.

    Labels outside `levels` raise instead of silently becoming NA.
    """

    s = series.astype("string")
    unexpected = sorted(set(s.dropna().unique().tolist()) - set(levels))
    if unexpected:
        raise ValueError(f"Unexpected labels {unexpected}; expected one of {list(levels)}.")
    return pd.Series(pd.Categorical(s, categories=list(levels)), index=series.index, name=series.name)


def recode_levels(
    series: pd.Series,
    mapping: Mapping[int, str],
    levels: Iterable[str],
    *,
    missing_values: Tuple = NHTS_MISSING_CODES,
) -> pd.Series:
    """Recode integer survey codes to labelled categories.

    - codes in `mapping` map to their label
    - missing_values and NaN map to NA
    - any other code raises ValueError
    """

    codes = recode_missing_codes(series, missing_values=missing_values)
    observed = codes.dropna()
    unexpected = sorted(set(observed.unique().tolist()) - set(mapping))
    if unexpected:
        raise ValueError(
            f"Unexpected codes in {series.name}: {unexpected}; "
            f"expected {sorted(mapping)} or missing={list(missing_values)}."
        )
    labels = codes.map(lambda v: mapping[int(v)] if not pd.isna(v) else pd.NA)
    return coerce_categorical(labels, list(levels))


def summarize_missingness(df: pd.DataFrame) -> pd.DataFrame:
    """Return per-column missingness summary in stable column order."""

    n = len(df)
    rows = []
    for col in df.columns.astype(str).tolist():
        n_missing = int(df[col].isna().sum())
        missing_rate = round(n_missing / n, 6) if n else np.nan
        rows.append({"column": col, "n": n, "n_missing": n_missing, "missing_rate": missing_rate})
    return pd.DataFrame(rows)
