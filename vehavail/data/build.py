from __future__ import annotations

from typing import Iterable, Tuple

import pandas as pd

from vehavail.config import (
    HOUSEHOLD_COLUMNS,
    HOUSEHOLD_ID_COL,
    ID_COL,
    INCOME_LEVELS,
    OUTCOME_COL,
    OUTCOME_LEVELS,
    PANEL_COLUMNS,
    PERSON_COLUMNS,
    SUFFICIENCY_COL,
    TENURE_LEVELS,
    URBAN_LEVELS,
)
from vehavail.data.coding import coerce_categorical, recode_missing_codes
from vehavail.data.features import (
    car_sufficiency,
    household_person_counts,
    income_category,
    tenure_from_homeown,
    urban_from_urbrur,
    vehicle_availability,
)
from vehavail.data.validate import assert_required_columns, assert_unique_ids


def _count_mismatches(reported: pd.Series, derived: pd.Series) -> dict:
    both = reported.notna() & derived.notna()
    diff = (reported[both].astype(int) != derived[both].astype(int))
    return {"n_compared": int(both.sum()), "n_mismatched": int(diff.sum())}


def _drop_rows(df: pd.DataFrame, keep: pd.Series, rule: str, column: str, filters: list) -> pd.DataFrame:
    n_before = len(df)
    out = df.loc[keep.to_numpy()].reset_index(drop=True)
    filters.append({"rule": rule, "column": column, "dropped_rows": n_before - len(out)})
    return out


def build_household_panel(households: pd.DataFrame, persons: pd.DataFrame) -> Tuple[pd.DataFrame, dict]:
    """Turn raw NHTS household + person rows into the one-row-per-household panel.

    Returns the panel (columns in PANEL_COLUMNS order) and a decisions dict
    recording the cross-checks and every row filter applied.
    """

    assert_required_columns(households, HOUSEHOLD_COLUMNS)
    assert_required_columns(persons, PERSON_COLUMNS)
    assert_unique_ids(households, HOUSEHOLD_ID_COL)

    decisions: dict = {
        "columns": {
            "household": list(HOUSEHOLD_COLUMNS),
            "person": list(PERSON_COLUMNS),
        },
        "cross_checks": {},
        "row_filters": [],
        "weight_handling": "WTHHFIN kept unchanged for weighted descriptives; models are unweighted.",
    }

    counts = household_person_counts(persons, id_col=HOUSEHOLD_ID_COL)
    hh = households.merge(counts, on=HOUSEHOLD_ID_COL, how="left", validate="one_to_one")

    hhsize = recode_missing_codes(hh["HHSIZE"])
    drvrcnt = recode_missing_codes(hh["DRVRCNT"])
    wrkcount = recode_missing_codes(hh["WRKCOUNT"])
    has_persons = hh["n_persons"].notna()

    decisions["cross_checks"] = {
        "HHSIZE_vs_person_rows": _count_mismatches(hhsize, hh["n_persons"]),
        "DRVRCNT_vs_person_drivers": _count_mismatches(drvrcnt, hh["n_drivers"]),
        "WRKCOUNT_vs_person_workers": _count_mismatches(wrkcount, hh["n_workers"]),
    }

    panel = pd.DataFrame(
        {
            ID_COL: hh[HOUSEHOLD_ID_COL].astype(str),
            OUTCOME_COL: vehicle_availability(hh["HHVEHCNT"]),
            # Drivers come from the person roster, the same source as the other counts.
            SUFFICIENCY_COL: car_sufficiency(hh["HHVEHCNT"], hh["n_drivers"]),
            "tenure": tenure_from_homeown(hh["HOMEOWN"]),
            "urban": urban_from_urbrur(hh["URBRUR"]),
            "income_cat": income_category(hh["HHFAMINC"]),
            "hhsize": hhsize,
            "n_vehicles": recode_missing_codes(hh["HHVEHCNT"]),
            "n_drivers": hh["n_drivers"].astype("Int64"),
            "n_workers": hh["n_workers"].astype("Int64"),
            "n_children": hh["n_children"].astype("Int64"),
            "n_seniors": hh["n_seniors"].astype("Int64"),
            "has_bachelor": hh["has_bachelor"].astype("Int64"),
            "weight": pd.to_numeric(hh["WTHHFIN"], errors="coerce"),
        }
    )

    filters = decisions["row_filters"]
    panel = _drop_rows(panel, has_persons, "drop_households_without_person_rows", "n_persons", filters)
    panel = _drop_rows(panel, panel[OUTCOME_COL].notna(), "drop_missing_outcome", OUTCOME_COL, filters)
    panel = _drop_rows(
        panel, panel["tenure"].isin(TENURE_LEVELS), "keep_tenure_own_or_rent", "tenure", filters
    )
    panel = _drop_rows(panel, panel["urban"].notna(), "drop_missing_urban", "urban", filters)

    # Only own/rent survive the filter above; narrow the categories to match.
    panel["tenure"] = coerce_categorical(panel["tenure"].astype("string"), TENURE_LEVELS)

    panel = panel.sort_values(ID_COL, kind="mergesort").reset_index(drop=True)
    return panel[PANEL_COLUMNS], decisions


def restore_panel_dtypes(panel: pd.DataFrame) -> pd.DataFrame:
    """Re-apply the fixed category orders after a parquet round trip."""

    assert_required_columns(panel, PANEL_COLUMNS)
    out = panel.copy()
    categorical = {
        OUTCOME_COL: OUTCOME_LEVELS[OUTCOME_COL],
        SUFFICIENCY_COL: OUTCOME_LEVELS[SUFFICIENCY_COL],
        "tenure": TENURE_LEVELS,
        "urban": URBAN_LEVELS,
        "income_cat": INCOME_LEVELS,
    }
    for col, levels in categorical.items():
        out[col] = coerce_categorical(out[col].astype("string"), levels)
    out[ID_COL] = out[ID_COL].astype(str)
    return out


def complete_cases(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    columns = list(columns)
    assert_required_columns(df, columns)
    if not columns:
        return df.copy()
    return df.loc[df[columns].notna().all(axis=1)].copy()
