from __future__ import annotations

import numpy as np
import pandas as pd

from vehavail.config import (
    ADULT_AGE,
    BACHELOR_EDUC_CODES,
    HOUSEHOLD_ID_COL,
    INCOME_BRACKETS,
    INCOME_LEVELS,
    OUTCOME_COL,
    OUTCOME_LEVELS,
    SENIOR_AGE,
    SUFFICIENCY_COL,
    TENURE_CODES,
    URBAN_CODES,
    URBAN_LEVELS,
    YES_NO_CODES,
)
from vehavail.data.coding import coerce_categorical, recode_levels, recode_missing_codes
from vehavail.data.validate import assert_required_columns


PERSON_COUNT_COLUMNS = [
    "n_persons",
    "n_adults",
    "n_children",
    "n_seniors",
    "n_drivers",
    "n_workers",
    "has_bachelor",
]


# ---------------------------------------------------------------------------
# Household-level (per-row) transforms
# ---------------------------------------------------------------------------


def tenure_from_homeown(homeown: pd.Series) -> pd.Series:
    """HOMEOWN -> {own, rent, other}; survey missing codes become NA."""
    return recode_levels(homeown, TENURE_CODES, ["own", "rent", "other"])


def urban_from_urbrur(urbrur: pd.Series) -> pd.Series:
    return recode_levels(urbrur, URBAN_CODES, URBAN_LEVELS)


def income_category(hhfaminc: pd.Series) -> pd.Series:
    mapping = {code: label for label, codes in INCOME_BRACKETS.items() for code in codes}
    return recode_levels(hhfaminc, mapping, INCOME_LEVELS)


def vehicle_availability(vehicle_count: pd.Series) -> pd.Series:
    """Bin household vehicle counts into zero / one / two / three_plus."""

    n = recode_missing_codes(vehicle_count)
    # Undeclared negative codes are missing too.
    n = n.mask((n < 0).fillna(False))

    labels = pd.Series(pd.NA, index=n.index, dtype="object")
    labels[(n == 0).fillna(False)] = "zero"
    labels[(n == 1).fillna(False)] = "one"
    labels[(n == 2).fillna(False)] = "two"
    labels[(n >= 3).fillna(False)] = "three_plus"
    return coerce_categorical(labels.rename(vehicle_count.name), OUTCOME_LEVELS[OUTCOME_COL])


def car_sufficiency(vehicles: pd.Series, drivers: pd.Series) -> pd.Series:
    """Vehicles relative to drivers.

    zero: no vehicle; insufficient: fewer vehicles than drivers;
    sufficient: at least one vehicle per driver (including driverless
    households that keep a vehicle).
    """

    v = recode_missing_codes(vehicles)
    d = recode_missing_codes(drivers)

    labels = pd.Series(pd.NA, index=v.index, dtype="object")
    known = (v.notna() & d.notna()).to_numpy()
    v = v.fillna(-1)
    d = d.fillna(-1)
    labels[known & (v == 0)] = "zero"
    labels[known & (v > 0) & (v < d)] = "insufficient"
    labels[known & (v > 0) & (v >= d)] = "sufficient"
    return coerce_categorical(labels, OUTCOME_LEVELS[SUFFICIENCY_COL])


# ---------------------------------------------------------------------------
# Person-level aggregates (per-household group transforms)
# ---------------------------------------------------------------------------


def household_person_counts(persons: pd.DataFrame, id_col: str = HOUSEHOLD_ID_COL) -> pd.DataFrame:
    """Aggregate person records to one row of counts per household.

    Persons with unknown age count toward n_persons only. DRIVER/WORKER use
    the NHTS 1=yes / 2=no coding; anything else is treated as "not".
    """

    assert_required_columns(persons, [id_col, "R_AGE", "DRIVER", "WORKER", "EDUC"])

    age = recode_missing_codes(persons["R_AGE"])
    driver = recode_missing_codes(persons["DRIVER"]).map(YES_NO_CODES)
    worker = recode_missing_codes(persons["WORKER"]).map(YES_NO_CODES)
    educ = recode_missing_codes(persons["EDUC"])

    flags = pd.DataFrame(
        {
            id_col: persons[id_col].to_numpy(),
            "n_persons": 1,
            "n_adults": (age >= ADULT_AGE).fillna(False).astype(int).to_numpy(),
            "n_children": (age < ADULT_AGE).fillna(False).astype(int).to_numpy(),
            "n_seniors": (age >= SENIOR_AGE).fillna(False).astype(int).to_numpy(),
            "n_drivers": driver.eq(1).fillna(False).astype(int).to_numpy(),
            "n_workers": worker.eq(1).fillna(False).astype(int).to_numpy(),
            "has_bachelor": educ.isin(BACHELOR_EDUC_CODES).fillna(False).astype(int).to_numpy(),
        }
    )

    agg = {c: "sum" for c in PERSON_COUNT_COLUMNS}
    agg["has_bachelor"] = "max"
    counts = flags.groupby(id_col, sort=True).agg(agg).reset_index()
    counts[PERSON_COUNT_COLUMNS] = counts[PERSON_COUNT_COLUMNS].astype(np.int64)
    return counts
