import pandas as pd

from vehavail.data.features import (
    car_sufficiency,
    household_person_counts,
    income_category,
    tenure_from_homeown,
    urban_from_urbrur,
    vehicle_availability,
)


def _labels(s: pd.Series) -> list:
    return s.astype("string").fillna("<NA>").tolist()


def test_vehicle_availability_bins_counts():
    out = vehicle_availability(pd.Series([0, 1, 2, 3, 7, -9], name="HHVEHCNT"))
    assert _labels(out) == ["zero", "one", "two", "three_plus", "three_plus", "<NA>"]
    assert list(out.cat.categories) == ["zero", "one", "two", "three_plus"]


def test_car_sufficiency_compares_vehicles_to_drivers():
    vehicles = pd.Series([0, 1, 2, 2, 1, 3])
    drivers = pd.Series([2, 2, 2, 1, 0, -9])
    out = car_sufficiency(vehicles, drivers)
    assert _labels(out) == ["zero", "insufficient", "sufficient", "sufficient", "sufficient", "<NA>"]


def test_income_category_brackets():
    out = income_category(pd.Series([1, 4, 5, 7, 8, 11, -7], name="HHFAMINC"))
    assert _labels(out) == ["lt35k", "lt35k", "35k_100k", "35k_100k", "gt100k", "gt100k", "<NA>"]


def test_tenure_and_urban_recoding():
    assert _labels(tenure_from_homeown(pd.Series([1, 2, 97, -8], name="HOMEOWN"))) == [
        "own",
        "rent",
        "other",
        "<NA>",
    ]
    urban = urban_from_urbrur(pd.Series([2, 1], name="URBRUR"))
    assert _labels(urban) == ["rural", "urban"]
    assert list(urban.cat.categories) == ["urban", "rural"]


def test_household_person_counts_aggregates_roster():
    persons = pd.DataFrame(
        {
            "HOUSEID": ["a", "a", "a", "b", "b"],
            "PERSONID": [1, 2, 3, 1, 2],
            "R_AGE": [45, 12, 70, -9, 30],
            "DRIVER": [1, 2, 1, 1, 2],
            "WORKER": [1, -1, 2, 1, 1],
            "EDUC": [4, -1, 2, 3, 5],
        }
    )
    counts = household_person_counts(persons).set_index("HOUSEID")

    assert counts.loc["a", "n_persons"] == 3
    assert counts.loc["a", "n_adults"] == 2
    assert counts.loc["a", "n_children"] == 1
    assert counts.loc["a", "n_seniors"] == 1
    assert counts.loc["a", "n_drivers"] == 2
    assert counts.loc["a", "n_workers"] == 1
    assert counts.loc["a", "has_bachelor"] == 1

    # Unknown age counts as a person but not toward any age group.
    assert counts.loc["b", "n_persons"] == 2
    assert counts.loc["b", "n_adults"] == 1
    assert counts.loc["b", "n_children"] == 0
    assert counts.loc["b", "n_drivers"] == 1
    assert counts.loc["b", "n_workers"] == 2
    assert counts.loc["b", "has_bachelor"] == 1


def test_vehicle_availability_treats_any_negative_count_as_missing():
    out = vehicle_availability(pd.Series([1, -5, -1, 0], name="HHVEHCNT"))
    assert _labels(out) == ["one", "<NA>", "<NA>", "zero"]
