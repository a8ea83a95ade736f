from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from vehavail.data.build import build_household_panel


def make_synthetic_nhts(n_households: int = 2000, seed: int = 7):
    """NHTS-shaped household and person tables with vehicle counts drawn from a known MNL.

    Owners, rural households, higher incomes and more drivers all shift
    probability away from zero vehicles.
    """

    rng = np.random.default_rng(seed)
    ids = np.array([f"{i + 1:08d}" for i in range(n_households)])

    homeown = rng.choice([1, 2, 97, -9], size=n_households, p=[0.62, 0.33, 0.03, 0.02])
    urbrur = rng.choice([1, 2], size=n_households, p=[0.75, 0.25])
    hhfaminc = rng.choice(list(range(1, 12)) + [-7], size=n_households, p=[0.08] * 11 + [0.12])
    hhsize = rng.integers(1, 6, size=n_households)

    person_rows = []
    drivers = np.zeros(n_households, dtype=int)
    workers = np.zeros(n_households, dtype=int)
    for h in range(n_households):
        for p in range(hhsize[h]):
            age = int(rng.integers(18, 86)) if p == 0 else int(rng.integers(0, 86))
            driver = 1 if (age >= 16 and rng.random() < 0.9) else 2
            worker = (1 if (age < 65 and rng.random() < 0.7) else 2) if age >= 18 else -1
            educ = int(rng.integers(1, 6)) if age >= 18 else -1
            drivers[h] += driver == 1
            workers[h] += worker == 1
            person_rows.append(
                {"HOUSEID": ids[h], "PERSONID": p + 1, "R_AGE": age, "DRIVER": driver, "WORKER": worker, "EDUC": educ}
            )

    own = (homeown == 1).astype(float)
    rural = (urbrur == 2).astype(float)
    inc = np.select([hhfaminc >= 8, hhfaminc >= 5], [2.0, 1.0], default=0.0)
    utilities = np.column_stack(
        [
            np.zeros(n_households),
            0.3 + 0.7 * own + 0.4 * rural + 0.6 * drivers + 0.4 * inc,
            -1.2 + 1.1 * own + 0.7 * rural + 1.0 * drivers + 0.7 * inc,
            -2.8 + 1.4 * own + 1.0 * rural + 1.3 * drivers + 0.9 * inc,
        ]
    )
    probs = np.exp(utilities - utilities.max(axis=1, keepdims=True))
    probs /= probs.sum(axis=1, keepdims=True)
    cls = np.array([rng.choice(4, p=row) for row in probs])
    vehicles = np.where(cls == 3, 3 + rng.integers(0, 2, size=n_households), cls)

    households = pd.DataFrame(
        {
            "HOUSEID": ids,
            "HHSIZE": hhsize,
            "HHVEHCNT": vehicles,
            "HOMEOWN": homeown,
            "URBRUR": urbrur,
            "HHFAMINC": hhfaminc,
            "WRKCOUNT": workers,
            "DRVRCNT": drivers,
            "WTHHFIN": rng.uniform(50.0, 500.0, size=n_households).round(3),
        }
    )
    persons = pd.DataFrame(person_rows)
    return households, persons


@pytest.fixture(scope="session")
def synthetic_survey():
    return make_synthetic_nhts()


@pytest.fixture(scope="session")
def panel(synthetic_survey):
    households, persons = synthetic_survey
    built, _ = build_household_panel(households, persons)
    return built


@pytest.fixture
def survey_csvs(tmp_path: Path, synthetic_survey):
    households, persons = synthetic_survey
    hh_path = tmp_path / "hhpub.csv"
    per_path = tmp_path / "perpub.csv"
    households.to_csv(hh_path, index=False)
    persons.to_csv(per_path, index=False)
    return hh_path, per_path
