from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from vehavail.config import HOUSEHOLD_COLUMNS, HOUSEHOLD_ID_COL, PERSON_COLUMNS
from vehavail.data.coding import _normalize_name, normalize_column_names


def _read_nhts_csv(path: Path, columns: Iterable[str], nrows: Optional[int]) -> pd.DataFrame:
    columns = list(columns)
    header = pd.read_csv(path, nrows=0)
    lookup = normalize_column_names(header)

    missing = [c for c in columns if _normalize_name(c) not in lookup]
    if missing:
        raise ValueError(f"Missing required columns in {path.name}: {missing}")

    source_cols = {lookup[_normalize_name(c)]: c for c in columns}
    # HOUSEID is zero-padded text in some releases; never parse it as a number.
    id_source = lookup[_normalize_name(HOUSEHOLD_ID_COL)]
    df = pd.read_csv(path, usecols=list(source_cols), nrows=nrows, dtype={id_source: str})
    df = df.rename(columns=source_cols)
    return df[columns]


def load_households(path: Path, nrows: Optional[int] = None) -> pd.DataFrame:
    return _read_nhts_csv(Path(path), HOUSEHOLD_COLUMNS, nrows)


def load_persons(path: Path, nrows: Optional[int] = None) -> pd.DataFrame:
    return _read_nhts_csv(Path(path), PERSON_COLUMNS, nrows)
