from typing import Iterable


def assert_required_columns(df, required: Iterable[str]) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def assert_unique_ids(df, id_col: str) -> None:
    dup = df[id_col].duplicated(keep=False)
    if dup.any():
        examples = sorted(df.loc[dup, id_col].astype(str).unique().tolist())[:5]
        raise ValueError(f"Column {id_col} must be unique; {int(dup.sum())} duplicated rows (e.g. {examples}).")
