from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import numpy as np
import pandas as pd
from pandas.api.types import infer_dtype


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vehavail.config import (  # noqa: E402
    HOUSEHOLD_COLUMNS,
    HOUSEHOLD_FILE,
    NHTS_MISSING_CODES,
    PERSON_COLUMNS,
    PERSON_FILE,
    TABLES_DIR,
)
from vehavail.data.ingest import load_households, load_persons  # noqa: E402


VALUE_COUNTS_COLUMNS = {
    "household": ["HHVEHCNT", "HOMEOWN", "URBRUR", "HHFAMINC", "HHSIZE", "DRVRCNT", "WRKCOUNT"],
    "person": ["DRIVER", "WORKER", "EDUC"],
}


def stringify_value(value) -> str:
    if pd.isna(value):
        return "<NA>"
    if isinstance(value, (np.integer, int)):
        return str(int(value))
    if isinstance(value, (np.floating, float)):
        fv = float(value)
        if fv.is_integer():
            return str(int(fv))
        return str(fv)
    return str(value)


def first_k_distinct_examples(series: pd.Series, k: int = 5) -> list[str]:
    seen: set[str] = set()
    examples: list[str] = []
    for v in series.to_numpy(copy=False):
        if pd.isna(v):
            continue
        sv = stringify_value(v)
        if sv in seen:
            continue
        seen.add(sv)
        examples.append(sv)
        if len(examples) >= k:
            break
    return examples


def schema_notes(column: str, n_total: int, n_missing: int, n_missing_code: int, n_unique: int) -> str:
    notes: list[str] = []
    if n_total == 0:
        return "empty"
    if n_missing == n_total:
        return "all_missing"

    if n_unique == 1:
        notes.append("constant")
    if (n_missing + n_missing_code) / n_total >= 0.50:
        notes.append("high_missingness")
    if n_missing_code > 0:
        notes.append("has_negative_missing_codes")
    if n_unique == n_total and column.upper() == "HOUSEID":
        notes.append("identifier")
    return ";".join(notes)


def build_schema_table(df: pd.DataFrame, source: str) -> pd.DataFrame:
    n_total = len(df)
    rows: list[dict] = []

    for col in df.columns:
        s = df[col]
        n_missing = int(s.isna().sum())
        numeric = pd.api.types.is_numeric_dtype(s)
        n_missing_code = int(s.isin(NHTS_MISSING_CODES).sum()) if numeric else 0
        n_unique = int(s.nunique(dropna=True))

        min_val = ""
        max_val = ""
        if numeric:
            valid = s.dropna()
            valid = valid[~valid.isin(NHTS_MISSING_CODES)]
            if len(valid) > 0:
                min_val = valid.min()
                max_val = valid.max()

        rows.append(
            {
                "source": source,
                "column": col,
                "dtype_inferred": infer_dtype(s, skipna=True),
                "n_total": n_total,
                "n_missing": n_missing,
                "n_missing_code": n_missing_code,
                "missing_rate": round((n_missing + n_missing_code) / n_total, 6) if n_total else np.nan,
                "n_unique": n_unique,
                "example_values": json.dumps(first_k_distinct_examples(s), ensure_ascii=True),
                "min_valid": min_val,
                "max_valid": max_val,
                "notes": schema_notes(col, n_total, n_missing, n_missing_code, n_unique),
            }
        )

    return pd.DataFrame(rows)


def write_value_counts(series: pd.Series, name: str, out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    labels = series.map(stringify_value)
    counts = labels.value_counts(dropna=False).rename_axis("value").reset_index(name="count")
    counts["proportion"] = (counts["count"] / len(series)).round(6)
    counts = counts.sort_values(["count", "value"], ascending=[False, True], kind="mergesort")
    counts.to_csv(out_dir / f"value_counts_{name}.csv", index=False)


def main() -> None:
    parser = argparse.ArgumentParser(description="Column audit of the raw NHTS household and person files.")
    parser.add_argument("--household-file", type=Path, default=HOUSEHOLD_FILE)
    parser.add_argument("--person-file", type=Path, default=PERSON_FILE)
    parser.add_argument("--nrows", type=int, default=None)
    parser.add_argument("--outdir", type=Path, default=TABLES_DIR)
    args = parser.parse_args()

    for path in [args.household_file, args.person_file]:
        if not path.exists():
            raise SystemExit(f"Input file not found: {path}")

    try:
        households = load_households(args.household_file, nrows=args.nrows)
        persons = load_persons(args.person_file, nrows=args.nrows)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    schema = pd.concat(
        [build_schema_table(households, "household"), build_schema_table(persons, "person")],
        ignore_index=True,
    )
    args.outdir.mkdir(parents=True, exist_ok=True)
    schema.to_csv(args.outdir / "schema_raw.csv", index=False)

    for col in VALUE_COUNTS_COLUMNS["household"]:
        if col in HOUSEHOLD_COLUMNS:
            write_value_counts(households[col], f"household_{col}", args.outdir)
    for col in VALUE_COUNTS_COLUMNS["person"]:
        if col in PERSON_COLUMNS:
            write_value_counts(persons[col], f"person_{col}", args.outdir)

    print(f"Wrote schema audit outputs to {args.outdir}/")


if __name__ == "__main__":
    main()
