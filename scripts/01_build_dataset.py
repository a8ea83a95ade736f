import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import argparse  # noqa: E402

import pandas as pd  # noqa: E402

from vehavail.config import (  # noqa: E402
    DATASET_VERSION,
    HOUSEHOLD_FILE,
    LOGS_DIR,
    OUTCOME_COL,
    OUTCOME_LEVELS,
    PANEL_FILE,
    PERSON_FILE,
    SUFFICIENCY_COL,
    TABLES_DIR,
)
from vehavail.data.build import build_household_panel  # noqa: E402
from vehavail.data.coding import summarize_missingness  # noqa: E402
from vehavail.data.ingest import load_households, load_persons  # noqa: E402
from vehavail.utils.logging import runtime_metadata, sha256_df, sha256_file, write_json  # noqa: E402


def outcome_counts(panel: pd.DataFrame, col: str) -> dict:
    counts = panel[col].value_counts(dropna=False)
    return {str(level): int(counts.get(level, 0)) for level in OUTCOME_LEVELS[col]}


def main() -> None:
    parser = argparse.ArgumentParser(description="Build the one-row-per-household NHTS modeling panel.")
    parser.add_argument("--household-file", type=Path, default=HOUSEHOLD_FILE, help="NHTS household CSV (hhpub).")
    parser.add_argument("--person-file", type=Path, default=PERSON_FILE, help="NHTS person CSV (perpub).")
    parser.add_argument(
        "--nrows",
        type=int,
        default=None,
        help="Optional: read only the first N household rows (persons are filtered to those households).",
    )
    parser.add_argument("--out-parquet", type=Path, default=PANEL_FILE, help="Output parquet path.")
    parser.add_argument(
        "--audit-csv",
        type=Path,
        default=TABLES_DIR / "panel_audit.csv",
        help="Output audit CSV path.",
    )
    parser.add_argument(
        "--missingness-csv",
        type=Path,
        default=TABLES_DIR / "missingness_panel.csv",
        help="Output missingness summary CSV path.",
    )
    parser.add_argument(
        "--decisions-json",
        type=Path,
        default=LOGS_DIR / "decisions.json",
        help="Output JSON file for coding/filter decisions.",
    )
    args = parser.parse_args()

    if args.nrows is not None and args.nrows <= 0:
        raise SystemExit("--nrows must be a positive integer.")
    for path in [args.household_file, args.person_file]:
        if not path.exists():
            raise SystemExit(f"Input file not found: {path}")

    try:
        households = load_households(args.household_file, nrows=args.nrows)
        persons = load_persons(args.person_file)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc

    if args.nrows is not None:
        persons = persons.loc[persons["HOUSEID"].isin(households["HOUSEID"])].reset_index(drop=True)

    try:
        panel, decisions = build_household_panel(households, persons)
    except ValueError as exc:
        raise SystemExit(f"Panel build failed: {exc}") from exc

    panel_rows, panel_cols = panel.shape
    if panel_rows == 0:
        raise SystemExit("Panel is empty after row filters; check the input files.")

    args.missingness_csv.parent.mkdir(parents=True, exist_ok=True)
    summarize_missingness(panel).to_csv(args.missingness_csv, index=False)

    content_hash = sha256_df(panel)

    args.out_parquet.parent.mkdir(parents=True, exist_ok=True)
    panel.to_parquet(args.out_parquet, index=False)

    veh_counts = outcome_counts(panel, OUTCOME_COL)
    suff_counts = outcome_counts(panel, SUFFICIENCY_COL)

    write_json(
        args.decisions_json,
        {
            **decisions,
            "dataset_version": DATASET_VERSION,
            "inputs": {
                "household_file": str(args.household_file),
                "household_sha256": sha256_file(args.household_file),
                "person_file": str(args.person_file),
                "person_sha256": sha256_file(args.person_file),
                "nrows": args.nrows,
            },
            "raw_household_rows": int(len(households)),
            "raw_person_rows": int(len(persons)),
            "panel_rows": panel_rows,
            "panel_cols": panel_cols,
            "veh_avail_counts": veh_counts,
            "car_sufficiency_counts": suff_counts,
            "output_parquet": str(args.out_parquet),
            "missingness_csv": str(args.missingness_csv),
            "content_hash_sha256": content_hash,
            "runtime": runtime_metadata(),
        },
    )

    args.audit_csv.parent.mkdir(parents=True, exist_ok=True)
    audit = pd.DataFrame(
        [
            {
                "raw_household_rows": int(len(households)),
                "raw_person_rows": int(len(persons)),
                "panel_rows": panel_rows,
                "panel_cols": panel_cols,
                **{f"veh_avail_n_{k}": v for k, v in veh_counts.items()},
                "own_share": round(float(panel["tenure"].eq("own").mean()), 6),
                "urban_share": round(float(panel["urban"].eq("urban").mean()), 6),
                "income_missing_rate": round(float(panel["income_cat"].isna().mean()), 6),
                "content_hash_sha256": content_hash,
                "decisions_json": str(args.decisions_json),
            }
        ]
    )
    audit.to_csv(args.audit_csv, index=False)

    print(f"Wrote {args.out_parquet}")
    print(f"Wrote {args.audit_csv}")
    print(f"Wrote {args.missingness_csv}")
    print(f"Wrote {args.decisions_json}")


if __name__ == "__main__":
    main()
