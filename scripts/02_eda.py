from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vehavail.config import (  # noqa: E402
    DATASET_VERSION,
    OUTCOME_COL,
    OUTCOME_LEVELS,
    OUTPUTS_DIR,
    PANEL_FILE,
    WEIGHT_COL,
)
from vehavail.data.build import restore_panel_dtypes  # noqa: E402
from vehavail.data.coding import summarize_missingness  # noqa: E402
from vehavail.reporting.figures import plot_share_bars, save_figure  # noqa: E402
from vehavail.utils.logging import runtime_metadata, sha256_file, write_json  # noqa: E402


GROUP_COLS = ["tenure", "urban"]


def outcome_shares(df: pd.DataFrame, outcome: str, levels: list[str], weight_col: str | None) -> pd.DataFrame:
    """Outcome shares by tenure x urban, plus marginal rows for each factor and the total.

    With weight_col set, rows with a missing or non-positive weight are left out.
    """

    tmp = df[GROUP_COLS + [outcome]].copy()
    if weight_col is None:
        tmp["_w"] = 1.0
    else:
        tmp["_w"] = pd.to_numeric(df[weight_col], errors="coerce")
        tmp = tmp.loc[tmp["_w"].notna() & (tmp["_w"] > 0)]

    cells = [("all", "all", tmp)]
    for tenure, g in tmp.groupby("tenure", observed=True, sort=True):
        cells.append((str(tenure), "all", g))
    for urban, g in tmp.groupby("urban", observed=True, sort=True):
        cells.append(("all", str(urban), g))
    for (tenure, urban), g in tmp.groupby(GROUP_COLS, observed=True, sort=True):
        cells.append((str(tenure), str(urban), g))

    rows = []
    for tenure, urban, g in cells:
        w_total = float(g["_w"].sum())
        row = {"tenure": tenure, "urban": urban, "n": int(len(g)), "weight_total": round(w_total, 3)}
        for level in levels:
            w_level = float(g.loc[g[outcome] == level, "_w"].sum())
            row[level] = round(w_level / w_total, 6) if w_total > 0 else np.nan
        rows.append(row)
    return pd.DataFrame(rows)


def main() -> None:
    parser = argparse.ArgumentParser(description="Descriptive vehicle-availability shares by tenure and urban residency.")
    parser.add_argument("--panel", type=Path, default=PANEL_FILE, help="Household panel parquet.")
    parser.add_argument("--outdir", type=Path, default=OUTPUTS_DIR, help="Output directory (default: %(default)s).")
    parser.add_argument("--outcome", choices=sorted(OUTCOME_LEVELS), default=OUTCOME_COL)
    args = parser.parse_args()

    if not args.panel.exists():
        raise SystemExit(f"Panel not found: {args.panel}. Run scripts/01_build_dataset.py first.")

    panel = restore_panel_dtypes(pd.read_parquet(args.panel))
    levels = OUTCOME_LEVELS[args.outcome]

    out_tables = args.outdir / "tables"
    out_figures = args.outdir / "figures"
    out_logs = args.outdir / "logs"
    for d in [out_tables, out_figures, out_logs]:
        d.mkdir(parents=True, exist_ok=True)

    summarize_missingness(panel).to_csv(out_tables / "missingness_eda.csv", index=False)

    unweighted = outcome_shares(panel, args.outcome, levels, weight_col=None)
    weighted = outcome_shares(panel, args.outcome, levels, weight_col=WEIGHT_COL)
    unweighted.to_csv(out_tables / f"{args.outcome}_shares_unweighted.csv", index=False)
    weighted.to_csv(out_tables / f"{args.outcome}_shares_weighted.csv", index=False)

    cells = weighted.loc[(weighted["tenure"] != "all") & (weighted["urban"] != "all")].copy()
    cells.index = cells["tenure"] + " / " + cells["urban"]
    bars = cells[levels]
    bars.columns.name = args.outcome
    fig = plot_share_bars(bars, f"Weighted {args.outcome} shares by tenure / urban")
    save_figure(fig, out_figures / f"{args.outcome}_shares_by_tenure_urban.png")

    write_json(
        out_logs / "eda_run_metadata.json",
        {
            "dataset_version": DATASET_VERSION,
            "panel": str(args.panel),
            "panel_sha256": sha256_file(args.panel),
            "outcome": args.outcome,
            "n_rows": int(len(panel)),
            "weight_col": WEIGHT_COL,
            "n_weight_missing_or_nonpositive": int((~(panel[WEIGHT_COL] > 0)).sum()),
            "runtime": runtime_metadata(),
        },
    )

    print(f"Wrote EDA artifacts to {args.outdir}/")


if __name__ == "__main__":
    main()
