from __future__ import annotations

import argparse
import hashlib
import random
import sys
from pathlib import Path
from typing import Dict, List

import numpy as np
import pandas as pd

import joblib


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vehavail.config import (  # noqa: E402
    DATASET_VERSION,
    EXPERIMENT_NAMESPACE,
    ID_COL,
    MIN_GROUP_N,
    MNL_MAX_ITER,
    MNL_METHOD,
    N_BOOT,
    OUTCOME_COL,
    OUTCOME_LEVELS,
    OUTCOME_REFERENCE,
    OUTPUTS_DIR,
    PANEL_FILE,
    RANDOM_SEEDS,
    TEST_SIZE,
)
from vehavail.data.build import restore_panel_dtypes  # noqa: E402
from vehavail.data.splits import make_household_split  # noqa: E402
from vehavail.evaluation.bootstrap import stratified_bootstrap_metric_draws, summarize_bootstrap_ci  # noqa: E402
from vehavail.evaluation.comparison import SpecResult, compare_specs, tenure_effect  # noqa: E402
from vehavail.evaluation.subgroup_adequacy import evaluate_subgroup_adequacy  # noqa: E402
from vehavail.models.mnl import coefficient_table, nested_specs  # noqa: E402
from vehavail.reporting.figures import plot_confusion_matrix, save_figure  # noqa: E402
from vehavail.utils.logging import runtime_metadata, sha256_file, sha256_np_array, write_json  # noqa: E402


SLICE_COLS = ["tenure", "urban"]


def deterministic_run_id(seed: int, outcome: str, reference: str) -> str:
    return f"{EXPERIMENT_NAMESPACE}_seed{seed}_{outcome}_ref-{reference}"


def save_npz(path: Path, **arrays) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(path, **arrays)


def save_predictions(result: SpecResult, test: pd.DataFrame, outcome: str, out_path: Path) -> Path:
    preds = pd.DataFrame(
        {
            ID_COL: test[ID_COL].to_numpy(),
            "y_true": test[outcome].astype("string").to_numpy(),
            "y_pred": result.y_pred.to_numpy(),
        }
    )
    for level in result.proba.columns:
        preds[f"p_{level}"] = result.proba[level].to_numpy()
    for col in SLICE_COLS:
        preds[col] = test[col].astype("string").to_numpy()
    preds.to_csv(out_path, index=False)
    return out_path


def error_slices(
    result: SpecResult, test: pd.DataFrame, outcome: str, levels: List[str], min_group_n: int
) -> tuple[pd.DataFrame, Dict[str, List[str]]]:
    y_true = test[outcome].astype("string").to_numpy(dtype=object)
    y_pred = result.y_pred.to_numpy(dtype=object)

    rows = []
    omitted: Dict[str, List[str]] = {c: [] for c in SLICE_COLS}
    for group_col in SLICE_COLS:
        gvals = test[group_col].astype("string").fillna("<NA>").to_numpy(dtype=object)
        for g in sorted(set(gvals.tolist())):
            mask = gvals == g
            adequacy = evaluate_subgroup_adequacy(y_true[mask], levels, min_group_n=min_group_n)
            row = {
                "spec": result.spec.name,
                "grouping": group_col,
                "group_value": g,
                "n": adequacy.n,
                "n_levels_observed": adequacy.n_levels_observed,
                "adequacy_flag": adequacy.adequate,
                "reason": adequacy.reason,
                "accuracy": np.nan,
            }
            if adequacy.adequate:
                row["accuracy"] = round(float(np.mean(y_true[mask] == y_pred[mask])), 6)
            else:
                omitted[group_col].append(g)
            rows.append(row)
    return pd.DataFrame(rows), omitted


def main() -> None:
    parser = argparse.ArgumentParser(description="Fit nested MNL specifications of household vehicle availability.")
    parser.add_argument("--panel", type=Path, default=PANEL_FILE, help="Household panel parquet.")
    parser.add_argument("--seed", type=int, default=RANDOM_SEEDS[0], help="Random seed for the household split.")
    parser.add_argument(
        "--allow-any-seed",
        action="store_true",
        help="Allow seeds not listed in vehavail/config.py RANDOM_SEEDS.",
    )
    parser.add_argument("--outcome", choices=sorted(OUTCOME_LEVELS), default=OUTCOME_COL)
    parser.add_argument("--reference", type=str, default=None, help="Reference outcome level (default per outcome).")
    parser.add_argument("--stratify", action="store_true", help="Stratify the household split on the outcome.")
    parser.add_argument("--nrows", type=int, default=None, help="Optional dev mode: head(n) households.")
    parser.add_argument(
        "--outdir", type=Path, default=OUTPUTS_DIR, help="Output directory (default: %(default)s)."
    )
    parser.add_argument("--n-boot", type=int, default=N_BOOT, help="Bootstrap resamples for test-set CIs.")
    parser.add_argument("--min-group-n", type=int, default=MIN_GROUP_N)
    parser.add_argument("--method", type=str, default=MNL_METHOD, help="statsmodels optimizer for MNLogit.")
    parser.add_argument("--maxiter", type=int, default=MNL_MAX_ITER)
    args = parser.parse_args()

    if (not args.allow_any_seed) and (args.seed not in RANDOM_SEEDS):
        raise SystemExit(f"--seed must be one of {RANDOM_SEEDS} unless --allow-any-seed is provided.")
    if args.nrows is not None and args.nrows <= 0:
        raise SystemExit("--nrows must be a positive integer.")
    if args.n_boot < 0:
        raise SystemExit("--n-boot must be >= 0.")

    levels = list(OUTCOME_LEVELS[args.outcome])
    reference = args.reference or OUTCOME_REFERENCE[args.outcome]
    if reference not in levels:
        raise SystemExit(f"--reference must be one of {levels} for outcome {args.outcome}.")

    random.seed(args.seed)
    np.random.seed(args.seed)

    if not args.panel.exists():
        raise SystemExit(f"Modeling input not found: {args.panel}. Run scripts/01_build_dataset.py first.")

    panel = restore_panel_dtypes(pd.read_parquet(args.panel))
    if args.nrows is not None:
        panel = panel.head(args.nrows).copy()

    outdir = args.outdir
    out_metrics = outdir / "metrics"
    out_tables = outdir / "tables"
    out_figures = outdir / "figures"
    out_models = outdir / "models"
    out_splits = outdir / "splits"
    out_logs = outdir / "logs"
    for d in [out_metrics, out_tables, out_figures, out_models, out_splits, out_logs]:
        d.mkdir(parents=True, exist_ok=True)

    # Households are the sampling unit; the panel has one row per household.
    try:
        train_ids, test_ids = make_household_split(
            panel[ID_COL].to_numpy(),
            test_size=TEST_SIZE,
            seed=args.seed,
            stratify=panel[args.outcome].astype("string").to_numpy() if args.stratify else None,
        )
    except ValueError as exc:
        raise SystemExit(f"Household split failed: {exc}") from exc
    split_path = out_splits / f"holdout_seed{args.seed}.npz"
    save_npz(split_path, train_ids=train_ids.astype(str), test_ids=test_ids.astype(str))

    train = panel.loc[panel[ID_COL].isin(train_ids)]
    test = panel.loc[panel[ID_COL].isin(test_ids)]

    specs = nested_specs(reference)
    try:
        comparison = compare_specs(
            specs, train, test, args.outcome, levels, method=args.method, maxiter=args.maxiter
        )
    except (ValueError, RuntimeError) as exc:
        raise SystemExit(f"Model comparison failed: {exc}") from exc

    run_id = deterministic_run_id(args.seed, args.outcome, reference)
    train_cc, test_cc = comparison.train, comparison.test
    y_test = test_cc[args.outcome].astype("string").to_numpy(dtype=object)

    summary = comparison.summary_table()
    coef_tables = []
    effect_tables = []
    slice_tables = []
    artifacts: Dict[str, Dict[str, str]] = {}
    omitted_groups: Dict[str, Dict[str, List[str]]] = {}

    for i, result in enumerate(comparison.results):
        name = result.spec.name
        stem = f"{name}_{args.outcome}_seed{args.seed}"

        coefs = coefficient_table(result.fitted)
        coef_path = out_tables / f"coefficients_{stem}.csv"
        coefs.to_csv(coef_path, index=False)
        coef_tables.append(coefs)

        summary_path = out_models / f"{stem}.summary.txt"
        summary_path.write_text(result.fitted.results.summary().as_text(), encoding="utf-8")
        model_path = out_models / f"{stem}.joblib"
        joblib.dump(result.fitted.results, model_path)

        cm_path = out_tables / f"confusion_matrix_test_{stem}.csv"
        result.confusion.to_csv(cm_path)
        fig = plot_confusion_matrix(result.confusion, f"Confusion Matrix (Test): {name}")
        save_figure(fig, out_figures / f"confusion_matrix_test_{stem}.png")

        preds_path = save_predictions(result, test_cc, args.outcome, out_tables / f"preds_test_{stem}.csv")

        draws = stratified_bootstrap_metric_draws(
            y_true=y_test,
            y_pred=result.y_pred.to_numpy(dtype=object),
            levels=levels,
            n_boot=args.n_boot,
            seed=args.seed + 101 + i,
        )
        ci = summarize_bootstrap_ci(draws)
        for metric, (lo, hi) in ci.items():
            summary.loc[i, f"test_{metric}_ci95_low"] = lo
            summary.loc[i, f"test_{metric}_ci95_high"] = hi

        slices, omitted = error_slices(result, test_cc, args.outcome, levels, args.min_group_n)
        slice_tables.append(slices)
        omitted_groups[name] = omitted

        if "tenure" in result.spec.variables:
            effect_tables.append(tenure_effect(result.fitted, test_cc))

        artifacts[name] = {
            "coefficients_csv": str(coef_path),
            "summary_txt": str(summary_path),
            "model_joblib": str(model_path),
            "confusion_matrix_csv": str(cm_path),
            "preds_test_csv": str(preds_path),
        }

    summary.insert(0, "run_id", run_id)
    summary.insert(1, "dataset_version", DATASET_VERSION)
    summary.insert(2, "seed", args.seed)
    summary.insert(3, "outcome", args.outcome)
    summary.to_csv(out_tables / "results_summary.csv", index=False)
    comparison.lr_tests.to_csv(out_tables / "lr_tests.csv", index=False)
    pd.concat(coef_tables, ignore_index=True).to_csv(out_tables / "coefficients_all.csv", index=False)
    pd.concat(slice_tables, ignore_index=True).to_csv(out_tables / "error_slices.csv", index=False)
    if effect_tables:
        pd.concat(effect_tables, ignore_index=True).to_csv(out_tables / "tenure_effects.csv", index=False)

    for _, row in summary.iterrows():
        metric_cols = [c for c in summary.columns if c.startswith("test_")]
        pd.DataFrame([row[["run_id", "spec", "nobs", "llf", "aic", "bic", "prsquared", *metric_cols]]]).to_csv(
            out_metrics / f"metrics_test_{row['spec']}_{args.outcome}_seed{args.seed}.csv", index=False
        )

    meta = {
        "dataset_version": DATASET_VERSION,
        "experiment_namespace": EXPERIMENT_NAMESPACE,
        "run_id": run_id,
        "seed": args.seed,
        "outcome": args.outcome,
        "levels": levels,
        "reference": reference,
        "specs": [{"name": s.spec.name, "formula": s.spec.formula(args.outcome)} for s in comparison.results],
        "fit_warnings": {s.spec.name: s.fitted.fit_warnings for s in comparison.results},
        "validation_protocol": {
            "test_size": TEST_SIZE,
            "sampling_unit": "household",
            "stratified": bool(args.stratify),
            "random_seed": args.seed,
            "complete_case_columns": [args.outcome]
            + sorted({v for s in comparison.results for v in s.spec.variables}),
        },
        "sample_sizes": {
            "panel": int(len(panel)),
            "train_households": int(len(train_ids)),
            "test_households": int(len(test_ids)),
            "train_complete_cases": int(len(train_cc)),
            "test_complete_cases": int(len(test_cc)),
        },
        "inputs": {
            "panel_path": str(args.panel),
            "panel_sha256": sha256_file(args.panel),
            "nrows": args.nrows,
            "train_ids_sha256": sha256_np_array(train_ids),
            "test_ids_sha256": sha256_np_array(test_ids),
            "spec_table_sha256": hashlib.sha256(
                "|".join(s.spec.formula(args.outcome) for s in comparison.results).encode("utf-8")
            ).hexdigest(),
        },
        "artifacts": {
            "holdout_split_npz": str(split_path),
            "results_summary_csv": str(out_tables / "results_summary.csv"),
            "lr_tests_csv": str(out_tables / "lr_tests.csv"),
            "per_spec": artifacts,
        },
        "error_slices": {"min_group_n": args.min_group_n, "omitted_groups": omitted_groups},
        "runtime": {**runtime_metadata(), "n_boot": int(args.n_boot), "method": args.method, "maxiter": args.maxiter},
        "scope_notes": [
            "Models are unweighted; WTHHFIN is used for descriptive shares only.",
            "All specifications share one complete-case train sample and one complete-case test sample.",
            "Tenure effects are average predicted-share differences, not causal estimates.",
        ],
    }
    write_json(out_logs / f"run_{run_id}.json", meta)

    print(f"Wrote modeling artifacts to {outdir}/")


if __name__ == "__main__":
    main()
