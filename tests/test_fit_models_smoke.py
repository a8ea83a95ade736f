import json
import subprocess
import sys
from pathlib import Path

import numpy as np
import pandas as pd


def _build_panel(repo_root: Path, tmp_path: Path, survey_csvs) -> Path:
    hh_path, per_path = survey_csvs
    out_parquet = tmp_path / "panel.parquet"
    cmd = [
        sys.executable,
        str(repo_root / "scripts" / "01_build_dataset.py"),
        "--household-file",
        str(hh_path),
        "--person-file",
        str(per_path),
        "--out-parquet",
        str(out_parquet),
        "--audit-csv",
        str(tmp_path / "panel_audit.csv"),
        "--missingness-csv",
        str(tmp_path / "missingness_panel.csv"),
        "--decisions-json",
        str(tmp_path / "decisions.json"),
    ]
    subprocess.run(cmd, cwd=repo_root, check=True)
    return out_parquet


def test_fit_models_smoke(tmp_path: Path, survey_csvs):
    repo_root = Path(__file__).resolve().parents[1]
    panel_path = _build_panel(repo_root, tmp_path, survey_csvs)
    outdir = tmp_path / "outputs"

    cmd = [
        sys.executable,
        str(repo_root / "scripts" / "03_fit_models.py"),
        "--panel",
        str(panel_path),
        "--seed",
        "2017",
        "--outdir",
        str(outdir),
        "--n-boot",
        "20",
        "--min-group-n",
        "20",
    ]
    subprocess.run(cmd, cwd=repo_root, check=True)

    summary = pd.read_csv(outdir / "tables" / "results_summary.csv")
    assert summary["spec"].tolist() == [
        "m0_null",
        "m1_tenure",
        "m2_tenure_urban",
        "m3_tenure_x_urban",
        "m4_full",
    ]
    assert summary["nobs"].nunique() == 1
    assert summary["converged"].all()
    assert summary["test_accuracy"].between(0.0, 1.0).all()
    assert {"test_accuracy_ci95_low", "test_accuracy_ci95_high"} <= set(summary.columns)

    lr = pd.read_csv(outdir / "tables" / "lr_tests.csv")
    assert len(lr) == 4
    assert lr["p_value"].between(0.0, 1.0).all()

    stem = "m2_tenure_urban_veh_avail_seed2017"
    cm = pd.read_csv(outdir / "tables" / f"confusion_matrix_test_{stem}.csv", index_col=0)
    assert cm.index.tolist() == ["zero", "one", "two", "three_plus"]
    assert cm.columns.tolist() == ["zero", "one", "two", "three_plus"]
    assert int(cm.to_numpy().sum()) == int(summary["n_test"].iloc[0])
    assert (outdir / "figures" / f"confusion_matrix_test_{stem}.png").exists()
    assert (outdir / "models" / f"{stem}.joblib").exists()
    assert (outdir / "models" / f"{stem}.summary.txt").exists()

    coefs = pd.read_csv(outdir / "tables" / f"coefficients_{stem}.csv")
    assert "zero" not in set(coefs["equation"])

    effects = pd.read_csv(outdir / "tables" / "tenure_effects.csv")
    assert "m0_null" not in set(effects["spec"])

    split = np.load(outdir / "splits" / "holdout_seed2017.npz")
    assert set(split["train_ids"]).isdisjoint(set(split["test_ids"]))

    run_json = outdir / "logs" / "run_mnl_nested_v1_seed2017_veh_avail_ref-zero.json"
    payload = json.loads(run_json.read_text(encoding="utf-8"))
    assert payload["reference"] == "zero"
    assert payload["validation_protocol"]["sampling_unit"] == "household"
    assert payload["sample_sizes"]["test_complete_cases"] == int(summary["n_test"].iloc[0])


def test_fit_models_smoke_car_sufficiency_with_reference_and_stratify(tmp_path: Path, survey_csvs):
    repo_root = Path(__file__).resolve().parents[1]
    panel_path = _build_panel(repo_root, tmp_path, survey_csvs)
    outdir = tmp_path / "outputs"

    cmd = [
        sys.executable,
        str(repo_root / "scripts" / "03_fit_models.py"),
        "--panel",
        str(panel_path),
        "--outcome",
        "car_sufficiency",
        "--reference",
        "sufficient",
        "--stratify",
        "--outdir",
        str(outdir),
        "--n-boot",
        "0",
        "--min-group-n",
        "20",
    ]
    subprocess.run(cmd, cwd=repo_root, check=True)

    summary = pd.read_csv(outdir / "tables" / "results_summary.csv")
    assert len(summary) == 5
    assert set(summary["outcome"]) == {"car_sufficiency"}
    assert set(summary["reference"]) == {"sufficient"}
    assert summary["converged"].all()

    stem = "m4_full_car_sufficiency_seed2017"
    coefs = pd.read_csv(outdir / "tables" / f"coefficients_{stem}.csv")
    assert set(coefs["equation"]) == {"zero", "insufficient"}

    cm = pd.read_csv(outdir / "tables" / f"confusion_matrix_test_{stem}.csv", index_col=0)
    assert cm.index.tolist() == ["zero", "insufficient", "sufficient"]
    assert cm.columns.tolist() == ["zero", "insufficient", "sufficient"]

    run_json = outdir / "logs" / "run_mnl_nested_v1_seed2017_car_sufficiency_ref-sufficient.json"
    payload = json.loads(run_json.read_text(encoding="utf-8"))
    assert payload["validation_protocol"]["stratified"] is True
    assert payload["levels"] == ["zero", "insufficient", "sufficient"]


def test_fit_models_rejects_unlisted_seed(tmp_path: Path, survey_csvs):
    repo_root = Path(__file__).resolve().parents[1]
    panel_path = _build_panel(repo_root, tmp_path, survey_csvs)

    cmd = [
        sys.executable,
        str(repo_root / "scripts" / "03_fit_models.py"),
        "--panel",
        str(panel_path),
        "--seed",
        "1",
        "--outdir",
        str(tmp_path / "outputs"),
    ]
    proc = subprocess.run(cmd, cwd=repo_root, capture_output=True, text=True)
    assert proc.returncode != 0
    assert "--seed must be one of" in proc.stderr
