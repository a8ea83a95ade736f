import numpy as np
import pandas as pd
import pytest

from vehavail.config import OUTCOME_LEVELS
from vehavail.data.splits import make_household_split
from vehavail.evaluation.bootstrap import stratified_bootstrap_metric_draws, summarize_bootstrap_ci
from vehavail.evaluation.comparison import compare_specs, likelihood_ratio_test, tenure_effect
from vehavail.evaluation.metrics import compute_multiclass_metrics, confusion_matrix_df, predict_class
from vehavail.evaluation.subgroup_adequacy import evaluate_subgroup_adequacy
from vehavail.models.mnl import fit_mnl, nested_specs


LEVELS = OUTCOME_LEVELS["veh_avail"]


@pytest.fixture(scope="module")
def comparison(panel):
    train_ids, test_ids = make_household_split(panel["houseid"].to_numpy(), test_size=0.2, seed=2017)
    train = panel.loc[panel["houseid"].isin(train_ids)]
    test = panel.loc[panel["houseid"].isin(test_ids)]
    return compare_specs(nested_specs("zero"), train, test, "veh_avail", LEVELS)


def test_predict_class_takes_argmax_and_breaks_ties_left():
    proba = pd.DataFrame(
        [[0.1, 0.6, 0.2, 0.1], [0.4, 0.4, 0.1, 0.1], [0.0, 0.0, 0.0, 1.0]],
        columns=LEVELS,
    )
    assert predict_class(proba).tolist() == ["one", "zero", "three_plus"]


def test_confusion_matrix_keeps_unobserved_levels():
    cm = confusion_matrix_df(["one", "two", "two"], ["one", "one", "two"], LEVELS)
    assert cm.index.tolist() == LEVELS
    assert cm.columns.tolist() == LEVELS
    assert int(cm.to_numpy().sum()) == 3
    assert cm.loc["two", "one"] == 1
    assert cm.loc["zero"].sum() == 0


def test_multiclass_metrics_for_confident_correct_predictions():
    y = ["zero", "one", "two", "three_plus"]
    proba = pd.DataFrame(np.eye(4) * 0.96 + 0.01, columns=LEVELS)
    m = compute_multiclass_metrics(y, proba, LEVELS)
    assert m["accuracy"] == 1.0
    assert m["macro_f1"] == 1.0
    assert m["recall_three_plus"] == 1.0
    assert m["log_loss"] == pytest.approx(-np.log(0.97), rel=1e-6)


def test_bootstrap_draws_and_percentile_ci():
    rng = np.random.default_rng(0)
    y = rng.choice(LEVELS, size=300)
    pred = np.where(rng.random(300) < 0.7, y, "one")
    draws = stratified_bootstrap_metric_draws(y_true=y, y_pred=pred, levels=LEVELS, n_boot=50, seed=1)
    assert len(draws) == 50
    ci = summarize_bootstrap_ci(draws)
    lo, hi = ci["accuracy"]
    assert 0.0 <= lo <= hi <= 1.0

    empty = stratified_bootstrap_metric_draws(y_true=y, y_pred=pred, levels=LEVELS, n_boot=0, seed=1)
    assert empty.empty
    assert all(np.isnan(v[0]) for v in summarize_bootstrap_ci(empty).values())


def test_subgroup_adequacy_reasons():
    small = evaluate_subgroup_adequacy(["one"] * 5, LEVELS, min_group_n=10)
    assert not small.adequate
    assert small.reason == "n<10;levels_observed<2"

    ok = evaluate_subgroup_adequacy(["one"] * 6 + ["two"] * 6, LEVELS, min_group_n=10)
    assert ok.adequate
    assert ok.n_levels_observed == 2
    assert ok.min_level_n == 6


def test_compare_specs_uses_one_sample_for_every_spec(comparison):
    summary = comparison.summary_table()
    assert summary["spec"].tolist() == [s.name for s in nested_specs("zero")]
    assert summary["nobs"].nunique() == 1
    assert int(summary["nobs"].iloc[0]) == len(comparison.train)
    assert comparison.train["income_cat"].notna().all()
    assert comparison.test["income_cat"].notna().all()
    assert set(comparison.train["houseid"]).isdisjoint(comparison.test["houseid"])

    # Nested likelihoods never decrease.
    assert (np.diff(summary["llf"].to_numpy()) >= -1e-6).all()

    for result in comparison.results:
        assert int(result.confusion.to_numpy().sum()) == len(comparison.test)
        assert result.proba.shape == (len(comparison.test), len(LEVELS))


def test_full_spec_beats_null_spec_on_test_accuracy(comparison):
    null = comparison.result("m0_null").metrics
    full = comparison.result("m4_full").metrics
    assert full["log_loss"] < null["log_loss"]
    assert full["accuracy"] >= null["accuracy"]


def test_lr_tests_between_consecutive_specs(comparison):
    lr = comparison.lr_tests
    assert len(lr) == len(comparison.results) - 1
    assert (lr["df"] > 0).all()
    assert lr["p_value"].between(0.0, 1.0).all()
    full_vs_m3 = lr.loc[lr["full"] == "m4_full"].iloc[0]
    assert full_vs_m3["p_value"] < 0.001


def test_lr_test_rejects_reversed_order(comparison):
    with pytest.raises(ValueError):
        likelihood_ratio_test(comparison.result("m4_full").fitted, comparison.result("m1_tenure").fitted)


def test_lr_test_requires_both_fits_on_the_same_rows(comparison):
    subset = comparison.train.iloc[:-50]
    m1_subset = fit_mnl(nested_specs("zero")[1], subset, "veh_avail", LEVELS)
    with pytest.raises(ValueError, match="same rows"):
        likelihood_ratio_test(m1_subset, comparison.result("m2_tenure_urban").fitted)


def test_tenure_effect_contrasts_owner_and_renter_shares(comparison):
    fitted = comparison.result("m1_tenure").fitted
    effects = tenure_effect(fitted, comparison.test)

    assert set(effects["group"]) == {"all", "urban", "rural"}
    for _, g in effects.groupby("group"):
        assert g["share_own"].sum() == pytest.approx(1.0)
        assert g["share_rent"].sum() == pytest.approx(1.0)
        assert g["diff"].sum() == pytest.approx(0.0, abs=1e-9)

    overall = effects.loc[effects["group"] == "all"].set_index("level")
    assert overall.loc["zero", "diff"] < 0
