import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from biodiv_ensemble.data.splits import make_cv_folds
from biodiv_ensemble.evaluation.bootstrap import bootstrap_metric_draws, summarize_bootstrap_ci
from biodiv_ensemble.evaluation.cv_risk import learner_cv_predictions, summarize_cv_risk
from biodiv_ensemble.evaluation.importance import aggregate_importance, permutation_importance_table
from biodiv_ensemble.evaluation.metrics import compute_regression_metrics
from biodiv_ensemble.models.library import build_library

from conftest import PREDICTORS


def test_regression_metrics_perfect_and_biased():
    y = np.array([1.0, 2.0, 3.0, 4.0])
    m = compute_regression_metrics(y, y)
    assert m["r2"] == 1.0
    assert m["rmse"] == 0.0
    assert m["n"] == 4
    shifted = compute_regression_metrics(y, y + 0.5)
    assert np.isclose(shifted["bias"], 0.5)
    assert np.isclose(shifted["mae"], 0.5)
    assert np.isclose(shifted["pearson_r"], 1.0)


def test_pearson_r_is_nan_for_constant_predictions():
    m = compute_regression_metrics([1.0, 2.0, 3.0], [2.0, 2.0, 2.0])
    assert np.isnan(m["pearson_r"])


def test_bootstrap_ci_brackets_point_estimate():
    rng = np.random.default_rng(0)
    y = rng.normal(size=200)
    p = y + rng.normal(scale=0.3, size=200)
    draws = bootstrap_metric_draws(y_true=y, y_pred=p, n_boot=200, seed=1)
    assert len(draws) == 200
    ci = summarize_bootstrap_ci(draws)
    point = compute_regression_metrics(y, p)
    assert ci["rmse"][0] <= point["rmse"] <= ci["rmse"][1]


def test_bootstrap_with_zero_draws():
    draws = bootstrap_metric_draws(y_true=np.ones(3), y_pred=np.ones(3), n_boot=0, seed=1)
    assert draws.empty
    assert all(np.isnan(v[0]) for v in summarize_bootstrap_ci(draws).values())


def test_cv_risk_flags_single_discrete_learner(sites):
    X = sites[PREDICTORS]
    y = sites["richness"]
    library = build_library(["mean", "lm"], seed=1)
    oof = learner_cv_predictions(library, X, y, make_cv_folds(4, seed=1))
    assert oof.columns.tolist() == ["mean", "lm"]
    assert oof.index.equals(X.index)
    weights = pd.DataFrame({"learner": ["mean", "lm"], "weight": [0.0, 1.0]})
    risk = summarize_cv_risk(oof, y, weights)
    assert risk["discrete_sl"].sum() == 1
    assert risk.loc[0, "learner"] == "lm"
    assert bool(risk.loc[0, "discrete_sl"])
    assert risk.loc[0, "weight"] == 1.0


def test_permutation_importance_ranks_signal_first():
    rng = np.random.default_rng(0)
    X = pd.DataFrame({"signal": rng.normal(size=300), "noise": rng.normal(size=300)})
    y = 5.0 * X["signal"] + rng.normal(scale=0.1, size=300)
    model = LinearRegression().fit(X, y)
    table = permutation_importance_table(model, X, y, n_repeats=5, seed=1)
    assert table["predictor"].tolist() == ["signal", "noise"]
    assert table["rank"].tolist() == [1, 2]
    assert np.isclose(table["importance_share"].sum(), 1.0)


def test_aggregate_importance_mean_rank():
    a = pd.DataFrame({"predictor": ["t", "p"], "rank": [1, 2], "importance_share": [0.8, 0.2]})
    b = pd.DataFrame({"predictor": ["p", "t"], "rank": [1, 2], "importance_share": [0.6, 0.4]})
    agg = aggregate_importance({"richness": a, "shannon": b, "evenness": a})
    assert agg["predictor"].tolist() == ["t", "p"]
    assert np.isclose(agg.loc[0, "mean_rank"], 4.0 / 3.0)
    assert agg["n_responses"].tolist() == [3, 3]
