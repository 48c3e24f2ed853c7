import numpy as np
import pandas as pd
import pytest

from biodiv_ensemble.config import AVAILABLE_LEARNERS
from biodiv_ensemble.data.splits import make_cv_folds
from biodiv_ensemble.models.library import build_learner, build_library
from biodiv_ensemble.models.stacking import NonNegativeBlender, build_super_learner, ensemble_weights

from conftest import PREDICTORS


def test_blender_recovers_convex_weights():
    rng = np.random.default_rng(0)
    X = rng.normal(size=(200, 2))
    y = 0.7 * X[:, 0] + 0.3 * X[:, 1]
    blender = NonNegativeBlender().fit(X, y)
    assert np.allclose(blender.coef_, [0.7, 0.3], atol=1e-6)
    assert np.allclose(blender.predict(X), y)


def test_blender_weights_are_non_negative_and_sum_to_one():
    rng = np.random.default_rng(1)
    X = rng.normal(size=(100, 3))
    y = 2.0 * X[:, 0] - 1.0 * X[:, 1] + rng.normal(size=100)
    blender = NonNegativeBlender().fit(X, y)
    assert (blender.coef_ >= 0).all()
    assert np.isclose(blender.coef_.sum(), 1.0)


def test_blender_falls_back_to_equal_weights():
    X = np.abs(np.random.default_rng(2).normal(size=(50, 4))) + 1.0
    y = -np.ones(50)
    blender = NonNegativeBlender().fit(X, y)
    assert np.allclose(blender.coef_, 0.25)


def test_unknown_learner_raises():
    with pytest.raises(ValueError, match="Unknown learner"):
        build_learner("xgboost", seed=1)


def test_duplicate_learners_raise():
    with pytest.raises(ValueError, match="Duplicate"):
        build_library(["lm", "rf", "lm"], seed=1)


def test_every_available_learner_fits_with_missing_predictors(sites):
    X = sites[PREDICTORS].copy()
    X.iloc[0, 0] = np.nan
    y = sites["richness"]
    for name, learner in build_library(AVAILABLE_LEARNERS, seed=1, n_estimators=20):
        learner.fit(X, y)
        pred = learner.predict(X)
        assert pred.shape == (len(X),), name
        assert np.isfinite(pred).all(), name


def test_super_learner_weights_align_with_library(sites):
    X = sites[PREDICTORS]
    y = sites["richness"]
    library = build_library(["mean", "lm", "rf"], seed=1, n_estimators=20)
    stack = build_super_learner(library, make_cv_folds(3, seed=1)).fit(X, y)
    weights = ensemble_weights(stack)
    assert weights["learner"].tolist() == ["mean", "lm", "rf"]
    assert np.isclose(weights["weight"].sum(), 1.0)
    # The intercept-only learner carries almost no information here.
    assert weights.set_index("learner").loc["mean", "weight"] < 0.1
    assert isinstance(stack.predict(X.head(5)), np.ndarray)


def test_super_learner_accepts_dataframe_with_nan(sites):
    X = sites[PREDICTORS].copy()
    X.loc[X.index[:10], "precip"] = np.nan
    stack = build_super_learner(build_library(["lm", "hgb"], seed=1), make_cv_folds(3, seed=1))
    stack.fit(X, sites["shannon"])
    assert np.isfinite(stack.predict(pd.DataFrame(X))).all()
