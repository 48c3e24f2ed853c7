"""Learner library: maps short learner names to configured regression pipelines."""

from typing import Iterable, List, Tuple

from biodiv_ensemble.config import AVAILABLE_LEARNERS, RF_N_ESTIMATORS
from biodiv_ensemble.models.baseline import (
    build_elastic_net,
    build_knn,
    build_linear_regression,
    build_mean,
    build_ridge,
    build_svr,
)
from biodiv_ensemble.models.boosted import (
    build_extra_trees,
    build_gradient_boosting,
    build_hist_gradient_boosting,
    build_random_forest,
)


def build_learner(name: str, seed: int, n_estimators: int = RF_N_ESTIMATORS):
    if name == "mean":
        return build_mean()
    if name == "lm":
        return build_linear_regression()
    if name == "ridge":
        return build_ridge()
    if name == "glmnet":
        return build_elastic_net(seed)
    if name == "svr":
        return build_svr()
    if name == "knn":
        return build_knn()
    if name == "rf":
        return build_random_forest(seed, n_estimators=n_estimators)
    if name == "extratrees":
        return build_extra_trees(seed, n_estimators=n_estimators)
    if name == "gbm":
        return build_gradient_boosting(seed)
    if name == "hgb":
        return build_hist_gradient_boosting(seed)
    raise ValueError(f"Unknown learner: {name}; expected one of {AVAILABLE_LEARNERS}")


def build_library(names: Iterable[str], seed: int, n_estimators: int = RF_N_ESTIMATORS) -> List[Tuple[str, object]]:
    names = list(names)
    if not names:
        raise ValueError("Learner library is empty.")
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"Duplicate learners in library: {dupes}")
    return [(name, build_learner(name, seed, n_estimators=n_estimators)) for name in names]
