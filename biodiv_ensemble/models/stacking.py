"""Super learner: cross-validated stacking of the learner library.

The out-of-fold predictions and the refit on the full training split are
handled by scikit-learn's StackingRegressor. The meta-learner is a convex
non-negative least squares combination of learner predictions.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import nnls
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.ensemble import StackingRegressor
from sklearn.model_selection import BaseCrossValidator
from sklearn.utils.validation import check_array, check_is_fitted, check_X_y

logger = logging.getLogger(__name__)


class NonNegativeBlender(RegressorMixin, BaseEstimator):
    """Convex combination of learner predictions.

    Weights come from NNLS on the cross-validated prediction matrix and are
    rescaled to sum to one. If NNLS assigns zero weight to every learner the
    blender falls back to equal weights.
    """

    def fit(self, X, y):
        X, y = check_X_y(X, y, y_numeric=True)
        w, _ = nnls(X, y)
        total = float(w.sum())
        if total <= 0.0:
            logger.warning("NNLS assigned zero weight to every learner; using equal weights.")
            w = np.full(X.shape[1], 1.0 / X.shape[1])
        else:
            w = w / total
        self.coef_ = w
        self.intercept_ = 0.0
        self.n_features_in_ = X.shape[1]
        return self

    def predict(self, X):
        check_is_fitted(self, "coef_")
        X = check_array(X)
        return X @ self.coef_


def build_super_learner(
    library: List[Tuple[str, object]],
    cv: BaseCrossValidator,
    n_jobs: Optional[int] = None,
) -> StackingRegressor:
    return StackingRegressor(
        estimators=list(library),
        final_estimator=NonNegativeBlender(),
        cv=cv,
        n_jobs=n_jobs,
        passthrough=False,
    )


def ensemble_weights(stack: StackingRegressor) -> pd.DataFrame:
    check_is_fitted(stack, "final_estimator_")
    names = [name for name, est in stack.estimators if est != "drop"]
    coefs = np.asarray(stack.final_estimator_.coef_, dtype=float)
    if len(names) != coefs.size:
        raise RuntimeError("Blender weights do not line up with the learner library.")
    return pd.DataFrame({"learner": names, "weight": coefs})
