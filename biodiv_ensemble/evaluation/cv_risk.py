"""Cross-validated risk of each learner and, optionally, of the whole stack."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.model_selection import BaseCrossValidator, cross_val_predict

from biodiv_ensemble.evaluation.metrics import compute_regression_metrics

logger = logging.getLogger(__name__)


def learner_cv_predictions(
    library: List[Tuple[str, object]],
    X: pd.DataFrame,
    y: pd.Series,
    cv: BaseCrossValidator,
    n_jobs: Optional[int] = None,
) -> pd.DataFrame:
    """Out-of-fold predictions, one column per learner, indexed like X."""
    cols = {}
    for name, learner in library:
        logger.info("CV predictions for learner %s", name)
        cols[name] = cross_val_predict(clone(learner), X, y, cv=cv, n_jobs=n_jobs)
    return pd.DataFrame(cols, index=X.index)


def ensemble_cv_predictions(
    stack_factory: Callable[[], object],
    X: pd.DataFrame,
    y: pd.Series,
    cv: BaseCrossValidator,
) -> np.ndarray:
    """Outer-fold predictions of the full stack (nested cross-validation)."""
    oof = np.full(len(X), np.nan, dtype=float)
    for fold, (tr_idx, va_idx) in enumerate(cv.split(X, y), start=1):
        logger.info("Nested CV: fitting stack on outer fold %d", fold)
        stack = stack_factory()
        stack.fit(X.iloc[tr_idx], y.iloc[tr_idx])
        oof[va_idx] = stack.predict(X.iloc[va_idx])
    if np.isnan(oof).any():
        raise RuntimeError("Nested CV predictions contain NaN.")
    return oof


def summarize_cv_risk(
    oof: pd.DataFrame,
    y: pd.Series,
    weights: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """One row per learner: CV MSE (risk), RMSE, R2, stack weight, discrete-SL flag."""
    y_arr = np.asarray(y, dtype=float)
    rows = []
    for name in oof.columns:
        m = compute_regression_metrics(y_arr, oof[name].to_numpy(dtype=float))
        rows.append(
            {
                "learner": name,
                "cv_risk_mse": m["rmse"] ** 2,
                "cv_rmse": m["rmse"],
                "cv_r2": m["r2"],
                "cv_mae": m["mae"],
            }
        )
    out = pd.DataFrame(rows)
    if weights is not None:
        out = out.merge(weights, on="learner", how="left")
    else:
        out["weight"] = np.nan
    best = out["cv_risk_mse"].idxmin()
    out["discrete_sl"] = False
    out.loc[best, "discrete_sl"] = True
    return out.sort_values("cv_risk_mse", kind="mergesort").reset_index(drop=True)
