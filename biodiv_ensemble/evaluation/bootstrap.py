from __future__ import annotations

from typing import Dict, Iterable, Tuple

import numpy as np
import pandas as pd

from biodiv_ensemble.evaluation.metrics import compute_regression_metrics

BOOT_METRICS = ("r2", "rmse", "mae", "bias", "pearson_r")


def bootstrap_metric_draws(
    *,
    y_true: np.ndarray,
    y_pred: np.ndarray,
    n_boot: int,
    seed: int,
) -> pd.DataFrame:
    if n_boot <= 0:
        return pd.DataFrame(columns=["iter", *BOOT_METRICS])
    y = np.asarray(y_true, dtype=float)
    p = np.asarray(y_pred, dtype=float)
    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n_boot):
        idx = rng.integers(0, y.size, size=y.size, endpoint=False)
        m = compute_regression_metrics(y[idx], p[idx])
        rows.append({"iter": i, **{k: m[k] for k in BOOT_METRICS}})
    return pd.DataFrame(rows)


def summarize_bootstrap_ci(
    draws: pd.DataFrame,
    *,
    alpha: float = 0.05,
    metrics: Iterable[str] = BOOT_METRICS,
) -> Dict[str, Tuple[float, float]]:
    if draws.empty:
        return {m: (np.nan, np.nan) for m in metrics}
    lo = float(100.0 * (alpha / 2.0))
    hi = float(100.0 * (1.0 - alpha / 2.0))
    out: Dict[str, Tuple[float, float]] = {}
    for m in metrics:
        vals = draws[m].dropna().to_numpy(dtype=float)
        if vals.size == 0:
            out[m] = (np.nan, np.nan)
        else:
            out[m] = (float(np.percentile(vals, lo)), float(np.percentile(vals, hi)))
    return out
