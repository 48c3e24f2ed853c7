from __future__ import annotations

from typing import Dict

import numpy as np
import pandas as pd
from sklearn.inspection import permutation_importance


def permutation_importance_table(
    model,
    X: pd.DataFrame,
    y: pd.Series,
    *,
    n_repeats: int,
    seed: int,
    scoring: str = "neg_root_mean_squared_error",
    n_jobs=None,
) -> pd.DataFrame:
    """Permutation importance on held-out data, ranked (1 = most important).

    Importance is the mean drop in score when a predictor is shuffled; with an
    error-based scorer this is the increase in error.
    """
    result = permutation_importance(
        model,
        X,
        y,
        scoring=scoring,
        n_repeats=n_repeats,
        random_state=seed,
        n_jobs=n_jobs,
    )
    df = pd.DataFrame(
        {
            "predictor": list(X.columns),
            "importance_mean": result.importances_mean.astype(float),
            "importance_std": result.importances_std.astype(float),
        }
    )
    total = df["importance_mean"].clip(lower=0.0).sum()
    df["importance_share"] = df["importance_mean"].clip(lower=0.0) / total if total > 0 else 0.0
    df = df.sort_values("importance_mean", ascending=False, kind="mergesort").reset_index(drop=True)
    df["rank"] = np.arange(1, len(df) + 1)
    return df


def aggregate_importance(tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """Mean rank and mean importance share of each predictor across responses."""
    if not tables:
        return pd.DataFrame(columns=["predictor", "mean_rank", "mean_share", "n_responses"])
    long = pd.concat([t.assign(response=r) for r, t in tables.items()], ignore_index=True)
    agg = (
        long.groupby("predictor", sort=False)
        .agg(mean_rank=("rank", "mean"), mean_share=("importance_share", "mean"), n_responses=("response", "nunique"))
        .reset_index()
    )
    return agg.sort_values(["mean_rank", "predictor"], kind="mergesort").reset_index(drop=True)
