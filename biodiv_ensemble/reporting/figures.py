from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402


def save_figure(fig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=300, bbox_inches="tight")
    plt.close(fig)


def plot_observed_vs_predicted(y_true, y_pred, out_path: Path, title: str, metrics: Optional[dict] = None) -> None:
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    lo = float(np.nanmin([y_true.min(), y_pred.min()]))
    hi = float(np.nanmax([y_true.max(), y_pred.max()]))
    pad = 0.05 * (hi - lo) if hi > lo else 1.0

    fig, ax = plt.subplots(figsize=(6, 5))
    ax.scatter(y_true, y_pred, s=18, alpha=0.7, edgecolor="none")
    ax.plot([lo - pad, hi + pad], [lo - pad, hi + pad], "--", color="gray", linewidth=1, label="1:1")
    if metrics is not None:
        ax.text(
            0.03,
            0.97,
            f"R2={metrics['r2']:.3f}\nRMSE={metrics['rmse']:.3f}\nn={metrics['n']}",
            transform=ax.transAxes,
            va="top",
            fontsize=9,
        )
    ax.set_xlim(lo - pad, hi + pad)
    ax.set_ylim(lo - pad, hi + pad)
    ax.set_title(title)
    ax.set_xlabel("Observed")
    ax.set_ylabel("Predicted (super learner)")
    ax.legend(loc="lower right")
    fig.tight_layout()
    save_figure(fig, out_path)


def plot_variable_importance(importance: pd.DataFrame, out_path: Path, title: str, top_n: int = 20) -> None:
    df = importance.head(top_n).iloc[::-1]
    fig, ax = plt.subplots(figsize=(7, max(3.0, 0.35 * len(df) + 1.0)))
    ax.barh(df["predictor"], df["importance_mean"], xerr=df["importance_std"], capsize=3)
    ax.axvline(0.0, color="gray", linewidth=1)
    ax.set_title(title)
    ax.set_xlabel("Increase in RMSE when permuted (test set)")
    fig.tight_layout()
    save_figure(fig, out_path)


def plot_cv_risk(cv_risk: pd.DataFrame, out_path: Path, title: str) -> None:
    df = cv_risk.sort_values("cv_rmse", ascending=False, kind="mergesort")
    fig, ax = plt.subplots(figsize=(7, max(3.0, 0.4 * len(df) + 1.0)))
    ax.barh(df["learner"], df["cv_rmse"], color="#4c72b0")
    for i, (rmse, w) in enumerate(zip(df["cv_rmse"], df["weight"])):
        if pd.notna(w):
            ax.text(rmse, i, f"  w={w:.2f}", va="center", fontsize=8)
    ax.set_title(title)
    ax.set_xlabel("Cross-validated RMSE (training split)")
    fig.tight_layout()
    save_figure(fig, out_path)


def plot_projection_map(
    projections: pd.DataFrame,
    coord_cols: Sequence[str],
    value_col: str,
    out_path: Path,
    title: str,
) -> None:
    x_col, y_col = coord_cols
    fig, ax = plt.subplots(figsize=(7, 5))
    sc = ax.scatter(projections[x_col], projections[y_col], c=projections[value_col], s=14, cmap="viridis")
    fig.colorbar(sc, ax=ax, label=value_col)
    ax.set_title(title)
    ax.set_xlabel(x_col)
    ax.set_ylabel(y_col)
    fig.tight_layout()
    save_figure(fig, out_path)
