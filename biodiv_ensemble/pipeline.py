"""Per-response analysis: split, stack, evaluate, explain, save."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import joblib
import numpy as np
import pandas as pd

from biodiv_ensemble.config import (
    CI_ALPHA,
    CV_FOLDS,
    DEFAULT_LEARNERS,
    EXPERIMENT_NAMESPACE,
    IMPORTANCE_REPEATS,
    IMPORTANCE_SCORING,
    MIN_ROWS,
    N_BOOT,
    RANDOM_SEED,
    RF_N_ESTIMATORS,
    STRATIFY_BINS,
    TEST_SIZE,
)
from biodiv_ensemble.data.build import build_modeling_table
from biodiv_ensemble.data.coding import safe_name
from biodiv_ensemble.data.splits import assign_folds, make_cv_folds, make_holdout_split
from biodiv_ensemble.evaluation.bootstrap import BOOT_METRICS, bootstrap_metric_draws, summarize_bootstrap_ci
from biodiv_ensemble.evaluation.cv_risk import ensemble_cv_predictions, learner_cv_predictions, summarize_cv_risk
from biodiv_ensemble.evaluation.importance import permutation_importance_table
from biodiv_ensemble.evaluation.metrics import compute_regression_metrics
from biodiv_ensemble.models.library import build_library
from biodiv_ensemble.models.stacking import build_super_learner, ensemble_weights
from biodiv_ensemble.projection import model_paths
from biodiv_ensemble.reporting.figures import plot_cv_risk, plot_observed_vs_predicted, plot_variable_importance
from biodiv_ensemble.utils.logging import write_json

logger = logging.getLogger(__name__)

SUPER_LEARNER = "super_learner"


@dataclass
class FitSettings:
    learners: List[str] = field(default_factory=lambda: list(DEFAULT_LEARNERS))
    test_size: float = TEST_SIZE
    cv_folds: int = CV_FOLDS
    seed: int = RANDOM_SEED
    stratify_bins: int = STRATIFY_BINS
    n_estimators: int = RF_N_ESTIMATORS
    importance_repeats: int = IMPORTANCE_REPEATS
    importance_scoring: str = IMPORTANCE_SCORING
    n_boot: int = N_BOOT
    ci_alpha: float = CI_ALPHA
    cv_ensemble: bool = False
    min_rows: int = MIN_ROWS
    n_jobs: Optional[int] = None


@dataclass
class OutputDirs:
    root: Path
    metrics: Path
    tables: Path
    figures: Path
    models: Path
    splits: Path
    logs: Path

    @classmethod
    def under(cls, root: Path) -> "OutputDirs":
        root = Path(root)
        dirs = cls(
            root=root,
            metrics=root / "metrics",
            tables=root / "tables",
            figures=root / "figures",
            models=root / "models",
            splits=root / "splits",
            logs=root / "logs",
        )
        for d in [dirs.metrics, dirs.tables, dirs.figures, dirs.models, dirs.splits, dirs.logs]:
            d.mkdir(parents=True, exist_ok=True)
        return dirs


@dataclass
class ResponseResult:
    response: str
    run_id: str
    model: object
    predictors: List[str]
    test_row: Dict[str, object]
    ci_row: Dict[str, object]
    cv_risk: pd.DataFrame
    weights: pd.DataFrame
    learner_test: pd.DataFrame
    importance: pd.DataFrame
    meta_path: Path


def deterministic_run_id(seed: int, response: str) -> str:
    return f"{EXPERIMENT_NAMESPACE}_seed{seed}_{safe_name(response)}"


def save_npz(path: Path, **arrays) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savez_compressed(path, **arrays)


def _learner_test_metrics(stack, X_test: pd.DataFrame, y_test: pd.Series, y_pred_sl: np.ndarray) -> pd.DataFrame:
    rows = [{"model": SUPER_LEARNER, **compute_regression_metrics(y_test, y_pred_sl)}]
    for name, est in stack.named_estimators_.items():
        rows.append({"model": name, **compute_regression_metrics(y_test, est.predict(X_test))})
    return pd.DataFrame(rows)


def fit_response(
    df: pd.DataFrame,
    response: str,
    predictors: Sequence[str],
    settings: FitSettings,
    out: OutputDirs,
    id_cols: Sequence[str] = (),
) -> ResponseResult:
    slug = safe_name(response)
    run_id = deterministic_run_id(settings.seed, response)
    predictors = list(predictors)

    table, n_dropped = build_modeling_table(df, response, predictors, min_rows=settings.min_rows)
    if n_dropped:
        logger.info("%s: dropped %d rows with missing response", response, n_dropped)

    X = table[predictors]
    y = table[response]

    train_pos, test_pos = make_holdout_split(y, settings.test_size, settings.seed, settings.stratify_bins)
    row_index = table.index.to_numpy()
    train_idx = row_index[train_pos]
    test_idx = row_index[test_pos]
    X_train, y_train = X.iloc[train_pos], y.iloc[train_pos]
    X_test, y_test = X.iloc[test_pos], y.iloc[test_pos]
    logger.info("%s: n_train=%d n_test=%d", response, len(train_pos), len(test_pos))

    if settings.cv_folds > len(train_pos):
        raise ValueError(f"{response}: cv_folds={settings.cv_folds} exceeds the {len(train_pos)} training rows.")

    cv = make_cv_folds(settings.cv_folds, settings.seed)
    fold_id = assign_folds(cv, len(train_pos))
    holdout_path = out.splits / f"holdout_{slug}_seed{settings.seed}.npz"
    cvfolds_path = out.splits / f"cvfolds_{slug}_seed{settings.seed}.npz"
    save_npz(holdout_path, train_idx=train_idx, test_idx=test_idx)
    save_npz(cvfolds_path, train_idx=train_idx, fold_id=fold_id)

    def library_factory():
        return build_library(settings.learners, settings.seed, n_estimators=settings.n_estimators)

    def stack_factory():
        return build_super_learner(library_factory(), cv, n_jobs=settings.n_jobs)

    # Super learner fit on the training split only.
    logger.info("%s: fitting super learner with library %s", response, settings.learners)
    stack = stack_factory()
    stack.fit(X_train, y_train)
    weights = ensemble_weights(stack)

    # Per-learner CV risk on the same folds the stack used.
    oof = learner_cv_predictions(library_factory(), X_train, y_train, cv, n_jobs=settings.n_jobs)
    cv_risk = summarize_cv_risk(oof, y_train, weights)
    if settings.cv_ensemble:
        ens_oof = ensemble_cv_predictions(stack_factory, X_train, y_train, cv)
        oof[SUPER_LEARNER] = ens_oof
        m = compute_regression_metrics(y_train, ens_oof)
        sl_row = pd.DataFrame(
            [
                {
                    "learner": SUPER_LEARNER,
                    "cv_risk_mse": m["rmse"] ** 2,
                    "cv_rmse": m["rmse"],
                    "cv_r2": m["r2"],
                    "cv_mae": m["mae"],
                    "weight": np.nan,
                    "discrete_sl": False,
                }
            ]
        )
        cv_risk = pd.concat([cv_risk, sl_row], ignore_index=True)
    cv_risk.insert(0, "response", response)
    discrete_sl = str(cv_risk.loc[cv_risk["discrete_sl"], "learner"].iloc[0])

    oof_out = oof.copy()
    oof_out.insert(0, "row_index", train_idx)
    oof_out.insert(1, "fold_id", fold_id)
    oof_out.insert(2, "y_true", y_train.to_numpy(dtype=float))
    oof_out.to_csv(out.tables / f"cv_predictions_{slug}.csv", index=False)
    cv_risk.to_csv(out.metrics / f"cv_risk_{slug}.csv", index=False)

    # Held-out test evaluation.
    y_pred = stack.predict(X_test)
    test_metrics = compute_regression_metrics(y_test, y_pred)
    learner_test = _learner_test_metrics(stack, X_test, y_test, y_pred)
    learner_test.insert(0, "response", response)
    learner_test.to_csv(out.metrics / f"metrics_test_learners_{slug}.csv", index=False)
    logger.info("%s: test R2=%.3f RMSE=%.3f", response, test_metrics["r2"], test_metrics["rmse"])

    preds = pd.DataFrame({"row_index": test_idx})
    for c in id_cols:
        if c in df.columns:
            preds[c] = df.loc[test_idx, c].to_numpy()
    preds["y_true"] = y_test.to_numpy(dtype=float)
    preds["y_pred"] = y_pred
    preds["residual"] = preds["y_true"] - preds["y_pred"]
    preds_path = out.tables / f"preds_test_{slug}.csv"
    preds.to_csv(preds_path, index=False)

    draws = bootstrap_metric_draws(
        y_true=y_test.to_numpy(dtype=float), y_pred=y_pred, n_boot=settings.n_boot, seed=settings.seed + 101
    )
    draws.insert(0, "response", response)
    draws.to_csv(out.tables / f"bootstrap_draws_test_{slug}.csv", index=False)
    ci = summarize_bootstrap_ci(draws, alpha=settings.ci_alpha)
    level = int(round(100 * (1 - settings.ci_alpha)))
    ci_row: Dict[str, object] = {"response": response, "run_id": run_id, "n_test": int(len(test_pos)), "n_boot": settings.n_boot}
    for m in BOOT_METRICS:
        ci_row[m] = test_metrics[m]
        ci_row[f"{m}_ci{level}_low"] = ci[m][0]
        ci_row[f"{m}_ci{level}_high"] = ci[m][1]
    ci_row["ci_method"] = "bootstrap_percentile"

    # Variable importance of the stacked ensemble on the test split.
    importance = permutation_importance_table(
        stack,
        X_test,
        y_test,
        n_repeats=settings.importance_repeats,
        seed=settings.seed,
        scoring=settings.importance_scoring,
        n_jobs=settings.n_jobs,
    )
    importance.insert(0, "response", response)
    importance.to_csv(out.tables / f"variable_importance_{slug}.csv", index=False)

    plot_observed_vs_predicted(
        y_test,
        y_pred,
        out.figures / f"observed_vs_predicted_{slug}.png",
        f"Observed vs predicted (test): {response}",
        metrics=test_metrics,
    )
    plot_variable_importance(importance, out.figures / f"variable_importance_{slug}.png", f"Permutation importance: {response}")
    plot_cv_risk(cv_risk, out.figures / f"cv_risk_{slug}.png", f"Learner CV risk: {response}")

    model_path, meta_path = model_paths(out.models, response)
    joblib.dump(stack, model_path)

    test_row: Dict[str, object] = {
        "response": response,
        "run_id": run_id,
        "seed": settings.seed,
        "n_train": int(len(train_pos)),
        "n_test": int(len(test_pos)),
        "n_dropped_missing_response": n_dropped,
        "n_predictors": len(predictors),
        "cv_folds": settings.cv_folds,
        "discrete_sl": discrete_sl,
        **test_metrics,
    }

    meta = {
        "experiment_namespace": EXPERIMENT_NAMESPACE,
        "run_id": run_id,
        "response": response,
        "predictors": predictors,
        "predictors_sha256": hashlib.sha256("|".join(predictors).encode("utf-8")).hexdigest(),
        "learners": list(settings.learners),
        "ensemble_weights": dict(zip(weights["learner"], weights["weight"].astype(float))),
        "discrete_sl": discrete_sl,
        "validation_protocol": {
            "test_size": settings.test_size,
            "cv_folds": settings.cv_folds,
            "stratify_bins": settings.stratify_bins,
            "random_seed": settings.seed,
        },
        "test_metrics": test_metrics,
        "artifacts": {
            "model_joblib": str(model_path),
            "holdout_split_npz": str(holdout_path),
            "cvfolds_npz": str(cvfolds_path),
            "preds_test_csv": str(preds_path),
        },
    }
    write_json(meta_path, meta)

    return ResponseResult(
        response=response,
        run_id=run_id,
        model=stack,
        predictors=predictors,
        test_row=test_row,
        ci_row=ci_row,
        cv_risk=cv_risk,
        weights=weights.assign(response=response)[["response", "learner", "weight"]],
        learner_test=learner_test,
        importance=importance,
        meta_path=meta_path,
    )
