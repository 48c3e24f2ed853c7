"""Projection of fitted super learners onto future predictor data."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple

import joblib
import numpy as np
import pandas as pd

from biodiv_ensemble.data.coding import safe_name
from biodiv_ensemble.data.validate import assert_numeric_columns, assert_required_columns

logger = logging.getLogger(__name__)


def model_paths(models_dir: Path, response: str) -> Tuple[Path, Path]:
    slug = safe_name(response)
    return models_dir / f"super_learner_{slug}.joblib", models_dir / f"super_learner_{slug}.meta.json"


def load_fitted_models(models_dir: Path, responses: Iterable[str]) -> Dict[str, dict]:
    """Reload fitted stacks and their metadata written by the fitting script."""
    out: Dict[str, dict] = {}
    for response in responses:
        model_path, meta_path = model_paths(models_dir, response)
        if not model_path.exists():
            raise FileNotFoundError(f"No fitted model for response {response!r}: {model_path}")
        meta = json.loads(meta_path.read_text(encoding="utf-8")) if meta_path.exists() else {}
        out[response] = {
            "model": joblib.load(model_path),
            "predictors": list(meta.get("predictors", [])),
            "meta": meta,
        }
        logger.info("Loaded model for %s from %s", response, model_path)
    return out


def prepare_future_predictors(future_df: pd.DataFrame, predictors: Sequence[str]) -> pd.DataFrame:
    assert_required_columns(future_df, predictors)
    assert_numeric_columns(future_df, predictors)
    X = future_df[list(predictors)].apply(pd.to_numeric, errors="coerce")
    X = X.replace([np.inf, -np.inf], np.nan)
    n_incomplete = int(X.isna().any(axis=1).sum())
    if n_incomplete:
        logger.warning("%d future rows have missing predictors; learners will impute them.", n_incomplete)
    return X


def project_responses(
    models: Dict[str, object],
    future_df: pd.DataFrame,
    predictors: Dict[str, List[str]],
    keep_cols: Sequence[str] = (),
) -> pd.DataFrame:
    """Predict every response on the future table.

    `models` maps response to fitted stack; `predictors` maps response to the
    predictor columns that stack was trained on. Output rows follow future_df.
    """
    keep = [c for c in keep_cols if c in future_df.columns]
    missing_keep = [c for c in keep_cols if c not in future_df.columns]
    if missing_keep:
        logger.warning("Id columns missing from future data and skipped: %s", missing_keep)

    out = future_df[keep].copy()
    for response, model in models.items():
        X = prepare_future_predictors(future_df, predictors[response])
        out[response] = np.asarray(model.predict(X), dtype=float)
    return out.reset_index(drop=True)


def summarize_projections(projections: pd.DataFrame, current: Dict[str, pd.Series]) -> pd.DataFrame:
    """Distribution of projected values per response, next to the observed (current) mean."""
    rows = []
    for response, observed in current.items():
        proj = projections[response].to_numpy(dtype=float)
        obs = pd.to_numeric(observed, errors="coerce").dropna().to_numpy(dtype=float)
        current_mean = float(obs.mean()) if obs.size else float("nan")
        rows.append(
            {
                "response": response,
                "n_projected": int(proj.size),
                "projected_mean": float(np.mean(proj)),
                "projected_sd": float(np.std(proj, ddof=1)) if proj.size > 1 else float("nan"),
                "projected_min": float(np.min(proj)),
                "projected_max": float(np.max(proj)),
                "current_mean": current_mean,
                "mean_change": float(np.mean(proj)) - current_mean,
            }
        )
    return pd.DataFrame(rows)
