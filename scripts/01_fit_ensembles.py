from __future__ import annotations

import argparse
import logging
import os
import random
import sys
import tempfile
from pathlib import Path
from typing import Dict, List

import numpy as np
import pandas as pd

# Matplotlib must be configured before importing pyplot.
_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))

from sklearn.metrics import get_scorer_names  # noqa: E402


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from biodiv_ensemble.config import (  # noqa: E402
    AVAILABLE_LEARNERS,
    CI_ALPHA,
    CV_FOLDS,
    DEFAULT_DATA_FILE,
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
from biodiv_ensemble.data.coding import (  # noqa: E402
    check_unique_slugs,
    parse_column_list,
    resolve_predictors,
    safe_name,
    summarize_missingness,
)
from biodiv_ensemble.data.ingest import load_table  # noqa: E402
from biodiv_ensemble.data.validate import (  # noqa: E402
    assert_disjoint,
    assert_min_observed,
    assert_numeric_columns,
    assert_required_columns,
)
from biodiv_ensemble.evaluation.importance import aggregate_importance  # noqa: E402
from biodiv_ensemble.pipeline import FitSettings, OutputDirs, ResponseResult, fit_response  # noqa: E402
from biodiv_ensemble.projection import project_responses, summarize_projections  # noqa: E402
from biodiv_ensemble.reporting.figures import plot_projection_map  # noqa: E402
from biodiv_ensemble.utils.logging import configure_logging, runtime_info, sha256_file, write_json  # noqa: E402

logger = logging.getLogger("fit_ensembles")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fit a stacked ensemble (super learner) per biodiversity response against shared environmental predictors."
    )
    parser.add_argument("--data", type=Path, default=DEFAULT_DATA_FILE, help="Site table (csv, tsv, xlsx, parquet).")
    parser.add_argument("--responses", type=str, required=True, help="Comma-separated response (biodiversity metric) columns.")
    parser.add_argument(
        "--predictors",
        type=str,
        default=None,
        help="Comma-separated predictor columns (default: every numeric column not a response or id column).",
    )
    parser.add_argument("--id-cols", type=str, default="", help="Comma-separated id/coordinate columns carried into outputs.")
    parser.add_argument(
        "--learners",
        type=str,
        default=",".join(DEFAULT_LEARNERS),
        help=f"Comma-separated learner library; available: {', '.join(AVAILABLE_LEARNERS)}.",
    )
    parser.add_argument("--test-size", type=float, default=TEST_SIZE, help="Held-out test fraction.")
    parser.add_argument("--cv-folds", type=int, default=CV_FOLDS, help="Folds used for stacking and learner CV risk.")
    parser.add_argument("--seed", type=int, default=RANDOM_SEED, help="Random seed for splits, folds and learners.")
    parser.add_argument(
        "--stratify-bins",
        type=int,
        default=STRATIFY_BINS,
        help="Quantile bins of the response used to stratify the holdout split (0 disables).",
    )
    parser.add_argument("--n-estimators", type=int, default=RF_N_ESTIMATORS, help="Trees for rf/extratrees learners.")
    parser.add_argument("--importance-repeats", type=int, default=IMPORTANCE_REPEATS, help="Permutation repeats per predictor.")
    parser.add_argument("--n-boot", type=int, default=N_BOOT, help="Bootstrap resamples for test-set confidence intervals.")
    parser.add_argument("--ci-alpha", type=float, default=CI_ALPHA, help="Bootstrap CI level is 1 - alpha.")
    parser.add_argument(
        "--importance-scoring",
        type=str,
        default=IMPORTANCE_SCORING,
        help="scikit-learn scorer name used for permutation importance.",
    )
    parser.add_argument(
        "--cv-ensemble",
        action="store_true",
        help="Also estimate the super learner's own CV risk with nested cross-validation (slow).",
    )
    parser.add_argument("--min-rows", type=int, default=MIN_ROWS, help="Minimum observed rows to model a response.")
    parser.add_argument("--future", type=Path, default=None, help="Optional future predictor table to project onto.")
    parser.add_argument(
        "--coord-cols",
        type=str,
        default="",
        help="Two comma-separated coordinate columns (x,y) for projection maps.",
    )
    parser.add_argument("--nrows", type=int, default=None, help="Optional dev mode: first n rows only.")
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel jobs passed to scikit-learn.")
    parser.add_argument("--outdir", type=Path, default=Path("outputs"), help="Output directory (default: outputs/).")
    parser.add_argument("--verbose", action="store_true", help="Debug-level logging.")
    return parser.parse_args()


def validate_args(args: argparse.Namespace) -> None:
    if not 0.0 < args.test_size < 1.0:
        raise SystemExit("--test-size must be in (0, 1).")
    if args.cv_folds < 2:
        raise SystemExit("--cv-folds must be >= 2.")
    if args.stratify_bins < 0:
        raise SystemExit("--stratify-bins must be >= 0.")
    if args.n_estimators <= 0:
        raise SystemExit("--n-estimators must be a positive integer.")
    if args.importance_repeats <= 0:
        raise SystemExit("--importance-repeats must be a positive integer.")
    if args.n_boot < 0:
        raise SystemExit("--n-boot must be >= 0.")
    if not 0.0 < args.ci_alpha < 1.0:
        raise SystemExit("--ci-alpha must be in (0, 1).")
    if args.importance_scoring not in get_scorer_names():
        raise SystemExit(f"Unknown --importance-scoring {args.importance_scoring!r}.")
    if args.nrows is not None and args.nrows <= 0:
        raise SystemExit("--nrows must be a positive integer.")
    unknown = [name for name in parse_column_list(args.learners) if name not in AVAILABLE_LEARNERS]
    if unknown:
        raise SystemExit(f"Unknown learners {unknown}; available: {AVAILABLE_LEARNERS}")
    if not parse_column_list(args.learners):
        raise SystemExit("--learners must name at least one learner.")
    coord_cols = parse_column_list(args.coord_cols)
    if coord_cols and len(coord_cols) != 2:
        raise SystemExit("--coord-cols takes exactly two columns: x,y.")
    if not args.data.exists():
        raise SystemExit(f"Input table not found: {args.data}")
    if args.future is not None and not args.future.exists():
        raise SystemExit(f"Future predictor table not found: {args.future}")


def write_summary_tables(results: List[ResponseResult], out: OutputDirs) -> None:
    pd.DataFrame([r.test_row for r in results]).to_csv(out.tables / "results_summary_test.csv", index=False)
    pd.DataFrame([r.ci_row for r in results]).to_csv(out.tables / "metrics_with_ci.csv", index=False)
    pd.concat([r.cv_risk for r in results], ignore_index=True).to_csv(out.tables / "cv_risk_all.csv", index=False)
    pd.concat([r.weights for r in results], ignore_index=True).to_csv(out.tables / "ensemble_weights.csv", index=False)
    pd.concat([r.learner_test for r in results], ignore_index=True).to_csv(
        out.tables / "metrics_test_learners_all.csv", index=False
    )
    importance = {r.response: r.importance for r in results}
    pd.concat(list(importance.values()), ignore_index=True).to_csv(
        out.tables / "variable_importance_all.csv", index=False
    )
    aggregate_importance(importance).to_csv(out.tables / "variable_importance_rank.csv", index=False)


def main() -> None:
    args = parse_args()
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    validate_args(args)

    random.seed(args.seed)
    np.random.seed(args.seed)

    try:
        df = load_table(args.data, nrows=args.nrows)
    except ValueError as exc:
        raise SystemExit(str(exc))

    responses = parse_column_list(args.responses)
    if not responses:
        raise SystemExit("--responses must name at least one column.")
    id_cols = parse_column_list(args.id_cols)
    coord_cols = parse_column_list(args.coord_cols)
    id_cols = id_cols + [c for c in coord_cols if c not in id_cols]

    try:
        assert_required_columns(df, responses + id_cols)
        check_unique_slugs(responses)
        predictors = resolve_predictors(df, responses, parse_column_list(args.predictors), exclude=id_cols)
        assert_required_columns(df, predictors)
        assert_disjoint(responses, predictors)
        assert_numeric_columns(df, responses + predictors)
        assert_min_observed(df, responses, args.min_rows)
    except ValueError as exc:
        raise SystemExit(str(exc))
    logger.info("Responses: %s", responses)
    logger.info("Predictors (%d): %s", len(predictors), predictors)

    out = OutputDirs.under(args.outdir)
    summarize_missingness(df[responses + predictors]).to_csv(out.tables / "missingness_inputs.csv", index=False)

    settings = FitSettings(
        learners=parse_column_list(args.learners),
        test_size=args.test_size,
        cv_folds=args.cv_folds,
        seed=args.seed,
        stratify_bins=args.stratify_bins,
        n_estimators=args.n_estimators,
        importance_repeats=args.importance_repeats,
        importance_scoring=args.importance_scoring,
        n_boot=args.n_boot,
        ci_alpha=args.ci_alpha,
        cv_ensemble=args.cv_ensemble,
        min_rows=args.min_rows,
        n_jobs=args.n_jobs,
    )

    results: List[ResponseResult] = []
    for response in responses:
        logger.info("=== Response %s", response)
        try:
            results.append(fit_response(df, response, predictors, settings, out, id_cols=id_cols))
        except ValueError as exc:
            raise SystemExit(f"{response}: {exc}")

    write_summary_tables(results, out)

    projection_path = None
    if args.future is not None:
        try:
            future_df = load_table(args.future)
            projections = project_responses(
                {r.response: r.model for r in results},
                future_df,
                {r.response: r.predictors for r in results},
                keep_cols=id_cols,
            )
        except ValueError as exc:
            raise SystemExit(f"Future data: {exc}")
        projection_path = out.tables / "projections_future.csv"
        projections.to_csv(projection_path, index=False)
        summarize_projections(projections, {r: df[r] for r in responses}).to_csv(
            out.tables / "projection_summary.csv", index=False
        )
        if coord_cols and all(c in projections.columns for c in coord_cols):
            for response in responses:
                plot_projection_map(
                    projections,
                    coord_cols,
                    response,
                    out.figures / f"projection_map_{safe_name(response)}.png",
                    f"Projected {response} (future predictors)",
                )
        logger.info("Projected %d future rows for %d responses", len(projections), len(responses))

    run_meta: Dict[str, object] = {
        "experiment_namespace": EXPERIMENT_NAMESPACE,
        "responses": responses,
        "predictors": predictors,
        "id_cols": id_cols,
        "settings": vars(settings),
        "inputs": {
            "data_path": str(args.data),
            "data_sha256": sha256_file(args.data),
            "nrows": args.nrows,
            "future_path": str(args.future) if args.future is not None else None,
            "future_sha256": sha256_file(args.future) if args.future is not None else None,
        },
        "artifacts": {
            "results_summary_test_csv": str(out.tables / "results_summary_test.csv"),
            "cv_risk_all_csv": str(out.tables / "cv_risk_all.csv"),
            "ensemble_weights_csv": str(out.tables / "ensemble_weights.csv"),
            "variable_importance_all_csv": str(out.tables / "variable_importance_all.csv"),
            "projections_future_csv": str(projection_path) if projection_path is not None else None,
            "model_meta_json": {r.response: str(r.meta_path) for r in results},
        },
        "runtime": runtime_info(PROJECT_ROOT),
    }
    write_json(out.logs / f"run_{EXPERIMENT_NAMESPACE}_seed{args.seed}.json", run_meta)

    print(f"Wrote super learner artifacts to {args.outdir}/")


if __name__ == "__main__":
    main()
