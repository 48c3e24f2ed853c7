from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
from pathlib import Path

_mpl_cache_dir = Path(tempfile.gettempdir()) / "matplotlib"
_mpl_cache_dir.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("MPLCONFIGDIR", str(_mpl_cache_dir))


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from biodiv_ensemble.config import DEFAULT_FUTURE_FILE  # noqa: E402
from biodiv_ensemble.data.coding import parse_column_list, safe_name  # noqa: E402
from biodiv_ensemble.data.ingest import load_table  # noqa: E402
from biodiv_ensemble.projection import load_fitted_models, project_responses, summarize_projections  # noqa: E402
from biodiv_ensemble.reporting.figures import plot_projection_map  # noqa: E402
from biodiv_ensemble.utils.logging import configure_logging, runtime_info, sha256_file, write_json  # noqa: E402

logger = logging.getLogger("project_future")


def main() -> None:
    parser = argparse.ArgumentParser(description="Project fitted super learners onto future predictor data.")
    parser.add_argument("--future", type=Path, default=DEFAULT_FUTURE_FILE, help="Future predictor table.")
    parser.add_argument("--responses", type=str, required=True, help="Comma-separated responses fitted in a previous run.")
    parser.add_argument("--models-dir", type=Path, default=Path("outputs") / "models", help="Directory with fitted models.")
    parser.add_argument("--id-cols", type=str, default="", help="Comma-separated id/coordinate columns to keep.")
    parser.add_argument("--coord-cols", type=str, default="", help="Two comma-separated coordinate columns (x,y) for maps.")
    parser.add_argument(
        "--current",
        type=Path,
        default=None,
        help="Optional current site table; its response means are reported next to the projections.",
    )
    parser.add_argument("--outdir", type=Path, default=Path("outputs"), help="Output directory (default: outputs/).")
    args = parser.parse_args()
    configure_logging()

    responses = parse_column_list(args.responses)
    if not responses:
        raise SystemExit("--responses must name at least one column.")
    coord_cols = parse_column_list(args.coord_cols)
    if coord_cols and len(coord_cols) != 2:
        raise SystemExit("--coord-cols takes exactly two columns: x,y.")
    id_cols = parse_column_list(args.id_cols)
    id_cols = id_cols + [c for c in coord_cols if c not in id_cols]
    if not args.future.exists():
        raise SystemExit(f"Future predictor table not found: {args.future}")

    current_df = None
    if args.current is not None:
        try:
            current_df = load_table(args.current)
        except (FileNotFoundError, ValueError) as exc:
            raise SystemExit(f"Current data: {exc}")

    try:
        fitted = load_fitted_models(args.models_dir, responses)
    except FileNotFoundError as exc:
        raise SystemExit(f"{exc}. Run scripts/01_fit_ensembles.py first.")
    no_meta = [r for r, f in fitted.items() if not f["predictors"]]
    if no_meta:
        raise SystemExit(f"Model metadata without predictor list for: {no_meta}")

    try:
        future_df = load_table(args.future)
        projections = project_responses(
            {r: f["model"] for r, f in fitted.items()},
            future_df,
            {r: f["predictors"] for r, f in fitted.items()},
            keep_cols=id_cols,
        )
    except ValueError as exc:
        raise SystemExit(f"Future data: {exc}")

    tables_dir = args.outdir / "tables"
    figures_dir = args.outdir / "figures"
    logs_dir = args.outdir / "logs"
    for d in [tables_dir, figures_dir, logs_dir]:
        d.mkdir(parents=True, exist_ok=True)

    projection_path = tables_dir / "projections_future.csv"
    projections.to_csv(projection_path, index=False)

    if current_df is not None:
        skipped = [r for r in responses if r not in current_df.columns]
        if skipped:
            logger.warning("Responses missing from current table, left out of projection_summary.csv: %s", skipped)
        current = {r: current_df[r] for r in responses if r in current_df.columns}
        summarize_projections(projections, current).to_csv(tables_dir / "projection_summary.csv", index=False)

    if coord_cols and all(c in projections.columns for c in coord_cols):
        for response in responses:
            plot_projection_map(
                projections,
                coord_cols,
                response,
                figures_dir / f"projection_map_{safe_name(response)}.png",
                f"Projected {response} (future predictors)",
            )

    write_json(
        logs_dir / "projection_run_metadata.json",
        {
            "responses": responses,
            "models": {r: f["meta"].get("run_id") for r, f in fitted.items()},
            "future_path": str(args.future),
            "future_sha256": sha256_file(args.future),
            "n_rows": int(len(projections)),
            "projections_csv": str(projection_path),
            "runtime": runtime_info(PROJECT_ROOT),
        },
    )
    logger.info("Projected %d rows for %d responses", len(projections), len(responses))
    print(f"Wrote projections to {args.outdir}/")


if __name__ == "__main__":
    main()
