import json
import subprocess
import sys
from pathlib import Path

import numpy as np
import pandas as pd


def _fit_cmd(repo_root: Path, data_path: Path, outdir: Path, *extra: str) -> list:
    return [
        sys.executable,
        str(repo_root / "scripts" / "01_fit_ensembles.py"),
        "--data",
        str(data_path),
        "--responses",
        "richness,shannon",
        "--id-cols",
        "site_id",
        "--learners",
        "mean,lm,rf",
        "--cv-folds",
        "3",
        "--n-estimators",
        "30",
        "--importance-repeats",
        "3",
        "--n-boot",
        "20",
        "--outdir",
        str(outdir),
        *extra,
    ]


def test_fit_ensembles_smoke(tmp_path: Path, site_files):
    repo_root = Path(__file__).resolve().parents[1]
    data_path, future_path = site_files
    outdir = tmp_path / "outputs"

    cmd = _fit_cmd(repo_root, data_path, outdir, "--future", str(future_path), "--coord-cols", "lon,lat")
    subprocess.run(cmd, cwd=repo_root, check=True)

    required_paths = [
        "tables/results_summary_test.csv",
        "tables/metrics_with_ci.csv",
        "tables/cv_risk_all.csv",
        "tables/ensemble_weights.csv",
        "tables/metrics_test_learners_all.csv",
        "tables/variable_importance_all.csv",
        "tables/variable_importance_rank.csv",
        "tables/missingness_inputs.csv",
        "tables/projections_future.csv",
        "tables/projection_summary.csv",
        "tables/preds_test_richness.csv",
        "tables/cv_predictions_shannon.csv",
        "metrics/cv_risk_richness.csv",
        "figures/observed_vs_predicted_richness.png",
        "figures/variable_importance_shannon.png",
        "figures/cv_risk_richness.png",
        "figures/projection_map_richness.png",
        "models/super_learner_richness.joblib",
        "models/super_learner_shannon.meta.json",
        "splits/holdout_richness_seed2026.npz",
        "splits/cvfolds_shannon_seed2026.npz",
        "logs/run_super_learner_v1_seed2026.json",
    ]
    for rel in required_paths:
        assert (outdir / rel).exists(), f"Missing expected artifact: {rel}"

    summary = pd.read_csv(outdir / "tables" / "results_summary_test.csv")
    assert summary["response"].tolist() == ["richness", "shannon"]
    # shannon has 3 missing values and is modelled on its own rows.
    shannon = summary.set_index("response").loc["shannon"]
    assert shannon["n_dropped_missing_response"] == 3
    assert shannon["n_train"] + shannon["n_test"] == 157
    # richness is close to linear in the predictors; the stack must beat the mean.
    assert summary.set_index("response").loc["richness", "r2"] > 0.5

    weights = pd.read_csv(outdir / "tables" / "ensemble_weights.csv")
    for _, grp in weights.groupby("response"):
        assert (grp["weight"] >= 0).all()
        assert np.isclose(grp["weight"].sum(), 1.0)
        assert sorted(grp["learner"]) == ["lm", "mean", "rf"]

    cv_risk = pd.read_csv(outdir / "tables" / "cv_risk_all.csv")
    assert cv_risk.groupby("response")["discrete_sl"].sum().tolist() == [1, 1]

    importance = pd.read_csv(outdir / "tables" / "variable_importance_all.csv")
    assert set(importance["predictor"]) == {"temp", "precip", "elevation", "forest_cover", "noise"}

    projections = pd.read_csv(outdir / "tables" / "projections_future.csv")
    assert len(projections) == 60
    assert projections.columns.tolist() == ["site_id", "lon", "lat", "richness", "shannon"]
    assert projections[["richness", "shannon"]].notna().all().all()

    meta = json.loads((outdir / "models" / "super_learner_richness.meta.json").read_text(encoding="utf-8"))
    assert meta["predictors"] == ["temp", "precip", "elevation", "forest_cover", "noise"]
    assert meta["learners"] == ["mean", "lm", "rf"]


def test_project_future_smoke(tmp_path: Path, site_files):
    repo_root = Path(__file__).resolve().parents[1]
    data_path, future_path = site_files
    fit_out = tmp_path / "fit"
    subprocess.run(
        _fit_cmd(repo_root, data_path, fit_out, "--responses", "richness", "--learners", "mean,lm"),
        cwd=repo_root,
        check=True,
    )

    proj_out = tmp_path / "proj"
    cmd = [
        sys.executable,
        str(repo_root / "scripts" / "02_project_future.py"),
        "--future",
        str(future_path),
        "--responses",
        "richness",
        "--models-dir",
        str(fit_out / "models"),
        "--id-cols",
        "site_id",
        "--current",
        str(data_path),
        "--outdir",
        str(proj_out),
    ]
    subprocess.run(cmd, cwd=repo_root, check=True)

    projections = pd.read_csv(proj_out / "tables" / "projections_future.csv")
    assert projections.columns.tolist() == ["site_id", "richness"]
    assert len(projections) == 60

    summary = pd.read_csv(proj_out / "tables" / "projection_summary.csv")
    # Future sites are 2 degrees warmer and richness rises with temperature.
    assert summary.loc[0, "mean_change"] > 0
    assert (proj_out / "logs" / "projection_run_metadata.json").exists()

    # A current table without the response is reported, not silently skipped.
    no_response = tmp_path / "current_no_response.csv"
    pd.read_csv(data_path).drop(columns=["richness"]).to_csv(no_response, index=False)
    proc = subprocess.run(
        cmd[:-4] + ["--current", str(no_response), "--outdir", str(tmp_path / "proj_partial")],
        cwd=repo_root,
        capture_output=True,
        text=True,
    )
    assert proc.returncode == 0
    assert "Responses missing from current table" in proc.stdout + proc.stderr

    # An unreadable current table stops the run before any output is written.
    bad_current = tmp_path / "current.json"
    bad_current.write_text("{}", encoding="utf-8")
    bad_out = tmp_path / "proj_bad"
    proc = subprocess.run(
        cmd[:-4] + ["--current", str(bad_current), "--outdir", str(bad_out)],
        cwd=repo_root,
        capture_output=True,
        text=True,
    )
    assert proc.returncode != 0
    assert "Current data" in proc.stderr
    assert not bad_out.exists()


def test_fit_ensembles_rejects_unknown_learner(tmp_path: Path, site_files):
    repo_root = Path(__file__).resolve().parents[1]
    data_path, _ = site_files
    cmd = _fit_cmd(repo_root, data_path, tmp_path / "out", "--learners", "mean,xgboost")
    proc = subprocess.run(cmd, cwd=repo_root, capture_output=True, text=True)
    assert proc.returncode != 0
    assert "Unknown learners" in proc.stderr


def test_fit_ensembles_rejects_empty_response_before_fitting(tmp_path: Path, site_files):
    repo_root = Path(__file__).resolve().parents[1]
    data_path, _ = site_files
    df = pd.read_csv(data_path)
    df["empty_metric"] = np.nan
    df.to_csv(data_path, index=False)
    outdir = tmp_path / "out"

    cmd = _fit_cmd(repo_root, data_path, outdir, "--responses", "richness,empty_metric")
    proc = subprocess.run(cmd, cwd=repo_root, capture_output=True, text=True)
    assert proc.returncode != 0
    assert "observed rows" in proc.stderr
    assert "empty_metric" in proc.stderr
    # richness comes first but must not be fitted when a later response is unusable.
    models_dir = outdir / "models"
    assert not models_dir.exists() or not any(models_dir.iterdir())


def test_fit_ensembles_rejects_response_listed_as_predictor(tmp_path: Path, site_files):
    repo_root = Path(__file__).resolve().parents[1]
    data_path, _ = site_files
    cmd = _fit_cmd(repo_root, data_path, tmp_path / "out", "--responses", "richness", "--predictors", "richness,temp")
    proc = subprocess.run(cmd, cwd=repo_root, capture_output=True, text=True)
    assert proc.returncode != 0
    assert "both response and predictor" in proc.stderr


def test_fit_ensembles_rejects_unknown_importance_scorer(tmp_path: Path, site_files):
    repo_root = Path(__file__).resolve().parents[1]
    data_path, _ = site_files
    cmd = _fit_cmd(repo_root, data_path, tmp_path / "out", "--importance-scoring", "not_a_scorer")
    proc = subprocess.run(cmd, cwd=repo_root, capture_output=True, text=True)
    assert proc.returncode != 0
    assert "not_a_scorer" in proc.stderr


def test_fit_ensembles_shared_folds_and_cv_ensemble(tmp_path: Path, site_files):
    from sklearn.model_selection import cross_val_predict

    from biodiv_ensemble.data.build import build_modeling_table
    from biodiv_ensemble.data.splits import make_cv_folds
    from biodiv_ensemble.models.library import build_learner

    repo_root = Path(__file__).resolve().parents[1]
    data_path, _ = site_files
    outdir = tmp_path / "out"
    predictors = ["temp", "precip", "elevation", "forest_cover", "noise"]
    cmd = _fit_cmd(
        repo_root,
        data_path,
        outdir,
        "--responses",
        "richness",
        "--predictors",
        ",".join(predictors),
        "--learners",
        "mean,lm",
        "--cv-ensemble",
        "--ci-alpha",
        "0.1",
        "--importance-scoring",
        "neg_mean_absolute_error",
    )
    subprocess.run(cmd, cwd=repo_root, check=True)

    cv_risk = pd.read_csv(outdir / "tables" / "cv_risk_all.csv")
    assert "super_learner" in set(cv_risk["learner"])
    oof = pd.read_csv(outdir / "tables" / "cv_predictions_richness.csv")
    assert oof["super_learner"].notna().all()

    ci = pd.read_csv(outdir / "tables" / "metrics_with_ci.csv")
    assert {"r2_ci90_low", "r2_ci90_high"} <= set(ci.columns)

    # The saved folds are the KFold that drove stacking and learner risk.
    folds = np.load(outdir / "splits" / "cvfolds_richness_seed2026.npz")
    train_idx, fold_id = folds["train_idx"], folds["fold_id"]
    cv = make_cv_folds(3, 2026)
    expected = np.full(len(train_idx), -1)
    for f, (_, va) in enumerate(cv.split(np.zeros((len(train_idx), 1)))):
        expected[va] = f
    assert np.array_equal(fold_id, expected)
    assert np.array_equal(oof["row_index"].to_numpy(), train_idx)
    assert np.array_equal(oof["fold_id"].to_numpy(), fold_id)

    table, _ = build_modeling_table(pd.read_csv(data_path), "richness", predictors)
    X_train = table.loc[train_idx, predictors]
    y_train = table.loc[train_idx, "richness"]
    lm_oof = cross_val_predict(build_learner("lm", 2026), X_train, y_train, cv=cv)
    assert np.allclose(oof["lm"].to_numpy(), lm_oof)
