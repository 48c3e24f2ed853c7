from pathlib import Path

import numpy as np
import pandas as pd
import pytest


PREDICTORS = ["temp", "precip", "elevation", "forest_cover", "noise"]


def make_sites(n: int = 160, seed: int = 0, with_responses: bool = True) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    df = pd.DataFrame(
        {
            "site_id": [f"S{i:04d}" for i in range(n)],
            "lon": rng.uniform(-10.0, 10.0, n),
            "lat": rng.uniform(40.0, 55.0, n),
            "temp": rng.normal(12.0, 4.0, n),
            "precip": rng.gamma(4.0, 200.0, n),
            "elevation": rng.uniform(0.0, 2000.0, n),
            "forest_cover": rng.uniform(0.0, 1.0, n),
            "noise": rng.normal(0.0, 1.0, n),
        }
    )
    if with_responses:
        df["richness"] = (
            30.0
            + 2.5 * df["temp"]
            + 0.01 * df["precip"]
            - 0.005 * df["elevation"]
            + 15.0 * df["forest_cover"]
            + rng.normal(0.0, 2.0, n)
        )
        df["shannon"] = 1.0 + 0.08 * df["temp"] + 1.5 * df["forest_cover"] ** 2 + rng.normal(0.0, 0.1, n)
    return df


@pytest.fixture
def sites() -> pd.DataFrame:
    return make_sites()


@pytest.fixture
def site_files(tmp_path: Path):
    df = make_sites()
    # A few gaps: missing predictors are imputed, missing responses are dropped per response.
    df.loc[[3, 17], "precip"] = np.nan
    df.loc[[5, 9, 40], "shannon"] = np.nan
    data_path = tmp_path / "sites.csv"
    df.to_csv(data_path, index=False)

    future = make_sites(n=60, seed=1, with_responses=False)
    future["temp"] = future["temp"] + 2.0
    future_path = tmp_path / "future.csv"
    future.to_csv(future_path, index=False)
    return data_path, future_path
