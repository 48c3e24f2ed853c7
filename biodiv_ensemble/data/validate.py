from typing import Iterable

import pandas as pd


def assert_required_columns(df, required: Iterable[str]) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")


def assert_numeric_columns(df, cols: Iterable[str]) -> None:
    # A column fails if coercion turns observed values into NaN.
    bad = []
    for c in cols:
        s = df[c]
        if pd.api.types.is_numeric_dtype(s):
            continue
        coerced = pd.to_numeric(s, errors="coerce")
        if (coerced.isna() & s.notna()).any():
            bad.append(c)
    if bad:
        raise ValueError(f"Non-numeric values in columns: {bad}")


def assert_disjoint(responses: Iterable[str], predictors: Iterable[str]) -> None:
    overlap = sorted(set(responses) & set(predictors))
    if overlap:
        raise ValueError(f"Columns listed as both response and predictor: {overlap}")


def assert_min_observed(df, responses: Iterable[str], min_rows: int) -> None:
    short = {}
    for r in responses:
        n_obs = int(pd.to_numeric(df[r], errors="coerce").notna().sum())
        if n_obs < min_rows:
            short[r] = n_obs
    if short:
        raise ValueError(f"Responses with fewer than {min_rows} observed rows: {short}")
