from typing import List, Tuple

import numpy as np
import pandas as pd

from .validate import assert_numeric_columns, assert_required_columns


def build_modeling_table(
    df: pd.DataFrame,
    response: str,
    predictors: List[str],
    min_rows: int = 1,
) -> Tuple[pd.DataFrame, int]:
    """Select one response plus the shared predictors and drop rows missing the response.

    Predictor NaNs are kept; they are imputed inside each learner pipeline.
    Returns the table (original row index preserved) and the number of dropped rows.
    """
    required = [response] + list(predictors)
    assert_required_columns(df, required)
    assert_numeric_columns(df, required)

    table = df[required].copy()
    for c in required:
        table[c] = pd.to_numeric(table[c], errors="coerce")
    table = table.replace([np.inf, -np.inf], np.nan)

    observed = table[response].notna()
    n_dropped = int((~observed).sum())
    table = table.loc[observed]

    if len(table) < min_rows:
        raise ValueError(
            f"Response {response!r} has {len(table)} observed rows; at least {min_rows} are required."
        )

    all_missing = [c for c in predictors if table[c].isna().all()]
    if all_missing:
        raise ValueError(f"Predictors with no observed values for response {response!r}: {all_missing}")

    return table, n_dropped
