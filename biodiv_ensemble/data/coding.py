from __future__ import annotations

import re
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd


_NORMALIZE_RE = re.compile(r"[^0-9a-zA-Z]+")


def safe_name(name: str) -> str:
    """Filesystem-safe slug for a column name, used in output file names."""
    slug = _NORMALIZE_RE.sub("_", str(name)).strip("_").lower()
    return slug or "unnamed"


def parse_column_list(text: Optional[str]) -> List[str]:
    if text is None:
        return []
    return [c.strip() for c in text.split(",") if c.strip()]


def resolve_predictors(
    df: pd.DataFrame,
    responses: Iterable[str],
    predictors: Optional[Iterable[str]] = None,
    exclude: Iterable[str] = (),
) -> List[str]:
    """Return the predictor columns in data order.

    Explicit predictors are returned as given. Otherwise every numeric column
    that is not a response and not excluded (ids, coordinates) is used.
    """
    if predictors:
        return list(predictors)
    skip = set(responses) | set(exclude)
    out = [c for c in df.columns if c not in skip and pd.api.types.is_numeric_dtype(df[c])]
    if not out:
        raise ValueError("No numeric predictor columns left after removing responses and excluded columns.")
    return out


def check_unique_slugs(names: Iterable[str]) -> None:
    seen = {}
    collisions = {}
    for n in names:
        s = safe_name(n)
        if s in seen and seen[s] != n:
            collisions.setdefault(s, sorted({seen[s], n}))
        seen[s] = n
    if collisions:
        raise ValueError(f"Response names collide after normalization: {collisions}")


def summarize_missingness(df: pd.DataFrame) -> pd.DataFrame:
    """Return per-column missingness summary in stable column order."""

    n = len(df)
    rows = []
    for col in df.columns.astype(str).tolist():
        n_missing = int(df[col].isna().sum())
        missing_rate = round(n_missing / n, 6) if n else np.nan
        rows.append({"column": col, "n": n, "n_missing": n_missing, "missing_rate": missing_rate})
    return pd.DataFrame(rows)
