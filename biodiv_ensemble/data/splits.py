from typing import Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import KFold, ShuffleSplit, StratifiedShuffleSplit


def response_bins(y, n_bins: int) -> np.ndarray:
    """Quantile bin labels of a continuous response (ties collapse bins)."""
    return pd.qcut(pd.Series(np.asarray(y, dtype=float)), q=n_bins, labels=False, duplicates="drop").to_numpy()


def make_holdout_split(y, test_size: float, seed: int, n_bins: int = 0) -> Tuple[np.ndarray, np.ndarray]:
    """Positional train/test indices.

    With n_bins > 1 the split is stratified on response quantile bins, provided
    every bin holds enough rows to appear on both sides; otherwise a plain
    shuffle split is used.
    """
    y = np.asarray(y, dtype=float)
    X_dummy = np.zeros((y.size, 1))
    if n_bins and n_bins > 1 and np.unique(y).size >= n_bins:
        bins = response_bins(y, n_bins)
        counts = np.bincount(bins.astype(int))
        n_test = int(np.ceil(test_size * y.size))
        n_classes = counts.size
        if counts.min() >= 2 and n_classes <= n_test and n_classes <= y.size - n_test:
            splitter = StratifiedShuffleSplit(n_splits=1, test_size=test_size, random_state=seed)
            train_idx, test_idx = next(splitter.split(X_dummy, bins))
            return train_idx, test_idx
    splitter = ShuffleSplit(n_splits=1, test_size=test_size, random_state=seed)
    train_idx, test_idx = next(splitter.split(X_dummy))
    return train_idx, test_idx


def make_cv_folds(n_splits: int, seed: int) -> KFold:
    return KFold(n_splits=n_splits, shuffle=True, random_state=seed)


def assign_folds(cv: KFold, n_rows: int) -> np.ndarray:
    fold_id = np.full(n_rows, fill_value=-1, dtype=int)
    for f, (_, va) in enumerate(cv.split(np.zeros((n_rows, 1)))):
        fold_id[va] = f
    if (fold_id < 0).any():
        raise RuntimeError("Failed to assign all training rows to CV folds.")
    return fold_id
