from sklearn.ensemble import (
    ExtraTreesRegressor,
    GradientBoostingRegressor,
    HistGradientBoostingRegressor,
    RandomForestRegressor,
)
from sklearn.impute import SimpleImputer
from sklearn.pipeline import Pipeline


def _imputed(model) -> Pipeline:
    return Pipeline(
        steps=[
            ("imputer", SimpleImputer(strategy="median")),
            ("model", model),
        ]
    )


def build_random_forest(seed: int, n_estimators: int = 500) -> Pipeline:
    return _imputed(
        RandomForestRegressor(
            n_estimators=n_estimators,
            max_features=1.0 / 3.0,
            min_samples_leaf=5,
            random_state=seed,
        )
    )


def build_extra_trees(seed: int, n_estimators: int = 500) -> Pipeline:
    return _imputed(
        ExtraTreesRegressor(
            n_estimators=n_estimators,
            min_samples_leaf=5,
            random_state=seed,
        )
    )


def build_gradient_boosting(seed: int) -> Pipeline:
    return _imputed(
        GradientBoostingRegressor(
            n_estimators=300,
            learning_rate=0.05,
            max_depth=3,
            subsample=0.8,
            random_state=seed,
        )
    )


def build_hist_gradient_boosting(seed: int) -> HistGradientBoostingRegressor:
    # Handles NaN natively, so no imputer.
    return HistGradientBoostingRegressor(
        max_depth=6,
        learning_rate=0.05,
        max_iter=300,
        l2_regularization=0.0,
        early_stopping="auto",
        random_state=seed,
    )
