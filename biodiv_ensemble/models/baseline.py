import numpy as np
from sklearn.dummy import DummyRegressor
from sklearn.impute import SimpleImputer
from sklearn.linear_model import ElasticNetCV, LinearRegression, RidgeCV
from sklearn.neighbors import KNeighborsRegressor
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVR


def _scaled(model) -> Pipeline:
    return Pipeline(
        steps=[
            ("imputer", SimpleImputer(strategy="median")),
            ("scaler", StandardScaler(with_mean=True, with_std=True)),
            ("model", model),
        ]
    )


def build_mean() -> Pipeline:
    # Intercept-only reference; any useful learner should beat its CV risk.
    return Pipeline(
        steps=[
            ("imputer", SimpleImputer(strategy="median")),
            ("model", DummyRegressor(strategy="mean")),
        ]
    )


def build_linear_regression() -> Pipeline:
    return _scaled(LinearRegression())


def build_ridge() -> Pipeline:
    return _scaled(RidgeCV(alphas=np.logspace(-3, 3, 25)))


def build_elastic_net(seed: int) -> Pipeline:
    return _scaled(
        ElasticNetCV(
            l1_ratio=[0.1, 0.5, 0.9, 1.0],
            cv=5,
            max_iter=10000,
            random_state=seed,
        )
    )


def build_svr() -> Pipeline:
    return _scaled(SVR(kernel="rbf", C=1.0, epsilon=0.1, gamma="scale"))


def build_knn() -> Pipeline:
    return _scaled(KNeighborsRegressor(n_neighbors=10, weights="distance"))
