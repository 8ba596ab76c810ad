from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from errors import ConfigurationError, InsufficientDataError, ShapeError
from feature_matrix import FeatureMatrix, as_feature_matrix, as_label_vector


@runtime_checkable
class Estimator(Protocol):
    """The fit/predict contract shared by every model in the package."""

    def fit(self, X, y) -> "Estimator": ...

    def predict(self, X) -> np.ndarray: ...


def check_fit_inputs(X, y) -> tuple[FeatureMatrix, np.ndarray]:
    X = as_feature_matrix(X)
    y = as_label_vector(y, X.rows())
    if X.rows() == 0:
        raise InsufficientDataError("cannot fit on a matrix with zero rows")
    if X.cols() == 0:
        raise ShapeError("cannot fit on a matrix with zero columns")
    return X, y


def check_predict_input(X, n_features: int | None) -> FeatureMatrix:
    if n_features is None:
        raise ConfigurationError("model must be fit before calling predict")
    X = as_feature_matrix(X)
    if X.cols() != n_features:
        raise ShapeError(f"model was fit on {n_features} columns, got {X.cols()}")
    return X


def estimator_scores(estimator, X) -> np.ndarray:
    """Per-row score used to rank binary estimators against each other."""
    if hasattr(estimator, "decision_function"):
        return np.asarray(estimator.decision_function(X), dtype=np.float64)
    return np.asarray(estimator.predict(X), dtype=np.float64)
