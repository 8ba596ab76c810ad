from __future__ import annotations

import copy
import logging

import numpy as np

from errors import ConfigurationError, InsufficientDataError
from estimator import Estimator, check_fit_inputs, estimator_scores
from feature_matrix import as_feature_matrix

logger = logging.getLogger(__name__)


class OneVsRestWrapper:
    """Multiclass decomposition over any binary estimator.

    One copy of ``estimator`` is trained per distinct label on the target
    ``1.0 if y == label else 0.0``. Prediction picks the label whose estimator
    scores highest; ties go to the lowest label.
    """

    def __init__(self, estimator: Estimator) -> None:
        if not isinstance(estimator, Estimator):
            raise ConfigurationError("estimator must provide fit and predict")
        self.estimator = estimator

        self.classes_: np.ndarray | None = None
        self.estimators_: list[Estimator] = []

    def fit(self, X, y) -> OneVsRestWrapper:
        X, y = check_fit_inputs(X, y)
        classes = np.unique(y)
        if classes.size < 2:
            raise InsufficientDataError(
                f"one-vs-rest needs at least two distinct labels, got {classes.size}"
            )

        estimators = []
        for label in classes:
            binary_target = (y == label).astype(np.float64)
            estimators.append(copy.deepcopy(self.estimator).fit(X, binary_target))

        self.classes_ = classes
        self.estimators_ = estimators
        logger.debug("fit one-vs-rest over %d classes", classes.size)
        return self

    def decision_function(self, X) -> np.ndarray:
        """Score matrix with one column per entry of ``classes_``."""
        if self.classes_ is None:
            raise ConfigurationError("model must be fit before calling predict")
        X = as_feature_matrix(X)
        return np.column_stack([estimator_scores(est, X) for est in self.estimators_])

    def predict(self, X) -> np.ndarray:
        scores = self.decision_function(X)
        return self.classes_[np.argmax(scores, axis=1)]

    def to_dict(self) -> dict:
        # Deferred import: serialization depends on this module.
        from serialization import model_to_dict

        if self.classes_ is None:
            raise ConfigurationError("model must be fit before use")
        return {
            "classes": self.classes_.tolist(),
            "estimators": [model_to_dict(est) for est in self.estimators_],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> OneVsRestWrapper:
        from serialization import model_from_dict

        estimators = [model_from_dict(item) for item in payload["estimators"]]
        if not estimators:
            raise ConfigurationError("one-vs-rest payload has no estimators")
        first = estimators[0]
        if hasattr(first, "params"):
            prototype = type(first)(copy.deepcopy(first.params))
        else:
            prototype = copy.deepcopy(first)
        wrapper = cls(prototype)
        wrapper.classes_ = np.asarray(payload["classes"], dtype=np.float64)
        wrapper.estimators_ = estimators
        if len(estimators) != wrapper.classes_.size:
            raise ConfigurationError("one-vs-rest payload has mismatched classes and estimators")
        return wrapper
