from __future__ import annotations

from dataclasses import asdict, dataclass
import logging

import numpy as np

from data_structures import TreeArena
from errors import ConfigurationError
from estimator import check_fit_inputs, check_predict_input
from split_search import CLASSIFICATION_CRITERIA, CRITERIA
from tree_builder import TreeBuilder, TreeBuilderParams, TreeBuildMetrics

logger = logging.getLogger(__name__)


@dataclass
class DecisionTreeParams:
    criterion: str = "gini"  # one of: gini, entropy, variance
    min_samples_split: int = 2
    max_depth: int | None = None
    max_features: int | None = None  # None considers every feature at each split
    seed: int = 0

    def __post_init__(self) -> None:
        if self.criterion not in CRITERIA:
            raise ConfigurationError(
                f"criterion must be one of: {', '.join(sorted(CRITERIA))}"
            )
        if self.min_samples_split < 1:
            raise ConfigurationError("min_samples_split must be >= 1")
        if self.max_depth is not None and self.max_depth < 0:
            raise ConfigurationError("max_depth must be >= 0 or None")
        if self.max_features is not None and self.max_features <= 0:
            raise ConfigurationError("max_features must be positive or None")
        if self.seed < 0:
            raise ConfigurationError("seed must be non-negative")

    @property
    def is_classification(self) -> bool:
        return self.criterion in CLASSIFICATION_CRITERIA

    def build(self) -> DecisionTree:
        return DecisionTree(self)

    def one_vs_rest(self):
        from one_vs_rest import OneVsRestWrapper

        return OneVsRestWrapper(self.build())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict) -> DecisionTreeParams:
        return cls(**payload)


class DecisionTree:
    """CART decision tree over dense or sparse feature matrices."""

    def __init__(self, params: DecisionTreeParams | None = None) -> None:
        self.params = params or DecisionTreeParams()

        self.arena_: TreeArena | None = None
        self.classes_: np.ndarray | None = None
        self.n_features_: int | None = None
        self.build_metrics_: TreeBuildMetrics | None = None

    @property
    def is_classification(self) -> bool:
        return self.params.is_classification

    @property
    def n_nodes(self) -> int:
        return len(self._fitted_arena())

    @property
    def depth(self) -> int:
        return self._fitted_arena().depth

    def _fitted_arena(self) -> TreeArena:
        if self.arena_ is None:
            raise ConfigurationError("model must be fit before use")
        return self.arena_

    def fit(self, X, y) -> DecisionTree:
        X, y = check_fit_inputs(X, y)

        if self.is_classification:
            classes, targets = np.unique(y, return_inverse=True)
            n_classes = int(classes.size)
        else:
            classes, targets, n_classes = None, y, None

        builder = TreeBuilder(
            X,
            targets.reshape(-1),
            TreeBuilderParams(
                criterion=self.params.criterion,
                min_samples_split=self.params.min_samples_split,
                max_depth=self.params.max_depth,
                max_features=self.params.max_features,
            ),
            rng=np.random.default_rng(self.params.seed),
            n_classes=n_classes,
        )
        arena = builder.build_tree()

        self.arena_ = arena
        self.classes_ = classes
        self.n_features_ = X.cols()
        self.build_metrics_ = builder.metrics
        logger.debug("fit decision tree on %d rows: %d nodes", X.rows(), len(arena))
        return self

    def apply(self, X) -> np.ndarray:
        X = check_predict_input(X, self.n_features_)
        return self._fitted_arena().apply(X)

    def predict_proba(self, X) -> np.ndarray:
        """Leaf class distributions, one column per entry of ``classes_``."""
        if not self.is_classification:
            raise ConfigurationError("predict_proba is only available for classification criteria")
        X = check_predict_input(X, self.n_features_)
        return self._fitted_arena().leaf_values(X)

    def predict(self, X) -> np.ndarray:
        X = check_predict_input(X, self.n_features_)
        values = self._fitted_arena().leaf_values(X)
        if self.is_classification:
            return self.classes_[np.argmax(values, axis=1)]
        return values[:, 0]

    def decision_function(self, X) -> np.ndarray:
        """Probability of label 1 for classification; the prediction for regression."""
        if not self.is_classification:
            return self.predict(X)
        proba = self.predict_proba(X)
        positive = np.flatnonzero(self.classes_ == 1.0)
        if positive.size == 0:
            return np.zeros(proba.shape[0], dtype=np.float64)
        return proba[:, positive[0]]

    def to_dict(self) -> dict:
        arena = self._fitted_arena()
        return {
            "params": self.params.to_dict(),
            "classes": None if self.classes_ is None else self.classes_.tolist(),
            "n_features": self.n_features_,
            "arena": arena.to_dict(),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> DecisionTree:
        tree = cls(DecisionTreeParams.from_dict(payload["params"]))
        classes = payload.get("classes")
        tree.classes_ = None if classes is None else np.asarray(classes, dtype=np.float64)
        tree.n_features_ = int(payload["n_features"])
        tree.arena_ = TreeArena.from_dict(payload["arena"])
        return tree
