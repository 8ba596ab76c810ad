from __future__ import annotations

from dataclasses import asdict, dataclass
import logging
import math
from typing import Callable

import numpy as np
from joblib import Parallel, delayed

from bagging import derive_tree_seeds, draw_bootstrap_indices, out_of_bag_mask
from decision_tree import DecisionTree, DecisionTreeParams
from errors import ConfigurationError
from estimator import check_fit_inputs, check_predict_input
from feature_matrix import FeatureMatrix
from split_search import CLASSIFICATION_CRITERIA, CRITERIA

logger = logging.getLogger(__name__)


@dataclass
class RandomForestParams:
    n_trees: int = 10
    criterion: str = "gini"  # one of: gini, entropy, variance
    min_samples_split: int = 2
    max_depth: int | None = None
    max_features: int | None = None  # None means ceil(sqrt(n_features))
    seed: int = 0

    # Execution controls; they never change the fitted model.
    n_jobs: int | None = 1
    batch_size: int = 1024
    oob_score: bool = False

    def __post_init__(self) -> None:
        if self.n_trees <= 0:
            raise ConfigurationError("n_trees must be positive")
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
        if self.n_jobs == 0:
            raise ConfigurationError("n_jobs must be non-zero")
        if self.batch_size <= 0:
            raise ConfigurationError("batch_size must be positive")

    @property
    def is_classification(self) -> bool:
        return self.criterion in CLASSIFICATION_CRITERIA

    def resolved_max_features(self, n_features: int) -> int:
        if self.max_features is None:
            return max(1, math.ceil(math.sqrt(n_features)))
        return min(self.max_features, n_features)

    def tree_params(self, max_features: int, tree_seed: int) -> DecisionTreeParams:
        return DecisionTreeParams(
            criterion=self.criterion,
            min_samples_split=self.min_samples_split,
            max_depth=self.max_depth,
            max_features=max_features,
            seed=tree_seed,
        )

    def build(self) -> RandomForest:
        return RandomForest(self)

    def one_vs_rest(self):
        from one_vs_rest import OneVsRestWrapper

        return OneVsRestWrapper(self.build())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict) -> RandomForestParams:
        return cls(**payload)


def _fit_member(
    X: FeatureMatrix,
    y: np.ndarray,
    params: DecisionTreeParams,
    bootstrap_seed: int,
) -> DecisionTree:
    indices = draw_bootstrap_indices(bootstrap_seed, X.rows())
    return DecisionTree(params).fit(X.get_rows(indices), y[indices])


class RandomForest:
    """Bagged ensemble of CART trees with per-split feature subsampling."""

    def __init__(self, params: RandomForestParams | None = None) -> None:
        self.params = params or RandomForestParams()

        self.trees_: list[DecisionTree] = []
        self.tree_seeds_: list[tuple[int, int]] = []
        self.classes_: np.ndarray | None = None
        self.n_features_: int | None = None
        self.n_rows_: int | None = None
        self.max_features_: int | None = None
        self.oob_score_: float | None = None

    @property
    def is_classification(self) -> bool:
        return self.params.is_classification

    def _parallel(self) -> Parallel:
        return Parallel(n_jobs=self.params.n_jobs, prefer="threads")

    def fit(self, X, y) -> RandomForest:
        X, y = check_fit_inputs(X, y)
        classes = np.unique(y) if self.is_classification else None
        max_features = self.params.resolved_max_features(X.cols())
        seeds = derive_tree_seeds(self.params.seed, self.params.n_trees)

        trees = self._parallel()(
            delayed(_fit_member)(
                X,
                y,
                self.params.tree_params(max_features, tree_seed),
                bootstrap_seed,
            )
            for bootstrap_seed, tree_seed in seeds
        )

        oob_score = None
        if self.params.oob_score:
            oob_score = self._oob_score(X, y, trees, seeds, classes)

        self.trees_ = list(trees)
        self.tree_seeds_ = seeds
        self.classes_ = classes
        self.n_features_ = X.cols()
        self.n_rows_ = X.rows()
        self.max_features_ = max_features
        self.oob_score_ = oob_score
        logger.info(
            "fit random forest: %d trees on %d rows x %d features (max_features=%d, n_jobs=%s)",
            len(trees),
            X.rows(),
            X.cols(),
            max_features,
            self.params.n_jobs,
        )
        return self

    def bootstrap_indices(self, tree_index: int) -> np.ndarray:
        """Regenerate the bootstrap sample tree ``tree_index`` was fit on."""
        if self.n_rows_ is None:
            raise ConfigurationError("model must be fit before use")
        bootstrap_seed, _ = self.tree_seeds_[tree_index]
        return draw_bootstrap_indices(bootstrap_seed, self.n_rows_)

    def _oob_score(
        self,
        X: FeatureMatrix,
        y: np.ndarray,
        trees: list[DecisionTree],
        seeds: list[tuple[int, int]],
        classes: np.ndarray | None,
    ) -> float:
        n_rows = X.rows()
        if classes is not None:
            totals = np.zeros((n_rows, classes.size), dtype=np.int64)
        else:
            totals = np.zeros((n_rows, 1), dtype=np.float64)
        counts = np.zeros(n_rows, dtype=np.int64)

        for tree, (bootstrap_seed, _) in zip(trees, seeds):
            rows = np.flatnonzero(
                out_of_bag_mask(draw_bootstrap_indices(bootstrap_seed, n_rows), n_rows)
            )
            if rows.size == 0:
                continue
            pred = tree.predict(X.get_rows(rows))
            if classes is not None:
                totals[rows, np.searchsorted(classes, pred)] += 1
            else:
                totals[rows, 0] += pred
            counts[rows] += 1

        scored = counts > 0
        if not np.any(scored):
            logger.warning("no out-of-bag rows; oob_score is undefined")
            return float("nan")

        if classes is not None:
            pred = classes[np.argmax(totals[scored], axis=1)]
            return float(np.mean(pred == y[scored]))

        pred = totals[scored, 0] / counts[scored]
        truth = y[scored]
        total = float(np.sum((truth - truth.mean()) ** 2))
        if total == 0.0:
            return float("nan")
        return 1.0 - float(np.sum((truth - pred) ** 2)) / total

    def _check_fitted(self, X) -> FeatureMatrix:
        X = check_predict_input(X, self.n_features_)
        if not self.trees_:
            raise ConfigurationError("model must be fit before calling predict")
        return X

    def _map_batches(self, func: Callable[[FeatureMatrix], np.ndarray], X: FeatureMatrix) -> np.ndarray:
        n_rows = X.rows()
        if n_rows <= self.params.batch_size:
            return func(X)

        batches = [
            np.arange(start, min(start + self.params.batch_size, n_rows))
            for start in range(0, n_rows, self.params.batch_size)
        ]
        parts = self._parallel()(delayed(func)(X.get_rows(rows)) for rows in batches)
        return np.concatenate(parts, axis=0)

    def _votes_for(self, X: FeatureMatrix) -> np.ndarray:
        votes = np.zeros((X.rows(), self.classes_.size), dtype=np.int64)
        row_ids = np.arange(X.rows())
        for tree in self.trees_:
            votes[row_ids, np.searchsorted(self.classes_, tree.predict(X))] += 1
        return votes

    def _proba_for(self, X: FeatureMatrix) -> np.ndarray:
        proba = np.zeros((X.rows(), self.classes_.size), dtype=np.float64)
        for tree in self.trees_:
            columns = np.searchsorted(self.classes_, tree.classes_)
            proba[:, columns] += tree.predict_proba(X)
        return proba / len(self.trees_)

    def _mean_for(self, X: FeatureMatrix) -> np.ndarray:
        total = np.zeros(X.rows(), dtype=np.float64)
        for tree in self.trees_:
            total += tree.predict(X)
        return total / len(self.trees_)

    def predict_votes(self, X) -> np.ndarray:
        """Per-row tally of tree votes, one column per entry of ``classes_``."""
        if not self.is_classification:
            raise ConfigurationError("predict_votes is only available for classification criteria")
        X = self._check_fitted(X)
        return self._map_batches(self._votes_for, X)

    def predict_proba(self, X) -> np.ndarray:
        if not self.is_classification:
            raise ConfigurationError("predict_proba is only available for classification criteria")
        X = self._check_fitted(X)
        return self._map_batches(self._proba_for, X)

    def predict(self, X) -> np.ndarray:
        if self.is_classification:
            # argmax breaks ties towards the lowest class.
            return self.classes_[np.argmax(self.predict_votes(X), axis=1)]
        X = self._check_fitted(X)
        return self._map_batches(self._mean_for, X)

    def decision_function(self, X) -> np.ndarray:
        """Share of tree votes for label 1 for classification; the mean prediction for regression.

        Ranking by vote share keeps this score consistent with ``predict``.
        """
        if not self.is_classification:
            return self.predict(X)
        votes = self.predict_votes(X)
        positive = np.flatnonzero(self.classes_ == 1.0)
        if positive.size == 0:
            return np.zeros(votes.shape[0], dtype=np.float64)
        return votes[:, positive[0]] / float(len(self.trees_))

    def to_dict(self) -> dict:
        if not self.trees_:
            raise ConfigurationError("model must be fit before use")
        return {
            "params": self.params.to_dict(),
            "classes": None if self.classes_ is None else self.classes_.tolist(),
            "n_features": self.n_features_,
            "n_rows": self.n_rows_,
            "max_features": self.max_features_,
            "tree_seeds": [list(pair) for pair in self.tree_seeds_],
            "oob_score": self.oob_score_,
            "trees": [tree.to_dict() for tree in self.trees_],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> RandomForest:
        forest = cls(RandomForestParams.from_dict(payload["params"]))
        classes = payload.get("classes")
        forest.classes_ = None if classes is None else np.asarray(classes, dtype=np.float64)
        forest.n_features_ = int(payload["n_features"])
        forest.n_rows_ = int(payload["n_rows"])
        forest.max_features_ = int(payload["max_features"])
        forest.tree_seeds_ = [(int(a), int(b)) for a, b in payload["tree_seeds"]]
        forest.oob_score_ = payload.get("oob_score")
        forest.trees_ = [DecisionTree.from_dict(item) for item in payload["trees"]]
        if len(forest.trees_) != len(forest.tree_seeds_):
            raise ConfigurationError("forest payload has mismatched trees and seeds")
        return forest
