from __future__ import annotations

from dataclasses import dataclass, field
import time

import numpy as np

from feature_matrix import FeatureView


CLASSIFICATION_CRITERIA = frozenset({"gini", "entropy"})
REGRESSION_CRITERIA = frozenset({"variance"})
CRITERIA = CLASSIFICATION_CRITERIA | REGRESSION_CRITERIA

# Relative slack below which a child impurity does not count as an improvement.
_IMPURITY_RTOL = 1e-10


@dataclass(frozen=True)
class SplitCandidate:
    feature: int
    threshold: float


@dataclass
class SplitSearchMetrics:
    features_evaluated: int = 0
    thresholds_evaluated: int = 0
    constant_features: list[int] = field(default_factory=list)
    time_spent_sec: float = 0.0


@dataclass
class SplitSearchResult:
    candidate: SplitCandidate | None
    parent_impurity: float
    child_impurity: float
    n_left: int
    n_right: int
    metrics: SplitSearchMetrics

    @property
    def gain(self) -> float:
        if self.candidate is None:
            return 0.0
        return self.parent_impurity - self.child_impurity


def _gini(counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
    p = counts / totals[:, None]
    return 1.0 - np.sum(p * p, axis=1)


def _entropy(counts: np.ndarray, totals: np.ndarray) -> np.ndarray:
    p = counts / totals[:, None]
    with np.errstate(divide="ignore", invalid="ignore"):
        log_p = np.where(p > 0.0, np.log2(p), 0.0)
    return -np.sum(p * log_p, axis=1)


_CLASS_IMPURITY = {"gini": _gini, "entropy": _entropy}


def class_counts(encoded: np.ndarray, n_classes: int) -> np.ndarray:
    return np.bincount(encoded, minlength=n_classes).astype(np.float64)


def node_impurity(targets: np.ndarray, criterion: str, n_classes: int | None = None) -> float:
    """Impurity of a single node.

    ``targets`` are class indices for gini/entropy and raw values for variance.
    """
    if targets.size == 0:
        return 0.0
    if criterion in CLASSIFICATION_CRITERIA:
        if n_classes is None:
            n_classes = int(targets.max()) + 1
        counts = class_counts(targets, n_classes)[None, :]
        return float(_CLASS_IMPURITY[criterion](counts, np.array([float(targets.size)]))[0])
    if criterion == "variance":
        centered = targets - targets.mean()
        return float(np.mean(centered * centered))
    raise ValueError(f"Unsupported criterion: {criterion}")


def midpoint_threshold(lo: float, hi: float) -> float:
    """Threshold between two consecutive distinct values with ``lo < t <= hi``."""
    mid = (lo + hi) * 0.5
    if not (lo < mid <= hi):
        return hi
    return mid


class ExactSplitSearch:
    """Exhaustive CART split search for one node.

    Rows go left when ``value < threshold``. Thresholds are midpoints between
    consecutive distinct values of a feature within the node.
    """

    def __init__(
        self,
        X: FeatureView,
        targets: np.ndarray,
        node_rows: np.ndarray,
        candidate_features: np.ndarray,
        criterion: str,
        min_samples_split: int = 2,
        n_classes: int | None = None,
    ) -> None:
        if criterion not in CRITERIA:
            raise ValueError(f"Unsupported criterion: {criterion}")
        self.X = X
        self.targets = targets
        self.node_rows = np.asarray(node_rows, dtype=np.int64)
        self.candidate_features = np.sort(np.asarray(candidate_features, dtype=np.int64))
        self.criterion = criterion
        self.min_samples_split = min_samples_split
        self.is_classification = criterion in CLASSIFICATION_CRITERIA

        if self.is_classification and n_classes is None:
            n_classes = int(np.max(targets)) + 1 if targets.size else 0
        self.n_classes = n_classes

    def _child_impurity_classification(
        self,
        sorted_targets: np.ndarray,
        left_sizes: np.ndarray,
    ) -> np.ndarray:
        n = sorted_targets.size
        one_hot = np.zeros((n, self.n_classes), dtype=np.float64)
        one_hot[np.arange(n), sorted_targets] = 1.0
        cumulative = np.cumsum(one_hot, axis=0)

        left_counts = cumulative[left_sizes - 1]
        right_counts = cumulative[-1][None, :] - left_counts
        n_left = left_sizes.astype(np.float64)
        n_right = float(n) - n_left

        impurity = _CLASS_IMPURITY[self.criterion]
        return (n_left * impurity(left_counts, n_left) + n_right * impurity(right_counts, n_right)) / n

    @staticmethod
    def _child_impurity_regression(
        sorted_targets: np.ndarray,
        left_sizes: np.ndarray,
    ) -> np.ndarray:
        n = sorted_targets.size
        centered = sorted_targets - sorted_targets.mean()
        sums = np.cumsum(centered)
        squares = np.cumsum(centered * centered)

        n_left = left_sizes.astype(np.float64)
        n_right = float(n) - n_left
        sum_left = sums[left_sizes - 1]
        sq_left = squares[left_sizes - 1]
        sum_right = sums[-1] - sum_left
        sq_right = squares[-1] - sq_left

        sse_left = np.maximum(sq_left - sum_left * sum_left / n_left, 0.0)
        sse_right = np.maximum(sq_right - sum_right * sum_right / n_right, 0.0)
        return (sse_left + sse_right) / n

    def _no_split(self, parent: float, metrics: SplitSearchMetrics, start: float) -> SplitSearchResult:
        metrics.time_spent_sec = time.perf_counter() - start
        return SplitSearchResult(None, parent, parent, int(self.node_rows.size), 0, metrics)

    def search(self) -> SplitSearchResult:
        start = time.perf_counter()
        metrics = SplitSearchMetrics()

        node_targets = self.targets[self.node_rows]
        n = int(node_targets.size)
        parent = node_impurity(node_targets, self.criterion, self.n_classes)

        if n < max(self.min_samples_split, 2):
            return self._no_split(parent, metrics, start)
        if np.all(node_targets == node_targets[0]):
            return self._no_split(parent, metrics, start)
        if self.candidate_features.size == 0:
            return self._no_split(parent, metrics, start)

        best: SplitCandidate | None = None
        best_impurity = np.inf
        best_left = 0

        for feature in self.candidate_features:
            values = self.X.column_values(self.node_rows, int(feature))
            order = np.argsort(values, kind="stable")
            sorted_values = values[order]
            sorted_targets = node_targets[order]

            left_sizes = np.flatnonzero(sorted_values[1:] != sorted_values[:-1]) + 1
            if left_sizes.size == 0:
                metrics.constant_features.append(int(feature))
                continue

            metrics.features_evaluated += 1
            metrics.thresholds_evaluated += int(left_sizes.size)

            if self.is_classification:
                child = self._child_impurity_classification(sorted_targets, left_sizes)
            else:
                child = self._child_impurity_regression(sorted_targets, left_sizes)

            # argmin returns the first minimum, i.e. the lowest threshold.
            pos = int(np.argmin(child))
            if child[pos] < best_impurity:
                split_at = int(left_sizes[pos])
                best_impurity = float(child[pos])
                best_left = split_at
                best = SplitCandidate(
                    feature=int(feature),
                    threshold=midpoint_threshold(
                        float(sorted_values[split_at - 1]),
                        float(sorted_values[split_at]),
                    ),
                )

        if best is None or not best_impurity < parent - _IMPURITY_RTOL * max(parent, 1.0):
            return self._no_split(parent, metrics, start)

        metrics.time_spent_sec = time.perf_counter() - start
        return SplitSearchResult(best, parent, best_impurity, best_left, n - best_left, metrics)
