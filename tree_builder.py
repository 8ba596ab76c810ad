from __future__ import annotations

from dataclasses import dataclass, field
import logging

import numpy as np

from data_structures import TreeArena
from feature_matrix import FeatureView
from split_search import (
    CLASSIFICATION_CRITERIA,
    CRITERIA,
    ExactSplitSearch,
    SplitSearchResult,
    class_counts,
    node_impurity,
)

logger = logging.getLogger(__name__)


@dataclass
class TreeBuildMetrics:
    nodes_visited: int = 0
    nodes_split: int = 0
    depth_limited_nodes: int = 0
    features_evaluated: int = 0
    thresholds_evaluated: int = 0
    split_search_time_sec: float = 0.0
    node_metrics: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "nodes_visited": self.nodes_visited,
            "nodes_split": self.nodes_split,
            "depth_limited_nodes": self.depth_limited_nodes,
            "features_evaluated": self.features_evaluated,
            "thresholds_evaluated": self.thresholds_evaluated,
            "split_search_time_sec": self.split_search_time_sec,
        }


@dataclass
class TreeBuilderParams:
    criterion: str = "gini"
    min_samples_split: int = 2
    max_depth: int | None = None
    max_features: int | None = None
    record_node_metrics: bool = False

    def __post_init__(self) -> None:
        if self.criterion not in CRITERIA:
            raise ValueError(f"criterion must be one of: {', '.join(sorted(CRITERIA))}")


@dataclass
class _Candidate:
    node: int
    rows: np.ndarray
    depth: int


class TreeBuilder:
    """Depth-first CART induction into a :class:`TreeArena`.

    ``targets`` holds class indices in ``[0, n_classes)`` for gini/entropy and
    raw target values for variance.
    """

    def __init__(
        self,
        X: FeatureView,
        targets: np.ndarray,
        params: TreeBuilderParams,
        rng: np.random.Generator | None = None,
        n_classes: int | None = None,
    ) -> None:
        self.X = X
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng(0)
        self.is_classification = params.criterion in CLASSIFICATION_CRITERIA

        if self.is_classification:
            self.targets = np.asarray(targets, dtype=np.int64)
            if n_classes is None:
                n_classes = int(self.targets.max()) + 1 if self.targets.size else 1
            self.n_classes = n_classes
        else:
            self.targets = np.asarray(targets, dtype=np.float64)
            self.n_classes = None

        self.n_samples = X.rows()
        self.n_features = X.cols()
        self.metrics = TreeBuildMetrics()

    def _candidate_features(self) -> np.ndarray:
        all_features = np.arange(self.n_features, dtype=np.int64)
        max_features = self.params.max_features
        if max_features is None or max_features >= self.n_features:
            return all_features
        chosen = self.rng.choice(self.n_features, size=max_features, replace=False)
        return np.sort(chosen)

    def _leaf_value(self, rows: np.ndarray) -> np.ndarray:
        node_targets = self.targets[rows]
        if self.is_classification:
            counts = class_counts(node_targets, self.n_classes)
            return counts / max(float(rows.size), 1.0)
        if rows.size == 0:
            return np.zeros(1, dtype=np.float64)
        return np.array([node_targets.mean()], dtype=np.float64)

    def _add_leaf(self, arena: TreeArena, rows: np.ndarray, depth: int) -> int:
        impurity = node_impurity(self.targets[rows], self.params.criterion, self.n_classes)
        return arena.add_leaf(
            self._leaf_value(rows),
            depth=depth,
            n_samples=int(rows.size),
            impurity=impurity,
        )

    def _find_best_split(self, candidate: _Candidate) -> SplitSearchResult:
        search = ExactSplitSearch(
            X=self.X,
            targets=self.targets,
            node_rows=candidate.rows,
            candidate_features=self._candidate_features(),
            criterion=self.params.criterion,
            min_samples_split=self.params.min_samples_split,
            n_classes=self.n_classes,
        )
        result = search.search()

        self.metrics.features_evaluated += result.metrics.features_evaluated
        self.metrics.thresholds_evaluated += result.metrics.thresholds_evaluated
        self.metrics.split_search_time_sec += result.metrics.time_spent_sec
        if self.params.record_node_metrics:
            self.metrics.node_metrics.append(
                {
                    "depth": candidate.depth,
                    "node_size": int(candidate.rows.size),
                    "features_evaluated": result.metrics.features_evaluated,
                    "thresholds_evaluated": result.metrics.thresholds_evaluated,
                    "gain": result.gain,
                }
            )
        return result

    def _partition_rows(self, rows: np.ndarray, feature: int, threshold: float) -> tuple[np.ndarray, np.ndarray]:
        left_mask = self.X.column_values(rows, feature) < threshold
        return rows[left_mask], rows[~left_mask]

    def build_tree(self, rows: np.ndarray | None = None) -> TreeArena:
        if rows is None:
            rows = np.arange(self.n_samples, dtype=np.int64)
        else:
            rows = np.asarray(rows, dtype=np.int64)

        n_outputs = self.n_classes if self.is_classification else 1
        arena = TreeArena(n_features=self.n_features, n_outputs=n_outputs)
        root = self._add_leaf(arena, rows, depth=0)
        stack = [_Candidate(node=root, rows=rows, depth=0)]

        while stack:
            candidate = stack.pop()
            self.metrics.nodes_visited += 1

            if self.params.max_depth is not None and candidate.depth >= self.params.max_depth:
                self.metrics.depth_limited_nodes += 1
                continue

            split_result = self._find_best_split(candidate)
            if split_result.candidate is None:
                continue

            feature = split_result.candidate.feature
            threshold = split_result.candidate.threshold
            left_rows, right_rows = self._partition_rows(candidate.rows, feature, threshold)
            if left_rows.size == 0 or right_rows.size == 0:
                continue

            left = self._add_leaf(arena, left_rows, depth=candidate.depth + 1)
            right = self._add_leaf(arena, right_rows, depth=candidate.depth + 1)
            arena.make_split(candidate.node, feature, threshold, left, right)
            self.metrics.nodes_split += 1

            stack.append(_Candidate(node=right, rows=right_rows, depth=candidate.depth + 1))
            stack.append(_Candidate(node=left, rows=left_rows, depth=candidate.depth + 1))

        logger.debug(
            "built tree: %d nodes, %d splits, depth %d",
            len(arena),
            self.metrics.nodes_split,
            arena.depth,
        )
        return arena
