from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from errors import ConfigurationError, FeatureIndexError
from feature_matrix import FeatureView


ROOT = 0


@dataclass
class TreeNode:
    is_leaf: bool
    value: np.ndarray
    depth: int = 0
    n_samples: int = 0
    impurity: float = 0.0
    feature: int = -1
    threshold: float = 0.0
    left: int = -1
    right: int = -1


class TreeArena:
    """Index-addressed node storage for one decision tree.

    Children are referenced by their position in ``nodes``; the root is always
    node 0. Rows with ``value < threshold`` descend to ``left``.
    """

    def __init__(self, n_features: int, n_outputs: int) -> None:
        self.n_features = n_features
        self.n_outputs = n_outputs
        self.nodes: list[TreeNode] = []

    def __len__(self) -> int:
        return len(self.nodes)

    def add_leaf(
        self,
        value: np.ndarray,
        depth: int,
        n_samples: int,
        impurity: float = 0.0,
    ) -> int:
        value = np.asarray(value, dtype=np.float64).reshape(self.n_outputs)
        self.nodes.append(
            TreeNode(
                is_leaf=True,
                value=value,
                depth=depth,
                n_samples=n_samples,
                impurity=impurity,
            )
        )
        return len(self.nodes) - 1

    def make_split(self, index: int, feature: int, threshold: float, left: int, right: int) -> None:
        node = self.nodes[index]
        node.is_leaf = False
        node.feature = int(feature)
        node.threshold = float(threshold)
        node.left = int(left)
        node.right = int(right)

    @property
    def n_leaves(self) -> int:
        return sum(1 for node in self.nodes if node.is_leaf)

    @property
    def depth(self) -> int:
        return max((node.depth for node in self.nodes), default=0)

    def apply(self, X: FeatureView) -> np.ndarray:
        """Leaf index reached by every row of ``X``."""
        n_rows = X.rows()
        leaves = np.full(n_rows, -1, dtype=np.int64)
        if not self.nodes:
            return leaves

        stack = [(ROOT, np.arange(n_rows, dtype=np.int64))]
        while stack:
            index, rows = stack.pop()
            if rows.size == 0:
                continue
            node = self.nodes[index]
            if node.is_leaf:
                leaves[rows] = index
                continue

            go_left = X.column_values(rows, node.feature) < node.threshold
            stack.append((node.right, rows[~go_left]))
            stack.append((node.left, rows[go_left]))

        return leaves

    def leaf_values(self, X: FeatureView) -> np.ndarray:
        leaves = self.apply(X)
        values = np.stack([node.value for node in self.nodes])
        return values[leaves]

    def predict_row(self, entries: list[tuple[int, float]]) -> np.ndarray:
        """Traverse for one row given as ``(column, value)`` pairs; absent columns are 0."""
        row = dict(entries)
        node = self.nodes[ROOT]
        while not node.is_leaf:
            value = row.get(node.feature, 0.0)
            node = self.nodes[node.left if value < node.threshold else node.right]
        return node.value

    def validate(self) -> None:
        if not self.nodes:
            raise ConfigurationError("tree arena is empty")

        n_nodes = len(self.nodes)
        parents = np.full(n_nodes, -1, dtype=np.int64)
        for index, node in enumerate(self.nodes):
            if node.value.shape != (self.n_outputs,):
                raise ConfigurationError(f"node {index} has a value of the wrong length")
            if node.is_leaf:
                continue
            if not 0 <= node.feature < self.n_features:
                raise FeatureIndexError(f"node {index} splits on unknown feature {node.feature}")
            for child in (node.left, node.right):
                if not 0 < child < n_nodes:
                    raise FeatureIndexError(f"node {index} points at missing child {child}")
                if parents[child] != -1:
                    raise ConfigurationError(f"node {child} has more than one parent")
                parents[child] = index

        # Every non-root node has exactly one parent; walking up must reach the root.
        for index in range(1, n_nodes):
            seen = 0
            cursor = index
            while cursor != ROOT:
                cursor = int(parents[cursor])
                seen += 1
                if cursor == -1 or seen > n_nodes:
                    raise ConfigurationError(f"node {index} is not reachable from the root")

    def to_dict(self) -> dict:
        nodes = []
        for node in self.nodes:
            payload = {
                "leaf": node.is_leaf,
                "value": node.value.tolist(),
                "depth": node.depth,
                "n_samples": node.n_samples,
                "impurity": node.impurity,
            }
            if not node.is_leaf:
                payload.update(
                    feature=node.feature,
                    threshold=node.threshold,
                    left=node.left,
                    right=node.right,
                )
            nodes.append(payload)
        return {"n_features": self.n_features, "n_outputs": self.n_outputs, "nodes": nodes}

    @classmethod
    def from_dict(cls, payload: dict) -> TreeArena:
        arena = cls(int(payload["n_features"]), int(payload["n_outputs"]))
        for item in payload["nodes"]:
            arena.nodes.append(
                TreeNode(
                    is_leaf=bool(item["leaf"]),
                    value=np.asarray(item["value"], dtype=np.float64),
                    depth=int(item.get("depth", 0)),
                    n_samples=int(item.get("n_samples", 0)),
                    impurity=float(item.get("impurity", 0.0)),
                    feature=int(item.get("feature", -1)),
                    threshold=float(item.get("threshold", 0.0)),
                    left=int(item.get("left", -1)),
                    right=int(item.get("right", -1)),
                )
            )
        arena.validate()
        return arena
