from __future__ import annotations

import numpy as np


def derive_tree_seeds(seed: int, n_trees: int) -> list[tuple[int, int]]:
    """Independent ``(bootstrap_seed, tree_seed)`` pairs, one per ensemble member.

    Member ``i`` depends only on ``seed`` and ``i``, never on which worker
    builds it or in what order.
    """
    children = np.random.SeedSequence(seed).spawn(n_trees)
    seeds = []
    for child in children:
        bootstrap_seed, tree_seed = child.generate_state(2, dtype=np.uint32)
        seeds.append((int(bootstrap_seed), int(tree_seed)))
    return seeds


def draw_bootstrap_indices(rng: np.random.Generator | int, n_rows: int) -> np.ndarray:
    """Draw ``n_rows`` row indices from ``[0, n_rows)`` with replacement."""
    if not isinstance(rng, np.random.Generator):
        rng = np.random.default_rng(rng)
    return rng.integers(0, n_rows, size=n_rows, dtype=np.int64)


def out_of_bag_mask(indices: np.ndarray, n_rows: int) -> np.ndarray:
    counts = np.bincount(np.asarray(indices, dtype=np.int64), minlength=n_rows)
    return counts == 0
