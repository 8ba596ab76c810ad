import numpy as np
import pytest

from feature_matrix import DenseMatrix, SparseMatrix
from split_search import ExactSplitSearch, midpoint_threshold, node_impurity


def _search(X, targets, criterion="gini", features=None, min_samples_split=2, rows=None):
    if rows is None:
        rows = np.arange(X.rows())
    if features is None:
        features = np.arange(X.cols())
    return ExactSplitSearch(
        X=X,
        targets=np.asarray(targets),
        node_rows=rows,
        candidate_features=features,
        criterion=criterion,
        min_samples_split=min_samples_split,
    ).search()


def test_four_row_scenario_splits_between_second_and_third_row():
    X = DenseMatrix([[1.0, 5.0], [2.0, 1.0], [3.0, 4.0], [4.0, 2.0]])
    result = _search(X, [0, 0, 1, 1])

    assert result.candidate is not None
    assert result.candidate.feature == 0
    assert result.candidate.threshold == 2.5
    assert result.child_impurity == 0.0
    assert result.parent_impurity == pytest.approx(0.5)
    assert (result.n_left, result.n_right) == (2, 2)


@pytest.mark.parametrize("criterion", ["gini", "entropy"])
def test_ties_go_to_lowest_feature_then_lowest_threshold(criterion):
    column = np.array([1.0, 2.0, 3.0, 4.0])
    X = DenseMatrix(np.column_stack([column, column]))

    # Splitting at 1.5 and at 3.5 isolate one row of class 0 each; both score equally.
    result = _search(X, [0, 1, 1, 0], criterion=criterion)

    assert result.candidate.feature == 0
    assert result.candidate.threshold == 1.5


def test_no_split_for_pure_node():
    X = DenseMatrix([[1.0], [2.0], [3.0]])
    result = _search(X, [1, 1, 1])

    assert result.candidate is None
    assert result.gain == 0.0


def test_no_split_when_every_feature_is_constant():
    X = DenseMatrix([[7.0, 0.0], [7.0, 0.0], [7.0, 0.0]])
    result = _search(X, [0, 1, 0])

    assert result.candidate is None
    assert result.metrics.constant_features == [0, 1]


def test_no_split_below_min_samples_split():
    X = DenseMatrix([[1.0], [2.0], [3.0]])
    assert _search(X, [0, 1, 1], min_samples_split=4).candidate is None
    assert _search(X, [0, 1, 1], min_samples_split=3).candidate is not None


def test_no_split_when_impurity_does_not_drop():
    # XOR: every axis-aligned split leaves both children as mixed as the parent.
    X = DenseMatrix([[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]])
    assert _search(X, [0, 1, 1, 0]).candidate is None


def test_only_candidate_features_are_considered():
    X = DenseMatrix([[1.0, 9.0], [2.0, 8.0], [3.0, 7.0], [4.0, 6.0]])
    result = _search(X, [0, 0, 1, 1], features=np.array([1]))

    assert result.candidate.feature == 1
    assert result.candidate.threshold == 7.5


def test_sparse_absent_entries_behave_as_zero():
    X = np.array(
        [
            [0.0, 3.0],
            [0.0, -1.0],
            [2.0, 0.0],
            [5.0, 4.0],
            [0.0, 0.0],
        ]
    )
    targets = [0, 0, 1, 1, 0]
    dense = _search(DenseMatrix(X), targets)
    sparse = _search(SparseMatrix.from_dense(X), targets)

    assert dense.candidate == sparse.candidate
    assert dense.candidate.feature == 0
    assert dense.candidate.threshold == 1.0
    assert dense.child_impurity == sparse.child_impurity


def test_variance_criterion_separates_target_levels():
    X = DenseMatrix([[1.0], [2.0], [3.0], [4.0]])
    result = _search(X, np.array([1.0, 1.0, 5.0, 5.0]), criterion="variance")

    assert result.candidate.threshold == 2.5
    assert result.child_impurity == pytest.approx(0.0, abs=1e-12)
    assert result.parent_impurity == pytest.approx(4.0)


def test_search_is_restricted_to_node_rows():
    X = DenseMatrix([[1.0], [2.0], [3.0], [4.0], [5.0]])
    targets = [1, 0, 0, 1, 1]
    result = _search(X, targets, rows=np.array([1, 2, 3, 4]))

    assert result.candidate.threshold == 3.5
    assert (result.n_left, result.n_right) == (2, 2)


def test_node_impurity_values():
    assert node_impurity(np.array([0, 0, 1, 1]), "gini") == pytest.approx(0.5)
    assert node_impurity(np.array([0, 0, 1, 1]), "entropy") == pytest.approx(1.0)
    assert node_impurity(np.array([2, 2, 2]), "gini", n_classes=3) == pytest.approx(0.0)
    assert node_impurity(np.array([1.0, 3.0]), "variance") == pytest.approx(1.0)


def test_midpoint_threshold_stays_above_lower_value():
    lo = 1.0
    hi = float(np.nextafter(lo, 2.0))
    threshold = midpoint_threshold(lo, hi)

    assert lo < threshold <= hi
    assert midpoint_threshold(1.0, 2.0) == 1.5
