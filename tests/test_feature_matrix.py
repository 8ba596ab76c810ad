import numpy as np
import pytest
import scipy.sparse as sp

from errors import FeatureIndexError, ShapeError
from feature_matrix import (
    DenseMatrix,
    SparseMatrix,
    as_feature_matrix,
    as_label_vector,
)


def _mixed_array(seed=0, n_rows=8, n_cols=5):
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n_rows, n_cols))
    X[rng.uniform(size=X.shape) < 0.5] = 0.0
    return X


@pytest.mark.parametrize("kind", ["dense", "sparse"])
def test_get_rows_reproduces_repeated_rows_in_order(kind):
    X = _mixed_array()
    matrix = DenseMatrix(X) if kind == "dense" else SparseMatrix.from_dense(X)
    indices = [2, 0, 2, 7, 7, 7, 1]

    subset = matrix.get_rows(indices)

    assert subset.kind == matrix.kind
    assert subset.rows() == len(indices)
    assert subset.cols() == X.shape[1]
    np.testing.assert_array_equal(subset.toarray(), X[indices])


@pytest.mark.parametrize("kind", ["dense", "sparse"])
def test_get_rows_rejects_out_of_range_indices(kind):
    X = _mixed_array()
    matrix = DenseMatrix(X) if kind == "dense" else SparseMatrix.from_dense(X)

    with pytest.raises(FeatureIndexError):
        matrix.get_rows([0, X.shape[0]])
    with pytest.raises(IndexError):
        matrix.get_rows([-1])
    with pytest.raises(FeatureIndexError):
        matrix.row_entries(X.shape[0])


def test_get_rows_with_no_indices_keeps_column_count():
    X = _mixed_array()
    assert DenseMatrix(X).get_rows([]).shape == (0, X.shape[1])
    assert SparseMatrix.from_dense(X).get_rows([]).shape == (0, X.shape[1])


def test_row_entries_dense_yields_every_column_sparse_only_stored():
    X = np.array([[0.0, 1.5, 0.0, -2.0]])

    assert DenseMatrix(X).row_entries(0) == [(0, 0.0), (1, 1.5), (2, 0.0), (3, -2.0)]
    assert SparseMatrix.from_dense(X).row_entries(0) == [(1, 1.5), (3, -2.0)]


def test_column_values_match_across_backends():
    X = _mixed_array(seed=3, n_rows=12, n_cols=4)
    dense = DenseMatrix(X)
    sparse = SparseMatrix.from_dense(X)
    rows = np.array([5, 1, 1, 11, 0])

    for feature in range(X.shape[1]):
        np.testing.assert_array_equal(
            dense.column_values(rows, feature),
            sparse.column_values(rows, feature),
        )
        np.testing.assert_array_equal(sparse.column_values(None, feature), X[:, feature])


def test_sparse_column_values_on_row_subsets_with_repeats():
    X = _mixed_array(seed=8, n_rows=30, n_cols=4)
    X[:, 1] = 0.0
    X[:, 2] = np.arange(1, 31, dtype=np.float64)
    X[0, 3] = -1.0
    X[29, 3] = 4.0
    dense = DenseMatrix(X)
    sparse = SparseMatrix.from_dense(X)
    rng = np.random.default_rng(2)
    subsets = [
        rng.integers(0, 30, size=50),
        np.array([29, 29, 0, 0, 14]),
        np.array([], dtype=np.int64),
    ]

    for rows in subsets:
        for feature in range(X.shape[1]):
            np.testing.assert_array_equal(
                sparse.column_values(rows, feature),
                dense.column_values(rows, feature),
            )


def test_sparse_matrix_backing_arrays_are_read_only():
    source = sp.csr_matrix(np.array([[0.0, 2.0], [3.0, 0.0]]))
    matrix = SparseMatrix.from_scipy(source)
    subset = matrix.get_rows([1, 1, 0])

    for backing in (matrix.csr, subset.csr):
        with pytest.raises(ValueError):
            backing.data[0] = 5.0
        with pytest.raises(ValueError):
            backing.indices[0] = 1

    copy = matrix.to_scipy()
    copy.data[0] = 5.0
    assert matrix.value(0, 1) == 2.0
    source.data[0] = 7.0
    assert matrix.value(0, 1) == 2.0


def test_sparse_value_reads_absent_entries_as_zero():
    matrix = SparseMatrix.from_rows([[(3, 2.0), (0, 1.0)], []], n_cols=4)

    assert matrix.value(0, 0) == 1.0
    assert matrix.value(0, 3) == 2.0
    assert matrix.value(0, 2) == 0.0
    assert matrix.value(1, 1) == 0.0
    assert matrix.row_entries(0) == [(0, 1.0), (3, 2.0)]


def test_from_rows_rejects_duplicate_and_out_of_range_columns():
    with pytest.raises(ShapeError):
        SparseMatrix.from_rows([[(1, 1.0), (1, 2.0)]], n_cols=3)
    with pytest.raises(FeatureIndexError):
        SparseMatrix.from_rows([[(3, 1.0)]], n_cols=3)


def test_dense_matrix_is_read_only_and_owns_its_data():
    source = np.ones((2, 2))
    matrix = DenseMatrix(source)
    source[0, 0] = 5.0

    assert matrix.value(0, 0) == 1.0
    with pytest.raises(ValueError):
        matrix.data[0, 0] = 3.0


def test_dense_matrix_requires_two_dimensions():
    with pytest.raises(ShapeError):
        DenseMatrix([1.0, 2.0, 3.0])


def test_as_feature_matrix_dispatches_on_input_kind():
    X = _mixed_array()

    assert isinstance(as_feature_matrix(X), DenseMatrix)
    assert isinstance(as_feature_matrix(sp.csc_matrix(X)), SparseMatrix)
    sparse = SparseMatrix.from_dense(X)
    assert as_feature_matrix(sparse) is sparse
    np.testing.assert_array_equal(sparse.to_dense().toarray(), X)
    np.testing.assert_array_equal(DenseMatrix(X).to_sparse().toarray(), X)


def test_as_label_vector_checks_length():
    y = as_label_vector([0, 1, 1], n_rows=3)
    assert y.dtype == np.float64

    with pytest.raises(ShapeError):
        as_label_vector([0, 1], n_rows=3)
    with pytest.raises(ShapeError):
        as_label_vector([[0, 1]])
