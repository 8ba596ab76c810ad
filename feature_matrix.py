from __future__ import annotations

from typing import Protocol, Sequence, Union

import numpy as np
import scipy.sparse as sp

from errors import FeatureIndexError, ShapeError


class FeatureView(Protocol):
    """Row-access capabilities shared by the dense and sparse matrices.

    Absent sparse entries read as 0.0 everywhere (``value``, ``column_values``),
    so split search and prediction see identical numbers for identical logical
    content regardless of the backend.
    """

    def rows(self) -> int: ...

    def cols(self) -> int: ...

    def get_rows(self, indices: Sequence[int] | np.ndarray) -> FeatureView: ...

    def row_entries(self, i: int) -> list[tuple[int, float]]: ...

    def column_values(self, rows: np.ndarray | None, feature: int) -> np.ndarray: ...


def _check_row_indices(indices: Sequence[int] | np.ndarray, n_rows: int) -> np.ndarray:
    idx = np.asarray(indices, dtype=np.int64)
    if idx.ndim != 1:
        raise ShapeError("row indices must be a 1D sequence")
    if idx.size and (int(idx.min()) < 0 or int(idx.max()) >= n_rows):
        bad = int(idx.min()) if int(idx.min()) < 0 else int(idx.max())
        raise FeatureIndexError(f"row index {bad} out of range for matrix with {n_rows} rows")
    return idx


def _check_row(i: int, n_rows: int) -> int:
    i = int(i)
    if i < 0 or i >= n_rows:
        raise FeatureIndexError(f"row index {i} out of range for matrix with {n_rows} rows")
    return i


def _check_col(j: int, n_cols: int) -> int:
    j = int(j)
    if j < 0 or j >= n_cols:
        raise FeatureIndexError(f"column index {j} out of range for matrix with {n_cols} columns")
    return j


class DenseMatrix:
    """Row-major float64 matrix. The backing array is read-only."""

    kind = "dense"

    def __init__(self, data) -> None:
        array = np.array(data, dtype=np.float64, order="C", copy=True)
        if array.ndim != 2:
            raise ShapeError(f"dense matrix data must be 2D, got {array.ndim}D")
        array.flags.writeable = False
        self._data = array

    @classmethod
    def _wrap(cls, array: np.ndarray) -> DenseMatrix:
        # Takes ownership of a freshly allocated array without copying again.
        matrix = cls.__new__(cls)
        array = np.ascontiguousarray(array, dtype=np.float64)
        array.flags.writeable = False
        matrix._data = array
        return matrix

    @classmethod
    def zeros(cls, n_rows: int, n_cols: int) -> DenseMatrix:
        return cls._wrap(np.zeros((n_rows, n_cols), dtype=np.float64))

    @property
    def shape(self) -> tuple[int, int]:
        return self._data.shape

    @property
    def data(self) -> np.ndarray:
        return self._data

    def rows(self) -> int:
        return int(self._data.shape[0])

    def cols(self) -> int:
        return int(self._data.shape[1])

    def get_rows(self, indices: Sequence[int] | np.ndarray) -> DenseMatrix:
        idx = _check_row_indices(indices, self.rows())
        return DenseMatrix._wrap(self._data[idx])

    def row_entries(self, i: int) -> list[tuple[int, float]]:
        i = _check_row(i, self.rows())
        return list(enumerate(self._data[i].tolist()))

    def value(self, i: int, j: int) -> float:
        i = _check_row(i, self.rows())
        j = _check_col(j, self.cols())
        return float(self._data[i, j])

    def column_values(self, rows: np.ndarray | None, feature: int) -> np.ndarray:
        feature = _check_col(feature, self.cols())
        if rows is None:
            return self._data[:, feature].copy()
        return self._data[rows, feature]

    def to_dense(self) -> DenseMatrix:
        return self

    def to_sparse(self) -> SparseMatrix:
        return SparseMatrix.from_dense(self._data)

    def toarray(self) -> np.ndarray:
        return self._data.copy()

    def __repr__(self) -> str:
        return f"DenseMatrix(rows={self.rows()}, cols={self.cols()})"


def _freeze(csr: sp.csr_matrix) -> sp.csr_matrix:
    for array in (csr.data, csr.indices, csr.indptr):
        array.flags.writeable = False
    return csr


class SparseMatrix:
    """Compressed sparse row matrix with sorted, unique column indices per row.

    The backing arrays are read-only; ``to_scipy`` hands out a writable copy.
    """

    kind = "sparse"

    def __init__(self, matrix) -> None:
        csr = sp.csr_matrix(matrix, dtype=np.float64, copy=True)
        csr.sum_duplicates()
        csr.eliminate_zeros()
        csr.sort_indices()
        self._csr = _freeze(csr)
        self._csc: sp.csc_matrix | None = None

    @classmethod
    def _wrap(cls, csr: sp.csr_matrix) -> SparseMatrix:
        matrix = cls.__new__(cls)
        matrix._csr = _freeze(csr)
        matrix._csc = None
        return matrix

    @classmethod
    def from_scipy(cls, matrix) -> SparseMatrix:
        return cls(matrix)

    @classmethod
    def from_dense(cls, array) -> SparseMatrix:
        array = np.asarray(array, dtype=np.float64)
        if array.ndim != 2:
            raise ShapeError(f"dense matrix data must be 2D, got {array.ndim}D")
        return cls(sp.csr_matrix(array))

    @classmethod
    def from_rows(
        cls,
        rows: Sequence[Sequence[tuple[int, float]]],
        n_cols: int,
    ) -> SparseMatrix:
        """Build from per-row ``(column, value)`` lists.

        Entries within a row may come in any order but each column may appear
        at most once.
        """
        indptr = [0]
        indices: list[int] = []
        data: list[float] = []
        for row_idx, entries in enumerate(rows):
            ordered = sorted((int(col), float(val)) for col, val in entries)
            previous = -1
            for col, val in ordered:
                _check_col(col, n_cols)
                if col == previous:
                    raise ShapeError(f"duplicate column {col} in row {row_idx}")
                previous = col
                indices.append(col)
                data.append(val)
            indptr.append(len(indices))

        csr = sp.csr_matrix(
            (
                np.asarray(data, dtype=np.float64),
                np.asarray(indices, dtype=np.int32),
                np.asarray(indptr, dtype=np.int64),
            ),
            shape=(len(rows), n_cols),
        )
        return cls(csr)

    @property
    def shape(self) -> tuple[int, int]:
        return self._csr.shape

    @property
    def nnz(self) -> int:
        return int(self._csr.nnz)

    @property
    def csr(self) -> sp.csr_matrix:
        return self._csr

    def rows(self) -> int:
        return int(self._csr.shape[0])

    def cols(self) -> int:
        return int(self._csr.shape[1])

    def get_rows(self, indices: Sequence[int] | np.ndarray) -> SparseMatrix:
        idx = _check_row_indices(indices, self.rows())
        indptr = self._csr.indptr
        starts = indptr[idx]
        lengths = indptr[idx + 1] - starts

        new_indptr = np.zeros(idx.size + 1, dtype=np.int64)
        np.cumsum(lengths, out=new_indptr[1:])
        total = int(new_indptr[-1])

        # Position k of the output maps to starts[r] + (k - new_indptr[r]) for its row r.
        take = np.repeat(starts - new_indptr[:-1], lengths) + np.arange(total, dtype=np.int64)
        csr = sp.csr_matrix(
            (self._csr.data[take], self._csr.indices[take], new_indptr),
            shape=(idx.size, self.cols()),
        )
        csr.has_sorted_indices = True
        return SparseMatrix._wrap(csr)

    def _row_slice(self, i: int) -> tuple[np.ndarray, np.ndarray]:
        start, end = self._csr.indptr[i], self._csr.indptr[i + 1]
        return self._csr.indices[start:end], self._csr.data[start:end]

    def row_entries(self, i: int) -> list[tuple[int, float]]:
        i = _check_row(i, self.rows())
        cols, vals = self._row_slice(i)
        return list(zip(cols.tolist(), vals.tolist()))

    def value(self, i: int, j: int) -> float:
        i = _check_row(i, self.rows())
        j = _check_col(j, self.cols())
        cols, vals = self._row_slice(i)
        pos = int(np.searchsorted(cols, j))
        if pos < cols.size and cols[pos] == j:
            return float(vals[pos])
        return 0.0

    def _column_major(self) -> sp.csc_matrix:
        if self._csc is None:
            self._csc = self._csr.tocsc()
            self._csc.sort_indices()
        return self._csc

    def column_values(self, rows: np.ndarray | None, feature: int) -> np.ndarray:
        feature = _check_col(feature, self.cols())
        csc = self._column_major()
        start, end = csc.indptr[feature], csc.indptr[feature + 1]
        stored_rows = csc.indices[start:end]
        stored_values = csc.data[start:end]
        if rows is None:
            column = np.zeros(self.rows(), dtype=np.float64)
            column[stored_rows] = stored_values
            return column

        # Only rows with a stored entry are gathered; the rest read as 0.0.
        rows = np.asarray(rows, dtype=np.int64)
        values = np.zeros(rows.shape[0], dtype=np.float64)
        if stored_rows.size:
            pos = np.minimum(np.searchsorted(stored_rows, rows), stored_rows.size - 1)
            hit = stored_rows[pos] == rows
            values[hit] = stored_values[pos[hit]]
        return values

    def to_dense(self) -> DenseMatrix:
        return DenseMatrix._wrap(self._csr.toarray())

    def to_sparse(self) -> SparseMatrix:
        return self

    def toarray(self) -> np.ndarray:
        return self._csr.toarray()

    def to_scipy(self) -> sp.csr_matrix:
        return self._csr.copy()

    def __repr__(self) -> str:
        return f"SparseMatrix(rows={self.rows()}, cols={self.cols()}, nnz={self.nnz})"


FeatureMatrix = Union[DenseMatrix, SparseMatrix]


def as_feature_matrix(X) -> FeatureMatrix:
    if isinstance(X, (DenseMatrix, SparseMatrix)):
        return X
    if sp.issparse(X):
        return SparseMatrix.from_scipy(X)
    return DenseMatrix(X)


def as_label_vector(y, n_rows: int | None = None) -> np.ndarray:
    labels = np.array(y, dtype=np.float64, copy=True)
    if labels.ndim != 1:
        raise ShapeError(f"labels must be a 1D vector, got {labels.ndim}D")
    if n_rows is not None and labels.shape[0] != n_rows:
        raise ShapeError(
            f"label vector has {labels.shape[0]} entries but the matrix has {n_rows} rows"
        )
    return labels
