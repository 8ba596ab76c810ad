"""
Tree-based learning over dense and sparse feature matrices.

Provides CART decision trees, bagged random forests with per-split feature
subsampling, and a one-vs-rest wrapper that turns any binary estimator into a
multiclass one. Every model follows the same ``fit(X, y)`` / ``predict(X)``
contract and accepts either a ``DenseMatrix`` or a ``SparseMatrix``.
"""
