import numpy as np
import pytest

from decision_tree import DecisionTree, DecisionTreeParams
from errors import ConfigurationError, InsufficientDataError
from feature_matrix import SparseMatrix
from one_vs_rest import OneVsRestWrapper
from random_forest import RandomForestParams


def _blobs(seed=0, per_class=30, labels=(0.0, 2.0, 5.0)):
    rng = np.random.default_rng(seed)
    centers = np.array([[0.0, 0.0], [4.0, 0.0], [0.0, 4.0]])
    X = np.vstack([rng.normal(loc=c, scale=0.6, size=(per_class, 2)) for c in centers])
    y = np.repeat(np.asarray(labels, dtype=np.float64), per_class)
    return X, y


def test_predictions_are_confined_to_observed_labels():
    X, y = _blobs()
    model = OneVsRestWrapper(DecisionTree(DecisionTreeParams(max_depth=2))).fit(X, y)

    pred = model.predict(X)

    np.testing.assert_array_equal(model.classes_, [0.0, 2.0, 5.0])
    assert set(np.unique(pred)) <= {0.0, 2.0, 5.0}
    assert len(model.estimators_) == 3
    assert model.decision_function(X).shape == (X.shape[0], 3)


def test_two_class_wrapper_matches_single_binary_estimator():
    rng = np.random.default_rng(3)
    X = rng.normal(size=(80, 3))
    y = (X[:, 0] + rng.normal(scale=0.8, size=80) > 0).astype(np.float64)
    params = DecisionTreeParams(max_depth=3)

    binary = DecisionTree(params).fit(X, y)
    wrapped = OneVsRestWrapper(DecisionTree(params)).fit(X, y)

    np.testing.assert_array_equal(wrapped.predict(X), binary.predict(X))


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_two_class_wrapper_over_forest_agrees_with_forest_vote(seed):
    rng = np.random.default_rng(100 + seed)
    X = rng.normal(size=(200, 4))
    y = (X[:, 0] + 0.5 * X[:, 1] + rng.normal(scale=1.0, size=200) > 0).astype(np.float64)
    params = RandomForestParams(n_trees=5, max_depth=2, seed=seed)

    forest = params.build().fit(X, y)
    wrapped = OneVsRestWrapper(params.build()).fit(X, y)

    votes = forest.predict_votes(X)
    np.testing.assert_allclose(forest.decision_function(X), votes[:, 1] / 5.0)

    # A leaf with equal class shares votes for the lowest label in both
    # binary forests, so those rows cannot be compared.
    tied = np.zeros(X.shape[0], dtype=bool)
    for tree in forest.trees_:
        proba = tree.predict_proba(X)
        if proba.shape[1] == 2:
            tied |= proba[:, 0] == proba[:, 1]
    assert np.any(~tied)

    np.testing.assert_array_equal(wrapped.predict(X)[~tied], forest.predict(X)[~tied])


def test_wraps_random_forest_on_sparse_input():
    X, y = _blobs(seed=5)
    X[np.abs(X) < 0.3] = 0.0
    matrix = SparseMatrix.from_dense(X)

    model = RandomForestParams(n_trees=8, seed=2).one_vs_rest()
    model.fit(matrix, y)

    assert isinstance(model, OneVsRestWrapper)
    assert np.mean(model.predict(matrix) == y) >= 0.9


def test_each_estimator_sees_binary_target():
    X, y = _blobs(seed=1)
    model = DecisionTreeParams().one_vs_rest().fit(X, y)

    for estimator in model.estimators_:
        np.testing.assert_array_equal(estimator.classes_, [0.0, 1.0])
    # The prototype itself stays unfit.
    assert model.estimator.arena_ is None


def test_ties_go_to_lowest_label():
    class Constant:
        def fit(self, X, y):
            return self

        def predict(self, X):
            return np.ones(X.rows())

    X, y = _blobs(seed=2)
    model = OneVsRestWrapper(Constant()).fit(X, y)

    assert np.all(model.predict(X) == 0.0)


def test_single_label_target_is_rejected():
    X, _ = _blobs()
    with pytest.raises(InsufficientDataError):
        OneVsRestWrapper(DecisionTree()).fit(X, np.zeros(X.shape[0]))


def test_requires_fit_predict_estimator_and_fit_before_predict():
    with pytest.raises(ConfigurationError):
        OneVsRestWrapper(object())
    with pytest.raises(ConfigurationError):
        OneVsRestWrapper(DecisionTree()).predict(np.zeros((2, 2)))
