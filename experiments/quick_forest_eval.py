import argparse
import logging
import time
import sys
from pathlib import Path

import numpy as np
import pandas as pd

# Allow running as: python experiments/quick_forest_eval.py
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from decision_tree import DecisionTreeParams
from feature_matrix import DenseMatrix, SparseMatrix
from random_forest import RandomForestParams


def _holdout_indices(y, test_size, random_state, stratify=False):
    """Train and test row indices; with ``stratify`` each label is held out separately."""
    rng = np.random.default_rng(random_state)
    groups = [np.flatnonzero(y == c) for c in np.unique(y)] if stratify else [np.arange(y.size)]

    held_out = np.zeros(y.size, dtype=bool)
    for group in groups:
        n_test = max(1, int(round(group.size * test_size)))
        held_out[rng.permutation(group)[:n_test]] = True
    return rng.permutation(np.flatnonzero(~held_out)), rng.permutation(np.flatnonzero(held_out))


def _rmse(y_true, y_pred):
    return float(np.sqrt(np.mean((y_true - y_pred) ** 2)))


def _sparsify(X, rng, density):
    mask = rng.uniform(size=X.shape) < density
    return np.where(mask, X, 0.0)


def load_dataset(name: str, random_state: int, n_samples: int):
    rng = np.random.default_rng(random_state)
    key = name.lower()
    n_features = 20

    if key in {"dense_clf", "sparse_clf"}:
        X = rng.normal(size=(n_samples, n_features))
        if key == "sparse_clf":
            X = _sparsify(X, rng, density=0.2)
        w = rng.normal(size=n_features)
        scores = X @ w
        # Three classes from score terciles.
        y = np.digitize(scores, np.quantile(scores, [1.0 / 3.0, 2.0 / 3.0])).astype(np.float64)
        task = "classification"
    elif key in {"dense_reg", "sparse_reg"}:
        X = rng.normal(size=(n_samples, n_features))
        if key == "sparse_reg":
            X = _sparsify(X, rng, density=0.2)
        w = rng.normal(size=n_features)
        y = X @ w + rng.normal(scale=0.5, size=n_samples)
        task = "regression"
    else:
        raise ValueError(
            f"Unknown dataset '{name}'. Choose from: dense_clf, sparse_clf, dense_reg, sparse_reg"
        )

    matrix = SparseMatrix.from_dense(X) if key.startswith("sparse") else DenseMatrix(X)
    return matrix, y.astype(np.float64), task


def load_csv_dataset(path: str, target: str, task: str):
    df = pd.read_csv(path)
    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found in {path}")

    features = df.drop(columns=[target]).apply(pd.to_numeric, errors="coerce").fillna(0.0)
    if task == "classification":
        codes, _ = pd.factorize(df[target], sort=True)
        y = codes.astype(np.float64)
    else:
        y = pd.to_numeric(df[target], errors="coerce").to_numpy(dtype=np.float64)
    return DenseMatrix(features.to_numpy(dtype=np.float64)), y


def evaluate_one(name, model, X_train, X_test, y_train, y_test, task):
    t0 = time.perf_counter()
    model.fit(X_train, y_train)
    fit_time = time.perf_counter() - t0

    t0 = time.perf_counter()
    pred = model.predict(X_test)
    predict_time = time.perf_counter() - t0

    row = {"model": name, "fit_time_sec": fit_time, "predict_time_sec": predict_time}
    if task == "classification":
        row["accuracy"] = float(np.mean(pred == y_test))
    else:
        row["rmse"] = _rmse(y_test, pred)
    return row


def build_models(task, args):
    criterion = "gini" if task == "classification" else "variance"
    tree_params = DecisionTreeParams(
        criterion=criterion,
        min_samples_split=args.min_samples_split,
        max_depth=args.max_depth,
        seed=args.random_state,
    )
    forest_params = RandomForestParams(
        n_trees=args.n_trees,
        criterion=criterion,
        min_samples_split=args.min_samples_split,
        max_depth=args.max_depth,
        seed=args.random_state,
        n_jobs=args.n_jobs,
        oob_score=True,
    )

    models = [("decision_tree", tree_params.build()), ("random_forest", forest_params.build())]
    if task == "classification":
        models.append(("one_vs_rest_forest", forest_params.one_vs_rest()))
    return models


def main():
    parser = argparse.ArgumentParser(description="Quick decision tree / random forest checks")
    parser.add_argument(
        "--datasets",
        type=str,
        default="dense_clf,sparse_clf,dense_reg",
        help="Comma-separated: dense_clf, sparse_clf, dense_reg, sparse_reg",
    )
    parser.add_argument("--csv", type=str, default=None, help="Evaluate on a CSV file instead")
    parser.add_argument("--target", type=str, default="target", help="Target column for --csv")
    parser.add_argument("--task", type=str, default="classification", choices=["classification", "regression"])
    parser.add_argument("--n-samples", type=int, default=2000)
    parser.add_argument("--n-trees", type=int, default=20)
    parser.add_argument("--max-depth", type=int, default=None)
    parser.add_argument("--min-samples-split", type=int, default=2)
    parser.add_argument("--n-jobs", type=int, default=-1)
    parser.add_argument("--random-state", type=int, default=42)
    parser.add_argument("--output", type=str, default=None, help="Optional CSV path for the summary")
    parser.add_argument("--verbose", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    if args.csv is not None:
        X, y = load_csv_dataset(args.csv, args.target, args.task)
        runs = [(Path(args.csv).stem, X, y, args.task)]
    else:
        datasets = [d.strip() for d in args.datasets.split(",") if d.strip()]
        if not datasets:
            raise ValueError("No datasets provided")
        runs = []
        for ds_name in datasets:
            X, y, task = load_dataset(ds_name, args.random_state, args.n_samples)
            runs.append((ds_name, X, y, task))

    rows = []
    for ds_name, X, y, task in runs:
        print(f"Dataset={ds_name} task={task} n={X.rows()} d={X.cols()} kind={X.kind}")
        train_idx, test_idx = _holdout_indices(
            y, test_size=0.2, random_state=args.random_state, stratify=(task == "classification")
        )
        X_train, X_test = X.get_rows(train_idx), X.get_rows(test_idx)
        y_train, y_test = y[train_idx], y[test_idx]
        for model_name, model in build_models(task, args):
            row = evaluate_one(model_name, model, X_train, X_test, y_train, y_test, task)
            row["dataset"] = ds_name
            if getattr(model, "oob_score_", None) is not None:
                row["oob_score"] = model.oob_score_
            rows.append(row)

    summary = pd.DataFrame(rows).set_index(["dataset", "model"])
    print()
    print(summary.to_string(float_format=lambda v: f"{v:.4f}"))

    if args.output:
        summary.to_csv(args.output)
        print(f"\nWrote {args.output}")


if __name__ == "__main__":
    main()
