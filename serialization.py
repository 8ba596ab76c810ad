"""Structural (de)serialization of fitted models and their hyperparameters.

Models are turned into plain dicts of lists and numbers; trees keep their
arena indices, so the representation is acyclic and stable. ``dumps``/``loads``
render that structure as JSON text, ``save_model``/``load_model`` persist it
with joblib (or as JSON when the path ends in ``.json``).
"""
from __future__ import annotations

import json
from pathlib import Path

import joblib

from decision_tree import DecisionTree, DecisionTreeParams
from errors import ConfigurationError
from one_vs_rest import OneVsRestWrapper
from random_forest import RandomForest, RandomForestParams


FORMAT_VERSION = 1

_REGISTRY = {
    cls.__name__: cls
    for cls in (
        DecisionTree,
        DecisionTreeParams,
        RandomForest,
        RandomForestParams,
        OneVsRestWrapper,
    )
}


def model_to_dict(model) -> dict:
    name = type(model).__name__
    if name not in _REGISTRY:
        raise ConfigurationError(f"cannot serialize objects of type {name}")
    return {"type": name, "format_version": FORMAT_VERSION, "state": model.to_dict()}


def model_from_dict(payload: dict):
    if payload.get("format_version") != FORMAT_VERSION:
        raise ConfigurationError(
            f"unsupported format version {payload.get('format_version')!r}"
        )
    cls = _REGISTRY.get(payload.get("type"))
    if cls is None:
        raise ConfigurationError(f"unknown model type {payload.get('type')!r}")
    return cls.from_dict(payload["state"])


def dumps(model) -> str:
    return json.dumps(model_to_dict(model))


def loads(text: str):
    return model_from_dict(json.loads(text))


def save_model(model, path: str | Path) -> Path:
    path = Path(path)
    payload = model_to_dict(model)
    if path.suffix == ".json":
        path.write_text(json.dumps(payload))
    else:
        joblib.dump(payload, path)
    return path


def load_model(path: str | Path):
    path = Path(path)
    if path.suffix == ".json":
        payload = json.loads(path.read_text())
    else:
        payload = joblib.load(path)
    return model_from_dict(payload)
