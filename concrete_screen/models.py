from __future__ import annotations

"""
Model specifications: an estimator factory plus the space its tuning
parameters are drawn from.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np
from scipy.stats import loguniform, randint, uniform
from sklearn.ensemble import (
    BaggingRegressor,
    GradientBoostingRegressor,
    RandomForestRegressor,
)
from sklearn.linear_model import ElasticNet
from sklearn.model_selection import ParameterGrid, ParameterSampler
from sklearn.neighbors import KNeighborsRegressor
from sklearn.neural_network import MLPRegressor
from sklearn.svm import SVR
from sklearn.tree import DecisionTreeRegressor

from .constants import GRID_SIZE


@dataclass
class ModelSpec:
    """
    A named regressor and its tuning space.

    `param_space` maps estimator parameter names to either a scipy distribution
    (anything with `rvs`) or a list of candidate values. An empty space means
    there is nothing to tune.
    """

    name: str
    factory: Callable[[], Any]
    param_space: dict[str, Any] = field(default_factory=dict)

    @property
    def tunable(self) -> bool:
        return bool(self.param_space)

    def build(self):
        return self.factory()


MODEL_SPECS: dict[str, ModelSpec] = {
    "linear_reg": ModelSpec(
        "linear_reg",
        lambda: ElasticNet(max_iter=10000),
        {"alpha": loguniform(1e-10, 1.0), "l1_ratio": uniform(0.0, 1.0)},
    ),
    "neural_network": ModelSpec(
        "neural_network",
        lambda: MLPRegressor(solver="lbfgs"),
        {
            "hidden_layer_sizes": [(k,) for k in range(1, 11)],
            "alpha": loguniform(1e-10, 1.0),
            "max_iter": randint(10, 1001),
        },
    ),
    "SVM_radial": ModelSpec(
        "SVM_radial",
        lambda: SVR(kernel="rbf"),
        {"C": loguniform(2**-10, 2**5), "gamma": loguniform(1e-10, 1.0)},
    ),
    "SVM_poly": ModelSpec(
        "SVM_poly",
        lambda: SVR(kernel="poly", coef0=1.0),
        {
            "C": loguniform(2**-10, 2**5),
            "degree": randint(1, 4),
            "gamma": loguniform(1e-10, 1e-1),
        },
    ),
    "KNN": ModelSpec(
        "KNN",
        KNeighborsRegressor,
        {
            "n_neighbors": randint(1, 16),
            "weights": ["uniform", "distance"],
            "p": uniform(1.0, 1.0),
        },
    ),
    "CART": ModelSpec(
        "CART",
        DecisionTreeRegressor,
        {"ccp_alpha": loguniform(1e-10, 1e-1), "min_samples_split": randint(2, 41)},
    ),
    "CART_bagged": ModelSpec(
        "CART_bagged",
        lambda: BaggingRegressor(DecisionTreeRegressor(), n_estimators=50),
    ),
    "RF": ModelSpec(
        "RF",
        lambda: RandomForestRegressor(n_estimators=1000),
        {"max_features": randint(1, 9), "min_samples_leaf": randint(2, 41)},
    ),
    "boosting": ModelSpec(
        "boosting",
        GradientBoostingRegressor,
        {
            "n_estimators": randint(1, 2001),
            "max_depth": randint(1, 16),
            "min_samples_split": randint(2, 41),
            "learning_rate": loguniform(1e-10, 1e-1),
            "min_impurity_decrease": loguniform(1e-10, 10**1.5),
            "subsample": uniform(0.1, 0.9),
        },
    ),
}


def get_model_spec(name: str) -> ModelSpec:
    if name not in MODEL_SPECS:
        raise KeyError(f"Unknown model: {name}. Choose from {sorted(MODEL_SPECS)}")
    return MODEL_SPECS[name]


def _as_python(value):
    if isinstance(value, (np.generic, np.ndarray)) and np.ndim(value) == 0:
        return value.item()
    return value


def make_grid(
    param_space: dict[str, Any], size: int = GRID_SIZE, random_state: int | None = None
) -> list[dict[str, Any]]:
    """
    Draw up to `size` distinct candidates from a parameter space.

    Fully discrete spaces no larger than `size` are returned whole. An empty
    space gives a single candidate that keeps the estimator defaults.
    """
    if size < 1:
        raise ValueError(f"Grid size must be positive, got {size}")
    if not param_space:
        return [{}]

    discrete = all(not hasattr(v, "rvs") for v in param_space.values())
    if discrete and len(ParameterGrid(param_space)) <= size:
        candidates = list(ParameterGrid(param_space))
    else:
        candidates = list(
            ParameterSampler(param_space, n_iter=size, random_state=random_state)
        )

    grid, seen = [], set()
    for params in candidates:
        params = {k: _as_python(v) for k, v in sorted(params.items())}
        key = tuple((k, repr(v)) for k, v in params.items())
        if key in seen:
            continue
        seen.add(key)
        grid.append(params)
    return grid
