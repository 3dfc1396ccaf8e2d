from __future__ import annotations

"""
Regression metric helpers used by the tuners and the final fit.
"""

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np
import pandas as pd
from sklearn import metrics


def rmse(y_true, y_pred) -> float:
    return float(np.sqrt(metrics.mean_squared_error(y_true, y_pred)))


def mae(y_true, y_pred) -> float:
    return float(metrics.mean_absolute_error(y_true, y_pred))


def rsq(y_true, y_pred) -> float:
    """Squared correlation between observed and predicted values."""
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    if y_true.std() == 0 or y_pred.std() == 0:
        return float("nan")
    return float(np.corrcoef(y_true, y_pred)[0, 1] ** 2)


@dataclass(frozen=True)
class Metric:
    name: str
    fn: Callable[..., float]
    direction: str  # "minimize" or "maximize"


METRICS = {
    "rmse": Metric("rmse", rmse, "minimize"),
    "rsq": Metric("rsq", rsq, "maximize"),
    "mae": Metric("mae", mae, "minimize"),
}


def get_metric(name: str) -> Metric:
    if name not in METRICS:
        raise KeyError(f"Unknown metric: {name}. Choose from {sorted(METRICS)}")
    return METRICS[name]


def is_better(metric: str, a: float, b: float) -> bool:
    """True when `a` beats `b` in the metric's direction."""
    if get_metric(metric).direction == "minimize":
        return a < b
    return a > b


def compute_regression_metrics(
    y_true: np.ndarray | pd.Series,
    y_pred: np.ndarray,
    metric_names: Sequence[str] = ("rmse", "rsq"),
) -> dict[str, float]:
    """Compute each requested metric for one set of predictions."""
    return {name: get_metric(name).fn(y_true, y_pred) for name in metric_names}


def summarize_metrics(frame: pd.DataFrame, by: Sequence[str] = (".config",)) -> pd.DataFrame:
    """
    Collapse per-resample estimates into mean, n and standard error.

    `frame` is long format with at least the `by` columns, `metric` and `estimate`.
    """
    keys = list(by) + ["metric"]
    grouped = frame.groupby(keys, sort=False)["estimate"]
    summary = grouped.agg(mean="mean", n="count", std="std").reset_index()
    summary["std_err"] = summary["std"] / np.sqrt(summary["n"])
    return summary.drop(columns="std")
