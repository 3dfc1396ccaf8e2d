from __future__ import annotations

"""
Finalize a tuned workflow: fix its parameters, refit on the full training set,
score the held-out test set and persist the results.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import joblib
import pandas as pd
from loguru import logger
from sklearn.base import clone

from .constants import DEFAULT_METRICS, OUTCOME
from .data_prep import split_xy
from .metrics import compute_regression_metrics
from .tuning import model_params, seed_pipeline


@dataclass
class LastFit:
    metrics: dict[str, float]
    predictions: pd.DataFrame
    pipeline: Any


def finalize_workflow(pipeline, params: dict[str, Any], random_state: int | None = None):
    """Copy of the pipeline with the chosen model parameters set."""
    chosen = {k: v for k, v in params.items() if k != ".config"}
    final = clone(pipeline).set_params(**model_params(chosen))
    return seed_pipeline(final, random_state)


def last_fit(
    pipeline,
    train: pd.DataFrame,
    test: pd.DataFrame,
    outcome: str = OUTCOME,
    metric_names: Sequence[str] = DEFAULT_METRICS,
) -> LastFit:
    """Fit on the training set once and evaluate on the test set."""
    X_train, y_train = split_xy(train, outcome)
    X_test, y_test = split_xy(test, outcome)

    fitted = clone(pipeline).fit(X_train, y_train)
    preds = fitted.predict(X_test)
    scores = compute_regression_metrics(y_test, preds, metric_names)
    logger.info(f"Last fit on {len(train)} rows, tested on {len(test)}: {scores}")

    predictions = pd.DataFrame({".pred": preds, outcome: y_test.to_numpy()}, index=test.index)
    return LastFit(metrics=scores, predictions=predictions, pipeline=fitted)


def save_results(obj, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(obj, path)
    logger.info(f"Saved results to {path}")
    return path


def load_results(path: Path):
    return joblib.load(Path(path))
