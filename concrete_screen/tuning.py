from __future__ import annotations

"""
Resample-based evaluation of scikit-learn pipelines: grid search over a set of
candidates and plain resampled fits, collected into a TuneResults object.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import pandas as pd
from joblib import Parallel, delayed
from loguru import logger
from sklearn.base import clone

from .constants import DEFAULT_METRICS
from .data_prep import Resample
from .metrics import compute_regression_metrics, get_metric, summarize_metrics


@dataclass
class ControlGrid:
    save_pred: bool = False
    verbose: bool = False


def config_labels(n_candidates: int, preprocessor: int = 1) -> list[str]:
    """Labels like Preprocessor1_Model01, padded to the candidate count."""
    width = len(str(n_candidates))
    return [f"Preprocessor{preprocessor}_Model{i:0{width}d}" for i in range(1, n_candidates + 1)]


def model_params(params: dict[str, Any]) -> dict[str, Any]:
    """Address candidate parameters at the pipeline's model step."""
    return {f"model__{k}": v for k, v in params.items()}


def seed_pipeline(pipeline, random_state: int | None):
    """Fix the model's random_state when it has one and none is set."""
    if random_state is None:
        return pipeline
    params = pipeline.get_params()
    if "model__random_state" in params and params["model__random_state"] is None:
        pipeline.set_params(model__random_state=random_state)
    return pipeline


def fit_and_score(
    pipeline,
    params: dict[str, Any],
    X: pd.DataFrame,
    y: pd.Series,
    resample: Resample,
    metric_names: Sequence[str] = DEFAULT_METRICS,
    save_pred: bool = False,
    config: str = "",
) -> dict[str, Any]:
    """Fit one candidate on a resample's analysis rows and score the assessment rows."""
    model = clone(pipeline).set_params(**model_params(params))
    model.fit(X.iloc[resample.train_idx], y.iloc[resample.train_idx])

    y_true = y.iloc[resample.test_idx]
    y_pred = model.predict(X.iloc[resample.test_idx])
    scores = compute_regression_metrics(y_true, y_pred, metric_names)

    predictions = None
    if save_pred:
        predictions = pd.DataFrame(
            {
                "id": resample.id,
                ".config": config,
                ".row": resample.test_idx,
                ".pred": y_pred,
                y.name or "y": y_true.to_numpy(),
            }
        )
    return {".config": config, "id": resample.id, "scores": scores, "predictions": predictions}


def evaluate_candidates(
    pipeline,
    candidates: dict[str, dict[str, Any]],
    resamples: Sequence[Resample],
    X: pd.DataFrame,
    y: pd.Series,
    metric_names: Sequence[str],
    save_pred: bool = False,
    n_jobs: int | None = None,
) -> list[dict[str, Any]]:
    """Run every candidate on every resample, parallel over both."""
    return Parallel(n_jobs=n_jobs)(
        delayed(fit_and_score)(pipeline, params, X, y, resample, metric_names, save_pred, config)
        for resample in resamples
        for config, params in candidates.items()
    )


def records_to_frames(records: list[dict[str, Any]]) -> tuple[pd.DataFrame, pd.DataFrame | None]:
    rows = [
        {".config": r[".config"], "id": r["id"], "metric": name, "estimate": value}
        for r in records
        for name, value in r["scores"].items()
    ]
    metrics = pd.DataFrame(rows, columns=[".config", "id", "metric", "estimate"])
    preds = [r["predictions"] for r in records if r["predictions"] is not None]
    predictions = pd.concat(preds, ignore_index=True) if preds else None
    return metrics, predictions


class TuneResults:
    """
    Per-resample performance of a set of candidates.

    `metrics` is long format (.config, id, metric, estimate); `params` maps each
    .config label to its parameter dict.
    """

    def __init__(
        self,
        metrics: pd.DataFrame,
        params: dict[str, dict[str, Any]],
        resample_ids: Sequence[str],
        metric_names: Sequence[str],
        method: str,
        predictions: pd.DataFrame | None = None,
        eliminated: dict[str, int] | None = None,
    ):
        self.metrics = metrics
        self.params = params
        self.resample_ids = list(resample_ids)
        self.metric_names = list(metric_names)
        self.method = method
        self.predictions = predictions
        self.eliminated = eliminated or {}

    def __repr__(self):
        return (
            f"TuneResults(method={self.method!r}, configs={len(self.params)}, "
            f"resamples={self.n_resamples})"
        )

    @property
    def configs(self) -> list[str]:
        return list(self.params)

    @property
    def n_resamples(self) -> int:
        return len(self.resample_ids)

    def completed_configs(self) -> list[str]:
        """Configs evaluated on every resample."""
        seen = self.metrics.groupby(".config", sort=False)["id"].nunique()
        return [c for c in self.params if seen.get(c, 0) == self.n_resamples]

    def _param_frame(self) -> pd.DataFrame:
        return pd.DataFrame([{".config": c, **p} for c, p in self.params.items()])

    def collect_metrics(self, summarize: bool = True, all_configs: bool = False) -> pd.DataFrame:
        frame = self.metrics
        if not all_configs:
            frame = frame[frame[".config"].isin(self.completed_configs())]
        if summarize:
            frame = summarize_metrics(frame)
        out = self._param_frame().merge(frame, on=".config", how="inner")
        # keep .config as the last column
        return out[[c for c in out.columns if c != ".config"] + [".config"]]

    def show_best(self, metric: str = "rmse", n: int = 5) -> pd.DataFrame:
        if metric not in self.metric_names:
            raise ValueError(f"Metric {metric!r} was not computed; have {self.metric_names}")
        summary = self.collect_metrics()
        summary = summary[summary["metric"] == metric]
        ascending = get_metric(metric).direction == "minimize"
        return summary.sort_values("mean", ascending=ascending).head(n).reset_index(drop=True)

    def select_best(self, metric: str = "rmse") -> dict[str, Any]:
        best = self.show_best(metric, n=1)
        if best.empty:
            raise RuntimeError("No candidate finished every resample.")
        config = best.at[0, ".config"]
        return {**self.params[config], ".config": config}

    def collect_predictions(self) -> pd.DataFrame:
        if self.predictions is None:
            raise RuntimeError("Predictions were not saved; rerun with save_pred=True.")
        return self.predictions


def tune_grid(
    pipeline,
    resamples: Sequence[Resample],
    X: pd.DataFrame,
    y: pd.Series,
    grid: list[dict[str, Any]],
    metric_names: Sequence[str] = DEFAULT_METRICS,
    control: ControlGrid | None = None,
    n_jobs: int | None = None,
    random_state: int | None = None,
) -> TuneResults:
    """Evaluate every grid candidate on every resample."""
    control = control or ControlGrid()
    if not grid:
        raise ValueError("The candidate grid is empty.")
    if not resamples:
        raise ValueError("No resamples given.")

    pipeline = seed_pipeline(clone(pipeline), random_state)
    candidates = dict(zip(config_labels(len(grid)), grid))
    if control.verbose:
        logger.info(f"Grid search: {len(candidates)} candidates x {len(resamples)} resamples")

    records = evaluate_candidates(
        pipeline, candidates, resamples, X, y, metric_names, control.save_pred, n_jobs
    )
    metrics, predictions = records_to_frames(records)
    return TuneResults(
        metrics,
        candidates,
        [r.id for r in resamples],
        metric_names,
        method="tune_grid",
        predictions=predictions,
    )


def fit_resamples(
    pipeline,
    resamples: Sequence[Resample],
    X: pd.DataFrame,
    y: pd.Series,
    metric_names: Sequence[str] = DEFAULT_METRICS,
    control: ControlGrid | None = None,
    n_jobs: int | None = None,
    random_state: int | None = None,
) -> TuneResults:
    """Resampled performance of the pipeline as configured."""
    results = tune_grid(
        pipeline, resamples, X, y, [{}], metric_names, control, n_jobs, random_state
    )
    results.method = "fit_resamples"
    return results
