from __future__ import annotations

"""
Racing over resamples with ANOVA-based elimination.

All candidates are scored on a few burn-in resamples. After that, each new
resample is only run for candidates that are not yet statistically worse than
the current best. The comparison uses a two-way additive model
`estimate ~ config + resample` fitted by least squares, with the best config
as the reference level and a one-sided t bound on each difference.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import pandas as pd
from loguru import logger
from scipy import stats
from sklearn.base import clone

from .constants import DEFAULT_METRICS
from .data_prep import Resample
from .metrics import get_metric
from .tuning import (
    TuneResults,
    config_labels,
    evaluate_candidates,
    records_to_frames,
    seed_pipeline,
)


@dataclass
class ControlRace:
    burn_in: int = 3
    num_ties: int = 10
    alpha: float = 0.05
    randomize: bool = True
    save_pred: bool = False
    verbose_elim: bool = False

    def __post_init__(self):
        if self.burn_in < 2:
            raise ValueError(f"burn_in must be at least 2, got {self.burn_in}")
        if not 0 < self.alpha < 1:
            raise ValueError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.num_ties < 1:
            raise ValueError(f"num_ties must be at least 1, got {self.num_ties}")


def anova_filter(frame: pd.DataFrame, direction: str = "minimize", alpha: float = 0.05) -> pd.DataFrame:
    """
    Compare every config against the current best on shared resamples.

    `frame` holds one metric in long format: `.config`, `id`, `estimate`.
    Returns one row per config with its difference from the best (`estimate`),
    `std_err`, the one-sided `lower`/`upper` bounds and whether it `pass`es.
    """
    all_configs = list(pd.unique(frame[".config"]))
    frame = frame.dropna(subset=["estimate"])
    means = frame.groupby(".config", sort=False)["estimate"].mean()
    missing = [c for c in all_configs if c not in means.index]
    failed = pd.DataFrame(
        {
            ".config": missing,
            "estimate": np.nan,
            "std_err": np.nan,
            "lower": np.nan,
            "upper": np.nan,
            "pass": False,
        }
    )
    if means.empty:
        return failed.reset_index(drop=True)

    best = means.idxmin() if direction == "minimize" else means.idxmax()

    others = [c for c in means.index if c != best]
    resample_ids = list(pd.unique(frame["id"]))

    design = [np.ones(len(frame))]
    design += [(frame[".config"] == c).to_numpy(dtype=float) for c in others]
    design += [(frame["id"] == r).to_numpy(dtype=float) for r in resample_ids[1:]]
    X = np.column_stack(design)
    y = frame["estimate"].to_numpy(dtype=float)

    coef, _, rank, _ = np.linalg.lstsq(X, y, rcond=None)
    dof = len(y) - rank

    diffs = pd.Series(0.0, index=means.index)
    std_err = pd.Series(0.0, index=means.index)
    diffs.loc[others] = coef[1 : 1 + len(others)]

    if dof > 0:
        resid = y - X @ coef
        sigma2 = float(resid @ resid) / dof
        cov = sigma2 * np.linalg.pinv(X.T @ X)
        std_err.loc[others] = np.sqrt(np.clip(np.diag(cov)[1 : 1 + len(others)], 0.0, None))
        t_crit = stats.t.ppf(1 - alpha, dof)
    else:
        # no residual information: nothing can be ruled out
        std_err.loc[others] = np.inf
        t_crit = 1.0

    lower = diffs - t_crit * std_err
    upper = diffs + t_crit * std_err
    keep = lower <= 0 if direction == "minimize" else upper >= 0
    keep.loc[best] = True

    compared = pd.DataFrame(
        {
            ".config": means.index,
            "estimate": diffs.to_numpy(),
            "std_err": std_err.to_numpy(),
            "lower": lower.to_numpy(),
            "upper": upper.to_numpy(),
            "pass": keep.to_numpy(),
        }
    )
    if failed.empty:
        return compared.reset_index(drop=True)
    return pd.concat([compared, failed], ignore_index=True)


def _filter_stage(
    metrics: pd.DataFrame, active: Sequence[str], metric_names: Sequence[str], alpha: float
) -> tuple[pd.DataFrame | None, str | None]:
    """
    Run the ANOVA filter on the first metric that leaves any survivor.

    Returns (None, None) when no metric has usable estimates for the active configs.
    """
    for metric in metric_names:
        direction = get_metric(metric).direction
        result = anova_filter(_stage_frame(metrics, active, metric), direction, alpha)
        if result["pass"].any():
            return result, metric
        logger.warning(f"Racing: no usable {metric} estimates; trying the next metric")
    return None, None


def _stage_frame(metrics: pd.DataFrame, active: Sequence[str], metric: str) -> pd.DataFrame:
    subset = metrics[(metrics["metric"] == metric) & metrics[".config"].isin(active)]
    return subset[[".config", "id", "estimate"]]


def tune_race_anova(
    pipeline,
    resamples: Sequence[Resample],
    X: pd.DataFrame,
    y: pd.Series,
    grid: list[dict[str, Any]],
    metric_names: Sequence[str] = DEFAULT_METRICS,
    control: ControlRace | None = None,
    n_jobs: int | None = None,
    random_state: int | None = None,
) -> TuneResults:
    """Race the grid candidates across resamples, dropping clear losers early."""
    control = control or ControlRace()
    if not grid:
        raise ValueError("The candidate grid is empty.")
    if len(resamples) < control.burn_in:
        raise ValueError(
            f"Racing needs at least burn_in={control.burn_in} resamples, got {len(resamples)}"
        )

    for name in metric_names:
        get_metric(name)

    rng = np.random.default_rng(random_state)
    order = rng.permutation(len(resamples)) if control.randomize else np.arange(len(resamples))
    ordered = [resamples[i] for i in order]

    pipeline = seed_pipeline(clone(pipeline), random_state)
    candidates = dict(zip(config_labels(len(grid)), grid))

    records = evaluate_candidates(
        pipeline, candidates, ordered[: control.burn_in], X, y,
        metric_names, control.save_pred, n_jobs,
    )
    active = list(candidates)
    eliminated: dict[str, int] = {}
    tie_rounds = 0

    for stage in range(control.burn_in, len(ordered)):
        if len(active) > 1:
            metrics, _ = records_to_frames(records)
            result, metric = _filter_stage(metrics, active, metric_names, control.alpha)
            if result is None:
                logger.warning(f"Racing: no metric can rank the candidates; keeping all {len(active)}")
                records += evaluate_candidates(
                    pipeline,
                    {c: candidates[c] for c in active},
                    [ordered[stage]],
                    X,
                    y,
                    metric_names,
                    control.save_pred,
                    n_jobs,
                )
                continue

            direction = get_metric(metric).direction
            keep = set(result.loc[result["pass"], ".config"])
            dropped = [c for c in active if c not in keep]
            for config in dropped:
                eliminated[config] = stage
            active = [c for c in active if c in keep]
            if control.verbose_elim:
                logger.info(
                    f"Racing: {len(dropped)} eliminated, {len(active)} remaining "
                    f"after {stage} resamples"
                )

            if len(active) == 2:
                tie_rounds += 1
                if tie_rounds >= control.num_ties:
                    means = _stage_frame(metrics, active, metric).groupby(".config")["estimate"].mean()
                    winner = means.idxmin() if direction == "minimize" else means.idxmax()
                    for config in active:
                        if config != winner:
                            eliminated[config] = stage
                    active = [winner]
                    if control.verbose_elim:
                        logger.info(f"Racing: tie broken in favour of {winner}")
            else:
                tie_rounds = 0

        records += evaluate_candidates(
            pipeline,
            {c: candidates[c] for c in active},
            [ordered[stage]],
            X,
            y,
            metric_names,
            control.save_pred,
            n_jobs,
        )

    metrics, predictions = records_to_frames(records)
    return TuneResults(
        metrics,
        candidates,
        [r.id for r in ordered],
        metric_names,
        method="tune_race_anova",
        predictions=predictions,
        eliminated=eliminated,
    )
