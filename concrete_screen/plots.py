from __future__ import annotations

"""
Plots for comparing screened workflows and checking the final model.
"""

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .constants import OUTCOME
from .tuning import TuneResults


def plot_workflow_ranks(rank_table: pd.DataFrame, metric: str, path: Path) -> Path:
    """Mean metric per ranked candidate with approximate 95% intervals, coloured by model."""
    data = rank_table[rank_table["metric"] == metric]
    if data.empty:
        raise ValueError(f"No rows for metric {metric!r} in the rank table.")

    plt.figure(figsize=(9, 6))
    for model, group in data.groupby("model", sort=False):
        plt.errorbar(
            group["rank"],
            group["mean"],
            yerr=1.96 * group["std_err"],
            fmt="o",
            capsize=3,
            label=model,
        )
    plt.xlabel("Workflow Rank")
    plt.ylabel(metric)
    plt.title(f"Resampled {metric} by workflow")
    plt.legend(loc="best", fontsize="small")
    plt.grid(True, linestyle="--", alpha=0.5)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()
    return Path(path)


def plot_race_progress(results: TuneResults, path: Path) -> Path:
    """Number of candidates still in the race at each resample stage."""
    seen = results.metrics.groupby(".config")["id"].nunique()
    stages = np.arange(1, results.n_resamples + 1)
    remaining = [int((seen >= s).sum()) for s in stages]

    plt.figure(figsize=(8, 5))
    plt.step(stages, remaining, where="post")
    plt.xlabel("Analysis Stage (resamples)")
    plt.ylabel("Candidates remaining")
    plt.title("Racing progress")
    plt.grid(True, linestyle="--", alpha=0.5)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()
    return Path(path)


def plot_predicted_vs_observed(predictions: pd.DataFrame, path: Path, outcome: str = OUTCOME) -> Path:
    observed = predictions[outcome]
    predicted = predictions[".pred"]
    lo = min(observed.min(), predicted.min())
    hi = max(observed.max(), predicted.max())

    plt.figure(figsize=(6, 6))
    plt.scatter(observed, predicted, alpha=0.5)
    plt.plot([lo, hi], [lo, hi], color="grey", linestyle="--")
    plt.xlabel("Observed")
    plt.ylabel("Predicted")
    plt.title("Test set predictions")
    plt.axis("equal")
    plt.tight_layout()
    plt.savefig(path)
    plt.close()
    return Path(path)
