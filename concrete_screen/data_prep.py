from __future__ import annotations

"""
Data preparation for the concrete screening runs: loading, holdout split and
repeated V-fold resamples.
"""

import re
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
from loguru import logger
from sklearn.model_selection import (
    RepeatedKFold,
    RepeatedStratifiedKFold,
    train_test_split,
)

from .constants import (
    N_FOLDS,
    N_REPEATS,
    OUTCOME,
    PREDICTORS,
    RESAMPLE_SEED,
    SPLIT_SEED,
    STRATA_BREAKS,
    TEST_SIZE,
    UCI_COLUMN_PREFIXES,
)


@dataclass(frozen=True)
class Resample:
    """One analysis/assessment split, stored as positional row indices."""

    id: str
    train_idx: np.ndarray
    test_idx: np.ndarray


def _clean_name(name: str) -> str:
    """Lightweight normalizer for column names."""
    cleaned = re.sub(r"[^0-9a-z]+", "_", name.strip().lower())
    return cleaned.strip("_")


def _standard_name(name: str) -> str:
    cleaned = _clean_name(name)
    for prefix, target in UCI_COLUMN_PREFIXES.items():
        if cleaned == prefix or cleaned.startswith(prefix + "_"):
            return target
    return cleaned


def load_concrete(csv_path: Path, average_replicates: bool = True) -> pd.DataFrame:
    """
    Read the concrete mixture data and return predictors plus outcome.

    Replicated mixtures (identical predictor values) are collapsed into a single
    row holding the mean compressive strength.
    """
    df = pd.read_csv(csv_path)
    df.columns = [_standard_name(c) for c in df.columns]

    missing = [c for c in PREDICTORS + [OUTCOME] if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns in {csv_path}: {missing}")

    df = df[PREDICTORS + [OUTCOME]].astype(float)

    if average_replicates:
        n_before = len(df)
        df = df.groupby(PREDICTORS, as_index=False, sort=False)[OUTCOME].mean()
        logger.debug(f"Averaged replicated mixtures: {n_before} -> {len(df)} rows")

    return df.reset_index(drop=True)


def split_xy(data: pd.DataFrame, outcome: str = OUTCOME) -> tuple[pd.DataFrame, pd.Series]:
    """Separate predictors from the outcome column."""
    if outcome not in data.columns:
        raise ValueError(f"Outcome column not found: {outcome}")
    return data.drop(columns=[outcome]), data[outcome]


def make_strata(
    values: pd.Series, breaks: int = STRATA_BREAKS, depth: int = 20, pool: float = 0.1
) -> np.ndarray:
    """
    Bin a numeric column into quantile strata.

    Fewer bins are used when the data are too small to give each bin at least
    `depth` rows; bins with less than `pool` of the rows are merged into their
    neighbour. Returns all zeros when stratification is not possible.
    """
    values = pd.Series(values).reset_index(drop=True)
    n = len(values)
    breaks = min(breaks, n // depth)
    if breaks < 2:
        logger.warning("Too little data to stratify; using unstratified sampling.")
        return np.zeros(n, dtype=int)

    bins = pd.qcut(values, q=breaks, labels=False, duplicates="drop").to_numpy()
    bins = bins.astype(int)

    while True:
        labels, counts = np.unique(bins, return_counts=True)
        if len(labels) < 2:
            break
        small = np.flatnonzero(counts / n < pool)
        if not small.size:
            break
        i = small[0]
        neighbour = labels[i + 1] if i + 1 < len(labels) else labels[i - 1]
        bins[bins == labels[i]] = neighbour

    # relabel to 0..k-1
    _, bins = np.unique(bins, return_inverse=True)
    return bins


def make_initial_split(
    data: pd.DataFrame,
    test_size: float = TEST_SIZE,
    strata: str | None = OUTCOME,
    breaks: int = STRATA_BREAKS,
    random_state: int | None = SPLIT_SEED,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Stratified holdout split into training and test frames."""
    if not 0 < test_size < 1:
        raise ValueError(f"test_size must be in (0, 1), got {test_size}")

    stratify = make_strata(data[strata], breaks=breaks) if strata else None
    if stratify is not None and len(np.unique(stratify)) < 2:
        stratify = None

    train, test = train_test_split(
        data, test_size=test_size, random_state=random_state, stratify=stratify
    )
    return train.reset_index(drop=True), test.reset_index(drop=True)


def _resample_id(repeat: int, fold: int, n_splits: int, n_repeats: int) -> str:
    fold_id = f"Fold{fold:0{len(str(n_splits))}d}"
    if n_repeats == 1:
        return fold_id
    return f"Repeat{repeat:0{len(str(n_repeats))}d}_{fold_id}"


def make_resamples(
    data: pd.DataFrame,
    n_splits: int = N_FOLDS,
    n_repeats: int = N_REPEATS,
    strata: str | None = OUTCOME,
    breaks: int = STRATA_BREAKS,
    random_state: int | None = RESAMPLE_SEED,
) -> list[Resample]:
    """Repeated (optionally stratified) V-fold cross-validation splits."""
    if n_splits < 2:
        raise ValueError(f"n_splits must be at least 2, got {n_splits}")
    if n_repeats < 1:
        raise ValueError(f"n_repeats must be at least 1, got {n_repeats}")

    stratify = make_strata(data[strata], breaks=breaks) if strata else None
    if stratify is not None and len(np.unique(stratify)) > 1:
        splitter = RepeatedStratifiedKFold(
            n_splits=n_splits, n_repeats=n_repeats, random_state=random_state
        )
        splits = splitter.split(np.zeros(len(data)), stratify)
    else:
        splitter = RepeatedKFold(
            n_splits=n_splits, n_repeats=n_repeats, random_state=random_state
        )
        splits = splitter.split(np.zeros(len(data)))

    resamples = []
    for i, (train_idx, test_idx) in enumerate(splits):
        repeat, fold = divmod(i, n_splits)
        resamples.append(
            Resample(
                id=_resample_id(repeat + 1, fold + 1, n_splits, n_repeats),
                train_idx=train_idx,
                test_idx=test_idx,
            )
        )
    return resamples
