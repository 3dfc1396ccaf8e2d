# tests/conftest.py
from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest
from loguru import logger

from concrete_screen.constants import OUTCOME, PREDICTORS
from concrete_screen.data_prep import make_resamples

UCI_HEADERS = [
    "Cement (component 1)(kg in a m^3 mixture)",
    "Blast Furnace Slag (component 2)(kg in a m^3 mixture)",
    "Fly Ash (component 3)(kg in a m^3 mixture)",
    "Water  (component 4)(kg in a m^3 mixture)",
    "Superplasticizer (component 5)(kg in a m^3 mixture)",
    "Coarse Aggregate  (component 6)(kg in a m^3 mixture)",
    "Fine Aggregate (component 7)(kg in a m^3 mixture)",
    "Age (day)",
    "Concrete compressive strength(MPa, megapascals) ",
]


@pytest.fixture(autouse=True)
def disable_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


def make_concrete(n: int = 200, seed: int = 0) -> pd.DataFrame:
    """Concrete-like mixtures with a mostly linear strength response."""
    rng = np.random.default_rng(seed)
    df = pd.DataFrame(
        {
            "cement": rng.uniform(100, 540, n),
            "blast_furnace_slag": rng.uniform(0, 360, n),
            "fly_ash": rng.uniform(0, 200, n),
            "water": rng.uniform(120, 250, n),
            "superplasticizer": rng.uniform(0, 32, n),
            "coarse_aggregate": rng.uniform(800, 1150, n),
            "fine_aggregate": rng.uniform(590, 990, n),
            "age": rng.choice([3, 7, 14, 28, 56, 90, 180, 365], n).astype(float),
        }
    )
    df[OUTCOME] = (
        30
        + 0.1 * df["cement"]
        + 0.07 * df["blast_furnace_slag"]
        + 0.05 * df["fly_ash"]
        - 0.2 * df["water"]
        + 0.3 * df["superplasticizer"]
        + 0.05 * df["age"]
        + rng.normal(0, 2, n)
    )
    return df[PREDICTORS + [OUTCOME]]


@pytest.fixture
def concrete_df() -> pd.DataFrame:
    return make_concrete()


@pytest.fixture
def concrete_csv(tmp_path, concrete_df):
    """The synthetic data written with the long UCI column headers."""
    path = tmp_path / "concrete.csv"
    raw = concrete_df.copy()
    raw.columns = UCI_HEADERS
    raw.to_csv(path, index=False)
    return path


@pytest.fixture
def small_resamples(concrete_df):
    return make_resamples(concrete_df, n_splits=5, n_repeats=2, random_state=7)
