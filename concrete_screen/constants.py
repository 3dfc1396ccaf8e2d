from __future__ import annotations

"""
Column names and default settings for the concrete screening runs.
"""

OUTCOME = "compressive_strength"

PREDICTORS = [
    "cement",
    "blast_furnace_slag",
    "fly_ash",
    "water",
    "superplasticizer",
    "coarse_aggregate",
    "fine_aggregate",
    "age",
]

# Prefixes of the long UCI headers, e.g. "Cement (component 1)(kg in a m^3 mixture)".
UCI_COLUMN_PREFIXES = {
    "cement": "cement",
    "blast_furnace_slag": "blast_furnace_slag",
    "fly_ash": "fly_ash",
    "water": "water",
    "superplasticizer": "superplasticizer",
    "coarse_aggregate": "coarse_aggregate",
    "fine_aggregate": "fine_aggregate",
    "age": "age",
    "concrete_compressive_strength": OUTCOME,
}

SPLIT_SEED = 1501
RESAMPLE_SEED = 1502
TUNE_SEED = 1503

TEST_SIZE = 0.25
N_FOLDS = 10
N_REPEATS = 5
STRATA_BREAKS = 4
GRID_SIZE = 25

DEFAULT_METRICS = ("rmse", "rsq")
