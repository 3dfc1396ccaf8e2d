"""
Screening many regression models for concrete compressive strength.

This package contains data preparation helpers, named preprocessors and model
specifications, workflow sets, grid and racing tuners, and the utilities used
by main.py to finalize and persist the chosen model.
"""

from .constants import OUTCOME, PREDICTORS
from .data_prep import (
    Resample,
    load_concrete,
    make_initial_split,
    make_resamples,
    split_xy,
)
from .finalize import LastFit, finalize_workflow, last_fit, load_results, save_results
from .metrics import compute_regression_metrics
from .models import MODEL_SPECS, ModelSpec, make_grid
from .preprocessors import PREPROCESSORS, make_preprocessor
from .racing import ControlRace, tune_race_anova
from .tuning import ControlGrid, TuneResults, fit_resamples, tune_grid
from .workflow_set import Workflow, WorkflowSet, workflow_set

__all__ = [
    "OUTCOME",
    "PREDICTORS",
    "Resample",
    "load_concrete",
    "make_initial_split",
    "make_resamples",
    "split_xy",
    "LastFit",
    "finalize_workflow",
    "last_fit",
    "load_results",
    "save_results",
    "compute_regression_metrics",
    "MODEL_SPECS",
    "ModelSpec",
    "make_grid",
    "PREPROCESSORS",
    "make_preprocessor",
    "ControlRace",
    "tune_race_anova",
    "ControlGrid",
    "TuneResults",
    "fit_resamples",
    "tune_grid",
    "Workflow",
    "WorkflowSet",
    "workflow_set",
]
