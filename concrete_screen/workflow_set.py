from __future__ import annotations

"""
Workflow sets: named preprocessor/model pairings that are tuned with the same
resamples and then ranked against each other.
"""

import re
import time
from dataclasses import dataclass
from typing import Any, Sequence

import pandas as pd
from loguru import logger
from sklearn.pipeline import Pipeline

from .constants import DEFAULT_METRICS, GRID_SIZE, OUTCOME
from .data_prep import Resample, split_xy
from .metrics import get_metric
from .models import get_model_spec, make_grid
from .preprocessors import make_preprocessor
from .racing import ControlRace, tune_race_anova
from .tuning import ControlGrid, TuneResults, fit_resamples, tune_grid

TUNING_FUNCTIONS = ("tune_grid", "tune_race_anova", "fit_resamples")
KNOWN_OPTIONS = ("param_space", "grid")


@dataclass(frozen=True)
class Workflow:
    preprocessor: str
    model: str

    def build_pipeline(self) -> Pipeline:
        return Pipeline(
            [
                ("preprocessor", make_preprocessor(self.preprocessor)),
                ("model", get_model_spec(self.model).build()),
            ]
        )


def workflow_set(preproc: Sequence[str], models: Sequence[str], cross: bool = True) -> "WorkflowSet":
    """
    Pair preprocessors with models. With `cross`, every combination is built;
    otherwise the two lists are matched element-wise.
    """
    for name in preproc:
        make_preprocessor(name)
    for name in models:
        get_model_spec(name)

    if cross:
        pairs = [(p, m) for p in preproc for m in models]
    else:
        if len(preproc) != len(models):
            raise ValueError(
                f"Without cross, preproc and models must be the same length "
                f"({len(preproc)} != {len(models)})"
            )
        pairs = list(zip(preproc, models))

    return WorkflowSet({f"{p}_{m}": Workflow(p, m) for p, m in pairs})


class WorkflowSet:
    """
    A collection of workflows keyed by id, with per-workflow options and results.
    """

    def __init__(self, workflows: dict[str, Workflow] | None = None):
        self.workflows: dict[str, Workflow] = {}
        self.options: dict[str, dict[str, Any]] = {}
        self.results: dict[str, TuneResults] = {}
        self.status: dict[str, str] = {}
        for wflow_id, wf in (workflows or {}).items():
            self._add(wflow_id, wf)

    def _add(self, wflow_id: str, wf: Workflow, options=None, result=None, status="pending"):
        if wflow_id in self.workflows:
            raise ValueError(f"Duplicate workflow id: {wflow_id}")
        self.workflows[wflow_id] = wf
        self.options[wflow_id] = dict(options or {})
        if result is not None:
            self.results[wflow_id] = result
        self.status[wflow_id] = status

    def __len__(self):
        return len(self.workflows)

    def __contains__(self, wflow_id):
        return wflow_id in self.workflows

    def __repr__(self):
        return f"WorkflowSet({self.ids})"

    @property
    def ids(self) -> list[str]:
        return list(self.workflows)

    def _check_id(self, wflow_id: str):
        if wflow_id not in self.workflows:
            raise KeyError(f"Unknown workflow id: {wflow_id}. Have {self.ids}")

    def info(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "wflow_id": wflow_id,
                    "preprocessor": wf.preprocessor,
                    "model": wf.model,
                    "options": ", ".join(sorted(self.options[wflow_id])),
                    "status": self.status[wflow_id],
                }
                for wflow_id, wf in self.workflows.items()
            ]
        )

    def extract_workflow(self, wflow_id: str) -> Pipeline:
        """Unfitted pipeline for one workflow."""
        self._check_id(wflow_id)
        return self.workflows[wflow_id].build_pipeline()

    def bind(self, *others: "WorkflowSet") -> "WorkflowSet":
        """New set holding the workflows of this set followed by the others."""
        combined = WorkflowSet()
        for ws in (self,) + others:
            for wflow_id, wf in ws.workflows.items():
                combined._add(
                    wflow_id,
                    wf,
                    ws.options[wflow_id],
                    ws.results.get(wflow_id),
                    ws.status[wflow_id],
                )
        return combined

    def subset(self, ids: Sequence[str]) -> "WorkflowSet":
        for wflow_id in ids:
            self._check_id(wflow_id)
        keep = WorkflowSet()
        for wflow_id in ids:
            keep._add(
                wflow_id,
                self.workflows[wflow_id],
                self.options[wflow_id],
                self.results.get(wflow_id),
                self.status[wflow_id],
            )
        return keep

    def rename(self, pattern: str, repl: str) -> "WorkflowSet":
        """Rewrite workflow ids with a regular expression substitution."""
        mapping = {old: re.sub(pattern, repl, old) for old in self.ids}
        new_ids = list(mapping.values())
        if len(set(new_ids)) != len(new_ids):
            raise ValueError(f"Renaming with {pattern!r} produces duplicate ids: {new_ids}")

        self.workflows = {mapping[k]: v for k, v in self.workflows.items()}
        self.options = {mapping[k]: v for k, v in self.options.items()}
        self.results = {mapping[k]: v for k, v in self.results.items()}
        self.status = {mapping[k]: v for k, v in self.status.items()}
        return self

    def option_add(self, id: str | Sequence[str] | None = None, **options) -> "WorkflowSet":
        """
        Attach tuning options to one, several or (by default) all workflows.

        `param_space` overrides parts of the model's tuning space; `grid` is a
        candidate count or an explicit list of candidates.
        """
        unknown = set(options) - set(KNOWN_OPTIONS)
        if unknown:
            raise ValueError(f"Unknown options {sorted(unknown)}; use {list(KNOWN_OPTIONS)}")
        for wflow_id in self._target_ids(id):
            self.options[wflow_id].update(options)
        return self

    def option_remove(self, *names: str, id: str | Sequence[str] | None = None) -> "WorkflowSet":
        for wflow_id in self._target_ids(id):
            for name in names:
                self.options[wflow_id].pop(name, None)
        return self

    def _target_ids(self, id) -> list[str]:
        if id is None:
            return self.ids
        ids = [id] if isinstance(id, str) else list(id)
        for wflow_id in ids:
            self._check_id(wflow_id)
        return ids

    def param_space(self, wflow_id: str) -> dict[str, Any]:
        self._check_id(wflow_id)
        space = dict(get_model_spec(self.workflows[wflow_id].model).param_space)
        space.update(self.options[wflow_id].get("param_space", {}))
        return space

    def _grid(self, wflow_id: str, grid, random_state: int | None) -> list[dict[str, Any]]:
        grid = self.options[wflow_id].get("grid", grid)
        if isinstance(grid, int):
            return make_grid(self.param_space(wflow_id), size=grid, random_state=random_state)
        return list(grid)

    def workflow_map(
        self,
        fn: str = "tune_grid",
        resamples: Sequence[Resample] = (),
        data: pd.DataFrame | None = None,
        outcome: str = OUTCOME,
        grid: int | list[dict[str, Any]] = GRID_SIZE,
        metrics: Sequence[str] = DEFAULT_METRICS,
        control: ControlGrid | ControlRace | None = None,
        seed: int | None = 1,
        n_jobs: int | None = None,
        verbose: bool = False,
    ) -> "WorkflowSet":
        """
        Run a tuning function over every workflow with shared resamples.

        Workflows with nothing to tune are evaluated with fit_resamples. A
        workflow that fails is logged and marked as an error; the rest still run.
        """
        if fn not in TUNING_FUNCTIONS:
            raise ValueError(f"Unknown tuning function {fn!r}; use one of {TUNING_FUNCTIONS}")
        if data is None:
            raise ValueError("workflow_map needs the training data.")
        if not resamples:
            raise ValueError("workflow_map needs at least one resample.")
        for name in metrics:
            get_metric(name)

        if fn == "tune_race_anova":
            if control is not None and not isinstance(control, ControlRace):
                raise ValueError(f"tune_race_anova needs a ControlRace, got {type(control).__name__}")
            race_control = control or ControlRace()
            if len(resamples) < race_control.burn_in:
                raise ValueError(
                    f"Racing needs at least burn_in={race_control.burn_in} resamples, "
                    f"got {len(resamples)}"
                )
            grid_control = ControlGrid(save_pred=race_control.save_pred)
        else:
            if control is not None and not isinstance(control, ControlGrid):
                raise ValueError(f"{fn} needs a ControlGrid, got {type(control).__name__}")
            grid_control = control or ControlGrid()

        X, y = split_xy(data, outcome)
        n = len(self)
        for i, wflow_id in enumerate(self.ids, start=1):
            pipeline = self.extract_workflow(wflow_id)
            space = self.param_space(wflow_id)
            start = time.perf_counter()
            if verbose:
                logger.info(f"{i} of {n} {fn}: {wflow_id}")

            try:
                if fn == "fit_resamples" or not space:
                    if fn != "fit_resamples":
                        logger.info(f"No tuning parameters for {wflow_id}; using fit_resamples")
                    result = fit_resamples(
                        pipeline, resamples, X, y, metrics, grid_control, n_jobs, seed,
                    )
                elif fn == "tune_race_anova":
                    result = tune_race_anova(
                        pipeline, resamples, X, y, self._grid(wflow_id, grid, seed),
                        metrics, race_control, n_jobs, seed,
                    )
                else:
                    result = tune_grid(
                        pipeline, resamples, X, y, self._grid(wflow_id, grid, seed),
                        metrics, grid_control, n_jobs, seed,
                    )
            except Exception as exc:
                logger.exception(f"Workflow {wflow_id} failed")
                self.status[wflow_id] = f"error: {exc}"
                self.results.pop(wflow_id, None)
                continue

            self.results[wflow_id] = result
            self.status[wflow_id] = "done"
            if verbose:
                logger.info(f"{i} of {n} {fn}: {wflow_id} done ({time.perf_counter() - start:.1f}s)")
        return self

    def extract_workflow_set_result(self, wflow_id: str) -> TuneResults:
        self._check_id(wflow_id)
        if wflow_id not in self.results:
            raise RuntimeError(
                f"No results for {wflow_id} (status: {self.status[wflow_id]})"
            )
        return self.results[wflow_id]

    def collect_metrics(self, summarize: bool = True) -> pd.DataFrame:
        if summarize:
            value_cols = [".config", "metric", "mean", "n", "std_err"]
        else:
            value_cols = [".config", "id", "metric", "estimate"]
        cols = ["wflow_id", "preprocessor", "model"] + value_cols

        frames = []
        for wflow_id, result in self.results.items():
            frame = result.collect_metrics(summarize=summarize)[value_cols].copy()
            wf = self.workflows[wflow_id]
            frame.insert(0, "model", wf.model)
            frame.insert(0, "preprocessor", wf.preprocessor)
            frame.insert(0, "wflow_id", wflow_id)
            frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=cols)
        return pd.concat(frames, ignore_index=True)[cols]

    def rank_results(self, rank_metric: str = "rmse", select_best: bool = False) -> pd.DataFrame:
        """
        Rank every evaluated candidate (or each workflow's best) by `rank_metric`.
        """
        direction = get_metric(rank_metric).direction
        results = self.collect_metrics()
        cols = ["wflow_id", ".config", "metric", "mean", "std_err", "n", "preprocessor", "model", "rank"]
        if results.empty:
            return pd.DataFrame(columns=cols)
        if rank_metric not in set(results["metric"]):
            raise ValueError(f"Metric {rank_metric!r} was not computed.")

        ranking = results[results["metric"] == rank_metric].sort_values(
            "mean", ascending=direction == "minimize", kind="mergesort"
        )
        if select_best:
            ranking = ranking.drop_duplicates("wflow_id")
        ranking = ranking[["wflow_id", ".config"]].assign(rank=range(1, len(ranking) + 1))

        ranked = results.merge(ranking, on=["wflow_id", ".config"], how="inner")
        return ranked.sort_values(["rank", "metric"], kind="mergesort").reset_index(drop=True)[cols]
