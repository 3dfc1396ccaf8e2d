from __future__ import annotations

"""
CLI entrypoint for screening regression workflows on concrete compressive
strength. Pick the tuner via --method: race (ANOVA racing) or grid.
"""

import argparse
import sys
from pathlib import Path

import pandas as pd
from loguru import logger

from concrete_screen import (
    OUTCOME,
    ControlGrid,
    ControlRace,
    WorkflowSet,
    finalize_workflow,
    last_fit,
    load_concrete,
    make_initial_split,
    make_resamples,
    save_results,
    workflow_set,
)
from concrete_screen.constants import (
    GRID_SIZE,
    N_FOLDS,
    N_REPEATS,
    SPLIT_SEED,
    TEST_SIZE,
    TUNE_SEED,
)


def build_screening_set() -> WorkflowSet:
    """The standard set: tree models on raw data, kernel/neighbour/net models on
    normalized data, and linear/KNN models on full quadratic features."""
    no_pre_proc = workflow_set(
        preproc=["simple"], models=["CART", "CART_bagged", "RF", "boosting"]
    )
    normalized = workflow_set(
        preproc=["normalized"],
        models=["SVM_radial", "SVM_poly", "KNN", "neural_network"],
    )
    normalized.option_add(
        id="normalized_neural_network",
        param_space={"hidden_layer_sizes": [(k,) for k in range(1, 28)]},
    )
    with_features = workflow_set(preproc=["full_quad"], models=["linear_reg", "KNN"])

    all_workflows = no_pre_proc.bind(normalized, with_features)
    return all_workflows.rename(r"^(simple_)|^(normalized_)", "")


def print_rank_table(ranks: pd.DataFrame, metric: str):
    table = ranks[ranks["metric"] == metric]
    print(f"\nBest candidate per workflow, ranked by {metric}:")
    for _, row in table.iterrows():
        print(
            f"  {int(row['rank']):>2}. {row['wflow_id']:<22} {row['.config']:<24} "
            f"{metric} {row['mean']:.3f} (se {row['std_err']:.3f}, n={int(row['n'])})"
        )


def build_arg_parser():
    """CLI parser with knobs for splits, tuning and finalization."""
    parser = argparse.ArgumentParser(
        description="Screen many models for concrete compressive strength."
    )
    parser.add_argument("--csv-path", type=Path, default=Path("data/concrete.csv"))
    parser.add_argument(
        "--method",
        choices=["race", "grid"],
        default="race",
        help="race: ANOVA racing over resamples; grid: full grid search.",
    )
    parser.add_argument("--grid-size", type=int, default=GRID_SIZE)
    parser.add_argument("--folds", type=int, default=N_FOLDS)
    parser.add_argument("--repeats", type=int, default=N_REPEATS)
    parser.add_argument("--test-size", type=float, default=TEST_SIZE)
    parser.add_argument("--seed", type=int, default=TUNE_SEED, help="Seed for tuning.")
    parser.add_argument("--split-seed", type=int, default=SPLIT_SEED)
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel workers for fits.")
    parser.add_argument(
        "--workflows",
        type=str,
        default=None,
        help="Comma-separated workflow ids to run (default: all).",
    )
    parser.add_argument("--rank-metric", choices=["rmse", "rsq", "mae"], default="rmse")
    parser.add_argument(
        "--finalize",
        type=str,
        default=None,
        help="Workflow id to finalize (default: the top-ranked one).",
    )
    parser.add_argument("--output", type=Path, default=Path("results/concrete_screen.joblib"))
    parser.add_argument("--verbose", action="store_true", help="Log progress per workflow.")
    return parser


def run_screening(args: argparse.Namespace) -> dict:
    """Load, split, tune every workflow, rank them and finalize the winner."""
    concrete = load_concrete(args.csv_path)
    train, test = make_initial_split(
        concrete, test_size=args.test_size, random_state=args.split_seed
    )
    folds = make_resamples(
        train, n_splits=args.folds, n_repeats=args.repeats, random_state=args.split_seed + 1
    )
    print(f"Mixtures: {len(concrete)}, Train size: {len(train)}, Test size: {len(test)}")
    print(f"Resamples: {len(folds)} ({args.folds}-fold x {args.repeats})")

    workflows = build_screening_set()
    if args.workflows:
        workflows = workflows.subset([w.strip() for w in args.workflows.split(",") if w.strip()])
    print(f"Workflows: {', '.join(workflows.ids)}")

    metrics = [args.rank_metric] + [m for m in ("rmse", "rsq") if m != args.rank_metric]
    if args.method == "race":
        fn = "tune_race_anova"
        control = ControlRace(save_pred=True, verbose_elim=args.verbose)
    else:
        fn = "tune_grid"
        control = ControlGrid(save_pred=True, verbose=args.verbose)

    workflows.workflow_map(
        fn,
        resamples=folds,
        data=train,
        grid=args.grid_size,
        metrics=metrics,
        control=control,
        seed=args.seed,
        n_jobs=args.n_jobs,
        verbose=args.verbose,
    )

    failed = {k: v for k, v in workflows.status.items() if v.startswith("error")}
    for wflow_id, status in failed.items():
        print(f"Workflow {wflow_id} failed: {status}")

    ranks = workflows.rank_results(rank_metric=args.rank_metric, select_best=True)
    if ranks.empty:
        raise RuntimeError("No workflow produced results.")
    print_rank_table(ranks, args.rank_metric)

    chosen = args.finalize or ranks.iloc[0]["wflow_id"]
    best_params = workflows.extract_workflow_set_result(chosen).select_best(args.rank_metric)
    print(f"\nFinalizing {chosen} with {best_params}")

    final_pipeline = finalize_workflow(
        workflows.extract_workflow(chosen), best_params, random_state=args.seed
    )
    final = last_fit(final_pipeline, train, test, outcome=OUTCOME, metric_names=metrics)
    print("Test set: " + ", ".join(f"{k} {v:.3f}" for k, v in final.metrics.items()))

    bundle = {
        "rank_results": ranks,
        "workflow_set": workflows,
        "chosen": chosen,
        "best_params": best_params,
        "last_fit": final,
        "args": vars(args),
    }
    save_results(bundle, args.output)
    print(f"Results written to {args.output}")
    return bundle


def main(args: argparse.Namespace | None = None):
    args = args or build_arg_parser().parse_args()
    if not args.verbose:
        logger.remove()
        logger.add(sys.stderr, level="WARNING")
    return run_screening(args)


if __name__ == "__main__":
    main()
