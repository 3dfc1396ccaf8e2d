from pathlib import Path

from concrete_screen import OUTCOME, load_results
from concrete_screen.plots import (
    plot_predicted_vs_observed,
    plot_race_progress,
    plot_workflow_ranks,
)

# Configuration
RESULTS_PATH = Path("../results/concrete_screen.joblib")
RANK_METRIC = "rmse"


def run_rank_plot(bundle):
    print("Generating workflow rank plot...")
    plot_workflow_ranks(bundle["rank_results"], RANK_METRIC, "workflow_ranks.png")


def run_race_plot(bundle):
    print("Generating racing progress plot...")
    results = bundle["workflow_set"].extract_workflow_set_result(bundle["chosen"])
    if results.method != "tune_race_anova":
        print(f"Skipping: {bundle['chosen']} was tuned with {results.method}")
        return
    plot_race_progress(results, f"race_progress_{bundle['chosen']}.png")


def run_test_plot(bundle):
    print("Generating predicted vs observed plot...")
    plot_predicted_vs_observed(
        bundle["last_fit"].predictions, "test_predictions.png", outcome=OUTCOME
    )


if __name__ == "__main__":
    bundle = load_results(RESULTS_PATH)
    run_rank_plot(bundle)
    run_race_plot(bundle)
    run_test_plot(bundle)
    print("All plots generated successfully.")
