from __future__ import annotations

import pytest
from sklearn.pipeline import Pipeline

from concrete_screen.racing import ControlRace
from concrete_screen.tuning import ControlGrid
from concrete_screen.workflow_set import WorkflowSet, workflow_set


@pytest.fixture
def small_set() -> WorkflowSet:
    trees = workflow_set(["simple"], ["CART", "CART_bagged"])
    knn = workflow_set(["normalized"], ["KNN"])
    return trees.bind(knn).rename(r"^(simple_)|^(normalized_)", "")


def test_workflow_set_cross_and_paired_ids():
    crossed = workflow_set(["simple", "normalized"], ["KNN", "CART"])
    assert crossed.ids == ["simple_KNN", "simple_CART", "normalized_KNN", "normalized_CART"]

    paired = workflow_set(["simple", "full_quad"], ["CART", "linear_reg"], cross=False)
    assert paired.ids == ["simple_CART", "full_quad_linear_reg"]

    with pytest.raises(ValueError):
        workflow_set(["simple", "normalized"], ["KNN"], cross=False)


def test_workflow_set_validates_names():
    with pytest.raises(KeyError):
        workflow_set(["simple"], ["MARS"])
    with pytest.raises(KeyError):
        workflow_set(["ica"], ["KNN"])


def test_bind_and_rename(small_set):
    assert small_set.ids == ["CART", "CART_bagged", "KNN"]
    assert "KNN" in small_set
    assert len(small_set) == 3

    with pytest.raises(ValueError):
        small_set.bind(workflow_set(["simple"], ["CART"]).rename("^simple_", ""))
    with pytest.raises(ValueError):
        workflow_set(["simple", "normalized"], ["KNN"]).rename(r"^\w+_KNN$", "KNN")


def test_extract_workflow(small_set):
    pipeline = small_set.extract_workflow("KNN")
    assert isinstance(pipeline, Pipeline)
    assert list(pipeline.named_steps) == ["preprocessor", "model"]
    assert pipeline is not small_set.extract_workflow("KNN")

    with pytest.raises(KeyError):
        small_set.extract_workflow("RF")


def test_options(small_set):
    small_set.option_add(id="KNN", param_space={"n_neighbors": [2, 4]})
    assert small_set.param_space("KNN")["n_neighbors"] == [2, 4]
    assert "weights" in small_set.param_space("KNN")

    small_set.option_add(grid=3)
    assert all(small_set.options[i]["grid"] == 3 for i in small_set.ids)

    small_set.option_remove("grid", id=["CART", "KNN"])
    assert "grid" not in small_set.options["KNN"]
    assert small_set.options["CART_bagged"]["grid"] == 3

    with pytest.raises(ValueError):
        small_set.option_add(id="KNN", control="fast")
    with pytest.raises(KeyError):
        small_set.option_add(id="nope", grid=2)


def test_workflow_map_grid_and_rank(small_set, concrete_df, small_resamples):
    small_set.workflow_map(
        "tune_grid", resamples=small_resamples, data=concrete_df, grid=3, seed=11
    )

    assert set(small_set.status.values()) == {"done"}
    assert small_set.extract_workflow_set_result("CART").method == "tune_grid"
    assert small_set.extract_workflow_set_result("CART_bagged").method == "fit_resamples"

    metrics = small_set.collect_metrics()
    assert set(metrics["wflow_id"]) == {"CART", "CART_bagged", "KNN"}
    assert list(metrics.columns[:3]) == ["wflow_id", "preprocessor", "model"]

    ranks = small_set.rank_results("rmse")
    rmse = ranks[ranks["metric"] == "rmse"]
    assert rmse["rank"].tolist() == list(range(1, len(rmse) + 1))
    assert rmse["mean"].is_monotonic_increasing
    assert len(rmse) == 3 + 1 + 3

    best = small_set.rank_results("rmse", select_best=True)
    assert len(best) == 3 * 2
    assert best.groupby("wflow_id")["rank"].nunique().eq(1).all()


def test_workflow_map_race(small_set, concrete_df, small_resamples):
    small_set.workflow_map(
        "tune_race_anova",
        resamples=small_resamples,
        data=concrete_df,
        grid=4,
        control=ControlRace(burn_in=3),
        seed=5,
    )

    assert small_set.extract_workflow_set_result("KNN").method == "tune_race_anova"
    assert small_set.extract_workflow_set_result("CART_bagged").method == "fit_resamples"
    assert not small_set.rank_results("rsq", select_best=True).empty


def test_workflow_map_records_failures(small_set, concrete_df, small_resamples):
    small_set.option_add(id="KNN", grid=[{"n_neighbors": 10_000}])
    small_set.workflow_map("tune_grid", resamples=small_resamples, data=concrete_df, grid=2)

    assert small_set.status["KNN"].startswith("error")
    assert small_set.status["CART"] == "done"
    with pytest.raises(RuntimeError):
        small_set.extract_workflow_set_result("KNN")
    assert "KNN" not in set(small_set.rank_results()["wflow_id"])


def test_workflow_map_validates(small_set, concrete_df, small_resamples):
    with pytest.raises(ValueError):
        small_set.workflow_map("tune_bayes", resamples=small_resamples, data=concrete_df)
    with pytest.raises(ValueError):
        small_set.workflow_map("tune_grid", resamples=small_resamples)
    with pytest.raises(KeyError):
        small_set.workflow_map("tune_grid", resamples=small_resamples, data=concrete_df, metrics=["auc"])


def test_workflow_map_checks_resamples_up_front(small_set, concrete_df, small_resamples):
    with pytest.raises(ValueError, match="at least one resample"):
        small_set.workflow_map("tune_grid", resamples=[], data=concrete_df)
    with pytest.raises(ValueError, match="burn_in"):
        small_set.workflow_map("tune_race_anova", resamples=small_resamples[:2], data=concrete_df)

    assert set(small_set.status.values()) == {"pending"}


def test_workflow_map_checks_control_type(small_set, concrete_df, small_resamples):
    with pytest.raises(ValueError, match="ControlRace"):
        small_set.workflow_map(
            "tune_race_anova", resamples=small_resamples, data=concrete_df, control=ControlGrid()
        )
    with pytest.raises(ValueError, match="ControlGrid"):
        small_set.workflow_map(
            "tune_grid", resamples=small_resamples, data=concrete_df, control=ControlRace()
        )

    assert set(small_set.status.values()) == {"pending"}


def test_workflow_map_passes_grid_control_to_fit_resamples(small_set, concrete_df, small_resamples):
    bagged = small_set.subset(["CART_bagged"])
    bagged.workflow_map(
        "tune_grid", resamples=small_resamples, data=concrete_df, control=ControlGrid(save_pred=True)
    )

    result = bagged.extract_workflow_set_result("CART_bagged")
    assert result.method == "fit_resamples"
    preds = result.collect_predictions()
    assert set(preds["id"]) == {r.id for r in small_resamples}


def test_rank_results_before_running(small_set):
    assert small_set.rank_results().empty
    assert list(small_set.info()["status"]) == ["pending"] * 3
