from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from concrete_screen.constants import OUTCOME, PREDICTORS
from concrete_screen.data_prep import (
    load_concrete,
    make_initial_split,
    make_resamples,
    make_strata,
    split_xy,
)


def test_load_concrete_maps_uci_headers(concrete_csv, concrete_df):
    df = load_concrete(concrete_csv)

    assert list(df.columns) == PREDICTORS + [OUTCOME]
    assert len(df) == len(concrete_df)


def test_load_concrete_averages_replicates(tmp_path, concrete_df):
    dup = concrete_df.iloc[[0]].copy()
    dup[OUTCOME] = concrete_df.loc[0, OUTCOME] + 10.0
    path = tmp_path / "with_dup.csv"
    pd.concat([concrete_df, dup], ignore_index=True).to_csv(path, index=False)

    averaged = load_concrete(path)
    raw = load_concrete(path, average_replicates=False)

    assert len(raw) == len(concrete_df) + 1
    assert len(averaged) == len(concrete_df)
    row = averaged[np.isclose(averaged["cement"], concrete_df.loc[0, "cement"])]
    assert len(row) == 1
    assert row[OUTCOME].iloc[0] == pytest.approx(concrete_df.loc[0, OUTCOME] + 5.0)


def test_load_concrete_missing_column(tmp_path, concrete_df):
    path = tmp_path / "missing.csv"
    concrete_df.drop(columns=["water"]).to_csv(path, index=False)

    with pytest.raises(ValueError, match="water"):
        load_concrete(path)


def test_split_xy(concrete_df):
    X, y = split_xy(concrete_df)
    assert OUTCOME not in X.columns
    assert y.name == OUTCOME

    with pytest.raises(ValueError):
        split_xy(concrete_df, outcome="nope")


def test_make_strata_quartiles():
    bins = make_strata(pd.Series(np.arange(200, dtype=float)))
    labels, counts = np.unique(bins, return_counts=True)
    assert list(labels) == [0, 1, 2, 3]
    assert all(counts == 50)


def test_make_strata_too_small_is_unstratified():
    bins = make_strata(pd.Series(np.arange(30, dtype=float)))
    assert set(bins) == {0}


def test_make_strata_merges_sparse_bin():
    # ties at zero leave a 15-row top quantile bin (7.5% of the rows)
    values = np.concatenate([np.arange(-50, 0), np.zeros(135), np.arange(1, 16)]).astype(float)
    bins = make_strata(pd.Series(values))

    labels, counts = np.unique(bins, return_counts=True)
    assert list(labels) == [0, 1]
    assert list(counts) == [50, 150]
    assert (bins[-15:] == 1).all()


def test_make_initial_split_sizes(concrete_df):
    train, test = make_initial_split(concrete_df, test_size=0.25, random_state=1)

    assert len(test) == 50
    assert len(train) == 150
    merged = pd.concat([train, test]).sort_values(OUTCOME).reset_index(drop=True)
    expected = concrete_df.sort_values(OUTCOME).reset_index(drop=True)
    pd.testing.assert_frame_equal(merged, expected)


def test_make_initial_split_rejects_bad_size(concrete_df):
    with pytest.raises(ValueError):
        make_initial_split(concrete_df, test_size=1.5)


def test_make_resamples_repeated_ids_and_coverage(concrete_df):
    folds = make_resamples(concrete_df, n_splits=5, n_repeats=2, random_state=3)

    assert len(folds) == 10
    assert folds[0].id == "Repeat1_Fold1"
    assert folds[-1].id == "Repeat2_Fold5"

    for repeat in range(2):
        held_out = np.concatenate([f.test_idx for f in folds[repeat * 5 : (repeat + 1) * 5]])
        assert sorted(held_out) == list(range(len(concrete_df)))

    for fold in folds:
        assert not set(fold.train_idx) & set(fold.test_idx)


def test_make_resamples_single_repeat_ids(concrete_df):
    folds = make_resamples(concrete_df, n_splits=10, n_repeats=1)
    assert [f.id for f in folds[:2]] == ["Fold01", "Fold02"]
    assert folds[-1].id == "Fold10"


def test_make_resamples_validates(concrete_df):
    with pytest.raises(ValueError):
        make_resamples(concrete_df, n_splits=1)
    with pytest.raises(ValueError):
        make_resamples(concrete_df, n_repeats=0)
