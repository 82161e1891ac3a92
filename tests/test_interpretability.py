"""Tests for permutation importance, tree summaries and random effects."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from stairchoice.config import DATASET
from stairchoice.modeling import fit_mixed_tree_workflow
from stairchoice.interpretability import (
    compare_importance_methods,
    compute_permutation_importance,
    describe_tree,
    leaf_summary,
    plot_permutation_importance,
    summarize_random_effects,
    tree_split_importance,
)

NOISE_PREDICTORS = ["mood", "stress", "fatigue", "health_motivation", "stair_habit", "crowding"]


@pytest.fixture(scope="module")
def importance(fitted_workflow, split_records):
    _, test_df = split_records
    return compute_permutation_importance(
        fitted_workflow, test_df, n_repeats=4, random_state=7, n_jobs=1,
    )


def test_permutation_importance_table(importance, fitted_workflow) -> None:
    importance_df, repeats_df = importance

    assert sorted(importance_df["variable"]) == sorted(fitted_workflow.predictors)
    assert list(importance_df["rank"]) == list(range(1, len(importance_df) + 1))
    assert importance_df["importance_mean"].is_monotonic_decreasing
    assert (importance_df["importance_std"] >= 0).all()
    assert len(repeats_df) == 4 * len(importance_df)
    assert importance_df["baseline_auc"].between(0, 1).all()


def test_generating_predictor_matters_most(importance) -> None:
    importance_df, _ = importance
    by_var = importance_df.set_index("variable")["importance_mean"]

    assert by_var["floors"] > 0.05
    assert importance_df.iloc[0]["variable"] == "floors"
    assert by_var["mood"] < by_var["floors"] / 2


@pytest.fixture(scope="module")
def shallow_importance(split_records):
    train_df, test_df = split_records
    workflow = fit_mixed_tree_workflow(train_df, max_depth=2, min_samples_leaf=60,
                                       max_iter=8, tol=1e-2)
    importance_df, _ = compute_permutation_importance(
        workflow, test_df, n_repeats=5, random_state=3, n_jobs=1,
    )
    return importance_df.set_index("variable")["importance_mean"]


def test_noise_predictors_have_near_zero_importance(shallow_importance) -> None:
    for name in NOISE_PREDICTORS:
        assert abs(shallow_importance[name]) < 0.02, name
    assert shallow_importance["floors"] > 0.05


def test_permutation_importance_is_seeded(fitted_workflow, split_records, importance) -> None:
    _, test_df = split_records
    again, _ = compute_permutation_importance(
        fitted_workflow, test_df, n_repeats=4, random_state=7, n_jobs=2,
    )
    pd.testing.assert_frame_equal(again, importance[0])


def test_tree_split_importance_maps_to_raw_predictors(fitted_workflow) -> None:
    split_df = tree_split_importance(fitted_workflow)

    assert sorted(split_df["variable"]) == sorted(fitted_workflow.predictors)
    assert split_df["importance"].sum() == pytest.approx(1.0)
    assert split_df.iloc[0]["variable"] == "floors"


def test_compare_importance_methods(importance, fitted_workflow) -> None:
    comparison, rho, _ = compare_importance_methods(
        importance[0], tree_split_importance(fitted_workflow)
    )
    assert len(comparison) == len(fitted_workflow.predictors)
    assert -1.0 <= rho <= 1.0
    assert (comparison["rank_diff"] >= 0).all()


def test_describe_tree_mentions_floors(fitted_workflow) -> None:
    rules = describe_tree(fitted_workflow)
    assert "floors" in rules
    assert "value" in rules


def test_leaf_summary_covers_training_records(fitted_workflow, split_records) -> None:
    train_df, _ = split_records
    leaves = leaf_summary(fitted_workflow, train_df)

    assert leaves["n_records"].sum() == len(train_df)
    assert leaves["probability"].between(0, 1).all()
    assert len(leaves) == len(fitted_workflow.model.leaf_ids_)


def test_summarize_random_effects(fitted_workflow, split_records) -> None:
    train_df, _ = split_records
    intercepts, summary = summarize_random_effects(fitted_workflow.model)

    assert summary["n_participants"] == train_df[DATASET.ID_COL].nunique()
    assert 0.0 < summary["icc_latent"] < 1.0
    assert intercepts["random_intercept"].is_monotonic_decreasing
    assert summary["random_intercept_variance"] == pytest.approx(summary["random_intercept_sd"] ** 2)


def test_plot_permutation_importance(tmp_path: Path, importance) -> None:
    path = plot_permutation_importance(
        importance[0], codebook={"floors": "Floors to travel"},
        save_path=tmp_path / "importance.png",
    )
    assert path.exists()
    assert path.stat().st_size > 0
