"""Tests for classification metrics and console tables."""

from __future__ import annotations

import numpy as np
import pytest

from stairchoice.config import DATASET
from stairchoice.evaluation import (
    compute_all_metrics,
    compute_ece,
    confusion_table,
    find_optimal_threshold_youden,
    metric_table,
    specificity_score,
)


def make_scores(seed: int = 0):
    rng = np.random.default_rng(seed)
    y_true = rng.integers(0, 2, size=300)
    y_prob = np.clip(0.3 * y_true + rng.uniform(0, 0.7, size=300), 0, 1)
    return y_true, y_prob


def test_compute_all_metrics_ranges() -> None:
    y_true, y_prob = make_scores()
    y_pred = (y_prob >= 0.5).astype(int)

    metrics = compute_all_metrics(y_true, y_prob, y_pred)

    for key in ["roc_auc", "pr_auc", "accuracy", "sensitivity", "specificity",
                "balanced_accuracy", "brier", "ece"]:
        assert 0.0 <= metrics[key] <= 1.0, key
    assert metrics["roc_auc"] > 0.7


def test_perfect_ranking_has_unit_auc() -> None:
    y_true = np.array([0, 0, 1, 1])
    y_prob = np.array([0.1, 0.2, 0.8, 0.9])
    metrics = compute_all_metrics(y_true, y_prob, (y_prob >= 0.5).astype(int))
    assert metrics["roc_auc"] == 1.0
    assert metrics["accuracy"] == 1.0
    assert metrics["specificity"] == 1.0


def test_single_class_gives_nan_auc() -> None:
    y_true = np.ones(5, dtype=int)
    y_prob = np.linspace(0.2, 0.9, 5)
    metrics = compute_all_metrics(y_true, y_prob, (y_prob >= 0.5).astype(int))
    assert np.isnan(metrics["roc_auc"])
    assert np.isnan(metrics["pr_auc"])


def test_compute_ece_zero_for_calibrated_bins() -> None:
    y_true = np.array([0, 1, 0, 1])
    y_prob = np.array([0.5, 0.5, 0.5, 0.5])
    assert compute_ece(y_true, y_prob) == 0.0


def test_specificity_score() -> None:
    assert specificity_score([0, 0, 0, 1], [0, 1, 0, 1]) == 2 / 3


def test_youden_threshold_separates_classes() -> None:
    y_true = np.array([0, 0, 0, 1, 1, 1])
    y_prob = np.array([0.1, 0.2, 0.3, 0.7, 0.8, 0.9])
    threshold, j = find_optimal_threshold_youden(y_true, y_prob)
    assert 0.3 < threshold <= 0.7
    assert j == 1.0


def test_confusion_table_labels_and_counts() -> None:
    table = confusion_table([1, 1, 0, 0, 0], [1, 0, 0, 0, 1])

    assert list(table.index) == [DATASET.POSITIVE_CLASS, DATASET.NEGATIVE_CLASS]
    assert list(table.columns) == [DATASET.POSITIVE_CLASS, DATASET.NEGATIVE_CLASS]
    assert table.loc[DATASET.POSITIVE_CLASS, DATASET.POSITIVE_CLASS] == 1
    assert table.loc[DATASET.NEGATIVE_CLASS, DATASET.NEGATIVE_CLASS] == 2
    assert table.to_numpy().sum() == 5


def test_metric_table_is_tidy() -> None:
    y_true, y_prob = make_scores(1)
    metrics = compute_all_metrics(y_true, y_prob, (y_prob >= 0.5).astype(int))

    table = metric_table(metrics)

    assert list(table.columns) == ["metric", "estimate"]
    assert table.iloc[0]["metric"] == "roc_auc"
    assert table.set_index("metric").loc["brier", "estimate"] == pytest.approx(metrics["brier"])
