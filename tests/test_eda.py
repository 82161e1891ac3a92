"""Tests for participant and outcome descriptives."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from stairchoice.config import DATASET, get_encoding
from stairchoice.eda import (
    all_level_tables,
    numeric_by_outcome,
    outcome_by_level,
    participant_summary,
    plot_outcome_by_level,
    plot_participant_rates,
)


def test_participant_summary_counts(clean_records: pd.DataFrame) -> None:
    summary = participant_summary(clean_records)

    assert summary["n_records"].sum() == len(clean_records)
    assert len(summary) == clean_records[DATASET.ID_COL].nunique()
    assert summary["stairs_rate"].between(0, 1).all()
    assert summary["stairs_rate"].is_monotonic_decreasing


def test_outcome_by_level_matches_manual_rate(clean_records: pd.DataFrame) -> None:
    table = outcome_by_level(clean_records, "carrying_load")

    assert set(table["value"]) == {0.0, 1.0}
    loaded = clean_records[clean_records["carrying_load"] == 1.0]
    row = table[table["value"] == 1.0].iloc[0]
    assert row["n_records"] == len(loaded)
    assert row["stairs_rate"] == round(loaded[DATASET.TARGET_DERIVED].mean(), 4)


def test_numeric_by_outcome_has_both_outcomes(clean_records: pd.DataFrame) -> None:
    table = numeric_by_outcome(clean_records, ["floors", "mood"])

    assert set(table["outcome"]) == {DATASET.POSITIVE_CLASS, DATASET.NEGATIVE_CLASS}
    floors = table[table["variable"] == "floors"].set_index("outcome")["mean"]
    assert floors[DATASET.POSITIVE_CLASS] < floors[DATASET.NEGATIVE_CLASS]


def test_eda_figures_written(tmp_path: Path, clean_records: pd.DataFrame) -> None:
    assert plot_participant_rates(participant_summary(clean_records), save_dir=tmp_path).exists()

    tables = all_level_tables(clean_records, get_encoding("nominal"))
    paths = plot_outcome_by_level(tables, codebook={"weather": "Weather outside"}, save_dir=tmp_path)
    assert len(paths) == len(get_encoding("nominal"))
    assert all(p.exists() for p in paths)
