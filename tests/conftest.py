"""Shared synthetic choice records for the test suite."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from scipy.special import expit

from stairchoice.data_loading import clean_column_names, clean_observations
from stairchoice.preprocessing import grouped_train_test_split


def make_raw_records(n_participants: int = 40, seed: int = 0) -> pd.DataFrame:
    """
    Raw records with survey-style column names.

    Stair use falls with floors and load and varies by participant.
    Every tenth participant has only 3 records; every seventh has one
    'Neither' record.
    """
    rng = np.random.default_rng(seed)
    rows = []
    for pid in range(1, n_participants + 1):
        n_obs = 3 if pid % 10 == 0 else 12
        intercept = rng.normal(0.0, 1.0)
        for _ in range(n_obs):
            floors = int(rng.integers(1, 7))
            load = bool(rng.random() < 0.3)
            eta = intercept + 2.8 - 0.9 * floors - 1.0 * load
            choice = "Stairs" if rng.random() < expit(eta) else "Elevator"
            rows.append({
                "Participant ID": pid,
                "Choice": choice,
                "Time of Day": rng.choice(["Morning", "Afternoon", "Evening"]),
                "Direction": rng.choice(["up", "down"]),
                "Floors": floors,
                "Carrying Load": "Yes" if load else "No",
                "Accompanied": rng.choice(["yes", "no"]),
                "Elevator Waiting": rng.choice(["yes", "no"]),
                "Weather": rng.choice(["sunny", "cloudy", "rainy", None], p=[0.4, 0.3, 0.25, 0.05]),
                "Mood": np.nan if rng.random() < 0.05 else int(rng.integers(1, 8)),
                "Stress": int(rng.integers(1, 8)),
                "Fatigue": int(rng.integers(1, 8)),
                "HealthMotivation": int(rng.integers(1, 8)),
                "StairHabit": int(rng.integers(1, 8)),
                "Time Pressure": int(rng.integers(1, 8)),
                "Crowding": int(rng.integers(1, 6)),
            })
        if pid % 7 == 0:
            extra = dict(rows[-1])
            extra["Choice"] = "Neither"
            rows.append(extra)
    return pd.DataFrame(rows)


@pytest.fixture(scope="session")
def raw_records() -> pd.DataFrame:
    return make_raw_records()


@pytest.fixture(scope="session")
def clean_records(raw_records) -> pd.DataFrame:
    return clean_observations(clean_column_names(raw_records))


@pytest.fixture(scope="session")
def split_records(clean_records):
    return grouped_train_test_split(clean_records, test_size=0.25, random_state=0)


@pytest.fixture(scope="session")
def fitted_workflow(split_records):
    from stairchoice.modeling import fit_mixed_tree_workflow

    train_df, _ = split_records
    return fit_mixed_tree_workflow(train_df, max_iter=8, min_samples_leaf=20, tol=1e-2)
