"""
Data loading module for the stairs vs. elevator analysis.
CSV + codebook loading, column-name cleaning, outcome filtering, type coercion
and participant filtering.
"""

import re

import pandas as pd
import numpy as np
from pathlib import Path

from stairchoice.config import DATASET, get_data_path, get_encoding


BINARY_CODES = {
    "yes": 1.0, "no": 0.0,
    "true": 1.0, "false": 0.0,
    "y": 1.0, "n": 0.0,
    "1": 1.0, "0": 0.0,
    "1.0": 1.0, "0.0": 0.0,
}


# === 1. COLUMN NAMES ===

def clean_names(columns) -> list[str]:
    """
    Normalise column names to snake_case.

    "Participant ID" -> participant_id, "StairHabit" -> stair_habit,
    "2nd floor?" -> x2nd_floor. Repeated names get _2, _3, ... suffixes.
    """
    cleaned = []
    seen: dict[str, int] = {}
    for col in columns:
        name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", str(col).strip())
        name = re.sub(r"[^0-9a-zA-Z]+", "_", name).strip("_").lower()
        if not name:
            name = "x"
        if name[0].isdigit():
            name = f"x{name}"

        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        cleaned.append(name)
    return cleaned


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of df with snake_case column names."""
    df_out = df.copy()
    df_out.columns = clean_names(df_out.columns)
    return df_out


# === 2. LOAD DATA ===

def load_observations(data_path: str | Path | None = None) -> pd.DataFrame:
    """
    Load the choice records CSV and normalise its column names.

    Args:
        data_path: Path to CSV (default: config data.observations_csv).

    Returns:
        DataFrame with one row per participant occasion.
    """
    if data_path is None:
        data_path = get_data_path("observations")

    df = pd.read_csv(data_path)
    df = clean_column_names(df)

    print(f"Loaded {len(df):,} records, {len(df.columns)} variables")
    return df


def load_codebook(codebook_path: str | Path | None = None) -> dict[str, str]:
    """Load codebook CSV and return a variable -> description mapping."""
    if codebook_path is None:
        codebook_path = get_data_path("codebook")

    book = clean_column_names(pd.read_csv(codebook_path))
    if "variable" not in book.columns or "description" not in book.columns:
        raise ValueError(
            f"Codebook needs 'variable' and 'description' columns, got {list(book.columns)}"
        )
    variables = clean_names(book["variable"].astype(str))
    return dict(zip(variables, book["description"].astype(str)))


# === 3. OUTCOME HANDLING ===

def normalize_outcome(df: pd.DataFrame, outcome_col: str | None = None) -> pd.DataFrame:
    """Lower-case and strip outcome labels; NaN stays NaN."""
    if outcome_col is None:
        outcome_col = DATASET.OUTCOME_COL
    df_out = df.copy()
    df_out[outcome_col] = df_out[outcome_col].map(
        lambda v: str(v).strip().lower() if pd.notna(v) else np.nan
    ).astype(object)
    return df_out


def drop_sentinel(df: pd.DataFrame,
                  values: list[str] | None = None,
                  outcome_col: str | None = None) -> pd.DataFrame:
    """Remove rows whose outcome is a sentinel label (case-insensitive)."""
    if values is None:
        values = list(DATASET.SENTINEL_VALUES)
    if outcome_col is None:
        outcome_col = DATASET.OUTCOME_COL

    sentinels = {str(v).strip().lower() for v in values}
    labels = df[outcome_col].map(lambda v: str(v).strip().lower() if pd.notna(v) else v)
    mask = labels.isin(sentinels)
    print(f"Dropped {int(mask.sum()):,} records with sentinel outcome {sorted(sentinels)}")
    return df[~mask].copy()


def create_target_variable(df: pd.DataFrame,
                           outcome_col: str | None = None) -> pd.Series:
    """
    Create binary y_stairs: 1 = stairs, 0 = elevator.
    Any other label maps to NaN.
    """
    if outcome_col is None:
        outcome_col = DATASET.OUTCOME_COL

    labels = df[outcome_col].map(lambda v: str(v).strip().lower() if pd.notna(v) else v)
    y = labels.map({
        DATASET.POSITIVE_CLASS: 1,
        DATASET.NEGATIVE_CLASS: 0,
    })

    n_pos = int((y == 1).sum())
    n_neg = int((y == 0).sum())
    n_miss = int(y.isna().sum())
    print(f"Target '{outcome_col}' -> {DATASET.TARGET_DERIVED}:  1={n_pos:,}  0={n_neg:,}  NaN={n_miss:,}")
    return y


# === 4. TYPE COERCION ===

def coerce_binary(series: pd.Series) -> pd.Series:
    """Map yes/no style answers to 1.0/0.0; unknown labels become NaN."""
    if pd.api.types.is_bool_dtype(series) or pd.api.types.is_numeric_dtype(series):
        return series.astype(float)
    return series.map(
        lambda v: BINARY_CODES.get(str(v).strip().lower(), np.nan) if pd.notna(v) else np.nan
    ).astype(float)


def coerce_types(df: pd.DataFrame) -> pd.DataFrame:
    """Coerce binary, numeric and nominal predictors to analysis types."""
    df_out = df.copy()

    for col in get_encoding("binary"):
        if col in df_out.columns:
            df_out[col] = coerce_binary(df_out[col])

    for col in get_encoding("numeric"):
        if col in df_out.columns:
            df_out[col] = pd.to_numeric(df_out[col], errors="coerce").astype(float)

    for col in get_encoding("nominal"):
        if col in df_out.columns:
            df_out[col] = df_out[col].map(
                lambda v: str(v).strip().lower() if pd.notna(v) else np.nan
            ).astype(object)

    return df_out


# === 5. PARTICIPANT FILTERING ===

def filter_min_observations(df: pd.DataFrame,
                            min_obs: int | None = None,
                            id_col: str | None = None) -> pd.DataFrame:
    """Keep only participants with at least `min_obs` records."""
    if min_obs is None:
        min_obs = DATASET.MIN_OBS
    if id_col is None:
        id_col = DATASET.ID_COL

    counts = df.groupby(id_col).size()
    keep = counts[counts >= min_obs].index
    n_dropped = len(counts) - len(keep)
    df_out = df[df[id_col].isin(keep)].copy()

    print(f"Participants with >= {min_obs} records: {len(keep):,} "
          f"(dropped {n_dropped:,} participants, {len(df) - len(df_out):,} records)")
    return df_out


# === 6. FULL CLEANING CHAIN ===

def clean_observations(df: pd.DataFrame,
                       min_obs: int | None = None) -> pd.DataFrame:
    """
    End-to-end cleaning of the raw records.

    Pipeline: normalise outcome -> drop sentinel -> coerce types ->
    drop duplicate rows -> derive target -> drop missing target -> filter participants.

    Returns:
        Cleaned DataFrame with a y_stairs column.
    """
    target = DATASET.TARGET_DERIVED

    print(f"Starting records: {len(df):,}")
    df_out = normalize_outcome(df)
    df_out = drop_sentinel(df_out)
    df_out = coerce_types(df_out)

    # Labels differing only in case or whitespace are equal after coercion
    n_before = len(df_out)
    df_out = df_out.drop_duplicates()
    print(f"Dropped {n_before - len(df_out):,} duplicate records")

    df_out[target] = create_target_variable(df_out)
    df_out = df_out[df_out[target].notna()].copy()
    df_out[target] = df_out[target].astype(int)
    print(f"After target filter: {len(df_out):,}")

    df_out = filter_min_observations(df_out, min_obs=min_obs)
    print(f"Final records: {len(df_out):,}")
    return df_out.reset_index(drop=True)


# === 7. DATA-QUALITY ASSERTIONS ===

def assert_clean_data(df: pd.DataFrame, min_obs: int | None = None) -> dict:
    """
    Run data-quality assertions on cleaned records.
    Raises AssertionError on failure; returns summary dict.
    """
    if min_obs is None:
        min_obs = DATASET.MIN_OBS
    id_col = DATASET.ID_COL
    target = DATASET.TARGET_DERIVED
    results = {}

    assert id_col in df.columns, f"Id column '{id_col}' not in data"
    assert target in df.columns, f"Target column '{target}' not in data"

    values = set(df[target].unique())
    assert values.issubset({0, 1}), f"Unexpected target values: {values - {0, 1}}"
    results["target_counts"] = {int(k): int(v) for k, v in df[target].value_counts().items()}

    n_dup = int(df.duplicated().sum())
    assert n_dup == 0, f"{n_dup} duplicate rows remain"

    counts = df.groupby(id_col).size()
    assert (counts >= min_obs).all(), (
        f"{int((counts < min_obs).sum())} participants have fewer than {min_obs} records"
    )

    results["n_records"] = len(df)
    results["n_participants"] = int(counts.size)
    results["records_per_participant_min"] = int(counts.min()) if len(counts) else 0
    results["records_per_participant_max"] = int(counts.max()) if len(counts) else 0
    results["stairs_rate"] = float(df[target].mean()) if len(df) else float("nan")

    print("[OK] All data-quality assertions passed")
    return results
