"""
Preprocessing module for the stairs vs. elevator analysis.
Participant-grouped splitting, grouped CV folds, the feature recipe and
missingness summaries.
"""

import pandas as pd
import numpy as np
from sklearn.model_selection import GroupShuffleSplit, GroupKFold
from sklearn.pipeline import Pipeline
from sklearn.compose import ColumnTransformer
from sklearn.impute import SimpleImputer, KNNImputer
from sklearn.preprocessing import OneHotEncoder, StandardScaler, FunctionTransformer
from sklearn.feature_selection import VarianceThreshold

from stairchoice.config import cfg, DATASET, get_encoding


# === 1. GROUPED TRAIN/TEST SPLIT ===

def grouped_train_test_split(df: pd.DataFrame,
                             test_size: float | None = None,
                             random_state: int | None = None,
                             id_col: str | None = None) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split records so every participant lands wholly in train or test.

    Args:
        df: Cleaned records.
        test_size: Fraction of participants held out (default from config).
        random_state: Seed (default from config).
        id_col: Participant column (default from config).

    Returns:
        train_df, test_df (indices reset).
    """
    if test_size is None:
        test_size = cfg["modeling"]["test_size"]
    if random_state is None:
        random_state = cfg["modeling"]["random_seed"]
    if id_col is None:
        id_col = DATASET.ID_COL

    n_groups = df[id_col].nunique()
    if n_groups < 2:
        raise ValueError(f"Need at least 2 participants to split, got {n_groups}.")

    splitter = GroupShuffleSplit(n_splits=1, test_size=test_size, random_state=random_state)
    train_idx, test_idx = next(splitter.split(df, groups=df[id_col]))

    train_df = df.iloc[train_idx].reset_index(drop=True)
    test_df = df.iloc[test_idx].reset_index(drop=True)

    print(f"Train: {len(train_df):,} records / {train_df[id_col].nunique():,} participants")
    print(f"Test:  {len(test_df):,} records / {test_df[id_col].nunique():,} participants")
    return train_df, test_df


def assert_disjoint_groups(train_df: pd.DataFrame,
                           test_df: pd.DataFrame,
                           id_col: str | None = None) -> dict:
    """Assert no participant appears in both partitions."""
    if id_col is None:
        id_col = DATASET.ID_COL

    overlap = set(train_df[id_col]) & set(test_df[id_col])
    assert not overlap, f"{len(overlap)} participants appear in both train and test"

    print("[OK] Train/test participants are disjoint")
    return {
        "n_train_participants": int(train_df[id_col].nunique()),
        "n_test_participants": int(test_df[id_col].nunique()),
        "n_overlap": 0,
    }


def create_group_cv_folds(n_splits: int | None = None) -> GroupKFold:
    """Participant-grouped K-fold cross-validation."""
    if n_splits is None:
        n_splits = cfg["modeling"]["cv_folds"]
    return GroupKFold(n_splits=n_splits)


# === 2. FEATURE RECIPE ===

def _to_float(X):
    return X.astype(float)


def build_recipe(nominal: list[str] | None = None,
                 binary: list[str] | None = None,
                 numeric: list[str] | None = None,
                 knn_neighbors: int | None = None,
                 variance_threshold: float | None = None) -> Pipeline:
    """
    Declarative preprocessing recipe, fitted on training data only.

    Steps: mode imputation (nominal + binary) and one-hot encoding of
    nominals -> coercion to float -> k-NN imputation -> standardisation ->
    zero-variance removal. Output is a pandas DataFrame.
    """
    if nominal is None:
        nominal = get_encoding("nominal")
    if binary is None:
        binary = get_encoding("binary")
    if numeric is None:
        numeric = get_encoding("numeric")
    if knn_neighbors is None:
        knn_neighbors = cfg["recipe"]["knn_neighbors"]
    if variance_threshold is None:
        variance_threshold = cfg["recipe"]["variance_threshold"]

    nominal_steps = Pipeline([
        ("impute_mode", SimpleImputer(strategy="most_frequent")),
        ("one_hot", OneHotEncoder(handle_unknown="ignore", sparse_output=False)),
    ])

    transformers = []
    if nominal:
        transformers.append(("nominal", nominal_steps, list(nominal)))
    if binary:
        transformers.append(("binary", SimpleImputer(strategy="most_frequent"), list(binary)))
    if numeric:
        transformers.append(("numeric", "passthrough", list(numeric)))
    if not transformers:
        raise ValueError("Recipe needs at least one nominal, binary or numeric predictor.")

    columns = ColumnTransformer(
        transformers,
        remainder="drop",
        verbose_feature_names_out=False,
    )

    recipe = Pipeline([
        ("columns", columns),
        ("coerce", FunctionTransformer(_to_float, feature_names_out="one-to-one")),
        ("impute_knn", KNNImputer(n_neighbors=knn_neighbors)),
        ("scale", StandardScaler()),
        ("drop_zero_variance", VarianceThreshold(threshold=variance_threshold)),
    ])
    recipe.set_output(transform="pandas")
    return recipe


def recipe_predictors(recipe: Pipeline) -> list[str]:
    """Raw predictor columns a recipe consumes, in transformer order."""
    columns = recipe.named_steps["columns"]
    cols = []
    for _, _, selected in columns.transformers:
        cols.extend(selected)
    return cols


# === 3. MISSINGNESS ===

def compute_missingness_rates(df: pd.DataFrame,
                              features: list[str]) -> pd.DataFrame:
    """
    Per-variable missingness counts and percentages.

    Returns DataFrame with columns: variable, n_total, n_missing,
    pct_missing, n_participants_missing; sorted descending.
    """
    id_col = DATASET.ID_COL
    rows = []

    for col in features:
        if col not in df.columns:
            continue
        missing = df[col].isna()
        n_total = len(df)
        n_missing = int(missing.sum())
        n_part = int(df.loc[missing, id_col].nunique()) if id_col in df.columns else np.nan
        rows.append({
            "variable": col,
            "n_total": n_total,
            "n_missing": n_missing,
            "pct_missing": round(n_missing / n_total * 100, 2) if n_total else 0.0,
            "n_participants_missing": n_part,
        })

    if not rows:
        return pd.DataFrame(
            columns=["variable", "n_total", "n_missing", "pct_missing", "n_participants_missing"]
        )
    return pd.DataFrame(rows).sort_values("pct_missing", ascending=False).reset_index(drop=True)
