"""
EDA Module for the stairs vs. elevator analysis
=================================================
  - Records and stairs rate per participant
  - Stairs rate by level of categorical predictors
  - Numeric predictor summaries by outcome
  - Figures for the above
"""

import pandas as pd
import numpy as np
import matplotlib
matplotlib.use("Agg")  # non-interactive backend for scripts
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path

from stairchoice.config import DATASET, get_output_dir


# ===================================================================
# 1. PARTICIPANT-LEVEL SUMMARIES
# ===================================================================

def participant_summary(df: pd.DataFrame) -> pd.DataFrame:
    """
    Per-participant record count and stairs rate.

    Returns DataFrame: participant, n_records, n_stairs, stairs_rate.
    """
    id_col = DATASET.ID_COL
    target = DATASET.TARGET_DERIVED

    summary = (
        df.groupby(id_col)[target]
        .agg(n_records="size", n_stairs="sum", stairs_rate="mean")
        .reset_index()
        .rename(columns={id_col: "participant"})
    )
    summary["stairs_rate"] = summary["stairs_rate"].round(4)
    return summary.sort_values("stairs_rate", ascending=False).reset_index(drop=True)


# ===================================================================
# 2. OUTCOME RATES BY PREDICTOR
# ===================================================================

def outcome_by_level(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """
    Stairs rate by each level of a categorical predictor.

    Returns DataFrame: value, n_records, n_participants, stairs_rate, stairs_pct.
    """
    id_col = DATASET.ID_COL
    target = DATASET.TARGET_DERIVED

    valid = df[df[column].notna()]
    rows = []
    for val in sorted(valid[column].unique(), key=str):
        subset = valid[valid[column] == val]
        rate = subset[target].mean()
        rows.append({
            "value": val,
            "n_records": len(subset),
            "n_participants": int(subset[id_col].nunique()),
            "stairs_rate": round(rate, 4),
            "stairs_pct": round(rate * 100, 1),
        })
    return pd.DataFrame(rows)


def all_level_tables(df: pd.DataFrame, columns: list[str]) -> dict[str, pd.DataFrame]:
    """Outcome rates for a list of categorical predictors."""
    return {col: outcome_by_level(df, col) for col in columns if col in df.columns}


def numeric_by_outcome(df: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    """Mean, median and sd of numeric predictors for stairs vs. elevator records."""
    target = DATASET.TARGET_DERIVED
    labels = {1: DATASET.POSITIVE_CLASS, 0: DATASET.NEGATIVE_CLASS}

    rows = []
    for col in columns:
        if col not in df.columns:
            continue
        for code, grp in df.groupby(target):
            vals = grp[col].dropna()
            rows.append({
                "variable": col,
                "outcome": labels.get(int(code), code),
                "n": len(vals),
                "mean": round(vals.mean(), 3) if len(vals) else np.nan,
                "median": round(vals.median(), 3) if len(vals) else np.nan,
                "sd": round(vals.std(), 3) if len(vals) > 1 else np.nan,
            })
    return pd.DataFrame(rows)


# ===================================================================
# 3. FIGURES
# ===================================================================

def plot_participant_rates(summary: pd.DataFrame, save_dir: Path | None = None) -> Path:
    """Histogram of per-participant stairs rates."""
    if save_dir is None:
        save_dir = get_output_dir("figures")

    fig, ax = plt.subplots(figsize=(7, 4.5))
    sns.histplot(summary["stairs_rate"], bins=20, color="#4C72B0", ax=ax)
    ax.axvline(summary["stairs_rate"].mean(), color="red", linestyle="--",
               label=f"Mean = {summary['stairs_rate'].mean():.2f}")
    ax.set_xlabel("Stairs rate per participant")
    ax.set_ylabel("Participants")
    ax.set_title("Between-participant variation in stair use", fontweight="bold")
    ax.legend(fontsize=8)
    plt.tight_layout()
    path = Path(save_dir) / "participant_stairs_rate.png"
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close()
    return path


def plot_outcome_by_level(tables: dict[str, pd.DataFrame],
                          codebook: dict | None = None,
                          save_dir: Path | None = None) -> list[Path]:
    """Bar chart of stairs rate per level, one figure per predictor."""
    if save_dir is None:
        save_dir = get_output_dir("figures")
    codebook = codebook or {}

    paths = []
    for var, tbl in tables.items():
        if tbl.empty:
            continue
        fig, ax = plt.subplots(figsize=(6, 4))
        sns.barplot(x=tbl["value"].astype(str), y=tbl["stairs_pct"], color="#4C72B0", ax=ax)
        for i, (pct, n) in enumerate(zip(tbl["stairs_pct"], tbl["n_records"])):
            ax.text(i, pct + 1, f"{pct:.0f}%\n(n={n})", ha="center", fontsize=7)
        ax.set_ylim(0, 110)
        ax.set_xlabel("")
        ax.set_ylabel("Stairs (%)")
        ax.set_title(codebook.get(var, var), fontweight="bold")
        plt.tight_layout()
        path = Path(save_dir) / f"stairs_by_{var}.png"
        plt.savefig(path, dpi=150, bbox_inches="tight")
        plt.close()
        paths.append(path)
    return paths
