"""
Interpretability Module for the stairs vs. elevator analysis
Permutation importance, tree rules, leaf and random-effect summaries.
"""

import pandas as pd
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from pathlib import Path
from joblib import Parallel, delayed
from scipy import stats
from scipy.special import expit
from sklearn.metrics import roc_auc_score
from sklearn.tree import export_text

from stairchoice.config import cfg, get_output_dir
from stairchoice.modeling import MixedEffectsTreeClassifier


# === 1. PERMUTATION IMPORTANCE ===

def _permuted_auc(workflow, df, y_true, column, seed):
    rng = np.random.default_rng(seed)
    shuffled = df.copy()
    shuffled[column] = rng.permutation(shuffled[column].to_numpy())
    return roc_auc_score(y_true, workflow.predict_proba(shuffled))


def compute_permutation_importance(workflow, df, predictors=None, n_repeats=None,
                                   random_state=None, n_jobs=None):
    """
    Drop in ROC AUC when one raw predictor is shuffled.

    Each predictor is permuted across all records, passed through the full
    recipe + model workflow and re-scored; this is repeated n_repeats times.
    Every (predictor, repeat) task gets its own seed spawned from
    random_state, so results do not depend on how tasks are scheduled.

    Args:
        workflow: Fitted ChoiceWorkflow.
        df: Held-out records with target column.
        predictors: Raw predictors to permute (default: workflow predictors).
        n_repeats: Shuffles per predictor (default from config).
        random_state: Seed (default from config).
        n_jobs: joblib workers (default from config).

    Returns:
        importance_df (one row per predictor, ranked), repeats_df (long form).
    """
    if predictors is None:
        predictors = workflow.predictors
    if n_repeats is None:
        n_repeats = cfg["importance"]["n_repeats"]
    if random_state is None:
        random_state = cfg["modeling"]["random_seed"]
    if n_jobs is None:
        n_jobs = cfg["importance"]["n_jobs"]

    y_true = df[workflow.target_col].to_numpy()
    baseline = roc_auc_score(y_true, workflow.predict_proba(df))

    seeds = np.random.SeedSequence(random_state).generate_state(len(predictors) * n_repeats)
    tasks = [
        (col, int(seeds[i * n_repeats + r]))
        for i, col in enumerate(predictors)
        for r in range(n_repeats)
    ]

    scores = Parallel(n_jobs=n_jobs)(
        delayed(_permuted_auc)(workflow, df, y_true, col, seed) for col, seed in tasks
    )
    scores = np.asarray(scores, dtype=float).reshape(len(predictors), n_repeats)
    drops = baseline - scores

    importance_df = pd.DataFrame({
        "variable": predictors,
        "baseline_auc": baseline,
        "permuted_auc_mean": scores.mean(axis=1),
        "importance_mean": drops.mean(axis=1),
        "importance_std": drops.std(axis=1),
    }).sort_values("importance_mean", ascending=False).reset_index(drop=True)
    importance_df["rank"] = range(1, len(importance_df) + 1)

    repeats_df = pd.DataFrame({
        "variable": np.repeat(predictors, n_repeats),
        "repeat": np.tile(np.arange(n_repeats), len(predictors)),
        "permuted_auc": scores.ravel(),
        "auc_drop": drops.ravel(),
    })

    return importance_df, repeats_df


# === 2. TREE SPLIT IMPORTANCE ===

def _fitted_tree(model):
    return model.tree_ if isinstance(model, MixedEffectsTreeClassifier) else model


def _raw_predictor(feature: str, predictors: list[str]) -> str:
    matches = [p for p in predictors if feature == p or feature.startswith(f"{p}_")]
    return max(matches, key=len) if matches else feature


def tree_split_importance(workflow) -> pd.DataFrame:
    """Impurity importance of the fitted tree, summed back to raw predictors."""
    model = workflow.model
    tree = _fitted_tree(model)
    if not hasattr(tree, "feature_importances_"):
        raise ValueError(f"{type(model).__name__} has no tree to take importances from.")

    predictors = workflow.predictors
    encoded = pd.DataFrame({
        "feature": workflow.feature_names_,
        "importance": tree.feature_importances_,
    })
    encoded["variable"] = [_raw_predictor(f, predictors) for f in encoded["feature"]]

    summary = encoded.groupby("variable", as_index=False)["importance"].sum()
    summary = pd.DataFrame({"variable": predictors}).merge(summary, on="variable", how="left")
    summary["importance"] = summary["importance"].fillna(0.0)
    summary = summary.sort_values("importance", ascending=False).reset_index(drop=True)
    summary["rank"] = range(1, len(summary) + 1)
    return summary


def compare_importance_methods(perm_importance, split_importance):
    comparison = perm_importance[["variable", "rank"]].merge(
        split_importance[["variable", "rank"]],
        on="variable",
        suffixes=("_perm", "_split"),
    )
    comparison["rank_diff"] = abs(comparison["rank_perm"] - comparison["rank_split"])

    spearman_corr, p_value = stats.spearmanr(comparison["rank_perm"], comparison["rank_split"])
    return comparison, spearman_corr, p_value


# === 3. TREE STRUCTURE ===

def describe_tree(workflow) -> str:
    """Text rules of the fixed-effects partition."""
    tree = _fitted_tree(workflow.model)
    return export_text(tree, feature_names=workflow.feature_names_, decimals=2)


def leaf_summary(workflow, df) -> pd.DataFrame:
    """
    Per-leaf record count, observed stairs rate and fitted log-odds.
    Requires a MixedEffectsTreeClassifier workflow.
    """
    model = workflow.model
    leaf_col = model.apply(workflow.transform(df))
    y = df[workflow.target_col].to_numpy()

    rows = []
    for k, leaf_id in enumerate(model.leaf_ids_):
        mask = leaf_col == k
        rows.append({
            "leaf": int(leaf_id),
            "n_records": int(mask.sum()),
            "observed_stairs_rate": float(y[mask].mean()) if mask.any() else np.nan,
            "log_odds": float(model.leaf_log_odds_[k]),
            "log_odds_sd": float(model.leaf_log_odds_sd_[k]),
            "probability": float(expit(model.leaf_log_odds_[k])),
        })
    return pd.DataFrame(rows)


# === 4. RANDOM EFFECTS ===

def summarize_random_effects(model) -> tuple[pd.DataFrame, dict]:
    """
    Per-participant random intercepts and variance summary.

    ICC is on the latent logistic scale: sigma^2 / (sigma^2 + pi^2 / 3).
    """
    intercepts = pd.DataFrame({
        "participant": model.random_effects_.index,
        "random_intercept": model.random_effects_.to_numpy(),
        "random_intercept_sd": model.random_effects_sd_.to_numpy(),
    }).sort_values("random_intercept", ascending=False).reset_index(drop=True)

    sigma = model.random_effect_sd_
    variance = sigma ** 2
    summary = {
        "n_participants": int(len(intercepts)),
        "random_intercept_sd": float(sigma),
        "random_intercept_variance": float(variance),
        "icc_latent": float(variance / (variance + np.pi ** 2 / 3)),
        "intercept_min": float(intercepts["random_intercept"].min()),
        "intercept_max": float(intercepts["random_intercept"].max()),
    }
    return intercepts, summary


# === 5. FIGURES ===

def plot_permutation_importance(importance_df, codebook=None, save_path=None, show=False):
    """Horizontal bar chart of AUC drop with std error bars."""
    if save_path is None:
        save_path = get_output_dir("figures") / "permutation_importance.png"
    codebook = codebook or {}

    df = importance_df.sort_values("importance_mean", ascending=True)
    labels = [codebook.get(v, v) for v in df["variable"]]

    fig, ax = plt.subplots(figsize=(8, max(4, len(df) * 0.4)))
    colors = ["#4C72B0" if v > 0 else "#999999" for v in df["importance_mean"]]
    ax.barh(range(len(df)), df["importance_mean"], xerr=df["importance_std"],
            color=colors, ecolor="#555555", capsize=3)
    ax.axvline(0, color="black", linewidth=0.8)
    ax.set_yticks(range(len(df)))
    ax.set_yticklabels(labels, fontsize=8)
    ax.set_xlabel("Mean decrease in ROC AUC when permuted")
    ax.set_title("Permutation Importance", fontweight="bold")
    ax.grid(axis="x", alpha=0.3)
    plt.tight_layout()

    plt.savefig(save_path, dpi=150, bbox_inches="tight")
    if show:
        plt.show()
    plt.close()
    return Path(save_path)
