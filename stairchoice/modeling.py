"""
Modeling module for the stairs vs. elevator analysis.

Generalized linear mixed-effects model tree (random intercept per
participant, tree-structured fixed effects), the recipe + model workflow,
pooled baselines, grouped cross-validation and comparison figures.
"""

import inspect
import warnings

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from pathlib import Path
from joblib import Parallel, delayed
from scipy import sparse
from scipy.special import expit, logit
from sklearn.base import BaseEstimator, ClassifierMixin, clone
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import LogisticRegression
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor
from sklearn.utils.validation import check_is_fitted
from statsmodels.genmod.bayes_mixed_glm import BinomialBayesMixedGLM

from stairchoice.config import cfg, DATASET, get_output_dir, get_tree_params
from stairchoice.evaluation import compute_all_metrics
from stairchoice.preprocessing import build_recipe, create_group_cv_folds, recipe_predictors


# ===================================================================
# 1. MIXED-EFFECTS MODEL TREE
# ===================================================================

class MixedEffectsTreeClassifier(ClassifierMixin, BaseEstimator):
    """
    Binary GLMM tree: logit P(y=1) = leaf log-odds + participant intercept.

    Fitting alternates two steps until the random intercepts settle:

    1. Tree step: a weighted regression tree is grown on the IRLS working
       response of the fixed part, holding the current random intercepts
       as an offset.
    2. Mixed-model step: a binomial GLMM with one fixed log-odds per tree
       leaf and a random intercept per group is fitted by variational Bayes
       (statsmodels BinomialBayesMixedGLM).

    Args:
        max_depth: Maximum tree depth.
        min_samples_leaf: Minimum records per leaf.
        max_iter: Maximum number of alternations.
        tol: Convergence tolerance on the largest random-intercept change.
        vcp_p: Prior sd of the log random-effect sd.
        fe_p: Prior sd of the leaf log-odds.
        random_state: Seed for the tree.
    """

    def __init__(self, max_depth=3, min_samples_leaf=30, max_iter=20, tol=1e-3,
                 vcp_p=1.0, fe_p=2.0, random_state=None):
        self.max_depth = max_depth
        self.min_samples_leaf = min_samples_leaf
        self.max_iter = max_iter
        self.tol = tol
        self.vcp_p = vcp_p
        self.fe_p = fe_p
        self.random_state = random_state

    def fit(self, X, y, groups):
        if self.max_iter < 1:
            raise ValueError(f"max_iter must be at least 1, got {self.max_iter}.")

        X_arr = np.asarray(X, dtype=float)
        y_arr = np.asarray(y, dtype=float)
        groups = np.asarray(groups)

        if X_arr.shape[0] != y_arr.shape[0] or X_arr.shape[0] != groups.shape[0]:
            raise ValueError("X, y and groups must have the same number of rows.")
        if set(np.unique(y_arr)) != {0.0, 1.0}:
            raise ValueError(f"y must contain both classes 0 and 1, got {np.unique(y_arr)}.")

        if hasattr(X, "columns"):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        self.n_features_in_ = X_arr.shape[1]
        self.classes_ = np.array([0, 1])

        n = len(y_arr)
        self.group_levels_, group_idx = np.unique(groups, return_inverse=True)
        n_groups = len(self.group_levels_)
        Z = sparse.csr_matrix(
            (np.ones(n), (np.arange(n), group_idx)), shape=(n, n_groups)
        )

        b = np.zeros(n_groups)
        eta_fixed = np.full(n, logit(np.clip(y_arr.mean(), 0.01, 0.99)))
        self.converged_ = False

        for it in range(1, self.max_iter + 1):
            # Tree step: partition the fixed part given the random-intercept offset
            p = np.clip(expit(eta_fixed + b[group_idx]), 0.01, 0.99)
            w = p * (1.0 - p)
            z = eta_fixed + (y_arr - p) / w

            tree = DecisionTreeRegressor(
                max_depth=self.max_depth,
                min_samples_leaf=self.min_samples_leaf,
                random_state=self.random_state,
            )
            tree.fit(X_arr, z, sample_weight=w)

            leaves = tree.apply(X_arr)
            leaf_ids = np.unique(leaves)
            exog = (leaves[:, None] == leaf_ids[None, :]).astype(float)

            # Mixed-model step: leaf log-odds + random intercept per group
            glmm = BinomialBayesMixedGLM(
                y_arr, exog, Z, np.zeros(n_groups, dtype=int),
                vcp_p=self.vcp_p, fe_p=self.fe_p,
                fep_names=[f"leaf_{k}" for k in leaf_ids],
            )
            result = glmm.fit_vb()

            b_new = np.asarray(result.vc_mean)
            eta_fixed = exog @ np.asarray(result.fe_mean)
            delta = float(np.max(np.abs(b_new - b))) if n_groups else 0.0
            b = b_new

            if delta < self.tol:
                self.converged_ = True
                break

        if not self.converged_:
            warnings.warn(
                f"MixedEffectsTreeClassifier did not converge in {self.max_iter} "
                f"iterations (last random-intercept change {delta:.2e}).",
                ConvergenceWarning,
            )

        self.n_iter_ = it
        self.tree_ = tree
        self.leaf_ids_ = leaf_ids
        self.leaf_log_odds_ = np.asarray(result.fe_mean)
        self.leaf_log_odds_sd_ = np.asarray(result.fe_sd)
        self.random_effects_ = pd.Series(b, index=self.group_levels_, name="random_intercept")
        self.random_effects_sd_ = pd.Series(
            np.asarray(result.vc_sd), index=self.group_levels_, name="random_intercept_sd"
        )
        self.random_effect_sd_ = float(np.exp(result.vcp_mean[0]))
        return self

    def apply(self, X):
        """Column index into leaf_ids_ for each row of X."""
        check_is_fitted(self, "tree_")
        leaves = self.tree_.apply(np.asarray(X, dtype=float))
        return np.searchsorted(self.leaf_ids_, leaves)

    def decision_function(self, X, groups=None):
        """Linear predictor: leaf log-odds plus random intercept (0 if unseen)."""
        check_is_fitted(self, "tree_")
        eta = self.leaf_log_odds_[self.apply(X)]
        if groups is not None:
            re = self.random_effects_.reindex(np.asarray(groups)).fillna(0.0).to_numpy()
            eta = eta + re
        return eta

    def predict_proba(self, X, groups=None):
        p = expit(self.decision_function(X, groups=groups))
        return np.column_stack([1.0 - p, p])

    def predict(self, X, groups=None, threshold=0.5):
        return (self.predict_proba(X, groups=groups)[:, 1] >= threshold).astype(int)


# ===================================================================
# 2. RECIPE + MODEL WORKFLOW
# ===================================================================

def _accepts_groups(model) -> bool:
    return "groups" in inspect.signature(model.fit).parameters


class ChoiceWorkflow:
    """Recipe and model fitted and scored as one unit on raw record frames."""

    def __init__(self, recipe, model, id_col: str | None = None,
                 target_col: str | None = None):
        self.recipe = recipe
        self.model = model
        self.id_col = id_col or DATASET.ID_COL
        self.target_col = target_col or DATASET.TARGET_DERIVED

    @property
    def predictors(self) -> list[str]:
        return recipe_predictors(self.recipe)

    @property
    def uses_groups(self) -> bool:
        return _accepts_groups(self.model)

    @property
    def feature_names_(self) -> list[str]:
        return list(self.recipe.get_feature_names_out())

    def fit(self, df: pd.DataFrame) -> "ChoiceWorkflow":
        X = self.recipe.fit_transform(df[self.predictors])
        y = df[self.target_col].to_numpy()
        if self.uses_groups:
            self.model.fit(X, y, groups=df[self.id_col].to_numpy())
        else:
            self.model.fit(X, y)
        return self

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.recipe.transform(df[self.predictors])

    def predict_proba(self, df: pd.DataFrame) -> np.ndarray:
        """P(stairs) per record."""
        X = self.transform(df)
        if self.uses_groups:
            return self.model.predict_proba(X, groups=df[self.id_col].to_numpy())[:, 1]
        return self.model.predict_proba(X)[:, 1]

    def predict(self, df: pd.DataFrame, threshold: float = 0.5) -> np.ndarray:
        return (self.predict_proba(df) >= threshold).astype(int)


def make_mixed_tree(**params) -> MixedEffectsTreeClassifier:
    """Mixed-effects tree with config hyper-parameters, overridable by keyword."""
    tree_params = get_tree_params()
    tree_params.update(params)
    tree_params.setdefault("random_state", cfg["modeling"]["random_seed"])
    return MixedEffectsTreeClassifier(**tree_params)


def fit_mixed_tree_workflow(train_df: pd.DataFrame, **params) -> ChoiceWorkflow:
    """Fit recipe + mixed-effects tree on training records."""
    workflow = ChoiceWorkflow(build_recipe(), make_mixed_tree(**params))
    workflow.fit(train_df)
    model = workflow.model
    status = "converged" if model.converged_ else "NOT converged"
    print(f"  Mixed-effects tree: {len(model.leaf_ids_)} leaves, "
          f"{model.n_iter_} iterations ({status}), "
          f"random-intercept sd = {model.random_effect_sd_:.3f}")
    return workflow


def fit_baseline_workflows(train_df: pd.DataFrame,
                           seed: int | None = None) -> dict[str, ChoiceWorkflow]:
    """Pooled baselines that ignore the participant grouping."""
    if seed is None:
        seed = cfg["modeling"]["random_seed"]
    tree_params = get_tree_params()

    baselines = {
        "Logistic (pooled)": LogisticRegression(
            penalty="l2", C=1.0, max_iter=2000, solver="lbfgs", random_state=seed,
        ),
        "Tree (pooled)": DecisionTreeClassifier(
            max_depth=tree_params["max_depth"],
            min_samples_leaf=tree_params["min_samples_leaf"],
            random_state=seed,
        ),
    }

    fitted = {}
    for name, model in baselines.items():
        fitted[name] = ChoiceWorkflow(build_recipe(), model).fit(train_df)
    return fitted


# ===================================================================
# 3. EVALUATION ON TEST SET / GROUPED CV
# ===================================================================

def evaluate_on_test(
    workflow: ChoiceWorkflow,
    test_df: pd.DataFrame,
    model_name: str = "Model",
    threshold: float | None = None,
) -> dict:
    """
    Evaluate a fitted workflow on held-out records.

    Returns dict with all metrics plus y_prob for plotting.
    """
    if threshold is None:
        threshold = cfg["modeling"]["threshold"]

    y_true = test_df[workflow.target_col].to_numpy()
    y_prob = workflow.predict_proba(test_df)
    y_pred = (y_prob >= threshold).astype(int)

    metrics = compute_all_metrics(y_true, y_prob, y_pred)
    metrics["model"] = model_name
    metrics["threshold"] = threshold
    metrics["n_test"] = len(y_true)
    metrics["y_true"] = y_true
    metrics["y_prob"] = y_prob
    metrics["y_pred"] = y_pred
    return metrics


def _fit_and_score_fold(make_workflow, df, train_idx, val_idx, threshold):
    train = df.iloc[train_idx]
    val = df.iloc[val_idx]
    workflow = make_workflow().fit(train)
    y_val = val[workflow.target_col].to_numpy()
    y_prob = workflow.predict_proba(val)
    y_pred = (y_prob >= threshold).astype(int)
    return compute_all_metrics(y_val, y_prob, y_pred)


def cv_evaluate(
    make_workflow,
    df: pd.DataFrame,
    n_folds: int | None = None,
    model_name: str = "Model",
    threshold: float | None = None,
    n_jobs: int | None = None,
) -> dict:
    """
    Participant-grouped K-fold CV; folds are fitted on a joblib worker pool.

    Args:
        make_workflow: Zero-argument callable returning an unfitted ChoiceWorkflow.
        df: Cleaned records.

    Returns dict: metric means and stds.
    """
    if threshold is None:
        threshold = cfg["modeling"]["threshold"]

    cv = create_group_cv_folds(n_folds)
    splits = list(cv.split(df, groups=df[DATASET.ID_COL]))

    fold_metrics = Parallel(n_jobs=n_jobs)(
        delayed(_fit_and_score_fold)(make_workflow, df, tr, va, threshold)
        for tr, va in splits
    )

    summary = {"model": model_name, "n_folds": len(splits)}
    for k in fold_metrics[0].keys():
        vals = [fm[k] for fm in fold_metrics if isinstance(fm[k], (int, float))]
        if vals:
            summary[f"{k}_mean"] = float(np.nanmean(vals))
            summary[f"{k}_std"] = float(np.nanstd(vals))
    return summary


def clone_workflow(workflow: ChoiceWorkflow) -> ChoiceWorkflow:
    """Unfitted copy of a workflow with the same recipe and model settings."""
    return ChoiceWorkflow(clone(workflow.recipe), clone(workflow.model),
                          id_col=workflow.id_col, target_col=workflow.target_col)


# ===================================================================
# 4. MODEL COMPARISON TABLE
# ===================================================================

def model_comparison_table(results: list[dict]) -> pd.DataFrame:
    """
    Build a comparison table from a list of test-set evaluation dicts.

    Returns tidy DataFrame with one row per model.
    """
    display_cols = [
        "model", "n_test", "threshold",
        "roc_auc", "pr_auc", "brier", "log_loss", "ece",
        "accuracy", "balanced_accuracy", "sensitivity", "specificity", "f1",
    ]
    rows = [{k: r.get(k, None) for k in display_cols} for r in results]

    df = pd.DataFrame(rows)
    for c in df.columns:
        if df[c].dtype == float:
            df[c] = df[c].round(4)
    return df


# ===================================================================
# 5. FIGURES
# ===================================================================

COLORS = ["#4C72B0", "#D9534F", "#5CB85C", "#F0AD4E", "#9467BD"]


def plot_roc_comparison(
    roc_data: list[dict],
    save_dir: Path | None = None,
) -> Path:
    """Plot ROC curves for multiple models."""
    from sklearn.metrics import roc_curve, auc

    if save_dir is None:
        save_dir = get_output_dir("figures")

    fig, ax = plt.subplots(figsize=(7, 6))
    ax.plot([0, 1], [0, 1], "k--", alpha=0.5, label="Random")

    for i, entry in enumerate(roc_data):
        fpr, tpr, _ = roc_curve(np.asarray(entry["y_true"]), np.asarray(entry["y_prob"]))
        ax.plot(fpr, tpr, color=COLORS[i % len(COLORS)],
                label=f"{entry['model_name']} (AUC={auc(fpr, tpr):.3f})")

    ax.set_xlabel("False Positive Rate")
    ax.set_ylabel("True Positive Rate")
    ax.set_title("ROC Curves", fontweight="bold")
    ax.legend(fontsize=8)
    ax.grid(alpha=0.3)
    plt.tight_layout()
    path = Path(save_dir) / "roc_comparison.png"
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close()
    return path


def plot_pr_comparison(
    pr_data: list[dict],
    save_dir: Path | None = None,
) -> Path:
    """Plot precision-recall curves for multiple models."""
    from sklearn.metrics import precision_recall_curve, average_precision_score

    if save_dir is None:
        save_dir = get_output_dir("figures")

    fig, ax = plt.subplots(figsize=(7, 6))

    prevalence = None
    for i, entry in enumerate(pr_data):
        y_true = np.asarray(entry["y_true"])
        y_prob = np.asarray(entry["y_prob"])
        precision, recall, _ = precision_recall_curve(y_true, y_prob)
        ap = average_precision_score(y_true, y_prob)
        ax.plot(recall, precision, color=COLORS[i % len(COLORS)],
                label=f"{entry['model_name']} (AP={ap:.3f})")
        prevalence = y_true.mean()

    if prevalence is not None:
        ax.axhline(prevalence, color="k", linestyle="--", alpha=0.5,
                   label=f"Prevalence ({prevalence:.2f})")

    ax.set_xlabel("Recall")
    ax.set_ylabel("Precision")
    ax.set_title("Precision-Recall Curves", fontweight="bold")
    ax.legend(fontsize=8)
    ax.grid(alpha=0.3)
    plt.tight_layout()
    path = Path(save_dir) / "pr_comparison.png"
    plt.savefig(path, dpi=150, bbox_inches="tight")
    plt.close()
    return path
