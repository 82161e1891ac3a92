"""
Phase 2 -- Modeling Pipeline (mixed-effects tree + pooled baselines)
"""

import json
import numpy as np
import pandas as pd

from stairchoice.config import cfg, DATASET, set_global_seed, get_output_dir
from stairchoice.data_loading import load_observations, load_codebook, clean_observations, assert_clean_data
from stairchoice.preprocessing import grouped_train_test_split, assert_disjoint_groups, build_recipe
from stairchoice.modeling import (
    ChoiceWorkflow,
    make_mixed_tree,
    fit_mixed_tree_workflow,
    fit_baseline_workflows,
    evaluate_on_test,
    cv_evaluate,
    model_comparison_table,
    plot_roc_comparison,
    plot_pr_comparison,
)
from stairchoice.evaluation import confusion_table, metric_table, find_optimal_threshold_youden
from stairchoice.interpretability import (
    compute_permutation_importance,
    tree_split_importance,
    compare_importance_methods,
    describe_tree,
    leaf_summary,
    summarize_random_effects,
    plot_permutation_importance,
)

set_global_seed()
print("=" * 65)
print("PHASE 2 -- Modeling Pipeline")
print("=" * 65)

# ---- 1. Load and prepare data -------------------------------------------
print("\n--- Loading data ---")
raw = load_observations()
codebook = load_codebook()

print("\n--- Cleaning ---")
df = clean_observations(raw)
assert_clean_data(df)

# ---- 2. Grouped train/test split -----------------------------------------
print("\n--- Participant-grouped train/test split ---")
train_df, test_df = grouped_train_test_split(df)
assert_disjoint_groups(train_df, test_df)
target = DATASET.TARGET_DERIVED
print(f"Prevalence: train {train_df[target].mean():.3f}  test {test_df[target].mean():.3f}")

figures_dir = get_output_dir("figures")
tables_dir = get_output_dir("tables")
reports_dir = get_output_dir("reports")

all_test_results = []


# =====================================================================
# 2.1  MIXED-EFFECTS MODEL TREE
# =====================================================================
print("\n" + "=" * 65)
print("2.1  Mixed-effects model tree (random intercept per participant)")
print("=" * 65)

workflow = fit_mixed_tree_workflow(train_df)
print(f"  Recipe output: {len(workflow.feature_names_)} encoded features")

mixed_metrics = evaluate_on_test(workflow, test_df, model_name="Mixed-effects tree")
all_test_results.append(mixed_metrics)

print("\n  Confusion matrix (test set):\n")
cm = confusion_table(mixed_metrics["y_true"], mixed_metrics["y_pred"])
print(cm.to_string())
cm.to_csv(tables_dir / "confusion_matrix.csv")

print("\n  Metrics (test set):\n")
mt = metric_table(mixed_metrics)
print(mt.to_string(index=False, float_format=lambda v: f"{v:.4f}"))
mt.to_csv(tables_dir / "metrics_mixed_tree.csv", index=False)

youden_t, youden_j = find_optimal_threshold_youden(mixed_metrics["y_true"], mixed_metrics["y_prob"])
print(f"\n  Youden-optimal threshold: {youden_t:.3f} (J = {youden_j:.3f})")

print("\n--- Fixed-effects tree ---")
rules = describe_tree(workflow)
print(rules)
(reports_dir / "tree_rules.txt").write_text(rules, encoding="utf-8")

leaves = leaf_summary(workflow, train_df)
leaves.to_csv(tables_dir / "leaf_summary.csv", index=False)
for _, row in leaves.iterrows():
    print(f"    leaf {row['leaf']:>3.0f}  n={row['n_records']:>5.0f}  "
          f"observed={row['observed_stairs_rate']:.3f}  fitted p={row['probability']:.3f}")

print("\n--- Random effects ---")
intercepts, re_summary = summarize_random_effects(workflow.model)
intercepts.to_csv(tables_dir / "random_intercepts.csv", index=False)
print(f"  Participants: {re_summary['n_participants']:,}")
print(f"  Random-intercept sd: {re_summary['random_intercept_sd']:.3f}")
print(f"  Latent ICC:          {re_summary['icc_latent']:.3f}")


# =====================================================================
# 2.2  POOLED BASELINES
# =====================================================================
print("\n" + "=" * 65)
print("2.2  Pooled baselines (participant ignored)")
print("=" * 65)

baselines = fit_baseline_workflows(train_df)
for name, wf in baselines.items():
    m = evaluate_on_test(wf, test_df, model_name=name)
    all_test_results.append(m)
    print(f"  {name:<20s} ROC-AUC={m['roc_auc']:.4f}  Brier={m['brier']:.4f}")


# =====================================================================
# 2.3  GROUPED CROSS-VALIDATION (training participants)
# =====================================================================
print("\n" + "=" * 65)
print(f"2.3  {cfg['modeling']['cv_folds']}-fold participant-grouped CV")
print("=" * 65)

cv_results = [
    cv_evaluate(lambda: ChoiceWorkflow(build_recipe(), make_mixed_tree()),
                train_df, model_name="Mixed-effects tree",
                n_jobs=cfg["importance"]["n_jobs"]),
]
for r in cv_results:
    print(f"  {r['model']:<20s} ROC-AUC={r['roc_auc_mean']:.4f} +/- {r['roc_auc_std']:.4f}  "
          f"Brier={r['brier_mean']:.4f} +/- {r['brier_std']:.4f}")
pd.DataFrame(cv_results).to_csv(tables_dir / "cv_grouped.csv", index=False)


# =====================================================================
# 2.4  TEST-SET COMPARISON + FIGURES
# =====================================================================
print("\n" + "=" * 65)
print("2.4  Test-set comparison")
print("=" * 65)

comparison_df = model_comparison_table(all_test_results)
comparison_df.to_csv(tables_dir / "model_comparison.csv", index=False)

print(f"\n  {'Model':<22s} {'ROC-AUC':>9s} {'PR-AUC':>9s} {'Brier':>9s} {'ECE':>9s} {'Bal Acc':>9s}")
print(f"  {'-'*22} {'-'*9} {'-'*9} {'-'*9} {'-'*9} {'-'*9}")
for _, row in comparison_df.iterrows():
    print(f"  {row['model']:<22s} "
          f"{row['roc_auc']:>9.4f} "
          f"{row['pr_auc']:>9.4f} "
          f"{row['brier']:>9.4f} "
          f"{row['ece']:>9.4f} "
          f"{row['balanced_accuracy']:>9.4f}")

curve_data = [
    {"model_name": r["model"], "y_true": r["y_true"], "y_prob": r["y_prob"]}
    for r in all_test_results
]
plot_roc_comparison(curve_data, save_dir=figures_dir)
print("  -> roc_comparison.png")
plot_pr_comparison(curve_data, save_dir=figures_dir)
print("  -> pr_comparison.png")


# =====================================================================
# 2.5  PERMUTATION IMPORTANCE
# =====================================================================
print("\n" + "=" * 65)
print(f"2.5  Permutation importance (ROC AUC, {cfg['importance']['n_repeats']} repeats)")
print("=" * 65)

perm_df, perm_repeats = compute_permutation_importance(workflow, test_df)
perm_df["description"] = perm_df["variable"].map(lambda v: codebook.get(v, v))
perm_df.to_csv(tables_dir / "permutation_importance.csv", index=False)
perm_repeats.to_csv(tables_dir / "permutation_importance_repeats.csv", index=False)

print(f"  Baseline AUC: {perm_df['baseline_auc'].iloc[0]:.4f}")
for _, row in perm_df.iterrows():
    print(f"    #{row['rank']:.0f}  {row['variable']:<20s}  "
          f"dAUC = {row['importance_mean']:+.4f} +/- {row['importance_std']:.4f}")

plot_permutation_importance(perm_df, codebook=codebook,
                            save_path=figures_dir / "permutation_importance.png")
print("  -> permutation_importance.png")

split_df = tree_split_importance(workflow)
comparison, rho, p_value = compare_importance_methods(perm_df, split_df)
comparison.to_csv(tables_dir / "importance_comparison.csv", index=False)
print(f"  Permutation vs. split importance: Spearman rho = {rho:.3f} (p = {p_value:.3g})")


# =====================================================================
# 2.6  SAVE MODEL METRICS JSON
# =====================================================================
print("\n--- Saving model metrics JSON ---")

metrics_json = {}
for r in all_test_results:
    metrics_json[r["model"]] = {
        k: (float(v) if isinstance(v, (np.floating, float)) else v)
        for k, v in r.items()
        if k != "model" and not isinstance(v, np.ndarray)
    }
metrics_json["random_effects"] = re_summary

json_path = reports_dir / "model_metrics.json"
with open(json_path, "w") as f:
    json.dump(metrics_json, f, indent=2, default=str)
print(f"  -> {json_path}")


# =====================================================================
# SUMMARY
# =====================================================================
print("\n" + "=" * 65)
print("PHASE 2 -- COMPLETE")
print("=" * 65)

print(f"\n--- KEY FINDINGS ---")
best_model = comparison_df.loc[comparison_df["roc_auc"].idxmax()]
print(f"  Best model (ROC-AUC): {best_model['model']} ({best_model['roc_auc']:.4f})")
print(f"  Participant ICC (latent): {re_summary['icc_latent']:.3f}")
top = perm_df.iloc[0]
print(f"  Most important predictor: {top['description']} (dAUC = {top['importance_mean']:+.4f})")
print()
