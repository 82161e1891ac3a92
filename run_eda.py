"""
Phase 1 -- Exploratory Data Analysis
"""

from stairchoice.config import DATASET, set_global_seed, get_encoding, get_feature_set, get_output_dir
from stairchoice.data_loading import load_observations, load_codebook, clean_observations, assert_clean_data
from stairchoice.preprocessing import compute_missingness_rates
from stairchoice.eda import (
    participant_summary,
    all_level_tables,
    numeric_by_outcome,
    plot_participant_rates,
    plot_outcome_by_level,
)

set_global_seed()
print("=" * 65)
print("PHASE 1 -- Exploratory Data Analysis")
print("=" * 65)

# ---- 1. Load and clean ----------------------------------------------------
print("\n--- Loading data ---")
raw = load_observations()
codebook = load_codebook()

print("\n--- Cleaning ---")
df = clean_observations(raw)
quality = assert_clean_data(df)
print(f"  Participants: {quality['n_participants']:,}  "
      f"(records each: {quality['records_per_participant_min']}-{quality['records_per_participant_max']})")
print(f"  Stairs rate:  {quality['stairs_rate']:.3f}")

tables_dir = get_output_dir("tables")
figures_dir = get_output_dir("figures")
features_full = get_feature_set("full")

# ---- 2. Missingness -------------------------------------------------------
print("\n--- 1.1 Missingness (cleaned records) ---")
miss_df = compute_missingness_rates(df, features_full)
miss_df.to_csv(tables_dir / "missingness.csv", index=False)
for _, row in miss_df[miss_df["n_missing"] > 0].iterrows():
    print(f"  {row['variable']:<20s} {row['n_missing']:>6,} missing ({row['pct_missing']:.1f}%)")

# ---- 3. Participant variation ---------------------------------------------
print("\n--- 1.2 Participant variation ---")
part_df = participant_summary(df)
part_df.to_csv(tables_dir / "participant_summary.csv", index=False)
print(f"  Stairs rate per participant: "
      f"mean {part_df['stairs_rate'].mean():.3f}, "
      f"range [{part_df['stairs_rate'].min():.2f}, {part_df['stairs_rate'].max():.2f}]")
n_always = int((part_df["stairs_rate"].isin([0.0, 1.0])).sum())
print(f"  Participants always choosing one option: {n_always:,}")
plot_participant_rates(part_df, save_dir=figures_dir)
print("  -> participant_stairs_rate.png")

# ---- 4. Outcome by categorical predictors ---------------------------------
print("\n--- 1.3 Stairs rate by categorical predictors ---")
categorical = get_encoding("nominal") + get_encoding("binary")
level_tables = all_level_tables(df, categorical)
for var, tbl in level_tables.items():
    tbl.to_csv(tables_dir / f"stairs_by_{var}.csv", index=False)
    print(f"  {codebook.get(var, var)}: {len(tbl)} levels, "
          f"range [{tbl['stairs_pct'].min():.1f}% - {tbl['stairs_pct'].max():.1f}%]")
plot_outcome_by_level(level_tables, codebook=codebook, save_dir=figures_dir)
print(f"  -> stairs_by_*.png saved to {figures_dir}/")

# ---- 5. Numeric predictors by outcome -------------------------------------
print("\n--- 1.4 Numeric predictors by outcome ---")
num_df = numeric_by_outcome(df, get_encoding("numeric"))
num_df.to_csv(tables_dir / "numeric_by_outcome.csv", index=False)
for var, grp in num_df.groupby("variable", sort=False):
    means = dict(zip(grp["outcome"], grp["mean"]))
    print(f"  {var:<20s} "
          f"{DATASET.POSITIVE_CLASS}={means.get(DATASET.POSITIVE_CLASS, float('nan')):.2f}  "
          f"{DATASET.NEGATIVE_CLASS}={means.get(DATASET.NEGATIVE_CLASS, float('nan')):.2f}")

# ---- Summary ---------------------------------------------------------------
print("\n" + "=" * 65)
print("PHASE 1 -- COMPLETE")
print("=" * 65)
print(f"\nOutputs generated:")
print(f"  Tables:  {tables_dir}/")
print(f"    - missingness.csv")
print(f"    - participant_summary.csv")
print(f"    - stairs_by_*.csv")
print(f"    - numeric_by_outcome.csv")
print(f"  Figures: {figures_dir}/")
print(f"    - participant_stairs_rate.png")
print(f"    - stairs_by_*.png")
print()
