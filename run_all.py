"""
run_all.py -- One-command reproducibility pipeline
=====================================================
Regenerates every table, figure and report, then writes run_metadata.json
with per-phase timings and an inventory of the files each output
directory holds.

Usage:
    python run_all.py
"""

import hashlib
import importlib.metadata
import json
import platform
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path

from stairchoice.config import cfg, DATASET, get_output_dir, PROJECT_ROOT


PHASES = [
    ("run_eda.py", "Participant variation, outcome rates, missingness"),
    ("run_modeling.py", "Mixed-effects tree, baselines, grouped CV, importance"),
]

PACKAGES = [
    "numpy", "pandas", "scikit-learn", "scipy", "statsmodels",
    "matplotlib", "seaborn", "PyYAML", "joblib",
]


def run_phase(script_name: str, description: str) -> dict:
    """Run one phase script in a subprocess; return its status record."""
    print(f"\n{'='*70}")
    print(f"  {script_name}: {description}")
    print(f"{'='*70}\n")

    start = time.perf_counter()
    returncode = subprocess.run([sys.executable, script_name], cwd=str(PROJECT_ROOT)).returncode
    elapsed = round(time.perf_counter() - start, 1)

    tag = "[OK]" if returncode == 0 else "[FAIL]"
    print(f"\n  {tag} {script_name} (exit {returncode}, {elapsed:.1f}s)")
    return {"script": script_name, "returncode": returncode, "seconds": elapsed}


def list_outputs(directory: Path) -> list[dict]:
    """Name and size of every file under an output directory."""
    directory = Path(directory)
    return [
        {"file": str(p.relative_to(directory)), "bytes": p.stat().st_size}
        for p in sorted(directory.rglob("*"))
        if p.is_file()
    ]


def package_versions(packages=PACKAGES) -> dict:
    versions = {}
    for pkg in packages:
        try:
            versions[pkg] = importlib.metadata.version(pkg)
        except importlib.metadata.PackageNotFoundError:
            versions[pkg] = "not installed"
    return versions


def generate_metadata(phase_records: list[dict]) -> dict:
    """Write run_metadata.json: environment, dataset schema, phases, outputs."""
    config_path = PROJECT_ROOT / "configs" / "default.yaml"

    metadata = {
        "timestamp": datetime.now().isoformat(),
        "python_version": platform.python_version(),
        "platform": platform.platform(),
        "random_seed": cfg["modeling"]["random_seed"],
        "config_hash_md5": hashlib.md5(config_path.read_bytes()).hexdigest(),
        "dataset": {
            "name": DATASET.NAME,
            "id_column": DATASET.ID_COL,
            "outcome_column": DATASET.OUTCOME_COL,
            "classes": [DATASET.POSITIVE_CLASS, DATASET.NEGATIVE_CLASS],
            "sentinel_values": list(DATASET.SENTINEL_VALUES),
            "min_obs_per_participant": DATASET.MIN_OBS,
        },
        "phases": phase_records,
        "outputs": {kind: list_outputs(get_output_dir(kind))
                    for kind in ["tables", "figures", "reports"]},
        "package_versions": package_versions(),
    }

    meta_path = get_output_dir("reports") / "run_metadata.json"
    with open(meta_path, "w", encoding="utf-8") as f:
        json.dump(metadata, f, indent=2)

    n_files = sum(len(files) for files in metadata["outputs"].values())
    print(f"  {n_files} output files recorded")
    print(f"  -> {meta_path}")
    return metadata


if __name__ == "__main__":
    print("=" * 70)
    print("  STAIRS VS. ELEVATOR -- FULL REPRODUCIBILITY PIPELINE")
    print(f"  Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    records = []
    for script, description in PHASES:
        record = run_phase(script, description)
        records.append(record)
        if record["returncode"] != 0:
            print(f"\n  PIPELINE HALTED at {script}")
            sys.exit(1)

    print(f"\n{'='*70}")
    print("  RUN METADATA")
    print(f"{'='*70}")
    generate_metadata(records)

    total = sum(r["seconds"] for r in records)
    print(f"\n  PIPELINE COMPLETE in {total:.1f}s "
          f"({datetime.now().strftime('%Y-%m-%d %H:%M:%S')})")
