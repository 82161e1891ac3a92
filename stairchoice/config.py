"""
Configuration loader and dataset constants for the stairs vs. elevator analysis.

Usage:
    from stairchoice.config import cfg, set_global_seed, DATASET
    set_global_seed()           # call once at start of every script
    print(DATASET.ID_COL)       # participant_id
    print(cfg['modeling']['test_size'])
"""

import yaml
import numpy as np
from pathlib import Path
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_CONFIG = _PROJECT_ROOT / "configs" / "default.yaml"


def load_config(path: Path = _DEFAULT_CONFIG) -> dict:
    """Load YAML config and return as dict."""
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


cfg = load_config()


# ---------------------------------------------------------------------------
# Dataset constants (immutable, used in assertions & reports)
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class DatasetDesign:
    """Immutable facts about the choice dataset."""
    NAME: str = "Stairs vs. elevator choice records"
    ID_COL: str = cfg["data"]["id_column"]
    OUTCOME_COL: str = cfg["data"]["outcome_column"]
    TARGET_DERIVED: str = "y_stairs"
    POSITIVE_CLASS: str = cfg["data"]["positive_class"]
    NEGATIVE_CLASS: str = cfg["data"]["negative_class"]
    SENTINEL_VALUES: tuple = tuple(cfg["data"]["sentinel_values"])
    MIN_OBS: int = cfg["data"]["min_obs_per_participant"]


DATASET = DatasetDesign()


# ---------------------------------------------------------------------------
# Global seed management
# ---------------------------------------------------------------------------
def set_global_seed(seed: int | None = None) -> int:
    """
    Set global random seed for reproducibility.
    Uses config seed if none provided.
    Returns the seed used.
    """
    if seed is None:
        seed = cfg["modeling"]["random_seed"]
    np.random.seed(seed)
    return seed


# ---------------------------------------------------------------------------
# Feature set helpers
# ---------------------------------------------------------------------------
def get_feature_set(name: str = "full") -> list[str]:
    """Return list of predictor names for a named feature set."""
    fs = cfg["feature_sets"]
    if name == "full":
        return fs["contextual"] + fs["psychological"] + fs["situational"]
    if name not in fs:
        raise ValueError(f"Unknown feature set '{name}'. Choose from: {list(fs.keys())} or 'full'.")
    return list(fs[name])


def get_encoding(kind: str) -> list[str]:
    """Return predictors declared with a given encoding: nominal, binary or numeric."""
    enc = cfg["encoding"]
    if kind not in enc:
        raise ValueError(f"Unknown encoding '{kind}'. Choose from: {list(enc.keys())}.")
    return list(enc[kind])


def get_tree_params() -> dict:
    """Return mixed-effects tree hyper-parameters from config."""
    return dict(cfg["modeling"]["tree"])


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------
def get_data_path(kind: str = "observations") -> Path:
    """Return absolute path of an input CSV: 'observations' or 'codebook'."""
    key_map = {
        "observations": "observations_csv",
        "codebook": "codebook_csv",
    }
    if kind not in key_map:
        raise ValueError(f"Unknown data file '{kind}'. Choose from: {list(key_map.keys())}.")
    return _PROJECT_ROOT / cfg["data"][key_map[kind]]


def get_output_dir(kind: str = "reports") -> Path:
    """Return absolute path for an output directory, creating it if needed."""
    key_map = {
        "reports": "reports_dir",
        "figures": "figures_dir",
        "tables": "tables_dir",
    }
    rel = cfg["outputs"].get(key_map.get(kind, kind), kind)
    out = _PROJECT_ROOT / rel
    out.mkdir(parents=True, exist_ok=True)
    return out


# Convenience: project root path
PROJECT_ROOT = _PROJECT_ROOT
