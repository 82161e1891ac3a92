"""Tests for configuration helpers."""

from __future__ import annotations

import pytest

from stairchoice.config import (
    DATASET,
    cfg,
    get_data_path,
    get_encoding,
    get_feature_set,
    get_output_dir,
    get_tree_params,
    set_global_seed,
)


def test_full_feature_set_matches_encodings() -> None:
    full = get_feature_set("full")
    encoded = get_encoding("nominal") + get_encoding("binary") + get_encoding("numeric")

    assert len(full) == 14
    assert sorted(full) == sorted(encoded)
    assert DATASET.ID_COL not in full


def test_unknown_names_raise() -> None:
    with pytest.raises(ValueError, match="Unknown feature set"):
        get_feature_set("demographics")
    with pytest.raises(ValueError, match="Unknown encoding"):
        get_encoding("ordinal")
    with pytest.raises(ValueError, match="Unknown data file"):
        get_data_path("weights")


def test_set_global_seed_defaults_to_config() -> None:
    assert set_global_seed() == cfg["modeling"]["random_seed"]
    assert set_global_seed(5) == 5


def test_tree_params_are_a_copy() -> None:
    params = get_tree_params()
    params["max_depth"] = 99
    assert get_tree_params()["max_depth"] != 99


def test_output_dir_created(tmp_path, monkeypatch) -> None:
    monkeypatch.setitem(cfg["outputs"], "tables_dir", str(tmp_path / "tables"))
    out = get_output_dir("tables")
    assert out.is_dir()
