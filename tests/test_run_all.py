"""Tests for the run metadata written by the pipeline driver."""

from __future__ import annotations

import json

from run_all import generate_metadata, list_outputs
from stairchoice.config import DATASET, cfg


def test_list_outputs_reports_nested_files(tmp_path) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.csv").write_text("x\n1\n")
    (tmp_path / "sub" / "b.png").write_bytes(b"\x89PNG")

    files = list_outputs(tmp_path)

    assert [f["file"] for f in files] == ["a.csv", "sub/b.png"]
    assert files[1]["bytes"] == 4


def test_generate_metadata_records_phases_and_outputs(tmp_path, monkeypatch) -> None:
    for kind in ["tables", "figures", "reports"]:
        monkeypatch.setitem(cfg["outputs"], f"{kind}_dir", str(tmp_path / kind))
    (tmp_path / "tables").mkdir()
    (tmp_path / "tables" / "model_comparison.csv").write_text("model\nmixed\n")

    phases = [{"script": "run_eda.py", "returncode": 0, "seconds": 1.0}]
    metadata = generate_metadata(phases)

    saved = json.loads((tmp_path / "reports" / "run_metadata.json").read_text())
    assert saved["phases"] == phases
    assert saved["dataset"]["id_column"] == DATASET.ID_COL
    assert [f["file"] for f in saved["outputs"]["tables"]] == ["model_comparison.csv"]
    assert saved["outputs"]["figures"] == []
    assert metadata["random_seed"] == cfg["modeling"]["random_seed"]
