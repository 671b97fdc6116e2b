"""Configuration loading."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from swatch_engine.config import EngineConfig, config_from_dict, load_config, load_expected_palette

from conftest import EXPECTED_PALETTE, REPO_ROOT


def test_default_file_matches_defaults():
    assert load_config(REPO_ROOT / "config" / "default.json") == EngineConfig()


def test_no_file_means_defaults():
    cfg = load_config(None)
    assert cfg.pixels.background_threshold == 240
    assert cfg.rows.gap == 50
    assert cfg.matching.max_distance == 150
    assert cfg.validation.tolerance == 200
    assert cfg.reference.merge_nearby_boxes is False


def test_partial_sections_keep_defaults():
    cfg = config_from_dict({"rows": {"gap": 30}, "fallback": {"scan_ratios": [0.2, 0.4]}})
    assert cfg.rows.gap == 30
    assert cfg.rows.backoff == 45
    assert cfg.fallback.scan_ratios == (0.2, 0.4)


@pytest.mark.parametrize(
    "data",
    [
        {"rows": {"gapp": 30}},
        {"colour": {}},
        {"pixels": {"background_threshold": 300}},
        {"matching": {"max_distance": 0}},
        {"ocr": {"engine": "magic"}},
        {"ocr": {"workers": 0}},
        {"swatches": []},
    ],
)
def test_invalid_config_raises(data):
    with pytest.raises(ValueError):
        config_from_dict(data)


def test_load_config_from_file(workspace_dir: Path):
    path = workspace_dir / "cfg.json"
    path.write_text(json.dumps({"ocr": {"engine": "none", "workers": 4}}), encoding="utf-8")
    cfg = load_config(path)
    assert cfg.ocr.engine == "none"
    assert cfg.ocr.workers == 4


def test_expected_palette():
    entries = load_expected_palette(EXPECTED_PALETTE)
    assert len(entries) == 11
    assert (entries[0].code, entries[0].name, entries[0].position) == ("B60002", "New Black", 15)
    assert entries[-1].code == "B20111"


def test_expected_palette_rejects_bad_entries(workspace_dir: Path):
    path = workspace_dir / "palette.json"
    path.write_text(json.dumps({"entries": [{"code": "B1", "name": "x"}]}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_expected_palette(path)
    path.write_text(json.dumps({"version": "x"}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_expected_palette(path)
