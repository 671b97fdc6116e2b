"""End-to-end runs over a synthetic catalog page with replayed recognition text.

Covers:
1. Pipeline outputs (palette, corrections, swatches, matches, metrics)
2. Palette reuse from a previous job
3. CSV export
4. Output contract check
5. CLI commands and exit codes
"""
from __future__ import annotations

import csv
import json
from pathlib import Path

import pytest
from PIL import Image

from swatch_engine.cli import main
from swatch_engine.config import EngineConfig, ValidationConfig
from swatch_engine.contract import validate_job_dir
from swatch_engine.exporter import DETAILED_CSV, SIMPLE_CSV, export_csv
from swatch_engine.job import create_job_dirs, init_job_outputs
from swatch_engine.ocr import MockedRecognizer
from swatch_engine.pipeline import EnginePipeline, PipelineError, RunOptions
from swatch_engine.types import SOURCE_CORRECTED, SOURCE_REUSED
from swatch_engine.utils import load_json

from conftest import CATALOG_TEXT, EXPECTED_PALETTE, catalog_page


EXPECTED_MATCHES = [
    ("123456", ["B20111", "B10119", "B50027"]),
    ("654321", ["B10119", "UNKNOWN"]),
    ("777888", ["B50027", "B20111"]),
]


# ═══════════════════════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def page_png(workspace_dir: Path) -> Path:
    path = workspace_dir / "catalog.png"
    Image.fromarray(catalog_page()).save(path, format="PNG")
    return path


@pytest.fixture
def mocked_text(workspace_dir: Path) -> Path:
    path = workspace_dir / "mocked_text.json"
    path.write_text(json.dumps({"regions": CATALOG_TEXT}), encoding="utf-8")
    return path


def _run(paths, page_png: Path, **kwargs):
    opts = RunOptions(
        input_path=str(page_png),
        input_type="images",
        palette_path=str(EXPECTED_PALETTE),
        **kwargs,
    )
    pipeline = EnginePipeline(paths=paths, cfg=EngineConfig(), opts=opts, text_source=MockedRecognizer(regions=CATALOG_TEXT))
    return pipeline.run(job_id="test")


def _errors(paths) -> list[dict]:
    text = paths.errors_jsonl.read_text(encoding="utf-8")
    return [json.loads(ln) for ln in text.splitlines() if ln.strip()]


# ═══════════════════════════════════════════════════════════════════════════════
# PIPELINE
# ═══════════════════════════════════════════════════════════════════════════════

class TestPipeline:
    def test_full_run(self, job, page_png: Path):
        result = _run(job, page_png, debug=True)

        assert [e.code for e in result.raw_palette] == ["B20111", "B10119", "C2240"]
        assert [e.code for e in result.palette] == ["B20111", "B10119", "B50027"]
        assert [e.name for e in result.palette] == ["Navy", "Gardenia", "Lemonade"]
        assert result.palette[2].source == SOURCE_CORRECTED
        assert result.palette[2].rgb == result.raw_palette[2].rgb
        assert len(result.validation.corrections) == 1

        got = [(s.style_number, [c.matched_code for c in s.colors]) for s in result.matched]
        assert got == EXPECTED_MATCHES
        assert result.stats.total_colors == 7
        assert result.stats.matched_colors == 6

        # Output files.
        reference = load_json(job.reference_json)
        assert reference["validation_applied"] is True
        assert reference["corrections_applied"] == 1
        assert [e["code"] for e in reference["reference_colors"]] == ["B20111", "B10119", "B50027"]
        assert [e["code"] for e in load_json(job.reference_raw_json)["reference_colors"]][2] == "C2240"

        matches = load_json(job.matches_json)
        assert matches["total_colors"] == 7
        assert matches["stats"]["reference_usage"]["B20111 - Navy"] == 2
        unmatched = matches["swatches"][1]["colors"][1]
        assert (unmatched["matched_code"], unmatched["distance"], unmatched["confidence"]) == ("UNKNOWN", -1, 0)

        metrics = load_json(job.metrics_json)
        assert metrics["finished"] is True
        assert metrics["anchors_found"] == 1
        assert metrics["reference_method"] == "anchors"
        assert metrics["corrections_applied"] == 1
        assert metrics["rows_detected"] == 2
        assert metrics["swatches_total"] == 3
        assert metrics["colors_matched"] == 6
        assert metrics["recognition_failures"] == 0

        assert (job.stage_anchor_dir / "page_001.json").exists()
        assert (job.stage_recognition_dir / "page_001.json").exists()
        assert (job.debug_dir / "page_001_overlay.png").exists()
        assert (job.job_dir / "match_report.txt").exists()

        corrections = [e for e in _errors(job) if e["stage"] == "validation"]
        assert len(corrections) == 1
        assert corrections[0]["level"] == "info"

        assert validate_job_dir(job.job_dir).ok

    def test_without_validation(self, workspace_dir: Path, page_png: Path):
        paths = create_job_dirs(workspace_dir, "no-validation")
        init_job_outputs(paths)
        opts = RunOptions(input_path=str(page_png), input_type="images")
        cfg = EngineConfig(validation=ValidationConfig(enabled=False))
        result = EnginePipeline(paths, cfg, opts, text_source=MockedRecognizer(regions=CATALOG_TEXT)).run("x")

        assert result.validation is None
        assert [e.code for e in result.palette] == ["B20111", "B10119", "C2240"]
        assert load_json(paths.reference_json)["validation_applied"] is False

    def test_reuse_palette_from_previous_job(self, job, workspace_dir: Path, page_png: Path):
        _run(job, page_png)

        second = create_job_dirs(workspace_dir, "second")
        init_job_outputs(second)
        result = _run(second, page_png, reference_from=str(job.job_dir))

        assert result.reference_method == "reused"
        assert [e.code for e in result.palette] == ["B20111", "B10119", "B50027"]
        assert all(e.source == SOURCE_REUSED for e in result.palette)
        assert result.validation is None
        assert [(s.style_number, [c.matched_code for c in s.colors]) for s in result.matched] == EXPECTED_MATCHES

    def test_missing_page_is_hard_failure(self, job, page_png: Path):
        with pytest.raises(PipelineError):
            _run(job, page_png, page=2)
        assert any(e["level"] == "error" for e in _errors(job))
        assert load_json(job.metrics_json)["finished"] is False


# ═══════════════════════════════════════════════════════════════════════════════
# EXPORT + CONTRACT
# ═══════════════════════════════════════════════════════════════════════════════

class TestExportAndContract:
    def test_csv_export(self, job, page_png: Path, workspace_dir: Path):
        _run(job, page_png)
        out_dir = workspace_dir / "csv"
        stats = export_csv(job_dir=job.job_dir, out_dir=out_dir)

        assert stats.swatches_seen == 3
        assert stats.colors_exported == 7
        assert stats.colors_unmatched == 1

        with open(out_dir / SIMPLE_CSV, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[0] == ["Style Number", "Color Code"]
        assert rows[1] == ["123456", "B20111"]
        assert len(rows) == 8

        with open(out_dir / DETAILED_CSV, newline="", encoding="utf-8") as f:
            detailed = list(csv.DictReader(f))
        assert detailed[0]["Style Name"] == "My Style Name"
        assert detailed[0]["Color Name"] == "Navy"
        assert detailed[0]["Pantone Color"] == "19-4024 TCX"
        assert detailed[0]["RGB Hex"] == "#203E94"
        assert detailed[0]["Confidence %"] == "97.7"
        assert detailed[4]["Color Code"] == "UNKNOWN"
        assert detailed[4]["Confidence %"] == "0.0"

    def test_contract_flags_unfinished_and_broken_jobs(self, job):
        report = validate_job_dir(job.job_dir)
        assert not report.ok
        assert "metrics.json: job not finished" in report.errors

        data = {
            "swatches": [
                {
                    "colors": [
                        {
                            "rgb": {"r": 1, "g": 2, "b": 3},
                            "hex": "#010203",
                            "bounding_box": {"x": 0, "y": 0, "width": 4, "height": 4},
                            "matched_code": "UNKNOWN",
                            "distance": 12.5,
                            "confidence": 0,
                        }
                    ]
                }
            ]
        }
        job.matches_json.write_text(json.dumps(data), encoding="utf-8")
        report = validate_job_dir(job.job_dir)
        assert report.invalid_matches == 1


# ═══════════════════════════════════════════════════════════════════════════════
# CLI
# ═══════════════════════════════════════════════════════════════════════════════

class TestCli:
    def test_run_validate_export(self, workspace_dir: Path, page_png: Path, mocked_text: Path, capsys):
        ws = workspace_dir / "ws"
        code = main(
            [
                "run",
                "--input", str(page_png),
                "--type", "images",
                "--workspace", str(ws),
                "--use-mocked-ocr", str(mocked_text),
                "--palette", str(EXPECTED_PALETTE),
                "--export-csv",
            ]
        )
        out = capsys.readouterr().out.strip().splitlines()
        assert code == 0
        assert "swatches=3" in out[0]
        job_dir = Path(out[-1])
        assert (job_dir / SIMPLE_CSV).exists()

        assert main(["validate", "--job-dir", str(job_dir)]) == 0
        assert capsys.readouterr().out.strip().splitlines()[-1] == "OK"

        assert main(["export", "--job-dir", str(job_dir), "--out-dir", str(workspace_dir / "exports")]) == 0
        assert (workspace_dir / "exports" / DETAILED_CSV).exists()

    def test_run_failure_exit_code(self, workspace_dir: Path, mocked_text: Path, capsys):
        code = main(
            [
                "run",
                "--input", str(workspace_dir / "missing.png"),
                "--type", "images",
                "--workspace", str(workspace_dir / "ws"),
                "--use-mocked-ocr", str(mocked_text),
            ]
        )
        assert code == 1
        assert capsys.readouterr().out.startswith("run_failed:")

    def test_invalid_config_exit_code(self, workspace_dir: Path, page_png: Path, capsys):
        cfg = workspace_dir / "bad.json"
        cfg.write_text(json.dumps({"rows": {"nope": 1}}), encoding="utf-8")
        code = main(["run", "--input", str(page_png), "--type", "images", "--config", str(cfg)])
        assert code == 2
        assert capsys.readouterr().out.startswith("invalid_config:")

    def test_validate_missing_job(self, workspace_dir: Path, capsys):
        assert main(["validate", "--job-dir", str(workspace_dir / "nope")]) == 1
        assert "missing_contract_files=6" in capsys.readouterr().out
