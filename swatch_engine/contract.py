"""Output contract checks for a finished job directory."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .job import job_paths
from .utils import load_json


CONTRACT_FILES = (
    "reference_colors_raw.json",
    "reference_colors.json",
    "swatches.json",
    "color_matches.json",
    "metrics.json",
    "errors.jsonl",
)

_HEX = re.compile(r"^#[0-9A-F]{6}$")


@dataclass
class ContractReport:
    missing_contract_files: int = 0
    invalid_reference_colors: int = 0
    invalid_swatches: int = 0
    invalid_matches: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _is_rgb(obj: Any) -> bool:
    return (
        isinstance(obj, dict)
        and all(isinstance(obj.get(k), int) and 0 <= obj[k] <= 255 for k in ("r", "g", "b"))
    )


def _hex_matches(obj: dict[str, Any]) -> bool:
    rgb, hx = obj.get("rgb"), obj.get("hex")
    if not _is_rgb(rgb) or not isinstance(hx, str) or not _HEX.match(hx):
        return False
    return hx == f"#{rgb['r']:02X}{rgb['g']:02X}{rgb['b']:02X}"


def _bbox_ok(obj: Any) -> bool:
    return (
        isinstance(obj, dict)
        and all(isinstance(obj.get(k), int) for k in ("x", "y", "width", "height"))
        and obj["width"] > 0
        and obj["height"] > 0
    )


def _check_color(where: str, c: Any, errors: list[str]) -> int:
    if not isinstance(c, dict):
        errors.append(f"{where}: not an object")
        return 1
    bad = 0
    if not _hex_matches(c):
        errors.append(f"{where}: hex does not encode rgb")
        bad += 1
    if not _bbox_ok(c.get("bounding_box")):
        errors.append(f"{where}: bounding_box must have positive width/height")
        bad += 1
    return bad


def _check_reference(file_name: str, data: Any, errors: list[str]) -> int:
    invalid = 0
    entries = data.get("reference_colors", []) if isinstance(data, dict) else []
    for idx, e in enumerate(entries):
        where = f"{file_name}: reference[{idx}]"
        invalid += _check_color(where, e, errors)
        if isinstance(e, dict) and not str(e.get("code") or ""):
            errors.append(f"{where}: empty code")
            invalid += 1
    return invalid


def _check_swatches(data: Any, errors: list[str]) -> int:
    invalid = 0
    swatches = data.get("swatches", []) if isinstance(data, dict) else []
    for si, s in enumerate(swatches):
        if not isinstance(s, dict) or not _bbox_ok(s.get("bounding_box")):
            errors.append(f"swatches.json: swatch[{si}]: invalid bounding_box")
            invalid += 1
            continue
        for ci, c in enumerate(s.get("colors") or []):
            invalid += _check_color(f"swatches.json: swatch[{si}].color[{ci}]", c, errors)
    return invalid


def _check_matches(data: Any, errors: list[str]) -> int:
    invalid = 0
    swatches = data.get("swatches", []) if isinstance(data, dict) else []
    for si, s in enumerate(swatches):
        for ci, c in enumerate((s or {}).get("colors") or []):
            where = f"color_matches.json: swatch[{si}].color[{ci}]"
            invalid += _check_color(where, c, errors)
            if not isinstance(c, dict):
                continue
            conf, dist = c.get("confidence"), c.get("distance")
            if not isinstance(conf, (int, float)) or not 0 <= conf <= 100:
                errors.append(f"{where}: confidence must be within [0, 100]")
                invalid += 1
            if c.get("matched_code") == "UNKNOWN":
                if dist != -1 or conf != 0:
                    errors.append(f"{where}: unmatched color must carry distance=-1 and confidence=0")
                    invalid += 1
            elif not isinstance(dist, (int, float)) or dist < 0:
                errors.append(f"{where}: matched color must have distance >= 0")
                invalid += 1
    return invalid


def validate_job_dir(job_dir: str | Path) -> ContractReport:
    paths = job_paths(job_dir)
    report = ContractReport()

    for f in CONTRACT_FILES:
        p = paths.job_dir / f
        if not p.exists():
            report.missing_contract_files += 1
            report.errors.append(f"missing: {p}")

    try:
        metrics = load_json(paths.metrics_json)
        if not (isinstance(metrics, dict) and metrics.get("finished") is True):
            report.errors.append("metrics.json: job not finished")
    except Exception as e:
        report.errors.append(f"failed to read metrics.json: {e}")

    for file_name, check, counter in (
        ("reference_colors_raw.json", lambda d: _check_reference("reference_colors_raw.json", d, report.errors), "invalid_reference_colors"),
        ("reference_colors.json", lambda d: _check_reference("reference_colors.json", d, report.errors), "invalid_reference_colors"),
        ("swatches.json", lambda d: _check_swatches(d, report.errors), "invalid_swatches"),
        ("color_matches.json", lambda d: _check_matches(d, report.errors), "invalid_matches"),
    ):
        try:
            data = load_json(paths.job_dir / file_name)
        except Exception as e:
            report.errors.append(f"failed to read {file_name}: {e}")
            setattr(report, counter, getattr(report, counter) + 1)
            continue
        setattr(report, counter, getattr(report, counter) + check(data))

    return report
