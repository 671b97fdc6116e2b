from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .job import job_paths, record_error
from .utils import load_json


SIMPLE_CSV = "style_color_mapping.csv"
DETAILED_CSV = "detailed_style_color_mapping.csv"

SIMPLE_COLUMNS = ["Style Number", "Color Code"]
DETAILED_COLUMNS = [
    "Style Number",
    "Style Name",
    "Color Code",
    "Color Name",
    "Pantone Color",
    "RGB Hex",
    "Confidence %",
]


@dataclass
class ExportStats:
    swatches_seen: int = 0
    colors_exported: int = 0
    colors_unmatched: int = 0
    swatches_without_colors: int = 0
    simple_path: str = ""
    detailed_path: str = ""


def _no_commas(text: Any) -> str:
    return str(text or "").replace(",", "")


def export_csv(*, job_dir: str | Path, out_dir: str | Path | None = None) -> ExportStats:
    """Write the style -> color mapping CSVs of a finished job.

    One row per matched color (unmatched colors export as UNKNOWN).
    Commas are stripped from the free-text name columns.
    """
    paths = job_paths(job_dir)
    out = Path(out_dir) if out_dir else paths.job_dir
    out.mkdir(parents=True, exist_ok=True)

    data = load_json(paths.matches_json)
    swatches = data.get("swatches", []) if isinstance(data, dict) else []
    if not isinstance(swatches, list):
        raise RuntimeError(f"{paths.matches_json.name}: 'swatches' must be a list")

    stats = ExportStats(simple_path=str(out / SIMPLE_CSV), detailed_path=str(out / DETAILED_CSV))
    simple_rows: list[dict[str, str]] = []
    detailed_rows: list[dict[str, str]] = []

    for idx, s in enumerate(swatches):
        if not isinstance(s, dict):
            record_error(paths, page_id="", stage="export", message=f"invalid_swatch[{idx}]: not an object")
            continue
        stats.swatches_seen += 1
        colors = s.get("colors") or []
        if not colors:
            stats.swatches_without_colors += 1
            continue
        style_number = str(s.get("style_number") or "")
        for c in colors:
            code = str(c.get("matched_code") or "")
            if code == "UNKNOWN":
                stats.colors_unmatched += 1
            simple_rows.append({"Style Number": style_number, "Color Code": code})
            detailed_rows.append(
                {
                    "Style Number": style_number,
                    "Style Name": _no_commas(s.get("style_name")),
                    "Color Code": code,
                    "Color Name": _no_commas(c.get("matched_name")),
                    "Pantone Color": str(c.get("pantone_label") or ""),
                    "RGB Hex": str(c.get("hex") or ""),
                    "Confidence %": f"{float(c.get('confidence') or 0):.1f}",
                }
            )
            stats.colors_exported += 1

    for path, columns, rows in (
        (out / SIMPLE_CSV, SIMPLE_COLUMNS, simple_rows),
        (out / DETAILED_CSV, DETAILED_COLUMNS, detailed_rows),
    ):
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=columns)
            writer.writeheader()
            for r in rows:
                writer.writerow(r)

    return stats
