from __future__ import annotations

import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .utils import append_jsonl, ensure_dir, utc_now_iso, write_json


@dataclass
class JobPaths:
    job_dir: Path
    input_dir: Path
    pages_dir: Path
    debug_dir: Path
    stage_anchor_dir: Path
    stage_row_dir: Path
    stage_recognition_dir: Path
    reference_raw_json: Path
    reference_json: Path
    swatches_json: Path
    matches_json: Path
    metrics_json: Path
    errors_jsonl: Path


def job_paths(job_dir: str | Path) -> JobPaths:
    """Resolve the fixed layout of a job directory without creating anything."""
    job_dir = Path(job_dir)
    stage_dir = job_dir / "stage"
    return JobPaths(
        job_dir=job_dir,
        input_dir=job_dir / "input",
        pages_dir=job_dir / "pages",
        debug_dir=job_dir / "debug",
        stage_anchor_dir=stage_dir / "anchors",
        stage_row_dir=stage_dir / "rows",
        stage_recognition_dir=stage_dir / "recognition",
        reference_raw_json=job_dir / "reference_colors_raw.json",
        reference_json=job_dir / "reference_colors.json",
        swatches_json=job_dir / "swatches.json",
        matches_json=job_dir / "color_matches.json",
        metrics_json=job_dir / "metrics.json",
        errors_jsonl=job_dir / "errors.jsonl",
    )


def create_job_dirs(workspace: str | Path, job_id: str) -> JobPaths:
    paths = job_paths(Path(workspace) / "jobs" / job_id)
    for p in [
        paths.input_dir,
        paths.pages_dir,
        paths.stage_anchor_dir,
        paths.stage_row_dir,
        paths.stage_recognition_dir,
    ]:
        ensure_dir(p)
    return paths


def new_job_id() -> str:
    """Timeline job id: YYYY-MM-DD/HH-MM-SS__<shortid>."""
    now = datetime.now(timezone.utc)
    date_part = now.strftime("%Y-%m-%d")
    time_part = now.strftime("%H-%M-%S")
    short_id = uuid.uuid4().hex[:8]
    return f"{date_part}/{time_part}__{short_id}"


def record_error(paths: JobPaths, page_id: str, stage: str, message: str, *, level: str = "warning") -> None:
    append_jsonl(
        paths.errors_jsonl,
        {"page_id": page_id, "stage": stage, "level": level, "message": message},
    )


def warn(paths: JobPaths | None, page_id: str, stage: str, message: str) -> None:
    """record_error for components that may run without a job directory."""
    if paths is None:
        return
    record_error(paths, page_id=page_id, stage=stage, message=message)


def init_job_outputs(paths: JobPaths) -> None:
    # Always create output files, even if empty.
    write_json(paths.reference_raw_json, {"reference_colors": []})
    write_json(paths.reference_json, {"reference_colors": [], "validation_applied": False})
    write_json(paths.swatches_json, {"swatches": []})
    write_json(paths.matches_json, {"swatches": [], "stats": {}})
    write_json(
        paths.metrics_json,
        {
            "created_at": utc_now_iso(),
            "finished": False,
            "completed_at": None,
            "pages_total": 0,
            "pages_processed": 0,
            "anchors_found": 0,
            "reference_method": None,
            "reference_colors_total": 0,
            "reference_fallback_codes": 0,
            "corrections_applied": 0,
            "rows_detected": 0,
            "swatches_total": 0,
            "swatches_skipped": 0,
            "colors_total": 0,
            "colors_matched": 0,
            "recognition_failures": 0,
        },
    )
    paths.errors_jsonl.parent.mkdir(parents=True, exist_ok=True)
    paths.errors_jsonl.touch(exist_ok=True)


def snapshot_input(paths: JobPaths, input_path: str | Path, input_type: str) -> None:
    src = Path(input_path)
    if input_type == "pdf" and src.is_file():
        shutil.copy2(src, paths.input_dir / src.name)
    else:
        # For images folder or other: store a lightweight manifest.
        write_json(paths.input_dir / "manifest.json", {"type": input_type, "path": str(src.resolve())})
