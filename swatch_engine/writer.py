from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from .job import JobPaths
from .matcher import MatchStats
from .types import MatchedSwatch, ReferenceEntry, SwatchRecord, ValidationResult
from .utils import utc_now_iso, write_json


@dataclass
class JobWriter:
    paths: JobPaths

    def write_stage(self, page_id: str, *, anchors: dict[str, Any], rows: dict[str, Any], recognition: dict[str, Any]) -> None:
        write_json(self.paths.stage_anchor_dir / f"{page_id}.json", anchors)
        write_json(self.paths.stage_row_dir / f"{page_id}.json", rows)
        write_json(self.paths.stage_recognition_dir / f"{page_id}.json", recognition)

    def write_report(self, text: str) -> None:
        (self.paths.job_dir / "match_report.txt").write_text(text, encoding="utf-8")

    def write_final(
        self,
        job_meta: dict[str, Any],
        raw_palette: Sequence[ReferenceEntry],
        palette: Sequence[ReferenceEntry],
        validation: ValidationResult | None,
        swatches: Sequence[SwatchRecord],
        matched: Sequence[MatchedSwatch],
        stats: MatchStats,
        max_distance: float,
        metrics: dict[str, Any],
    ) -> None:
        now = utc_now_iso()

        # Mark completion only when final outputs are successfully written.
        metrics_out = dict(metrics)
        metrics_out["finished"] = True
        metrics_out["completed_at"] = now

        job_out = dict(job_meta)
        job_out["finished"] = True
        job_out["completed_at"] = now

        write_json(
            self.paths.reference_raw_json,
            {"job": job_out, "reference_colors": [e.to_dict() for e in raw_palette]},
        )
        write_json(
            self.paths.reference_json,
            {
                "job": job_out,
                "validation_applied": validation is not None,
                "corrections_applied": len(validation.corrections) if validation else 0,
                "validation": validation.to_dict() if validation else None,
                "reference_colors": [e.to_dict() for e in palette],
            },
        )
        write_json(
            self.paths.swatches_json,
            {"job": job_out, "total_swatches": len(swatches), "swatches": [s.to_dict() for s in swatches]},
        )
        write_json(
            self.paths.matches_json,
            {
                "job": job_out,
                "matching_method": f"Euclidean Distance (max distance: {max_distance:g})",
                "total_swatches": len(matched),
                "total_colors": stats.total_colors,
                "total_reference_colors": len(palette),
                "stats": stats.to_dict(),
                "swatches": [s.to_dict() for s in matched],
            },
        )
        write_json(self.paths.metrics_json, metrics_out)
