from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import EngineConfig, load_expected_palette
from .debug import write_debug_images
from .job import JobPaths, job_paths, record_error
from .matcher import ColorMatcher, MatchStats
from .ocr import MockedRecognizer, OCREngine, RecognitionPool, TextSource, VariantRecognizer
from .page_provider import PageProvider
from .reference import METHOD_ANCHORS, ReferenceExtraction, ReferenceExtractor
from .swatches import SwatchExtraction, SwatchExtractor
from .types import (
    SOURCE_FALLBACK,
    SOURCE_REUSED,
    BoundingBox,
    MatchedSwatch,
    RasterPage,
    ReferenceEntry,
    SwatchRecord,
    ValidationResult,
)
from .utils import load_json, utc_now_iso
from .validator import ReferenceValidator
from .writer import JobWriter


METHOD_REUSED = "reused"


class PipelineError(RuntimeError):
    """The run cannot produce any output (e.g. no usable page image)."""


@dataclass
class RunOptions:
    input_path: str
    input_type: str
    page: int = 1  # 1-based
    dpi: int | None = None
    target_width: int | None = None
    mocked_ocr_path: str | None = None
    reference_from: str | None = None
    palette_path: str | None = None
    debug: bool = False


@dataclass
class PageResult:
    page_id: str
    anchors: list[BoundingBox]
    reference_method: str
    raw_palette: list[ReferenceEntry]
    palette: list[ReferenceEntry]
    validation: ValidationResult | None
    swatches: list[SwatchRecord]
    matched: list[MatchedSwatch]
    stats: MatchStats
    counters: dict[str, int] = field(default_factory=dict)


def load_reused_palette(job_dir: str | Path) -> list[ReferenceEntry]:
    """Corrected palette of a previous job, marked as reused."""
    data = load_json(job_paths(job_dir).reference_json)
    raw = data.get("reference_colors", []) if isinstance(data, dict) else []
    out: list[ReferenceEntry] = []
    for d in raw:
        e = ReferenceEntry.from_dict(d)
        out.append(
            ReferenceEntry(
                code=e.code,
                name=e.name,
                pantone_label=e.pantone_label,
                rgb=e.rgb,
                bounding_box=e.bounding_box,
                source=SOURCE_REUSED,
                low_confidence=e.low_confidence,
            )
        )
    return out


def anchors_from_entries(entries: list[ReferenceEntry]) -> list[BoundingBox]:
    """One box per palette row, spanning the entries that share it."""
    rows: dict[tuple[int, int], list[BoundingBox]] = {}
    for e in entries:
        b = e.bounding_box
        rows.setdefault((b.y, b.height), []).append(b)
    anchors = []
    for (y, h), boxes in sorted(rows.items()):
        x0 = min(b.x for b in boxes)
        x1 = max(b.right for b in boxes)
        anchors.append(BoundingBox(x0, y, x1 - x0, h))
    return anchors


class EnginePipeline:
    def __init__(
        self,
        paths: JobPaths,
        cfg: EngineConfig,
        opts: RunOptions,
        text_source: TextSource | None = None,
    ):
        self.paths = paths
        self.cfg = cfg
        self.opts = opts

        self.page_provider = PageProvider(
            input_path=opts.input_path,
            input_type=opts.input_type,
            paths=paths,
            dpi=opts.dpi,
            target_width=opts.target_width,
            pages=(opts.page,),
        )
        if text_source is None:
            if opts.mocked_ocr_path:
                text_source = MockedRecognizer.from_file(opts.mocked_ocr_path)
            else:
                engine = OCREngine(engine=cfg.ocr.engine, lang=cfg.ocr.lang, timeout_s=cfg.ocr.timeout_s)
                text_source = VariantRecognizer(recognize=engine)
        self.text_source = text_source

        pool = RecognitionPool(workers=cfg.ocr.workers, timeout_s=cfg.ocr.timeout_s, paths=paths)
        self.references = ReferenceExtractor(cfg, text_source, pool=pool, paths=paths)
        self.swatch_extractor = SwatchExtractor(cfg, text_source, pool=pool, paths=paths)
        self.matcher_max_distance = cfg.matching.max_distance
        self.writer = JobWriter(paths=paths)

    # ─────────────────────────────────────────────────────────────────────────
    # Stages
    # ─────────────────────────────────────────────────────────────────────────

    def _reference_stage(self, page_id: str, raster: RasterPage) -> tuple[ReferenceExtraction | None, list[ReferenceEntry]]:
        if self.opts.reference_from:
            try:
                return None, load_reused_palette(self.opts.reference_from)
            except Exception as e:
                record_error(self.paths, page_id=page_id, stage="reference", message=f"reference_reuse_failed: {e}")
        try:
            extraction = self.references.extract(raster, page_id)
            return extraction, list(extraction.entries)
        except Exception as e:
            record_error(self.paths, page_id=page_id, stage="reference", message=str(e))
            return None, []

    def _expected_palette(self, page_id: str) -> ReferenceValidator | None:
        v = self.cfg.validation
        path = Path(self.opts.palette_path or v.palette_path)
        if not path.exists():
            record_error(self.paths, page_id=page_id, stage="validation", message=f"expected_palette_missing: {path}")
            return None
        try:
            expected = load_expected_palette(path)
        except Exception as e:
            record_error(self.paths, page_id=page_id, stage="validation", message=f"expected_palette_invalid: {e}")
            return None
        return ReferenceValidator(expected=expected, tolerance=v.tolerance)

    def _validation_stage(self, page_id: str, raw: list[ReferenceEntry]) -> tuple[list[ReferenceEntry], ValidationResult | None]:
        if not self.cfg.validation.enabled or not raw or all(e.source == SOURCE_REUSED for e in raw):
            return list(raw), None
        validator = self._expected_palette(page_id)
        if validator is None:
            return list(raw), None
        result = validator.validate(raw)
        for c in result.corrections:
            record_error(
                self.paths,
                page_id=page_id,
                stage="validation",
                message=f"corrected[{c.index}]: {c.reason}",
                level="info",
            )
        return validator.apply_corrections(raw, result.corrections), result

    def process_page(self, page_id: str, raster: RasterPage) -> PageResult:
        counters = {"recognition_failures": 0, "swatches_skipped": 0, "rows_detected": 0}

        extraction, raw_palette = self._reference_stage(page_id, raster)
        if extraction is not None:
            anchors, method = extraction.anchors, extraction.method
            counters["recognition_failures"] += len(extraction.failed_regions)
        elif self.opts.reference_from and raw_palette:
            anchors, method = anchors_from_entries(raw_palette), METHOD_REUSED
        else:
            anchors, method = [], METHOD_ANCHORS

        palette, validation = self._validation_stage(page_id, raw_palette)

        swatch_result: SwatchExtraction | None = None
        try:
            swatch_result = self.swatch_extractor.extract(raster, anchors, page_id)
        except Exception as e:
            record_error(self.paths, page_id=page_id, stage="swatches", message=str(e))

        swatches = list(swatch_result.swatches) if swatch_result else []
        if swatch_result is not None:
            counters["swatches_skipped"] = len(swatch_result.skipped)
            counters["rows_detected"] = len(swatch_result.rows)
            counters["recognition_failures"] += sum(
                1 for rid in swatch_result.skipped if rid not in swatch_result.recognition
            )

        matcher = ColorMatcher(palette, max_distance=self.matcher_max_distance)
        matched = matcher.match_swatches(swatches)
        stats = matcher.stats(matched)

        self.writer.write_stage(
            page_id,
            anchors={
                "page_id": page_id,
                "method": method,
                "anchors": [a.to_dict() for a in anchors],
                "regions": [
                    {"region_id": r.region_id, "bounding_box": r.box.to_dict(), "hex": r.rgb.hex}
                    for r in (extraction.regions if extraction else [])
                ],
            },
            rows={
                "page_id": page_id,
                "start_y": swatch_result.start_y if swatch_result else None,
                "rows": [r.to_dict() for r in (swatch_result.rows if swatch_result else [])],
            },
            recognition={
                "page_id": page_id,
                "reference": extraction.recognition if extraction else {},
                "swatches": swatch_result.recognition if swatch_result else {},
            },
        )
        self.writer.write_report(matcher.report(matched))

        if self.opts.debug:
            try:
                write_debug_images(
                    self.paths.debug_dir,
                    page_id,
                    raster,
                    anchors=anchors,
                    references=palette,
                    rows=swatch_result.rows if swatch_result else [],
                    swatches=swatches,
                )
            except Exception as e:
                record_error(self.paths, page_id=page_id, stage="debug", message=str(e))

        return PageResult(
            page_id=page_id,
            anchors=list(anchors),
            reference_method=method,
            raw_palette=raw_palette,
            palette=palette,
            validation=validation,
            swatches=swatches,
            matched=matched,
            stats=stats,
            counters=counters,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Run
    # ─────────────────────────────────────────────────────────────────────────

    def run(self, job_id: str) -> PageResult:
        metrics: dict[str, Any] = load_json(self.paths.metrics_json) if self.paths.metrics_json.exists() else {}
        metrics.setdefault("created_at", utc_now_iso())

        job_meta = {
            "job_id": job_id,
            "input": {"type": self.opts.input_type, "path": self.opts.input_path, "page": self.opts.page},
            "reference_from": self.opts.reference_from,
            "created_at": metrics["created_at"],
        }

        try:
            pages = list(self.page_provider.iter_pages())
        except (OSError, ValueError, RuntimeError) as e:
            record_error(self.paths, page_id="", stage="rasterize", message=str(e), level="error")
            raise PipelineError(f"could not read input: {e}") from e

        if not pages:
            record_error(self.paths, page_id="", stage="rasterize", message="no_page_image", level="error")
            raise PipelineError(f"no page {self.opts.page} in {self.opts.input_path}")

        page, raster = pages[0]
        metrics["pages_total"] = len(pages)
        job_meta["page_id"] = page.page_id
        job_meta["source_ref"] = page.source_ref
        result = self.process_page(page.page_id, raster)
        metrics["pages_processed"] = 1

        metrics.update(
            {
                "anchors_found": len(result.anchors),
                "reference_method": result.reference_method,
                "reference_colors_total": len(result.palette),
                "reference_fallback_codes": sum(1 for e in result.palette if e.source == SOURCE_FALLBACK),
                "corrections_applied": len(result.validation.corrections) if result.validation else 0,
                "rows_detected": result.counters.get("rows_detected", 0),
                "swatches_total": len(result.swatches),
                "swatches_skipped": result.counters.get("swatches_skipped", 0),
                "colors_total": result.stats.total_colors,
                "colors_matched": result.stats.matched_colors,
                "recognition_failures": result.counters.get("recognition_failures", 0),
            }
        )

        self.writer.write_final(
            job_meta=job_meta,
            raw_palette=result.raw_palette,
            palette=result.palette,
            validation=result.validation,
            swatches=result.swatches,
            matched=result.matched,
            stats=result.stats,
            max_distance=self.matcher_max_distance,
            metrics=metrics,
        )
        return result
