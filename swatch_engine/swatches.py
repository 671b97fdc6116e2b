from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

import numpy as np

from .config import EngineConfig
from .interpreter import Interpretation, SwatchText, TextInterpreter
from .job import JobPaths, warn
from .ocr import RecognitionPool, TextSource
from .pixels import PixelClassifier
from .sampler import ColorSampler
from .scanner import NEXT_START, PAIRED, BoundaryScanner, detect_rows
from .types import BoundingBox, ColorSample, RasterPage, RowSpan, SwatchRecord


@dataclass(frozen=True)
class SwatchRegion:
    region_id: str
    row_index: int
    box: BoundingBox
    text_box: BoundingBox


@dataclass
class SwatchExtraction:
    swatches: list[SwatchRecord]
    start_y: int
    rows: list[RowSpan]
    regions: list[SwatchRegion] = field(default_factory=list)
    recognition: dict[str, dict[str, Any]] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


class SwatchExtractor:
    """Rows below the reference palette, swatches inside rows, color boxes inside swatches."""

    def __init__(
        self,
        cfg: EngineConfig,
        text_source: TextSource,
        pool: RecognitionPool | None = None,
        paths: JobPaths | None = None,
    ):
        self.cfg = cfg
        self.text_source = text_source
        self.pool = pool or RecognitionPool(workers=cfg.ocr.workers, timeout_s=cfg.ocr.timeout_s, paths=paths)
        self.paths = paths
        self.classifier = PixelClassifier(cfg.pixels)
        self.sampler = ColorSampler(self.classifier)
        self.interpreter = TextInterpreter(fallback_bucket=cfg.reference.fallback_bucket)

    def start_position(self, anchors: Sequence[BoundingBox], page_height: int) -> int:
        if not anchors:
            return 0
        lowest = max(anchors, key=lambda a: a.bottom)
        return min(lowest.bottom + self.cfg.rows.start_margin, page_height - self.cfg.rows.bottom_margin)

    def detect_rows(self, page: RasterPage, start_y: int) -> list[RowSpan]:
        r = self.cfg.rows
        x = min(r.scan_x, page.width - 1)
        column = self.classifier.background_mask(page.pixels[:, x])
        return detect_rows(
            column,
            start_y,
            backoff=r.backoff,
            gap=r.gap,
            bottom_margin=r.bottom_margin,
            edge_margin=r.edge_margin,
        )

    def swatch_boxes(self, page: RasterPage, row: RowSpan) -> list[BoundingBox]:
        s = self.cfg.swatches
        scan_y = min(page.height - 1, int(math.floor(row.start + row.height * s.scan_ratio)))
        line = self.classifier.background_mask(page.pixels[scan_y])
        scanner = BoundaryScanner(min_run=s.min_width, gap=s.gap, policy=NEXT_START)
        return [BoundingBox(x0, row.start, x1 - x0, row.height) for x0, x1 in scanner.scan(line)]

    # ─────────────────────────────────────────────────────────────────────────
    # Color boxes inside one swatch
    # ─────────────────────────────────────────────────────────────────────────

    def color_area(self, page: RasterPage, swatch: BoundingBox) -> tuple[int, int] | None:
        """Half-open page rows holding the swatch's color boxes, below its text."""
        s = self.cfg.swatches
        content = ~self.classifier.background_mask(page.region(swatch))
        has_content = content.any(axis=1)
        h = swatch.height

        filled = np.flatnonzero(has_content)
        last = int(filled[-1]) if filled.size else h - 1

        search_from = int(math.floor(h * s.color_area_start_ratio))
        below = np.flatnonzero(has_content[search_from:])
        first = search_from + int(below[0]) if below.size else int(math.floor(h * s.color_area_fallback_ratio))

        if first > last:
            return None
        return swatch.y + first, swatch.y + last + 1

    def solid_rows(self, page: RasterPage, area: BoundingBox) -> tuple[int, int] | None:
        """First and last area rows (half-open, page coords) that are mostly non-background."""
        s = self.cfg.swatches
        content = ~self.classifier.background_mask(page.region(area))
        solid = content.sum(axis=1) > area.width * s.solid_fraction
        start = int(math.floor(area.height * s.solid_start_ratio))
        rows = np.flatnonzero(solid[start:])
        if not rows.size:
            return None
        return area.y + start + int(rows[0]), area.y + start + int(rows[-1]) + 1

    def colors_in_swatch(self, page: RasterPage, swatch: BoundingBox) -> list[ColorSample]:
        s = self.cfg.swatches
        span = self.color_area(page, swatch)
        if span is None:
            return []
        top, bottom = span
        area_h = bottom - top

        scan_y = top + int(math.floor(area_h * 0.5))
        line = self.classifier.background_mask(page.pixels[scan_y, swatch.x : swatch.right])
        scanner = BoundaryScanner(min_run=s.box_min_width, gap=s.box_gap, policy=PAIRED)

        colors: list[ColorSample] = []
        for x0, x1 in scanner.scan(line, offset=swatch.x):
            column = BoundingBox(x0, top, x1 - x0, area_h)
            solid = self.solid_rows(page, column)
            if solid is None:
                continue
            box = BoundingBox(x0, solid[0], x1 - x0, solid[1] - solid[0])
            colors.append(self.sampler.sample(page, box, stride=False))
        return colors

    # ─────────────────────────────────────────────────────────────────────────
    # Extraction
    # ─────────────────────────────────────────────────────────────────────────

    def locate(self, page: RasterPage, anchors: Sequence[BoundingBox]) -> tuple[int, list[RowSpan], list[SwatchRegion]]:
        start_y = self.start_position(anchors, page.height)
        rows = self.detect_rows(page, start_y)
        regions: list[SwatchRegion] = []
        for ri, row in enumerate(rows, start=1):
            for si, box in enumerate(self.swatch_boxes(page, row), start=1):
                text_h = max(1, int(math.floor(box.height * self.cfg.swatches.text_ratio)))
                text_box = BoundingBox(box.x, box.y, box.width, text_h)
                regions.append(SwatchRegion(f"swatch_r{ri}_s{si}", ri, box, text_box))
        return start_y, rows, regions

    def _task(self, page: RasterPage, region: SwatchRegion) -> Callable[[], Interpretation[SwatchText]]:
        limit = self.cfg.ocr.swatch_variants

        def run() -> Interpretation[SwatchText]:
            variants = self.text_source.variants(region.region_id, page.crop(region.text_box), limit=limit)
            return self.interpreter.interpret_swatch(variants)

        return run

    def extract(self, page: RasterPage, anchors: Sequence[BoundingBox], page_id: str = "page_001") -> SwatchExtraction:
        start_y, rows, regions = self.locate(page, anchors)
        if not rows:
            warn(self.paths, page_id, "swatches", f"no_rows_detected: start_y={start_y}")

        tasks = {region.region_id: self._task(page, region) for region in regions}
        results = self.pool.run(tasks, page_id=page_id, stage="swatches")

        out = SwatchExtraction(swatches=[], start_y=start_y, rows=rows, regions=regions)
        for region in regions:
            interp = results.get(region.region_id)
            if interp is None:
                out.skipped.append(region.region_id)
                continue
            out.recognition[region.region_id] = {
                "source": interp.source,
                "variant_index": interp.variant_index,
                "texts": interp.texts,
            }
            if interp.value is None:
                warn(self.paths, page_id, "swatches", f"no_text_lines: {region.region_id}")
                out.skipped.append(region.region_id)
                continue
            try:
                colors = self.colors_in_swatch(page, region.box)
            except Exception as e:
                warn(self.paths, page_id, "swatches", f"color_detection_failed: {region.region_id}: {e}")
                out.skipped.append(region.region_id)
                continue
            out.swatches.append(
                SwatchRecord(
                    style_number=interp.value.style_number,
                    style_name=interp.value.style_name,
                    colors=colors,
                    bounding_box=region.box,
                )
            )
        return out
