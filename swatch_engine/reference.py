from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from .config import EngineConfig
from .interpreter import Interpretation, ReferenceText, TextInterpreter
from .job import JobPaths, warn
from .ocr import RecognitionPool, TextSource
from .pixels import PixelClassifier, brightness_map
from .sampler import ColorSampler
from .scanner import (
    PAIRED,
    BoundaryScanner,
    find_anchor_boxes,
    find_fill_band,
    find_fill_row,
    merge_nearby_boxes,
    smooth_profile,
)
from .types import BoundingBox, RasterPage, ReferenceEntry, RGBColor
from .utils import round_half_up


METHOD_ANCHORS = "anchors"
METHOD_FALLBACK = "fallback"


@dataclass(frozen=True)
class ReferenceRegion:
    """One reference color box plus where its label text is read from."""
    region_id: str
    box: BoundingBox
    rgb: RGBColor
    text_box: BoundingBox | None


@dataclass
class ReferenceExtraction:
    entries: list[ReferenceEntry]
    anchors: list[BoundingBox]
    method: str
    regions: list[ReferenceRegion] = field(default_factory=list)
    recognition: dict[str, dict[str, Any]] = field(default_factory=dict)
    failed_regions: list[str] = field(default_factory=list)


class ReferenceExtractor:
    """Locate the reference palette and read each box's code, name and Pantone label.

    Anchor boxes in the left margin mark the palette rows. Without any
    anchor the page falls back to percentage-based band detection.
    """

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
        self.sampler = ColorSampler(self.classifier, cfg.reference.sample_columns, cfg.reference.sample_rows)
        self.interpreter = TextInterpreter(fallback_bucket=cfg.reference.fallback_bucket)

    # ─────────────────────────────────────────────────────────────────────────
    # Structure
    # ─────────────────────────────────────────────────────────────────────────

    def find_anchors(self, page: RasterPage) -> list[BoundingBox]:
        a = self.cfg.anchors
        margin = int(page.width * a.margin_ratio)
        mask = self.classifier.anchor_mask(page.pixels[:, :margin])
        return find_anchor_boxes(
            mask,
            min_row_fraction=a.min_row_fraction,
            min_row_width=a.min_row_width,
            min_height=a.min_height,
        )

    def boxes_for_anchor(self, page: RasterPage, anchor: BoundingBox) -> list[tuple[BoundingBox, RGBColor]]:
        """Scan right of an anchor, at its mid-height, for color boxes of that row."""
        r = self.cfg.reference
        scan_y = min(page.height - 1, round_half_up(anchor.y + anchor.height / 2))
        start_x = anchor.right + r.start_offset
        if start_x >= page.width:
            return []

        line = self.classifier.background_mask(page.pixels[scan_y, start_x:])
        scanner = BoundaryScanner(min_run=r.min_width, gap=r.gap, policy=PAIRED)

        boxes: list[tuple[BoundingBox, RGBColor]] = []
        for x0, x1 in scanner.scan(line, offset=start_x):
            box = page.clip(x0, anchor.y, x1 - x0, anchor.height)
            if box is None:
                continue
            boxes.append((box, self.sampler.sample(page, box).rgb))

        if r.merge_nearby_boxes:
            boxes = merge_nearby_boxes(boxes, max_gap=r.merge_max_gap)
        return boxes

    def fallback_boxes(self, page: RasterPage) -> list[tuple[BoundingBox, RGBColor]]:
        """Percentage-based detection used only when no anchor exists."""
        f = self.cfg.fallback
        fill = self.classifier.box_fill_mask(page.pixels)
        center_y = find_fill_row(
            fill,
            f.scan_ratios,
            step=f.row_step,
            min_ratio=f.row_fill_ratio,
            default_ratio=f.default_ratio,
        )
        top, bottom = find_fill_band(fill, center_y, step=f.column_step, min_ratio=f.column_fill_ratio)

        profile = smooth_profile(brightness_map(page.pixels[center_y]), f.smooth_window)
        background = profile >= self.cfg.pixels.fill_threshold
        scanner = BoundaryScanner(min_run=f.min_width, gap=1, policy=PAIRED)

        boxes: list[tuple[BoundingBox, RGBColor]] = []
        for x0, x1 in scanner.scan(background):
            box = BoundingBox(x0, top, x1 - x0, bottom - top)
            boxes.append((box, self.sampler.sample(page, box).rgb))
        return boxes

    def locate(self, page: RasterPage) -> tuple[list[BoundingBox], str, list[ReferenceRegion]]:
        anchors = self.find_anchors(page)
        regions: list[ReferenceRegion] = []

        if anchors:
            for ai, anchor in enumerate(anchors, start=1):
                for bi, (box, rgb) in enumerate(self.boxes_for_anchor(page, anchor), start=1):
                    # Labels are printed inside the box, within the anchor's rows.
                    text_box = page.clip(box.x, anchor.y, box.width, anchor.height)
                    regions.append(ReferenceRegion(f"ref_a{ai}_b{bi}", box, rgb, text_box))
            return anchors, METHOD_ANCHORS, regions

        text_height = round_half_up(page.height * self.cfg.fallback.text_height_ratio)
        for bi, (box, rgb) in enumerate(self.fallback_boxes(page), start=1):
            # Labels sit below the band.
            text_box = page.clip(box.x, box.bottom, box.width, text_height)
            regions.append(ReferenceRegion(f"ref_f_b{bi}", box, rgb, text_box))
        return anchors, METHOD_FALLBACK, regions

    # ─────────────────────────────────────────────────────────────────────────
    # Text
    # ─────────────────────────────────────────────────────────────────────────

    def _task(self, page: RasterPage, region: ReferenceRegion) -> Callable[[], Interpretation[ReferenceText]]:
        limit = self.cfg.ocr.reference_variants

        def run() -> Interpretation[ReferenceText]:
            if region.text_box is None:
                variants: Any = iter(())
            else:
                variants = self.text_source.variants(region.region_id, page.crop(region.text_box), limit=limit)
            return self.interpreter.interpret_reference(variants, x=region.box.x, rgb=region.rgb)

        return run

    def extract(self, page: RasterPage, page_id: str = "page_001") -> ReferenceExtraction:
        anchors, method, regions = self.locate(page)
        if method == METHOD_FALLBACK:
            warn(self.paths, page_id, "reference", "no_anchor_boxes: using percentage-based detection")

        tasks = {region.region_id: self._task(page, region) for region in regions}
        results = self.pool.run(tasks, page_id=page_id, stage="reference")

        out = ReferenceExtraction(entries=[], anchors=anchors, method=method, regions=regions)
        for region in regions:
            interp = results.get(region.region_id)
            if interp is None or interp.value is None:
                out.failed_regions.append(region.region_id)
                continue
            text = interp.value
            out.entries.append(
                ReferenceEntry(
                    code=text.code,
                    name=text.name,
                    pantone_label=text.pantone_label,
                    rgb=region.rgb,
                    bounding_box=region.box,
                    source=text.source,
                    low_confidence=text.low_confidence,
                )
            )
            out.recognition[region.region_id] = {
                "source": interp.source,
                "variant_index": interp.variant_index,
                "texts": interp.texts,
            }
        return out
