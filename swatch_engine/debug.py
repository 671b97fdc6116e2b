"""Annotated page overlays for inspecting detection results."""
from __future__ import annotations

from pathlib import Path
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from .types import BoundingBox, RasterPage, ReferenceEntry, RowSpan, SwatchRecord
from .utils import ensure_dir


COLORS = {
    "anchor": "#00FFFF",
    "reference": "#FF00FF",
    "row": "#FFAA00",
    "swatch": "#00AA00",
    "color_box": "#0055FF",
}


def _get_font(size: int = 16) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    for font_name in ["arial.ttf", "Arial.ttf", "DejaVuSans.ttf", "FreeSans.ttf"]:
        try:
            return ImageFont.truetype(font_name, size)
        except OSError:
            continue
    return ImageFont.load_default()


def _rect(draw: ImageDraw.ImageDraw, box: BoundingBox, color: str, width: int) -> None:
    draw.rectangle([box.x, box.y, box.right - 1, box.bottom - 1], outline=color, width=width)


def annotate_page(
    page: RasterPage,
    *,
    anchors: Sequence[BoundingBox] = (),
    references: Sequence[ReferenceEntry] = (),
    rows: Sequence[RowSpan] = (),
    swatches: Sequence[SwatchRecord] = (),
    line_width: int = 3,
    font_size: int = 16,
) -> Image.Image:
    img = page.to_image()
    draw = ImageDraw.Draw(img)
    font = _get_font(font_size)

    for row in rows:
        draw.line([(0, row.start), (img.width - 1, row.start)], fill=COLORS["row"], width=1)
        draw.line([(0, row.end - 1), (img.width - 1, row.end - 1)], fill=COLORS["row"], width=1)

    for a in anchors:
        _rect(draw, a, COLORS["anchor"], line_width + 1)

    for e in references:
        _rect(draw, e.bounding_box, COLORS["reference"], line_width)
        draw.text((e.bounding_box.x + 2, e.bounding_box.bottom + 2), e.code, fill=COLORS["reference"], font=font)

    for s in swatches:
        _rect(draw, s.bounding_box, COLORS["swatch"], line_width)
        draw.text((s.bounding_box.x + 2, s.bounding_box.y + 2), s.style_number, fill=COLORS["swatch"], font=font)
        for c in s.colors:
            _rect(draw, c.bounding_box, COLORS["color_box"], max(1, line_width - 1))

    return img


def write_debug_images(
    out_dir: str | Path,
    page_id: str,
    page: RasterPage,
    *,
    anchors: Sequence[BoundingBox] = (),
    references: Sequence[ReferenceEntry] = (),
    rows: Sequence[RowSpan] = (),
    swatches: Sequence[SwatchRecord] = (),
) -> list[Path]:
    """Write the full overlay plus a crop of the anchor margin."""
    out = Path(out_dir)
    ensure_dir(out)
    annotated = annotate_page(page, anchors=anchors, references=references, rows=rows, swatches=swatches)

    written = [out / f"{page_id}_overlay.png"]
    annotated.save(written[0], format="PNG")

    margin = max(1, int(page.width * 0.15))
    written.append(out / f"{page_id}_anchor_margin.png")
    annotated.crop((0, 0, margin, page.height)).save(written[1], format="PNG")
    return written
