from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .pixels import PixelClassifier
from .types import BoundingBox, ColorSample, RasterPage, RGBColor
from .utils import round_half_up


@dataclass(frozen=True)
class ColorSampler:
    """Average the non-background pixels of a region.

    Strided sampling visits a bounded grid of about ``columns x rows`` points.
    Dense sampling (``stride=False``) visits every pixel of the box. A region
    with no non-background sample falls back to its center pixel.
    """
    classifier: PixelClassifier = field(default_factory=PixelClassifier)
    columns: int = 10
    rows: int = 5

    def sample(self, page: RasterPage, box: BoundingBox, *, stride: bool = True) -> ColorSample:
        if stride:
            step_x = max(1, box.width // self.columns)
            step_y = max(1, box.height // self.rows)
        else:
            step_x = step_y = 1

        grid = page.pixels[box.y : box.bottom : step_y, box.x : box.right : step_x]
        keep = ~self.classifier.background_mask(grid)
        count = int(keep.sum())

        if count:
            sums = grid[keep].astype(np.int64).sum(axis=0)
            rgb = RGBColor(*(round_half_up(int(s) / count) for s in sums))
        else:
            rgb = page.pixel(box.x + box.width // 2, box.y + box.height // 2)

        return ColorSample(rgb=rgb, bounding_box=box, corner_pixel=page.pixel(box.right - 1, box.bottom - 1))
