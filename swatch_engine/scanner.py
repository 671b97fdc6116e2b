"""Run-length boundary detection over background/non-background scan lines.

All intervals are half-open ``(start, end)`` in scan-line coordinates.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .types import BoundingBox, RGBColor, RowSpan
from .utils import round_half_up


PAIRED = "paired"
NEXT_START = "next_start"


# ═══════════════════════════════════════════════════════════════════════════════
# 1-D SCANNER
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class BoundaryScanner:
    """Turn a line of background flags into content intervals.

    ``paired``: a region closes after ``gap`` consecutive background samples
    and ends where that background run began. A region still open at the end
    of the line ends after its last content sample.

    ``next_start``: regions open the same way but each one extends up to the
    next region's start (or the end of the line for the last one).

    Intervals shorter than ``min_run`` are dropped in both policies.
    """
    min_run: int
    gap: int
    policy: str = PAIRED

    def __post_init__(self) -> None:
        if self.min_run < 1 or self.gap < 1:
            raise ValueError(f"min_run and gap must be >= 1, got {self.min_run}, {self.gap}")
        if self.policy not in (PAIRED, NEXT_START):
            raise ValueError(f"unknown boundary policy: {self.policy}")

    def scan(self, background: Sequence[bool] | np.ndarray, offset: int = 0) -> list[tuple[int, int]]:
        flags = [bool(v) for v in background]
        n = len(flags)

        starts: list[int] = []
        closed: list[tuple[int, int]] = []
        in_region = False
        run = 0
        for i, bg in enumerate(flags):
            if not in_region:
                if not bg:
                    in_region = True
                    starts.append(i)
                    run = 0
                continue
            if bg:
                run += 1
                if run >= self.gap:
                    closed.append((starts[-1], i + 1 - self.gap))
                    in_region = False
                    run = 0
            else:
                run = 0
        if in_region:
            closed.append((starts[-1], n - run))

        if self.policy == NEXT_START:
            bounds = [(s, starts[k + 1] if k + 1 < len(starts) else n) for k, s in enumerate(starts)]
        else:
            bounds = closed

        return [(s + offset, e + offset) for s, e in bounds if e - s >= self.min_run]


# ═══════════════════════════════════════════════════════════════════════════════
# ROW SEGMENTATION (vertical scan at one column)
# ═══════════════════════════════════════════════════════════════════════════════

def detect_rows(
    column_background: Sequence[bool] | np.ndarray,
    start_y: int,
    *,
    backoff: int = 45,
    gap: int = 50,
    bottom_margin: int = 100,
    edge_margin: int = 10,
) -> list[RowSpan]:
    """Segment a single pixel column into content rows.

    Starting at ``start_y``, the first content sample opens a row which is
    moved up by ``backoff`` (never above the previous row). The row closes
    once ``gap`` background samples follow its content. A row that reaches
    the bottom edge without such a gap ends after its last content sample.
    """
    col = [bool(v) for v in column_background]
    height = len(col)
    limit = height - edge_margin

    rows: list[RowSpan] = []
    floor = 0
    y = max(0, start_y)
    while y < height - bottom_margin:
        first = next((i for i in range(y, limit) if not col[i]), None)
        if first is None:
            break
        row_start = max(floor, first - backoff)

        run = 0
        last_content = first
        end: int | None = None
        for i in range(first, limit):
            if col[i]:
                run += 1
                if run >= gap:
                    end = i + 1 - gap
                    break
            else:
                run = 0
                last_content = i
        if end is None:
            end = last_content + 1
        end = max(end, row_start + 1)

        rows.append(RowSpan(row_start, end))
        floor = end
        y = end
    return rows


# ═══════════════════════════════════════════════════════════════════════════════
# ANCHOR BOXES (row grouping inside the left margin)
# ═══════════════════════════════════════════════════════════════════════════════

def find_anchor_boxes(
    margin_mask: np.ndarray,
    *,
    min_row_fraction: float = 0.10,
    min_row_width: int = 5,
    min_height: int = 8,
) -> list[BoundingBox]:
    """Group consecutive anchor-colored rows of the margin into boxes.

    ``margin_mask`` is the (height, margin_width) anchor-pixel mask. A row
    qualifies when its anchor fraction exceeds ``min_row_fraction`` and its
    anchor span is at least ``min_row_width`` wide. The box spans the union
    of the qualifying rows' spans.
    """
    height, margin = margin_mask.shape[:2]
    if margin == 0:
        return []

    counts = margin_mask.sum(axis=1)
    boxes: list[BoundingBox] = []
    current: list[int] | None = None  # [top, left, right_inclusive, rows]

    def close() -> None:
        if current is not None and current[3] >= min_height:
            top, left, right, rows = current
            boxes.append(BoundingBox(left, top, right - left + 1, rows))

    for y in range(height):
        span: tuple[int, int] | None = None
        if counts[y] / margin > min_row_fraction:
            xs = np.flatnonzero(margin_mask[y])
            left, right = int(xs[0]), int(xs[-1])
            if right - left + 1 >= min_row_width:
                span = (left, right)

        if span is None:
            close()
            current = None
            continue
        if current is None:
            current = [y, span[0], span[1], 1]
        else:
            current[1] = min(current[1], span[0])
            current[2] = max(current[2], span[1])
            current[3] += 1
    close()
    return boxes


# ═══════════════════════════════════════════════════════════════════════════════
# PERCENTAGE FALLBACK (no anchors on the page)
# ═══════════════════════════════════════════════════════════════════════════════

def find_fill_row(
    fill_mask: np.ndarray,
    ratios: Sequence[float],
    *,
    step: int = 5,
    min_ratio: float = 0.3,
    default_ratio: float = 0.118,
) -> int:
    """First candidate row (as a fraction of page height) dense with box fill."""
    height = fill_mask.shape[0]
    for ratio in ratios:
        y = min(height - 1, round_half_up(height * ratio))
        samples = fill_mask[y, ::step]
        if samples.size and samples.sum() / samples.size > min_ratio:
            return y
    return min(height - 1, round_half_up(height * default_ratio))


def find_fill_band(fill_mask: np.ndarray, center_y: int, *, step: int = 10, min_ratio: float = 0.2) -> tuple[int, int]:
    """Grow a half-open vertical band around ``center_y`` while rows stay filled."""
    height = fill_mask.shape[0]

    def filled(y: int) -> bool:
        samples = fill_mask[y, ::step]
        return bool(samples.size) and samples.sum() / samples.size > min_ratio

    top = center_y
    y = center_y
    while y >= 0 and filled(y):
        top = y
        y -= 1
    bottom = center_y
    y = center_y
    while y < height and filled(y):
        bottom = y
        y += 1
    return top, bottom + 1


def smooth_profile(values: np.ndarray, window: int = 2) -> np.ndarray:
    """Moving average over ``[x - window, x + window]`` clipped to the line."""
    n = len(values)
    if n == 0 or window <= 0:
        return values.astype(np.float64)
    csum = np.concatenate([[0.0], np.cumsum(values, dtype=np.float64)])
    idx = np.arange(n)
    lo = np.maximum(0, idx - window)
    hi = np.minimum(n, idx + window + 1)
    return (csum[hi] - csum[lo]) / (hi - lo)


# ═══════════════════════════════════════════════════════════════════════════════
# MERGE HEURISTIC (inactive unless reference.merge_nearby_boxes is set)
# ═══════════════════════════════════════════════════════════════════════════════

def merge_nearby_boxes(
    boxes: Sequence[tuple[BoundingBox, RGBColor]],
    *,
    max_gap: int = 5,
) -> list[tuple[BoundingBox, RGBColor]]:
    """Join horizontally adjacent boxes separated by at most ``max_gap`` px.

    The merged box keeps the first box's row and height; its color is the
    rounded mean of the two colors being merged.
    """
    if len(boxes) <= 1:
        return list(boxes)

    ordered = sorted(boxes, key=lambda b: b[0].x)
    merged: list[tuple[BoundingBox, RGBColor]] = []
    cur_box, cur_rgb = ordered[0]
    for box, rgb in ordered[1:]:
        gap = box.x - cur_box.right
        if 0 <= gap <= max_gap:
            cur_box = BoundingBox(cur_box.x, cur_box.y, box.right - cur_box.x, cur_box.height)
            cur_rgb = RGBColor(
                round_half_up((cur_rgb.r + rgb.r) / 2),
                round_half_up((cur_rgb.g + rgb.g) / 2),
                round_half_up((cur_rgb.b + rgb.b) / 2),
            )
        else:
            merged.append((cur_box, cur_rgb))
            cur_box, cur_rgb = box, rgb
    merged.append((cur_box, cur_rgb))
    return merged
