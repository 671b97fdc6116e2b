"""Pixel predicates.

Each predicate exists twice: a scalar form for a single RGB triplet and an
array form over an (..., 3) uint8 array. Both forms classify identically.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .config import PixelConfig


def is_background(rgb: Sequence[int], threshold: int = 240) -> bool:
    r, g, b = rgb
    return r > threshold and g > threshold and b > threshold


def is_anchor_color(rgb: Sequence[int], red_min: int = 180, other_max: int = 100) -> bool:
    r, g, b = rgb
    return r > red_min and g < other_max and b < other_max


def brightness(rgb: Sequence[int]) -> float:
    r, g, b = rgb
    return (int(r) + int(g) + int(b)) / 3.0


def is_box_fill(rgb: Sequence[int], lo: float = 20.0, hi: float = 250.0) -> bool:
    v = brightness(rgb)
    return lo < v < hi


def background_mask(pixels: np.ndarray, threshold: int = 240) -> np.ndarray:
    return np.all(pixels > threshold, axis=-1)


def anchor_mask(pixels: np.ndarray, red_min: int = 180, other_max: int = 100) -> np.ndarray:
    return (pixels[..., 0] > red_min) & (pixels[..., 1] < other_max) & (pixels[..., 2] < other_max)


def brightness_map(pixels: np.ndarray) -> np.ndarray:
    return pixels.astype(np.float64).sum(axis=-1) / 3.0


def box_fill_mask(pixels: np.ndarray, lo: float = 20.0, hi: float = 250.0) -> np.ndarray:
    v = brightness_map(pixels)
    return (v > lo) & (v < hi)


@dataclass(frozen=True)
class PixelClassifier:
    """Configured view over the predicates above."""
    cfg: PixelConfig = field(default_factory=PixelConfig)

    def is_background(self, rgb: Sequence[int], threshold: int | None = None) -> bool:
        return is_background(rgb, self.cfg.background_threshold if threshold is None else threshold)

    def is_anchor_color(self, rgb: Sequence[int]) -> bool:
        return is_anchor_color(rgb, self.cfg.anchor_red_min, self.cfg.anchor_other_max)

    def is_box_fill(self, rgb: Sequence[int]) -> bool:
        return is_box_fill(rgb, self.cfg.box_fill_min, self.cfg.box_fill_max)

    def background_mask(self, pixels: np.ndarray, threshold: int | None = None) -> np.ndarray:
        return background_mask(pixels, self.cfg.background_threshold if threshold is None else threshold)

    def anchor_mask(self, pixels: np.ndarray) -> np.ndarray:
        return anchor_mask(pixels, self.cfg.anchor_red_min, self.cfg.anchor_other_max)

    def box_fill_mask(self, pixels: np.ndarray) -> np.ndarray:
        return box_fill_mask(pixels, self.cfg.box_fill_min, self.cfg.box_fill_max)
