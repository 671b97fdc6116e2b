"""Shared fixtures: synthetic catalog pages drawn with numpy."""
from __future__ import annotations

import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest

from swatch_engine.job import create_job_dirs, init_job_outputs
from swatch_engine.types import RasterPage


WHITE = (255, 255, 255)
ANCHOR_RED = (220, 20, 20)
TEXT_INK = (20, 20, 20)

# Reference palette drawn on the catalog page.
NAVY = (30, 60, 150)
YELLOW = (200, 180, 40)
GREEN = (40, 140, 60)

# Swatch colors: close to a reference color, or far from all of them.
NAVY_PRINT = (32, 62, 148)
YELLOW_PRINT = (198, 182, 44)
GREEN_PRINT = (42, 138, 62)
MAGENTA = (240, 10, 240)

REPO_ROOT = Path(__file__).resolve().parents[1]
EXPECTED_PALETTE = REPO_ROOT / "config" / "expected_palette.json"


def blank(width: int, height: int) -> np.ndarray:
    return np.full((height, width, 3), 255, dtype=np.uint8)


def fill(arr: np.ndarray, x0: int, y0: int, x1: int, y1: int, color: tuple[int, int, int]) -> None:
    """Paint the half-open rectangle [x0, x1) x [y0, y1)."""
    arr[y0:y1, x0:x1] = color


def draw_swatch(arr: np.ndarray, x: int, y: int, colors: list[tuple[int, int, int]]) -> None:
    """Two text bars on top, then 40px color boxes separated by 5px."""
    fill(arr, x, y, x + 150, y + 25, TEXT_INK)
    fill(arr, x, y + 35, x + 120, y + 50, TEXT_INK)
    for i, c in enumerate(colors):
        bx = x + i * 45
        fill(arr, bx, y + 65, bx + 40, y + 200, c)


def catalog_page() -> np.ndarray:
    """1000x1200 page: one anchor row of 3 reference boxes, two swatch rows.

    Row 1 (y 400..600): swatch at x=100 (navy, yellow, green) and swatch at
    x=400 (yellow, magenta). Row 2 (y 700..900): swatch at x=100 (green, navy).
    """
    arr = blank(1000, 1200)
    fill(arr, 10, 50, 40, 110, ANCHOR_RED)
    fill(arr, 100, 50, 180, 110, NAVY)
    fill(arr, 200, 50, 280, 110, YELLOW)
    fill(arr, 300, 50, 380, 110, GREEN)

    draw_swatch(arr, 100, 400, [NAVY_PRINT, YELLOW_PRINT, GREEN_PRINT])
    draw_swatch(arr, 400, 400, [YELLOW_PRINT, MAGENTA])
    draw_swatch(arr, 100, 700, [GREEN_PRINT, NAVY_PRINT])
    return arr


def banded_page() -> np.ndarray:
    """800x1000 page without anchors: three boxes in a band at y 90..160."""
    arr = blank(800, 1000)
    fill(arr, 100, 90, 200, 160, NAVY)
    fill(arr, 250, 90, 350, 160, YELLOW)
    fill(arr, 400, 90, 500, 160, GREEN)
    return arr


CATALOG_TEXT = {
    "ref_a1_b1": ["B20111\nNavy\n19-4024 TCX"],
    "ref_a1_b2": ["B10119\nGardenia\n11-0604 TCX"],
    # ref_a1_b3 has no recognizable text at all.
    "swatch_r1_s1": ["123456 SAMPLE\nMy Style Name"],
    "swatch_r1_s2": ["654321\nOther Style"],
    "swatch_r2_s1": ["", "777888\nThird Style"],
}


@pytest.fixture
def workspace_dir() -> Path:
    """Create temporary workspace."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def job(workspace_dir: Path):
    paths = create_job_dirs(workspace_dir, "2024-01-01/00-00-00__test")
    init_job_outputs(paths)
    return paths


@pytest.fixture
def catalog_raster() -> RasterPage:
    return RasterPage(catalog_page())


@pytest.fixture
def banded_raster() -> RasterPage:
    return RasterPage(banded_page())
