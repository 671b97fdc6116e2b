"""Catalog page swatch extraction engine.

Reads one rendered catalog page and produces:
- the reference palette (code, name, Pantone label, sampled color)
- the style swatches with their color boxes
- each swatch color matched to the nearest reference color

OCR is pluggable; recorded text can be replayed for deterministic runs.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
