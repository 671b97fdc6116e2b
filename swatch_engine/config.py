from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from .types import ExpectedEntry
from .utils import load_json


@dataclass(frozen=True)
class PixelConfig:
    background_threshold: int = 240  # all channels above -> white space
    fill_threshold: int = 230  # lenient cutoff used when segmenting box fills
    anchor_red_min: int = 180
    anchor_other_max: int = 100
    box_fill_min: float = 20.0  # mean brightness band of a plausible box fill
    box_fill_max: float = 250.0


@dataclass(frozen=True)
class AnchorConfig:
    margin_ratio: float = 0.10
    min_row_fraction: float = 0.10
    min_row_width: int = 5
    min_height: int = 8


@dataclass(frozen=True)
class RowConfig:
    scan_x: int = 100
    start_margin: int = 200  # below the bottom-most anchor
    bottom_margin: int = 100
    edge_margin: int = 10
    backoff: int = 45
    gap: int = 50


@dataclass(frozen=True)
class SwatchConfig:
    scan_ratio: float = 0.5
    min_width: int = 120
    gap: int = 10
    text_ratio: float = 0.6
    color_area_start_ratio: float = 0.3
    color_area_fallback_ratio: float = 0.6
    box_min_width: int = 15
    box_gap: int = 3
    solid_start_ratio: float = 0.25
    solid_fraction: float = 0.8


@dataclass(frozen=True)
class ReferenceConfig:
    start_offset: int = 5
    min_width: int = 9
    gap: int = 8
    sample_columns: int = 10
    sample_rows: int = 5
    fallback_bucket: int = 200
    merge_nearby_boxes: bool = False
    merge_max_gap: int = 5


@dataclass(frozen=True)
class FallbackConfig:
    scan_ratios: tuple[float, ...] = (0.10, 0.118, 0.15, 0.20, 0.25, 0.30)
    default_ratio: float = 0.118
    row_step: int = 5
    row_fill_ratio: float = 0.3
    column_step: int = 10
    column_fill_ratio: float = 0.2
    smooth_window: int = 2
    min_width: int = 11
    text_height_ratio: float = 0.15


@dataclass(frozen=True)
class OCRConfig:
    engine: str = "auto"  # auto, easyocr, paddleocr, tesseract, none
    lang: str = "en"
    workers: int = 1
    timeout_s: float = 60.0
    reference_variants: int = 5
    swatch_variants: int = 5


@dataclass(frozen=True)
class MatchingConfig:
    max_distance: float = 150.0


@dataclass(frozen=True)
class ValidationConfig:
    enabled: bool = True
    tolerance: int = 200
    palette_path: str = str(Path("config") / "expected_palette.json")


OCR_ENGINES = ("auto", "easyocr", "paddleocr", "tesseract", "none")


@dataclass(frozen=True)
class EngineConfig:
    pixels: PixelConfig = field(default_factory=PixelConfig)
    anchors: AnchorConfig = field(default_factory=AnchorConfig)
    rows: RowConfig = field(default_factory=RowConfig)
    swatches: SwatchConfig = field(default_factory=SwatchConfig)
    reference: ReferenceConfig = field(default_factory=ReferenceConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    def __post_init__(self) -> None:
        _check_config(self)


def _check_config(cfg: EngineConfig) -> None:
    p = cfg.pixels
    for name in ("background_threshold", "fill_threshold", "anchor_red_min", "anchor_other_max"):
        v = getattr(p, name)
        if not 0 <= v <= 255:
            raise ValueError(f"pixels.{name} must be within 0..255, got {v}")
    for section, names in (
        ("rows", ("gap",)),
        ("swatches", ("min_width", "gap", "box_min_width", "box_gap")),
        ("reference", ("min_width", "gap", "sample_columns", "sample_rows", "fallback_bucket")),
        ("fallback", ("row_step", "column_step", "min_width")),
        ("anchors", ("min_height", "min_row_width")),
        ("ocr", ("workers",)),
    ):
        sec = getattr(cfg, section)
        for name in names:
            if getattr(sec, name) < 1:
                raise ValueError(f"{section}.{name} must be >= 1, got {getattr(sec, name)}")
    if cfg.matching.max_distance <= 0:
        raise ValueError(f"matching.max_distance must be > 0, got {cfg.matching.max_distance}")
    if cfg.ocr.timeout_s <= 0:
        raise ValueError(f"ocr.timeout_s must be > 0, got {cfg.ocr.timeout_s}")
    if cfg.ocr.engine not in OCR_ENGINES:
        raise ValueError(f"ocr.engine must be one of {OCR_ENGINES}, got {cfg.ocr.engine!r}")
    if not cfg.fallback.scan_ratios:
        raise ValueError("fallback.scan_ratios must not be empty")


def _build_section(cls: type, data: Any, name: str) -> Any:
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"config section {name!r} must be an object")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown keys in config section {name!r}: {', '.join(unknown)}")
    values = {}
    for k, v in data.items():
        values[k] = tuple(v) if isinstance(v, list) else v
    return cls(**values)


def config_from_dict(data: dict[str, Any]) -> EngineConfig:
    if not isinstance(data, dict):
        raise ValueError("config root must be an object")
    sections = {f.name: f for f in fields(EngineConfig)}
    unknown = sorted(set(data) - set(sections))
    if unknown:
        raise ValueError(f"unknown config sections: {', '.join(unknown)}")
    kwargs = {}
    for name, f in sections.items():
        section_cls = f.default_factory  # type: ignore[misc]
        kwargs[name] = _build_section(section_cls, data.get(name), name)
    return EngineConfig(**kwargs)


def load_config(config_path: str | Path | None) -> EngineConfig:
    if config_path is None:
        return EngineConfig()
    return config_from_dict(load_json(config_path))


def load_expected_palette(path: str | Path) -> list[ExpectedEntry]:
    """Load the versioned ground-truth table used to correct OCR failures."""
    data = load_json(path)
    entries = data.get("entries") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ValueError(f"expected palette {path} has no 'entries' list")
    out: list[ExpectedEntry] = []
    for idx, e in enumerate(entries):
        try:
            out.append(ExpectedEntry(code=str(e["code"]), name=str(e["name"]), position=int(e["position"])))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"expected palette {path}: invalid entry[{idx}]: {exc}") from exc
    return out
