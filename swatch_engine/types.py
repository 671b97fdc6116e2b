from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterator

import numpy as np
from PIL import Image

from .utils import rgb_to_hex


@dataclass(frozen=True)
class Page:
    page_index: int  # 0-based
    page_id: str  # e.g. page_001
    source_ref: str  # e.g. catalog.pdf#page=1
    image_path: str  # relative path under job dir (pages/page_001.png)


@dataclass(frozen=True)
class RGBColor:
    r: int
    g: int
    b: int

    def __post_init__(self) -> None:
        for ch in (self.r, self.g, self.b):
            if not 0 <= int(ch) <= 255:
                raise ValueError(f"channel out of range 0..255: {(self.r, self.g, self.b)}")

    def __iter__(self) -> Iterator[int]:
        return iter((self.r, self.g, self.b))

    @property
    def hex(self) -> str:
        return rgb_to_hex(self.r, self.g, self.b)

    def to_dict(self) -> dict[str, int]:
        return {"r": int(self.r), "g": int(self.g), "b": int(self.b)}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "RGBColor":
        return cls(int(d["r"]), int(d["g"]), int(d["b"]))


@dataclass(frozen=True)
class BoundingBox:
    """Integer page-pixel box; width and height are always positive."""
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"bounding box must have positive size, got {self.width}x{self.height}")

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def to_dict(self) -> dict[str, int]:
        return {"x": int(self.x), "y": int(self.y), "width": int(self.width), "height": int(self.height)}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "BoundingBox":
        return cls(int(d["x"]), int(d["y"]), int(d["width"]), int(d["height"]))


@dataclass(frozen=True)
class RowSpan:
    """Half-open vertical interval [start, end) of one swatch row."""
    start: int
    end: int

    @property
    def height(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict[str, int]:
        return {"start_y": self.start, "end_y": self.end, "height": self.height}


@dataclass(frozen=True)
class ColorSample:
    rgb: RGBColor
    bounding_box: BoundingBox
    corner_pixel: RGBColor

    @property
    def hex(self) -> str:
        return self.rgb.hex

    def to_dict(self) -> dict[str, Any]:
        return {
            "rgb": self.rgb.to_dict(),
            "hex": self.hex,
            "bounding_box": self.bounding_box.to_dict(),
            "corner_pixel": self.corner_pixel.to_dict(),
        }


# How a reference entry's identity was obtained.
SOURCE_OCR = "ocr"
SOURCE_PATTERN = "pattern"
SOURCE_FALLBACK = "fallback"
SOURCE_CORRECTED = "corrected"
SOURCE_REUSED = "reused"


@dataclass(frozen=True)
class ReferenceEntry:
    code: str
    name: str
    pantone_label: str
    rgb: RGBColor
    bounding_box: BoundingBox
    source: str = SOURCE_OCR
    low_confidence: bool = False

    @property
    def hex(self) -> str:
        return self.rgb.hex

    def with_identity(self, code: str, name: str) -> "ReferenceEntry":
        return replace(self, code=code, name=name, source=SOURCE_CORRECTED, low_confidence=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "pantone_label": self.pantone_label,
            "rgb": self.rgb.to_dict(),
            "hex": self.hex,
            "bounding_box": self.bounding_box.to_dict(),
            "source": self.source,
            "low_confidence": self.low_confidence,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "ReferenceEntry":
        return cls(
            code=str(d["code"]),
            name=str(d["name"]),
            pantone_label=str(d.get("pantone_label") or "Unknown"),
            rgb=RGBColor.from_dict(d["rgb"]),
            bounding_box=BoundingBox.from_dict(d["bounding_box"]),
            source=str(d.get("source") or SOURCE_OCR),
            low_confidence=bool(d.get("low_confidence", False)),
        )


@dataclass(frozen=True)
class SwatchRecord:
    style_number: str
    style_name: str
    colors: list[ColorSample]
    bounding_box: BoundingBox

    def to_dict(self) -> dict[str, Any]:
        return {
            "style_number": self.style_number,
            "style_name": self.style_name,
            "colors": [c.to_dict() for c in self.colors],
            "bounding_box": self.bounding_box.to_dict(),
        }


UNMATCHED_CODE = "UNKNOWN"
UNMATCHED_NAME = "No Match Found"
UNMATCHED_PANTONE = "N/A"


@dataclass(frozen=True)
class MatchedColor:
    sample: ColorSample
    matched_code: str
    matched_name: str
    pantone_label: str
    distance: float  # -1 when unmatched
    confidence: float  # 0..100

    @property
    def rgb(self) -> RGBColor:
        return self.sample.rgb

    @property
    def hex(self) -> str:
        return self.sample.hex

    @property
    def is_match(self) -> bool:
        return self.matched_code != UNMATCHED_CODE

    @classmethod
    def unmatched(cls, sample: ColorSample) -> "MatchedColor":
        return cls(
            sample=sample,
            matched_code=UNMATCHED_CODE,
            matched_name=UNMATCHED_NAME,
            pantone_label=UNMATCHED_PANTONE,
            distance=-1,
            confidence=0,
        )

    def to_dict(self) -> dict[str, Any]:
        out = self.sample.to_dict()
        out.update(
            {
                "matched_code": self.matched_code,
                "matched_name": self.matched_name,
                "pantone_label": self.pantone_label,
                "distance": self.distance,
                "confidence": self.confidence,
            }
        )
        return out


@dataclass(frozen=True)
class MatchedSwatch:
    style_number: str
    style_name: str
    colors: list[MatchedColor]
    bounding_box: BoundingBox

    def to_dict(self) -> dict[str, Any]:
        return {
            "style_number": self.style_number,
            "style_name": self.style_name,
            "colors": [c.to_dict() for c in self.colors],
            "bounding_box": self.bounding_box.to_dict(),
        }


@dataclass(frozen=True)
class Correction:
    index: int
    corrected_entry: ReferenceEntry
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "corrected_entry": self.corrected_entry.to_dict(), "reason": self.reason}


@dataclass(frozen=True)
class ExpectedEntry:
    code: str
    name: str
    position: int  # approximate x of the reference box on the rendered page


@dataclass
class ValidationResult:
    is_valid: bool
    corrections: list[Correction] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "corrections": [c.to_dict() for c in self.corrections],
            "summary": self.summary,
        }


@dataclass(frozen=True)
class RasterPage:
    """Read-only RGB pixel grid, addressable as index = (y * width + x) * 3."""
    pixels: np.ndarray  # uint8, shape (height, width, 3)

    def __post_init__(self) -> None:
        arr = self.pixels
        if arr.ndim != 3 or arr.shape[2] != 3 or arr.dtype != np.uint8:
            raise ValueError(f"expected uint8 array of shape (h, w, 3), got {arr.dtype} {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError("raster page must not be empty")
        arr.flags.writeable = False

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def index(self, x: int, y: int) -> int:
        return (y * self.width + x) * 3

    def pixel(self, x: int, y: int) -> RGBColor:
        r, g, b = self.pixels[y, x]
        return RGBColor(int(r), int(g), int(b))

    def region(self, box: BoundingBox) -> np.ndarray:
        return self.pixels[box.y : box.bottom, box.x : box.right]

    def crop(self, box: BoundingBox) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.region(box)))

    def clip(self, x: int, y: int, width: int, height: int) -> BoundingBox | None:
        """Intersect a rectangle with the page; None when nothing is left."""
        x0, y0 = max(0, x), max(0, y)
        x1, y1 = min(self.width, x + width), min(self.height, y + height)
        if x1 <= x0 or y1 <= y0:
            return None
        return BoundingBox(x0, y0, x1 - x0, y1 - y0)

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    @classmethod
    def from_image(cls, image: Image.Image) -> "RasterPage":
        return cls(np.array(image.convert("RGB"), dtype=np.uint8))

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "RasterPage":
        expected = width * height * 3
        if len(data) != expected:
            raise ValueError(f"expected {expected} bytes for {width}x{height} RGB, got {len(data)}")
        arr = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 3).copy()
        return cls(arr)
