from __future__ import annotations

import itertools
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Protocol

import cv2
import numpy as np
from PIL import Image, ImageEnhance, ImageFilter

from .job import JobPaths, warn
from .utils import load_json


Recognizer = Callable[[Image.Image], str]

# Tesseract wants ISO 639-2 codes.
_TESSERACT_LANGS = {"en": "eng", "ko": "kor", "ja": "jpn", "fr": "fra", "de": "deu", "es": "spa", "it": "ita"}


# ═══════════════════════════════════════════════════════════════════════════════
# PRE-PROCESSING VARIANTS
# ═══════════════════════════════════════════════════════════════════════════════

def _grey_normalised(image: Image.Image) -> np.ndarray:
    gray = cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2GRAY)
    return cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)


def _sharpen(image: Image.Image) -> Image.Image:
    kernel = np.array([[-1, -1, -1], [-1, 9, -1], [-1, -1, -1]])
    return Image.fromarray(cv2.filter2D(np.array(image), -1, kernel))


def build_variants(image: Image.Image) -> Iterator[Image.Image]:
    """Yield the five recognition inputs for one region, lazily and in order.

    1. unmodified
    2. greyscale, normalised, hard threshold at 128
    3. upscaled to 1600x1200, sharpened
    4. upscaled to 2400x1800, greyscale, normalised, unsharp mask
    5. upscaled to 3200x2400, greyscale, normalised, brighter, higher contrast, unsharp mask
    """
    base = image.convert("RGB")
    yield base

    _, binary = cv2.threshold(_grey_normalised(base), 128, 255, cv2.THRESH_BINARY)
    yield Image.fromarray(binary)

    yield _sharpen(base.resize((1600, 1200), Image.LANCZOS))

    large = Image.fromarray(_grey_normalised(base.resize((2400, 1800), Image.LANCZOS)))
    yield large.filter(ImageFilter.UnsharpMask(radius=1.5))

    huge = Image.fromarray(_grey_normalised(base.resize((3200, 2400), Image.LANCZOS)))
    huge = ImageEnhance.Brightness(huge).enhance(1.2)
    huge = huge.point(lambda v: min(255, int(v * 1.5)))
    yield huge.filter(ImageFilter.UnsharpMask(radius=2.0))


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class OCREngine:
    """Plain-text recognizer over easyocr, paddleocr or tesseract.

    ``auto`` picks the first engine that imports. ``none`` never recognizes
    anything, which leaves every region to the interpretation fallbacks.
    """
    engine: str = "auto"
    lang: str = "en"
    timeout_s: float = 60.0
    _ocr: Any | None = None
    _resolved: str | None = None

    def __call__(self, image: Image.Image) -> str:
        engine = self._resolve()
        if engine == "none":
            return ""
        if engine == "easyocr":
            return self._recognize_easyocr(image)
        if engine == "paddleocr":
            return self._recognize_paddleocr(image)
        return self._recognize_tesseract(image)

    def _resolve(self) -> str:
        if self._resolved is not None:
            return self._resolved
        if self.engine != "auto":
            self._resolved = self.engine
            return self._resolved
        for name, module in (("easyocr", "easyocr"), ("paddleocr", "paddleocr"), ("tesseract", "pytesseract")):
            try:
                __import__(module)
            except ImportError:
                continue
            self._resolved = name
            return name
        raise RuntimeError("No OCR engine available. Install easyocr, paddleocr or pytesseract.")

    def _recognize_easyocr(self, image: Image.Image) -> str:
        try:
            import easyocr
        except ImportError as e:  # pragma: no cover
            raise RuntimeError("easyocr is required for engine=easyocr. Install easyocr.") from e

        if self._ocr is None:
            self._ocr = easyocr.Reader(self.lang.split(","), gpu=False)
        lines = self._ocr.readtext(np.array(image.convert("RGB")), detail=0, paragraph=False)
        return "\n".join(str(t) for t in lines)

    def _recognize_paddleocr(self, image: Image.Image) -> str:
        try:
            from paddleocr import PaddleOCR
        except ImportError as e:  # pragma: no cover
            raise RuntimeError("paddleocr is required for engine=paddleocr. Install paddleocr.") from e

        if self._ocr is None:
            self._ocr = PaddleOCR(use_angle_cls=True, lang=self.lang, show_log=False)
        arr = np.array(image.convert("RGB"))
        try:
            result = self._ocr.ocr(arr, cls=True)
        except TypeError:
            result = self._ocr.ocr(arr)

        lines: list[str] = []
        for block in result or []:
            for item in block or []:
                _, (text, _score) = item
                lines.append(str(text))
        return "\n".join(lines)

    def _recognize_tesseract(self, image: Image.Image) -> str:
        try:
            import pytesseract
        except ImportError as e:  # pragma: no cover
            raise RuntimeError("pytesseract is required for engine=tesseract. Install pytesseract.") from e

        lang = "+".join(_TESSERACT_LANGS.get(code, code) for code in self.lang.split(","))
        return pytesseract.image_to_string(image, lang=lang, timeout=self.timeout_s)


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT SOURCES (region id + crop -> text variants)
# ═══════════════════════════════════════════════════════════════════════════════

class TextSource(Protocol):
    def variants(self, region_id: str, image: Image.Image, *, limit: int = 5) -> Iterator[str]: ...


@dataclass
class VariantRecognizer:
    """Feed each pre-processing variant to ``recognize`` on demand."""
    recognize: Recognizer

    def variants(self, region_id: str, image: Image.Image, *, limit: int = 5) -> Iterator[str]:
        for variant in itertools.islice(build_variants(image), max(1, limit)):
            yield self.recognize(variant) or ""


@dataclass
class MockedRecognizer:
    """Replay recorded text variants keyed by region id.

    File layout: ``{"regions": {"ref_a1_b1": ["B60002\\nNew Black", ...]}}``.
    A plain string value counts as a single variant. Unknown regions yield
    no text at all.
    """
    regions: Mapping[str, list[str]] = field(default_factory=dict)

    def variants(self, region_id: str, image: Image.Image, *, limit: int = 5) -> Iterator[str]:
        recorded = self.regions.get(region_id) or []
        yield from recorded[: max(1, limit)]

    @classmethod
    def from_file(cls, path: str | Path) -> "MockedRecognizer":
        data = load_json(path)
        raw = data.get("regions", {}) if isinstance(data, dict) else {}
        if not isinstance(raw, dict):
            raise ValueError(f"mocked recognition file {path} has no 'regions' object")
        regions = {str(k): [v] if isinstance(v, str) else [str(t) for t in v] for k, v in raw.items()}
        return cls(regions=regions)


# ═══════════════════════════════════════════════════════════════════════════════
# WORKER POOL
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class RecognitionPool:
    """Run independent region tasks with a bounded pool and per-task timeout.

    Results are keyed like the submitted tasks. A task that times out or
    raises yields ``None`` and a warning in errors.jsonl; the other tasks
    are unaffected. The timeout runs from the moment a task starts, so tasks
    queued behind a slow one keep their full budget.
    """
    workers: int = 1
    timeout_s: float = 60.0
    paths: JobPaths | None = None

    def run(self, tasks: Mapping[str, Callable[[], Any]], *, page_id: str, stage: str) -> dict[str, Any]:
        results: dict[str, Any] = {}
        if not tasks:
            return results

        executor = ThreadPoolExecutor(max_workers=max(1, self.workers), thread_name_prefix="recognize")
        try:
            started: dict[str, float] = {}
            futures = {key: executor.submit(_stamped, started, key, fn) for key, fn in tasks.items()}
            for key, fut in futures.items():
                try:
                    results[key] = self._wait(fut, started, key)
                except FutureTimeout:
                    fut.cancel()
                    results[key] = None
                    warn(self.paths, page_id, stage, f"recognition_timeout: {key} after {self.timeout_s}s")
                except Exception as e:
                    results[key] = None
                    warn(self.paths, page_id, stage, f"recognition_failed: {key}: {e}")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results

    def _wait(self, fut: Future, started: Mapping[str, float], key: str) -> Any:
        while True:
            begun = started.get(key)
            if begun is None:
                # Still queued behind other tasks.
                try:
                    return fut.result(timeout=self.timeout_s)
                except FutureTimeout:
                    continue
            remaining = self.timeout_s - (time.monotonic() - begun)
            if remaining <= 0 and not fut.done():
                raise FutureTimeout()
            return fut.result(timeout=max(remaining, 0))


def _stamped(started: dict[str, float], key: str, fn: Callable[[], Any]) -> Any:
    started[key] = time.monotonic()
    return fn()
