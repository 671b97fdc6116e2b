"""Turn noisy recognized-text variants into structured records.

Variants arrive in a fixed order (original image first, heavier
pre-processing later). The first variant whose parse passes the record's
validity check wins; otherwise looser fallbacks apply.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Sequence, TypeVar

from .types import SOURCE_FALLBACK, SOURCE_OCR, SOURCE_PATTERN, RGBColor
from .utils import collapse_whitespace, compile_patterns


T = TypeVar("T")

UNKNOWN = "Unknown"
STYLE_NUMBER_LENGTH = 6

# Tried in order; the first pattern with any match supplies the code.
CODE_PATTERNS = compile_patterns(
    [
        r"[A-Z]\d{2,6}",
        r"[A-Z]\d{2,}[A-Z]?",
        r"\b[A-Z]\d{2,}\b",
        r"[A-Z]\d{2,}(?=[^\w])",
        r"^[A-Z]\d{2,}",
    ]
)
LOOSE_CODE_PATTERNS = CODE_PATTERNS[:3]

PANTONE_PATTERNS = compile_patterns(
    [
        r"\d{2}-\d{4}\s*TCX",
        r"\d{1,2}-\d{4}\s*TCX",
        r"\d{2}-\d{3,5}\s*TCX",
    ]
)
LOOSE_PANTONE_PATTERN = re.compile(r"\d{1,2}-\d{3,5}\s*TCX")

VALID_CODE = re.compile(r"^[A-Z]\d{2,}")
_BARE_CODE_LINE = re.compile(r"^[A-Z]\d+$")
_LEADING_DIGIT = re.compile(r"^\d")
_SEPARATOR_LINE = re.compile(r"^[_\-\s]+$")
_NON_WORD = re.compile(r"[^\w]")


def split_lines(text: str | Sequence[str]) -> list[str]:
    """Non-empty, trimmed lines of a text blob (or of an already split list)."""
    if isinstance(text, str):
        raw = text.splitlines()
    else:
        raw = [part for item in text for part in str(item).splitlines()]
    return [ln.strip() for ln in raw if ln.strip()]


def is_valid_code(code: str) -> bool:
    return len(code) >= 2 and bool(VALID_CODE.match(code))


def is_complete_reference(text: ReferenceText) -> bool:
    return is_valid_code(text.code) and text.name != UNKNOWN


def first_match(patterns: Iterable[re.Pattern[str]], text: str) -> str | None:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            return m.group(0)
    return None


@dataclass(frozen=True)
class SwatchText:
    style_number: str
    style_name: str


@dataclass(frozen=True)
class ReferenceText:
    code: str
    name: str
    pantone_label: str
    source: str = SOURCE_OCR
    low_confidence: bool = False


@dataclass
class Interpretation(Generic[T]):
    """Outcome of interpreting one region, with the variant texts consumed."""
    value: T | None
    source: str | None
    variant_index: int | None
    texts: list[str] = field(default_factory=list)


class TextInterpreter:
    def __init__(self, fallback_bucket: int = 200):
        self.fallback_bucket = fallback_bucket

    # ─────────────────────────────────────────────────────────────────────────
    # Record parsers
    # ─────────────────────────────────────────────────────────────────────────

    def parse_swatch_text(self, text: str | Sequence[str]) -> SwatchText | None:
        """Style number = first 6 chars of line 1; style name = line 2.

        Without a second line the name is whatever follows the style number
        on line 1, when that remainder is longer than 2 characters.
        """
        lines = split_lines(text)
        if not lines:
            return None

        first = lines[0]
        style_number = first[:STYLE_NUMBER_LENGTH] if len(first) >= STYLE_NUMBER_LENGTH else ""

        style_name = ""
        if len(lines) > 1:
            style_name = collapse_whitespace(lines[1].replace("|", ""))
        if not style_name:
            rest = first[STYLE_NUMBER_LENGTH:].strip()
            if len(rest) > 2:
                style_name = rest

        return SwatchText(style_number=style_number or UNKNOWN, style_name=style_name or UNKNOWN)

    def parse_reference_text(self, text: str | Sequence[str]) -> ReferenceText | None:
        lines = split_lines(text)
        joined = " ".join(lines)

        code = _NON_WORD.sub("", first_match(CODE_PATTERNS, joined) or "")
        if not is_valid_code(code):
            return None

        pantone = first_match(PANTONE_PATTERNS, joined) or UNKNOWN
        name = UNKNOWN
        for line in lines:
            if (
                len(line) > 2
                and "TCX" not in line
                and not _BARE_CODE_LINE.match(line)
                and not _LEADING_DIGIT.match(line)
                and not _SEPARATOR_LINE.match(line)
            ):
                name = line
                break
        return ReferenceText(code=code, name=name, pantone_label=pantone)

    # ─────────────────────────────────────────────────────────────────────────
    # Variant selection
    # ─────────────────────────────────────────────────────────────────────────

    def interpret(
        self,
        variants: Iterable[str],
        parse: Callable[[str], T | None],
        is_valid: Callable[[T], bool],
    ) -> Interpretation[T]:
        """Return the first variant parse accepted by ``is_valid``.

        ``variants`` may be lazy; iteration stops at the first accepted
        variant so later (more expensive) variants are never produced.
        """
        seen: list[str] = []
        for idx, text in enumerate(variants):
            seen.append(text or "")
            parsed = parse(text or "")
            if parsed is not None and is_valid(parsed):
                return Interpretation(value=parsed, source=SOURCE_OCR, variant_index=idx, texts=seen)
        return Interpretation(value=None, source=None, variant_index=None, texts=seen)

    def interpret_swatch(self, variants: Iterable[str]) -> Interpretation[SwatchText]:
        """Prefer a variant yielding a full style number, else any parse."""
        it = iter(variants)
        result = self.interpret(it, self.parse_swatch_text, lambda s: s.style_number != UNKNOWN)
        if result.value is not None:
            return result
        for idx, text in enumerate(result.texts):
            parsed = self.parse_swatch_text(text)
            if parsed is not None:
                return Interpretation(value=parsed, source=SOURCE_OCR, variant_index=idx, texts=result.texts)
        return result

    def interpret_reference(self, variants: Iterable[str], *, x: int, rgb: RGBColor) -> Interpretation[ReferenceText]:
        """Structured parse, then loose patterns, then a synthetic code.

        A structured record needs both a valid code and a name line. When no
        variant has both, the code is taken from the concatenated raw text of
        every variant and the entry is named after it.
        """
        result = self.interpret(variants, self.parse_reference_text, is_complete_reference)
        if result.value is not None:
            return result

        all_text = " ".join(t.strip() for t in result.texts)
        loose = first_match(LOOSE_CODE_PATTERNS, all_text)
        if loose:
            code = _NON_WORD.sub("", loose)
            m = LOOSE_PANTONE_PATTERN.search(all_text)
            result.value = ReferenceText(
                code=code,
                name=f"Color {code}",
                pantone_label=m.group(0) if m else UNKNOWN,
                source=SOURCE_PATTERN,
            )
            result.source = SOURCE_PATTERN
            return result

        result.value = ReferenceText(
            code=self.fallback_code(x, rgb),
            name=f"Color at {x}",
            pantone_label=UNKNOWN,
            source=SOURCE_FALLBACK,
            low_confidence=True,
        )
        result.source = SOURCE_FALLBACK
        return result

    def fallback_code(self, x: int, rgb: RGBColor) -> str:
        """Deterministic code from the position bucket and a color checksum."""
        section = x // self.fallback_bucket + 1
        color_hash = (rgb.r + rgb.g + rgb.b) % 1000
        return f"C{section}{color_hash:03d}"
