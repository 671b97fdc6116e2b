from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Sequence

from .types import Correction, ExpectedEntry, ReferenceEntry, ValidationResult


FALLBACK_CODE = re.compile(r"^C\d{4}$")
GENERIC_NAME_PREFIX = "Color at "
PLACEHOLDER_NAMES = ("Unknown",)
MIN_NAME_LENGTH = 3

_WORD = re.compile(r"^[A-Za-z][A-Za-z'&.\-]+$")


def is_descriptive_name(name: str) -> bool:
    """Two or more alphabetic words that are not a generated label."""
    if name.startswith("Color "):
        return False
    words = name.split()
    return len(words) >= 2 and all(_WORD.match(w) for w in words)


@dataclass
class ReferenceValidator:
    """Correct reference entries whose text recognition failed.

    Only entries that look like OCR failures are touched; they take the code
    and name of the expected entry nearest in table order whose position is
    within ``tolerance`` of the entry's x. The sampled color is never changed.
    """
    expected: Sequence[ExpectedEntry] = field(default_factory=list)
    tolerance: int = 200

    def is_ocr_failure(self, entry: ReferenceEntry) -> bool:
        if is_descriptive_name(entry.name):
            return False
        has_fallback_code = entry.low_confidence or bool(FALLBACK_CODE.match(entry.code))
        has_generic_name = (
            GENERIC_NAME_PREFIX in entry.name
            or entry.name == f"Color {entry.code}"
            or entry.name in PLACEHOLDER_NAMES
            or len(entry.name) < MIN_NAME_LENGTH
        )
        return has_fallback_code or has_generic_name

    def find_expected(self, x: int) -> ExpectedEntry | None:
        for expected in self.expected:
            if abs(x - expected.position) <= self.tolerance:
                return expected
        return None

    def validate(self, entries: Sequence[ReferenceEntry]) -> ValidationResult:
        corrections: list[Correction] = []
        for idx, entry in enumerate(entries):
            if not self.is_ocr_failure(entry):
                continue
            expected = self.find_expected(entry.bounding_box.x)
            if expected is None:
                continue
            corrections.append(
                Correction(
                    index=idx,
                    corrected_entry=entry.with_identity(expected.code, expected.name),
                    reason=(
                        "OCR failed, applied correction based on position. "
                        f"Expected {expected.code}, got {entry.code}."
                    ),
                )
            )
        return ValidationResult(
            is_valid=not corrections,
            corrections=corrections,
            summary=self.summary(entries, corrections),
        )

    def summary(self, entries: Sequence[ReferenceEntry], corrections: Sequence[Correction]) -> str:
        lines = [
            "Validation Summary:",
            "=================",
            f"Total colors extracted: {len(entries)}",
            f"Expected colors: {len(self.expected)}",
            f"Corrections needed: {len(corrections)}",
            "",
        ]
        if corrections:
            lines.append("Corrections Applied:")
            for n, c in enumerate(corrections, start=1):
                e = c.corrected_entry
                lines.append(f"{n}. Position {e.bounding_box.x}: {e.code} - {e.name}")
                lines.append(f"   Reason: {c.reason}")
        else:
            lines.append("All colors were extracted correctly.")
        return "\n".join(lines) + "\n"

    @staticmethod
    def apply_corrections(entries: Sequence[ReferenceEntry], corrections: Sequence[Correction]) -> list[ReferenceEntry]:
        out = list(entries)
        for c in corrections:
            out[c.index] = c.corrected_entry
        return out
