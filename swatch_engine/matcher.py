from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

from .types import ColorSample, MatchedColor, MatchedSwatch, ReferenceEntry, RGBColor, SwatchRecord
from .utils import clamp, round2


@dataclass
class MatchStats:
    total_colors: int = 0
    matched_colors: int = 0
    unmatched_colors: int = 0
    match_rate: float = 0.0
    average_distance: float = 0.0
    average_confidence: float = 0.0
    reference_usage: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_colors": self.total_colors,
            "matched_colors": self.matched_colors,
            "unmatched_colors": self.unmatched_colors,
            "match_rate": self.match_rate,
            "average_distance": self.average_distance,
            "average_confidence": self.average_confidence,
            "reference_usage": dict(self.reference_usage),
        }


class ColorMatcher:
    """Nearest reference color by RGB Euclidean distance."""

    def __init__(self, palette: Sequence[ReferenceEntry], max_distance: float = 150.0):
        if max_distance <= 0:
            raise ValueError(f"max_distance must be > 0, got {max_distance}")
        self.palette = list(palette)
        self.max_distance = float(max_distance)

    @staticmethod
    def distance(a: RGBColor, b: RGBColor) -> float:
        return math.sqrt((a.r - b.r) ** 2 + (a.g - b.g) ** 2 + (a.b - b.b) ** 2)

    def confidence(self, distance: float) -> float:
        return round2(clamp(100.0 * (1.0 - distance / self.max_distance), 0.0, 100.0))

    def match_color(self, sample: ColorSample) -> MatchedColor:
        best: ReferenceEntry | None = None
        best_d = math.inf
        for ref in self.palette:
            d = self.distance(sample.rgb, ref.rgb)
            # Ties keep the earlier palette entry.
            if d < best_d:
                best, best_d = ref, d

        if best is None or best_d > self.max_distance:
            return MatchedColor.unmatched(sample)
        return MatchedColor(
            sample=sample,
            matched_code=best.code,
            matched_name=best.name,
            pantone_label=best.pantone_label,
            distance=round2(best_d),
            confidence=self.confidence(best_d),
        )

    def match_swatches(self, swatches: Sequence[SwatchRecord]) -> list[MatchedSwatch]:
        return [
            MatchedSwatch(
                style_number=s.style_number,
                style_name=s.style_name,
                colors=[self.match_color(c) for c in s.colors],
                bounding_box=s.bounding_box,
            )
            for s in swatches
        ]

    @staticmethod
    def stats(matched: Sequence[MatchedSwatch]) -> MatchStats:
        st = MatchStats()
        total_distance = 0.0
        total_confidence = 0.0
        for swatch in matched:
            for c in swatch.colors:
                st.total_colors += 1
                if not c.is_match:
                    st.unmatched_colors += 1
                    continue
                st.matched_colors += 1
                total_distance += c.distance
                total_confidence += c.confidence
                key = f"{c.matched_code} - {c.matched_name}"
                st.reference_usage[key] = st.reference_usage.get(key, 0) + 1

        if st.total_colors:
            st.match_rate = round2(100.0 * st.matched_colors / st.total_colors)
        if st.matched_colors:
            st.average_distance = round2(total_distance / st.matched_colors)
            st.average_confidence = round2(total_confidence / st.matched_colors)
        return st

    def report(self, matched: Sequence[MatchedSwatch]) -> str:
        """Human-readable summary of a matching run."""
        st = self.stats(matched)
        lines = [
            f"Matching method: Euclidean distance (max distance: {self.max_distance:g})",
            f"Reference colors: {len(self.palette)}",
            f"Swatches: {len(matched)}",
            f"Colors: {st.total_colors} matched={st.matched_colors} unmatched={st.unmatched_colors}",
            f"Match rate: {st.match_rate}%",
            f"Average distance: {st.average_distance}",
            f"Average confidence: {st.average_confidence}%",
        ]
        if st.reference_usage:
            lines.append("Reference usage:")
            for key, count in sorted(st.reference_usage.items(), key=lambda kv: (-kv[1], kv[0])):
                lines.append(f"  {key}: {count}")
        for swatch in matched:
            lines.append(f"{swatch.style_number} {swatch.style_name}")
            for c in swatch.colors:
                if c.is_match:
                    lines.append(f"  {c.hex} -> {c.matched_code} {c.matched_name} ({c.confidence}%)")
                else:
                    lines.append(f"  {c.hex} -> no match")
        return "\n".join(lines) + "\n"
