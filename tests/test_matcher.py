"""Nearest reference color matching."""
from __future__ import annotations

import math

import pytest

from swatch_engine.matcher import ColorMatcher
from swatch_engine.types import (
    UNMATCHED_CODE,
    BoundingBox,
    ColorSample,
    ReferenceEntry,
    RGBColor,
    SwatchRecord,
)


def ref(code: str, name: str, rgb: tuple[int, int, int]) -> ReferenceEntry:
    return ReferenceEntry(
        code=code,
        name=name,
        pantone_label="19-0000 TCX",
        rgb=RGBColor(*rgb),
        bounding_box=BoundingBox(0, 0, 10, 10),
    )


def sample(rgb: tuple[int, int, int]) -> ColorSample:
    return ColorSample(rgb=RGBColor(*rgb), bounding_box=BoundingBox(0, 0, 5, 5), corner_pixel=RGBColor(*rgb))


@pytest.fixture
def palette() -> list[ReferenceEntry]:
    return [
        ref("B20111", "Navy", (30, 60, 150)),
        ref("B10119", "Gardenia", (200, 180, 40)),
        ref("B60002", "New Black", (20, 20, 20)),
    ]


class TestDistanceAndConfidence:
    def test_distance_to_self_is_zero(self):
        c = RGBColor(12, 200, 7)
        assert ColorMatcher.distance(c, c) == 0

    def test_distance_is_euclidean(self):
        assert ColorMatcher.distance(RGBColor(0, 0, 0), RGBColor(3, 4, 0)) == 5

    def test_confidence_bounds_and_monotonic(self):
        m = ColorMatcher([], max_distance=150)
        assert m.confidence(0) == 100
        assert m.confidence(150) == 0
        assert m.confidence(300) == 0
        values = [m.confidence(d) for d in range(0, 151, 5)]
        assert values == sorted(values, reverse=True)

    def test_max_distance_must_be_positive(self):
        with pytest.raises(ValueError):
            ColorMatcher([], max_distance=0)


class TestMatchColor:
    def test_nearest_entry(self, palette):
        m = ColorMatcher(palette)
        result = m.match_color(sample((32, 62, 148)))
        assert result.matched_code == "B20111"
        assert result.matched_name == "Navy"
        assert result.pantone_label == "19-0000 TCX"
        assert result.distance == round(math.sqrt(12), 2)
        assert result.confidence == 97.69
        assert result.is_match

    def test_beyond_threshold_is_sentinel(self, palette):
        result = ColorMatcher(palette).match_color(sample((240, 10, 240)))
        assert result.matched_code == UNMATCHED_CODE
        assert result.matched_name == "No Match Found"
        assert result.pantone_label == "N/A"
        assert result.distance == -1
        assert result.confidence == 0
        assert not result.is_match

    def test_empty_palette_never_matches(self):
        result = ColorMatcher([]).match_color(sample((30, 60, 150)))
        assert result.matched_code == UNMATCHED_CODE

    def test_tie_keeps_earlier_entry(self):
        palette = [ref("A10", "First", (10, 0, 0)), ref("A20", "Second", (0, 10, 0))]
        assert ColorMatcher(palette).match_color(sample((5, 5, 0))).matched_code == "A10"

    def test_matched_distance_within_max(self, palette):
        m = ColorMatcher(palette, max_distance=60)
        for rgb in [(0, 0, 0), (255, 255, 255), (100, 100, 100), (30, 90, 150), (190, 200, 30)]:
            r = m.match_color(sample(rgb))
            if r.is_match:
                assert 0 <= r.distance <= 60
                assert 0 <= r.confidence <= 100
            else:
                assert (r.distance, r.confidence) == (-1, 0)


class TestStats:
    def test_stats_and_report(self, palette):
        m = ColorMatcher(palette)
        swatches = [
            SwatchRecord("123456", "Alpha", [sample((30, 60, 150)), sample((240, 10, 240))], BoundingBox(0, 0, 50, 50)),
            SwatchRecord("654321", "Beta", [sample((30, 60, 150))], BoundingBox(60, 0, 50, 50)),
            SwatchRecord("777888", "Gamma", [], BoundingBox(120, 0, 50, 50)),
        ]
        matched = m.match_swatches(swatches)
        st = m.stats(matched)

        assert [s.style_number for s in matched] == ["123456", "654321", "777888"]
        assert st.total_colors == 3
        assert st.matched_colors == 2
        assert st.unmatched_colors == 1
        assert st.match_rate == 66.67
        assert st.average_distance == 0
        assert st.average_confidence == 100
        assert st.reference_usage == {"B20111 - Navy": 2}

        report = m.report(matched)
        assert "Match rate: 66.67%" in report
        assert "B20111 - Navy: 2" in report
        assert "#F00AF0 -> no match" in report

    def test_stats_of_nothing(self):
        st = ColorMatcher.stats([])
        assert st.total_colors == 0
        assert st.match_rate == 0
