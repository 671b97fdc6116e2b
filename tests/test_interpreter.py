"""Text interpretation over recognized-text variants."""
from __future__ import annotations

from swatch_engine.interpreter import (
    UNKNOWN,
    TextInterpreter,
    is_valid_code,
    split_lines,
)
from swatch_engine.types import SOURCE_FALLBACK, SOURCE_OCR, SOURCE_PATTERN, RGBColor


def counting(texts: list[str], consumed: list[int]):
    """Yield texts lazily, recording how many were pulled."""
    for t in texts:
        consumed.append(1)
        yield t


class TestSwatchText:
    def test_two_lines(self):
        parsed = TextInterpreter().parse_swatch_text(["123456 SAMPLE", "My Style Name"])
        assert parsed.style_number == "123456"
        assert parsed.style_name == "My Style Name"

    def test_name_from_first_line_remainder(self):
        parsed = TextInterpreter().parse_swatch_text("123456 Long Name")
        assert (parsed.style_number, parsed.style_name) == ("123456", "Long Name")

    def test_short_first_line(self):
        parsed = TextInterpreter().parse_swatch_text("12345")
        assert (parsed.style_number, parsed.style_name) == (UNKNOWN, UNKNOWN)

    def test_pipes_removed_from_name(self):
        parsed = TextInterpreter().parse_swatch_text("654321\nFoo | Bar")
        assert parsed.style_name == "Foo Bar"

    def test_no_lines(self):
        assert TextInterpreter().parse_swatch_text("  \n \n") is None

    def test_prefers_variant_with_style_number(self):
        result = TextInterpreter().interpret_swatch(["1234", "", "777888\nThird Style"])
        assert result.value.style_number == "777888"
        assert result.variant_index == 2

    def test_falls_back_to_any_parse(self):
        result = TextInterpreter().interpret_swatch(["", "12\nShort"])
        assert result.value.style_number == UNKNOWN
        assert result.value.style_name == "Short"
        assert result.variant_index == 1

    def test_no_text_at_all(self):
        result = TextInterpreter().interpret_swatch(["", "  "])
        assert result.value is None


class TestReferenceText:
    def test_structured_parse(self):
        parsed = TextInterpreter().parse_reference_text("B60002\nNew Black\n19-4005 TCX")
        assert parsed.code == "B60002"
        assert parsed.name == "New Black"
        assert parsed.pantone_label == "19-4005 TCX"
        assert parsed.source == SOURCE_OCR
        assert not parsed.low_confidence

    def test_trailing_punctuation_stripped(self):
        parsed = TextInterpreter().parse_reference_text("B30192.\nChocolate")
        assert parsed.code == "B30192"

    def test_name_skips_codes_digits_and_separators(self):
        parsed = TextInterpreter().parse_reference_text(["B10093", "---", "19-4110 TCX", "12 pcs", "Deep Depths"])
        assert parsed.name == "Deep Depths"

    def test_no_code(self):
        assert TextInterpreter().parse_reference_text("New Black\n19-4005 TCX") is None

    def test_first_complete_variant_wins_and_stops(self):
        consumed: list[int] = []
        variants = counting(["garbage", "B60002\nNew Black", "B99999\nOther"], consumed)
        result = TextInterpreter().interpret_reference(variants, x=10, rgb=RGBColor(0, 0, 0))
        assert result.value.code == "B60002"
        assert result.variant_index == 1
        assert len(consumed) == 2

    def test_code_without_name_uses_pattern_fallback(self):
        result = TextInterpreter().interpret_reference(
            ["B20033", "noise 17-4247 TCX"], x=570, rgb=RGBColor(1, 2, 3)
        )
        assert result.source == SOURCE_PATTERN
        assert result.value.code == "B20033"
        assert result.value.name == "Color B20033"
        assert result.value.pantone_label == "17-4247 TCX"
        assert not result.value.low_confidence

    def test_synthetic_fallback_is_low_confidence(self):
        result = TextInterpreter().interpret_reference(["B6OOO2 New Black"], x=450, rgb=RGBColor(10, 20, 30))
        assert result.source == SOURCE_FALLBACK
        assert result.value.code == "C3060"
        assert result.value.name == "Color at 450"
        assert result.value.pantone_label == UNKNOWN
        assert result.value.low_confidence

    def test_fallback_code_is_deterministic(self):
        interp = TextInterpreter(fallback_bucket=200)
        assert interp.fallback_code(0, RGBColor(255, 255, 255)) == "C1765"
        assert interp.fallback_code(199, RGBColor(0, 0, 1)) == "C1001"
        assert interp.fallback_code(200, RGBColor(0, 0, 1)) == "C2001"


def test_code_validity():
    assert is_valid_code("B60002")
    assert is_valid_code("E20")
    assert not is_valid_code("B6")
    assert not is_valid_code("60002")
    assert not is_valid_code("b60002")


def test_split_lines():
    assert split_lines(" a \n\n b ") == ["a", "b"]
    assert split_lines(["x\ny", " ", "z"]) == ["x", "y", "z"]
