"""Tests for JSON string-literal encoding."""

import json

import pytest

from termai.jsonutil import escape_json_string, json_number, json_string


class TestEscapeJsonString:
    """Tests for escape_json_string."""

    def test_plain_text_unchanged(self) -> None:
        """Text without special characters passes through."""
        assert escape_json_string("list files in /tmp") == "list files in /tmp"

    def test_short_escapes(self) -> None:
        """Quote, backslash, newline, CR and tab use two-character escapes."""
        assert escape_json_string('say "hi"') == 'say \\"hi\\"'
        assert escape_json_string("C:\\dir") == "C:\\\\dir"
        assert escape_json_string("a\nb\rc\td") == "a\\nb\\rc\\td"

    def test_control_characters_use_unicode_escapes(self) -> None:
        """Other control characters become \\u00XX."""
        assert escape_json_string("\x00") == "\\u0000"
        assert escape_json_string("\x1b[0m") == "\\u001b[0m"
        assert escape_json_string("\x1f") == "\\u001f"

    def test_non_ascii_passes_through(self) -> None:
        """Characters outside ASCII are not escaped."""
        assert escape_json_string("héllo ✓") == "héllo ✓"


class TestJsonString:
    """Round-trip of quoted literals through a real JSON parser."""

    @pytest.mark.parametrize(
        "text",
        [
            "",
            'he said "rm -rf /"',
            "back\\slash\\\\double",
            "line1\nline2\r\nline3",
            "\ttabbed\t",
            "".join(chr(c) for c in range(0x20)),
            "mixed \x07 bell \x0b vt \x7f del ✓",
        ],
    )
    def test_round_trip(self, text: str) -> None:
        """Decoding the produced literal reproduces the original text exactly."""
        assert json.loads(json_string(text)) == text

    def test_embeds_in_object(self) -> None:
        """A literal can be dropped into a hand-built JSON object."""
        body = '{{"content":{}}}'.format(json_string('x"\n'))
        assert json.loads(body) == {"content": 'x"\n'}


def test_json_number_always_has_decimal_point() -> None:
    """Floats are rendered with a decimal point, even for whole numbers."""
    assert json_number(0.7) == "0.7"
    assert json_number(1) == "1.0"
    assert json.loads(json_number(0.25)) == 0.25
