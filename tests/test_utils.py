"""
Tests for the invariant number helpers.

### What This Module Tests
1. Parsing: Only plain decimals (optional sign, fraction and exponent) are
   read; separators, special values and overflow are refused.
2. Formatting: Integral floats lose their fraction, booleans are lowercase.
"""

import numpy as np
import pytest

from workspacehub.utils import format_invariant, is_number, parse_decimal

# =============================================================================
# 1. Parsing
# =============================================================================


class TestParseDecimal:
    @pytest.mark.parametrize("text, expected", [
        ("12", 12.0),
        (" -0.5 ", -0.5),
        (".25", 0.25),
        ("3.", 3.0),
        ("+1e-3", 0.001),
        ("2E+2", 200.0),
        (7, 7.0),
        (np.float32(1.5), 1.5),
    ])
    def test_accepted(self, text, expected):
        assert parse_decimal(text) == pytest.approx(expected)

    @pytest.mark.parametrize("text", [
        "", "-", "abc", "1,5", "1_000", "nan", "NaN", "inf", "-Infinity", "1e999", "0x10", "1 000",
    ])
    def test_refused(self, text):
        with pytest.raises(ValueError):
            parse_decimal(text)
        assert not is_number(text)

    def test_booleans_are_not_numbers(self):
        with pytest.raises(ValueError, match="boolean"):
            parse_decimal(True)
        assert not is_number(np.bool_(False))


# =============================================================================
# 2. Formatting
# =============================================================================


class TestFormatInvariant:
    @pytest.mark.parametrize("value, expected", [
        (3.0, "3"),
        (0.1, "0.1"),
        (np.int64(4), "4"),
        (True, "true"),
        ("text", "text"),
    ])
    def test_format(self, value, expected):
        assert format_invariant(value) == expected

    def test_formatted_values_parse_back(self):
        for value in (1.25, -3.0, 1e-7, 6.02e23):
            assert parse_decimal(format_invariant(value)) == value
