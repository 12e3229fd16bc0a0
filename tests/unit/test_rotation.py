"""Tests for random value generation and rotation scheduling."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

import pytest

from secretsbeam_operator.rotation import (
    ChainedParser,
    DurationParser,
    NaturalLanguageParser,
    generate,
    next_rotation,
)
from secretsbeam_operator.utils.errors import PatternError, RotationExpressionError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestGenerate:
    """Test cases for generate."""

    def test_value_matches_repeated_pattern(self):
        value = generate("[a-z0-9]", 32)

        assert len(value) == 32
        assert re.fullmatch("[a-z0-9]{32}", value)

    def test_multi_character_unit(self):
        value = generate("[A-F]{2}-", 3)

        assert re.fullmatch("(?:[A-F]{2}-){3}", value)

    def test_values_differ(self):
        assert generate("[a-zA-Z0-9]", 40) != generate("[a-zA-Z0-9]", 40)

    def test_invalid_pattern(self):
        with pytest.raises(PatternError):
            generate("[a-z", 4)

    @pytest.mark.parametrize("size", [0, -3])
    def test_non_positive_size(self, size):
        with pytest.raises(PatternError):
            generate("[a-z]", size)


class TestNextRotation:
    """Test cases for next_rotation."""

    def test_duration_expression(self):
        assert next_rotation("24 hours", NOW) == NOW + timedelta(hours=24)

    def test_compact_duration(self):
        assert next_rotation("30d", NOW) == NOW + timedelta(days=30)

    def test_natural_language_expression(self):
        result = next_rotation("in 2 weeks", NOW)

        assert result.tzinfo is not None
        assert result - NOW == timedelta(weeks=2)

    def test_result_is_utc(self):
        result = next_rotation("1 week", NOW)
        assert result.utcoffset() == timedelta(0)

    def test_naive_reference_treated_as_utc(self):
        assert next_rotation("1 hour", NOW.replace(tzinfo=None)) == NOW + timedelta(hours=1)

    def test_unparseable_expression(self):
        with pytest.raises(RotationExpressionError):
            next_rotation("xyzzy plugh", NOW)

    def test_empty_expression(self):
        with pytest.raises(RotationExpressionError):
            next_rotation("  ", NOW)

    def test_past_result_rejected(self):
        class PastParser:
            def parse(self, text, reference):
                return reference - timedelta(days=1)

        with pytest.raises(RotationExpressionError):
            next_rotation("yesterday", NOW, parser=PastParser())

    def test_pluggable_parser(self):
        class FixedParser:
            def parse(self, text, reference):
                return reference + timedelta(minutes=5)

        assert next_rotation("anything", NOW, parser=FixedParser()) == NOW + timedelta(minutes=5)


class TestParsers:
    """Test cases for the individual parsers."""

    def test_duration_parser_declines_prose(self):
        assert DurationParser().parse("next monday", NOW) is None

    def test_natural_language_parser_declines_garbage(self):
        assert NaturalLanguageParser().parse("qwertyuiop", NOW) is None

    def test_chain_falls_through(self):
        class Never:
            def parse(self, text, reference):
                return None

        chain = ChainedParser([Never(), DurationParser()])
        assert chain.parse("2 hours", NOW) == NOW + timedelta(hours=2)
