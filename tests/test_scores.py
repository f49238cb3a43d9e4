"""Tests for per-period score parsing."""

import pytest

from tourney.archive.scores import (
    format_score_array,
    format_score_display,
    is_valid_score,
    parse_score_array,
    parse_total_score,
)


class TestParseTotalScore:
    """All historical encodings parse, malformed input totals 0."""

    @pytest.mark.parametrize(
        "score, total",
        [
            ("[2,1]", 3),
            ("2,1", 3),
            ("2", 2),
            (None, 0),
            ("", 0),
        ],
    )
    def test_encodings(self, score, total):
        assert parse_total_score(score) == total

    def test_numeric_legacy_value(self):
        assert parse_total_score(4) == 4

    def test_whitespace_tolerated(self):
        assert parse_total_score(" [1, 0, 2] ") == 3
        assert parse_total_score(" 1 , 2 ") == 3

    @pytest.mark.parametrize("score", ["[1,", "abc", "[\"x\"]", "{}", "   "])
    def test_malformed_never_raises(self, score):
        assert parse_total_score(score) == 0

    def test_bytes_input(self):
        assert parse_total_score(b"[3,0]") == 3


class TestParseScoreArray:
    def test_json_array(self):
        assert parse_score_array("[2,1,0]") == [2, 1, 0]

    def test_comma_separated(self):
        assert parse_score_array("2,1") == [2, 1]

    def test_empty_json_array_defaults(self):
        assert parse_score_array("[]") == [0]

    def test_leading_digits(self):
        assert parse_score_array("3a") == [3]


class TestFormatting:
    def test_format_array(self):
        assert format_score_array([2, 1]) == "[2,1]"
        assert format_score_array(None) == "[0]"
        assert format_score_array(3) == "[3]"

    def test_format_display(self):
        assert format_score_display("[2,1,0]") == "2-1-0"
        assert format_score_display([1, 2], separator=" / ") == "1 / 2"

    def test_is_valid_score(self):
        assert is_valid_score("[0,1]") is True
        assert is_valid_score("0") is False
        assert is_valid_score(None) is False
