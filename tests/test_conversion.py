"""
Tests for lenient value conversion.
"""

from datetime import timedelta

import pytest

from microkit.framework.configuration.conversion import (
    to_bool, to_duration, to_float, to_int, to_string, to_string_list
)


class TestToString:

    def test_scalars(self):
        assert to_string(None) == ""
        assert to_string("x") == "x"
        assert to_string(True) == "true"
        assert to_string(5432) == "5432"
        assert to_string(5432.0) == "5432"
        assert to_string(1.5) == "1.5"
        assert to_string(b"raw") == "raw"

    def test_unsupported_types(self):
        assert to_string({"a": 1}) == ""
        assert to_string(["a"]) == ""


class TestToInt:

    @pytest.mark.parametrize("value,expected", [
        ("42", 42),
        (" 42 ", 42),
        ("0x1f", 31),
        ("0o17", 15),
        ("0b101", 5),
        ("08", 8),
        ("5432.0", 5432),
        ("-3", -3),
        (3.9, 3),
        (True, 1),
    ])
    def test_valid(self, value, expected):
        assert to_int(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "1.5", None, [1]])
    def test_invalid_is_zero(self, value):
        assert to_int(value) == 0


class TestToFloat:

    def test_values(self):
        assert to_float("1.5") == 1.5
        assert to_float(2) == 2.0
        assert to_float("nope") == 0.0
        assert to_float(None) == 0.0


class TestToBool:

    @pytest.mark.parametrize("value", ["1", "t", "T", "TRUE", "true", "True", True, 1, 2.5])
    def test_true(self, value):
        assert to_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "f", "false", "FALSE", "yes", "", None, 0, {"a": 1}])
    def test_false(self, value):
        assert to_bool(value) is False


class TestToDuration:

    def test_go_style_strings(self):
        assert to_duration("1h30m") == timedelta(hours=1, minutes=30)
        assert to_duration("250ms") == timedelta(milliseconds=250)
        assert to_duration("1.5s") == timedelta(seconds=1.5)
        assert to_duration("2us") == timedelta(microseconds=2)
        assert to_duration("-1m") == timedelta(minutes=-1)

    def test_numbers_are_seconds(self):
        assert to_duration(30) == timedelta(seconds=30)
        assert to_duration(0.5) == timedelta(milliseconds=500)
        assert to_duration("45") == timedelta(seconds=45)

    def test_passthrough(self):
        assert to_duration(timedelta(minutes=2)) == timedelta(minutes=2)

    @pytest.mark.parametrize("value", ["", "-", "5x", "h", "1h junk", None, True, [1]])
    def test_invalid_is_zero(self, value):
        assert to_duration(value) == timedelta(0)


class TestToStringList:

    def test_values(self):
        assert to_string_list(["a", 1, True]) == ["a", "1", "true"]
        assert to_string_list("a b  c") == ["a", "b", "c"]
        assert to_string_list(None) == []
