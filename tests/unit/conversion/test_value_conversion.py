"""
Unit tests for literal-to-target value conversion.

Tests verify:
- Integer range checks and hex/bit literals
- Timestamps are normalized to UTC using the session time zone
- Array literals from PostgreSQL and MySQL set values
- NOT NULL enforcement and string length limits
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from dump_importer.conversion.values import (
    convert_scalar,
    convert_value,
    parse_timezone,
    split_array_literal,
)
from dump_importer.domain.errors import ValueConversionError
from dump_importer.domain.statements import RowValue, ValueKind
from dump_importer.domain.target_schema import MAX_LENGTH, TargetColumn, TargetType

UTC = timezone.utc


def number(text):
    return RowValue(text, ValueKind.NUMBER)


def string(text):
    return RowValue(text, ValueKind.STRING)


@pytest.mark.unit
class TestScalars:
    """Tests for convert_scalar()."""

    def test_int64_bounds(self):
        int64 = TargetType("INT64")

        assert convert_scalar(number("9223372036854775807"), int64, UTC) == 2**63 - 1
        with pytest.raises(ValueConversionError, match="out of INT64 range"):
            convert_scalar(number("9223372036854775808"), int64, UTC)

    def test_int64_from_hex_and_bit(self):
        int64 = TargetType("INT64")

        assert convert_scalar(RowValue("ff", ValueKind.HEX), int64, UTC) == 255
        assert convert_scalar(RowValue("101", ValueKind.BIT), int64, UTC) == 5

    def test_invalid_token_is_rejected(self):
        with pytest.raises(ValueConversionError):
            convert_scalar(RowValue("bad_token", ValueKind.INVALID), TargetType("INT64"), UTC)

    def test_numeric_and_float(self):
        assert convert_scalar(string("12.50"), TargetType("NUMERIC"), UTC) == Decimal("12.50")
        assert convert_scalar(number("1e3"), TargetType("FLOAT64"), UTC) == 1000.0
        with pytest.raises(ValueConversionError):
            convert_scalar(string("NaN"), TargetType("NUMERIC"), UTC)

    @pytest.mark.parametrize("text,expected", [("1", True), ("t", True), ("false", False), ("0", False)])
    def test_bool(self, text, expected):
        assert convert_scalar(string(text), TargetType("BOOL"), UTC) is expected

    def test_string_length_limit(self):
        assert convert_scalar(string("abc"), TargetType("STRING", 3), UTC) == "abc"
        assert convert_scalar(string("x" * 5000), TargetType("STRING", MAX_LENGTH), UTC) == "x" * 5000
        with pytest.raises(ValueConversionError):
            convert_scalar(string("abcd"), TargetType("STRING", 3), UTC)

    def test_bytes(self):
        target = TargetType("BYTES", MAX_LENGTH)

        assert convert_scalar(RowValue("4142", ValueKind.HEX), target, UTC) == b"AB"
        assert convert_scalar(RowValue("\\x4142", ValueKind.TEXT), target, UTC) == b"AB"
        assert convert_scalar(string("AB"), target, UTC) == b"AB"

    def test_date(self):
        assert convert_scalar(string("2024-02-29"), TargetType("DATE"), UTC) == date(2024, 2, 29)
        with pytest.raises(ValueConversionError):
            convert_scalar(string("0000-00-00"), TargetType("DATE"), UTC)

    def test_json_is_reserialized(self):
        assert convert_scalar(string('{"a": [1, 2]}'), TargetType("JSON"), UTC) == '{"a": [1, 2]}'
        with pytest.raises(ValueConversionError):
            convert_scalar(string("{broken"), TargetType("JSON"), UTC)


@pytest.mark.unit
class TestTimestamps:
    """Timestamp normalization."""

    def test_naive_value_uses_session_time_zone(self):
        result = convert_scalar(string("2024-01-01 12:00:00"), TargetType("TIMESTAMP"), parse_timezone("+02:00"))

        assert result == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)

    def test_explicit_offset_wins(self):
        result = convert_scalar(
            RowValue("2024-01-01 12:00:00+05", ValueKind.TEXT), TargetType("TIMESTAMP"), parse_timezone("+02:00")
        )

        assert result == datetime(2024, 1, 1, 7, 0, tzinfo=UTC)

    def test_invalid_timestamp(self):
        with pytest.raises(ValueConversionError):
            convert_scalar(string("not a time"), TargetType("TIMESTAMP"), UTC)

    @pytest.mark.parametrize(
        "name,offset",
        [
            (None, timedelta(0)),
            ("UTC", timedelta(0)),
            ("SYSTEM", timedelta(0)),
            ("+02:00", timedelta(hours=2)),
            ("-05:30", -timedelta(hours=5, minutes=30)),
            ("Not/AZone", timedelta(0)),
        ],
    )
    def test_parse_timezone(self, name, offset):
        assert parse_timezone(name).utcoffset(datetime(2024, 1, 1)) == offset


@pytest.mark.unit
class TestArraysAndNulls:
    """Array columns and NULL handling in convert_value()."""

    def test_split_postgres_array(self):
        assert split_array_literal('{a,"b,c","say \\"hi\\"",NULL,"NULL"}') == ["a", "b,c", 'say "hi"', None, "NULL"]
        assert split_array_literal("{}") == []

    def test_split_set_value(self):
        assert split_array_literal("red,green") == ["red", "green"]
        assert split_array_literal("") == []

    def test_multi_dimensional_literal_is_rejected(self):
        with pytest.raises(ValueConversionError):
            split_array_literal("{{1,2},{3,4}}")

    def test_array_column(self):
        column = TargetColumn(id="c1", name="ids", type=TargetType("INT64", is_array=True))

        assert convert_value(RowValue("{1,2,NULL}", ValueKind.TEXT), column, UTC) == [1, 2, None]

    def test_null_in_not_null_column(self):
        column = TargetColumn(id="c1", name="id", type=TargetType("INT64"), not_null=True)

        with pytest.raises(ValueConversionError, match="NOT NULL"):
            convert_value(RowValue(None, ValueKind.NULL), column, UTC)

    def test_null_in_nullable_column(self):
        column = TargetColumn(id="c1", name="n", type=TargetType("INT64"))

        assert convert_value(RowValue(None, ValueKind.NULL), column, UTC) is None
