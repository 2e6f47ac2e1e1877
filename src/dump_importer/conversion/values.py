"""
Literal-to-target value conversion.

Every function takes the parsed RowValue of one cell and returns the Python
value written to the target store, or raises ValueConversionError. The row
converter catches that error and turns the whole row into a bad row.

Conversions by target type:
    INT64       int, range checked; hex/bit literals accepted
    FLOAT32/64  float, including NaN and +/-Infinity
    NUMERIC     decimal.Decimal, finite only
    BOOL        true/false/t/f/1/0 (and bit literals)
    STRING      str, length checked against STRING(n)
    BYTES       bytes from hex literals, bytea ``\\x`` text or raw text
    DATE        datetime.date; zero dates are rejected
    TIMESTAMP   timezone-aware datetime in UTC; naive values use the
                session time zone captured from the dump
    JSON        validated, re-serialized text
    ARRAY<T>    list, from MySQL set text ("a,b") or PostgreSQL "{a,b}"
"""

import json
import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dump_importer.domain.errors import ValueConversionError
from dump_importer.domain.statements import RowValue, ValueKind
from dump_importer.domain.target_schema import MAX_LENGTH, TargetColumn, TargetType

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

TRUE_VALUES = ("true", "t", "1", "yes", "y", "on")
FALSE_VALUES = ("false", "f", "0", "no", "n", "off")

OFFSET_PATTERN = re.compile(r"^([+-])(\d{1,2})(?::?(\d{2}))?$")
TRAILING_OFFSET = re.compile(r"([+-]\d{2})(?::?(\d{2}))?$")
UTC_NAMES = ("utc", "z", "gmt", "system")


def parse_timezone(name: Optional[str]) -> tzinfo:
    """Resolve a session time zone such as ``+02:00``, ``UTC`` or ``Europe/Berlin``.

    Unknown names fall back to UTC.
    """
    if not name or name.strip().lower() in UTC_NAMES:
        return timezone.utc
    text = name.strip()
    match = OFFSET_PATTERN.match(text)
    if match:
        sign = -1 if match.group(1) == "-" else 1
        delta = timedelta(hours=int(match.group(2)), minutes=int(match.group(3) or 0))
        return timezone(sign * delta)
    try:
        return ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def _text(value: RowValue, target: TargetType) -> str:
    if value.kind == ValueKind.INVALID or value.value is None:
        raise ValueConversionError(f"not a literal for {target}: {value.value!r}")
    return value.value


def _hex_bytes(text: str) -> bytes:
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise ValueConversionError(f"invalid hex literal: {text!r}") from e


def to_int64(value: RowValue, target: TargetType) -> int:
    text = _text(value, target)
    try:
        if value.kind == ValueKind.HEX:
            number = int(text, 16)
        elif value.kind == ValueKind.BIT:
            number = int(text, 2)
        elif value.kind == ValueKind.BOOL:
            number = 1 if text == "true" else 0
        else:
            number = int(text.strip())
    except ValueError as e:
        raise ValueConversionError(f"invalid literal for INT64: {text!r}") from e
    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueConversionError(f"value out of INT64 range: {text!r}")
    return number


def to_float(value: RowValue, target: TargetType) -> float:
    text = _text(value, target)
    try:
        return float(text.strip())
    except ValueError as e:
        raise ValueConversionError(f"invalid literal for {target}: {text!r}") from e


def to_numeric(value: RowValue, target: TargetType) -> Decimal:
    text = _text(value, target)
    try:
        number = Decimal(text.strip())
    except InvalidOperation as e:
        raise ValueConversionError(f"invalid literal for NUMERIC: {text!r}") from e
    if not number.is_finite():
        raise ValueConversionError(f"non-finite NUMERIC value: {text!r}")
    return number


def to_bool(value: RowValue, target: TargetType) -> bool:
    text = _text(value, target)
    if value.kind == ValueKind.BIT:
        return int(text or "0", 2) != 0
    lowered = text.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueConversionError(f"invalid literal for BOOL: {text!r}")


def to_string(value: RowValue, target: TargetType) -> str:
    text = _text(value, target)
    if value.kind == ValueKind.HEX:
        try:
            text = _hex_bytes(text).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValueConversionError("hex literal is not valid UTF-8") from e
    elif value.kind == ValueKind.BIT:
        text = str(int(text or "0", 2))
    if target.length not in (None, MAX_LENGTH) and len(text) > target.length:
        raise ValueConversionError(f"value longer than {target}: {len(text)} characters")
    return text


def to_bytes(value: RowValue, target: TargetType) -> bytes:
    text = _text(value, target)
    if value.kind == ValueKind.HEX:
        return _hex_bytes(text)
    if value.kind == ValueKind.BIT:
        number = int(text or "0", 2)
        return number.to_bytes(max(1, (len(text) + 7) // 8), "big")
    if text.startswith("\\x"):
        return _hex_bytes(text[2:])
    return text.encode("utf-8", "surrogateescape")


def to_date(value: RowValue, target: TargetType) -> date:
    text = _text(value, target).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError as e:
        raise ValueConversionError(f"invalid literal for DATE: {text!r}") from e


def to_timestamp(value: RowValue, target: TargetType, session_tz: tzinfo) -> datetime:
    text = _text(value, target).strip()
    normalized = text
    if len(text) > 10:
        # "+02" / "+0530" offsets become "+02:00" / "+05:30"
        normalized = TRAILING_OFFSET.sub(lambda m: f"{m.group(1)}:{m.group(2) or '00'}", text)
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as e:
        raise ValueConversionError(f"invalid literal for TIMESTAMP: {text!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=session_tz)
    return parsed.astimezone(timezone.utc)


def to_json(value: RowValue, target: TargetType) -> str:
    text = _text(value, target)
    try:
        return json.dumps(json.loads(text), ensure_ascii=False)
    except ValueError as e:
        raise ValueConversionError(f"invalid JSON: {text[:50]!r}") from e


def split_array_literal(text: str) -> List[Optional[str]]:
    """Split a PostgreSQL one-dimensional array literal or MySQL set value.

        >>> split_array_literal('{a,"b c",NULL}')
        ['a', 'b c', None]
        >>> split_array_literal("x,y")
        ['x', 'y']
    """
    text = text.strip()
    if not (text.startswith("{") and text.endswith("}")):
        return text.split(",") if text else []

    body = text[1:-1]
    items: List[Optional[str]] = []
    if not body:
        return items
    current: List[str] = []
    quoted = False
    was_quoted = False
    i = 0
    while i < len(body):
        ch = body[i]
        if quoted:
            if ch == "\\" and i + 1 < len(body):
                i += 1
                current.append(body[i])
            elif ch == '"':
                quoted = False
            else:
                current.append(ch)
        elif ch == '"':
            quoted = True
            was_quoted = True
        elif ch == "{":
            raise ValueConversionError("multi-dimensional array literal")
        elif ch == ",":
            item = "".join(current)
            items.append(None if not was_quoted and item.upper() == "NULL" else item)
            current = []
            was_quoted = False
        else:
            current.append(ch)
        i += 1
    if quoted:
        raise ValueConversionError(f"unterminated array literal: {text[:50]!r}")
    item = "".join(current)
    items.append(None if not was_quoted and item.upper() == "NULL" else item)
    return items


def convert_scalar(value: RowValue, target: TargetType, session_tz: tzinfo) -> Any:
    if value.is_null:
        return None
    name = target.name
    if name == "INT64":
        return to_int64(value, target)
    if name in ("FLOAT64", "FLOAT32"):
        return to_float(value, target)
    if name == "NUMERIC":
        return to_numeric(value, target)
    if name == "BOOL":
        return to_bool(value, target)
    if name == "BYTES":
        return to_bytes(value, target)
    if name == "DATE":
        return to_date(value, target)
    if name == "TIMESTAMP":
        return to_timestamp(value, target, session_tz)
    if name == "JSON":
        return to_json(value, target)
    return to_string(value, target)


def convert_value(value: RowValue, column: TargetColumn, session_tz: tzinfo) -> Any:
    """Convert one cell for the column, or raise ValueConversionError."""
    if value.is_null:
        if column.not_null:
            raise ValueConversionError(f"NULL in NOT NULL column {column.name}")
        return None
    target = column.type
    if not target.is_array:
        return convert_scalar(value, target, session_tz)

    element = TargetType(target.name, target.length)
    text = _text(value, target)
    return [
        None if item is None else convert_scalar(RowValue(item, ValueKind.TEXT), element, session_tz)
        for item in split_array_literal(text)
    ]
