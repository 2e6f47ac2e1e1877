"""
Quote-aware helpers that work on raw statement text.

- split_insert: decompose a multi-row INSERT into its prefix and value tuples
- decode_copy_line: decode one tab-separated row of a pg_dump COPY block
"""

import re
from typing import List, Optional, Tuple

VALUES_KEYWORD = re.compile(r"values", re.IGNORECASE)

COPY_ESCAPES = {
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
}


def _quoted_end(text: str, i: int, backslash_escapes: bool = True) -> int:
    """Index just past the quoted section that starts at text[i], or -1 if unclosed."""
    quote = text[i]
    i += 1
    n = len(text)
    while i < n:
        ch = text[i]
        if backslash_escapes and ch == "\\" and quote != "`":
            i += 2
            continue
        if ch == quote:
            # Doubled quote is an escaped quote
            if i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return -1


def _skip_quoted(text: str, i: int, backslash_escapes: bool = True) -> int:
    end = _quoted_end(text, i, backslash_escapes)
    return len(text) if end < 0 else end


def quotes_balanced(text: str, backslash_escapes: bool = True, hash_comments: bool = False) -> bool:
    """Return False if text ends inside a quoted string, identifier or block comment.

    Line comments (``--`` and, for MySQL, ``#``) are skipped so apostrophes
    in them do not count.
    """
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in "'\"`":
            i = _quoted_end(text, i, backslash_escapes)
            if i < 0:
                return False
            continue
        if (ch == "-" and text.startswith("--", i)) or (hash_comments and ch == "#"):
            newline = text.find("\n", i)
            if newline < 0:
                return True
            i = newline + 1
            continue
        if ch == "/" and text.startswith("/*", i):
            close = text.find("*/", i + 2)
            if close < 0:
                return False
            i = close + 2
            continue
        i += 1
    return True


def _find_values_keyword(text: str, backslash_escapes: bool) -> int:
    """Index just past the VALUES keyword at paren depth 0, or -1."""
    i = 0
    n = len(text)
    depth = 0
    while i < n:
        ch = text[i]
        if ch in "'\"`":
            i = _skip_quoted(text, i, backslash_escapes)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif depth == 0 and ch.isalpha():
            j = i
            while j < n and (text[j].isalnum() or text[j] == "_"):
                j += 1
            if VALUES_KEYWORD.fullmatch(text[i:j]):
                return j
            i = j
            continue
        i += 1
    return -1


def split_insert(chunk: str, backslash_escapes: bool = True) -> Optional[Tuple[str, List[str]]]:
    """Split ``INSERT ... VALUES (..),(..);`` into its prefix and tuple texts.

    The prefix includes the VALUES keyword, and each tuple keeps its
    parentheses, so ``f"{prefix} {tuple};"`` is a valid single-row insert.
    Returns None if the chunk is not a VALUES insert.
    """
    stripped = chunk.lstrip()
    if not stripped[:6].upper() == "INSERT":
        return None
    end_of_keyword = _find_values_keyword(stripped, backslash_escapes)
    if end_of_keyword < 0:
        return None

    prefix = stripped[:end_of_keyword]
    tuples: List[str] = []
    i = end_of_keyword
    n = len(stripped)
    depth = 0
    start = -1
    while i < n:
        ch = stripped[i]
        if ch in "'\"`":
            i = _skip_quoted(stripped, i, backslash_escapes)
            continue
        if ch == "(":
            if depth == 0:
                start = i
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and start >= 0:
                tuples.append(stripped[start : i + 1])
                start = -1
        i += 1
    if depth > 0 and start >= 0:
        # Unterminated last tuple is kept so it is reported as a bad row
        tuples.append(stripped[start:].rstrip().rstrip(";"))
    return prefix, tuples


def _unescape_copy_field(field: str) -> str:
    if "\\" not in field:
        return field
    out = []
    i = 0
    n = len(field)
    while i < n:
        ch = field[i]
        if ch != "\\" or i + 1 >= n:
            out.append(ch)
            i += 1
            continue
        nxt = field[i + 1]
        if nxt in COPY_ESCAPES:
            out.append(COPY_ESCAPES[nxt])
            i += 2
        elif nxt in "01234567":
            j = i + 1
            while j < n and j < i + 4 and field[j] in "01234567":
                j += 1
            out.append(chr(int(field[i + 1 : j], 8)))
            i = j
        elif nxt == "x" and i + 2 < n and field[i + 2] in "0123456789abcdefABCDEF":
            j = i + 2
            while j < n and j < i + 4 and field[j] in "0123456789abcdefABCDEF":
                j += 1
            out.append(chr(int(field[i + 2 : j], 16)))
            i = j
        else:
            out.append(nxt)
            i += 2
    return "".join(out)


def decode_copy_line(line: str) -> List[Optional[str]]:
    r"""Decode one COPY text-format row; ``\N`` is NULL."""
    line = line.rstrip("\n").rstrip("\r")
    return [None if f == "\\N" else _unescape_copy_field(f) for f in line.split("\t")]
