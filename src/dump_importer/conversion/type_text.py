"""
Sub-parser for declared column type text.

    >>> parse_type_text("VARCHAR(20)")
    SourceType(name='varchar', mods=[20], array_bounds=[], members=[])
    >>> parse_type_text("ENUM('a', 'b')").members
    ['a', 'b']
    >>> parse_type_text("integer[][]").array_bounds
    [-1, -1]
"""

import re
from typing import List

from dump_importer.domain.source_schema import SourceType

# Attributes that follow a MySQL numeric/string type and carry no type information
STRIPPED_ATTRIBUTES = re.compile(r"\b(unsigned|signed|zerofill|binary)\b")
ARRAY_BOUND = re.compile(r"\[(\d*)\]")
QUOTED_MEMBER = re.compile(r"'((?:[^'\\]|\\.|'')*)'")
MEMBER_TYPES = ("enum", "set")


def _split_mods(inner: str) -> List[int]:
    mods = []
    for part in inner.split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            mods.append(int(part))
    return mods


def _members(inner: str) -> List[str]:
    return [m.replace("''", "'").replace("\\'", "'") for m in QUOTED_MEMBER.findall(inner)]


def parse_type_text(type_text: str) -> SourceType:
    """Split a declared type into id, numeric modifiers and array bounds.

    The id is the lowercased text outside the parentheses with attribute
    words (unsigned, zerofill, ...) removed, so ``timestamp(6) without time
    zone`` gives ``timestamp without time zone`` with mods [6]. For set and
    enum the parenthesized list holds members, not a length.
    """
    text = type_text.strip().lower()

    array_bounds = [int(b) if b else -1 for b in ARRAY_BOUND.findall(text)]
    text = ARRAY_BOUND.sub("", text)

    mods: List[int] = []
    members: List[str] = []
    open_paren = text.find("(")
    if open_paren >= 0:
        close_paren = text.rfind(")")
        if close_paren < open_paren:
            close_paren = len(text)
        # Members are read from the original text to keep their case
        inner_original = type_text.strip()[open_paren + 1 : close_paren]
        head = text[:open_paren]
        tail = text[close_paren + 1 :]
        base = head.strip()
        if base in MEMBER_TYPES:
            members = _members(inner_original)
        else:
            mods = _split_mods(text[open_paren + 1 : close_paren])
        text = f"{head} {tail}"

    words = text.split()
    # "binary(16)" is a type of its own; attributes only follow the type word
    words = words[:1] + [w for w in words[1:] if not STRIPPED_ATTRIBUTES.fullmatch(w)]
    name = " ".join(words)

    if name == "set":
        array_bounds = [-1]

    return SourceType(name=name, mods=mods, array_bounds=array_bounds, members=members)
