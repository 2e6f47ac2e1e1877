"""
Target name sanitization.

Target names may only contain letters, digits and underscores and must start
with a letter:

    >>> sanitize_name("te st")
    'te_st'
    >>> sanitize_name(" b")
    'Ab'
    >>> sanitize_name("@invalid_name")
    'Ainvalid_name'
    >>> sanitize_name("2fa")
    'A2fa'
"""

import re
from typing import Iterable, Optional, Set

INVALID_CHAR = re.compile(r"[^A-Za-z0-9_]")


def _is_letter(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def sanitize_name(name: str) -> str:
    if not name:
        return "A"
    first = name[0]
    if _is_letter(first):
        head = first
    elif first.isascii() and (first.isdigit() or first == "_"):
        head = "A" + first
    else:
        head = "A"
    return head + INVALID_CHAR.sub("_", name[1:])


class NameAllocator:
    """Hands out sanitized names that are unique within one namespace.

    Uniqueness is case-insensitive; collisions get a numeric suffix
    (``name_1``, ``name_2``, ...).
    """

    def __init__(self, reserved: Optional[Iterable[str]] = None) -> None:
        self._used: Set[str] = {n.lower() for n in reserved or []}

    def reserve(self, name: str) -> None:
        self._used.add(name.lower())

    def release(self, name: str) -> None:
        self._used.discard(name.lower())

    def allocate(self, name: str) -> str:
        candidate = sanitize_name(name)
        unique = candidate
        suffix = 1
        while unique.lower() in self._used:
            unique = f"{candidate}_{suffix}"
            suffix += 1
        self._used.add(unique.lower())
        return unique
