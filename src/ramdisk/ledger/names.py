# src/ramdisk/ledger/names.py
from __future__ import annotations

"""Ledger name codec.

A ledger name is a 64-bit value with a text form of up to 13 characters:

  - characters 1..12 use 5 bits each from the alphabet ".12345a-z"
  - the 13th character uses the low 4 bits, so only ".12345a-j" fit there
  - trailing dots are not significant ("abc." and "abc" are the same name)

File names, account names and the name-auction registry account all use
this encoding. Validation is fail-closed: anything that would not survive a
round trip through the 64-bit form is rejected.
"""

import re
from dataclasses import dataclass

CHARMAP = ".12345abcdefghijklmnopqrstuvwxyz"
MAX_NAME_CHARS = 13

_NAME_RE = re.compile(r"^[.1-5a-z]{0,12}[.1-5a-j]?$")


def _char_to_symbol(c: str) -> int:
    if "a" <= c <= "z":
        return (ord(c) - ord("a")) + 6
    if "1" <= c <= "5":
        return (ord(c) - ord("1")) + 1
    return 0


def is_valid_name(s: str) -> bool:
    if not isinstance(s, str):
        return False
    if len(s) > MAX_NAME_CHARS:
        return False
    return bool(_NAME_RE.match(s))


@dataclass(frozen=True, order=True, slots=True)
class Name:
    """64-bit ledger name. Compare and hash by value."""

    value: int = 0

    @classmethod
    def from_str(cls, s: str) -> "Name":
        if not is_valid_name(s):
            raise ValueError(f"invalid name: {s!r}")

        value = 0
        for i, c in enumerate(s[:12]):
            value |= (_char_to_symbol(c) & 0x1F) << (64 - 5 * (i + 1))
        if len(s) == MAX_NAME_CHARS:
            value |= _char_to_symbol(s[12]) & 0x0F
        return cls(value)

    def __str__(self) -> str:
        chars = ["."] * MAX_NAME_CHARS
        tmp = int(self.value)
        for i in range(MAX_NAME_CHARS):
            if i == 0:
                chars[12 - i] = CHARMAP[tmp & 0x0F]
                tmp >>= 4
            else:
                chars[12 - i] = CHARMAP[tmp & 0x1F]
                tmp >>= 5
        return "".join(chars).rstrip(".")

    def length(self) -> int:
        """Number of characters up to and including the last non-dot one."""
        return len(str(self))

    def suffix(self) -> "Name":
        """The part after the last dot, or the whole name when undotted.

        "alice.ram" -> "ram"; "a.b.c" -> "c"; "alice" -> "alice".
        """
        s = str(self)
        if "." not in s:
            return self
        return Name.from_str(s.rsplit(".", 1)[1])


def normalize_name(s: str) -> str:
    """Canonical text form (trailing dots removed). Raises ValueError."""
    return str(Name.from_str(str(s or "").strip()))


__all__ = ["CHARMAP", "MAX_NAME_CHARS", "Name", "is_valid_name", "normalize_name"]
