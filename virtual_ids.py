"""Identifiers for occurrences that have no row of their own.

A virtual id names one month of a series: ``"{root_id}::{YYYY}-{MM}"``.
Integer primary keys can never contain the separator, so any id that decodes
is virtual and anything else is a real row id.
"""

import re
from dataclasses import dataclass
from typing import Optional

SEPARATOR = "::"

_VIRTUAL_ID_RE = re.compile(
    rf"(\d+){re.escape(SEPARATOR)}(\d{{4}})-(\d{{2}})", re.ASCII
)


@dataclass(frozen=True)
class VirtualId:
    root_id: int
    year: int
    month: int

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def __str__(self) -> str:
        return encode(self.root_id, self.year, self.month)


def encode(root_id: int, year: int, month: int) -> str:
    return f"{root_id}{SEPARATOR}{year:04d}-{month:02d}"


def decode(value: str) -> Optional[VirtualId]:
    if not isinstance(value, str):
        return None
    match = _VIRTUAL_ID_RE.fullmatch(value)
    if not match:
        return None
    year, month = int(match.group(2)), int(match.group(3))
    if not 1 <= month <= 12:
        return None
    return VirtualId(root_id=int(match.group(1)), year=year, month=month)


def is_virtual(value: str) -> bool:
    return decode(value) is not None
