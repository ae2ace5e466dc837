"""
Grid coordinate helpers

Positions are 0-indexed (col, row). Labels are spreadsheet-style: column
letters followed by a 1-based row number, e.g. col 13 / row 14 -> "N15".
"""

import math
import re
from dataclasses import dataclass
from typing import Any, Dict

_LABEL_RE = re.compile(r'^([A-Z]+)(\d+)$', re.IGNORECASE)


@dataclass(frozen=True)
class GridPosition:
    """A tile coordinate on the map grid"""
    col: int
    row: int

    def to_dict(self) -> Dict[str, int]:
        return {"col": self.col, "row": self.row}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GridPosition':
        return cls(col=int(data['col']), row=int(data['row']))

    @property
    def key(self) -> str:
        """Set/dict key used for tile bookkeeping ("col,row")"""
        return f"{self.col},{self.row}"


def col_to_label(col: int) -> str:
    """Convert a 0-indexed column to letters (0='A', 25='Z', 26='AA')"""
    label = ''
    c = col
    while True:
        label = chr(65 + (c % 26)) + label
        c = c // 26 - 1
        if c < 0:
            break
    return label


def label_to_col(label: str) -> int:
    """Convert column letters back to a 0-indexed column ('A'=0, 'AA'=26)"""
    col = 0
    for ch in label.upper():
        col = col * 26 + (ord(ch) - 64)
    return col - 1


def position_to_label(pos: GridPosition) -> str:
    """Human-readable label for a grid position, e.g. "N15" """
    return f"{col_to_label(pos.col)}{pos.row + 1}"


def label_to_position(label: str) -> GridPosition:
    """
    Parse a grid label like "N15"

    Raises:
        ValueError: If the label is not letters followed by digits
    """
    match = _LABEL_RE.match(label.strip())
    if not match:
        raise ValueError(f"Invalid grid label: {label}")
    return GridPosition(
        col=label_to_col(match.group(1)),
        row=int(match.group(2)) - 1,
    )


def grid_distance(a: GridPosition, b: GridPosition) -> float:
    return math.sqrt((a.col - b.col) ** 2 + (a.row - b.row) ** 2)


def manhattan_distance(a: GridPosition, b: GridPosition) -> int:
    return abs(a.col - b.col) + abs(a.row - b.row)


def positions_equal(a: GridPosition, b: GridPosition) -> bool:
    return a.col == b.col and a.row == b.row
