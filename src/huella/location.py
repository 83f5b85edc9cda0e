"""Positions and ranges in document text.

Positions are zero-based ``(line, character)`` pairs as editors report
them; offsets are Python string indices. Lines are separated by ``\\n``
(a preceding ``\\r`` stays part of the line it ends).

Thread Safety:
Position and Range are frozen (immutable) and safe to share across threads.

"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass


@dataclass(frozen=True, slots=True, order=True)
class Position:
    """Zero-based line/character position.

    Examples:
        >>> Position(1, 4)
        Position(line=1, character=4)
        >>> str(Position(1, 4))
        '2:5'

    """

    line: int
    character: int

    def __str__(self) -> str:
        """Format as a 1-indexed ``line:column`` for log messages."""
        return f"{self.line + 1}:{self.character + 1}"


@dataclass(frozen=True, slots=True)
class Range:
    """Half-open range between two positions."""

    start: Position
    end: Position

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


def line_starts(text: str) -> list[int]:
    """Offsets at which each line of ``text`` begins."""
    starts = [0]
    pos = text.find("\n")
    while pos != -1:
        starts.append(pos + 1)
        pos = text.find("\n", pos + 1)
    return starts


def position_at(text: str, offset: int, starts: list[int] | None = None) -> Position:
    """Convert an offset into a Position, clamping to the text bounds.

    Args:
        text: Document text
        offset: String index
        starts: Precomputed ``line_starts(text)`` (optional)

    """
    offset = min(max(offset, 0), len(text))
    starts = starts if starts is not None else line_starts(text)
    line = bisect_right(starts, offset) - 1
    return Position(line, offset - starts[line])


def offset_at(text: str, position: Position, starts: list[int] | None = None) -> int:
    """Convert a Position into an offset, clamping to the text bounds."""
    starts = starts if starts is not None else line_starts(text)
    if position.line < 0:
        return 0
    if position.line >= len(starts):
        return len(text)
    line_start = starts[position.line]
    line_end = starts[position.line + 1] - 1 if position.line + 1 < len(starts) else len(text)
    return min(line_start + max(position.character, 0), line_end)


__all__ = [
    "Position",
    "Range",
    "line_starts",
    "offset_at",
    "position_at",
]
