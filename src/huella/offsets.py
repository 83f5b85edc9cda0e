"""Offset tracking across live document edits.

An OffsetTracker is a cursor into a document that stays put relative to
the surrounding text while the document is edited: edits ending at or
before the cursor shift it by their length delta, edits after it leave it
alone, and edits straddling it leave it where it was.

Trackers do not subscribe themselves; the owning session forwards change
notifications to ``apply``, so one listener serves several trackers.

Example:
    >>> tracker = OffsetTracker(10)
    >>> tracker.apply([ContentChange(range_offset=0, range_length=0, text="abc")])
    >>> tracker.offset
    13

"""

from collections.abc import Iterable

from huella.protocols import ContentChange


class OffsetTracker:
    """Mutable offset following edits made before it."""

    __slots__ = ("_offset", "_initial")

    def __init__(self, offset: int) -> None:
        self._offset = offset
        self._initial = offset

    @property
    def offset(self) -> int:
        """Current tracked offset."""
        return self._offset

    @property
    def initial_offset(self) -> int:
        """Offset the tracker was created at."""
        return self._initial

    def apply(self, changes: Iterable[ContentChange]) -> None:
        """Shift the offset for each change that ends at or before it."""
        for change in changes:
            if change.range_offset + change.range_length <= self._offset:
                self._offset += change.delta

    def __repr__(self) -> str:
        return f"OffsetTracker(offset={self._offset}, initial={self._initial})"


__all__ = [
    "OffsetTracker",
]
