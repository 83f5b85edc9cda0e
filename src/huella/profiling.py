"""Huella AlignmentAccumulator: opt-in profiling for edit-distance work.

This module provides accumulated metrics during alignment:
- Total profiling time
- Number of aligner calls
- Number of dynamic-programming cells filled

Zero overhead when disabled (get_alignment_accumulator() returns None).

Example:
    from huella import find
    from huella.profiling import profiled_alignment

    with profiled_alignment() as metrics:
        find(document_text, completion, 1500, offset)

    print(metrics.summary())
    # {"total_ms": 3.1, "alignments": 2, "cells": 41250}

"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any


@dataclass
class AlignmentAccumulator:
    """Accumulated metrics during alignment.

    Attributes:
        start_time: Profiling start timestamp.
        alignments: Number of edit_distance() calls that ran the DP.
        cells: Total DP cells filled (needle length x haystack length).

    """

    start_time: float = field(default_factory=perf_counter)
    alignments: int = 0
    cells: int = 0

    def record_alignment(self, haystack_length: int, needle_length: int) -> None:
        """Record one alignment of the given dimensions."""
        self.alignments += 1
        self.cells += haystack_length * needle_length

    @property
    def total_duration_ms(self) -> float:
        """Total profiling duration in milliseconds."""
        return (perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        """Get summary of alignment metrics."""
        return {
            "total_ms": round(self.total_duration_ms, 2),
            "alignments": self.alignments,
            "cells": self.cells,
        }


_accumulator: ContextVar[AlignmentAccumulator | None] = ContextVar(
    "alignment_accumulator",
    default=None,
)


def get_alignment_accumulator() -> AlignmentAccumulator | None:
    """Get current accumulator (None if profiling disabled)."""
    return _accumulator.get()


@contextmanager
def profiled_alignment() -> Iterator[AlignmentAccumulator]:
    """Context manager for profiled alignment.

    Creates an AlignmentAccumulator and makes it available via
    get_alignment_accumulator() for the duration of the with block.

    Yields:
        AlignmentAccumulator populated by every alignment in the block.

    """
    acc = AlignmentAccumulator()
    token: Token[AlignmentAccumulator | None] = _accumulator.set(acc)
    try:
        yield acc
    finally:
        _accumulator.reset(token)


__all__ = [
    "AlignmentAccumulator",
    "get_alignment_accumulator",
    "profiled_alignment",
]
