"""Semi-global edit-distance alignment of a needle inside a haystack.

Computes where ``needle`` fits best inside ``haystack`` under unit-cost
edit distance. The whole needle counts towards the distance, while only
the matched span of the haystack does: unmatched haystack text before and
after the span is free. Hence ``edit_distance(a, b)`` and
``edit_distance(b, a)`` generally differ.

Both arguments may be strings or any sequences (the lexeme aligner passes
lists of interned ids).

Tie-breaking:
    At every cell the moves are tried in a fixed order and the first one
    achieving the minimum wins:

    1. substitute (or match) the needle element with the haystack element
    2. skip the needle element (it has no counterpart in the haystack)
    3. skip the haystack element (an extra element inside the match)

    The match end is the leftmost column of the last row holding the
    minimum. So ``aXbc`` / ``abc`` aligns to ``Xbc`` (substitution beats
    match-then-skip) and ``abcS`` / ``abcd`` aligns to ``abc`` (skipping the
    trailing needle element beats substituting it).

Thread Safety:
    Pure functions over immutable inputs.

"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TypeAlias

# compare(haystack_elem, needle_elem, haystack_index, needle_index) -> cost
CompareFn: TypeAlias = Callable[[object, object, int, int], int]

_SUBSTITUTE = 0
_SKIP_NEEDLE = 1
_SKIP_HAYSTACK = 2


class EditKind(Enum):
    """Kinds of steps in an edit script."""

    MATCH = "match"
    SUBSTITUTE = "substitute"
    SKIP_NEEDLE = "skip_needle"
    SKIP_HAYSTACK = "skip_haystack"


@dataclass(frozen=True, slots=True)
class EditOp:
    """One step of an edit script.

    ``haystack_index`` is None for SKIP_NEEDLE and ``needle_index`` is None
    for SKIP_HAYSTACK.
    """

    kind: EditKind
    haystack_index: int | None
    needle_index: int | None


@dataclass(frozen=True, slots=True)
class Alignment:
    """Best placement of a needle within a haystack.

    Attributes:
        distance: Edit distance between the needle and the matched span
        start_offset: Start of the matched span in the haystack
        end_offset: End (exclusive) of the matched span
        operations: Edit script, only filled when requested

    """

    distance: int
    start_offset: int
    end_offset: int
    operations: tuple[EditOp, ...] = ()

    def matched(self, haystack: Sequence) -> Sequence:
        """Slice of ``haystack`` covered by this alignment."""
        return haystack[self.start_offset : self.end_offset]


def _unit_cost(h: object, n: object, h_index: int, n_index: int) -> int:
    return 0 if h == n else 1


def edit_distance(
    haystack: Sequence,
    needle: Sequence,
    compare: CompareFn | None = None,
    *,
    with_operations: bool = False,
) -> Alignment:
    """Align ``needle`` against the best-matching span of ``haystack``.

    Args:
        haystack: The long sequence to search in
        needle: The short sequence to place
        compare: Substitution cost of a haystack element against a needle
            element (0 when equal). Indices of both elements are passed
            too. Defaults to equality with unit cost.
        with_operations: Also recover the edit script by backtracking

    Returns:
        Alignment with offsets into ``haystack``. An empty needle or
        haystack yields ``distance == len(needle)`` and the span (0, 0).

    """
    if not needle or not haystack:
        return Alignment(len(needle), 0, 0)

    from huella.profiling import get_alignment_accumulator

    acc = get_alignment_accumulator()
    if acc is not None:
        acc.record_alignment(len(haystack), len(needle))

    cmp = compare or _unit_cost
    width = len(haystack) + 1

    # Row for zero needle elements: every column is a free start
    prev_row = [0] * width
    prev_start = list(range(width))
    moves: list[bytearray] = []

    for j, n_elem in enumerate(needle):
        cur_row = [j + 1] * width
        cur_start = [0] * width
        row_moves = bytearray(width)
        row_moves[0] = _SKIP_NEEDLE
        for i in range(1, width):
            substituted = prev_row[i - 1] + cmp(haystack[i - 1], n_elem, i - 1, j)
            skipped_needle = prev_row[i] + 1
            skipped_haystack = cur_row[i - 1] + 1
            if substituted <= skipped_needle and substituted <= skipped_haystack:
                cur_row[i] = substituted
                cur_start[i] = prev_start[i - 1]
            elif skipped_needle <= skipped_haystack:
                cur_row[i] = skipped_needle
                cur_start[i] = prev_start[i]
                row_moves[i] = _SKIP_NEEDLE
            else:
                cur_row[i] = skipped_haystack
                cur_start[i] = cur_start[i - 1]
                row_moves[i] = _SKIP_HAYSTACK
        if with_operations:
            moves.append(row_moves)
        prev_row, prev_start = cur_row, cur_start

    best = 0
    for i in range(1, width):
        if prev_row[i] < prev_row[best]:
            best = i

    operations: tuple[EditOp, ...] = ()
    if with_operations:
        operations = _backtrack(haystack, needle, cmp, moves, best)
    return Alignment(prev_row[best], prev_start[best], best, operations)


def _backtrack(
    haystack: Sequence,
    needle: Sequence,
    cmp: CompareFn,
    moves: list[bytearray],
    end: int,
) -> tuple[EditOp, ...]:
    """Walk the recorded moves back from (last row, end) to row zero."""
    ops: list[EditOp] = []
    i = end
    j = len(needle) - 1
    while j >= 0:
        move = moves[j][i]
        if move == _SUBSTITUTE:
            cost = cmp(haystack[i - 1], needle[j], i - 1, j)
            kind = EditKind.MATCH if cost == 0 else EditKind.SUBSTITUTE
            ops.append(EditOp(kind, i - 1, j))
            i -= 1
            j -= 1
        elif move == _SKIP_NEEDLE:
            ops.append(EditOp(EditKind.SKIP_NEEDLE, None, j))
            j -= 1
        else:
            ops.append(EditOp(EditKind.SKIP_HAYSTACK, i - 1, None))
            i -= 1
    ops.reverse()
    return tuple(ops)


__all__ = [
    "Alignment",
    "CompareFn",
    "EditKind",
    "EditOp",
    "edit_distance",
]
