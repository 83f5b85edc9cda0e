"""Lexeme-level edit-distance alignment.

Tokenizes haystack and needle under one shared dictionary and aligns the
id sequences with the character aligner's algorithm and tie-breaks, so
each edit unit is one lexeme. Offsets in the result are translated back
to character offsets in the haystack.

Two rules make the distance tolerant of incidental differences:

- Lexemes that are exactly one plain space are dropped before aligning,
  so a single interstitial space is free. Multi-space runs, tabs and
  newlines stay unit-cost lexemes.
- The first needle lexeme matches any haystack lexeme ending with it, and
  the last needle lexeme matches any haystack lexeme starting with it. A
  completion that starts or stops in the middle of an identifier still
  aligns at zero cost.

Example:
    >>> a = lex_edit_distance("XX XX ( ) { YY", "(){")
    >>> a.lex_distance, "XX XX ( ) { YY"[a.start_offset : a.end_offset]
    (0, '( ) {')

"""

from dataclasses import dataclass

from huella.alignment import edit_distance
from huella.lexemes import (
    LexGenerator,
    empty_lex_dictionary,
    lex_words,
    lexical_analyzer,
    not_single_space,
    reverse_lex_dictionary,
)


@dataclass(frozen=True, slots=True)
class LexAlignment:
    """Best lexeme-level placement of a needle within a haystack.

    Attributes:
        lex_distance: Edit distance counted in lexemes
        start_offset: Character offset of the match start in the haystack
        end_offset: Character offset just past the last matched lexeme
        haystack_lex_length: Number of haystack lexemes after filtering
        needle_lex_length: Number of needle lexemes after filtering

    """

    lex_distance: int
    start_offset: int
    end_offset: int
    haystack_lex_length: int
    needle_lex_length: int


def lex_edit_distance(
    haystack: str,
    needle: str,
    generator: LexGenerator = lex_words,
) -> LexAlignment:
    """Align the lexemes of ``needle`` against those of ``haystack``.

    Args:
        haystack: The text to search in
        needle: The text to place
        generator: Splits a string into lexeme substrings

    Returns:
        LexAlignment with character offsets into ``haystack``.

    """
    haystack_lexed, d = lexical_analyzer(
        haystack, empty_lex_dictionary(), generator, not_single_space
    )
    needle_lexed, d = lexical_analyzer(needle, d, generator, not_single_space)

    # Empty after filtering (including strings of a single space)
    if not needle_lexed or not haystack_lexed:
        return LexAlignment(
            lex_distance=len(needle_lexed),
            start_offset=0,
            end_offset=0,
            haystack_lex_length=len(haystack_lexed),
            needle_lex_length=len(needle_lexed),
        )

    lookup = reverse_lex_dictionary(d)
    last = len(needle_lexed) - 1
    needle_first = needle_lexed[0].text
    needle_last = needle_lexed[last].text

    def compare(h_id: object, n_id: object, h_index: int, n_index: int) -> int:
        if n_index == 0 or n_index == last:
            h_text = lookup[h_id]  # type: ignore[index]
            if n_index == 0 and h_text.endswith(needle_first):
                return 0
            if n_index == last and h_text.startswith(needle_last):
                return 0
            return 1
        return 0 if h_id == n_id else 1

    alignment = edit_distance(
        [lx.id for lx in haystack_lexed],
        [lx.id for lx in needle_lexed],
        compare,
    )

    # Translate lexeme indices back to character offsets
    if alignment.end_offset > alignment.start_offset:
        start_offset = haystack_lexed[alignment.start_offset].offset
        end_offset = haystack_lexed[alignment.end_offset - 1].end_offset
    else:
        start_offset = end_offset = 0

    return LexAlignment(
        lex_distance=alignment.distance,
        start_offset=start_offset,
        end_offset=end_offset,
        haystack_lex_length=len(haystack_lexed),
        needle_lex_length=len(needle_lexed),
    )


__all__ = [
    "LexAlignment",
    "lex_edit_distance",
]
