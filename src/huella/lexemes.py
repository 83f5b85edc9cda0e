"""Lexeme tokenizer for lexeme-level edit distance.

Splits a string into a sequence of coarse lexemes and interns them in a
dictionary so that sequences can be compared by integer id:

- a run of word characters (letters of any script, decimal digits, ``_``)
- a run of plain spaces
- any other single code point (symbols, tabs, newlines, emoji)

Symbols are never merged, so ``==`` and ``->`` are two lexemes each, and
two consecutive newlines are two lexemes.

Example:
    >>> lexemes, d = lexical_analyzer("a == b")
    >>> [lx.text for lx in lexemes]
    ['a', ' ', '=', '=', ' ', 'b']

Thread Safety:
    All functions are pure. A LexDictionary passed in is extended in place,
    so do not share one dictionary between threads.

"""

import unicodedata
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum, auto
from typing import TypeAlias

# Lexeme text -> interned id; ids are dense and assigned in first-seen order
LexDictionary: TypeAlias = dict[str, int]

LexGenerator: TypeAlias = Callable[[str], Iterator[str]]


class LexemeKind(Enum):
    """Character classes driving lexeme boundaries."""

    WORD = auto()  # letters, decimal digits, underscore
    SPACE = auto()  # plain U+0020 only
    OTHER = auto()  # everything else, one code point per lexeme


@dataclass(frozen=True, slots=True)
class Lexeme:
    """A lexeme with its interned id and origin.

    Attributes:
        id: Interned id from the LexDictionary
        text: Original substring
        offset: Start offset of ``text`` in the analysed string
        kind: Class of the lexeme

    """

    id: int
    text: str
    offset: int
    kind: LexemeKind

    @property
    def end_offset(self) -> int:
        """Offset just past the lexeme."""
        return self.offset + len(self.text)


def classify(ch: str) -> LexemeKind:
    """Classify a single code point."""
    if ch == " ":
        return LexemeKind.SPACE
    if ch == "_" or ch.isalpha() or unicodedata.category(ch) == "Nd":
        return LexemeKind.WORD
    return LexemeKind.OTHER


def lex_words(s: str) -> Iterator[str]:
    """Yield the lexemes of ``s`` as substrings.

    Word runs and space runs merge; every other code point stands alone.
    The concatenation of all yielded strings is ``s``.
    """
    start = 0
    state = LexemeKind.WORD
    for pos, ch in enumerate(s):
        kind = classify(ch)
        if kind is state and kind is not LexemeKind.OTHER:
            continue
        if pos > start:
            yield s[start:pos]
        start = pos
        state = kind
    if len(s) > start:
        yield s[start:]


def empty_lex_dictionary() -> LexDictionary:
    """Return a fresh, empty lexeme dictionary."""
    return {}


def reverse_lex_dictionary(d: LexDictionary) -> list[str]:
    """Build the id -> lexeme lookup for a dictionary."""
    lookup = [""] * len(d)
    for lexeme, idx in d.items():
        lookup[idx] = lexeme
    return lookup


def _keep_all(lexeme: str) -> bool:
    return True


def lexical_analyzer(
    s: str,
    dictionary: LexDictionary | None = None,
    generator: LexGenerator = lex_words,
    keep: Callable[[str], bool] = _keep_all,
) -> tuple[list[Lexeme], LexDictionary]:
    """Convert a string into interned lexemes.

    Lexemes not yet in the dictionary get a fresh id, so this can be
    called with an empty dictionary or with one shared with an earlier
    call (to compare two strings under the same ids).

    Args:
        s: The string to analyse
        dictionary: Dictionary to extend (a new one if None)
        generator: Splits ``s`` into lexeme substrings
        keep: Lexemes for which this returns False are dropped; they
            still advance the offset

    Returns:
        The kept lexemes in order, and the (extended) dictionary.

    """
    d = empty_lex_dictionary() if dictionary is None else dictionary
    lexed: list[Lexeme] = []
    offset = 0
    for text in generator(s):
        if text and keep(text):
            idx = d.get(text)
            if idx is None:
                idx = d[text] = len(d)
            lexed.append(Lexeme(idx, text, offset, classify(text[0])))
        offset += len(text)
    return lexed, d


def not_single_space(lexeme: str) -> bool:
    """Filter dropping lexemes that are exactly one plain space."""
    return lexeme != " "


__all__ = [
    "LexDictionary",
    "LexGenerator",
    "Lexeme",
    "LexemeKind",
    "classify",
    "empty_lex_dictionary",
    "lex_words",
    "lexical_analyzer",
    "not_single_space",
    "reverse_lex_dictionary",
]
