"""Windowed search for inserted text in a live document.

``find`` looks for a completion around a tracked offset: it cuts a window
of ``margin`` characters on each side, aligns the completion against the
window lexeme by lexeme, and reports whether the text is still
substantially present together with the distance metrics.

Example:
    >>> text = "function main() {\\n  console.log('hi')\\n}"
    >>> result = find(text, "console.log('hi')", 50, 20)
    >>> result.still_in_code_heuristic, result.found_offset
    (True, 20)

"""

from dataclasses import dataclass

from huella.alignment import edit_distance
from huella.config import STILL_IN_CODE_FRACTION
from huella.lex_alignment import lex_edit_distance


@dataclass(frozen=True, slots=True)
class FindResult:
    """Outcome of a windowed search.

    Attributes:
        still_in_code_heuristic: Relative lexeme distance within threshold
        found_offset: Absolute document offset of the best match start
        relative_lex_edit_distance: lex distance / completion lexeme count
        lex_edit_distance: Edit distance in lexemes
        char_edit_distance: Character edit distance of the completion
            against the lexeme-aligned span
        completion_lex_length: Number of lexemes in the completion

    """

    still_in_code_heuristic: bool
    found_offset: int
    relative_lex_edit_distance: float
    lex_edit_distance: int
    char_edit_distance: int
    completion_lex_length: int

    def to_measurements(self) -> dict[str, float]:
        """Flatten into telemetry measurements (verdict as 0/1)."""
        return {
            "stillInCodeHeuristic": 1 if self.still_in_code_heuristic else 0,
            "foundOffset": self.found_offset,
            "relativeLexEditDistance": self.relative_lex_edit_distance,
            "lexEditDistance": self.lex_edit_distance,
            "charEditDistance": self.char_edit_distance,
            "completionLexLength": self.completion_lex_length,
        }


def find(
    document_text: str,
    completion: str,
    margin: int,
    offset: int,
    *,
    threshold: float = STILL_IN_CODE_FRACTION,
) -> FindResult:
    """Search for ``completion`` near ``offset`` in ``document_text``.

    Args:
        document_text: Full current document text
        completion: The inserted text to look for
        margin: Characters searched before and after the expected span
        offset: Anchor offset where the completion is expected to start
        threshold: Largest relative lexeme distance counted as present

    Returns:
        FindResult. A completion without lexemes reports a relative
        distance of 1.0 and a negative verdict.

    """
    window_start = max(0, offset - margin)
    window = document_text[
        window_start : min(len(document_text), offset + len(completion) + margin)
    ]
    lex_alignment = lex_edit_distance(window, completion)

    if lex_alignment.needle_lex_length:
        fraction = lex_alignment.lex_distance / lex_alignment.needle_lex_length
    else:
        fraction = 1.0

    char_alignment = edit_distance(
        window[lex_alignment.start_offset : lex_alignment.end_offset],
        completion,
    )
    return FindResult(
        still_in_code_heuristic=bool(lex_alignment.needle_lex_length) and fraction <= threshold,
        found_offset=lex_alignment.start_offset + window_start,
        relative_lex_edit_distance=fraction,
        lex_edit_distance=lex_alignment.lex_distance,
        char_edit_distance=char_alignment.distance,
        completion_lex_length=lex_alignment.needle_lex_length,
    )


__all__ = [
    "FindResult",
    "find",
]
