"""Code capture around a tracked insertion point.

Captured code shows what the user ended up with after accepting or
rejecting a suggestion. The text before the tracked offset plays the role
of a hypothetical prompt, the text after it the role of a hypothetical
completion. That completion is cut where an indentation heuristic sees
the logical block end, or after a fixed margin when it cannot tell.

Block end heuristic:
    The block's baseline is the indentation of its first non-blank line
    (the cursor line counts with the text before the cursor). Reading on,
    the block ends at the first non-blank line indented less than the
    baseline, or at the first line back at the baseline after a deeper
    nested body. A line that only closes brackets (``}``, ``)``, ``]``) or
    reads ``end`` is kept as part of the block it closes.

"""

from dataclasses import dataclass

from huella.config import TrackerConfig

_CLOSERS = ("}", ")", "]")


@dataclass(frozen=True, slots=True)
class IndentationContext:
    """Indentation around a cursor.

    Attributes:
        line_prefix: Text of the cursor line before the cursor

    """

    line_prefix: str


@dataclass(frozen=True, slots=True)
class CapturedCode:
    """Code captured around a tracked offset.

    ``termination_offset`` is the block end measured from the tracked
    offset, 0 when captured up to the suffix tracker, -1 when no block
    end was detected.
    """

    prefix: str
    suffix: str
    captured_code: str
    termination_offset: int


def indentation(line: str) -> int:
    """Width of the leading spaces and tabs of a line."""
    return len(line) - len(line.lstrip(" \t"))


def context_indentation(text: str, offset: int) -> IndentationContext:
    """Indentation context at ``offset`` in ``text``."""
    offset = min(max(offset, 0), len(text))
    line_start = text.rfind("\n", 0, offset) + 1
    return IndentationContext(text[line_start:offset])


def _is_closer(line: str) -> bool:
    stripped = line.strip()
    return stripped == "end" or (
        stripped[:1] in _CLOSERS and all(ch in _CLOSERS or ch in ";," for ch in stripped)
    )


def indentation_block_finished(completion: str, context: IndentationContext) -> int | None:
    """Offset in ``completion`` where the logical block ends, or None."""
    baseline: int | None = None
    deeper = False
    offset = 0
    for index, line in enumerate(completion.split("\n")):
        full_line = context.line_prefix + line if index == 0 else line
        if full_line.strip():
            indent = indentation(full_line)
            if baseline is None:
                baseline = indent
            elif indent < baseline:
                return offset
            elif indent > baseline:
                deeper = True
            elif deeper:
                if _is_closer(line):
                    return offset + len(line)
                return offset
        offset += len(line) + 1
    return None


def capture_code(
    text: str,
    offset: int,
    suffix_offset: int | None,
    config: TrackerConfig,
) -> CapturedCode:
    """Capture the code following ``offset``.

    Args:
        text: Current document text
        offset: Tracked insertion offset
        suffix_offset: Tracked end of the inserted text, if known
        config: Supplies ``fim_capture`` and the fallback margin

    """
    offset = min(max(offset, 0), len(text))
    prefix = text[:offset]

    if config.fim_capture and suffix_offset is not None:
        suffix_offset = min(max(suffix_offset, offset), len(text))
        return CapturedCode(prefix, text[suffix_offset:], text[offset:suffix_offset], 0)

    hypothetical_completion = text[offset:]
    termination = indentation_block_finished(
        hypothetical_completion, context_indentation(text, offset)
    )
    # Twice the detected block when found, otherwise a fixed margin
    length = termination * 2 if termination else config.capture_code_margin
    captured = text[offset : min(len(text), offset + length)]
    return CapturedCode(prefix, "", captured, -1 if termination is None else termination)


__all__ = [
    "CapturedCode",
    "IndentationContext",
    "capture_code",
    "context_indentation",
    "indentation",
    "indentation_block_finished",
]
