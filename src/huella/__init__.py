"""
Huella — Suggestion Survival & Citation Alignment for Python 3.12+

Tracks whether accepted code suggestions survive in a live document,
captures what users write after accepting or rejecting a suggestion, and
maps license citations onto the document. Built on a lexeme-aware fuzzy
alignment engine with zero runtime dependencies.

Quick Start:
    >>> from huella import find
    >>> result = find("x = 1\\nconsole.log('hi')\\n", "console.log('hi')", 50, 6)
    >>> result.still_in_code_heuristic, result.found_offset
    (True, 6)

    >>> from huella import edit_distance
    >>> edit_distance("hello world", "wrld").distance
    1

Tracking insertions:
    >>> tracker = SurvivalTracker(documents, RecordingTelemetrySink())
    >>> tracker.post_insertion(
    ...     "ghostText", completion, offset, uri, TelemetryData(),
    ...     SuggestionStatus("full", len(completion), 1),
    ... )

Installation:
    pip install huella
"""

from huella.alignment import Alignment, EditKind, EditOp, edit_distance
from huella.capture import CapturedCode, capture_code
from huella.citations import (
    DocumentCitation,
    IPCitation,
    LicenseDetail,
    RecordingCitationSink,
    resolve_citations,
)
from huella.config import DEFAULT_TIMEOUTS, TimeoutDescriptor, TrackerConfig
from huella.documents import InMemoryDocument, InMemoryDocumentSource
from huella.errors import ConfigError, DocumentUnavailableError, HuellaError
from huella.lex_alignment import LexAlignment, lex_edit_distance
from huella.lexemes import Lexeme, LexemeKind, lex_words, lexical_analyzer
from huella.location import Position, Range
from huella.locator import FindResult, find
from huella.offsets import OffsetTracker
from huella.protocols import (
    CitationSink,
    ContentChange,
    DocumentSource,
    TelemetrySink,
    TextDocument,
)
from huella.survival import (
    RejectedCompletion,
    SuggestionStatus,
    SurvivalTracker,
    compute_completion_text,
)
from huella.telemetry import (
    LoggingTelemetrySink,
    RecordingTelemetrySink,
    TelemetryData,
    TelemetryEvent,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_TIMEOUTS",
    "Alignment",
    "CapturedCode",
    "CitationSink",
    "ConfigError",
    "ContentChange",
    "DocumentCitation",
    "DocumentSource",
    "DocumentUnavailableError",
    "EditKind",
    "EditOp",
    "FindResult",
    "HuellaError",
    "IPCitation",
    "InMemoryDocument",
    "InMemoryDocumentSource",
    "LexAlignment",
    "Lexeme",
    "LexemeKind",
    "LicenseDetail",
    "LoggingTelemetrySink",
    "OffsetTracker",
    "Position",
    "Range",
    "RecordingCitationSink",
    "RecordingTelemetrySink",
    "RejectedCompletion",
    "SuggestionStatus",
    "SurvivalTracker",
    "TelemetryData",
    "TelemetryEvent",
    "TelemetrySink",
    "TextDocument",
    "TimeoutDescriptor",
    "TrackerConfig",
    "__version__",
    "capture_code",
    "compute_completion_text",
    "edit_distance",
    "find",
    "lex_edit_distance",
    "lex_words",
    "lexical_analyzer",
    "resolve_citations",
]
