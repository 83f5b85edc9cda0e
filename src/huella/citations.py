"""License-citation resolution for inserted completions.

A completion may arrive with citations: spans of its text that match
public code, each with license details. Once the completion is inserted
(fully or partially) those spans are mapped to absolute positions in the
live document:

1. Clip each span to the text actually inserted; spans starting beyond
   a partial acceptance are dropped.
2. Re-derive the insertion offset by searching for the inserted text near
   the reported offset, since the editor may have applied further edits
   before telling us about the acceptance.
3. Report ``DocumentCitation`` records to the citation sink.

"""

from collections.abc import Sequence
from dataclasses import dataclass

from huella.config import TrackerConfig
from huella.errors import DocumentUnavailableError
from huella.locator import find
from huella.location import Range
from huella.protocols import CitationSink, DocumentSource, TextDocument
from huella.utils.logger import get_logger

logger = get_logger(__name__)

UNKNOWN_TEXT = "<unknown>"


@dataclass(frozen=True, slots=True)
class LicenseDetail:
    """License and source URL of a public code match."""

    license: str
    url: str


@dataclass(frozen=True, slots=True)
class IPCitation:
    """A citation span within the full completion text.

    Attributes:
        start_offset: Start of the matching span in the completion
        stop_offset: End (exclusive) of the matching span
        details: Licenses of the matched public code

    """

    start_offset: int
    stop_offset: int
    details: tuple[LicenseDetail, ...] = ()


@dataclass(frozen=True, slots=True)
class DocumentCitation:
    """A citation resolved against a document.

    ``version`` and ``location`` are None, and ``matching_text`` is
    ``"<unknown>"``, when the document could not be read.
    """

    document_uri: str
    offset_start: int
    offset_end: int
    version: int | None
    location: Range | None
    matching_text: str
    details: tuple[LicenseDetail, ...]


def compute_citation_start(
    completion_length: int, inserted_length: int, citation_start: int
) -> int | None:
    """Start of a citation within the inserted text, or None if not inserted."""
    if inserted_length < completion_length and citation_start > inserted_length:
        return None
    return citation_start


def compute_citation_end(
    completion_length: int, inserted_length: int, citation_stop: int
) -> int:
    """End of a citation clipped to a partial acceptance."""
    if inserted_length < completion_length:
        return min(citation_stop, inserted_length)
    return citation_stop


async def resolve_citations(
    documents: DocumentSource,
    sink: CitationSink,
    uri: str,
    full_completion: str,
    inserted_text: str,
    insertion_offset: int,
    citations: Sequence[IPCitation],
    config: TrackerConfig,
) -> list[DocumentCitation]:
    """Resolve and report the citations of one insertion.

    Args:
        documents: Source of the live document
        sink: Receives each resolved citation
        uri: Document the completion was inserted into
        full_completion: Completion text as offered
        inserted_text: Part of it that was inserted
        insertion_offset: Offset reported for the insertion
        citations: Citation spans within ``full_completion``
        config: Supplies the search margin and threshold

    Returns:
        The reported citations, in input order.

    """
    if not citations:
        logger.debug("No citations accompany the insertion into %s", uri)
        return []

    doc: TextDocument | None
    try:
        doc = await documents.get_document(uri)
    except DocumentUnavailableError:
        logger.info("Could not get document for %s; reporting citations without location", uri)
        doc = None

    if doc is not None:
        found = find(
            doc.get_text(),
            inserted_text,
            config.near_margin,
            insertion_offset,
            threshold=config.still_in_code_fraction,
        )
        if found.still_in_code_heuristic:
            insertion_offset = found.found_offset

    reported: list[DocumentCitation] = []
    for citation in citations:
        start = compute_citation_start(
            len(full_completion), len(inserted_text), citation.start_offset
        )
        if start is None:
            logger.info(
                "Full completion for %s contains a reference matching public code, "
                "but the partially inserted text did not include the match.",
                uri,
            )
            continue
        offset_start = insertion_offset + start
        offset_end = insertion_offset + compute_citation_end(
            len(full_completion), len(inserted_text), citation.stop_offset
        )
        if doc is not None:
            location = Range(doc.position_at(offset_start), doc.position_at(offset_end))
            text = doc.get_text()[offset_start:offset_end]
            version = doc.version
        else:
            location = None
            text = UNKNOWN_TEXT
            version = None
        record = DocumentCitation(
            document_uri=uri,
            offset_start=offset_start,
            offset_end=offset_end,
            version=version,
            location=location,
            matching_text=text,
            details=citation.details,
        )
        await sink.handle_citation(record)
        reported.append(record)
    return reported


class RecordingCitationSink:
    """CitationSink keeping every citation in memory."""

    __slots__ = ("citations",)

    def __init__(self) -> None:
        self.citations: list[DocumentCitation] = []

    async def handle_citation(self, citation: DocumentCitation) -> None:
        self.citations.append(citation)


__all__ = [
    "DocumentCitation",
    "IPCitation",
    "LicenseDetail",
    "RecordingCitationSink",
    "compute_citation_end",
    "compute_citation_start",
    "resolve_citations",
]
