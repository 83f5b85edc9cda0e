"""Protocols for Huella's external collaborators.

The tracker only reads documents and hands structured records to sinks.
How documents are stored, and how telemetry or citations are transported,
is the host's business; these protocols define the seams.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, TypeAlias

if TYPE_CHECKING:
    from huella.citations import DocumentCitation
    from huella.location import Position
    from huella.telemetry import TelemetryEvent


@dataclass(frozen=True, slots=True)
class ContentChange:
    """One edit reported by a document change notification.

    The old text ``[range_offset, range_offset + range_length)`` was
    replaced by ``text``.
    """

    range_offset: int
    range_length: int
    text: str

    @property
    def delta(self) -> int:
        """Change in document length caused by this edit."""
        return len(self.text) - self.range_length


ChangeListener: TypeAlias = Callable[[Sequence[ContentChange]], None]
CloseListener: TypeAlias = Callable[[], None]
Unsubscribe: TypeAlias = Callable[[], None]


class TextDocument(Protocol):
    """Snapshot of a document at one version."""

    @property
    def uri(self) -> str: ...

    @property
    def version(self) -> int: ...

    @property
    def language_id(self) -> str: ...

    def get_text(self) -> str:
        """Full text of this version."""
        ...

    def position_at(self, offset: int) -> Position:
        """Position of an offset (clamped to the text)."""
        ...

    def offset_at(self, position: Position) -> int:
        """Offset of a position (clamped to the text)."""
        ...


class DocumentSource(Protocol):
    """Live documents the tracker may read and observe.

    Implementations must deliver change and close notifications on the
    event loop the tracker runs on.
    """

    async def get_document(self, uri: str) -> TextDocument:
        """Return the current version of a document.

        Raises:
            DocumentUnavailableError: The document is closed or unknown.
        """
        ...

    def on_did_change(self, uri: str, listener: ChangeListener) -> Unsubscribe:
        """Subscribe to edits of one document."""
        ...

    def on_did_close(self, uri: str, listener: CloseListener) -> Unsubscribe:
        """Subscribe to the closing of one document."""
        ...


class TelemetrySink(Protocol):
    """Receives survival telemetry, one method per event kind."""

    def accepted(self, event: TelemetryEvent) -> None: ...

    def rejected(self, event: TelemetryEvent) -> None: ...

    def still_in_code(self, event: TelemetryEvent) -> None: ...

    def captured_after_accepted(self, event: TelemetryEvent) -> None: ...

    def captured_after_rejected(self, event: TelemetryEvent) -> None: ...


class CitationSink(Protocol):
    """Receives resolved license citations."""

    async def handle_citation(self, citation: DocumentCitation) -> None: ...


__all__ = [
    "ChangeListener",
    "CitationSink",
    "CloseListener",
    "ContentChange",
    "DocumentSource",
    "TelemetrySink",
    "TextDocument",
    "Unsubscribe",
]
