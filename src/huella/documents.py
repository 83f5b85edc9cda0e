"""In-memory document source.

A small DocumentSource implementation for hosts that keep document text
themselves (language servers, editor bridges) and for tests. Every edit
bumps the version and is reported to change listeners as ContentChange
records, so offset trackers follow it.

Example:
    >>> docs = InMemoryDocumentSource()
    >>> docs.open("file:///a.py", "x = 1\\n", "python")
    >>> docs.apply_edit("file:///a.py", 0, 0, "# hi\\n")
    >>> docs.text("file:///a.py")
    '# hi\\nx = 1\\n'

Thread Safety:
    Not thread-safe. Drive it from the event loop the tracker runs on.

"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from huella.errors import DocumentUnavailableError
from huella.location import Position, line_starts, offset_at, position_at
from huella.protocols import ChangeListener, CloseListener, ContentChange, Unsubscribe


@dataclass(frozen=True, slots=True)
class InMemoryDocument:
    """Immutable snapshot of a document version."""

    uri: str
    text: str
    version: int = 0
    language_id: str = "plaintext"
    _starts: list[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_starts", line_starts(self.text))

    def get_text(self) -> str:
        return self.text

    def position_at(self, offset: int) -> Position:
        return position_at(self.text, offset, self._starts)

    def offset_at(self, position: Position) -> int:
        return offset_at(self.text, position, self._starts)


def diff_change(old: str, new: str) -> ContentChange | None:
    """Smallest single edit turning ``old`` into ``new`` (None if equal).

    Strips the common prefix and the common suffix; what remains of
    ``old`` is the replaced range and what remains of ``new`` the text.
    """
    if old == new:
        return None
    limit = min(len(old), len(new))
    prefix = 0
    while prefix < limit and old[prefix] == new[prefix]:
        prefix += 1
    suffix = 0
    while (
        suffix < limit - prefix
        and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]
    ):
        suffix += 1
    return ContentChange(
        range_offset=prefix,
        range_length=len(old) - prefix - suffix,
        text=new[prefix : len(new) - suffix],
    )


class InMemoryDocumentSource:
    """DocumentSource over documents held in a dict."""

    __slots__ = ("_documents", "_change_listeners", "_close_listeners")

    def __init__(self) -> None:
        self._documents: dict[str, InMemoryDocument] = {}
        self._change_listeners: dict[str, list[ChangeListener]] = {}
        self._close_listeners: dict[str, list[CloseListener]] = {}

    # -- host side ---------------------------------------------------------

    def open(self, uri: str, text: str, language_id: str = "plaintext") -> InMemoryDocument:
        """Open (or reopen) a document at version 0."""
        doc = InMemoryDocument(uri, text, 0, language_id)
        self._documents[uri] = doc
        return doc

    def text(self, uri: str) -> str:
        """Current text of an open document."""
        return self._require(uri).text

    def apply_edit(self, uri: str, start: int, end: int, new_text: str) -> InMemoryDocument:
        """Replace ``[start, end)`` with ``new_text`` and notify listeners."""
        doc = self._require(uri)
        start = min(max(start, 0), len(doc.text))
        end = min(max(end, start), len(doc.text))
        change = ContentChange(start, end - start, new_text)
        return self._commit(doc, doc.text[:start] + new_text + doc.text[end:], [change])

    def replace_text(self, uri: str, text: str) -> InMemoryDocument:
        """Replace the whole text, reporting the minimal change."""
        doc = self._require(uri)
        change = diff_change(doc.text, text)
        if change is None:
            return doc
        return self._commit(doc, text, [change])

    def close(self, uri: str) -> None:
        """Close a document and notify close listeners."""
        self._documents.pop(uri, None)
        self._change_listeners.pop(uri, None)
        for listener in list(self._close_listeners.pop(uri, [])):
            listener()

    # -- DocumentSource ----------------------------------------------------

    async def get_document(self, uri: str) -> InMemoryDocument:
        return self._require(uri)

    def on_did_change(self, uri: str, listener: ChangeListener) -> Unsubscribe:
        listeners = self._change_listeners.setdefault(uri, [])
        listeners.append(listener)
        return lambda: _discard(listeners, listener)

    def on_did_close(self, uri: str, listener: CloseListener) -> Unsubscribe:
        listeners = self._close_listeners.setdefault(uri, [])
        listeners.append(listener)
        return lambda: _discard(listeners, listener)

    # -- internals ---------------------------------------------------------

    def _require(self, uri: str) -> InMemoryDocument:
        doc = self._documents.get(uri)
        if doc is None:
            raise DocumentUnavailableError(uri, "not open")
        return doc

    def _commit(
        self, doc: InMemoryDocument, text: str, changes: Sequence[ContentChange]
    ) -> InMemoryDocument:
        new_doc = InMemoryDocument(doc.uri, text, doc.version + 1, doc.language_id)
        self._documents[doc.uri] = new_doc
        # Copy: a listener may unsubscribe while being notified
        for listener in list(self._change_listeners.get(doc.uri, [])):
            listener(changes)
        return new_doc


def _discard(listeners: list, listener: object) -> None:
    if listener in listeners:
        listeners.remove(listener)


__all__ = [
    "InMemoryDocument",
    "InMemoryDocumentSource",
    "diff_change",
]
