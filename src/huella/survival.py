"""Suggestion survival tracking.

After a suggestion is accepted, the tracker re-checks at a series of
horizons (15s, 30s, 2min, 5min, 10min by default) whether the inserted
text is still in the document, and reports each verdict as telemetry.
After a rejection, it captures what the user typed instead.

Lifecycle of a session:

    SCHEDULED -> NEAR_SEARCH -> (FAR_SEARCH) -> REPORTED
              -> (CAPTURE_CODE -> REPORTED) -> ... -> COMPLETE

and DISPOSED whenever the document closes or the tracker is torn down.

Scheduling:
    One asyncio task per session walks its horizons in increasing order,
    parked on ``sleep`` between them. Each check reads the live document
    at fire time; offsets come from OffsetTrackers fed by the document's
    change notifications. A disposed session fires nothing more, and a
    check already running when it is disposed completes without reporting.

Failures:
    An unavailable document skips the check. Any other exception raised by
    a collaborator is logged and swallowed; nothing propagates to the host.

Example:
    tracker = SurvivalTracker(documents, RecordingTelemetrySink())
    tracker.post_insertion(
        "ghostText", completion, offset, uri, TelemetryData(),
        SuggestionStatus("full", len(completion), 1),
    )

"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Literal, TypeAlias

from huella.capture import CapturedCode, capture_code
from huella.citations import IPCitation, resolve_citations
from huella.config import TimeoutDescriptor, TrackerConfig
from huella.errors import DocumentUnavailableError
from huella.locator import FindResult, find
from huella.offsets import OffsetTracker
from huella.protocols import CitationSink, ContentChange, DocumentSource, TelemetrySink
from huella.telemetry import TelemetryData, TelemetryEvent
from huella.utils.logger import get_logger

logger = get_logger(__name__)

Clock: TypeAlias = Callable[[], float]
Sleep: TypeAlias = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class SuggestionStatus:
    """How much of a suggestion was accepted.

    Attributes:
        comp_type: ``"full"`` or ``"partial"``
        accepted_length: Characters accepted
        accepted_lines: Lines accepted

    """

    comp_type: Literal["full", "partial"]
    accepted_length: int
    accepted_lines: int = 0


@dataclass(frozen=True, slots=True)
class RejectedCompletion:
    """A completion shown and then rejected."""

    completion_text: str
    telemetry: TelemetryData


def compute_completion_text(completion_text: str, status: SuggestionStatus) -> str:
    """The part of a completion that actually went into the document."""
    if status.comp_type == "partial":
        return completion_text[: status.accepted_length]
    return completion_text


class SessionState(Enum):
    """Where a session is in its lifecycle."""

    SCHEDULED = auto()
    NEAR_SEARCH = auto()
    FAR_SEARCH = auto()
    REPORTED = auto()
    CAPTURE_CODE = auto()
    COMPLETE = auto()
    DISPOSED = auto()


class SurvivalSession:
    """One tracked acceptance or rejection.

    Owns the position and suffix trackers and the single change listener
    feeding them. Subclasses implement the per-horizon check.
    """

    def __init__(
        self,
        owner: SurvivalTracker,
        category: str,
        uri: str,
        timeouts: Sequence[TimeoutDescriptor],
        position: OffsetTracker,
        suffix: OffsetTracker,
    ) -> None:
        self.category = category
        self.uri = uri
        self.timeouts = tuple(timeouts)
        self.position = position
        self.suffix = suffix
        self.state = SessionState.SCHEDULED
        self._owner = owner
        self._started = owner._clock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._task: asyncio.Task[None] | None = None
        self._unsubscribers = [
            owner.documents.on_did_change(uri, self._on_change),
            owner.documents.on_did_close(uri, self.dispose),
        ]

    @property
    def disposed(self) -> bool:
        return self.state is SessionState.DISPOSED

    @property
    def busy(self) -> bool:
        """A check is running."""
        return not self._idle.is_set()

    @property
    def done(self) -> bool:
        return self.state in (SessionState.COMPLETE, SessionState.DISPOSED)

    def _on_change(self, changes: Sequence[ContentChange]) -> None:
        self.position.apply(changes)
        self.suffix.apply(changes)

    def start(self) -> asyncio.Task[None]:
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def dispose(self) -> None:
        """Drop all horizons that have not fired yet."""
        if self.done:
            return
        self.state = SessionState.DISPOSED
        self._release()
        # A parked task has nothing in flight; a running check finishes on its own
        if self._idle.is_set() and self._task is not None:
            self._task.cancel()

    async def wait_idle(self) -> None:
        """Wait until no check of this session is running."""
        await self._idle.wait()

    async def _run(self) -> None:
        try:
            for timeout in self.timeouts:
                if self.disposed:
                    return
                delay = self._started + timeout.seconds - self._owner._clock()
                if delay > 0:
                    await self._owner._sleep(delay)
                if self.disposed:
                    return
                self._idle.clear()
                try:
                    await self._check(timeout)
                except DocumentUnavailableError:
                    logger.info(
                        "Could not get document for %s. Maybe it was closed by the editor.",
                        self.uri,
                    )
                except Exception:
                    logger.exception(
                        "%s check at %ss failed for %s", self.category, timeout.seconds, self.uri
                    )
                finally:
                    self._idle.set()
            if not self.disposed:
                self.state = SessionState.COMPLETE
        finally:
            self._release()

    def _release(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    async def _check(self, timeout: TimeoutDescriptor) -> None:
        raise NotImplementedError

    def _capture_data(
        self, base: TelemetryData, captured: CapturedCode, timeout: TimeoutDescriptor, insertion_offset: int
    ) -> TelemetryData:
        return base.extended_by(
            {
                "hypotheticalPromptJson": json.dumps({"prefix": captured.prefix}),
                "hypotheticalPromptSuffixJson": json.dumps(captured.suffix),
                "capturedCodeJson": json.dumps(captured.captured_code),
            },
            {
                "timeout": timeout.seconds,
                "insertionOffset": insertion_offset,
                "trackedOffset": self.position.offset,
                "terminationOffsetInCapturedCode": captured.termination_offset,
            },
        )


class AcceptanceSession(SurvivalSession):
    """Checks whether an accepted completion is still in the code."""

    def __init__(
        self,
        owner: SurvivalTracker,
        category: str,
        uri: str,
        completion: str,
        insertion_offset: int,
        telemetry_data: TelemetryData,
    ) -> None:
        super().__init__(
            owner,
            category,
            uri,
            owner.config.timeouts,
            OffsetTracker(insertion_offset),
            OffsetTracker(insertion_offset + len(completion)),
        )
        self.completion = completion.strip()
        self.insertion_offset = insertion_offset
        self.telemetry_data = telemetry_data
        self.findings: list[FindResult] = []

    async def _check(self, timeout: TimeoutDescriptor) -> None:
        config = self._owner.config
        self.state = SessionState.NEAR_SEARCH
        document = await self._owner.documents.get_document(self.uri)
        text = document.get_text()
        tracked = self.position.offset

        # Near window first, far window only on a miss
        finding = find(
            text, self.completion, config.near_margin, tracked,
            threshold=config.still_in_code_fraction,
        )
        if not finding.still_in_code_heuristic:
            self.state = SessionState.FAR_SEARCH
            finding = find(
                text, self.completion, config.far_margin, tracked,
                threshold=config.still_in_code_fraction,
            )
        logger.debug(
            "stillInCode: %s! Completion %r in file %s. lexEditDistance fraction was %s. "
            "Char edit distance was %s. Inserted at %s, tracked at %s, found at %s.",
            "Found" if finding.still_in_code_heuristic else "Not found",
            self.completion,
            self.uri,
            finding.relative_lex_edit_distance,
            finding.char_edit_distance,
            self.insertion_offset,
            tracked,
            finding.found_offset,
        )
        if self.disposed:
            return

        data = self.telemetry_data.extended_by(
            measurements={
                "timeout": timeout.seconds,
                "insertionOffset": self.insertion_offset,
                "trackedOffset": tracked,
                **finding.to_measurements(),
            },
        )
        self.findings.append(finding)
        self._owner._emit(
            self._owner.telemetry.still_in_code,
            TelemetryEvent.create(f"{self.category}.stillInCode", data),
        )
        self.state = SessionState.REPORTED

        if timeout.capture_code:
            self.state = SessionState.CAPTURE_CODE
            captured = capture_code(text, self.position.offset, self.suffix.offset, config)
            self._owner._emit(
                self._owner.telemetry.captured_after_accepted,
                TelemetryEvent.create(
                    f"{self.category}.capturedAfterAccepted",
                    self._capture_data(self.telemetry_data, captured, timeout, self.insertion_offset),
                    enhanced=True,
                ),
            )
            self.state = SessionState.REPORTED


class RejectionSession(SurvivalSession):
    """Captures the code typed after a rejection."""

    def __init__(
        self,
        owner: SurvivalTracker,
        category: str,
        uri: str,
        insertion_offset: int,
        telemetry_data: TelemetryData,
    ) -> None:
        # Anchor one before the insertion point; typing there leaves it in place
        super().__init__(
            owner,
            category,
            uri,
            owner.config.rejection_timeouts,
            OffsetTracker(insertion_offset - 1),
            OffsetTracker(insertion_offset),
        )
        self.insertion_offset = insertion_offset
        self.telemetry_data = telemetry_data

    async def _check(self, timeout: TimeoutDescriptor) -> None:
        self.state = SessionState.CAPTURE_CODE
        document = await self._owner.documents.get_document(self.uri)
        captured = capture_code(
            document.get_text(), self.position.offset + 1, self.suffix.offset, self._owner.config
        )
        if self.disposed:
            return
        self._owner._emit(
            self._owner.telemetry.captured_after_rejected,
            TelemetryEvent.create(
                f"{self.category}.capturedAfterRejected",
                self._capture_data(self.telemetry_data, captured, timeout, self.insertion_offset),
                enhanced=True,
            ),
        )
        self.state = SessionState.REPORTED


class SurvivalTracker:
    """Schedules survival checks and citation resolution for insertions.

    Args:
        documents: Live document source (read only)
        telemetry: Receives all survival telemetry
        citations: Receives resolved citations (citations are skipped if None)
        config: Horizons, margins and thresholds
        clock: Monotonic time in seconds (defaults to the loop's clock)
        sleep: Awaitable delay (defaults to ``asyncio.sleep``)

    Must be used from within a running event loop.
    """

    def __init__(
        self,
        documents: DocumentSource,
        telemetry: TelemetrySink,
        citations: CitationSink | None = None,
        config: TrackerConfig | None = None,
        *,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.documents = documents
        self.telemetry = telemetry
        self.citations = citations
        self.config = config or TrackerConfig()
        self._clock_fn = clock
        self._sleep = sleep or asyncio.sleep
        self._sessions: set[SurvivalSession] = set()
        self._tasks: set[asyncio.Task[object]] = set()

    def _clock(self) -> float:
        if self._clock_fn is None:
            return asyncio.get_running_loop().time()
        return self._clock_fn()

    @property
    def sessions(self) -> frozenset[SurvivalSession]:
        """Sessions with horizons still pending."""
        return frozenset(self._sessions)

    def post_insertion(
        self,
        category: str,
        completion_text: str,
        insertion_offset: int,
        uri: str,
        telemetry_data: TelemetryData,
        status: SuggestionStatus,
        citations: Sequence[IPCitation] = (),
    ) -> AcceptanceSession:
        """Report an acceptance and arm its survival checks.

        Args:
            category: Event name prefix (e.g. ``"ghostText"``)
            completion_text: Full completion as offered
            insertion_offset: Document offset the completion was inserted at
            uri: Document URI
            telemetry_data: Host telemetry of the suggestion
            status: How much of the completion was accepted
            citations: Citation spans within ``completion_text``

        """
        data = telemetry_data.extended_by(
            {"compType": status.comp_type},
            {"compCharLen": status.accepted_length, "numLines": status.accepted_lines},
        )
        logger.debug("%s.accepted %s", category, uri)
        self._emit(self.telemetry.accepted, TelemetryEvent.create(f"{category}.accepted", data))

        inserted = compute_completion_text(completion_text, status)
        session = AcceptanceSession(self, category, uri, inserted, insertion_offset, data)
        self._start(session)

        if self.citations is not None:
            self._spawn(
                self._citation_check(uri, completion_text, inserted, insertion_offset, citations)
            )
        return session

    def post_rejection(
        self,
        category: str,
        insertion_offset: int,
        uri: str,
        completions: Sequence[RejectedCompletion],
    ) -> RejectionSession | None:
        """Report rejected completions and arm the capture horizons.

        The first completion's telemetry seeds the captured-code events.
        Returns None when there was nothing to reject.
        """
        for completion in completions:
            logger.debug("%s.rejected %s", category, uri)
            self._emit(
                self.telemetry.rejected,
                TelemetryEvent.create(f"{category}.rejected", completion.telemetry),
            )
        if not completions:
            return None
        session = RejectionSession(
            self, category, uri, insertion_offset, completions[0].telemetry
        )
        self._start(session)
        return session

    async def flush(self) -> None:
        """Wait for all in-flight checks and citation work to finish.

        Sessions parked until a later horizon are not waited for.
        """
        while True:
            pending: list[Awaitable[object]] = [*self._tasks]
            pending.extend(s.wait_idle() for s in self._sessions if s.busy)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def dispose(self) -> None:
        """Tear down every session and abandon pending citation work.

        Pending horizons never fire and citations still being resolved
        are never reported.
        """
        for session in list(self._sessions):
            session.dispose()
        self._sessions.clear()
        for task in list(self._tasks):
            task.cancel()

    def _start(self, session: SurvivalSession) -> None:
        self._sessions.add(session)
        task = session.start()
        task.add_done_callback(lambda _: self._sessions.discard(session))

    def _spawn(self, coro: Awaitable[object]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _citation_check(
        self,
        uri: str,
        full_completion: str,
        inserted: str,
        insertion_offset: int,
        citations: Sequence[IPCitation],
    ) -> None:
        assert self.citations is not None
        try:
            await resolve_citations(
                self.documents,
                self.citations,
                uri,
                full_completion,
                inserted,
                insertion_offset,
                citations,
                self.config,
            )
        except Exception:
            logger.exception("Post insertion citation check failed for %s", uri)

    def _emit(self, method: Callable[[TelemetryEvent], None], event: TelemetryEvent) -> None:
        try:
            method(event)
        except Exception:
            logger.exception("Telemetry sink failed on %s", event.name)


__all__ = [
    "AcceptanceSession",
    "RejectedCompletion",
    "RejectionSession",
    "SessionState",
    "SuggestionStatus",
    "SurvivalSession",
    "SurvivalTracker",
    "compute_completion_text",
]
