"""Tests for survival tracking of accepted and rejected suggestions.

Scenarios run under ``asyncio.run`` with a manual clock standing in for
the loop's clock, so each horizon fires exactly when the test advances
time past it.
"""

import asyncio
import json
import logging

import pytest

from huella.citations import IPCitation, LicenseDetail, RecordingCitationSink
from huella.config import TimeoutDescriptor, TrackerConfig
from huella.documents import InMemoryDocument, InMemoryDocumentSource
from huella.errors import DocumentUnavailableError
from huella.survival import (
    RejectedCompletion,
    SessionState,
    SuggestionStatus,
    SurvivalTracker,
    compute_completion_text,
)
from huella.telemetry import RecordingTelemetrySink, TelemetryData, TelemetryEvent

URI = "file:///project/main.js"
PREFIX = "let x = 1\n"
COMPLETION = "console.log('hi')"
FULL = SuggestionStatus("full", len(COMPLETION), 1)


class ManualClock:
    """Clock and sleep pair advanced explicitly by the test."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers: list[tuple[float, asyncio.Future[None]]] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self.now + delay, future))
        await future

    async def advance(self, seconds: float) -> None:
        await self.advance_to(self.now + seconds)

    async def advance_to(self, when: float) -> None:
        self.now = max(self.now, when)
        for wake_at, future in self._sleepers:
            if wake_at <= self.now and not future.done():
                future.set_result(None)
        self._sleepers = [(w, f) for w, f in self._sleepers if not f.done()]
        for _ in range(20):
            await asyncio.sleep(0)

    @property
    def pending(self) -> int:
        return sum(not f.done() for _, f in self._sleepers)


class Harness:
    def __init__(self, config: TrackerConfig | None = None, documents=None, telemetry=None) -> None:
        self.clock = ManualClock()
        self.documents = documents or InMemoryDocumentSource()
        self.telemetry = telemetry or RecordingTelemetrySink()
        self.citations = RecordingCitationSink()
        self.tracker = SurvivalTracker(
            self.documents,
            self.telemetry,
            self.citations,
            config,
            clock=self.clock.time,
            sleep=self.clock.sleep,
        )

    def insert_completion(self, status: SuggestionStatus = FULL, citations=(), suffix: str = ""):
        self.documents.open(URI, PREFIX + suffix)
        inserted = compute_completion_text(COMPLETION, status)
        self.documents.apply_edit(URI, len(PREFIX), len(PREFIX), inserted)
        return self.tracker.post_insertion(
            "ghostText",
            COMPLETION,
            len(PREFIX),
            URI,
            TelemetryData({"headerRequestId": "req-1"}, {"meanLogProb": -0.5}),
            status,
            citations,
        )

    async def advance_to(self, seconds: float) -> None:
        await self.clock.advance_to(seconds)
        await self.tracker.flush()


def run(scenario):
    return asyncio.run(scenario())


class TestCompletionText:
    def test_full(self) -> None:
        assert compute_completion_text("abcdef", SuggestionStatus("full", 6)) == "abcdef"

    def test_partial(self) -> None:
        assert compute_completion_text("abcdef", SuggestionStatus("partial", 2)) == "ab"


class TestAcceptance:
    """Survival checks after an accepted suggestion."""

    def test_accepted_event_is_immediate(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            return h

        h = run(scenario)
        (event,) = h.telemetry.events
        assert event.name == "ghostText.accepted"
        assert event.properties == {"headerRequestId": "req-1", "compType": "full"}
        assert event.measurements == {"meanLogProb": -0.5, "compCharLen": 17, "numLines": 1}

    def test_still_in_code_at_first_horizon(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            await h.advance_to(14.9)
            assert h.telemetry.named(".stillInCode") == []
            await h.advance_to(15)
            return h

        h = run(scenario)
        (event,) = h.telemetry.named(".stillInCode")
        assert event.name == "ghostText.stillInCode"
        assert event.properties["headerRequestId"] == "req-1"
        assert event.measurements["timeout"] == 15
        assert event.measurements["insertionOffset"] == 10
        assert event.measurements["trackedOffset"] == 10
        assert event.measurements["foundOffset"] == 10
        assert event.measurements["stillInCodeHeuristic"] == 1
        assert event.measurements["lexEditDistance"] == 0
        assert event.measurements["charEditDistance"] == 0
        assert event.measurements["completionLexLength"] == 8
        assert not event.enhanced

    def test_deleted_text_reports_not_in_code(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            await h.advance_to(15)
            h.documents.apply_edit(URI, 10, 10 + len(COMPLETION), "")
            await h.advance_to(30)
            return h

        h = run(scenario)
        first, second = h.telemetry.named(".stillInCode")
        assert first.measurements["stillInCodeHeuristic"] == 1
        assert second.measurements["stillInCodeHeuristic"] == 0
        assert second.measurements["timeout"] == 30
        assert second.measurements["relativeLexEditDistance"] == 1.0

    def test_edits_before_insertion_move_tracked_offset(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            h.documents.apply_edit(URI, 0, 0, "// header\n")
            await h.advance_to(15)
            return h

        h = run(scenario)
        (event,) = h.telemetry.named(".stillInCode")
        assert event.measurements["insertionOffset"] == 10
        assert event.measurements["trackedOffset"] == 20
        assert event.measurements["foundOffset"] == 20

    def test_far_search_after_near_miss(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            # Moves the completion far down; neither edit ends before the tracker
            h.documents.apply_edit(URI, 10, 10 + len(COMPLETION), "\n" + "pass\n" * 20)
            h.documents.apply_edit(URI, 111, 111, COMPLETION)
            await h.advance_to(15)
            return h

        h = run(scenario)
        (event,) = h.telemetry.named(".stillInCode")
        assert event.measurements["trackedOffset"] == 10
        assert event.measurements["stillInCodeHeuristic"] == 1
        assert event.measurements["foundOffset"] == 111

    def test_all_horizons_fire_in_order(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            session = h.insert_completion()
            for horizon in (15, 30, 120, 300, 600):
                await h.advance_to(horizon)
            assert session.state is SessionState.COMPLETE
            assert len(session.findings) == 5
            return h

        h = run(scenario)
        timeouts = [e.measurements["timeout"] for e in h.telemetry.named(".stillInCode")]
        assert timeouts == [15, 30, 120, 300, 600]
        assert h.tracker.sessions == frozenset()
        assert h.clock.pending == 0

    def test_late_wakeup_fires_overdue_horizons(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            await h.advance_to(200)
            return h

        h = run(scenario)
        timeouts = [e.measurements["timeout"] for e in h.telemetry.named(".stillInCode")]
        assert timeouts == [15, 30, 120]

    def test_capture_after_accepted(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            await h.advance_to(30)
            return h

        h = run(scenario)
        (event,) = h.telemetry.named(".capturedAfterAccepted")
        assert event.name == "ghostText.capturedAfterAccepted"
        assert event.enhanced
        assert json.loads(event.properties["hypotheticalPromptJson"]) == {"prefix": PREFIX}
        assert json.loads(event.properties["capturedCodeJson"]) == COMPLETION
        assert event.measurements["timeout"] == 30
        assert event.measurements["terminationOffsetInCapturedCode"] == -1
        names = [e.name for e in h.telemetry.events]
        assert names.index("ghostText.capturedAfterAccepted") == (
            names.index("ghostText.stillInCode", 2) + 1
        )

    def test_fim_capture(self) -> None:
        async def scenario() -> Harness:
            h = Harness(TrackerConfig(fim_capture=True))
            h.insert_completion(suffix="\n// end")
            await h.advance_to(30)
            return h

        h = run(scenario)
        (event,) = h.telemetry.named(".capturedAfterAccepted")
        assert json.loads(event.properties["capturedCodeJson"]) == COMPLETION
        assert json.loads(event.properties["hypotheticalPromptSuffixJson"]) == "\n// end"
        assert event.measurements["terminationOffsetInCapturedCode"] == 0

    def test_partial_acceptance_tracks_accepted_part(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion(SuggestionStatus("partial", 7, 1))
            await h.advance_to(15)
            return h

        h = run(scenario)
        accepted = h.telemetry.named(".accepted")[0]
        assert accepted.properties["compType"] == "partial"
        assert accepted.measurements["compCharLen"] == 7
        (event,) = h.telemetry.named(".stillInCode")
        assert event.measurements["completionLexLength"] == 1
        assert event.measurements["stillInCodeHeuristic"] == 1

    def test_custom_horizons(self) -> None:
        config = TrackerConfig(timeouts=(TimeoutDescriptor(0), TimeoutDescriptor(5)))

        async def scenario() -> Harness:
            h = Harness(config)
            h.insert_completion()
            await h.advance_to(0)
            assert len(h.telemetry.named(".stillInCode")) == 1
            await h.advance_to(5)
            return h

        h = run(scenario)
        assert [e.measurements["timeout"] for e in h.telemetry.named(".stillInCode")] == [0, 5]
        assert h.telemetry.named(".capturedAfterAccepted") == []


class TestRejection:
    """Code capture after rejected suggestions."""

    def rejections(self) -> list[RejectedCompletion]:
        return [
            RejectedCompletion("foo()", TelemetryData({"choiceIndex": "0"})),
            RejectedCompletion("bar()", TelemetryData({"choiceIndex": "1"})),
        ]

    def test_rejected_events_are_immediate(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.documents.open(URI, PREFIX)
            h.tracker.post_rejection("ghostText", 10, URI, self.rejections())
            return h

        h = run(scenario)
        events = h.telemetry.named(".rejected")
        assert [e.properties["choiceIndex"] for e in events] == ["0", "1"]

    def test_captures_typed_code_once(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.documents.open(URI, PREFIX)
            session = h.tracker.post_rejection("ghostText", 10, URI, self.rejections())
            assert session is not None
            h.documents.apply_edit(URI, 10, 10, "print(1)\n")
            for horizon in (15, 30, 120, 300, 600):
                await h.advance_to(horizon)
            return h

        h = run(scenario)
        (event,) = h.telemetry.named(".capturedAfterRejected")
        assert event.enhanced
        assert event.properties["choiceIndex"] == "0"
        assert json.loads(event.properties["capturedCodeJson"]) == "print(1)\n"
        assert json.loads(event.properties["hypotheticalPromptJson"]) == {"prefix": PREFIX}
        assert event.measurements["timeout"] == 30
        assert event.measurements["insertionOffset"] == 10
        assert h.telemetry.named(".stillInCode") == []

    def test_nothing_rejected(self) -> None:
        async def scenario() -> tuple[Harness, object]:
            h = Harness()
            h.documents.open(URI, PREFIX)
            return h, h.tracker.post_rejection("ghostText", 10, URI, [])

        h, session = run(scenario)
        assert session is None
        assert h.telemetry.events == []


class TestDisposal:
    def test_close_stops_pending_horizons(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            session = h.insert_completion()
            await h.advance_to(15)
            h.documents.close(URI)
            assert session.state is SessionState.DISPOSED
            await h.advance_to(600)
            return h

        h = run(scenario)
        assert len(h.telemetry.named(".stillInCode")) == 1
        assert h.telemetry.named(".capturedAfterAccepted") == []
        assert h.tracker.sessions == frozenset()

    def test_tracker_dispose(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion()
            h.tracker.dispose()
            await h.advance_to(600)
            return h

        h = run(scenario)
        assert [e.name for e in h.telemetry.events] == ["ghostText.accepted"]
        assert h.clock.pending == 0

    def test_dispose_is_idempotent(self) -> None:
        async def scenario() -> None:
            h = Harness()
            session = h.insert_completion()
            session.dispose()
            session.dispose()
            assert session.disposed

        run(scenario)

    def test_in_flight_check_does_not_report_after_dispose(self) -> None:
        documents = GatedDocuments()

        async def scenario() -> Harness:
            h = Harness(documents=documents)
            session = h.insert_completion()
            await h.clock.advance(15)
            assert session.busy
            session.dispose()
            documents.gate.set()
            await h.clock.advance(0)
            assert not session.busy
            return h

        h = run(scenario)
        assert h.telemetry.named(".stillInCode") == []

    def test_dispose_abandons_in_flight_citations(self) -> None:
        documents = GatedDocuments()

        async def scenario() -> Harness:
            h = Harness(documents=documents)
            h.insert_completion(citations=[IPCitation(0, 7)])
            await asyncio.sleep(0)
            h.tracker.dispose()
            documents.gate.set()
            await h.tracker.flush()
            return h

        h = run(scenario)
        assert h.citations.citations == []

    def test_dispose_abandons_unstarted_citations(self) -> None:
        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion(citations=[IPCitation(0, 7)])
            h.tracker.dispose()
            await h.tracker.flush()
            return h

        h = run(scenario)
        assert h.citations.citations == []
        assert h.telemetry.named(".stillInCode") == []

    def test_flush_waits_for_running_check(self) -> None:
        documents = GatedDocuments()

        async def scenario() -> Harness:
            h = Harness(documents=documents)
            h.insert_completion()
            await h.clock.advance(15)
            flushing = asyncio.ensure_future(h.tracker.flush())
            await asyncio.sleep(0)
            assert not flushing.done()
            documents.gate.set()
            await flushing
            return h

        h = run(scenario)
        assert len(h.telemetry.named(".stillInCode")) == 1


class TestFailures:
    """Collaborator failures never reach the host."""

    def test_unavailable_document_skips_check(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="huella")
        documents = FlakyDocuments()

        async def scenario() -> Harness:
            h = Harness(documents=documents)
            h.insert_completion()
            documents.available = False
            await h.advance_to(15)
            documents.available = True
            await h.advance_to(30)
            return h

        h = run(scenario)
        assert [e.measurements["timeout"] for e in h.telemetry.named(".stillInCode")] == [30]
        assert any("Could not get document" in r.getMessage() for r in caplog.records)

    def test_unexpected_error_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="huella")
        documents = FlakyDocuments()

        async def scenario() -> Harness:
            h = Harness(documents=documents)
            h.insert_completion()
            documents.error = RuntimeError("boom")
            await h.advance_to(15)
            documents.error = None
            await h.advance_to(30)
            return h

        h = run(scenario)
        assert [e.measurements["timeout"] for e in h.telemetry.named(".stillInCode")] == [30]
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert errors and errors[0].exc_info is not None

    def test_failing_sink_does_not_stop_tracking(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="huella")

        async def scenario() -> Harness:
            h = Harness(telemetry=FailingOnceSink())
            h.insert_completion()
            await h.advance_to(30)
            return h

        h = run(scenario)
        timeouts = [e.measurements["timeout"] for e in h.telemetry.named(".stillInCode")]
        assert timeouts == [15, 30]
        assert len(h.telemetry.named(".capturedAfterAccepted")) == 1
        assert any("Telemetry sink failed" in r.getMessage() for r in caplog.records)


class TestCitations:
    def test_citations_resolved_after_insertion(self) -> None:
        mit = LicenseDetail("MIT", "https://example.com/repo")

        async def scenario() -> Harness:
            h = Harness()
            h.insert_completion(citations=[IPCitation(0, 7, (mit,))])
            await h.tracker.flush()
            return h

        h = run(scenario)
        (citation,) = h.citations.citations
        assert citation.matching_text == "console"
        assert (citation.offset_start, citation.offset_end) == (10, 17)
        assert citation.details == (mit,)

    def test_no_citation_sink(self) -> None:
        async def scenario() -> None:
            docs = InMemoryDocumentSource()
            docs.open(URI, PREFIX + COMPLETION)
            tracker = SurvivalTracker(docs, RecordingTelemetrySink())
            tracker.post_insertion(
                "ghostText", COMPLETION, 10, URI, TelemetryData(), FULL, [IPCitation(0, 3)]
            )
            await tracker.flush()
            tracker.dispose()

        run(scenario)


class TestLoopClock:
    def test_real_sleep(self) -> None:
        config = TrackerConfig(timeouts=(TimeoutDescriptor(0.01),))

        async def scenario() -> RecordingTelemetrySink:
            docs = InMemoryDocumentSource()
            docs.open(URI, PREFIX + COMPLETION)
            telemetry = RecordingTelemetrySink()
            tracker = SurvivalTracker(docs, telemetry, config=config)
            tracker.post_insertion("solution", COMPLETION, 10, URI, TelemetryData(), FULL)
            await asyncio.sleep(0.05)
            await tracker.flush()
            return telemetry

        telemetry = run(scenario)
        (event,) = telemetry.named(".stillInCode")
        assert event.name == "solution.stillInCode"


class GatedDocuments(InMemoryDocumentSource):
    """Document reads block until the gate opens."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def get_document(self, uri: str) -> InMemoryDocument:
        await self.gate.wait()
        return await super().get_document(uri)


class FailingOnceSink(RecordingTelemetrySink):
    """Raises on the first stillInCode event after recording it."""

    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    def still_in_code(self, event: TelemetryEvent) -> None:
        super().still_in_code(event)
        if not self.failed:
            self.failed = True
            raise ValueError("sink down")


class FlakyDocuments(InMemoryDocumentSource):
    """Document reads that can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.available = True
        self.error: Exception | None = None

    async def get_document(self, uri: str) -> InMemoryDocument:
        if self.error is not None:
            raise self.error
        if not self.available:
            raise DocumentUnavailableError(uri, "closed")
        return await super().get_document(uri)
