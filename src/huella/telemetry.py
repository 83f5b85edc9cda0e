"""Telemetry records and ready-made sinks.

Events are plain values: a name such as ``ghostText.stillInCode``, string
properties and numeric measurements. ``TelemetryData`` is what the host
hands in with each suggestion (request ids, experiment flags, ...); the
tracker extends it with its own metrics, never mutating the original.

Example:
    >>> base = TelemetryData({"choiceIndex": "0"})
    >>> dict(base.extended_by(measurements={"timeout": 15}).measurements)
    {'timeout': 15}

"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

from huella.utils.logger import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


def _freeze(mapping: Mapping[str, V] | None) -> Mapping[str, V]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True, slots=True)
class TelemetryData:
    """Host-supplied properties and measurements of one suggestion."""

    properties: Mapping[str, str] = field(default_factory=dict)
    measurements: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "properties", _freeze(self.properties))
        object.__setattr__(self, "measurements", _freeze(self.measurements))

    def extended_by(
        self,
        properties: Mapping[str, str] | None = None,
        measurements: Mapping[str, float] | None = None,
    ) -> "TelemetryData":
        """Return a copy with extra properties and measurements merged in."""
        return TelemetryData(
            {**self.properties, **(properties or {})},
            {**self.measurements, **(measurements or {})},
        )


@dataclass(frozen=True, slots=True)
class TelemetryEvent:
    """A named telemetry event.

    Attributes:
        name: ``<category>.<kind>``, e.g. ``ghostText.stillInCode``
        properties: String-valued properties
        measurements: Numeric measurements
        enhanced: Carries user code (captured snippets) and belongs in the
            restricted telemetry store

    """

    name: str
    properties: Mapping[str, str]
    measurements: Mapping[str, float]
    enhanced: bool = False

    @classmethod
    def create(cls, name: str, data: TelemetryData, *, enhanced: bool = False) -> "TelemetryEvent":
        return cls(name, data.properties, data.measurements, enhanced)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dict."""
        return {
            "name": self.name,
            "properties": dict(self.properties),
            "measurements": dict(self.measurements),
            "enhanced": self.enhanced,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


class RecordingTelemetrySink:
    """TelemetrySink keeping every event in memory, in arrival order."""

    __slots__ = ("events",)

    def __init__(self) -> None:
        self.events: list[TelemetryEvent] = []

    def accepted(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def rejected(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def still_in_code(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def captured_after_accepted(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def captured_after_rejected(self, event: TelemetryEvent) -> None:
        self.events.append(event)

    def named(self, suffix: str) -> list[TelemetryEvent]:
        """Events whose name ends with ``suffix`` (e.g. ``".stillInCode"``)."""
        return [e for e in self.events if e.name.endswith(suffix)]

    def clear(self) -> None:
        self.events.clear()


class LoggingTelemetrySink:
    """TelemetrySink writing each event as JSON to the ``huella.telemetry`` logger.

    Enhanced events hold user code and are only logged when
    ``include_enhanced`` is set.
    """

    __slots__ = ("include_enhanced",)

    def __init__(self, *, include_enhanced: bool = False) -> None:
        self.include_enhanced = include_enhanced

    def _emit(self, event: TelemetryEvent) -> None:
        if event.enhanced and not self.include_enhanced:
            logger.debug("Dropped enhanced event %s", event.name)
            return
        logger.info("%s", event.to_json())

    def accepted(self, event: TelemetryEvent) -> None:
        self._emit(event)

    def rejected(self, event: TelemetryEvent) -> None:
        self._emit(event)

    def still_in_code(self, event: TelemetryEvent) -> None:
        self._emit(event)

    def captured_after_accepted(self, event: TelemetryEvent) -> None:
        self._emit(event)

    def captured_after_rejected(self, event: TelemetryEvent) -> None:
        self._emit(event)


__all__ = [
    "LoggingTelemetrySink",
    "RecordingTelemetrySink",
    "TelemetryData",
    "TelemetryEvent",
]
