"""Immutable tracker configuration for Huella.

The survival tracker consumes, never owns, its timing and search
parameters. They are bundled in a frozen dataclass handed to the
SurvivalTracker constructor, so several trackers with different
horizons can coexist in one process.

Usage:
    from huella import SurvivalTracker, TrackerConfig, TimeoutDescriptor

    config = TrackerConfig(
        timeouts=(TimeoutDescriptor(5), TimeoutDescriptor(60, capture_code=True)),
        near_margin=80,
    )
    tracker = SurvivalTracker(documents, telemetry, config=config)

Thread Safety:
    Both dataclasses are frozen and safe to share.

"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from huella.errors import ConfigError


@dataclass(frozen=True, slots=True)
class TimeoutDescriptor:
    """One horizon at which a tracked insertion is re-checked.

    Attributes:
        seconds: Delay since acceptance (or rejection) in seconds
        capture_code: Capture the surrounding code after an acceptance
        capture_rejection: Also arm this horizon after a rejection

    """

    seconds: float
    capture_code: bool = False
    capture_rejection: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimeoutDescriptor":
        """Create a descriptor from a mapping (unknown keys ignored)."""
        if "seconds" not in data:
            raise ConfigError("timeouts", f"horizon without seconds: {dict(data)!r}")
        return cls(
            seconds=data["seconds"],
            capture_code=bool(data.get("capture_code", False)),
            capture_rejection=bool(data.get("capture_rejection", False)),
        )


DEFAULT_TIMEOUTS: tuple[TimeoutDescriptor, ...] = (
    TimeoutDescriptor(15),
    TimeoutDescriptor(30, capture_code=True, capture_rejection=True),
    TimeoutDescriptor(120),
    TimeoutDescriptor(300),
    TimeoutDescriptor(600),
)

# Characters before/after the tracked offset searched for the completion
NEAR_MARGIN = 50
FAR_MARGIN = 1500

# Relative lexeme distance at or below which the completion counts as present
STILL_IN_CODE_FRACTION = 0.5

# Characters captured after the insertion point when no block end is found
CAPTURE_CODE_MARGIN = 500


@dataclass(frozen=True, slots=True)
class TrackerConfig:
    """Immutable survival tracker configuration.

    Attributes:
        timeouts: Horizons in strictly increasing order
        near_margin: Search margin for the first lookup
        far_margin: Search margin for the retry after a miss
        still_in_code_fraction: Threshold on relative lexeme distance
        capture_code_margin: Fallback capture length in characters
        fim_capture: Capture exactly up to the suffix tracker instead of
            guessing the block end from indentation

    """

    timeouts: tuple[TimeoutDescriptor, ...] = DEFAULT_TIMEOUTS
    near_margin: int = NEAR_MARGIN
    far_margin: int = FAR_MARGIN
    still_in_code_fraction: float = STILL_IN_CODE_FRACTION
    capture_code_margin: int = CAPTURE_CODE_MARGIN
    fim_capture: bool = False

    def __post_init__(self) -> None:
        previous = -1.0
        for timeout in self.timeouts:
            if timeout.seconds < 0:
                raise ConfigError("timeouts", f"negative horizon {timeout.seconds}")
            if timeout.seconds <= previous:
                raise ConfigError("timeouts", "horizons must be strictly increasing")
            previous = timeout.seconds
        for name in ("near_margin", "far_margin", "capture_code_margin"):
            if getattr(self, name) < 0:
                raise ConfigError(name, "must be non-negative")
        if not 0.0 <= self.still_in_code_fraction <= 1.0:
            raise ConfigError("still_in_code_fraction", "must be within [0, 1]")

    @property
    def rejection_timeouts(self) -> tuple[TimeoutDescriptor, ...]:
        """Horizons armed after a rejection."""
        return tuple(t for t in self.timeouts if t.capture_rejection)

    @classmethod
    def from_dict(cls, config_dict: Mapping[str, Any]) -> "TrackerConfig":
        """Create TrackerConfig from a dictionary.

        Useful when the host keeps its settings in JSON or YAML. Only keys
        that are valid TrackerConfig fields are used; unknown keys are
        silently ignored. Timeouts may be given as mappings.

        Example:
            >>> config = TrackerConfig.from_dict({
            ...     "near_margin": 80,
            ...     "timeouts": [{"seconds": 10}, {"seconds": 20, "capture_code": True}],
            ...     "unknown_key": "ignored",
            ... })
            >>> config.near_margin
            80

        """
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in config_dict.items() if k in valid_fields}
        if "timeouts" in filtered:
            filtered["timeouts"] = tuple(
                t if isinstance(t, TimeoutDescriptor) else TimeoutDescriptor.from_dict(t)
                for t in filtered["timeouts"]
            )
        return cls(**filtered)


__all__ = [
    "CAPTURE_CODE_MARGIN",
    "DEFAULT_TIMEOUTS",
    "FAR_MARGIN",
    "NEAR_MARGIN",
    "STILL_IN_CODE_FRACTION",
    "TimeoutDescriptor",
    "TrackerConfig",
]
