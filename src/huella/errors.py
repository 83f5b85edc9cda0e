"""Exception classes for Huella.

Alignment functions never raise; these exceptions cover configuration
mistakes and collaborator failures surfaced to the tracker.
"""

from __future__ import annotations


class HuellaError(Exception):
    """Base exception for all Huella errors.

    Subclass this for specific error categories.
    """

    pass


class ConfigError(HuellaError):
    """Invalid tracker configuration.

    Raised when a TrackerConfig is built with values that would make the
    scheduling protocol ill-defined (unordered horizons, negative margins).
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize config error.

        Args:
            field: Name of the offending configuration field
            message: Description of the problem
        """
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class DocumentUnavailableError(HuellaError):
    """The document behind a tracked insertion cannot be read.

    Raised by document sources when a document was closed or deleted.
    The tracker treats it as a skipped check, never as a failure.
    """

    def __init__(self, uri: str, reason: str | None = None) -> None:
        """Initialize document error.

        Args:
            uri: Document URI that could not be read
            reason: Optional explanation (e.g., "closed")
        """
        self.uri = uri
        self.reason = reason
        message = f"Document unavailable: {uri}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
