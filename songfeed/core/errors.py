"""Custom exceptions used across SongFeed."""


class SongFeedError(Exception):
    """Base error for the library."""


class ConfigError(SongFeedError):
    """Configuration related error."""


class SourceUnavailable(SongFeedError):
    """Raised when a data source (network or local file) yields nothing usable."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class DecodeFailure(SourceUnavailable):
    """Raised when a snapshot payload is malformed."""


class PersistFailure(SongFeedError):
    """Raised when the local cache artifact cannot be written."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path
