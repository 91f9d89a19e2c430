"""Exception types raised by the batch cursor."""
from __future__ import annotations


class BatchCursorError(Exception):
    """Base class for batch cursor failures."""


class ConfigurationError(BatchCursorError, ValueError):
    """Raised when a run cannot start because its parameters are invalid."""


class TransientFetchError(BatchCursorError, RuntimeError):
    """Search collaborator failed; the read may be retried from the same point."""


class RecordNotFoundError(BatchCursorError, LookupError):
    """A record vanished between being fetched and having its timestamp read."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"Record not found: pid={pid}")
        self.pid = pid


class CheckpointCorruptError(BatchCursorError, ValueError):
    """A stored checkpoint value could not be parsed."""

    def __init__(self, key: str, value: object) -> None:
        super().__init__(f"Corrupt checkpoint value for {key!r}: {value!r}")
        self.key = key
        self.value = value


__all__ = [
    "BatchCursorError",
    "CheckpointCorruptError",
    "ConfigurationError",
    "RecordNotFoundError",
    "TransientFetchError",
]
