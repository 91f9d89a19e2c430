"""Backend-neutral interface for persisting reader execution contexts."""
from __future__ import annotations

from typing import Mapping, Optional, Protocol, Sequence


class CheckpointStore(Protocol):
    """Durable key/value storage of one execution context per job key."""

    def load(self, job_key: str) -> Optional[dict]:
        """Return the stored context, or None when the job has no checkpoint."""

    def save(self, job_key: str, context: Mapping[str, object]) -> None:
        """Replace the stored context for ``job_key``."""

    def delete(self, job_key: str) -> None:
        """Drop the checkpoint; a no-op when none exists."""

    def list_keys(self) -> Sequence[str]:
        """Return every job key with a stored checkpoint, sorted."""


__all__ = ["CheckpointStore"]
