"""Execution metadata for a single reader run."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


def _current_run_id() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


@dataclass(frozen=True)
class RunContext:
    """Identifies one attempt at a job.

    ``job_key`` is stable across restarts and names the checkpoint; ``run_id``
    changes on every attempt and only tags logs and emitted batches.
    """

    job_key: str
    run_id: str

    @classmethod
    def create(cls, job_key: str) -> "RunContext":
        return cls(job_key=job_key, run_id=_current_run_id())


__all__ = ["RunContext"]
