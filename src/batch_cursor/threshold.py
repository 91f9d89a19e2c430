"""High-water mark maintenance for keyset pagination on a non-unique key."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, FrozenSet, List, Optional, Sequence

from .errors import RecordNotFoundError
from .fetcher import TimestampLookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdUpdate:
    """Result of advancing a partition cursor past one batch."""

    high_water_mark: Optional[int]
    tie_set: FrozenSet[int]
    failed_pids: tuple = field(default=())


class ThresholdAdvancer:
    """Computes the next inclusive upper bound and the pids tied at it.

    The next search reuses the oldest timestamp of the current batch as an
    inclusive bound, because unseen records may share that timestamp and
    were cut off only by the batch size. The pids already emitted at that
    timestamp are carried forward so the next search can exclude them.
    """

    def __init__(self, lookup: TimestampLookup) -> None:
        self.lookup = lookup

    def advance(
        self,
        previous_high: Optional[int],
        previous_tie_set: AbstractSet[int],
        batch: Sequence[int],
    ) -> ThresholdUpdate:
        """Return the new mark and tie set for ``batch`` (ordered newest first).

        Walks the batch from its oldest end and stops at the first strictly
        newer timestamp, so only the trailing tie group is looked up.
        Records that vanished before their timestamp could be read are
        reported in ``failed_pids`` and left out of the tie set, except when
        no pid in the batch could be positioned at all.
        """
        failed: List[int] = []
        oldest: Optional[int] = None
        tied: set[int] = set()

        for pid in reversed(batch):
            try:
                timestamp = self.lookup.timestamp_of(pid)
            except RecordNotFoundError:
                logger.warning("Timestamp lookup failed for pid=%s; excluding from tie set", pid)
                failed.append(pid)
                continue
            if oldest is None or timestamp < oldest:
                oldest = timestamp
                tied = {pid}
            elif timestamp == oldest:
                tied.add(pid)
            else:
                break

        if oldest is not None and previous_high is not None and oldest > previous_high:
            # Record was modified after the search ran; never move the bound up.
            logger.warning(
                "Oldest timestamp %s is newer than bound %s; keeping previous bound",
                oldest,
                previous_high,
            )
            oldest = None

        if oldest is None:
            # Nothing in the batch could be positioned. Exclude the failed pids
            # at the unchanged bound so the next search moves past them.
            excluded = frozenset(previous_tie_set)
            if previous_high is not None:
                excluded |= frozenset(failed)
            return ThresholdUpdate(
                high_water_mark=previous_high,
                tie_set=excluded,
                failed_pids=tuple(failed),
            )

        if oldest == previous_high:
            tied |= set(previous_tie_set)
        return ThresholdUpdate(
            high_water_mark=oldest,
            tie_set=frozenset(tied),
            failed_pids=tuple(failed),
        )


__all__ = ["ThresholdAdvancer", "ThresholdUpdate"]
