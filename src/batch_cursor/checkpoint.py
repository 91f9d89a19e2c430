"""Flattened key/value encoding of a RunState.

Layout (all keys under ``<prefix>current.``):

* ``current.url-index``             active partition index
* ``current.threshold-high.<i>``    high-water mark of partition ``i`` in epoch ms,
                                    ``None`` when the partition is unbounded
* ``current.threshold-pids.<i>``    sorted pids tied at that mark, only when non-empty

A partition with no ``threshold-high`` key restores to the default start time.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Mapping, MutableMapping, Optional

from .errors import CheckpointCorruptError
from .models import CursorState, RunState

logger = logging.getLogger(__name__)

CURRENT_URL_INDEX = "current.url-index"
CURRENT_THRESHOLD_HIGH = "current.threshold-high"
CURRENT_THRESHOLD_PIDS = "current.threshold-pids"


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CheckpointCodec:
    """Serializes RunState to and from an execution-context mapping."""

    def __init__(self, prefix: str = "", tolerate_corrupt: bool = False) -> None:
        self.prefix = prefix
        self.tolerate_corrupt = tolerate_corrupt

    def index_key(self) -> str:
        return f"{self.prefix}{CURRENT_URL_INDEX}"

    def high_key(self, index: int) -> str:
        return f"{self.prefix}{CURRENT_THRESHOLD_HIGH}.{index}"

    def pids_key(self, index: int) -> str:
        return f"{self.prefix}{CURRENT_THRESHOLD_PIDS}.{index}"

    def save(self, state: RunState) -> Dict[str, object]:
        context: Dict[str, object] = {self.index_key(): state.active_index}
        for index in sorted(state.cursors):
            cursor = state.cursors[index]
            context[self.high_key(index)] = cursor.high_water_mark
            if cursor.tie_set:
                context[self.pids_key(index)] = sorted(cursor.tie_set)
        return context

    def update(self, state: RunState, context: MutableMapping[str, object]) -> None:
        """Write ``state`` into an existing mapping, dropping stale tie sets."""
        for index in state.cursors:
            context.pop(self.pids_key(index), None)
        context.update(self.save(state))

    def restore(
        self,
        context: Optional[Mapping[str, object]],
        default_start_time: Optional[int],
        partition_count: int,
    ) -> RunState:
        if not context:
            return RunState.fresh(partition_count, default_start_time)

        state = RunState(active_index=self._restore_index(context))
        for index in range(partition_count):
            try:
                state.cursors[index] = self._restore_cursor(context, index, default_start_time)
            except CheckpointCorruptError:
                if not self.tolerate_corrupt:
                    raise
                logger.warning(
                    "Corrupt checkpoint for partition %s; restarting it from %s",
                    index,
                    default_start_time,
                )
                state.cursors[index] = CursorState(default_start_time)
        return state

    def _restore_index(self, context: Mapping[str, object]) -> int:
        key = self.index_key()
        value = context.get(key, 0)
        if _is_int(value) and value >= 0:
            return value
        if not self.tolerate_corrupt:
            raise CheckpointCorruptError(key, value)
        logger.warning("Corrupt checkpoint value for %s; restarting at partition 0", key)
        return 0

    def _restore_cursor(
        self,
        context: Mapping[str, object],
        index: int,
        default_start_time: Optional[int],
    ) -> CursorState:
        high_key = self.high_key(index)
        if high_key not in context:
            return CursorState(default_start_time)
        high = context[high_key]
        if high is not None and not _is_int(high):
            raise CheckpointCorruptError(high_key, high)

        pids_key = self.pids_key(index)
        raw_pids = context.get(pids_key, [])
        if not isinstance(raw_pids, (list, tuple)) or not all(_is_int(p) for p in raw_pids):
            raise CheckpointCorruptError(pids_key, raw_pids)
        pids: List[int] = list(raw_pids)
        if pids and high is None:
            raise CheckpointCorruptError(pids_key, raw_pids)
        return CursorState(high, set(pids))


__all__ = [
    "CURRENT_THRESHOLD_HIGH",
    "CURRENT_THRESHOLD_PIDS",
    "CURRENT_URL_INDEX",
    "CheckpointCodec",
]
