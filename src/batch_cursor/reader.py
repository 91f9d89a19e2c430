"""Reverse-chronological batch reader over a list of partitioned queries."""
from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from .checkpoint import CheckpointCodec
from .errors import ConfigurationError, TransientFetchError
from .fetcher import ResultFetcher, SearchRequest, TimestampLookup, build_search_request
from .models import CursorState, PartitionedQuery, RunState
from .threshold import ThresholdAdvancer

logger = logging.getLogger(__name__)


class BatchCursorReader:
    """Returns at most ``batch_size`` pids per ``read()``, newest first.

    Each partition is searched with an inclusive ``last_updated <= mark``
    bound. After every batch the mark moves to the oldest timestamp seen and
    the pids emitted at exactly that timestamp are remembered, so the next
    search neither repeats them nor skips their unseen siblings. Exhausted
    partitions are skipped until all are done, after which ``read()``
    returns ``None``.

    Not safe for concurrent use; one reader owns one RunState.
    """

    def __init__(
        self,
        queries: Sequence[PartitionedQuery],
        batch_size: int,
        start_time: Optional[int],
        fetcher: ResultFetcher,
        lookup: TimestampLookup,
        run_state: Optional[RunState] = None,
        codec: Optional[CheckpointCodec] = None,
    ) -> None:
        if not queries:
            raise ConfigurationError("At least one partitioned query is required")
        if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
            raise ConfigurationError(f"Batch size must be a positive integer, got {batch_size!r}")
        self.queries: Tuple[PartitionedQuery, ...] = tuple(queries)
        self.batch_size = batch_size
        self.start_time = start_time
        self.fetcher = fetcher
        self.codec = codec or CheckpointCodec()
        self.threshold_advancer = ThresholdAdvancer(lookup)
        self._state = run_state or RunState.fresh(len(self.queries), start_time)
        for index in range(len(self.queries)):
            self._state.cursors.setdefault(index, CursorState(start_time))
        self.last_failed_pids: Tuple[int, ...] = ()

    @property
    def run_state(self) -> RunState:
        return self._state

    def snapshot(self) -> RunState:
        return self._state.copy()

    def read(self) -> Optional[List[int]]:
        """Return the next non-empty batch, or ``None`` once every partition is done."""
        while self._state.active_index < len(self.queries):
            batch = self._next_batch()
            if not batch:
                logger.info(
                    "Partition %s exhausted (%s)",
                    self._state.active_index,
                    self.queries[self._state.active_index].query,
                )
                self._state.active_index += 1
                continue
            return batch
        return None

    def __iter__(self) -> Iterator[List[int]]:
        while True:
            batch = self.read()
            if batch is None:
                return
            yield batch

    def _next_batch(self) -> List[int]:
        index = self._state.active_index
        cursor = self._state.cursor(index)
        request = build_search_request(
            self.queries[index], cursor.high_water_mark, self.batch_size
        )
        new_pids = self._collect(request, cursor)

        logger.debug(
            "Search %s partition=%s bound<=%s returned %s new pids",
            request.query,
            request.partition_id,
            request.upper_bound_inclusive,
            len(new_pids),
        )
        if not new_pids:
            self.last_failed_pids = ()
            return []

        try:
            update = self.threshold_advancer.advance(
                cursor.high_water_mark, cursor.tie_set, new_pids
            )
        except (TransientFetchError, ConfigurationError):
            raise
        except Exception as exc:
            raise TransientFetchError(f"Timestamp lookup failed for {request.query}: {exc}") from exc
        if update.high_water_mark is None:
            raise TransientFetchError(
                f"No timestamp could be read for any of {len(new_pids)} pids from {request.query}"
            )
        self._state.cursors[index] = CursorState(update.high_water_mark, set(update.tie_set))
        self.last_failed_pids = update.failed_pids
        return new_pids

    def _collect(self, request: SearchRequest, cursor: CursorState) -> List[int]:
        # dict keeps arrival order, which is the descending timestamp order
        collected: Dict[int, None] = {}
        try:
            results = self.fetcher.search(request)
        except (TransientFetchError, ConfigurationError):
            raise
        except Exception as exc:
            raise TransientFetchError(f"Search failed for {request.query}: {exc}") from exc
        try:
            while len(collected) < self.batch_size:
                needed = self.batch_size - len(collected)
                page = results.next_batch(needed)[:needed]
                for pid in page:
                    if pid not in cursor.tie_set:
                        collected[pid] = None
                if not page or not results.has_next():
                    break
        except (TransientFetchError, ConfigurationError):
            raise
        except Exception as exc:
            raise TransientFetchError(f"Search failed for {request.query}: {exc}") from exc
        finally:
            results.close()
        return list(collected)

    def open(self, context: Optional[Mapping[str, object]]) -> None:
        """Restore position from a previously saved execution context."""
        self._state = self.codec.restore(context, self.start_time, len(self.queries))
        logger.info(
            "Opened reader at partition %s of %s",
            self._state.active_index,
            len(self.queries),
        )

    def update(self, context: MutableMapping[str, object]) -> None:
        """Write the current position into ``context`` for persistence."""
        self.codec.update(self._state, context)

    def close(self) -> None:
        pass


__all__ = ["BatchCursorReader"]
