"""Core data types shared by the reader, codec and stores."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional, Set, Tuple

from .errors import ConfigurationError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)


def to_epoch_millis(value: datetime) -> int:
    """Convert an aware (or UTC-naive) datetime to epoch milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // _MILLISECOND


def from_epoch_millis(value: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=value)


@dataclass(frozen=True)
class PartitionedQuery:
    """One search to iterate, scoped to a single storage partition."""

    query: str
    partition_id: Optional[str] = None


@dataclass(frozen=True)
class RequestList:
    """Ordered, immutable list of partitioned queries supplied at job start."""

    queries: Tuple[PartitionedQuery, ...]

    def __getitem__(self, index: int) -> PartitionedQuery:
        return self.queries[index]

    def __len__(self) -> int:
        return len(self.queries)

    def __iter__(self) -> Iterator[PartitionedQuery]:
        return iter(self.queries)

    @classmethod
    def from_json(cls, text: str) -> "RequestList":
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Request list is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict) or not isinstance(raw.get("partitionedUrls"), list):
            raise ConfigurationError("Request list must contain a 'partitionedUrls' array")
        queries: List[PartitionedQuery] = []
        for position, item in enumerate(raw["partitionedUrls"]):
            if not isinstance(item, dict) or not item.get("url"):
                raise ConfigurationError(f"Request list entry {position} has no url")
            partition_id = item.get("requestPartitionId")
            if partition_id is not None and not isinstance(partition_id, str):
                raise ConfigurationError(
                    f"Request list entry {position} has a non-string requestPartitionId"
                )
            queries.append(PartitionedQuery(query=item["url"], partition_id=partition_id))
        if not queries:
            raise ConfigurationError("Request list is empty")
        return cls(tuple(queries))

    def to_json(self) -> str:
        return json.dumps(
            {
                "partitionedUrls": [
                    {"url": q.query, "requestPartitionId": q.partition_id}
                    for q in self.queries
                ]
            }
        )


@dataclass
class CursorState:
    """Keyset position inside one partition.

    ``high_water_mark`` is the inclusive upper bound (epoch ms) for the next
    search; ``None`` means unbounded. ``tie_set`` holds the pids already
    emitted whose timestamp equals the mark.
    """

    high_water_mark: Optional[int] = None
    tie_set: Set[int] = field(default_factory=set)

    def copy(self) -> "CursorState":
        return CursorState(self.high_water_mark, set(self.tie_set))


@dataclass
class RunState:
    """Active partition index plus the cursor of every partition."""

    active_index: int = 0
    cursors: Dict[int, CursorState] = field(default_factory=dict)

    @classmethod
    def fresh(cls, partition_count: int, start_time: Optional[int]) -> "RunState":
        return cls(
            active_index=0,
            cursors={i: CursorState(start_time) for i in range(partition_count)},
        )

    def cursor(self, index: int) -> CursorState:
        return self.cursors.setdefault(index, CursorState())

    def copy(self) -> "RunState":
        return RunState(
            self.active_index,
            {index: cursor.copy() for index, cursor in self.cursors.items()},
        )


__all__ = [
    "CursorState",
    "PartitionedQuery",
    "RequestList",
    "RunState",
    "from_epoch_millis",
    "to_epoch_millis",
]
