"""Search collaborator interfaces and an in-process implementation."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import parse_qsl

from .errors import ConfigurationError, RecordNotFoundError
from .models import PartitionedQuery


@dataclass(frozen=True)
class SearchRequest:
    """Bounded search issued for one partition."""

    query: str
    partition_id: Optional[str]
    upper_bound_inclusive: Optional[int]  # epoch ms, None = unbounded
    sort_descending: bool = True
    page_size_hint: int = 1000


class ResultIterator(Protocol):
    """Pull handle over a sorted result stream."""

    def next_batch(self, max_count: int) -> List[int]:
        """Return up to ``max_count`` pids; may return fewer than asked."""

    def has_next(self) -> bool:
        """Return False once the stream is exhausted."""

    def close(self) -> None:
        """Release any resources held by the search."""


class ResultFetcher(Protocol):
    """Turns a filter plus timestamp bound into a sorted pid stream."""

    def search(self, request: SearchRequest) -> ResultIterator:
        """Start a search; raises TransientFetchError on I/O failure."""


class TimestampLookup(Protocol):
    """Recovers the last-updated timestamp of a record by pid."""

    def timestamp_of(self, pid: int) -> int:
        """Return epoch ms; raises RecordNotFoundError if the record is gone."""


def build_search_request(
    partitioned_query: PartitionedQuery,
    high_water_mark: Optional[int],
    batch_size: int,
) -> SearchRequest:
    return SearchRequest(
        query=partitioned_query.query,
        partition_id=partitioned_query.partition_id,
        upper_bound_inclusive=high_water_mark,
        sort_descending=True,
        page_size_hint=batch_size,
    )


def parse_descriptor(query: str) -> Tuple[str, Dict[str, str]]:
    """Split ``Type?key=value&...`` into the resource type and equality params."""
    resource_type, _, query_string = query.partition("?")
    resource_type = resource_type.strip().lstrip("/")
    if not resource_type:
        raise ConfigurationError(f"Query has no resource type: {query!r}")
    params: Dict[str, str] = {}
    for key, value in parse_qsl(query_string, keep_blank_values=True):
        if key in params:
            raise ConfigurationError(f"Repeated parameter {key!r} in query {query!r}")
        params[key] = value
    return resource_type, params


@dataclass(frozen=True)
class Record:
    pid: int
    resource_type: str
    last_updated: int  # epoch ms
    partition_id: Optional[str] = None
    attributes: Mapping[str, str] = field(default_factory=dict)


def matches(record: Record, resource_type: str, params: Mapping[str, str]) -> bool:
    if record.resource_type != resource_type:
        return False
    return all(str(record.attributes.get(key)) == value for key, value in params.items())


class ListResultIterator:
    """Serves a materialized result list in internal pages."""

    def __init__(self, pids: Iterable[int], page_size: int) -> None:
        self._pids = list(pids)
        self._page_size = max(1, page_size)
        self._position = 0
        self.closed = False

    def next_batch(self, max_count: int) -> List[int]:
        count = min(max_count, self._page_size)
        page = self._pids[self._position : self._position + count]
        self._position += len(page)
        return page

    def has_next(self) -> bool:
        return self._position < len(self._pids)

    def close(self) -> None:
        self.closed = True


class InMemoryRecordSource:
    """Dict-backed record set acting as both fetcher and timestamp lookup.

    Results are ordered by ``(last_updated DESC, pid ASC)``. ``page_size``
    caps how many pids one ``next_batch`` call returns, independent of the
    caller's request, so multi-page pulls can be exercised.
    """

    def __init__(self, records: Iterable[Record] = (), page_size: Optional[int] = None) -> None:
        self._records: Dict[int, Record] = {}
        self.page_size = page_size
        self.searches: List[SearchRequest] = []
        for record in records:
            self.add(record)

    def add(self, record: Record) -> None:
        self._records[record.pid] = record

    def delete(self, pid: int) -> None:
        self._records.pop(pid, None)

    def search(self, request: SearchRequest) -> ListResultIterator:
        self.searches.append(request)
        resource_type, params = parse_descriptor(request.query)
        selected = [
            record
            for record in self._records.values()
            if matches(record, resource_type, params)
            and (request.partition_id is None or record.partition_id == request.partition_id)
            and (
                request.upper_bound_inclusive is None
                or record.last_updated <= request.upper_bound_inclusive
            )
        ]
        if request.sort_descending:
            selected.sort(key=lambda r: (-r.last_updated, r.pid))
        else:
            selected.sort(key=lambda r: (r.last_updated, r.pid))
        page_size = self.page_size or request.page_size_hint
        return ListResultIterator((r.pid for r in selected), page_size)

    def timestamp_of(self, pid: int) -> int:
        record = self._records.get(pid)
        if record is None:
            raise RecordNotFoundError(pid)
        return record.last_updated


__all__ = [
    "InMemoryRecordSource",
    "ListResultIterator",
    "Record",
    "ResultFetcher",
    "ResultIterator",
    "SearchRequest",
    "TimestampLookup",
    "build_search_request",
    "parse_descriptor",
]
