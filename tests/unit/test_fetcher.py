from __future__ import annotations

import pytest

from batch_cursor.errors import ConfigurationError, RecordNotFoundError
from batch_cursor.fetcher import (
    InMemoryRecordSource,
    ListResultIterator,
    build_search_request,
    parse_descriptor,
)
from batch_cursor.models import PartitionedQuery


def test_build_search_request_is_descending_and_bounded():
    request = build_search_request(PartitionedQuery("Patient?active=true", "t1"), 42, 7)

    assert request.query == "Patient?active=true"
    assert request.partition_id == "t1"
    assert request.upper_bound_inclusive == 42
    assert request.sort_descending is True
    assert request.page_size_hint == 7


def test_parse_descriptor_splits_type_and_params():
    assert parse_descriptor("Observation") == ("Observation", {})
    assert parse_descriptor("/Observation?status=final&code=") == (
        "Observation",
        {"status": "final", "code": ""},
    )


@pytest.mark.parametrize("query", ["", "?status=final", "Observation?a=1&a=2"])
def test_parse_descriptor_rejects_malformed_queries(query):
    with pytest.raises(ConfigurationError):
        parse_descriptor(query)


def test_list_iterator_pages_never_exceed_its_page_size():
    iterator = ListResultIterator([1, 2, 3, 4, 5], page_size=2)

    assert iterator.next_batch(10) == [1, 2]
    assert iterator.next_batch(1) == [3]
    assert iterator.has_next()
    assert iterator.next_batch(10) == [4, 5]
    assert not iterator.has_next()
    iterator.close()
    assert iterator.closed


def test_in_memory_search_orders_newest_first_with_pid_tiebreak(records):
    source = InMemoryRecordSource(records([5, 9, 9, 1]))
    request = build_search_request(PartitionedQuery("Observation"), None, 10)

    assert source.search(request).next_batch(10) == [2, 3, 1, 4]


def test_in_memory_lookup_of_deleted_record_raises(records):
    source = InMemoryRecordSource(records([5]))
    source.delete(1)

    with pytest.raises(RecordNotFoundError):
        source.timestamp_of(1)
