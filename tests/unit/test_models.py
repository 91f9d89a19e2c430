from __future__ import annotations

from datetime import datetime, timezone

import pytest

from batch_cursor.errors import ConfigurationError
from batch_cursor.models import (
    CursorState,
    PartitionedQuery,
    RequestList,
    RunState,
    from_epoch_millis,
    to_epoch_millis,
)


def test_request_list_json_round_trip():
    request_list = RequestList(
        (PartitionedQuery("Observation?status=final"), PartitionedQuery("Patient", "tenant-a"))
    )

    parsed = RequestList.from_json(request_list.to_json())

    assert parsed == request_list
    assert len(parsed) == 2
    assert parsed[1].partition_id == "tenant-a"


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        "[]",
        '{"partitionedUrls": []}',
        '{"partitionedUrls": [{"requestPartitionId": "a"}]}',
        '{"partitionedUrls": [{"url": "Patient", "requestPartitionId": 5}]}',
    ],
)
def test_request_list_rejects_invalid_payloads(payload):
    with pytest.raises(ConfigurationError):
        RequestList.from_json(payload)


def test_fresh_run_state_starts_every_partition_at_start_time():
    state = RunState.fresh(3, 1000)

    assert state.active_index == 0
    assert state.cursors == {i: CursorState(1000, set()) for i in range(3)}


def test_run_state_copy_is_independent():
    state = RunState(0, {0: CursorState(5, {1})})
    copy = state.copy()
    copy.cursors[0].tie_set.add(2)

    assert state.cursors[0].tie_set == {1}


def test_epoch_millis_conversion():
    moment = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

    assert from_epoch_millis(to_epoch_millis(moment)) == moment
    assert to_epoch_millis(datetime(1970, 1, 1, 0, 0, 1)) == 1000
