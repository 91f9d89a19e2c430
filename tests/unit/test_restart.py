"""Restart behaviour: a reader rebuilt from a checkpoint continues exactly."""
from __future__ import annotations

import random

import pytest

from batch_cursor.checkpoint import CheckpointCodec
from batch_cursor.fetcher import InMemoryRecordSource, Record
from batch_cursor.models import PartitionedQuery
from batch_cursor.reader import BatchCursorReader


def _reader(source, queries, batch_size, start_time=None):
    return BatchCursorReader(
        queries=queries,
        batch_size=batch_size,
        start_time=start_time,
        fetcher=source,
        lookup=source,
    )


def test_restart_after_first_batch_reproduces_second_batch(tied_source):
    queries = [PartitionedQuery("Observation")]
    first_run = _reader(tied_source, queries, batch_size=2)
    assert first_run.read() == [1, 2]
    context = {}
    first_run.update(context)

    assert context == {
        "current.url-index": 0,
        "current.threshold-high.0": 10,
        "current.threshold-pids.0": [1, 2],
    }

    expected_second = first_run.read()
    resumed = _reader(tied_source, queries, batch_size=2, start_time=999)
    resumed.open(context)

    assert resumed.read() == expected_second == [3, 4]
    assert resumed.read() == [5]
    assert resumed.read() is None


def test_restart_on_later_partition_skips_finished_ones(records):
    source = InMemoryRecordSource(
        records([5, 4], resource_type="Patient") + records([3, 2], resource_type="Encounter", first_pid=10)
    )
    queries = [PartitionedQuery("Patient"), PartitionedQuery("Encounter")]
    reader = _reader(source, queries, batch_size=2)
    assert reader.read() == [1, 2]
    assert reader.read() == [10, 11]
    context = {}
    reader.update(context)
    assert context["current.url-index"] == 1

    searches_before = len(source.searches)
    resumed = _reader(source, queries, batch_size=2)
    resumed.open(context)

    assert resumed.read() is None
    assert [r.query for r in source.searches[searches_before:]] == ["Encounter"]


def test_update_drops_stale_tie_set_keys(records):
    source = InMemoryRecordSource(records([10, 10, 9]))
    queries = [PartitionedQuery("Observation")]
    reader = _reader(source, queries, batch_size=2)
    context = {}
    reader.read()
    reader.update(context)
    assert context["current.threshold-pids.0"] == [1, 2]

    reader.read()
    reader.update(context)
    assert context["current.threshold-pids.0"] == [3]
    assert context["current.threshold-high.0"] == 9


def _random_dataset(rng):
    """Records spread over two resource types with heavy timestamp ties."""
    rows = []
    pid = 1
    for resource_type in ("Observation", "Patient"):
        for _ in range(rng.randint(0, 40)):
            rows.append(Record(pid, resource_type, rng.randint(1, 8)))
            pid += 1
    return rows


@pytest.mark.parametrize("seed", range(25))
def test_no_loss_or_duplication_across_random_restarts(seed):
    rng = random.Random(seed)
    rows = _random_dataset(rng)
    source = InMemoryRecordSource(rows, page_size=rng.choice([None, 1, 2, 3]))
    queries = [
        PartitionedQuery("Observation"),
        PartitionedQuery("Device"),
        PartitionedQuery("Patient"),
    ]
    batch_size = rng.randint(1, 5)
    codec = CheckpointCodec()

    reader = _reader(source, queries, batch_size)
    emitted = []
    marks = {}
    for _ in range(1000):
        batch = reader.read()
        if batch is None:
            break
        assert 0 < len(batch) <= batch_size
        emitted.extend(batch)

        index = reader.run_state.active_index
        mark = reader.run_state.cursor(index).high_water_mark
        assert mark <= marks.get(index, mark)
        marks[index] = mark

        if rng.random() < 0.5:
            saved = codec.save(reader.run_state)
            reader = _reader(source, queries, batch_size, start_time=rng.randint(50, 100))
            reader.open(saved)
    else:
        pytest.fail("reader did not terminate")

    assert len(emitted) == len(set(emitted))
    assert sorted(emitted) == sorted(row.pid for row in rows)
