"""Pytest configuration: local environment and shared record fixtures."""
from __future__ import annotations

from pathlib import Path

import pytest

try:
    from batch_cursor.env import load_env
except ImportError as exc:
    raise RuntimeError(
        "batch_cursor is not importable. Activate your virtualenv and run "
        "'pip install -e .[test]' before running pytest."
    ) from exc

from batch_cursor.fetcher import InMemoryRecordSource, Record

# Load default runtime env first, then overlay .env.test if provided
load_env()
test_env = Path(".env.test")
if test_env.exists():
    load_env(dotenv_path=test_env, override=True)


def make_records(timestamps, resource_type="Observation", partition_id=None, first_pid=1):
    return [
        Record(
            pid=first_pid + offset,
            resource_type=resource_type,
            last_updated=timestamp,
            partition_id=partition_id,
        )
        for offset, timestamp in enumerate(timestamps)
    ]


@pytest.fixture
def tied_source() -> InMemoryRecordSource:
    """Records a..e as pids 1..5 with timestamps [10, 10, 10, 9, 8]."""
    return InMemoryRecordSource(make_records([10, 10, 10, 9, 8]))


@pytest.fixture
def records():
    """Factory building Records with consecutive pids from a timestamp list."""
    return make_records
