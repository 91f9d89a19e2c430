from __future__ import annotations

import io
import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from batch_cursor.checkpoint_store_factory import create_checkpoint_store
from batch_cursor.checkpoint_store_local import LocalFilesystemCheckpointStore
from batch_cursor.checkpoint_store_object import (
    ObjectStorageCheckpointStore,
    S3Config,
    _object_key,
)
from batch_cursor.checkpoint_store_sqlite import SQLiteCheckpointStore

CONTEXT = {
    "current.url-index": 1,
    "current.threshold-high.0": 1700000000000,
    "current.threshold-pids.0": [4, 9],
    "current.threshold-high.1": None,
}


@pytest.fixture(params=["sqlite", "filesystem"])
def store(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteCheckpointStore(tmp_path / "checkpoints.db")
    return LocalFilesystemCheckpointStore(tmp_path / "checkpoints")


def test_missing_checkpoint_loads_as_none(store):
    assert store.load("expunge") is None


def test_save_then_load_returns_same_context(store):
    store.save("expunge", CONTEXT)

    assert store.load("expunge") == CONTEXT


def test_save_replaces_previous_context(store):
    store.save("expunge", CONTEXT)
    store.save("expunge", {"current.url-index": 2})

    assert store.load("expunge") == {"current.url-index": 2}


def test_delete_and_list_keys(store):
    store.save("b-job", CONTEXT)
    store.save("a-job", CONTEXT)

    assert list(store.list_keys()) == ["a-job", "b-job"]

    store.delete("a-job")
    store.delete("never-saved")

    assert list(store.list_keys()) == ["b-job"]
    assert store.load("a-job") is None


def test_sqlite_entries_carry_update_time(tmp_path):
    store = SQLiteCheckpointStore(tmp_path / "checkpoints.db")
    store.save("expunge", CONTEXT)

    entries = store.list_entries("expunge")

    assert len(entries) == 1
    assert entries[0].context == CONTEXT
    assert entries[0].updated_at.tzinfo is not None


def test_object_key_layout():
    assert _object_key("root/", "expunge") == "root/job_key=expunge/context.json"
    assert _object_key("", "expunge") == "job_key=expunge/context.json"


def _not_found_error():
    return ClientError({"Error": {"Code": "NoSuchKey"}}, "get_object")


def test_object_store_load_and_save():
    client = MagicMock()
    client.get_object.return_value = {"Body": io.BytesIO(json.dumps(CONTEXT).encode("utf-8"))}
    store = ObjectStorageCheckpointStore(S3Config(bucket="bucket", prefix="ckpt"), client=client)

    assert store.load("expunge") == CONTEXT
    client.get_object.assert_called_with(Bucket="bucket", Key="ckpt/job_key=expunge/context.json")

    store.save("expunge", CONTEXT)
    put_kwargs = client.put_object.call_args.kwargs
    assert put_kwargs["Key"] == "ckpt/job_key=expunge/context.json"
    assert json.loads(put_kwargs["Body"].decode("utf-8")) == CONTEXT


def test_object_store_missing_key_is_none():
    client = MagicMock()
    client.get_object.side_effect = _not_found_error()
    store = ObjectStorageCheckpointStore(S3Config(bucket="bucket", prefix="ckpt"), client=client)

    assert store.load("expunge") is None


def test_object_store_other_errors_propagate():
    client = MagicMock()
    client.get_object.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "get_object")
    store = ObjectStorageCheckpointStore(S3Config(bucket="bucket", prefix="ckpt"), client=client)

    with pytest.raises(ClientError):
        store.load("expunge")


def test_object_store_lists_job_keys():
    client = MagicMock()
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [{"Key": "ckpt/job_key=b/context.json"}, {"Key": "ckpt/other.txt"}]},
        {"Contents": [{"Key": "ckpt/job_key=a/context.json"}]},
    ]
    client.get_paginator.return_value = paginator
    store = ObjectStorageCheckpointStore(S3Config(bucket="bucket", prefix="ckpt"), client=client)

    assert store.list_keys() == ["a", "b"]


def test_factory_selects_backend(monkeypatch, tmp_path):
    monkeypatch.setenv("CHECKPOINT_STORE", "filesystem")
    monkeypatch.setenv("CHECKPOINT_ROOT", str(tmp_path / "fs"))
    assert isinstance(create_checkpoint_store(), LocalFilesystemCheckpointStore)

    monkeypatch.setenv("CHECKPOINT_STORE", "sqlite")
    monkeypatch.setenv("CHECKPOINT_DB_PATH", str(tmp_path / "c.db"))
    assert isinstance(create_checkpoint_store(), SQLiteCheckpointStore)


def test_factory_rejects_bad_configuration(monkeypatch):
    monkeypatch.setenv("CHECKPOINT_STORE", "object")
    monkeypatch.delenv("CHECKPOINT_BUCKET", raising=False)
    with pytest.raises(RuntimeError):
        create_checkpoint_store()

    monkeypatch.setenv("CHECKPOINT_STORE", "redis")
    with pytest.raises(RuntimeError):
        create_checkpoint_store()
