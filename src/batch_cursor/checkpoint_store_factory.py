"""Factory for selecting the CheckpointStore backend."""
from __future__ import annotations

import os

from pathlib import Path

from .checkpoint_store import CheckpointStore
from .checkpoint_store_local import LocalFilesystemCheckpointStore
from .checkpoint_store_object import ObjectStorageCheckpointStore, S3Config
from .checkpoint_store_sqlite import SQLiteCheckpointStore


def create_checkpoint_store() -> CheckpointStore:
    backend = os.getenv("CHECKPOINT_STORE", "sqlite").lower()
    if backend == "sqlite":
        return SQLiteCheckpointStore(os.getenv("CHECKPOINT_DB_PATH", "data/checkpoints.db"))
    if backend == "filesystem":
        root = os.getenv("CHECKPOINT_ROOT", "data/checkpoints")
        return LocalFilesystemCheckpointStore(Path(root))
    if backend == "object":
        bucket = os.getenv("CHECKPOINT_BUCKET")
        prefix = os.getenv("CHECKPOINT_PREFIX", "checkpoints")
        if not bucket:
            raise RuntimeError("CHECKPOINT_BUCKET is required for object storage")
        return ObjectStorageCheckpointStore(
            S3Config(
                bucket=bucket,
                prefix=prefix,
                endpoint_url=os.getenv("CHECKPOINT_ENDPOINT_URL"),
                region=os.getenv("CHECKPOINT_REGION"),
                access_key=os.getenv("CHECKPOINT_ACCESS_KEY_ID"),
                secret_key=os.getenv("CHECKPOINT_SECRET_ACCESS_KEY"),
            )
        )
    raise RuntimeError(f"Unsupported CHECKPOINT_STORE backend: {backend}")
