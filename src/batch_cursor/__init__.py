"""Checkpointable keyset batch cursor over timestamp-ordered records."""
from .checkpoint import CheckpointCodec
from .errors import (
    BatchCursorError,
    CheckpointCorruptError,
    ConfigurationError,
    RecordNotFoundError,
    TransientFetchError,
)
from .models import CursorState, PartitionedQuery, RequestList, RunState
from .reader import BatchCursorReader
from .threshold import ThresholdAdvancer, ThresholdUpdate

__all__ = [
    "BatchCursorError",
    "BatchCursorReader",
    "CheckpointCodec",
    "CheckpointCorruptError",
    "ConfigurationError",
    "CursorState",
    "PartitionedQuery",
    "RecordNotFoundError",
    "RequestList",
    "RunState",
    "ThresholdAdvancer",
    "ThresholdUpdate",
    "TransientFetchError",
]
