"""Helpers for formatting stored checkpoints for inspection."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Tuple

from tabulate import tabulate

from .checkpoint import CheckpointCodec
from .models import from_epoch_millis


@dataclass(frozen=True)
class PartitionCheckpointRow:
    job_key: str
    partition: int
    high_water_mark: Optional[int]
    tie_count: int
    active: bool


def describe_checkpoint(
    job_key: str, context: Mapping[str, object], codec: CheckpointCodec
) -> List[PartitionCheckpointRow]:
    """Flatten one stored context into per-partition rows.

    Only partitions with a stored mark are listed; untouched partitions
    still use the job start time.
    """
    partition_count = 0
    marker = f"{codec.prefix}current.threshold-high."
    for key in context:
        if key.startswith(marker):
            suffix = key[len(marker):]
            if suffix.isdigit():
                partition_count = max(partition_count, int(suffix) + 1)
    state = codec.restore(context, None, partition_count)
    return [
        PartitionCheckpointRow(
            job_key=job_key,
            partition=index,
            high_water_mark=cursor.high_water_mark,
            tie_count=len(cursor.tie_set),
            active=index == state.active_index,
        )
        for index, cursor in sorted(state.cursors.items())
        if codec.high_key(index) in context
    ]


def _iso(value: Optional[int]) -> str:
    if value is None:
        return "-"
    return from_epoch_millis(value).isoformat(timespec="milliseconds")


def format_checkpoints(
    entries: Iterable[Tuple[str, Mapping[str, object]]],
    codec: CheckpointCodec,
    output_format: str = "table",
) -> str:
    entries = list(entries)
    if not entries:
        return "No checkpoints found."
    if output_format == "json":
        payload = [
            {
                "job_key": job_key,
                "active_index": context.get(codec.index_key()),
                "partitions": [
                    {
                        "partition": row.partition,
                        "high_water_mark": row.high_water_mark,
                        "high_water_mark_iso": _iso(row.high_water_mark),
                        "tie_count": row.tie_count,
                    }
                    for row in describe_checkpoint(job_key, context, codec)
                ],
            }
            for job_key, context in entries
        ]
        return json.dumps(payload, indent=2)

    table_data = [
        [
            row.job_key,
            row.partition,
            _iso(row.high_water_mark),
            row.tie_count,
            "*" if row.active else "",
        ]
        for job_key, context in entries
        for row in describe_checkpoint(job_key, context, codec)
    ]
    headers = ["job_key", "partition", "high_water_mark", "tie_count", "active"]
    return tabulate(table_data, headers=headers, tablefmt="plain")


__all__ = ["PartitionCheckpointRow", "describe_checkpoint", "format_checkpoints"]
