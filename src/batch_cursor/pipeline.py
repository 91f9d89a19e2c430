"""Job orchestration: read batches, hand them off, checkpoint after each."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence

from .checkpoint import CheckpointCodec
from .checkpoint_store import CheckpointStore
from .checkpoint_store_factory import create_checkpoint_store
from .config import AppConfig
from .fetcher import ResultFetcher, TimestampLookup
from .job_parameters import build_job_parameters, resolve_batch_size
from .reader import BatchCursorReader
from .run_context import RunContext
from .sqlite_source import SQLiteRecordSource

logger = logging.getLogger(__name__)


class BatchProcessor(Protocol):
    def process(self, batch: Sequence[int]) -> None:
        """Handle one batch; must tolerate seeing the same pids again after a restart."""


class JsonlBatchWriter:
    """Appends every batch as one JSON line, for replay/debugging."""

    def __init__(self, path: Path | str, run_context: RunContext) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.run_context = run_context
        self.written = 0

    def process(self, batch: Sequence[int]) -> None:
        line = {
            "job_key": self.run_context.job_key,
            "run_id": self.run_context.run_id,
            "batch_number": self.written,
            "emitted_at": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "pids": list(batch),
        }
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(line) + "\n")
        self.written += 1


@dataclass
class JobSummary:
    job_key: str
    run_id: str
    batches: int = 0
    pids: int = 0
    failed_pids: List[int] = field(default_factory=list)
    completed: bool = False


class BatchJobRunner:
    """Drives a reader to exhaustion with at-least-once batch delivery.

    The checkpoint is saved only after the processor returned for a batch,
    so a crash in between replays that batch on the next run. Once the
    reader reports end-of-data the checkpoint is deleted.
    """

    def __init__(
        self,
        reader: BatchCursorReader,
        store: CheckpointStore,
        run_context: RunContext,
        processor: BatchProcessor,
    ) -> None:
        self.reader = reader
        self.store = store
        self.run_context = run_context
        self.processor = processor

    def run(self, max_batches: Optional[int] = None) -> JobSummary:
        job_key = self.run_context.job_key
        summary = JobSummary(job_key=job_key, run_id=self.run_context.run_id)
        context: Dict[str, object] = self.store.load(job_key) or {}
        if context:
            logger.info("Resuming job %s run_id=%s from checkpoint", job_key, summary.run_id)
        else:
            logger.info("Starting job %s run_id=%s", job_key, summary.run_id)
        self.reader.open(context)

        try:
            while max_batches is None or summary.batches < max_batches:
                batch = self.reader.read()
                if batch is None:
                    summary.completed = True
                    break
                self.processor.process(batch)
                failed = self.reader.last_failed_pids
                if failed:
                    logger.warning(
                        "Job %s batch %s: %s pid(s) vanished before threshold update: %s",
                        job_key,
                        summary.batches,
                        len(failed),
                        list(failed),
                    )
                    summary.failed_pids.extend(failed)
                self.reader.update(context)
                self.store.save(job_key, context)
                summary.batches += 1
                summary.pids += len(batch)
                logger.info(
                    "Job %s batch %s: %s pids (partition %s)",
                    job_key,
                    summary.batches,
                    len(batch),
                    self.reader.run_state.active_index,
                )
        finally:
            self.reader.close()

        if summary.completed:
            self.store.delete(job_key)
            logger.info(
                "Job %s complete: %s batches, %s pids", job_key, summary.batches, summary.pids
            )
        return summary


def run_job(
    config: AppConfig,
    job_name: str,
    store: Optional[CheckpointStore] = None,
    processor: Optional[BatchProcessor] = None,
    source: Optional[ResultFetcher] = None,
    lookup: Optional[TimestampLookup] = None,
    batch_size: Optional[int] = None,
    max_batches: Optional[int] = None,
    output_path: Path | str = "data/batches.jsonl",
    run_context: Optional[RunContext] = None,
) -> JobSummary:
    job = config.get_job(job_name)

    run_context = run_context or RunContext.create(job_name)
    params = build_job_parameters(
        operation_name=job_name,
        batch_size=batch_size or job.batch_size,
        request_list=job.request_list(),
        minutes_in_future=config.reader.minutes_in_future_to_process_from,
    )
    if source is None:
        sqlite_source = SQLiteRecordSource(config.source.db_path)
        sqlite_source.ensure_schema()
        source = sqlite_source
    if lookup is None:
        lookup = source

    reader = BatchCursorReader(
        queries=params.queries(),
        batch_size=resolve_batch_size(params, config.reader.default_batch_size),
        start_time=params.start_time_millis(),
        fetcher=source,
        lookup=lookup,
        codec=CheckpointCodec(
            prefix=config.reader.checkpoint_prefix,
            tolerate_corrupt=config.reader.tolerate_corrupt_checkpoint,
        ),
    )
    runner = BatchJobRunner(
        reader=reader,
        store=store or create_checkpoint_store(),
        run_context=run_context,
        processor=processor or JsonlBatchWriter(output_path, run_context),
    )
    return runner.run(max_batches=max_batches)


__all__ = [
    "BatchJobRunner",
    "BatchProcessor",
    "JobSummary",
    "JsonlBatchWriter",
    "run_job",
]
