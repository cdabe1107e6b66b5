"""
Adaptive drain loop: claims batches from the job queue, embeds each job's
content snapshot, stores the result in the sidecar and archives the job.

One ``run`` is an explicit loop bounded by a wall-clock budget:

- before every read the batch size is recomputed from the current queue
  depth (unless the caller fixed it);
- the first read that returns no jobs ends the run;
- the budget is checked after every job, so a batch overruns the budget by
  at most one job;
- batches are claimed while the budget lasts; a run that used at least
  ``continue_fraction`` of its budget and ended on it while still finding
  work reports ``should_continue`` so the caller can dispatch another run.

Failures stay inside their job. A failed job is left in the queue and comes
back after its visibility timeout, until its delivery count reaches
``max_deliveries``; then it is dead-lettered. Malformed jobs are archived
immediately.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.exceptions import MalformedJobError, QueueUnavailable
from sidecar_autopilot.core.metrics import DrainMetricsCollector
from sidecar_autopilot.services.fingerprint import fingerprint

logger = logging.getLogger(__name__)

STOP_QUEUE_EMPTY = "queue_empty"
STOP_TIME_BUDGET = "time_budget"
STOP_QUEUE_UNAVAILABLE = "queue_unavailable"

FUNCTION_NAME = "process_embedding_queue"
REQUIRED_FIELDS = ("source_id", "content_snapshot")


def adaptive_batch_size(queue_size: int, max_batch_size: int = 5) -> int:
    """Small batches for small queues, larger batches for backlogs, never above the cap."""
    if queue_size <= 10:
        size = 1
    elif queue_size <= 50:
        size = 2
    elif queue_size <= 200:
        size = 3
    else:
        size = max_batch_size
    return max(1, min(size, max_batch_size))


@dataclass
class DrainResult:
    processed: int = 0
    errors: int = 0
    cycles: int = 0
    processing_time_ms: int = 0
    throughput_per_second: float = 0.0
    batch_size_used: int = 0
    skipped: int = 0
    dead_lettered: int = 0
    error_details: List[str] = field(default_factory=list)
    processed_message_ids: List[int] = field(default_factory=list)
    stopped_reason: str = STOP_QUEUE_EMPTY
    should_continue: bool = False
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "errors": self.errors,
            "cycles": self.cycles,
            "processing_time_ms": self.processing_time_ms,
            "throughput_per_second": self.throughput_per_second,
            "batch_size_used": self.batch_size_used,
            "skipped": self.skipped,
            "dead_lettered": self.dead_lettered,
            "error_details": list(self.error_details),
            "processed_message_ids": list(self.processed_message_ids),
            "stopped_reason": self.stopped_reason,
            "should_continue": self.should_continue,
            "timestamp": self.timestamp,
        }


class AdaptiveDrainLoop:
    
    def __init__(
        self,
        queue,
        sidecar_store,
        embedder,
        error_log,
        visibility_timeout: float = None,
        time_budget_seconds: float = None,
        max_batch_size: int = None,
        max_deliveries: int = None,
        continue_fraction: float = None,
        full_batch_pause_seconds: float = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.queue = queue
        self.sidecar_store = sidecar_store
        self.embedder = embedder
        self.error_log = error_log
        self.visibility_timeout = visibility_timeout or settings.QUEUE_VISIBILITY_TIMEOUT_SECONDS
        self.time_budget_seconds = time_budget_seconds or settings.DRAIN_TIME_BUDGET_SECONDS
        self.max_batch_size = max_batch_size or settings.DRAIN_MAX_BATCH_SIZE
        self.max_deliveries = max_deliveries or settings.QUEUE_MAX_DELIVERIES
        self.continue_fraction = continue_fraction or settings.DRAIN_CONTINUE_FRACTION
        if full_batch_pause_seconds is None:
            full_batch_pause_seconds = settings.DRAIN_FULL_BATCH_PAUSE_SECONDS
        self.full_batch_pause_seconds = full_batch_pause_seconds
        self._clock = clock
        self._sleep = sleep
    
    async def run(
        self,
        batch_size: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        origin: str = "manual",
    ) -> DrainResult:
        """
        Drain the queue until it is empty or the time budget is spent.
        
        Args:
            batch_size: Fixed batch size; adaptive when omitted
            timeout_seconds: Time budget; the configured budget when omitted
            origin: Who started the run, for metrics
            
        Raises:
            QueueUnavailable: a queue read failed
        """
        budget = float(timeout_seconds or self.time_budget_seconds)
        start = self._clock()
        collector = DrainMetricsCollector(origin=origin)
        result = DrainResult()
        stopped_reason = STOP_TIME_BUDGET
        
        logger.info(f"Starting drain (origin={origin}, batch_size={batch_size or 'adaptive'}, budget={budget}s)")
        
        try:
            while self._clock() - start < budget:
                size = batch_size or adaptive_batch_size(await self.queue.size(), self.max_batch_size)
                result.batch_size_used = size
                jobs = await self.queue.read(self.visibility_timeout, size)
                if not jobs:
                    logger.info("No messages in queue - processing complete")
                    stopped_reason = STOP_QUEUE_EMPTY
                    break
                
                collector.record_cycle(size)
                out_of_time = False
                for job in jobs:
                    await self._process_job(job, collector, result)
                    if self._clock() - start >= budget:
                        logger.info(f"Timeout reached ({budget}s) - stopping processing")
                        out_of_time = True
                        break
                if out_of_time:
                    break
                
                if len(jobs) >= size and self.full_batch_pause_seconds > 0:
                    # A full batch means more work is likely waiting; avoid hot-looping the queue
                    await self._sleep(self.full_batch_pause_seconds)
        except QueueUnavailable:
            collector.finish(STOP_QUEUE_UNAVAILABLE).emit("ERROR")
            raise
        
        metrics = collector.finish(stopped_reason)
        metrics.emit()
        
        elapsed = max(self._clock() - start, 0.0)
        result.processed = metrics.processed
        result.errors = metrics.errors
        result.cycles = metrics.cycles
        result.skipped = metrics.skipped
        result.dead_lettered = metrics.dead_lettered
        result.processing_time_ms = int(elapsed * 1000)
        result.throughput_per_second = round(metrics.processed / elapsed, 2) if elapsed > 0 else 0.0
        result.stopped_reason = stopped_reason
        result.should_continue = (
            stopped_reason == STOP_TIME_BUDGET
            and metrics.processed > 0
            and elapsed >= budget * self.continue_fraction
        )
        
        logger.info(
            f"Processing complete: {result.processed} processed, {result.errors} errors "
            f"in {elapsed:.2f}s over {result.cycles} cycles ({stopped_reason})"
        )
        return result
    
    def _parse_payload(self, payload: Any) -> Tuple[str, str]:
        if not isinstance(payload, dict):
            raise MalformedJobError("Invalid message format: payload is not an object", REQUIRED_FIELDS)
        missing = [name for name in REQUIRED_FIELDS if not payload.get(name)]
        if missing:
            raise MalformedJobError(
                f"Invalid message format: missing required fields {', '.join(missing)}", missing
            )
        snapshot = payload["content_snapshot"]
        if not isinstance(snapshot, str):
            raise MalformedJobError("Invalid message format: content_snapshot is not text", ["content_snapshot"])
        return str(payload["source_id"]), snapshot
    
    async def _process_job(self, job, collector: DrainMetricsCollector, result: DrainResult):
        try:
            source_id, snapshot = self._parse_payload(job.payload)
        except MalformedJobError as e:
            logger.error(f"Message {job.message_id}: {e}. Archiving message.")
            await self.error_log.record(
                str(e),
                source_id=job.payload.get("source_id") if isinstance(job.payload, dict) else None,
                context={"message": job.payload, "missing_fields": e.missing_fields},
                function_name=FUNCTION_NAME,
                queue_message_id=job.message_id,
            )
            await self._archive(job)
            collector.record_error()
            result.error_details.append(f"Message {job.message_id}: {e}")
            return
        
        content_fingerprint = fingerprint(snapshot)
        try:
            stored_fingerprint = await self.sidecar_store.get_fingerprint(source_id)
            if stored_fingerprint == content_fingerprint:
                logger.info(f"Skipping document {source_id} - content unchanged")
                await self._archive(job)
                collector.record_processed(skipped=True)
                result.processed_message_ids.append(job.message_id)
                return
            
            collector.start_embedding()
            try:
                vector = await self.embedder.embed(snapshot)
            finally:
                collector.end_embedding()
            
            stored = await self.sidecar_store.upsert(
                source_id,
                content_fingerprint,
                vector,
                source_text=snapshot,
                model=getattr(self.embedder, "model", None),
            )
            if not stored:
                logger.info(f"Document {source_id} was deleted before its embedding was stored")
            
            await self._archive(job)
            collector.record_processed(skipped=not stored)
            result.processed_message_ids.append(job.message_id)
            logger.info(f"Successfully processed document: {source_id}")
        
        except Exception as e:
            dead_letter = job.read_count >= self.max_deliveries
            logger.error(f"Error processing message {job.message_id} (delivery {job.read_count}): {e}")
            await self.error_log.record(
                str(e),
                source_id=source_id,
                context={
                    "content_length": len(snapshot),
                    "autopilot_reembedding": job.payload.get("origin") == "scan",
                    "origin": job.payload.get("origin"),
                    "read_count": job.read_count,
                    "dead_lettered": dead_letter,
                    "error_type": type(e).__name__,
                },
                function_name=FUNCTION_NAME,
                queue_message_id=job.message_id,
            )
            if dead_letter:
                await self._dead_letter(job, f"{type(e).__name__}: {e}")
            collector.record_error(dead_lettered=dead_letter)
            result.error_details.append(f"Message {job.message_id}: {e}")
    
    async def _archive(self, job) -> bool:
        try:
            return await self.queue.archive(job.message_id)
        except Exception as e:
            # Left for redelivery; the fresh-fingerprint check archives it next time
            logger.warning(f"Warning: Failed to archive message {job.message_id}: {e}")
            return False
    
    async def _dead_letter(self, job, reason: str) -> bool:
        try:
            moved = await self.queue.dead_letter(job.message_id, reason)
            logger.warning(f"Dead-lettered message {job.message_id} after {job.read_count} deliveries")
            return moved
        except Exception as e:
            logger.warning(f"Warning: Failed to dead-letter message {job.message_id}: {e}")
            return False
