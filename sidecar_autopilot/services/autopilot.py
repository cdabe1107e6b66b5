"""
Autopilot: the periodic controller that keeps embeddings in sync.

Every tick checks the queue depth, scans for stale documents unless the
backlog is already at the load threshold, and then always runs one drain.
A tick never raises, so the scheduler that fires it keeps firing.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.exceptions import QueueUnavailable
from sidecar_autopilot.services.drain_loop import DrainResult
from sidecar_autopilot.services.enqueuer import ENQUEUE_FAILED

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    queue_size: Optional[int] = None
    scan_skipped: bool = False
    enqueued: Optional[int] = None
    drain: Optional[DrainResult] = None
    error: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "queue_size": self.queue_size,
            "scan_skipped": self.scan_skipped,
            "enqueued": self.enqueued,
            "drain": self.drain.to_dict() if self.drain else None,
            "error": self.error,
        }


class Autopilot:
    
    def __init__(
        self,
        queue,
        enqueuer,
        drain_loop,
        error_log,
        load_threshold: int = None,
        scan_batch_size: int = None,
    ):
        self.queue = queue
        self.enqueuer = enqueuer
        self.drain_loop = drain_loop
        self.error_log = error_log
        self.load_threshold = load_threshold or settings.AUTOPILOT_LOAD_THRESHOLD
        self.scan_batch_size = scan_batch_size or settings.AUTOPILOT_SCAN_BATCH_SIZE
    
    async def tick(self) -> TickReport:
        report = TickReport()
        try:
            current_queue_size = await self.queue.size()
            report.queue_size = current_queue_size
            
            # Best-effort guard: concurrent producers may grow the queue after this read
            if current_queue_size >= self.load_threshold:
                report.scan_skipped = True
                logger.warning(
                    f"Autopilot: Queue size ({current_queue_size}) exceeds threshold "
                    f"({self.load_threshold}), skipping scan to prevent overload"
                )
            else:
                enqueued = await self.enqueuer.enqueue_stale(self.scan_batch_size)
                report.enqueued = enqueued
                if enqueued == ENQUEUE_FAILED:
                    logger.warning("Autopilot: scan failed, continuing with queue processing")
                elif enqueued > 0:
                    logger.info(
                        f"Autopilot: Detected and enqueued {enqueued} documents for re-embedding "
                        f"(queue_size: {current_queue_size + enqueued})"
                    )
                else:
                    logger.info(
                        f"Autopilot: No outdated embeddings detected - system synchronized "
                        f"(queue_size: {current_queue_size})"
                    )
            
            # Always drain: trigger jobs may be waiting even when the scan was skipped
            report.drain = await self.drain_loop.run(origin="autopilot")
        
        except QueueUnavailable as e:
            logger.error(f"Autopilot: queue unavailable, ending tick early: {e}")
            report.error = str(e)
            await self.error_log.record(
                str(e),
                context={"error_type": type(e).__name__, "queue_size": report.queue_size},
                function_name="autopilot_tick",
            )
        except Exception as e:
            logger.error(f"Autopilot master controller error: {e}", exc_info=True)
            report.error = str(e)
            await self.error_log.record(
                str(e),
                context={"error_type": type(e).__name__, "queue_size": report.queue_size},
                function_name="autopilot_tick",
            )
        return report
