"""
Turns stale documents into queue jobs.

Two entry points feed the queue:
- ``enqueue_record``: the fast path, registered as the content store's
  mutation observer, enqueues one ``trigger`` job per committed change.
- ``enqueue_stale``: the scan path, run by the autopilot, enqueues
  ``scan`` jobs for every stale document that has no job pending yet and
  was not dead-lettered with its current content.

Duplicate jobs for the same document are harmless (the sidecar upsert is
idempotent per fingerprint); suppression only avoids wasted work.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.services.fingerprint import fingerprint

logger = logging.getLogger(__name__)

ENQUEUE_FAILED = -1

ORIGIN_TRIGGER = "trigger"
ORIGIN_SCAN = "scan"


class Enqueuer:
    
    def __init__(
        self,
        queue,
        change_detector,
        error_log,
        commit_batch_size: int = None,
        high_priority_length: int = None,
        use_scan_lock: bool = None,
        scan_lock_name: str = None,
    ):
        self.queue = queue
        self.change_detector = change_detector
        self.error_log = error_log
        self.commit_batch_size = commit_batch_size or settings.ENQUEUE_COMMIT_BATCH_SIZE
        self.high_priority_length = high_priority_length or settings.HIGH_PRIORITY_CONTENT_LENGTH
        self.use_scan_lock = settings.SCAN_ADVISORY_LOCK if use_scan_lock is None else use_scan_lock
        self.scan_lock_name = scan_lock_name or settings.SCAN_LOCK_NAME
    
    def build_payload(
        self,
        source_id: str,
        content: str,
        origin: str,
        current_fingerprint: Optional[str] = None,
        previous_fingerprint: Optional[str] = None,
    ) -> Dict[str, Any]:
        content_length = len(content)
        return {
            "source_id": str(source_id),
            "content_snapshot": content,
            "enqueued_at": datetime.now(timezone.utc).isoformat(),
            "origin": origin,
            "priority": "high" if content_length > self.high_priority_length else "normal",
            "content_length": content_length,
            "current_fingerprint": current_fingerprint or fingerprint(content),
            "previous_fingerprint": previous_fingerprint,
        }
    
    async def enqueue_record(self, record) -> Optional[int]:
        """Fast path: enqueue one job for a just-committed source record."""
        if not record.content:
            return None
        payload = self.build_payload(
            record.id,
            record.content,
            ORIGIN_TRIGGER,
            current_fingerprint=getattr(record, "content_hash", None),
        )
        msg_id = await self.queue.send(payload)
        logger.info(f"Enqueued embedding job {msg_id} for document {record.id} (origin: trigger)")
        return msg_id
    
    async def enqueue_stale(self, limit: int) -> int:
        """
        Enqueue jobs for up to ``limit`` stale documents.
        
        Returns:
            Number of jobs created, or ``ENQUEUE_FAILED`` if the scan aborted
        """
        try:
            stale = await self.change_detector.find_stale(limit)
            logger.info(f"Autopilot detected {len(stale)} documents with outdated embeddings")
            if not stale:
                return 0
            
            if not self.use_scan_lock:
                return await self._enqueue_missing(stale)
            
            async with self.queue.scan_lock(self.scan_lock_name) as acquired:
                if not acquired:
                    logger.warning(f"Autopilot: scan lock '{self.scan_lock_name}' held by another instance, skipping enqueue")
                    return 0
                return await self._enqueue_missing(stale)
        except Exception as e:
            logger.error(f"Autopilot error in enqueue_stale: {e}", exc_info=True)
            await self.error_log.record(
                str(e),
                context={"limit": limit, "error_type": type(e).__name__},
                function_name="enqueue_stale",
            )
            return ENQUEUE_FAILED
    
    async def _enqueue_missing(self, stale) -> int:
        queued = set(await self.queue.pending_source_ids())
        dead = await self.queue.dead_lettered_fingerprints()
        enqueued_count = 0
        suppressed = 0
        pending: List[Dict[str, Any]] = []
        
        for record in stale:
            if record.source_id in queued:
                continue
            # A dead-lettered job blocks its document until the content changes
            if record.current_fingerprint in dead.get(record.source_id, ()):
                suppressed += 1
                continue
            queued.add(record.source_id)
            pending.append(self.build_payload(
                record.source_id,
                record.content,
                ORIGIN_SCAN,
                current_fingerprint=record.current_fingerprint,
                previous_fingerprint=record.stored_fingerprint,
            ))
            
            # Micro-batch: one transaction per commit_batch_size jobs
            if len(pending) >= self.commit_batch_size:
                await self.queue.send_batch(pending)
                enqueued_count += len(pending)
                pending = []
                logger.info(f"Autopilot: enqueued {enqueued_count} documents (micro-batch checkpoint)")
        
        if pending:
            await self.queue.send_batch(pending)
            enqueued_count += len(pending)
        
        if suppressed:
            logger.warning(f"Autopilot: skipped {suppressed} dead-lettered documents with unchanged content")
        logger.info(f"Autopilot: successfully enqueued {enqueued_count} documents for re-embedding")
        return enqueued_count
