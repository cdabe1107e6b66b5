"""
Durable visibility-timeout job queue on PostgreSQL.

Jobs live in ``embedding_jobs`` until archived into ``embedding_jobs_archive``.
A read claims rows by pushing their visibility deadline (``vt``) into the
future; a claimed job that is never archived becomes visible again once
``vt`` passes. That redelivery is the queue's only retry mechanism.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import func, insert, select, text
from sqlalchemy.exc import SQLAlchemyError

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.database import AsyncSessionLocal, engine as default_engine
from sidecar_autopilot.core.exceptions import QueueUnavailable
from sidecar_autopilot.models.embedding_job import EmbeddingJob

logger = logging.getLogger(__name__)


_READ_SQL = text("""
    WITH claimed AS (
        SELECT msg_id
        FROM embedding_jobs
        WHERE queue_name = :queue_name
          AND vt <= clock_timestamp()
        ORDER BY msg_id
        LIMIT :batch_size
        FOR UPDATE SKIP LOCKED
    )
    UPDATE embedding_jobs AS j
    SET vt = clock_timestamp() + make_interval(secs => :visibility_timeout),
        read_ct = j.read_ct + 1
    FROM claimed
    WHERE j.msg_id = claimed.msg_id
    RETURNING j.msg_id, j.read_ct, j.enqueued_at, j.vt, j.message
""")

_ARCHIVE_SQL = text("""
    WITH archived AS (
        DELETE FROM embedding_jobs
        WHERE msg_id = :msg_id
          AND queue_name = :queue_name
        RETURNING msg_id, queue_name, read_ct, enqueued_at, vt, message
    )
    INSERT INTO embedding_jobs_archive
        (msg_id, queue_name, read_ct, enqueued_at, vt, message, dead_letter, reason)
    SELECT msg_id, queue_name, read_ct, enqueued_at, vt, message, :dead_letter, :reason
    FROM archived
    RETURNING msg_id
""")

_PENDING_SOURCES_SQL = text("""
    SELECT DISTINCT message->>'source_id' AS source_id
    FROM embedding_jobs
    WHERE queue_name = :queue_name
      AND message->>'source_id' IS NOT NULL
""")

_DEAD_LETTERED_SQL = text("""
    SELECT DISTINCT
        message->>'source_id' AS source_id,
        COALESCE(
            message->>'current_fingerprint',
            encode(sha256(convert_to(message->>'content_snapshot', 'UTF8')), 'hex')
        ) AS fingerprint
    FROM embedding_jobs_archive
    WHERE queue_name = :queue_name
      AND dead_letter
      AND message->>'source_id' IS NOT NULL
""")

_STATS_SQL = text("""
    SELECT
        COUNT(*) AS total_pending,
        MIN(enqueued_at) AS oldest_job,
        MAX(enqueued_at) AS newest_job,
        COUNT(*) FILTER (
            WHERE message->>'origin' = 'scan'
              AND enqueued_at > now() - interval '1 hour'
        ) AS autopilot_jobs_last_hour
    FROM embedding_jobs
    WHERE queue_name = :queue_name
""")


@dataclass
class Job:
    """A claimed queue message."""
    message_id: int
    payload: Dict[str, Any]
    read_count: int
    enqueued_at: Optional[datetime] = None
    visibility_deadline: Optional[datetime] = None


class JobQueue:
    """Queue operations; every database failure surfaces as ``QueueUnavailable``."""
    
    def __init__(self, session_factory=AsyncSessionLocal, queue_name: str = None, engine=None):
        self._session_factory = session_factory
        self._engine = engine or default_engine
        self.queue_name = queue_name or settings.QUEUE_NAME
    
    @asynccontextmanager
    async def _session(self, operation: str):
        try:
            async with self._session_factory() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Queue '{self.queue_name}' unavailable during {operation}: {e}")
            raise QueueUnavailable(f"Queue '{self.queue_name}' unavailable during {operation}: {e}") from e
    
    async def send(self, payload: Dict[str, Any]) -> int:
        """Persist one job and return its message id."""
        async with self._session("send") as session:
            msg_id = await session.scalar(
                insert(EmbeddingJob)
                .values(queue_name=self.queue_name, message=payload)
                .returning(EmbeddingJob.msg_id)
            )
            await session.commit()
            return int(msg_id)
    
    async def send_batch(self, payloads: List[Dict[str, Any]]) -> List[int]:
        """Persist several jobs in a single transaction."""
        if not payloads:
            return []
        async with self._session("send_batch") as session:
            result = await session.scalars(
                insert(EmbeddingJob).returning(EmbeddingJob.msg_id),
                [{"queue_name": self.queue_name, "message": payload} for payload in payloads],
            )
            msg_ids = [int(msg_id) for msg_id in result.all()]
            await session.commit()
            return msg_ids
    
    async def read(self, visibility_timeout: float, batch_size: int) -> List[Job]:
        """
        Claim up to ``batch_size`` of the oldest visible jobs.
        
        Claimed jobs stay invisible for ``visibility_timeout`` seconds and
        come back with ``read_count`` incremented. An empty list means no
        job is currently visible.
        """
        if batch_size < 1:
            return []
        async with self._session("read") as session:
            result = await session.execute(
                _READ_SQL,
                {
                    "queue_name": self.queue_name,
                    "batch_size": int(batch_size),
                    "visibility_timeout": float(visibility_timeout),
                },
            )
            rows = result.mappings().fetchall()
            await session.commit()
        
        jobs = [
            Job(
                message_id=int(row["msg_id"]),
                payload=row["message"] or {},
                read_count=int(row["read_ct"]),
                enqueued_at=row["enqueued_at"],
                visibility_deadline=row["vt"],
            )
            for row in rows
        ]
        jobs.sort(key=lambda job: job.message_id)
        return jobs
    
    async def archive(self, message_id: int) -> bool:
        """Remove a job permanently. False if it was already gone."""
        return await self._move_to_archive(message_id, dead_letter=False, reason=None)
    
    async def dead_letter(self, message_id: int, reason: str) -> bool:
        """Archive a job flagged as dead-lettered, keeping the failure reason."""
        return await self._move_to_archive(message_id, dead_letter=True, reason=reason)
    
    async def _move_to_archive(self, message_id: int, dead_letter: bool, reason: Optional[str]) -> bool:
        async with self._session("archive") as session:
            result = await session.execute(
                _ARCHIVE_SQL,
                {
                    "msg_id": int(message_id),
                    "queue_name": self.queue_name,
                    "dead_letter": dead_letter,
                    "reason": reason,
                },
            )
            archived = result.scalar_one_or_none()
            await session.commit()
        if archived is None:
            logger.debug(f"Message {message_id} not found in '{self.queue_name}' (already archived)")
        return archived is not None
    
    async def size(self) -> int:
        """Visible plus invisible jobs."""
        async with self._session("size") as session:
            count = await session.scalar(
                select(func.count()).select_from(EmbeddingJob).where(EmbeddingJob.queue_name == self.queue_name)
            )
            return int(count or 0)
    
    async def pending_source_ids(self) -> Set[str]:
        """Source ids that already have a job waiting or in flight."""
        async with self._session("pending_source_ids") as session:
            result = await session.execute(_PENDING_SOURCES_SQL, {"queue_name": self.queue_name})
            return {row[0] for row in result.fetchall()}
    
    async def dead_lettered_fingerprints(self) -> Dict[str, Set[str]]:
        """Fingerprints each source id was dead-lettered with."""
        async with self._session("dead_lettered_fingerprints") as session:
            result = await session.execute(_DEAD_LETTERED_SQL, {"queue_name": self.queue_name})
            dead: Dict[str, Set[str]] = {}
            for source_id, content_fingerprint in result.fetchall():
                if content_fingerprint:
                    dead.setdefault(source_id, set()).add(content_fingerprint)
            return dead
    
    async def stats(self) -> Dict[str, Any]:
        async with self._session("stats") as session:
            result = await session.execute(_STATS_SQL, {"queue_name": self.queue_name})
            row = result.mappings().one()
            return {
                "total_pending": int(row["total_pending"] or 0),
                "oldest_job": row["oldest_job"],
                "newest_job": row["newest_job"],
                "autopilot_jobs_last_hour": int(row["autopilot_jobs_last_hour"] or 0),
            }
    
    @asynccontextmanager
    async def scan_lock(self, name: str):
        """
        Hold a session-level advisory lock named ``name`` for the block.
        
        Yields False without waiting when another session holds the lock.
        """
        try:
            async with self._engine.connect() as conn:
                acquired = await conn.scalar(
                    text("SELECT pg_try_advisory_lock(hashtext(:name))"), {"name": name}
                )
                try:
                    yield bool(acquired)
                finally:
                    if acquired:
                        await conn.execute(text("SELECT pg_advisory_unlock(hashtext(:name))"), {"name": name})
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Advisory lock '{name}' unavailable: {e}")
            raise QueueUnavailable(f"Advisory lock '{name}' unavailable: {e}") from e
