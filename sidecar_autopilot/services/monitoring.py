"""Read-only aggregate view of the sync system's health."""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, func

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.database import AsyncSessionLocal
from sidecar_autopilot.models.document_embedding import DocumentEmbedding
from sidecar_autopilot.models.source_document import SourceDocument
from sidecar_autopilot.schemas.processing import SystemStatus

logger = logging.getLogger(__name__)


class StatusService:
    
    def __init__(self, queue, change_detector, error_log, session_factory=AsyncSessionLocal, stale_limit: int = None):
        self.queue = queue
        self.change_detector = change_detector
        self.error_log = error_log
        self._session_factory = session_factory
        self.stale_limit = stale_limit or settings.STATUS_STALE_SCAN_LIMIT
    
    async def _document_counts(self):
        eligible = (SourceDocument.content.is_not(None), SourceDocument.content != "")
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(SourceDocument).where(*eligible))
            artifacts = await session.scalar(select(func.count()).select_from(DocumentEmbedding))
            valid = await session.scalar(
                select(func.count()).select_from(DocumentEmbedding).where(DocumentEmbedding.embedding.is_not(None))
            )
            fresh = await session.scalar(
                select(func.count())
                .select_from(SourceDocument)
                .join(DocumentEmbedding, DocumentEmbedding.document_id == SourceDocument.id)
                .where(
                    *eligible,
                    DocumentEmbedding.embedding.is_not(None),
                    DocumentEmbedding.source_fingerprint == SourceDocument.content_hash,
                )
            )
        return int(total or 0), int(artifacts or 0), int(valid or 0), int(fresh or 0)
    
    async def get_status(self) -> SystemStatus:
        now = datetime.now(timezone.utc)
        queue_stats = await self.queue.stats()
        total, artifacts, valid, fresh = await self._document_counts()
        stale = await self.change_detector.count_stale(self.stale_limit)
        errors_last_hour = await self.error_log.count_since(now - timedelta(hours=1))
        errors_last_24h = await self.error_log.count_since(now - timedelta(hours=24))
        
        # Nothing to embed counts as fully covered
        coverage = round(100.0 * fresh / total, 1) if total else 100.0
        
        return SystemStatus(
            pending_jobs=queue_stats["total_pending"],
            total_source_records=total,
            artifacts_count=artifacts,
            valid_artifacts_count=valid,
            stale_count=stale,
            errors_last_hour=errors_last_hour,
            errors_last_24h=errors_last_24h,
            coverage_percent=coverage,
            oldest_job_at=queue_stats["oldest_job"],
            newest_job_at=queue_stats["newest_job"],
            autopilot_jobs_last_hour=queue_stats["autopilot_jobs_last_hour"],
            last_checked=now,
        )
