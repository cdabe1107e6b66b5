"""Detects source documents whose sidecar embedding is missing or stale."""
import logging
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional

from sqlalchemy import select, func, or_

from sidecar_autopilot.core.database import AsyncSessionLocal
from sidecar_autopilot.models.document_embedding import DocumentEmbedding
from sidecar_autopilot.models.source_document import SourceDocument

logger = logging.getLogger(__name__)

DEFAULT_FIND_LIMIT = 30000


@dataclass
class StaleRecord:
    source_id: str
    content: str
    current_fingerprint: str
    stored_fingerprint: Optional[str]
    content_length: int


class ChangeDetector:
    """
    Joins source documents with their embeddings by fingerprint.
    
    A document is stale when it has non-empty content and either no
    embedding row or an embedding whose ``source_fingerprint`` differs from
    the document's ``content_hash``. Results are ordered most recently
    updated first and bounded by ``limit``; each call runs a fresh query.
    """
    
    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory
    
    def _stale_filter(self):
        return (
            SourceDocument.content.is_not(None),
            SourceDocument.content != "",
            or_(
                DocumentEmbedding.document_id.is_(None),
                DocumentEmbedding.source_fingerprint != SourceDocument.content_hash,
            ),
        )
    
    async def iter_stale(self, limit: int = DEFAULT_FIND_LIMIT) -> AsyncIterator[StaleRecord]:
        """Stream stale records without materialising the whole result."""
        stmt = (
            select(
                SourceDocument.id,
                SourceDocument.content,
                SourceDocument.content_hash,
                DocumentEmbedding.source_fingerprint,
                func.length(SourceDocument.content).label("content_length"),
            )
            .outerjoin(DocumentEmbedding, DocumentEmbedding.document_id == SourceDocument.id)
            .where(*self._stale_filter())
            .order_by(SourceDocument.updated_at.desc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.stream(stmt)
            async for row in result:
                yield StaleRecord(
                    source_id=str(row.id),
                    content=row.content,
                    current_fingerprint=row.content_hash,
                    stored_fingerprint=row.source_fingerprint,
                    content_length=int(row.content_length or 0),
                )
    
    async def find_stale(self, limit: int = DEFAULT_FIND_LIMIT) -> List[StaleRecord]:
        records = [record async for record in self.iter_stale(limit)]
        logger.debug(f"Change detection found {len(records)} stale documents (limit={limit})")
        return records
    
    async def count_stale(self, limit: int = DEFAULT_FIND_LIMIT) -> int:
        """Number of stale documents, capped at ``limit``."""
        inner = (
            select(SourceDocument.id)
            .outerjoin(DocumentEmbedding, DocumentEmbedding.document_id == SourceDocument.id)
            .where(*self._stale_filter())
            .limit(limit)
            .subquery()
        )
        async with self._session_factory() as session:
            count = await session.scalar(select(func.count()).select_from(inner))
            return int(count or 0)
