"""SQL-backed store of source documents with a post-commit mutation hook."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select

from sidecar_autopilot.core.database import AsyncSessionLocal
from sidecar_autopilot.models.source_document import SourceDocument
from sidecar_autopilot.services.fingerprint import fingerprint

logger = logging.getLogger(__name__)


@dataclass
class SourceRecord:
    id: str
    content: str
    content_hash: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    @classmethod
    def from_model(cls, document: SourceDocument) -> "SourceRecord":
        return cls(
            id=str(document.id),
            content=document.content,
            content_hash=document.content_hash,
            metadata=document.meta or {},
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


MutationObserver = Callable[[SourceRecord], Awaitable[Any]]


def _as_uuid(source_id) -> Optional[uuid.UUID]:
    if isinstance(source_id, uuid.UUID):
        return source_id
    try:
        return uuid.UUID(str(source_id))
    except (TypeError, ValueError):
        return None


class ContentStore:
    """Reads and writes ``source_documents``.
    
    Writes keep ``content_hash`` equal to ``fingerprint(content)`` so scans
    never have to rehash content. Observers registered with ``on_mutate``
    run after the write has committed, only when content changed and is
    non-empty.
    """
    
    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory
        self._observers: List[MutationObserver] = []
    
    def on_mutate(self, observer: MutationObserver):
        """Register a coroutine called with the committed record."""
        self._observers.append(observer)
        return observer
    
    async def get(self, source_id) -> Optional[SourceRecord]:
        doc_id = _as_uuid(source_id)
        if doc_id is None:
            return None
        async with self._session_factory() as session:
            document = await session.get(SourceDocument, doc_id)
            return SourceRecord.from_model(document) if document else None
    
    async def list_eligible(self, limit: int, order_by_updated_desc: bool = True) -> List[SourceRecord]:
        """Records with non-empty content, most recently updated first by default."""
        order = SourceDocument.updated_at.desc() if order_by_updated_desc else SourceDocument.updated_at.asc()
        async with self._session_factory() as session:
            result = await session.execute(
                select(SourceDocument)
                .where(SourceDocument.content.is_not(None), SourceDocument.content != "")
                .order_by(order)
                .limit(limit)
            )
            return [SourceRecord.from_model(doc) for doc in result.scalars().all()]
    
    async def create(self, content: str, metadata: Optional[Dict[str, Any]] = None) -> SourceRecord:
        async with self._session_factory() as session:
            document = SourceDocument(
                content=content,
                content_hash=fingerprint(content),
                meta=metadata or {},
            )
            session.add(document)
            await session.commit()
            await session.refresh(document)
            record = SourceRecord.from_model(document)
        
        if record.content:
            await self._notify(record)
        return record
    
    async def update(
        self,
        source_id,
        content: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[SourceRecord]:
        doc_id = _as_uuid(source_id)
        if doc_id is None:
            return None
        
        async with self._session_factory() as session:
            document = await session.get(SourceDocument, doc_id)
            if document is None:
                return None
            
            content_changed = content is not None and content != document.content
            if content_changed:
                document.content = content
                document.content_hash = fingerprint(content)
            if metadata is not None:
                document.meta = metadata
            
            await session.commit()
            await session.refresh(document)
            record = SourceRecord.from_model(document)
        
        if content_changed and record.content:
            await self._notify(record)
        return record
    
    async def delete(self, source_id) -> bool:
        """Delete a record; the database cascades to its embedding."""
        doc_id = _as_uuid(source_id)
        if doc_id is None:
            return False
        async with self._session_factory() as session:
            document = await session.get(SourceDocument, doc_id)
            if document is None:
                return False
            await session.delete(document)
            await session.commit()
        return True
    
    async def _notify(self, record: SourceRecord):
        for observer in self._observers:
            try:
                await observer(record)
            except Exception as e:
                # The write is committed; the next autopilot scan picks the record up
                logger.error(f"Mutation observer failed for document {record.id}: {e}", exc_info=True)
