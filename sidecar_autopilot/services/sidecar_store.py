"""Sidecar store: one embedding row per source document."""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError

from sidecar_autopilot.core.database import AsyncSessionLocal
from sidecar_autopilot.models.document_embedding import DocumentEmbedding

logger = logging.getLogger(__name__)


@dataclass
class Artifact:
    source_id: str
    fingerprint: str
    vector: Optional[List[float]]
    model: Optional[str] = None
    updated_at: Optional[datetime] = None


class SidecarStore:
    """Upserts and reads ``document_embeddings``.
    
    The fingerprint and the vector are always written in the same
    statement, so a row can never pair a vector with another content's
    fingerprint.
    """
    
    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory
    
    async def upsert(
        self,
        source_id,
        source_fingerprint: str,
        vector: List[float],
        source_text: str = "",
        model: Optional[str] = None,
    ) -> bool:
        """
        Insert or overwrite the artifact for ``source_id``.
        
        Returns False when the source document no longer exists (the
        foreign key rejected the row), True otherwise.
        """
        doc_id = uuid.UUID(str(source_id))
        values = {
            "document_id": doc_id,
            "source_text": source_text,
            "source_fingerprint": source_fingerprint,
            "embedding": vector,
            "embedding_model": model,
        }
        stmt = insert(DocumentEmbedding).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DocumentEmbedding.document_id],
            set_={
                "source_text": stmt.excluded.source_text,
                "source_fingerprint": stmt.excluded.source_fingerprint,
                "embedding": stmt.excluded.embedding,
                "embedding_model": stmt.excluded.embedding_model,
                "updated_at": func.now(),
            },
        )
        
        async with self._session_factory() as session:
            try:
                await session.execute(stmt)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.info(f"Source document {source_id} no longer exists, embedding not stored: {e.orig}")
                return False
        return True
    
    async def get(self, source_id) -> Optional[Artifact]:
        async with self._session_factory() as session:
            row = await session.get(DocumentEmbedding, uuid.UUID(str(source_id)))
            if row is None:
                return None
            vector = [float(v) for v in row.embedding] if row.embedding is not None else None
            return Artifact(
                source_id=str(row.document_id),
                fingerprint=row.source_fingerprint,
                vector=vector,
                model=row.embedding_model,
                updated_at=row.updated_at,
            )
    
    async def get_fingerprint(self, source_id) -> Optional[str]:
        """Stored fingerprint only, without loading the vector."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentEmbedding.source_fingerprint)
                .where(DocumentEmbedding.document_id == uuid.UUID(str(source_id)))
            )
            return result.scalar_one_or_none()
