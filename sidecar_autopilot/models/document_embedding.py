from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pgvector.sqlalchemy import Vector

from sidecar_autopilot.core.config import settings
from sidecar_autopilot.core.database import Base


class DocumentEmbedding(Base):
    """Sidecar row holding the vector derived from one source document.

    ``source_fingerprint`` is always written together with ``embedding``;
    a mismatch with the document's current fingerprint marks the row stale.
    """
    __tablename__ = "document_embeddings"
    
    document_id = Column(
        UUID(as_uuid=True),
        ForeignKey("source_documents.id", ondelete="CASCADE"),
        primary_key=True,
    )
    source_text = Column(Text, nullable=False)  # The text that was embedded
    source_fingerprint = Column(String(64), nullable=False, index=True)
    embedding = Column(Vector(settings.VECTOR_DIMENSION))  # pgvector type
    embedding_model = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    document = relationship("SourceDocument", back_populates="embedding")
