from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from sidecar_autopilot.core.database import Base


class SourceDocument(Base):
    """Source record: ``content`` is the single input to embedding generation."""
    __tablename__ = "source_documents"
    
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    content = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False, index=True)  # fingerprint(content), maintained on write
    meta = Column("metadata", JSONB, default=dict)  # metadata column in DB
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, index=True)
    
    embedding = relationship(
        "DocumentEmbedding",
        back_populates="document",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
