from sqlalchemy import Column, String, Text, DateTime, Integer, BigInteger, Boolean
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from sidecar_autopilot.core.database import Base


class EmbeddingJob(Base):
    """Pending job row. ``vt`` is the visibility deadline of the last claim."""
    __tablename__ = "embedding_jobs"
    
    msg_id = Column(BigInteger, primary_key=True, autoincrement=True)
    queue_name = Column(String(100), nullable=False, index=True)
    read_ct = Column(Integer, nullable=False, default=0, server_default="0")
    enqueued_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    vt = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    message = Column(JSONB, nullable=False)


class ArchivedEmbeddingJob(Base):
    """Completed, malformed or dead-lettered job moved out of the live queue."""
    __tablename__ = "embedding_jobs_archive"
    
    msg_id = Column(BigInteger, primary_key=True, autoincrement=False)
    queue_name = Column(String(100), nullable=False, index=True)
    read_ct = Column(Integer, nullable=False, default=0)
    enqueued_at = Column(DateTime(timezone=True), nullable=False)
    archived_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    vt = Column(DateTime(timezone=True), nullable=False)
    message = Column(JSONB, nullable=False)
    dead_letter = Column(Boolean, nullable=False, default=False, server_default="false", index=True)
    reason = Column(Text)
