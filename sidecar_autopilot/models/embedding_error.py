from sqlalchemy import Column, String, Text, DateTime, BigInteger
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from sidecar_autopilot.core.database import Base


class EmbeddingErrorLog(Base):
    """Append-only diagnostic record. Never read by the pipeline itself."""
    __tablename__ = "embedding_error_log"
    
    id = Column(BigInteger, primary_key=True, autoincrement=True)
    source_id = Column(String(64), index=True)  # NULL for tick-level failures
    error_message = Column(Text, nullable=False)
    error_context = Column(JSONB, default=dict)
    function_name = Column(String(100), index=True)
    queue_message_id = Column(String(32))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
